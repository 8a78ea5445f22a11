"""Tests for field validation and the re-engagement table."""

import pytest

from dialogue_engine.domain.models.validation import (
    ConfidenceLevel,
    FieldType,
    ReengagementStrategy,
    ValidationFailureReason,
    ValidationResponse,
)
from dialogue_engine.services.field_validator import (
    FEEDBACK_MESSAGES,
    check_skip_intent,
    field_type_for,
    generate_validation_feedback,
    validate_extracted_field,
)
from dialogue_engine.services.reengagement import select_strategy

R = ValidationFailureReason
S = ReengagementStrategy


class TestFieldType:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("email", FieldType.EMAIL),
            ("work_e-mail", FieldType.EMAIL),
            ("numero_telefono", FieldType.PHONE),
            ("linkedin_profile", FieldType.URL),
            ("company_name", FieldType.TEXT),
        ],
    )
    def test_inferred_from_name(self, name, expected):
        assert field_type_for(name) == expected


class TestValidateExtractedField:
    def test_value_with_confidence_is_valid(self):
        result = validate_extracted_field("email", " mario@rossi.it ", "high", 1, "it")
        assert result.accepted
        assert result.value == "mario@rossi.it"
        assert result.validation.reason is None
        assert result.validation.strategy == S.MOVE_ON

    def test_low_confidence_still_valid(self):
        result = validate_extracted_field("company", "Acme", ConfidenceLevel.LOW, 1, "en")
        assert result.accepted

    def test_no_value_first_attempt(self):
        result = validate_extracted_field("email", None, "none", 1, "en")
        assert not result.accepted
        assert result.validation.reason == R.FIELD_NO_VALUE_EXTRACTED
        assert result.validation.strategy == S.EXPLAIN_BETTER
        assert result.validation.feedback == FEEDBACK_MESSAGES[R.FIELD_NO_VALUE_EXTRACTED]["en"]

    def test_no_value_second_attempt_skips(self):
        result = validate_extracted_field("email", "", "none", 2, "it")
        assert result.validation.strategy == S.SKIP_FIELD
        assert result.should_skip

    def test_incomplete_email(self):
        result = validate_extracted_field("email", "mario@gmail", "none", 1, "it")
        assert result.validation.reason == R.EMAIL_INCOMPLETE
        assert result.validation.strategy == S.GIVE_EXAMPLE
        assert result.value is None
        assert result.validation.extracted_value == "mario@gmail"

    def test_invalid_phone(self):
        result = validate_extracted_field("phone", "12", "none", 1, "en")
        assert result.validation.reason == R.PHONE_INVALID_FORMAT

    def test_explicit_opt_out(self):
        result = validate_extracted_field(
            "phone", None, "none", 1, "it", user_message="Preferisco di non darlo"
        )
        assert result.validation.reason == R.USER_SKIP_REQUESTED

    def test_past_max_attempts_skips(self):
        result = validate_extracted_field("email", None, "none", 3, "en", max_attempts=2)
        assert result.validation.strategy == S.SKIP_FIELD


class TestSelectStrategy:
    def _failed(self, reason):
        return ValidationResponse(is_valid=False, reason=reason)

    def test_valid_moves_on(self):
        assert select_strategy(ValidationResponse(is_valid=True), 1) == S.MOVE_ON

    @pytest.mark.parametrize(
        "reason,expected",
        [
            (R.EMAIL_INVALID_FORMAT, S.GIVE_EXAMPLE),
            (R.URL_INVALID_FORMAT, S.GIVE_EXAMPLE),
            (R.RESPONSE_TOO_BRIEF, S.ASK_DIFFERENTLY),
            (R.INTENT_NEUTRAL, S.ASK_DIFFERENTLY),
            (R.FIELD_NO_VALUE_EXTRACTED, S.EXPLAIN_BETTER),
            (R.USER_SKIP_REQUESTED, S.EXPLAIN_BETTER),
        ],
    )
    def test_first_attempt(self, reason, expected):
        assert select_strategy(self._failed(reason), 1) == expected

    @pytest.mark.parametrize(
        "reason,expected",
        [
            (R.FIELD_NO_VALUE_EXTRACTED, S.SKIP_FIELD),
            (R.USER_SKIP_REQUESTED, S.SKIP_FIELD),
            (R.EMAIL_INVALID_FORMAT, S.MOVE_ON),
            (R.CLARIFICATION_NEEDED, S.MOVE_ON),
        ],
    )
    def test_second_attempt(self, reason, expected):
        assert select_strategy(self._failed(reason), 2) == expected

    def test_every_reason_is_mapped(self):
        for reason in ValidationFailureReason:
            for attempt in (1, 2, 3):
                assert isinstance(select_strategy(self._failed(reason), attempt), S)


class TestFeedback:
    def test_every_reason_has_bilingual_feedback(self):
        for reason in ValidationFailureReason:
            assert generate_validation_feedback(reason, "it")
            assert generate_validation_feedback(reason, "en")

    def test_unknown_reason_uses_fallback(self):
        assert generate_validation_feedback(None, "en") == "Please provide a valid response."

    def test_skip_intent(self):
        assert check_skip_intent("I don't have one", "en")
        assert check_skip_intent("non ce l'ho", "it")
        assert not check_skip_intent("mario@rossi.it", "it")
