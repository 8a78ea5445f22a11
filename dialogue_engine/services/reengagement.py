"""Re-engagement strategy selection after a field-extraction attempt.

This table is the single place that decides how many chances a respondent
gets for a field. It is pure and exhaustive over ValidationFailureReason.
"""

from typing import FrozenSet

from dialogue_engine.domain.models.validation import (
    ReengagementStrategy,
    ValidationFailureReason,
    ValidationResponse,
)

FORMAT_REASONS: FrozenSet[ValidationFailureReason] = frozenset(
    {
        ValidationFailureReason.EMAIL_INVALID_FORMAT,
        ValidationFailureReason.EMAIL_INCOMPLETE,
        ValidationFailureReason.PHONE_INVALID_FORMAT,
        ValidationFailureReason.URL_INVALID_FORMAT,
    }
)

CLARITY_REASONS: FrozenSet[ValidationFailureReason] = frozenset(
    {
        ValidationFailureReason.INTENT_UNCLEAR,
        ValidationFailureReason.INTENT_NEUTRAL,
        ValidationFailureReason.RESPONSE_TOO_BRIEF,
        ValidationFailureReason.CLARIFICATION_NEEDED,
    }
)

# Reasons that end the field on the second attempt instead of moving on
GIVE_UP_REASONS: FrozenSet[ValidationFailureReason] = frozenset(
    {
        ValidationFailureReason.FIELD_NO_VALUE_EXTRACTED,
        ValidationFailureReason.USER_SKIP_REQUESTED,
    }
)


def select_strategy(
    response: ValidationResponse,
    attempt_number: int = 1,
    max_attempts: int = 2,
) -> ReengagementStrategy:
    """
    Map a validation outcome and attempt count to a recovery strategy.

    Args:
        response: Outcome of the extraction attempt
        attempt_number: 1-based attempt on this field
        max_attempts: Attempts allowed before the field is skipped

    Returns:
        valid -> move_on; past max -> skip_field; attempt 1 -> give_example
        (format), ask_differently (clarity) or explain_better; attempt 2 ->
        skip_field (nothing extracted / explicit skip) or move_on
    """
    if response.is_valid:
        return ReengagementStrategy.MOVE_ON

    if attempt_number > max_attempts:
        return ReengagementStrategy.SKIP_FIELD

    reason = response.reason

    if attempt_number <= 1:
        if reason in FORMAT_REASONS:
            return ReengagementStrategy.GIVE_EXAMPLE
        if reason in CLARITY_REASONS:
            return ReengagementStrategy.ASK_DIFFERENTLY
        return ReengagementStrategy.EXPLAIN_BETTER

    if attempt_number == 2:
        if reason in GIVE_UP_REASONS:
            return ReengagementStrategy.SKIP_FIELD
        return ReengagementStrategy.MOVE_ON

    return ReengagementStrategy.MOVE_ON
