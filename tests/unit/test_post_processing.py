"""Tests for the post-generation gate layers."""

from dialogue_engine.domain.models.phase import Phase
from dialogue_engine.domain.models.post_processing import GateLayer
from dialogue_engine.services.post_processing import (
    REASON_COMPLETION,
    REASON_DUPLICATE,
    run_post_processing,
    validate_completion,
    validate_data_collection,
    validate_extension_offer,
    validate_topic_phase_closure,
)


class TestClosureGuard:
    def test_valid_topic_question_passes(self):
        result = validate_topic_phase_closure(
            "Quali ostacoli avete incontrato nell'ultimo inserimento?", "it"
        )
        assert result.is_valid

    def test_statement_without_question_fails(self):
        result = validate_topic_phase_closure("Grazie per le risposte.", "it")
        assert not result.is_valid
        assert result.layer == GateLayer.CLOSURE_GUARD
        assert result.regeneration_required

    def test_goodbye_fails(self):
        assert not validate_topic_phase_closure("Goodbye, anything else?", "en").is_valid

    def test_contact_request_fails(self):
        assert not validate_topic_phase_closure("Puoi lasciarmi la tua email?", "it").is_valid

    def test_promotion_fails(self):
        result = validate_topic_phase_closure("Have you tried www.example.com yet?", "en")
        assert not result.is_valid

    def test_patterns_are_word_bounded(self):
        result = validate_topic_phase_closure(
            "How do you handle unfinished tasks at the end of the sprint?", "en"
        )
        assert result.is_valid


class TestExtensionOfferEnforcer:
    def test_continuation_question_passes(self):
        assert validate_extension_offer(
            "Ti va di continuare ancora per qualche minuto?", "it"
        ).is_valid

    def test_topic_question_fails(self):
        result = validate_extension_offer("Come gestite i fornitori?", "it")
        assert result.layer == GateLayer.EXTENSION_OFFER_ENFORCER


class TestDataCollectionEnforcer:
    def test_requires_a_question(self):
        result = validate_data_collection("Grazie.", Phase.DATA_COLLECTION)
        assert result.layer == GateLayer.DATA_COLLECTION_ENFORCER

    def test_ignores_other_phases(self):
        assert validate_data_collection("Grazie.", Phase.EXPLORE).is_valid


class TestCompletionGuard:
    def test_tag_allowed_in_terminal_phase(self):
        assert validate_completion("Grazie. INTERVIEW_COMPLETED", Phase.FINAL_GOODBYE).is_valid

    def test_tag_rejected_before_the_end(self):
        result = validate_completion("Grazie. INTERVIEW_COMPLETED", Phase.DEEP_OFFER)
        assert result.layer == GateLayer.COMPLETION_GUARD
        assert result.reason == REASON_COMPLETION

    def test_missing_fields_are_named(self):
        result = validate_completion(
            "Tutto chiaro? INTERVIEW_COMPLETED", Phase.DATA_COLLECTION, has_all_data=False
        )
        assert result.reason == f"{REASON_COMPLETION} (required fields missing)"


class TestRunPostProcessing:
    def test_short_circuits_on_first_failure(self):
        result = run_post_processing("Arrivederci! INTERVIEW_COMPLETED", Phase.EXPLORE, "it")
        assert result.layer == GateLayer.CLOSURE_GUARD

    def test_duplicate_of_recent_question(self):
        result = run_post_processing(
            "Come gestite i fornitori?",
            Phase.DEEPEN,
            "it",
            recent_questions=["Come gestite i fornitori?"],
        )
        assert result.layer == GateLayer.DUPLICATE_DETECTOR
        assert result.reason.startswith(REASON_DUPLICATE)

    def test_data_phase_completion_guard(self):
        result = run_post_processing(
            "Mi confermi l'email? INTERVIEW_COMPLETED", Phase.DATA_COLLECTION, "it"
        )
        assert result.layer == GateLayer.COMPLETION_GUARD

    def test_valid_offer_passes(self):
        result = run_post_processing(
            "Would you like to continue for a few more minutes?", Phase.DEEP_OFFER, "en"
        )
        assert result.is_valid
        assert result.layer is None
