"""Tests for prompt text helpers and deterministic texts."""

import pytest

from dialogue_engine.domain.models.conversation import Message, Role
from dialogue_engine.domain.models.phase import Phase
from dialogue_engine.domain.models.plan import CandidateField
from dialogue_engine.llm.prompts.data_collection import (
    fallback_consent_question,
    fallback_field_question,
)
from dialogue_engine.llm.prompts.extension_offer import (
    fallback_extension_offer,
    is_extension_offer_question,
)
from dialogue_engine.llm.prompts.fallbacks import closing_message, fallback_topic_question
from dialogue_engine.llm.prompts.formatting import (
    build_natural_topic_cue,
    build_user_bridge_hint,
    collect_recent_bridge_stems,
    extract_bridge_stem,
    is_clarification_signal,
    normalize_single_question,
    replace_literal_topic_title,
    strip_completion_tag,
)


class TestNormalizeSingleQuestion:
    def test_keeps_first_question_only(self):
        assert normalize_single_question("Come va? E poi?") == "Come va?"

    def test_adds_question_mark(self):
        assert normalize_single_question("Raccontami di più.") == "Raccontami di più?"

    def test_replaces_trailing_punctuation(self):
        assert normalize_single_question("Tell me more!!!") == "Tell me more?"


class TestTopicTitle:
    def test_literal_title_is_replaced_case_insensitively(self):
        text = "Parliamo di onboarding fornitori: cosa funziona?"
        result = replace_literal_topic_title(
            text, "Onboarding Fornitori", "come inserite nuovi fornitori"
        )
        assert "onboarding fornitori" not in result.lower()
        assert "come inserite nuovi fornitori" in result

    def test_natural_cue_never_quotes_the_label(self):
        assert build_natural_topic_cue("Team Rituals", "en") == "this aspect about rituals"
        assert build_natural_topic_cue("Il", "it") == "questo tema"


class TestCompletionTag:
    def test_strip(self):
        assert strip_completion_tag("Grazie. INTERVIEW_COMPLETED") == "Grazie."


class TestRespondentSignals:
    @pytest.mark.parametrize(
        "message,language",
        [
            ("non ho capito", "it"),
            ("Intendi il fornitore o il cliente?", "it"),
            ("What do you mean exactly", "en"),
            ("boh", "it"),
        ],
    )
    def test_clarification_requests(self, message, language):
        assert is_clarification_signal(message, language)

    def test_substantive_answer_is_not_clarification(self):
        assert not is_clarification_signal("Lavoro in logistica da dieci anni", "it")

    def test_bridge_hint_skips_clarifications(self):
        assert build_user_bridge_hint("non ho capito", "it") == ""
        assert "ritardi nei pagamenti" in build_user_bridge_hint(
            "I ritardi nei pagamenti ci bloccano", "it"
        )


class TestBridgeStems:
    def test_stem_is_first_clause(self):
        assert extract_bridge_stem("Capisco, e come lo gestite?") == "capisco"

    def test_distinct_stems_most_recent_first(self):
        transcript = [
            Message(role=Role.ASSISTANT, text="Capisco, come va?"),
            Message(role=Role.USER, text="Bene"),
            Message(role=Role.ASSISTANT, text="Chiaro, e poi?"),
            Message(role=Role.ASSISTANT, text="Capisco, e quindi?"),
        ]
        assert collect_recent_bridge_stems(transcript) == ["capisco", "chiaro"]


class TestDeterministicTexts:
    def test_topic_fallbacks_rotate(self):
        first = fallback_topic_question("it", "i fornitori", 0)
        second = fallback_topic_question("it", "i fornitori", 1)
        assert first != second
        assert first == fallback_topic_question("it", "i fornitori", 3)
        assert "i fornitori" in first and first.endswith("?")

    def test_closing_message_carries_tag(self):
        text = closing_message(Phase.FINAL_GOODBYE, "en")
        assert text.endswith("INTERVIEW_COMPLETED")
        assert "INTERVIEW_COMPLETED" not in strip_completion_tag(text)

    def test_closing_message_requires_terminal_phase(self):
        with pytest.raises(KeyError):
            closing_message(Phase.EXPLORE, "it")

    @pytest.mark.parametrize("language", ["it", "en"])
    def test_fallback_offer_is_recognized_offer(self, language):
        text = fallback_extension_offer(language, ["", "payment delays"])
        assert "payment delays" in text
        assert is_extension_offer_question(text, language)

    def test_fallback_data_questions(self):
        assert fallback_consent_question("it").endswith("ricontatto?")
        assert fallback_consent_question("en", reask=True).startswith("Just to make sure")
        question = fallback_field_question(
            "en", CandidateField(name="email"), feedback="Please enter a valid email."
        )
        assert question.startswith("Please enter a valid email. ")
        assert question.endswith("?")
