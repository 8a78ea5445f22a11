"""Tests for near-duplicate question detection."""

from dialogue_engine.core.config import DuplicateThresholds
from dialogue_engine.domain.models.post_processing import DuplicateMatchReason
from dialogue_engine.services.duplicate_detector import (
    extract_questions,
    find_duplicate_match,
    primary_question,
)


class TestExtractQuestions:
    def test_keeps_trailing_sentence_of_each_question(self):
        assert extract_questions("Thanks. How do you do it? And why?") == [
            "How do you do it?",
            "And why?",
        ]

    def test_text_after_last_question_mark_is_ignored(self):
        assert extract_questions("What is it? Tell me more") == ["What is it?"]

    def test_no_question(self):
        assert extract_questions("Thank you for sharing.") == []
        assert primary_question("Thank you for sharing.") is None

    def test_primary_question_is_the_last_one(self):
        text = "Grazie. Da quanto lavori lì? E come ti trovi?"
        assert primary_question(text) == "E come ti trovi?"


class TestFindDuplicateMatch:
    def test_exact_match_after_normalization(self):
        match = find_duplicate_match(
            "Come gestite i fornitori?",
            ["Grazie! Come gestite i Fornitori?"],
            "it",
        )
        assert match.is_duplicate
        assert match.reason == DuplicateMatchReason.EXACT
        assert match.similarity == 1.0

    def test_same_prefix_rephrasing(self):
        match = find_duplicate_match(
            "How does your team usually prepare weekly planning meetings with stakeholders?",
            ["How does your team usually prepare the weekly planning meetings with stakeholders?"],
            "en",
        )
        assert match.is_duplicate
        assert match.reason == DuplicateMatchReason.SAME_PREFIX

    def test_short_italian_rephrasing_is_duplicate(self):
        match = find_duplicate_match(
            "Come gestite oggi il supporto clienti?",
            ["Come gestite oggi il supporto ai clienti?"],
            "it",
        )
        assert match.is_duplicate
        assert match.reason in (
            DuplicateMatchReason.SAME_PREFIX,
            DuplicateMatchReason.HIGH_SIMILARITY,
        )

    def test_same_prefix_needs_no_informative_token_minimum(self):
        # too few informative tokens for high_similarity; the prefix rule still applies
        thresholds = DuplicateThresholds(min_informative_tokens=10)
        match = find_duplicate_match(
            "Come gestite oggi il supporto clienti?",
            ["Come gestite oggi il supporto ai clienti?"],
            "it",
            thresholds,
        )
        assert match.is_duplicate
        assert match.reason == DuplicateMatchReason.SAME_PREFIX

    def test_reordered_question_is_high_similarity(self):
        match = find_duplicate_match(
            "Which tools does your team use for weekly planning with stakeholders?",
            ["For weekly planning with stakeholders, which tools does your team use?"],
            "en",
        )
        assert match.is_duplicate
        assert match.reason == DuplicateMatchReason.HIGH_SIMILARITY
        assert match.similarity >= 0.72

    def test_unrelated_question_is_not_duplicate(self):
        match = find_duplicate_match(
            "What do you enjoy most about your job?",
            ["How do you plan vacations?"],
            "en",
        )
        assert not match.is_duplicate
        assert match.reason == DuplicateMatchReason.NONE

    def test_candidate_without_question(self):
        match = find_duplicate_match("Thanks for that.", ["Thanks for that?"], "en")
        assert not match.is_duplicate

    def test_only_history_window_is_scanned(self):
        thresholds = DuplicateThresholds(history_window=1)
        match = find_duplicate_match(
            "Come gestite i fornitori?",
            ["Come gestite i fornitori?", "Quali strumenti usate ogni giorno?"],
            "it",
            thresholds,
        )
        assert not match.is_duplicate
