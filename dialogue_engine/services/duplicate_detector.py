"""
Near-duplicate question detection.

A candidate assistant message is reduced to its primary (last) question and
compared with every question in recent assistant history, most recent
first. Two rules flag a repeat:

- high_similarity: both questions carry enough informative tokens and
  either token Jaccard or character-trigram Dice is above threshold
  (catches rephrasing with synonyms);
- same_prefix: both start with the same informative tokens and Jaccard
  clears a lower bar (catches a stem that was merely truncated or
  extended).

Normalized-identical questions short-circuit as `exact` with similarity 1.
"""

import re
from typing import List, Optional, Sequence

import structlog

from dialogue_engine.core.config import DuplicateThresholds, engine_config
from dialogue_engine.domain.models.conversation import Message, Role
from dialogue_engine.domain.models.post_processing import (
    DuplicateMatchReason,
    DuplicateQuestionMatch,
)
from dialogue_engine.services.similarity import (
    jaccard,
    ngram_dice,
    normalize,
    shares_prefix,
    tokenize,
)

log = structlog.get_logger(__name__)

_SENTENCE_END = re.compile(r"[.!]")
_WHITESPACE = re.compile(r"\s+")


def extract_questions(text: str) -> List[str]:
    """Question clauses of text, in order.

    Splits on '?' and keeps the trailing sentence of each chunk, so
    "Thanks. How do you do it? And why?" yields
    ["How do you do it?", "And why?"].
    """
    compact = _WHITESPACE.sub(" ", text or "").strip()
    if "?" not in compact:
        return []

    # Text after the last '?' is not a question
    chunks = compact.split("?")[:-1]
    questions = []
    for chunk in chunks:
        chunk = chunk.strip()
        if not chunk:
            continue
        sentences = [s.strip() for s in _SENTENCE_END.split(chunk) if s.strip()]
        clause = sentences[-1] if sentences else chunk
        questions.append(f"{clause}?")
    return questions


def primary_question(text: str) -> Optional[str]:
    """The last question clause of text, or None when it asks nothing."""
    questions = extract_questions(text)
    return questions[-1] if questions else None


def assistant_history(transcript: Sequence[Message]) -> List[str]:
    """Assistant message texts in transcript order."""
    return [m.text for m in transcript if m.role == Role.ASSISTANT]


def find_duplicate_match(
    candidate_text: str,
    past_assistant_messages: Sequence[str],
    language: str,
    thresholds: Optional[DuplicateThresholds] = None,
) -> DuplicateQuestionMatch:
    """
    Find the best near-repeat of the candidate's primary question.

    Args:
        candidate_text: Generated assistant message
        past_assistant_messages: Prior assistant messages, oldest first
        language: Conversation language (selects the stop-word set)
        thresholds: Override for the configured duplicate thresholds

    Returns:
        DuplicateQuestionMatch; is_duplicate False when the candidate asks
        no question or nothing in the history window is close enough
    """
    thresholds = thresholds or engine_config.duplicate

    candidate = primary_question(candidate_text)
    if candidate is None:
        return DuplicateQuestionMatch.no_match()

    candidate_norm = normalize(candidate)
    if not candidate_norm:
        return DuplicateQuestionMatch.no_match()
    candidate_tokens = tokenize(candidate, language)

    best = DuplicateQuestionMatch.no_match()
    window = list(past_assistant_messages)[-thresholds.history_window :]

    for message in reversed(window):
        for past_question in extract_questions(message):
            past_norm = normalize(past_question)
            if not past_norm:
                continue

            if past_norm == candidate_norm:
                return DuplicateQuestionMatch(
                    is_duplicate=True,
                    matched_question=past_question,
                    similarity=1.0,
                    reason=DuplicateMatchReason.EXACT,
                )

            past_tokens = tokenize(past_question, language)
            token_overlap = jaccard(candidate_tokens, past_tokens)
            dice = ngram_dice(candidate_norm, past_norm)
            informative = min(len(candidate_tokens), len(past_tokens))

            high_similarity = informative >= thresholds.min_informative_tokens and (
                token_overlap >= thresholds.jaccard or dice >= thresholds.dice
            )
            same_prefix = (
                shares_prefix(candidate_tokens, past_tokens, thresholds.prefix_tokens)
                and token_overlap >= thresholds.prefix_jaccard
            )
            if not (high_similarity or same_prefix):
                continue

            score = max(token_overlap, dice)
            if not best.is_duplicate or score > best.similarity:
                best = DuplicateQuestionMatch(
                    is_duplicate=True,
                    matched_question=past_question,
                    similarity=score,
                    reason=(
                        DuplicateMatchReason.SAME_PREFIX
                        if same_prefix
                        else DuplicateMatchReason.HIGH_SIMILARITY
                    ),
                )

    if best.is_duplicate:
        log.debug(
            "duplicate_question_found",
            reason=best.reason.value,
            similarity=round(best.similarity, 3),
        )
    return best
