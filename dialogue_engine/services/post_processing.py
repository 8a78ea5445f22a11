"""
Post-generation validation: five gate layers applied by phase.

1. closure guard (EXPLORE, DEEPEN): a question, no goodbye, no completion
   tag, no contact request, no promotion or link
2. duplicate detector (EXPLORE, DEEPEN): not a repeat of recent questions
3. extension-offer enforcer (DEEP_OFFER): a question with continuation wording
4. data-collection enforcer (DATA_COLLECTION_CONSENT, DATA_COLLECTION): a question
5. completion guard (all phases): completion tag only in terminal phases

run_post_processing short-circuits on the first failing layer.
"""

import re
from typing import Optional, Sequence

import structlog

from dialogue_engine.core.config import DuplicateThresholds
from dialogue_engine.domain.models.phase import Phase
from dialogue_engine.domain.models.post_processing import GateLayer, PostProcessingResult
from dialogue_engine.llm.prompts.formatting import has_completion_tag, lang_key
from dialogue_engine.services.duplicate_detector import find_duplicate_match

log = structlog.get_logger(__name__)

GOODBYE_PATTERNS = {
    "it": re.compile(
        r"\b(arrivederci|addio|a presto|ci vediamo|ciao|saluto|chiuso|finito)\b",
        re.IGNORECASE,
    ),
    "en": re.compile(
        r"\b(goodbye|farewell|see you|bye|closed|finished|signing off)\b",
        re.IGNORECASE,
    ),
}

CONTACT_PATTERNS = {
    "it": re.compile(
        r"\b(email|telefono|numero|whatsapp|linkedin|contatto|indirizzo|messaggio)\b",
        re.IGNORECASE,
    ),
    "en": re.compile(
        r"\b(email|phone|number|whatsapp|linkedin|contact|address|message)\b",
        re.IGNORECASE,
    ),
}

PROMO_PATTERN = re.compile(
    r"https?://|www\.|\b(link|promozione|discount|offerta|sconto|check out|visit)\b",
    re.IGNORECASE,
)

CONTINUATION_PATTERNS = {
    "it": re.compile(r"continuar|proseguir|allungare|estender|altre|minuti|ancora", re.IGNORECASE),
    "en": re.compile(r"continue|extend|longer|more|minutes|further|still", re.IGNORECASE),
}

REASON_TOPIC_CLOSURE = "Invalid topic phase closure"
REASON_DUPLICATE = "Duplicate question detected"
REASON_EXTENSION_OFFER = "Invalid extension offer"
REASON_DATA_COLLECTION = "No question in data collection"
REASON_COMPLETION = "INTERVIEW_COMPLETED in non-final phase"


def validate_topic_phase_closure(text: str, language: str) -> PostProcessingResult:
    """Layer 1: closure guard."""
    key = lang_key(language)
    text = text or ""
    if (
        "?" not in text
        or GOODBYE_PATTERNS[key].search(text)
        or has_completion_tag(text)
        or CONTACT_PATTERNS[key].search(text)
        or PROMO_PATTERN.search(text)
    ):
        return PostProcessingResult.failed(GateLayer.CLOSURE_GUARD, REASON_TOPIC_CLOSURE)
    return PostProcessingResult.passed()


def check_duplicate_question(
    text: str,
    recent_questions: Sequence[str],
    language: str,
    thresholds: Optional[DuplicateThresholds] = None,
) -> PostProcessingResult:
    """Layer 2: duplicate detector over the given recent questions."""
    match = find_duplicate_match(text, recent_questions, language, thresholds)
    if match.is_duplicate:
        return PostProcessingResult.failed(
            GateLayer.DUPLICATE_DETECTOR,
            f"{REASON_DUPLICATE} ({match.reason.value}, {match.similarity:.2f})",
        )
    return PostProcessingResult.passed()


def validate_extension_offer(text: str, language: str) -> PostProcessingResult:
    """Layer 3: extension-offer enforcer."""
    text = text or ""
    if "?" not in text or not CONTINUATION_PATTERNS[lang_key(language)].search(text):
        return PostProcessingResult.failed(
            GateLayer.EXTENSION_OFFER_ENFORCER, REASON_EXTENSION_OFFER
        )
    return PostProcessingResult.passed()


def validate_data_collection(text: str, phase: Phase) -> PostProcessingResult:
    """Layer 4: data-collection enforcer."""
    if not phase.is_data_phase:
        return PostProcessingResult.passed()
    if "?" not in (text or ""):
        return PostProcessingResult.failed(
            GateLayer.DATA_COLLECTION_ENFORCER, REASON_DATA_COLLECTION
        )
    return PostProcessingResult.passed()


def validate_completion(
    text: str, phase: Phase, has_all_data: bool = False
) -> PostProcessingResult:
    """Layer 5: completion guard."""
    if not has_completion_tag(text):
        return PostProcessingResult.passed()
    if phase.is_terminal:
        return PostProcessingResult.passed()
    reason = REASON_COMPLETION
    if phase == Phase.DATA_COLLECTION and not has_all_data:
        reason = f"{REASON_COMPLETION} (required fields missing)"
    return PostProcessingResult.failed(GateLayer.COMPLETION_GUARD, reason)


def run_post_processing(
    text: str,
    phase: Phase,
    language: str,
    recent_questions: Sequence[str] = (),
    has_all_data: bool = False,
    thresholds: Optional[DuplicateThresholds] = None,
) -> PostProcessingResult:
    """
    Apply the gate layers for a phase and return the first failure.

    Args:
        text: Candidate assistant message
        phase: Phase the message is generated for
        language: Conversation language
        recent_questions: Recent assistant questions (duplicate gate window)
        has_all_data: Whether every required field has been collected
        thresholds: Duplicate thresholds override

    Returns:
        PostProcessingResult (passed, or the first failing layer)
    """
    checks = []
    if phase.is_topic_phase:
        checks.append(lambda: validate_topic_phase_closure(text, language))
        checks.append(
            lambda: check_duplicate_question(text, recent_questions, language, thresholds)
        )
    if phase == Phase.DEEP_OFFER:
        checks.append(lambda: validate_extension_offer(text, language))
    if phase.is_data_phase:
        checks.append(lambda: validate_data_collection(text, phase))
    checks.append(lambda: validate_completion(text, phase, has_all_data))

    for check in checks:
        result = check()
        if not result.is_valid:
            log.info(
                "post_processing_failed",
                phase=phase.value,
                layer=result.layer.value if result.layer else None,
                reason=result.reason,
            )
            return result
    return PostProcessingResult.passed()
