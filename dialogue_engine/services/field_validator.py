"""
Field-extraction validation.

Turns an extractor's (value, confidence) pair into a ValidationResponse:
a field is valid iff a non-empty value was extracted and confidence is
not "none". Failures carry a typed reason, bilingual feedback and the
recovery strategy picked by the re-engagement table.
"""

import re
from typing import Dict, List, Optional, Pattern, Union

import structlog

from dialogue_engine.domain.models.validation import (
    ConfidenceLevel,
    FieldExtractionResult,
    FieldType,
    ValidationFailureReason,
    ValidationResponse,
)
from dialogue_engine.services.reengagement import select_strategy
from dialogue_engine.services.similarity import is_italian

log = structlog.get_logger(__name__)

R = ValidationFailureReason

FEEDBACK_MESSAGES: Dict[ValidationFailureReason, Dict[str, str]] = {
    R.EMAIL_INVALID_FORMAT: {
        "it": "Per favore, inserisci un indirizzo email valido (ad esempio: nome@dominio.com)",
        "en": "Please enter a valid email address (for example: name@domain.com)",
    },
    R.EMAIL_INCOMPLETE: {
        "it": "L'indirizzo email sembra incompleto. Puoi fornire l'email completa?",
        "en": "The email address seems incomplete. Could you provide the complete email?",
    },
    R.PHONE_INVALID_FORMAT: {
        "it": "Per favore, inserisci un numero di telefono valido con almeno 10 cifre",
        "en": "Please enter a valid phone number with at least 10 digits",
    },
    R.URL_INVALID_FORMAT: {
        "it": "Per favore, inserisci un URL valido (ad esempio: https://www.sito.com)",
        "en": "Please enter a valid URL (for example: https://www.site.com)",
    },
    R.FIELD_NO_VALUE_EXTRACTED: {
        "it": "Non sono riuscito a estrarre il valore dal tuo messaggio. Puoi riprovare?",
        "en": "I couldn't extract a value from your message. Could you try again?",
    },
    R.INTENT_UNCLEAR: {
        "it": "La tua risposta non è del tutto chiara. Puoi fornire più dettagli?",
        "en": "Your response isn't quite clear. Could you provide more details?",
    },
    R.INTENT_NEUTRAL: {
        "it": "La tua risposta non sembra dare una risposta diretta. Puoi essere più specifico?",
        "en": "Your response doesn't seem to give a direct answer. Could you be more specific?",
    },
    R.RESPONSE_TOO_BRIEF: {
        "it": "La tua risposta è troppo breve. Puoi fornire maggiori informazioni?",
        "en": "Your response is too brief. Could you provide more information?",
    },
    R.CLARIFICATION_NEEDED: {
        "it": "Abbiamo bisogno di chiarimenti sulla tua risposta. Puoi spiegare meglio?",
        "en": "We need clarification on your response. Could you explain better?",
    },
    R.USER_SKIP_REQUESTED: {
        "it": "Hai richiesto di saltare questo campo.",
        "en": "You requested to skip this field.",
    },
}

FALLBACK_FEEDBACK = {
    "it": "Per favore, fornisci una risposta valida.",
    "en": "Please provide a valid response.",
}

_FIELD_TYPE_KEYWORDS = [
    (FieldType.EMAIL, ("email", "e-mail", "mail")),
    (FieldType.PHONE, ("phone", "telefono", "cellulare", "mobile", "whatsapp", "tel")),
    (FieldType.URL, ("url", "website", "sito", "site", "linkedin", "web")),
]

_FORMAT_REASON = {
    FieldType.PHONE: R.PHONE_INVALID_FORMAT,
    FieldType.URL: R.URL_INVALID_FORMAT,
}

SKIP_PATTERNS: Dict[str, List[Pattern[str]]] = {
    "it": [
        re.compile(r"\bnon\s+(ce\s+l'?\s*ho|ne\s+ho|lo\s+ho|la\s+ho)\b"),
        re.compile(
            r"\bnon\s+ho\s+(un[ao]?\s+|un'|l'|il\s+|la\s+|lo\s+)?"
            r"(e-?mail|mail|telefono|numero|cellulare|sito|profilo|linkedin|indirizzo)"
        ),
        re.compile(r"\b(preferisco|preferirei)\s+(di\s+)?non\b"),
        re.compile(r"\bnon\s+(voglio|vorrei|posso)\s+(dar|fornir|lasciar|condivider|indicar)"),
        re.compile(r"\b(salta|saltiamo|saltare|passo)\b"),
    ],
    "en": [
        re.compile(r"\bi\s+(do\s+not|don'?t|dont)\s+have\b"),
        re.compile(r"\b(i'?d\s+)?(rather|prefer)\s+not\b"),
        re.compile(r"\b(don'?t|do\s+not)\s+want\s+to\s+(share|give|provide)\b"),
        re.compile(r"\b(skip|pass)\b"),
    ],
}


def _lang(language: str) -> str:
    return "it" if is_italian(language) else "en"


def field_type_for(field_name: str) -> FieldType:
    """Infer the semantic type of a field from its name."""
    name = (field_name or "").lower()
    for field_type, keywords in _FIELD_TYPE_KEYWORDS:
        if any(keyword in name for keyword in keywords):
            return field_type
    return FieldType.TEXT


def generate_validation_feedback(
    reason: Optional[ValidationFailureReason], language: str
) -> str:
    """User-facing feedback for a failure reason (fixed it/en table)."""
    lang = _lang(language)
    if reason is not None and reason in FEEDBACK_MESSAGES:
        return FEEDBACK_MESSAGES[reason][lang]
    return FALLBACK_FEEDBACK[lang]


def check_skip_intent(message: str, language: str) -> bool:
    """True when the respondent explicitly declines to give the value.

    Independent of extraction confidence.
    """
    text = (message or "").strip().lower()
    if not text:
        return False
    return any(pattern.search(text) for pattern in SKIP_PATTERNS[_lang(language)])


def _failure_reason(
    field_type: FieldType, value: Optional[str]
) -> ValidationFailureReason:
    if value is None:
        return R.FIELD_NO_VALUE_EXTRACTED
    if field_type == FieldType.EMAIL:
        local, at, domain = value.partition("@")
        if at and local and "." not in domain:
            return R.EMAIL_INCOMPLETE
        return R.EMAIL_INVALID_FORMAT
    if field_type in _FORMAT_REASON:
        return _FORMAT_REASON[field_type]
    if len(value) < 2:
        return R.RESPONSE_TOO_BRIEF
    return R.CLARIFICATION_NEEDED


def validate_extracted_field(
    field_name: str,
    extracted_value: Optional[str],
    confidence: Union[ConfidenceLevel, str],
    attempt_number: int,
    language: str,
    max_attempts: int = 2,
    user_message: Optional[str] = None,
) -> FieldExtractionResult:
    """
    Validate one extraction attempt and pick the recovery strategy.

    Args:
        field_name: Candidate field being collected
        extracted_value: Value returned by the extractor (None if nothing)
        confidence: Extractor confidence ("high" | "low" | "none")
        attempt_number: 1-based attempt on this field
        language: Conversation language for feedback text
        max_attempts: Attempts allowed before skipping
        user_message: Raw respondent message; an explicit opt-out in it
            turns a failed attempt into user_skip_requested

    Returns:
        FieldExtractionResult with a fresh ValidationResponse
    """
    confidence = ConfidenceLevel(confidence)
    field_type = field_type_for(field_name)
    value = extracted_value.strip() if extracted_value is not None else None
    if value == "":
        value = None

    is_valid = value is not None and confidence != ConfidenceLevel.NONE

    reason: Optional[ValidationFailureReason] = None
    feedback: Optional[str] = None
    if not is_valid:
        if user_message is not None and check_skip_intent(user_message, language):
            reason = R.USER_SKIP_REQUESTED
        else:
            reason = _failure_reason(field_type, value)
        feedback = generate_validation_feedback(reason, language)

    draft = ValidationResponse(
        is_valid=is_valid,
        reason=reason,
        confidence=confidence,
        feedback=feedback,
        attempt_number=attempt_number,
        max_attempts=max_attempts,
        extracted_value=value,
    )
    strategy = select_strategy(draft, attempt_number, max_attempts)
    response = draft.model_copy(update={"strategy": strategy})

    log.debug(
        "field_validated",
        field_name=field_name,
        field_type=field_type.value,
        is_valid=is_valid,
        reason=reason.value if reason else None,
        strategy=strategy.value,
        attempt=attempt_number,
    )

    return FieldExtractionResult(
        field_name=field_name,
        field_type=field_type,
        value=value if is_valid else None,
        validation=response,
    )
