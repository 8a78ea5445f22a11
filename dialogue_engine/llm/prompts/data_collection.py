"""
Prompts and templates for the data-collection phases.

Consent: one yes/no question asking permission to collect contact
details. Field collection: one question per field, shaped by the
re-engagement strategy chosen after a failed attempt.
"""

from typing import Optional

from pydantic import BaseModel, Field

from dialogue_engine.domain.models.plan import CandidateField
from dialogue_engine.domain.models.validation import ReengagementStrategy
from dialogue_engine.services.similarity import is_italian


class ConsentQuestionOutput(BaseModel):
    question: str = Field(description="A single yes/no consent question ending with '?'")


class FieldQuestionOutput(BaseModel):
    question: str = Field(description="A single field collection question ending with '?'")


STRATEGY_INSTRUCTIONS = {
    ReengagementStrategy.EXPLAIN_BETTER: (
        "The previous answer could not be used. Briefly explain why this detail "
        "helps, then ask for it again."
    ),
    ReengagementStrategy.ASK_DIFFERENTLY: (
        "The previous answer was unclear. Ask for the same detail with "
        "different, simpler wording."
    ),
    ReengagementStrategy.GIVE_EXAMPLE: (
        "The previous answer had the wrong format. Include one short example of "
        "the expected format."
    ),
}


def field_label(field: CandidateField) -> str:
    return (field.description or field.name.replace("_", " ")).strip()


def get_consent_question_prompt(
    language: str, reask: bool = False, regeneration_hint: Optional[str] = None
) -> str:
    lines = [
        f"Language: {language}",
        "Task: Write a natural transition into data collection and ask exactly ONE "
        "yes/no question asking permission to collect contact details for follow-up.",
        "Structure: (1) one short linking sentence acknowledging content interview "
        "closure; (2) one yes/no consent question.",
        (
            "The user's previous reply was ambiguous: gently ask again for a clear "
            "yes or no."
            if reask
            else None
        ),
        "Do NOT ask for any specific field yet. Do NOT ask topic questions. Do NOT "
        "close the interview.",
        (
            f"Your previous draft was rejected ({regeneration_hint})."
            if regeneration_hint
            else None
        ),
        "Keep it natural and concise. End with exactly one question mark.",
    ]
    return "\n".join(line for line in lines if line)


def get_field_question_prompt(
    language: str,
    field: CandidateField,
    strategy: Optional[ReengagementStrategy] = None,
    feedback: Optional[str] = None,
    regeneration_hint: Optional[str] = None,
) -> str:
    lines = [
        f"Language: {language}",
        f"Target field to collect now: {field_label(field)}",
        STRATEGY_INSTRUCTIONS.get(strategy) if strategy else None,
        f'Feedback to convey naturally: "{feedback}"' if feedback else None,
        "Task: Ask exactly ONE concise question to collect this field only.",
        "Do NOT ask for other fields. Do NOT ask topic questions. Do NOT close the "
        "interview.",
        (
            f"Your previous draft was rejected ({regeneration_hint})."
            if regeneration_hint
            else None
        ),
        "Keep it natural and concise. End with exactly one question mark.",
    ]
    return "\n".join(line for line in lines if line)


def fallback_consent_question(language: str, reask: bool = False) -> str:
    if is_italian(language):
        if reask:
            return (
                "Solo per essere sicuro di aver capito: posso chiederti alcuni dati "
                "di contatto per un eventuale ricontatto?"
            )
        return (
            "Abbiamo concluso la parte di domande sui contenuti. Posso chiederti "
            "alcuni dati di contatto per un eventuale ricontatto?"
        )
    if reask:
        return (
            "Just to make sure I understood: may I ask for a few contact details "
            "so we can follow up?"
        )
    return (
        "We have covered the interview topics. May I ask for a few contact "
        "details so we can follow up?"
    )


def fallback_field_question(
    language: str, field: CandidateField, feedback: Optional[str] = None
) -> str:
    label = field_label(field)
    if is_italian(language):
        question = f"Puoi indicarmi {label}?"
    else:
        question = f"Could you share your {label}?"
    if feedback:
        return f"{feedback.rstrip('?.! ')}. {question}"
    return question
