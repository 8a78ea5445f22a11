"""
Classification prompts: respondent intent and single-field extraction.

Both are small deterministic calls (temperature 0 in the routing config)
returning one JSON object.
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field

IntentContext = Literal["consent", "deep_offer"]


class IntentOutput(BaseModel):
    intent: Literal["ACCEPT", "REFUSE", "NEUTRAL"]
    reason: str = ""


class FieldExtractionOutput(BaseModel):
    extracted_value: Optional[str] = Field(
        default=None, description="Value found in the message, or null"
    )
    confidence: Literal["high", "low", "none"] = "none"


_CONTEXT_QUESTIONS = {
    "consent": "The system asked for contact details. Did the user agree?",
    "deep_offer": (
        "The system asked whether the user wants to EXTEND the interview by a few "
        "minutes to continue. Did the user accept?"
    ),
}

_CLASSIFICATION_HINTS = {
    "consent": (
        "ACCEPT = user agrees to share contact details; REFUSE = user declines; "
        "NEUTRAL = unrelated"
    ),
    "deep_offer": (
        "ACCEPT = user explicitly agrees to extend/continue; REFUSE = user declines "
        "extension; NEUTRAL = unrelated or just answers content"
    ),
}

FIELD_DESCRIPTIONS = {
    "name": ("Nome della persona (può essere solo nome, o nome e cognome)",
             "Name of the person (can be first name only, or full name)"),
    "full_name": ("Nome della persona (può essere solo nome, o nome e cognome)",
                  "Name of the person (can be first name only, or full name)"),
    "email": ("Indirizzo email", "Email address"),
    "phone": ("Numero di telefono", "Phone number"),
    "company": ("Nome dell'azienda o organizzazione", "Company or organization name"),
    "linkedin": ("URL del profilo LinkedIn o social", "LinkedIn or social profile URL"),
    "portfolio": ("URL del portfolio o sito web personale", "Portfolio or personal website URL"),
    "role": ("Ruolo o posizione lavorativa", "Job role or position"),
    "location": ("Città o località", "City or location"),
}

_FIELD_RULES = {
    "name": (
        '- For name: Accept first name only (e.g., "Marco", "Anna"). Don\'t require '
        "full name.\n- If the message contains a word that looks like a name, extract it."
    ),
    "company": (
        "- For company: Look for business names, often ending in spa, srl, ltd, inc, "
        "llc.\n- Extract the company name even if mixed with other info."
    ),
    "role": (
        "- For role: Look for job titles like CEO, CTO, manager, developer, designer.\n"
        "- Extract the role even if mixed with other info."
    ),
}


def get_intent_prompt(message: str, language: str, context: IntentContext) -> str:
    return "\n".join(
        [
            _CONTEXT_QUESTIONS[context],
            f"Language: {language}",
            f'User message: "{message}"',
            "",
            f"Classify intent. {_CLASSIFICATION_HINTS[context]}.",
        ]
    )


def get_field_extraction_prompt(
    field_name: str, message: str, language: str, description: Optional[str] = None
) -> str:
    italian = language.lower().startswith("it")
    key = "name" if field_name in ("name", "full_name") else field_name
    if description is None and field_name in FIELD_DESCRIPTIONS:
        description = FIELD_DESCRIPTIONS[field_name][0 if italian else 1]
    rules = [
        "- Return null if not found",
        "- Do NOT infer name from email address",
        "- For email: look for xxx@xxx.xxx pattern",
        "- For phone: look for numeric sequences",
    ]
    if key in _FIELD_RULES:
        rules.append(_FIELD_RULES[key])
    return (
        f'Extract "{field_name}" ({description or field_name}) from: "{message}"\n\n'
        "Rules:\n" + "\n".join(rules) + "\n"
        'confidence: "high" when the value is explicit, "low" when partial or '
        'uncertain, "none" when absent.'
    )
