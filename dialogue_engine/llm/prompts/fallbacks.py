"""Deterministic bilingual text for topic fallbacks and closing turns.

Topic fallbacks rotate by turn so consecutive fallbacks do not repeat.
Closing turns carry the completion tag; the turn service strips it
before the text reaches the respondent.
"""

from dialogue_engine.domain.models.phase import Phase
from dialogue_engine.llm.prompts.formatting import COMPLETION_TAG
from dialogue_engine.services.similarity import is_italian

TOPIC_FALLBACKS = {
    "it": [
        "Restando su {cue}, puoi raccontarmi un esempio concreto della tua esperienza?",
        "Pensando a {cue}, qual è l'aspetto che per te conta di più e perché?",
        "Su {cue}, cosa è cambiato per te nell'ultimo periodo?",
    ],
    "en": [
        "Staying on {cue}, could you share a concrete example from your experience?",
        "Thinking about {cue}, which aspect matters most to you, and why?",
        "About {cue}, what has changed for you recently?",
    ],
}

CLOSING_TEXT = {
    Phase.FINAL_GOODBYE: {
        "it": (
            "Grazie mille per il tempo e per le risposte che hai condiviso. "
            "L'intervista è conclusa."
        ),
        "en": (
            "Thank you very much for your time and the answers you shared. "
            "The interview is now complete."
        ),
    },
    Phase.COMPLETE_WITHOUT_DATA: {
        "it": (
            "Nessun problema, non raccoglieremo dati di contatto. Grazie ancora "
            "per il tempo dedicato all'intervista."
        ),
        "en": (
            "No problem, we will not collect any contact details. Thank you again "
            "for the time you gave to this interview."
        ),
    },
}


def fallback_topic_question(language: str, cue: str, turn_count: int = 0) -> str:
    templates = TOPIC_FALLBACKS["it" if is_italian(language) else "en"]
    return templates[turn_count % len(templates)].format(cue=cue)


def closing_message(phase: Phase, language: str) -> str:
    """Closing text for a terminal phase, with the completion tag appended.

    Raises:
        KeyError: If phase is not terminal
    """
    text = CLOSING_TEXT[phase]["it" if is_italian(language) else "en"]
    return f"{text} {COMPLETION_TAG}"
