"""
Stateless per-turn quality checks of one assistant message.

Six heuristic checks, no LLM call:
- avoids_closure: no farewell language or completion tag
- avoids_premature_contact: no contact request outside data collection
- deep_offer_intent: in DEEP_OFFER the message proposes to continue
- probing_when_user_is_brief: a specific probe after a reply of 5 words or less
- references_user_context: picks up a keyword of a reply longer than 8 words
- non_repetitive: differs from the previous assistant message

score is the share of passed checks (0-100); the turn passes when every
check passes.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dialogue_engine.domain.models.phase import Phase
from dialogue_engine.services.similarity import is_italian

CLOSURE_PATTERNS = {
    "it": re.compile(
        r"\b(arrivederci|buona giornata|buon lavoro|a presto|ci sentiamo|alla prossima|"
        r"buona fortuna)\b|INTERVIEW_COMPLETED",
        re.IGNORECASE,
    ),
    "en": re.compile(
        r"\b(goodbye|good-bye|have a great day|have a good day|farewell|see you soon|"
        r"all the best|bye bye)\b|INTERVIEW_COMPLETED",
        re.IGNORECASE,
    ),
}
CONTACT_PATTERNS = {
    "it": re.compile(
        r"\b(email|e-mail|telefono|cellulare|numero di (telefono|cellulare|contatto)|linkedin)\b",
        re.IGNORECASE,
    ),
    "en": re.compile(
        r"\b(email|e-mail|phone number|telephone|mobile number|linkedin)\b", re.IGNORECASE
    ),
}
CONTINUATION_PATTERNS = {
    "it": re.compile(
        r"\b(continu\w*|prosegu\w*|ancora qualche|ancora un po|altri minuti|pi[uù] minuti|"
        r"ulteriori domande|qualche domanda|qualche minuto|paio di minuti)\b",
        re.IGNORECASE,
    ),
    "en": re.compile(
        r"\b(continu\w*|keep going|a few more|few extra|some more questions|bit longer|"
        r"more minutes|a few questions)\b",
        re.IGNORECASE,
    ),
}
SPECIFIC_PROBE_PATTERNS = {
    "it": re.compile(
        r"\b(esempio|concreto|raccont\w+|in che modo|entrare nel dettaglio|nello specifico)\b",
        re.IGNORECASE,
    ),
    "en": re.compile(
        r"\b(example|specific|concret\w*|tell me (more about|how)|in what way|"
        r"walk me through|detail)\b",
        re.IGNORECASE,
    ),
}

ISSUES = {
    "avoids_closure": (
        "Chiude prematuramente l'intervista in una fase topic.",
        "Closes the interview prematurely in a topic phase.",
    ),
    "avoids_premature_contact": (
        "Richiede dati di contatto fuori dalla fase DATA_COLLECTION.",
        "Requests contact data outside DATA_COLLECTION phase.",
    ),
    "deep_offer_intent": (
        "In DEEP_OFFER deve proporre continuazione, non porre una domanda topic.",
        "In DEEP_OFFER must offer to continue, not ask a topic question.",
    ),
    "probing_when_user_is_brief": (
        "Risposta breve dell'utente richiede probing specifico, non domanda generica.",
        "Brief user response requires specific probing, not a generic question.",
    ),
    "references_user_context": (
        "Non aggancia chiaramente alla risposta dell'utente.",
        "Does not clearly anchor to the user's response.",
    ),
    "non_repetitive": (
        "Domanda identica a quella precedente.",
        "Question is identical to the previous one.",
    ),
}

BRIEF_REPLY_WORDS = 5
SUBSTANTIAL_REPLY_WORDS = 8
MIN_KEYWORD_LENGTH = 4


@dataclass
class QualityEvaluation:
    passed: bool
    score: int
    checks: Dict[str, bool]
    issues: List[str] = field(default_factory=list)


def _normalize(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").lower()).strip()


def _keywords(text: str) -> List[str]:
    words = (re.sub(r"[^\w]", "", w) for w in _normalize(text).split(" "))
    return [w for w in words if len(w) >= MIN_KEYWORD_LENGTH]


def evaluate_turn_quality(
    phase: Phase,
    assistant_text: str,
    language: str,
    user_message: Optional[str] = None,
    previous_assistant_text: Optional[str] = None,
) -> QualityEvaluation:
    """Run the six checks on one assistant message."""
    key = "it" if is_italian(language) else "en"
    is_data = phase.is_data_phase
    is_offer = phase == Phase.DEEP_OFFER
    user_words = len(_normalize(user_message or "").split()) if user_message else 0
    exempt = is_data or is_offer or not user_message

    if exempt or user_words > BRIEF_REPLY_WORDS:
        probing = True
    else:
        probing = SPECIFIC_PROBE_PATTERNS[key].search(assistant_text) is not None

    if exempt or user_words <= SUBSTANTIAL_REPLY_WORDS:
        references = True
    else:
        lowered = _normalize(assistant_text)
        references = any(kw in lowered for kw in _keywords(user_message or ""))

    checks = {
        "avoids_closure": CLOSURE_PATTERNS[key].search(assistant_text) is None,
        "avoids_premature_contact": is_data
        or CONTACT_PATTERNS[key].search(assistant_text) is None,
        "deep_offer_intent": not is_offer
        or CONTINUATION_PATTERNS[key].search(assistant_text) is not None,
        "probing_when_user_is_brief": probing,
        "references_user_context": references,
        "non_repetitive": not previous_assistant_text
        or _normalize(assistant_text) != _normalize(previous_assistant_text),
    }

    index = 0 if key == "it" else 1
    issues = [ISSUES[name][index] for name, ok in checks.items() if not ok]
    score = round(sum(checks.values()) / len(checks) * 100)
    return QualityEvaluation(passed=not issues, score=score, checks=checks, issues=issues)
