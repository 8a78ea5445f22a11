"""Respondent intent after a yes/no question (extension offer, consent).

Short unambiguous answers are classified deterministically; the LLM is
asked only when the fast path is inconclusive. Clarification requests are
always NEUTRAL, and so is any LLM failure: a NEUTRAL answer is re-asked by
the phase machine rather than guessed.
"""

import re
from enum import Enum
from typing import Optional

import structlog

from dialogue_engine.core.exceptions import LLMError
from dialogue_engine.llm.client import LLMClient
from dialogue_engine.llm.prompts.formatting import is_clarification_signal
from dialogue_engine.llm.prompts.intent import IntentContext, IntentOutput, get_intent_prompt
from dialogue_engine.llm.structured import UsageCollector, generate_structured

log = structlog.get_logger(__name__)


class UserIntent(str, Enum):
    ACCEPT = "ACCEPT"
    REFUSE = "REFUSE"
    NEUTRAL = "NEUTRAL"


REFUSE_ANSWERS = frozenset(
    {
        "no", "no grazie", "direi di no", "anche no", "non ora", "meglio di no",
        "preferisco di no", "stop", "basta", "no thanks", "no thank you", "not now",
    }
)
ACCEPT_ANSWERS = frozenset(
    {
        "si", "sì", "yes", "ok", "va bene", "certo", "volentieri", "volontieri",
        "continuiamo", "proseguiamo", "andiamo avanti", "sure", "of course",
        "yes please", "go ahead",
    }
)

_REFUSE_PATTERN = re.compile(
    r"\b(non voglio continuare|non continuare|chiudiamo qui|fermiamoci|"
    r"preferisco chiudere|preferisco di no|i'?d rather not|let'?s stop|"
    r"i don'?t want to continue)\b",
    re.IGNORECASE,
)
_ACCEPT_PATTERN = re.compile(
    r"\b(voglio continuare|possiamo continuare|continuiamo|proseguiamo|"
    r"andiamo avanti|estendiamo|let'?s continue|happy to continue|i can continue)\b",
    re.IGNORECASE,
)
_PUNCT = re.compile(r"[!?.,;:()\[\]\"]")
_WHITESPACE = re.compile(r"\s+")


def normalize_answer(message: str) -> str:
    text = _PUNCT.sub(" ", (message or "").strip().lower())
    return _WHITESPACE.sub(" ", text).strip()


def fast_path_intent(message: str, language: str) -> Optional[UserIntent]:
    """Deterministic classification, or None when inconclusive."""
    normalized = normalize_answer(message)
    if not normalized:
        return UserIntent.NEUTRAL
    if normalized in REFUSE_ANSWERS:
        return UserIntent.REFUSE
    # exact short answers win over the "ok?" style clarification check
    if normalized in ACCEPT_ANSWERS:
        return UserIntent.ACCEPT
    if is_clarification_signal(message, language):
        return UserIntent.NEUTRAL
    if _REFUSE_PATTERN.search(normalized):
        return UserIntent.REFUSE
    if _ACCEPT_PATTERN.search(normalized):
        return UserIntent.ACCEPT
    return None


class IntentService:
    """Classifies answers to the extension offer and the consent question."""

    def __init__(
        self,
        llm_client: Optional[LLMClient] = None,
        usage_collector: Optional[UsageCollector] = None,
    ):
        self.llm = llm_client
        self.usage_collector = usage_collector

    async def classify(
        self, message: str, language: str, context: IntentContext
    ) -> UserIntent:
        """
        Classify a respondent answer.

        Args:
            message: Respondent message
            language: Conversation language
            context: "deep_offer" or "consent"

        Returns:
            UserIntent (NEUTRAL when undecidable)
        """
        intent = fast_path_intent(message, language)
        if intent is not None:
            log.debug("intent_fast_path", context=context, intent=intent.value)
            return intent

        if self.llm is None:
            return UserIntent.NEUTRAL

        try:
            output, _ = await generate_structured(
                self.llm,
                get_intent_prompt(message, language, context),
                IntentOutput,
                source=f"check_user_intent_{context}",
                temperature=0.0,
                usage_collector=self.usage_collector,
            )
        except LLMError as e:
            log.warning("intent_classification_failed", context=context, error=str(e))
            return UserIntent.NEUTRAL

        log.info(
            "intent_classified", context=context, intent=output.intent, reason=output.reason
        )
        return UserIntent(output.intent)
