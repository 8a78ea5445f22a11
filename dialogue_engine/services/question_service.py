"""Question and offer generation for the dialogue engine.

Every entry point issues one structured-output LLM call producing a single
text field, then post-processes the raw text into one normalized question:
- topic questions (EXPLORE / DEEPEN)
- the extension offer (DEEP_OFFER), validated as a recognizable offer and
  replaced by the bilingual template after two failed attempts
- the data-collection consent question
- one field-collection question per candidate field

Token usage of every call is reported through the injected usage collector,
tagged by call site and model.
"""

from typing import List, Optional

import structlog

from dialogue_engine.domain.models.phase import Phase
from dialogue_engine.domain.models.plan import CandidateField, Topic
from dialogue_engine.domain.models.post_processing import GateLayer, PostProcessingResult
from dialogue_engine.domain.models.validation import ReengagementStrategy
from dialogue_engine.llm.client import LLMClient
from dialogue_engine.llm.prompts.data_collection import (
    ConsentQuestionOutput,
    FieldQuestionOutput,
    get_consent_question_prompt,
    get_field_question_prompt,
)
from dialogue_engine.llm.prompts.extension_offer import (
    ExtensionOfferOutput,
    fallback_extension_offer,
    get_extension_offer_prompt,
    is_extension_offer_question,
)
from dialogue_engine.llm.prompts.formatting import (
    build_natural_topic_cue,
    normalize_single_question,
    replace_literal_topic_title,
)
from dialogue_engine.llm.prompts.question import (
    QUESTION_SYSTEM_PROMPT,
    QuestionOutput,
    TransitionMode,
    get_question_prompt,
)
from dialogue_engine.llm.structured import UsageCollector, generate_structured
from dialogue_engine.services.post_processing import (
    REASON_EXTENSION_OFFER,
    run_post_processing,
)
from dialogue_engine.services.regeneration import BoundedRegeneration, RegenerationOutcome

log = structlog.get_logger(__name__)


def topic_cue(topic: Topic, language: str) -> str:
    """User-facing wording for a topic."""
    return topic.cue.strip() or build_natural_topic_cue(topic.label, language)


class QuestionService:
    """Generates topic questions, extension offers and data-collection questions.

    The question client is required; offer and data clients default to it
    so a single client (or a test double) can serve every task.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        offer_client: Optional[LLMClient] = None,
        data_client: Optional[LLMClient] = None,
        usage_collector: Optional[UsageCollector] = None,
    ):
        """
        Args:
            llm_client: Client for topic questions (question_generation task)
            offer_client: Client for the extension offer
            data_client: Client for consent and field questions
            usage_collector: Receives one UsageEvent per LLM call
        """
        self.llm = llm_client
        self.offer_llm = offer_client or llm_client
        self.data_llm = data_client or llm_client
        self.usage_collector = usage_collector

    async def generate_question(
        self,
        topic: Topic,
        language: str,
        sub_goal: Optional[str] = None,
        last_user_message: Optional[str] = None,
        previous_assistant_question: Optional[str] = None,
        bridge_hint: Optional[str] = None,
        avoid_bridge_stems: Optional[List[str]] = None,
        transition_mode: Optional[TransitionMode] = None,
        regeneration_hint: Optional[str] = None,
    ) -> str:
        """Generate one topic question.

        The prompt carries the topic's natural cue; any leaked internal
        topic title in the output is replaced by that cue.

        Raises:
            LLMError: Provider chain exhausted or output not parseable
        """
        cue = topic_cue(topic, language)
        prompt = get_question_prompt(
            language=language,
            topic_label=topic.label,
            topic_cue=cue,
            sub_goal=sub_goal,
            last_user_message=last_user_message,
            previous_assistant_question=previous_assistant_question,
            bridge_hint=bridge_hint,
            avoid_bridge_stems=avoid_bridge_stems,
            transition_mode=transition_mode,
            require_acknowledgment=bool(last_user_message),
            regeneration_hint=regeneration_hint,
        )

        output, response = await generate_structured(
            self.llm,
            prompt,
            QuestionOutput,
            source="generate_question",
            system=QUESTION_SYSTEM_PROMPT,
            usage_collector=self.usage_collector,
        )

        question = normalize_single_question(
            replace_literal_topic_title(output.question, topic.label, cue)
        )
        log.info(
            "question_generated",
            topic=topic.label,
            transition_mode=transition_mode,
            regenerated=regeneration_hint is not None,
            question_length=len(question),
            latency_ms=response.latency_ms,
        )
        return question

    async def draft_extension_offer(
        self,
        language: str,
        extension_preview_hints: Optional[List[str]] = None,
        regeneration_hint: Optional[str] = None,
    ) -> str:
        """One LLM draft of the extension offer, without validation.

        Raises:
            LLMError: Provider chain exhausted or output not parseable
        """
        prompt = get_extension_offer_prompt(
            language, extension_preview_hints, regeneration_hint
        )
        output, response = await generate_structured(
            self.offer_llm,
            prompt,
            ExtensionOfferOutput,
            source="generate_extension_offer",
            system=QUESTION_SYSTEM_PROMPT,
            usage_collector=self.usage_collector,
        )
        log.debug("extension_offer_drafted", latency_ms=response.latency_ms)
        return (output.message or "").strip()

    async def generate_extension_offer(
        self,
        language: str,
        extension_preview_hints: Optional[List[str]] = None,
        max_attempts: int = 2,
    ) -> RegenerationOutcome:
        """
        Produce the extension offer, never failing.

        A draft must pass the DEEP_OFFER gates and be recognizable as an
        offer question. Two failed drafts (or provider errors) resolve to
        the bilingual template built from the first preview hint.

        Returns:
            RegenerationOutcome whose text is the offer
        """

        def validate(text: str) -> PostProcessingResult:
            verdict = run_post_processing(text, Phase.DEEP_OFFER, language)
            if not verdict.is_valid:
                return verdict
            if not is_extension_offer_question(text, language):
                return PostProcessingResult.failed(
                    GateLayer.EXTENSION_OFFER_ENFORCER, REASON_EXTENSION_OFFER
                )
            return verdict

        regeneration = BoundedRegeneration(
            fallback_producer=lambda: fallback_extension_offer(
                language, extension_preview_hints
            ),
            max_attempts=max_attempts,
        )
        return await regeneration.run(
            lambda hint: self.draft_extension_offer(
                language, extension_preview_hints, hint
            ),
            validate,
            source="generate_extension_offer",
        )

    async def generate_consent_question(
        self,
        language: str,
        reask: bool = False,
        regeneration_hint: Optional[str] = None,
    ) -> str:
        """Generate the yes/no consent question for data collection.

        Raises:
            LLMError: Provider chain exhausted or output not parseable
        """
        output, _ = await generate_structured(
            self.data_llm,
            get_consent_question_prompt(language, reask, regeneration_hint),
            ConsentQuestionOutput,
            source="generate_consent_question",
            system=QUESTION_SYSTEM_PROMPT,
            usage_collector=self.usage_collector,
        )
        question = normalize_single_question(output.question)
        log.info("consent_question_generated", reask=reask)
        return question

    async def generate_field_question(
        self,
        field: CandidateField,
        language: str,
        strategy: Optional[ReengagementStrategy] = None,
        feedback: Optional[str] = None,
        regeneration_hint: Optional[str] = None,
    ) -> str:
        """Generate one question collecting a single field.

        Raises:
            LLMError: Provider chain exhausted or output not parseable
        """
        output, _ = await generate_structured(
            self.data_llm,
            get_field_question_prompt(
                language, field, strategy, feedback, regeneration_hint
            ),
            FieldQuestionOutput,
            source="generate_field_question",
            system=QUESTION_SYSTEM_PROMPT,
            usage_collector=self.usage_collector,
        )
        question = normalize_single_question(output.question)
        log.info(
            "field_question_generated",
            field_name=field.name,
            strategy=strategy.value if strategy else None,
        )
        return question
