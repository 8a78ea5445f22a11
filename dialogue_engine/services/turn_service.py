"""
Turn service: the single per-turn entry point of the dialogue engine.

produce_turn runs one strictly sequential pipeline:
1. classify the respondent's answer when the phase expects one
   (intent after offer/consent, extraction + validation after a field question)
2. advance the phase state machine
3. generate text for the decided action, gated by post-processing, with
   at most one regeneration and a deterministic fallback
4. evaluate quality and build the per-turn QualityTurnMetadata

Terminal turns use deterministic closing text carrying the completion tag,
which is stripped before the text is returned.
The engine keeps no state between calls.
"""

from typing import List, Optional, Sequence

import structlog

from dialogue_engine.core.config import EngineConfig, engine_config
from dialogue_engine.core.exceptions import InvalidPlanError, SessionCompletedError
from dialogue_engine.domain.models.conversation import ConversationState, Message, Role
from dialogue_engine.domain.models.phase import Phase
from dialogue_engine.domain.models.plan import InterviewPlan
from dialogue_engine.domain.models.post_processing import GateLayer, PostProcessingResult
from dialogue_engine.domain.models.quality import FlowFlags, QualityTurnMetadata, TurnQuality
from dialogue_engine.domain.models.turn import TurnResult
from dialogue_engine.domain.models.validation import FieldExtractionResult
from dialogue_engine.llm.prompts.data_collection import (
    fallback_consent_question,
    fallback_field_question,
)
from dialogue_engine.llm.prompts.fallbacks import closing_message, fallback_topic_question
from dialogue_engine.llm.prompts.formatting import (
    build_user_bridge_hint,
    collect_recent_bridge_stems,
    strip_completion_tag,
)
from dialogue_engine.services.duplicate_detector import assistant_history, primary_question
from dialogue_engine.services.field_extraction_service import FieldExtractionService
from dialogue_engine.services.field_validator import validate_extracted_field
from dialogue_engine.services.intent_service import IntentService, UserIntent
from dialogue_engine.services.phase_machine import (
    PhaseDecision,
    PhaseStateMachine,
    TurnAction,
    has_all_required_fields,
)
from dialogue_engine.services.post_processing import run_post_processing
from dialogue_engine.services.quality_evaluator import evaluate_turn_quality
from dialogue_engine.services.question_service import QuestionService, topic_cue
from dialogue_engine.services.regeneration import BoundedRegeneration, RegenerationOutcome

log = structlog.get_logger(__name__)


def last_user_message(transcript: Sequence[Message]) -> Optional[str]:
    """Text of the latest user message, if it comes after the last assistant turn."""
    for message in reversed(transcript):
        if message.role == Role.ASSISTANT:
            return None
        if message.role == Role.USER and message.text.strip():
            return message.text.strip()
    return None


def recent_questions(transcript: Sequence[Message], window: int) -> List[str]:
    """Primary questions of the last `window` assistant messages, oldest first."""
    questions = []
    for text in assistant_history(transcript)[-window:]:
        question = primary_question(text)
        if question:
            questions.append(question)
    return questions


def flow_flags_for(
    outcome: RegenerationOutcome, phase: Phase, has_all_data: bool
) -> FlowFlags:
    """Flow interventions implied by the gate failures of one turn."""
    flags = {}
    for failure in outcome.failures:
        if failure.layer == GateLayer.CLOSURE_GUARD:
            flags["topic_closure_intercepted"] = True
        if phase == Phase.DEEP_OFFER and failure.layer in (
            GateLayer.EXTENSION_OFFER_ENFORCER,
            GateLayer.COMPLETION_GUARD,
        ):
            flags["deep_offer_closure_intercepted"] = True
        if failure.layer == GateLayer.COMPLETION_GUARD:
            flags["completion_guard_intercepted"] = True
            if phase == Phase.DATA_COLLECTION_CONSENT:
                flags["completion_blocked_for_consent"] = True
            elif phase == Phase.DATA_COLLECTION and not has_all_data:
                flags["completion_blocked_for_missing_field"] = True
    return FlowFlags(**flags)


class DialogueEngine:
    """Produces one validated assistant turn per call."""

    def __init__(
        self,
        question_service: QuestionService,
        intent_service: Optional[IntentService] = None,
        field_extraction_service: Optional[FieldExtractionService] = None,
        config: Optional[EngineConfig] = None,
    ):
        """
        Args:
            question_service: Generator for questions, offers and data questions
            intent_service: Classifier of offer/consent answers (fast path
                only when omitted)
            field_extraction_service: Extractor for field answers; without it
                every field answer counts as no value
            config: Engine configuration (module default when omitted)
        """
        self.questions = question_service
        self.intents = intent_service or IntentService()
        self.extractor = field_extraction_service
        self.config = config or engine_config
        self.machine = PhaseStateMachine(self.config.limits)

    async def produce_turn(
        self,
        state: ConversationState,
        plan: InterviewPlan,
        transcript: Sequence[Message],
    ) -> TurnResult:
        """
        Produce the next assistant turn.

        Args:
            state: Conversation state after the respondent's last message
            plan: Interview plan
            transcript: Recent transcript slice, oldest first

        Returns:
            TurnResult with the text to send, the new state and quality metadata

        Raises:
            SessionCompletedError: If the conversation is already terminal
        """
        if state.is_completed:
            raise SessionCompletedError(
                f"Conversation {state.conversation_id} is already {state.phase.value}"
            )

        transcript = list(transcript)[-self.config.limits.transcript_window :]
        language = plan.language
        user_message = last_user_message(transcript)

        intent: Optional[UserIntent] = None
        field_result: Optional[FieldExtractionResult] = None
        if state.phase == Phase.DEEP_OFFER:
            intent = await self.intents.classify(user_message or "", language, "deep_offer")
        elif state.phase == Phase.DATA_COLLECTION_CONSENT:
            intent = await self.intents.classify(user_message or "", language, "consent")
        elif state.phase == Phase.DATA_COLLECTION and state.current_field:
            field_result = await self._validate_field_answer(state, plan, user_message)

        decision = self.machine.advance(
            state, plan, user_message=user_message, intent=intent, field_result=field_result
        )
        new_state = decision.state
        has_all_data = has_all_required_fields(new_state, plan)

        if decision.action in (TurnAction.FINAL_GOODBYE, TurnAction.COMPLETE_WITHOUT_DATA):
            return self._closing_turn(decision, plan)

        outcome = await self._generate(decision, plan, transcript, user_message, has_all_data)

        previous = assistant_history(transcript)[-1:]
        evaluation = evaluate_turn_quality(
            decision.phase,
            outcome.text,
            language,
            user_message=user_message,
            previous_assistant_text=previous[0] if previous else None,
        )
        metadata = QualityTurnMetadata(
            bot_id=state.bot_id,
            organization_id=state.organization_id,
            quality=TurnQuality(
                eligible=True,
                evaluated=True,
                score=evaluation.score,
                passed=evaluation.passed,
                gate_triggered=outcome.gate_triggered,
                regenerated=outcome.regenerated,
                fallback_used=outcome.fallback_used,
            ),
            flow_flags=flow_flags_for(outcome, decision.phase, has_all_data),
        )

        log.info(
            "turn_produced",
            conversation_id=state.conversation_id,
            action=decision.action.value,
            phase=decision.phase.value,
            topic_index=decision.topic_index,
            attempts=outcome.attempts,
            fallback_used=outcome.fallback_used,
            quality_score=evaluation.score,
        )

        return TurnResult(
            assistant_text=outcome.text,
            new_phase=decision.phase,
            new_topic_index=decision.topic_index,
            state=new_state,
            quality=metadata,
            is_completed=False,
            field_result=decision.field_result,
        )

    async def _validate_field_answer(
        self,
        state: ConversationState,
        plan: InterviewPlan,
        user_message: Optional[str],
    ) -> FieldExtractionResult:
        field = next(
            (f for f in plan.candidate_fields if f.name == state.current_field), None
        )
        if field is None:
            raise InvalidPlanError(f"Plan has no candidate field {state.current_field!r}")
        value, confidence = None, "none"
        if self.extractor is not None and user_message:
            value, confidence = await self.extractor.extract(
                state.current_field,
                user_message,
                plan.language,
                description=field.description,
            )
        return validate_extracted_field(
            state.current_field,
            value,
            confidence,
            attempt_number=max(state.field_attempts, 1),
            language=plan.language,
            max_attempts=self.config.limits.max_field_attempts,
            user_message=user_message,
        )

    async def _generate(
        self,
        decision: PhaseDecision,
        plan: InterviewPlan,
        transcript: Sequence[Message],
        user_message: Optional[str],
        has_all_data: bool,
    ) -> RegenerationOutcome:
        language = plan.language
        phase = decision.phase
        limits = self.config.limits

        if decision.action == TurnAction.ASK_EXTENSION_OFFER:
            return await self.questions.generate_extension_offer(
                language,
                plan.extension_preview_hints,
                max_attempts=limits.max_generation_attempts,
            )

        window = recent_questions(transcript, limits.recent_question_window)

        def validate(text: str) -> PostProcessingResult:
            return run_post_processing(
                text,
                phase,
                language,
                recent_questions=window,
                has_all_data=has_all_data,
                thresholds=self.config.duplicate,
            )

        if decision.action == TurnAction.ASK_TOPIC_QUESTION:
            topic = plan.topics[decision.topic_index]
            cue = topic_cue(topic, language)
            sub_goal = topic.sub_goal_for_turn(decision.state.turn_in_topic - 1)
            bridge_hint = build_user_bridge_hint(user_message, language) if user_message else None
            stems = collect_recent_bridge_stems(transcript)

            async def generate(hint: Optional[str]) -> str:
                return await self.questions.generate_question(
                    topic,
                    language,
                    sub_goal=sub_goal,
                    last_user_message=user_message,
                    previous_assistant_question=window[-1] if window else None,
                    bridge_hint=bridge_hint or None,
                    avoid_bridge_stems=stems,
                    transition_mode=decision.transition_mode,
                    regeneration_hint=hint,
                )

            def fallback() -> str:
                return fallback_topic_question(language, cue, decision.state.turn_count)

            source = "generate_question"

        elif decision.action == TurnAction.ASK_DATA_CONSENT:

            async def generate(hint: Optional[str]) -> str:
                return await self.questions.generate_consent_question(
                    language, reask=decision.reask, regeneration_hint=hint
                )

            def fallback() -> str:
                return fallback_consent_question(language, decision.reask)

            source = "generate_consent_question"

        else:
            field = decision.field

            async def generate(hint: Optional[str]) -> str:
                return await self.questions.generate_field_question(
                    field,
                    language,
                    strategy=decision.strategy,
                    feedback=decision.feedback,
                    regeneration_hint=hint,
                )

            def fallback() -> str:
                return fallback_field_question(language, field, decision.feedback)

            source = "generate_field_question"

        regeneration = BoundedRegeneration(
            fallback_producer=fallback, max_attempts=limits.max_generation_attempts
        )
        return await regeneration.run(generate, validate, source=source)

    def _closing_turn(self, decision: PhaseDecision, plan: InterviewPlan) -> TurnResult:
        tagged = closing_message(decision.phase, plan.language)
        state = decision.state
        log.info(
            "conversation_completed",
            conversation_id=state.conversation_id,
            phase=decision.phase.value,
            collected_fields=sorted(state.collected_fields),
            skipped_fields=state.skipped_fields,
        )
        return TurnResult(
            assistant_text=strip_completion_tag(tagged),
            new_phase=decision.phase,
            new_topic_index=decision.topic_index,
            state=state,
            quality=QualityTurnMetadata(
                bot_id=state.bot_id, organization_id=state.organization_id
            ),
            is_completed=True,
            field_result=decision.field_result,
        )
