"""
Phase state machine: decides what the next assistant turn does.

advance() is synchronous and pure: it receives the current state, the plan
and the already-classified respondent answer (intent after an offer or
consent question, validated field after a field question) and returns a
PhaseDecision carrying the next action and the updated state. Every phase
change goes through Phase.transition_to, so an edge outside the allowed
table raises instead of silently corrupting the conversation.

Flow:
    EXPLORE/DEEPEN  per topic while under its turn budget
    DEEP_OFFER      once, when scheduled time runs out (or topics end)
    accepted offer  deep-dive turns over the topics with uncovered sub-goals,
                    capped by max_extension_turns
    DATA_COLLECTION_CONSENT -> DATA_COLLECTION, one field at a time
    COMPLETE_WITHOUT_DATA | FINAL_GOODBYE (terminal)
"""

from enum import Enum
from typing import Dict, List, Optional, Tuple

import structlog
from pydantic import BaseModel

from dialogue_engine.core.config import EngineLimits
from dialogue_engine.core.exceptions import (
    InvalidPlanError,
    SessionCompletedError,
    ValidationError,
)
from dialogue_engine.domain.models.conversation import ConversationState
from dialogue_engine.domain.models.phase import Phase
from dialogue_engine.domain.models.plan import CandidateField, InterviewPlan, Topic
from dialogue_engine.domain.models.validation import (
    FieldExtractionResult,
    ReengagementStrategy,
)
from dialogue_engine.llm.prompts.question import TransitionMode
from dialogue_engine.services.intent_service import UserIntent
from dialogue_engine.services.similarity import tokenize

log = structlog.get_logger(__name__)


class TurnAction(str, Enum):
    ASK_TOPIC_QUESTION = "ASK_TOPIC_QUESTION"
    ASK_EXTENSION_OFFER = "ASK_EXTENSION_OFFER"
    ASK_DATA_CONSENT = "ASK_DATA_CONSENT"
    ASK_FIELD = "ASK_FIELD"
    COMPLETE_WITHOUT_DATA = "COMPLETE_WITHOUT_DATA"
    FINAL_GOODBYE = "FINAL_GOODBYE"


class PhaseDecision(BaseModel):
    """Next action plus the state the conversation moves to."""

    action: TurnAction
    state: ConversationState
    transition_mode: Optional[TransitionMode] = None
    reask: bool = False
    field: Optional[CandidateField] = None
    strategy: Optional[ReengagementStrategy] = None
    feedback: Optional[str] = None
    field_result: Optional[FieldExtractionResult] = None

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def topic_index(self) -> int:
        return self.state.topic_index


def transition_mode_for(
    user_message: Optional[str], plan: InterviewPlan, topic_index: int
) -> TransitionMode:
    """bridge when the respondent already touched the next topic."""
    topic = plan.topic_at(topic_index)
    if not user_message or topic is None:
        return "clean_pivot"
    topic_tokens = set(
        tokenize(" ".join([topic.label, topic.cue, *topic.sub_goals]), plan.language)
    )
    user_tokens = set(tokenize(user_message, plan.language))
    return "bridge" if topic_tokens & user_tokens else "clean_pivot"


def has_all_required_fields(state: ConversationState, plan: InterviewPlan) -> bool:
    return all(
        f.name in state.collected_fields for f in plan.candidate_fields if f.required
    )


def remaining_sub_goals(topic: Topic, asked: int) -> int:
    """Sub-goals not yet covered. A topic without sub-goals counts as one."""
    return max(0, max(1, len(topic.sub_goals)) - asked)


def build_deep_plan(
    plan: InterviewPlan,
    state: ConversationState,
    budget: int,
    fallback_topics: int = 2,
) -> Tuple[List[int], Dict[int, int]]:
    """
    Order topics for the deep dive and give each a turn budget.

    Topics with uncovered sub-goals come first, most remaining first and then
    in plan order. Each gets one turn; extra turns go round-robin up to the
    topic's uncovered sub-goals and max_turns. When every topic is covered,
    the current topic and the next ones in plan order share the budget.

    Args:
        plan: Interview plan
        state: Conversation state at the moment the offer is accepted
        budget: Total deep-dive turns (max_extension_turns)
        fallback_topics: Topics revisited when nothing is left uncovered

    Returns:
        (topic order, turns per topic); the turns never add up to more
        than budget
    """
    if budget <= 0 or not plan.topics:
        return [], {}

    remaining = {
        index: remaining_sub_goals(topic, state.topic_turns.get(index, 0))
        for index, topic in enumerate(plan.topics)
    }
    open_topics = [index for index, left in remaining.items() if left > 0]
    if open_topics:
        order = sorted(open_topics, key=lambda i: (-remaining[i], i))
        caps = {
            i: max(1, min(plan.topics[i].max_turns, remaining[i])) for i in order
        }
    else:
        order = sorted(remaining, key=lambda i: (i != state.topic_index, i))
        order = order[: max(1, fallback_topics)]
        caps = {i: budget for i in order}

    order = order[:budget]
    turns = {i: 1 for i in order}
    left = budget - len(order)
    while left > 0:
        allocated = False
        for index in order:
            if left <= 0:
                break
            if turns[index] < caps[index]:
                turns[index] += 1
                left -= 1
                allocated = True
        if not allocated:
            break
    return order, turns


def deep_schedule(state: ConversationState) -> List[int]:
    """Topic index of every planned deep-dive turn, in asking order."""
    return [
        index
        for index in state.deep_topic_order
        for _ in range(state.deep_turns_by_topic.get(index, 0))
    ]


class PhaseStateMachine:
    """Authoritative phase/topic progression of one conversation."""

    def __init__(self, limits: Optional[EngineLimits] = None):
        self.limits = limits or EngineLimits()

    def advance(
        self,
        state: ConversationState,
        plan: InterviewPlan,
        user_message: Optional[str] = None,
        intent: Optional[UserIntent] = None,
        field_result: Optional[FieldExtractionResult] = None,
    ) -> PhaseDecision:
        """
        Decide the next assistant turn.

        Args:
            state: Current conversation state (not mutated)
            plan: Interview plan
            user_message: Respondent's last message, if any
            intent: Classified answer when state.phase is DEEP_OFFER or
                DATA_COLLECTION_CONSENT
            field_result: Validated answer when state.phase is DATA_COLLECTION

        Returns:
            PhaseDecision with the updated state

        Raises:
            SessionCompletedError: If the conversation is already terminal
            IllegalPhaseTransitionError: If the state implies a disallowed edge
            InvalidPlanError: If the state points at a topic or field the plan
                does not have
            ValidationError: If DATA_COLLECTION is advanced without a field result
        """
        if state.phase.is_terminal:
            raise SessionCompletedError(
                f"Conversation {state.conversation_id} is already {state.phase.value}"
            )

        if plan.topic_at(state.topic_index) is None:
            raise InvalidPlanError(
                f"Topic index {state.topic_index} is outside a plan of "
                f"{len(plan.topics)} topics"
            )
        if state.current_field and state.current_field not in {
            f.name for f in plan.candidate_fields
        }:
            raise InvalidPlanError(f"Plan has no candidate field {state.current_field!r}")

        new = state.model_copy(deep=True)

        if state.turn_count == 0:
            decision = self._ask_topic(new, plan, Phase.EXPLORE, 0, None)
        elif state.phase.is_topic_phase:
            decision = self._after_topic_turn(new, plan, user_message)
        elif state.phase == Phase.DEEP_OFFER:
            decision = self._after_offer(new, plan, intent or UserIntent.NEUTRAL)
        elif state.phase == Phase.DATA_COLLECTION_CONSENT:
            decision = self._after_consent(new, plan, intent or UserIntent.NEUTRAL)
        else:
            if field_result is None:
                raise ValidationError("DATA_COLLECTION turn requires a field result")
            decision = self._after_field(new, plan, field_result)

        decision.state.turn_count = state.turn_count + 1
        if decision.phase != state.phase:
            log.info(
                "phase_transition",
                conversation_id=state.conversation_id,
                from_phase=state.phase.value,
                to_phase=decision.phase.value,
                action=decision.action.value,
            )
        return decision

    # --- topic phases -------------------------------------------------

    def _ask_topic(
        self,
        state: ConversationState,
        plan: InterviewPlan,
        phase: Phase,
        topic_index: int,
        transition_mode: Optional[TransitionMode],
    ) -> PhaseDecision:
        state.phase = state.phase.transition_to(phase)
        if state.turn_count == 0:
            state.turn_in_topic = 0
            state.topic_turns = {}
        elif topic_index != state.topic_index:
            # a revisited topic resumes at its next sub-goal
            state.turn_in_topic = state.topic_turns.get(topic_index, 0)
        state.topic_index = topic_index
        state.turn_in_topic += 1
        state.topic_turns[topic_index] = state.topic_turns.get(topic_index, 0) + 1
        return PhaseDecision(
            action=TurnAction.ASK_TOPIC_QUESTION,
            state=state,
            transition_mode=transition_mode,
        )

    def _time_exhausted(self, state: ConversationState, plan: InterviewPlan) -> bool:
        return state.active_seconds >= plan.max_duration_seconds

    def _after_topic_turn(
        self, state: ConversationState, plan: InterviewPlan, user_message: Optional[str]
    ) -> PhaseDecision:
        if state.extension_accepted:
            return self._next_deep_turn(state, plan, user_message)

        if self._time_exhausted(state, plan) and not state.extension_offered:
            return self._offer(state)

        topic = plan.topic_at(state.topic_index)
        if topic is not None and state.turn_in_topic < topic.max_turns:
            return self._ask_topic(state, plan, Phase.DEEPEN, state.topic_index, None)

        next_index = state.topic_index + 1
        if plan.topic_at(next_index) is not None:
            return self._ask_topic(
                state,
                plan,
                Phase.EXPLORE,
                next_index,
                transition_mode_for(user_message, plan, next_index),
            )

        return self._topics_exhausted(state, plan)

    def _topics_exhausted(
        self, state: ConversationState, plan: InterviewPlan
    ) -> PhaseDecision:
        if not plan.collects_data:
            return self._finish(state, Phase.FINAL_GOODBYE)
        if not state.extension_offered:
            return self._offer(state)
        return self._wrap_up(state, plan)

    # --- extension offer ----------------------------------------------

    def _offer(self, state: ConversationState, reask: bool = False) -> PhaseDecision:
        state.phase = state.phase.transition_to(Phase.DEEP_OFFER)
        state.extension_offered = True
        return PhaseDecision(
            action=TurnAction.ASK_EXTENSION_OFFER, state=state, reask=reask
        )

    def _after_offer(
        self, state: ConversationState, plan: InterviewPlan, intent: UserIntent
    ) -> PhaseDecision:
        if intent == UserIntent.NEUTRAL and state.offer_reasks < self.limits.max_offer_reasks:
            state.offer_reasks += 1
            return self._offer(state, reask=True)

        if intent == UserIntent.ACCEPT:
            order, turns = build_deep_plan(
                plan,
                state,
                self.limits.max_extension_turns,
                self.limits.deep_fallback_topics,
            )
            if order:
                state.extension_accepted = True
                state.deep_topic_order = order
                state.deep_turns_by_topic = turns
                log.info(
                    "deep_plan_built",
                    conversation_id=state.conversation_id,
                    topic_order=order,
                    turns_by_topic=turns,
                )
                return self._next_deep_turn(state, plan, None)

        return self._wrap_up(state, plan)

    def _next_deep_turn(
        self, state: ConversationState, plan: InterviewPlan, user_message: Optional[str]
    ) -> PhaseDecision:
        schedule = deep_schedule(state)
        if state.extension_turns_used >= len(schedule):
            return self._wrap_up(state, plan)

        topic_index = schedule[state.extension_turns_used]
        state.extension_turns_used += 1
        mode = (
            None
            if topic_index == state.topic_index
            else transition_mode_for(user_message, plan, topic_index)
        )
        return self._ask_topic(state, plan, Phase.DEEPEN, topic_index, mode)

    def _wrap_up(self, state: ConversationState, plan: InterviewPlan) -> PhaseDecision:
        """Leave the interview part: consent when data is collected, else goodbye."""
        if plan.collects_data:
            return self._consent(state)
        return self._finish(state, Phase.FINAL_GOODBYE)

    # --- data collection ----------------------------------------------

    def _consent(self, state: ConversationState, reask: bool = False) -> PhaseDecision:
        state.phase = state.phase.transition_to(Phase.DATA_COLLECTION_CONSENT)
        return PhaseDecision(action=TurnAction.ASK_DATA_CONSENT, state=state, reask=reask)

    def _after_consent(
        self, state: ConversationState, plan: InterviewPlan, intent: UserIntent
    ) -> PhaseDecision:
        if intent == UserIntent.ACCEPT:
            state.phase = state.phase.transition_to(Phase.DATA_COLLECTION)
            return self._next_field(state, plan)
        if intent == UserIntent.NEUTRAL and state.consent_reasks < self.limits.max_consent_reasks:
            state.consent_reasks += 1
            return self._consent(state, reask=True)
        return self._finish(state, Phase.COMPLETE_WITHOUT_DATA)

    def _next_field(self, state: ConversationState, plan: InterviewPlan) -> PhaseDecision:
        done = set(state.collected_fields) | set(state.skipped_fields)
        pending = [f for f in plan.candidate_fields if f.name not in done]
        if not pending:
            state.current_field = None
            state.field_attempts = 0
            return self._finish(state, Phase.FINAL_GOODBYE)

        field = pending[0]
        state.phase = state.phase.transition_to(Phase.DATA_COLLECTION)
        state.current_field = field.name
        state.field_attempts = 1
        return PhaseDecision(action=TurnAction.ASK_FIELD, state=state, field=field)

    def _after_field(
        self,
        state: ConversationState,
        plan: InterviewPlan,
        result: FieldExtractionResult,
    ) -> PhaseDecision:
        if result.accepted:
            state.collected_fields[result.field_name] = result.value
        elif result.should_skip:
            if result.field_name not in state.skipped_fields:
                state.skipped_fields.append(result.field_name)
        else:
            field = next(
                (f for f in plan.candidate_fields if f.name == result.field_name), None
            )
            if field is None:
                raise InvalidPlanError(
                    f"Plan has no candidate field {result.field_name!r}"
                )
            state.phase = state.phase.transition_to(Phase.DATA_COLLECTION)
            state.field_attempts += 1
            return PhaseDecision(
                action=TurnAction.ASK_FIELD,
                state=state,
                field=field,
                strategy=result.validation.strategy,
                feedback=result.validation.feedback,
                field_result=result,
                reask=True,
            )

        decision = self._next_field(state, plan)
        return decision.model_copy(update={"field_result": result})

    # --- terminal -----------------------------------------------------

    def _finish(self, state: ConversationState, phase: Phase) -> PhaseDecision:
        state.phase = state.phase.transition_to(phase)
        action = (
            TurnAction.FINAL_GOODBYE
            if phase == Phase.FINAL_GOODBYE
            else TurnAction.COMPLETE_WITHOUT_DATA
        )
        return PhaseDecision(action=action, state=state)
