"""Tests for the phase state machine."""

import pytest

from dialogue_engine.core.config import EngineLimits
from dialogue_engine.core.exceptions import (
    InvalidPlanError,
    SessionCompletedError,
    ValidationError,
)
from dialogue_engine.domain.models.conversation import ConversationState
from dialogue_engine.domain.models.phase import Phase
from dialogue_engine.domain.models.plan import InterviewPlan, Topic
from dialogue_engine.domain.models.validation import ReengagementStrategy
from dialogue_engine.services.field_validator import validate_extracted_field
from dialogue_engine.services.intent_service import UserIntent
from dialogue_engine.services.phase_machine import (
    PhaseStateMachine,
    TurnAction,
    build_deep_plan,
    deep_schedule,
    has_all_required_fields,
    transition_mode_for,
)


@pytest.fixture
def machine():
    return PhaseStateMachine(EngineLimits())


def _state(**kwargs):
    kwargs.setdefault("conversation_id", "conv-1")
    kwargs.setdefault("turn_count", 3)
    return ConversationState(**kwargs)


class TestTopicProgression:
    def test_first_turn_opens_first_topic(self, machine, italian_plan, new_state):
        decision = machine.advance(new_state, italian_plan)

        assert decision.action == TurnAction.ASK_TOPIC_QUESTION
        assert decision.phase == Phase.EXPLORE
        assert decision.topic_index == 0
        assert decision.state.turn_in_topic == 1
        assert decision.state.turn_count == 1

    def test_input_state_is_not_mutated(self, machine, italian_plan, new_state):
        machine.advance(new_state, italian_plan)
        assert new_state.turn_count == 0
        assert new_state.turn_in_topic == 0

    def test_deepens_while_under_budget(self, machine, italian_plan):
        state = _state(phase=Phase.EXPLORE, topic_index=0, turn_in_topic=1)

        decision = machine.advance(state, italian_plan, user_message="Ci vogliono settimane")

        assert decision.phase == Phase.DEEPEN
        assert decision.topic_index == 0
        assert decision.state.turn_in_topic == 2
        assert decision.state.turn_count == 4

    def test_moves_to_next_topic_with_bridge(self, machine, italian_plan):
        state = _state(phase=Phase.DEEPEN, topic_index=0, turn_in_topic=2)

        decision = machine.advance(
            state, italian_plan, user_message="Usiamo strumenti digitali per tutto"
        )

        assert decision.phase == Phase.EXPLORE
        assert decision.topic_index == 1
        assert decision.state.turn_in_topic == 1
        assert decision.transition_mode == "bridge"

    def test_unrelated_answer_is_clean_pivot(self, italian_plan):
        assert transition_mode_for("Oggi piove", italian_plan, 1) == "clean_pivot"
        assert transition_mode_for(None, italian_plan, 1) == "clean_pivot"


class TestExtensionOffer:
    def test_offer_when_time_runs_out(self, machine, italian_plan):
        state = _state(phase=Phase.EXPLORE, turn_in_topic=1, active_seconds=600)

        decision = machine.advance(state, italian_plan)

        assert decision.action == TurnAction.ASK_EXTENSION_OFFER
        assert decision.phase == Phase.DEEP_OFFER
        assert decision.state.extension_offered

    def test_offer_when_topics_are_exhausted(self, machine, italian_plan):
        state = _state(phase=Phase.DEEPEN, topic_index=1, turn_in_topic=2)

        decision = machine.advance(state, italian_plan)

        assert decision.action == TurnAction.ASK_EXTENSION_OFFER

    def test_offer_is_made_once(self, machine, italian_plan):
        state = _state(
            phase=Phase.DEEPEN,
            topic_index=1,
            turn_in_topic=2,
            extension_offered=True,
            active_seconds=900,
        )

        decision = machine.advance(state, italian_plan)

        assert decision.action == TurnAction.ASK_DATA_CONSENT

    def test_accepted_offer_allows_bounded_deep_dive(self, machine, italian_plan):
        state = _state(phase=Phase.DEEP_OFFER, topic_index=1, extension_offered=True)

        decision = machine.advance(state, italian_plan, intent=UserIntent.ACCEPT)
        assert decision.phase == Phase.DEEPEN
        assert decision.state.extension_turns_used == 1
        assert decision.state.deep_topic_order == [0, 1]
        assert decision.state.deep_turns_by_topic == {0: 2, 1: 1}

        state = decision.state
        for _ in range(2):
            state = machine.advance(state, italian_plan).state
        assert state.extension_turns_used == 3

        final = machine.advance(state, italian_plan)
        assert final.action == TurnAction.ASK_DATA_CONSENT

    def test_deep_dive_reaches_topics_not_yet_asked(self, machine, italian_plan):
        state = _state(
            phase=Phase.DEEP_OFFER,
            topic_index=0,
            turn_in_topic=1,
            topic_turns={0: 1},
            extension_offered=True,
        )

        decision = machine.advance(state, italian_plan, intent=UserIntent.ACCEPT)
        visited = []
        while decision.action == TurnAction.ASK_TOPIC_QUESTION:
            assert decision.phase == Phase.DEEPEN
            visited.append(decision.topic_index)
            decision = machine.advance(decision.state, italian_plan, user_message="Sì")

        assert visited == [0, 1]
        assert decision.action == TurnAction.ASK_DATA_CONSENT

    def test_accepted_offer_with_no_extension_budget_wraps_up(self, italian_plan):
        machine = PhaseStateMachine(EngineLimits(max_extension_turns=0))
        state = _state(phase=Phase.DEEP_OFFER, extension_offered=True)

        decision = machine.advance(state, italian_plan, intent=UserIntent.ACCEPT)

        assert decision.action == TurnAction.ASK_DATA_CONSENT
        assert not decision.state.extension_accepted

    def test_revisited_topic_resumes_next_sub_goal(self, machine, italian_plan):
        state = _state(
            phase=Phase.DEEP_OFFER,
            topic_index=1,
            topic_turns={0: 1, 1: 2},
            extension_offered=True,
        )

        decision = machine.advance(state, italian_plan, intent=UserIntent.ACCEPT)

        assert decision.topic_index == 0
        assert decision.state.turn_in_topic == 2
        assert decision.state.topic_turns == {0: 2, 1: 2}
        assert decision.transition_mode == "clean_pivot"


class TestDeepPlan:
    def _plan(self):
        return InterviewPlan(
            language="en",
            topics=[
                Topic(label="Hiring", cue="hiring", sub_goals=["a"], max_turns=3),
                Topic(label="Tools", cue="tools", sub_goals=["a", "b", "c"], max_turns=3),
                Topic(label="Budget", cue="budget", sub_goals=["a", "b"], max_turns=3),
            ],
        )

    def test_orders_by_remaining_sub_goals(self):
        state = _state(topic_turns={0: 1})

        order, turns = build_deep_plan(self._plan(), state, budget=3)

        assert order == [1, 2]
        assert turns == {1: 2, 2: 1}

    def test_every_topic_gets_a_turn_before_extras(self):
        state = _state()

        order, turns = build_deep_plan(self._plan(), state, budget=4)

        assert order == [1, 2, 0]
        assert turns == {1: 2, 2: 1, 0: 1}

    def test_budget_caps_the_number_of_topics(self):
        order, turns = build_deep_plan(self._plan(), _state(), budget=1)

        assert order == [1]
        assert turns == {1: 1}

    def test_extras_stop_at_uncovered_sub_goals(self):
        state = _state(topic_turns={1: 2, 2: 2})

        order, turns = build_deep_plan(self._plan(), state, budget=5)

        assert order == [0, 1]
        assert turns == {0: 1, 1: 1}

    def test_covered_plan_revisits_current_topic_first(self):
        state = _state(topic_index=2, topic_turns={0: 1, 1: 3, 2: 2})

        order, turns = build_deep_plan(self._plan(), state, budget=3, fallback_topics=2)

        assert order == [2, 0]
        assert turns == {2: 2, 0: 1}

    def test_no_budget_means_no_plan(self):
        assert build_deep_plan(self._plan(), _state(), budget=0) == ([], {})

    def test_schedule_expands_turns_in_order(self):
        state = _state(deep_topic_order=[1, 0], deep_turns_by_topic={1: 2, 0: 1})

        assert deep_schedule(state) == [1, 1, 0]

    def test_neutral_answer_is_reasked_once(self, machine, italian_plan):
        state = _state(phase=Phase.DEEP_OFFER, extension_offered=True)

        first = machine.advance(state, italian_plan, intent=UserIntent.NEUTRAL)
        assert first.action == TurnAction.ASK_EXTENSION_OFFER
        assert first.reask
        assert first.state.offer_reasks == 1

        second = machine.advance(first.state, italian_plan, intent=UserIntent.NEUTRAL)
        assert second.action == TurnAction.ASK_DATA_CONSENT

    def test_refused_offer_without_data_collection_ends(self, machine, english_plan):
        state = _state(phase=Phase.DEEP_OFFER, extension_offered=True)

        decision = machine.advance(state, english_plan, intent=UserIntent.REFUSE)

        assert decision.action == TurnAction.FINAL_GOODBYE
        assert decision.state.is_completed

    def test_no_offer_when_no_data_and_topics_exhausted(self, machine, english_plan):
        state = _state(phase=Phase.DEEPEN, topic_index=0, turn_in_topic=2)

        decision = machine.advance(state, english_plan)

        assert decision.action == TurnAction.FINAL_GOODBYE


class TestDataCollection:
    def test_consent_accepted_asks_first_field(self, machine, italian_plan):
        state = _state(phase=Phase.DATA_COLLECTION_CONSENT)

        decision = machine.advance(state, italian_plan, intent=UserIntent.ACCEPT)

        assert decision.action == TurnAction.ASK_FIELD
        assert decision.phase == Phase.DATA_COLLECTION
        assert decision.field.name == "email"
        assert decision.state.current_field == "email"
        assert decision.state.field_attempts == 1

    def test_consent_refused(self, machine, italian_plan):
        state = _state(phase=Phase.DATA_COLLECTION_CONSENT)

        decision = machine.advance(state, italian_plan, intent=UserIntent.REFUSE)

        assert decision.action == TurnAction.COMPLETE_WITHOUT_DATA
        assert decision.phase == Phase.COMPLETE_WITHOUT_DATA

    def test_consent_neutral_twice_completes_without_data(self, machine, italian_plan):
        state = _state(phase=Phase.DATA_COLLECTION_CONSENT)

        first = machine.advance(state, italian_plan, intent=UserIntent.NEUTRAL)
        assert first.action == TurnAction.ASK_DATA_CONSENT
        assert first.reask

        second = machine.advance(first.state, italian_plan, intent=UserIntent.NEUTRAL)
        assert second.phase == Phase.COMPLETE_WITHOUT_DATA

    def test_accepted_field_moves_to_next(self, machine, italian_plan):
        state = _state(phase=Phase.DATA_COLLECTION, current_field="email", field_attempts=1)
        result = validate_extracted_field("email", "mario@rossi.it", "high", 1, "it")

        decision = machine.advance(state, italian_plan, field_result=result)

        assert decision.state.collected_fields == {"email": "mario@rossi.it"}
        assert decision.field.name == "phone"
        assert decision.field_result == result
        assert has_all_required_fields(decision.state, italian_plan)

    def test_failed_field_is_retried_with_strategy(self, machine, italian_plan):
        state = _state(phase=Phase.DATA_COLLECTION, current_field="email", field_attempts=1)
        result = validate_extracted_field("email", "mario@gmail", "none", 1, "it")

        decision = machine.advance(state, italian_plan, field_result=result)

        assert decision.action == TurnAction.ASK_FIELD
        assert decision.field.name == "email"
        assert decision.reask
        assert decision.strategy == ReengagementStrategy.GIVE_EXAMPLE
        assert decision.feedback == result.validation.feedback
        assert decision.state.field_attempts == 2

    def test_last_field_skipped_ends_interview(self, machine, italian_plan):
        state = _state(
            phase=Phase.DATA_COLLECTION,
            current_field="phone",
            field_attempts=2,
            collected_fields={"email": "mario@rossi.it"},
        )
        result = validate_extracted_field("phone", None, "none", 2, "it")

        decision = machine.advance(state, italian_plan, field_result=result)

        assert decision.action == TurnAction.FINAL_GOODBYE
        assert decision.state.skipped_fields == ["phone"]
        assert decision.state.current_field is None

    def test_field_turn_requires_result(self, machine, italian_plan):
        state = _state(phase=Phase.DATA_COLLECTION, current_field="email")
        with pytest.raises(ValidationError):
            machine.advance(state, italian_plan)


class TestTerminal:
    def test_completed_conversation_cannot_advance(self, machine, italian_plan):
        state = _state(phase=Phase.FINAL_GOODBYE)
        with pytest.raises(SessionCompletedError):
            machine.advance(state, italian_plan)


class TestPlanMismatch:
    def test_topic_outside_plan_is_rejected(self, machine, english_plan):
        state = _state(phase=Phase.DEEPEN, topic_index=1, turn_in_topic=1)
        with pytest.raises(InvalidPlanError):
            machine.advance(state, english_plan)

    def test_unknown_current_field_is_rejected(self, machine, italian_plan):
        state = _state(phase=Phase.DATA_COLLECTION, current_field="fax", field_attempts=1)
        result = validate_extracted_field("fax", "0612345", "high", 1, "it")
        with pytest.raises(InvalidPlanError):
            machine.advance(state, italian_plan, field_result=result)
