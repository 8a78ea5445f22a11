"""Tests for the phase enum and its transition table."""

import pytest

from dialogue_engine.core.exceptions import IllegalPhaseTransitionError
from dialogue_engine.domain.models.phase import ALLOWED_TRANSITIONS, Phase


class TestPhaseTransitions:
    def test_topic_phases_can_reach_the_offer(self):
        assert Phase.EXPLORE.transition_to(Phase.DEEP_OFFER) == Phase.DEEP_OFFER
        assert Phase.DEEPEN.transition_to(Phase.DEEP_OFFER) == Phase.DEEP_OFFER

    def test_consent_leads_to_collection_or_completion(self):
        assert Phase.DATA_COLLECTION_CONSENT.can_transition_to(Phase.DATA_COLLECTION)
        assert Phase.DATA_COLLECTION_CONSENT.can_transition_to(Phase.COMPLETE_WITHOUT_DATA)
        assert not Phase.DATA_COLLECTION_CONSENT.can_transition_to(Phase.FINAL_GOODBYE)

    def test_terminal_phases_have_no_exits(self):
        for phase in (Phase.COMPLETE_WITHOUT_DATA, Phase.FINAL_GOODBYE):
            assert phase.is_terminal
            assert ALLOWED_TRANSITIONS[phase] == frozenset()
            with pytest.raises(IllegalPhaseTransitionError):
                phase.transition_to(Phase.EXPLORE)

    def test_skipping_consent_is_illegal(self):
        with pytest.raises(IllegalPhaseTransitionError) as exc_info:
            Phase.EXPLORE.transition_to(Phase.DATA_COLLECTION)
        assert exc_info.value.source == "EXPLORE"
        assert exc_info.value.target == "DATA_COLLECTION"

    def test_every_phase_has_a_row(self):
        assert set(ALLOWED_TRANSITIONS) == set(Phase)

    def test_phase_groups(self):
        assert Phase.DEEPEN.is_topic_phase
        assert Phase.DATA_COLLECTION.is_data_phase
        assert not Phase.DEEP_OFFER.is_topic_phase
        assert not Phase.DEEP_OFFER.is_data_phase
