"""Interview phases and the allowed transitions between them.

The phase is a closed enum; every change of phase goes through
Phase.transition_to, which rejects any edge not listed in
ALLOWED_TRANSITIONS. Topic phases repeat while a topic is under budget,
DEEP_OFFER happens once when scheduled time runs out, data collection is
optional, and the two COMPLETE phases are terminal.
"""

from enum import Enum
from typing import Dict, FrozenSet

from dialogue_engine.core.exceptions import IllegalPhaseTransitionError


class Phase(str, Enum):
    """Conversation phase."""

    EXPLORE = "EXPLORE"
    DEEPEN = "DEEPEN"
    DEEP_OFFER = "DEEP_OFFER"
    DATA_COLLECTION_CONSENT = "DATA_COLLECTION_CONSENT"
    DATA_COLLECTION = "DATA_COLLECTION"
    COMPLETE_WITHOUT_DATA = "COMPLETE_WITHOUT_DATA"
    FINAL_GOODBYE = "FINAL_GOODBYE"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES

    @property
    def is_topic_phase(self) -> bool:
        return self in TOPIC_PHASES

    @property
    def is_data_phase(self) -> bool:
        return self in DATA_PHASES

    def can_transition_to(self, target: "Phase") -> bool:
        return target in ALLOWED_TRANSITIONS[self]

    def transition_to(self, target: "Phase") -> "Phase":
        """Return target if the edge self -> target is allowed.

        Raises:
            IllegalPhaseTransitionError: If the edge is not allowed
        """
        if not self.can_transition_to(target):
            raise IllegalPhaseTransitionError(self.value, target.value)
        return target


TOPIC_PHASES: FrozenSet[Phase] = frozenset({Phase.EXPLORE, Phase.DEEPEN})
DATA_PHASES: FrozenSet[Phase] = frozenset(
    {Phase.DATA_COLLECTION_CONSENT, Phase.DATA_COLLECTION}
)
TERMINAL_PHASES: FrozenSet[Phase] = frozenset(
    {Phase.COMPLETE_WITHOUT_DATA, Phase.FINAL_GOODBYE}
)

# Topic phases may end the interview directly only when the plan has data
# collection disabled; the machine enforces that condition, the table only
# lists structurally possible edges.
ALLOWED_TRANSITIONS: Dict[Phase, FrozenSet[Phase]] = {
    Phase.EXPLORE: frozenset(
        {Phase.EXPLORE, Phase.DEEPEN, Phase.DEEP_OFFER, Phase.FINAL_GOODBYE}
    ),
    Phase.DEEPEN: frozenset(
        {
            Phase.DEEPEN,
            Phase.EXPLORE,
            Phase.DEEP_OFFER,
            # after an accepted extension the offer is already behind us
            Phase.DATA_COLLECTION_CONSENT,
            Phase.FINAL_GOODBYE,
        }
    ),
    Phase.DEEP_OFFER: frozenset(
        {
            Phase.DEEP_OFFER,
            Phase.DEEPEN,
            Phase.DATA_COLLECTION_CONSENT,
            Phase.COMPLETE_WITHOUT_DATA,
            Phase.FINAL_GOODBYE,
        }
    ),
    Phase.DATA_COLLECTION_CONSENT: frozenset(
        {
            Phase.DATA_COLLECTION_CONSENT,
            Phase.DATA_COLLECTION,
            Phase.COMPLETE_WITHOUT_DATA,
        }
    ),
    Phase.DATA_COLLECTION: frozenset({Phase.DATA_COLLECTION, Phase.FINAL_GOODBYE}),
    Phase.COMPLETE_WITHOUT_DATA: frozenset(),
    Phase.FINAL_GOODBYE: frozenset(),
}
