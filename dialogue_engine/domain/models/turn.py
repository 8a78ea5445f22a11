"""Result of one produce_turn call."""

from typing import Optional

from pydantic import BaseModel, Field

from dialogue_engine.domain.models.conversation import ConversationState
from dialogue_engine.domain.models.phase import Phase
from dialogue_engine.domain.models.quality import QualityTurnMetadata
from dialogue_engine.domain.models.validation import FieldExtractionResult


class TurnResult(BaseModel):
    """What the orchestrating caller gets back for one assistant turn.

    assistant_text is always a validated question/offer or deterministic
    fallback text; raw invalid model output never reaches this field.
    """

    assistant_text: str
    new_phase: Phase
    new_topic_index: int
    state: ConversationState
    quality: QualityTurnMetadata
    is_completed: bool = False
    field_result: Optional[FieldExtractionResult] = Field(
        default=None, description="Set on turns that processed a field answer"
    )
