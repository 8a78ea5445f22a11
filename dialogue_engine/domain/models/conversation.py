"""Conversation state and transcript models.

The orchestrating caller owns the conversation; the engine receives a
ConversationState plus a transcript slice each turn and returns the
updated state. Nothing here is held between calls.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from dialogue_engine.domain.models.phase import Phase


class Role(str, Enum):
    """Message author."""

    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """One transcript entry. Transcripts are append-only."""

    model_config = ConfigDict(frozen=True)

    role: Role
    text: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ConversationState(BaseModel):
    """Phase/topic counters of one conversation.

    Counters:
        turn_in_topic: assistant questions already asked on the current topic
        extension_turns_used: deep-dive turns spent after an accepted offer
        topic_turns: topic questions asked so far, keyed by topic index
        deep_topic_order / deep_turns_by_topic: deep-dive plan built when the
            extension offer is accepted
        offer_reasks / consent_reasks: neutral answers re-asked so far
        field_attempts: attempts on current_field
    """

    conversation_id: str
    bot_id: Optional[str] = None
    organization_id: Optional[str] = None

    phase: Phase = Phase.EXPLORE
    topic_index: int = Field(default=0, ge=0)
    turn_in_topic: int = Field(default=0, ge=0)
    topic_turns: Dict[int, int] = Field(default_factory=dict)
    turn_count: int = Field(default=0, ge=0, description="Assistant turns produced")

    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    active_seconds: float = Field(
        default=0.0, ge=0.0, description="Accumulated active duration"
    )

    extension_offered: bool = False
    extension_accepted: bool = False
    extension_turns_used: int = Field(default=0, ge=0)
    deep_topic_order: List[int] = Field(default_factory=list)
    deep_turns_by_topic: Dict[int, int] = Field(default_factory=dict)
    offer_reasks: int = Field(default=0, ge=0)
    consent_reasks: int = Field(default=0, ge=0)

    current_field: Optional[str] = None
    field_attempts: int = Field(default=0, ge=0)
    collected_fields: Dict[str, str] = Field(default_factory=dict)
    skipped_fields: List[str] = Field(default_factory=list)

    @property
    def is_completed(self) -> bool:
        return self.phase.is_terminal
