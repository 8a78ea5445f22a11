"""
API request/response schemas.

Pydantic models for API validation and serialization. Domain models are
reused as-is wherever they already describe the payload.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from dialogue_engine.domain.models.conversation import ConversationState, Message
from dialogue_engine.domain.models.phase import Phase
from dialogue_engine.domain.models.plan import InterviewPlan
from dialogue_engine.domain.models.quality import QualityTurnMetadata
from dialogue_engine.domain.models.validation import (
    ConfidenceLevel,
    FieldExtractionResult,
    ReengagementStrategy,
)


# ============ TURN SCHEMAS ============


class TurnRequest(BaseModel):
    """Everything the engine needs for one assistant turn."""

    state: ConversationState
    plan: InterviewPlan
    transcript: List[Message] = Field(
        default_factory=list,
        max_length=200,
        description="Recent transcript slice, oldest first",
    )


class TurnResponse(BaseModel):
    """Assistant turn produced by the engine."""

    assistant_text: str
    new_phase: Phase
    new_topic_index: int
    is_completed: bool
    state: ConversationState
    quality: QualityTurnMetadata
    field_result: Optional[FieldExtractionResult] = None
    usage: Optional[Dict[str, Dict[str, Any]]] = Field(
        default=None, description="LLM usage of this conversation, by model and call site"
    )


# ============ FIELD SCHEMAS ============


class FieldValidationRequest(BaseModel):
    """One field-extraction attempt to validate."""

    field_name: str = Field(..., min_length=1)
    extracted_value: Optional[str] = None
    confidence: ConfidenceLevel = ConfidenceLevel.NONE
    attempt_number: int = Field(default=1, ge=1)
    max_attempts: int = Field(default=2, ge=1)
    language: str = "it"
    user_message: Optional[str] = Field(
        default=None, description="Raw respondent message, checked for explicit opt-out"
    )


class FieldValidationResponse(BaseModel):
    """Validation outcome plus the recovery the data-collection flow should take."""

    result: FieldExtractionResult
    strategy: ReengagementStrategy
    accepted: bool
    should_skip: bool
