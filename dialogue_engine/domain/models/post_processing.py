"""Post-generation gate verdicts and duplicate-match results."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class GateLayer(str, Enum):
    """The five post-generation checks, in evaluation order."""

    CLOSURE_GUARD = "closure_guard"
    DUPLICATE_DETECTOR = "duplicate_detector"
    EXTENSION_OFFER_ENFORCER = "extension_offer_enforcer"
    DATA_COLLECTION_ENFORCER = "data_collection_enforcer"
    COMPLETION_GUARD = "completion_guard"


class PostProcessingResult(BaseModel):
    """Verdict of one gate (or of the folded gate sequence)."""

    model_config = ConfigDict(frozen=True)

    is_valid: bool
    reason: Optional[str] = None
    regeneration_required: bool = False
    layer: Optional[GateLayer] = None

    @classmethod
    def passed(cls) -> "PostProcessingResult":
        return cls(is_valid=True)

    @classmethod
    def failed(cls, layer: GateLayer, reason: str) -> "PostProcessingResult":
        return cls(
            is_valid=False, reason=reason, regeneration_required=True, layer=layer
        )


class DuplicateMatchReason(str, Enum):
    NONE = "none"
    EXACT = "exact"
    HIGH_SIMILARITY = "high_similarity"
    SAME_PREFIX = "same_prefix"


class DuplicateQuestionMatch(BaseModel):
    """Best near-repeat of a candidate question found in history."""

    model_config = ConfigDict(frozen=True)

    is_duplicate: bool
    matched_question: Optional[str] = None
    similarity: float = 0.0
    reason: DuplicateMatchReason = DuplicateMatchReason.NONE

    @classmethod
    def no_match(cls) -> "DuplicateQuestionMatch":
        return cls(is_duplicate=False)
