"""Domain models package."""

from .phase import Phase, ALLOWED_TRANSITIONS, TERMINAL_PHASES
from .plan import Topic, CandidateField, InterviewPlan
from .conversation import Role, Message, ConversationState
from .validation import (
    FieldType,
    ConfidenceLevel,
    ValidationFailureReason,
    ReengagementStrategy,
    ValidationResponse,
    FieldExtractionResult,
)
from .post_processing import (
    GateLayer,
    PostProcessingResult,
    DuplicateMatchReason,
    DuplicateQuestionMatch,
)
from .quality import (
    TurnQuality,
    FlowFlags,
    QualityTurnMetadata,
    QualityTurnRecord,
    QualitySummary,
    QualityAlert,
    AlertSeverity,
)
from .turn import TurnResult

__all__ = [
    "Phase",
    "ALLOWED_TRANSITIONS",
    "TERMINAL_PHASES",
    "Topic",
    "CandidateField",
    "InterviewPlan",
    "Role",
    "Message",
    "ConversationState",
    "FieldType",
    "ConfidenceLevel",
    "ValidationFailureReason",
    "ReengagementStrategy",
    "ValidationResponse",
    "FieldExtractionResult",
    "GateLayer",
    "PostProcessingResult",
    "DuplicateMatchReason",
    "DuplicateQuestionMatch",
    "TurnQuality",
    "FlowFlags",
    "QualityTurnMetadata",
    "QualityTurnRecord",
    "QualitySummary",
    "QualityAlert",
    "AlertSeverity",
    "TurnResult",
]
