"""Quality telemetry models.

QualityTurnMetadata is written once per assistant turn and only ever read
back by the aggregator. Summaries, alerts and dashboards are derived.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TurnQuality(BaseModel):
    """Quality verdict of one assistant turn."""

    model_config = ConfigDict(frozen=True)

    eligible: bool = False
    evaluated: bool = False
    score: Optional[int] = Field(default=None, ge=0, le=100)
    passed: Optional[bool] = None
    gate_triggered: bool = False
    regenerated: bool = False
    fallback_used: bool = False


class FlowFlags(BaseModel):
    """Phase-flow interventions recorded on one assistant turn."""

    model_config = ConfigDict(frozen=True)

    topic_closure_intercepted: bool = False
    deep_offer_closure_intercepted: bool = False
    completion_guard_intercepted: bool = False
    completion_blocked_for_consent: bool = False
    completion_blocked_for_missing_field: bool = False


class QualityTurnMetadata(BaseModel):
    """Per-turn telemetry consumed by the quality aggregator."""

    model_config = ConfigDict(frozen=True)

    bot_id: Optional[str] = None
    organization_id: Optional[str] = None
    quality: TurnQuality = Field(default_factory=TurnQuality)
    flow_flags: FlowFlags = Field(default_factory=FlowFlags)


class QualityTurnRecord(BaseModel):
    """One persisted assistant turn; metadata is None when none was recorded."""

    id: str
    conversation_id: str
    bot_id: Optional[str] = None
    organization_id: Optional[str] = None
    phase: Optional[str] = None
    created_at: datetime
    metadata: Optional[QualityTurnMetadata] = None


class FlowInterceptCounts(BaseModel):
    topic_closure_intercepted: int = 0
    deep_offer_closure_intercepted: int = 0
    completion_guard_intercepted: int = 0
    completion_blocked_for_consent: int = 0
    completion_blocked_for_missing_field: int = 0


class BotQualitySummary(BaseModel):
    """Per-bot slice of a quality summary."""

    bot_id: str
    assistant_turns: int = 0
    telemetry_turns: int = 0
    eligible_turns: int = 0
    evaluated_turns: int = 0
    pass_turns: int = 0
    fail_turns: int = 0
    pass_rate: float = 0.0
    avg_score: Optional[int] = None
    gate_triggered_turns: int = 0
    gate_trigger_rate: float = 0.0
    fallback_turns: int = 0
    fallback_rate: float = 0.0


class QualitySummary(BaseModel):
    """Aggregated quality over one window of assistant turns."""

    assistant_turns: int = 0
    telemetry_turns: int = 0
    telemetry_coverage: float = 0.0
    eligible_turns: int = 0
    evaluated_turns: int = 0
    pass_turns: int = 0
    fail_turns: int = 0
    pass_rate: float = 0.0
    avg_score: Optional[int] = None
    gate_triggered_turns: int = 0
    gate_trigger_rate: float = 0.0
    regenerated_turns: int = 0
    regeneration_rate: float = 0.0
    fallback_turns: int = 0
    fallback_rate: float = 0.0
    flow: FlowInterceptCounts = Field(default_factory=FlowInterceptCounts)
    completion_guard_rate: float = 0.0
    truncated: bool = False
    by_bot: Dict[str, BotQualitySummary] = Field(default_factory=dict)


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return {"critical": 3, "warning": 2, "info": 1}[self.value]


class QualityAlert(BaseModel):
    """Advisory alert raised by comparing quality windows."""

    id: str
    severity: AlertSeverity
    message: str
    value: Optional[float] = None
    threshold: Optional[float] = None


class QualityDelta(BaseModel):
    """current minus previous."""

    pass_rate: float = 0.0
    avg_score: Optional[int] = None
    gate_trigger_rate: float = 0.0
    fallback_rate: float = 0.0


class QualityDashboard(BaseModel):
    """Current vs previous window with alerts and worst bots."""

    generated_at: datetime
    window_hours: int
    current: QualitySummary
    previous: QualitySummary
    delta: QualityDelta
    alerts: List[QualityAlert] = Field(default_factory=list)
    top_failing_bots: List[BotQualitySummary] = Field(default_factory=list)
