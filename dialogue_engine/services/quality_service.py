"""
Quality telemetry aggregation and alerting.

Works on already-persisted assistant turns only: nothing here touches a
live conversation. summarize_quality folds per-turn metadata into window
rates (pass, gate-trigger, regeneration, fallback and completion-guard
rates are all computed over evaluated turns), build_alerts compares two
windows against AlertThresholds, and QualityDashboardService assembles
current vs previous windows from the repository.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

import structlog
from pydantic import ValidationError as PydanticValidationError

from dialogue_engine.core.config import AlertThresholds, engine_config
from dialogue_engine.domain.models.quality import (
    AlertSeverity,
    BotQualitySummary,
    FlowFlags,
    FlowInterceptCounts,
    QualityAlert,
    QualityDashboard,
    QualityDelta,
    QualitySummary,
    QualityTurnMetadata,
    QualityTurnRecord,
    TurnQuality,
)

log = structlog.get_logger(__name__)

UNKNOWN_BOT = "unknown"
MIN_WINDOW_HOURS = 1
MAX_WINDOW_HOURS = 168
DEFAULT_MAX_TURNS = 5000
MIN_TURNS_FOR_TOP_FAILING = 8
TOP_FAILING_LIMIT = 12

TurnInput = Union[QualityTurnRecord, QualityTurnMetadata, Dict[str, Any], str, None]

_CAMEL_KEYS = {
    "botId": "bot_id",
    "organizationId": "organization_id",
    "flowFlags": "flow_flags",
    "gateTriggered": "gate_triggered",
    "fallbackUsed": "fallback_used",
    "topicClosureIntercepted": "topic_closure_intercepted",
    "deepOfferClosureIntercepted": "deep_offer_closure_intercepted",
    "completionGuardIntercepted": "completion_guard_intercepted",
    "completionBlockedForConsent": "completion_blocked_for_consent",
    "completionBlockedForMissingField": "completion_blocked_for_missing_field",
}


def safe_rate(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return numerator / denominator


def _snake_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    return {_CAMEL_KEYS.get(k, k): v for k, v in data.items()}


def _bool_fields(data: Any, model) -> Dict[str, Any]:
    """Keep only well-typed known fields; anything else falls back to defaults."""
    if not isinstance(data, dict):
        return {}
    out = {}
    for key, value in _snake_keys(data).items():
        if key not in model.model_fields:
            continue
        if key == "score":
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                out[key] = max(0, min(100, round(value)))
        elif isinstance(value, bool):
            out[key] = value
    return out


def parse_turn_metadata(raw: Any) -> Optional[QualityTurnMetadata]:
    """
    Parse stored turn metadata leniently.

    Accepts a QualityTurnMetadata, a dict (snake_case or camelCase keys) or
    a JSON string. Returns None when the turn carries neither a quality
    nor a flow-flags object.
    """
    if isinstance(raw, QualityTurnMetadata):
        return raw
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            log.debug("turn_metadata_unparseable")
            return None
    if not isinstance(raw, dict):
        return None

    data = _snake_keys(raw)
    quality = data.get("quality")
    flow = data.get("flow_flags")
    if not isinstance(quality, dict) and not isinstance(flow, dict):
        return None

    try:
        return QualityTurnMetadata(
            bot_id=data.get("bot_id") if isinstance(data.get("bot_id"), str) else None,
            organization_id=(
                data.get("organization_id")
                if isinstance(data.get("organization_id"), str)
                else None
            ),
            quality=TurnQuality(**_bool_fields(quality, TurnQuality)),
            flow_flags=FlowFlags(**_bool_fields(flow, FlowFlags)),
        )
    except PydanticValidationError as e:
        log.debug("turn_metadata_invalid", error=str(e))
        return None


class _Counter:
    """Mutable tallies for one window or one bot."""

    def __init__(self):
        self.assistant_turns = 0
        self.telemetry_turns = 0
        self.eligible_turns = 0
        self.evaluated_turns = 0
        self.pass_turns = 0
        self.fail_turns = 0
        self.score_sum = 0
        self.scored_turns = 0
        self.gate_triggered_turns = 0
        self.regenerated_turns = 0
        self.fallback_turns = 0
        self.flow = {name: 0 for name in FlowInterceptCounts.model_fields}

    def add(self, metadata: Optional[QualityTurnMetadata]) -> None:
        self.assistant_turns += 1
        if metadata is None:
            return
        self.telemetry_turns += 1
        quality = metadata.quality
        if quality.eligible:
            self.eligible_turns += 1
        if quality.evaluated:
            self.evaluated_turns += 1
            if quality.passed is True:
                self.pass_turns += 1
            else:
                self.fail_turns += 1
            if quality.score is not None:
                self.scored_turns += 1
                self.score_sum += quality.score
        if quality.gate_triggered:
            self.gate_triggered_turns += 1
        if quality.regenerated:
            self.regenerated_turns += 1
        if quality.fallback_used:
            self.fallback_turns += 1
        for name in self.flow:
            if getattr(metadata.flow_flags, name):
                self.flow[name] += 1

    @property
    def avg_score(self) -> Optional[int]:
        if self.scored_turns == 0:
            return None
        return round(self.score_sum / self.scored_turns)

    def bot_summary(self, bot_id: str) -> BotQualitySummary:
        return BotQualitySummary(
            bot_id=bot_id,
            assistant_turns=self.assistant_turns,
            telemetry_turns=self.telemetry_turns,
            eligible_turns=self.eligible_turns,
            evaluated_turns=self.evaluated_turns,
            pass_turns=self.pass_turns,
            fail_turns=self.fail_turns,
            pass_rate=safe_rate(self.pass_turns, self.evaluated_turns),
            avg_score=self.avg_score,
            gate_triggered_turns=self.gate_triggered_turns,
            gate_trigger_rate=safe_rate(self.gate_triggered_turns, self.evaluated_turns),
            fallback_turns=self.fallback_turns,
            fallback_rate=safe_rate(self.fallback_turns, self.evaluated_turns),
        )


def _split_turn(turn: TurnInput):
    """(bot_id, parsed metadata) of one input turn."""
    if isinstance(turn, QualityTurnRecord):
        metadata = parse_turn_metadata(turn.metadata)
        bot_id = turn.bot_id or (metadata.bot_id if metadata else None)
    else:
        metadata = parse_turn_metadata(turn)
        bot_id = metadata.bot_id if metadata else None
    return bot_id or UNKNOWN_BOT, metadata


def summarize_quality(turns: Iterable[TurnInput], truncated: bool = False) -> QualitySummary:
    """
    Summarize a window of assistant turns.

    Args:
        turns: One entry per assistant turn: a persisted record, parsed
            metadata, raw metadata, or None for a turn without telemetry
        truncated: Whether the window hit the read limit

    Returns:
        QualitySummary with a per-bot breakdown
    """
    total = _Counter()
    by_bot: Dict[str, _Counter] = {}

    for turn in turns:
        bot_id, metadata = _split_turn(turn)
        total.add(metadata)
        by_bot.setdefault(bot_id, _Counter()).add(metadata)

    completion_intercepts = total.flow["completion_guard_intercepted"]
    return QualitySummary(
        assistant_turns=total.assistant_turns,
        telemetry_turns=total.telemetry_turns,
        telemetry_coverage=safe_rate(total.telemetry_turns, total.assistant_turns),
        eligible_turns=total.eligible_turns,
        evaluated_turns=total.evaluated_turns,
        pass_turns=total.pass_turns,
        fail_turns=total.fail_turns,
        pass_rate=safe_rate(total.pass_turns, total.evaluated_turns),
        avg_score=total.avg_score,
        gate_triggered_turns=total.gate_triggered_turns,
        gate_trigger_rate=safe_rate(total.gate_triggered_turns, total.evaluated_turns),
        regenerated_turns=total.regenerated_turns,
        regeneration_rate=safe_rate(total.regenerated_turns, total.evaluated_turns),
        fallback_turns=total.fallback_turns,
        fallback_rate=safe_rate(total.fallback_turns, total.evaluated_turns),
        flow=FlowInterceptCounts(**total.flow),
        completion_guard_rate=safe_rate(completion_intercepts, total.evaluated_turns),
        truncated=truncated,
        by_bot={bot_id: c.bot_summary(bot_id) for bot_id, c in by_bot.items()},
    )


def _pct(value: float) -> str:
    return f"{value * 100:.1f}%"


def build_alerts(
    current: QualitySummary,
    previous: QualitySummary,
    thresholds: Optional[AlertThresholds] = None,
) -> List[QualityAlert]:
    """
    Compare the current window with the previous one.

    Rate alerts require at least min_evaluated_turns in the current window;
    pass-rate-drop requires it in both. Below the sample floor only an
    informational sample-too-small alert is raised.

    Returns:
        Alerts sorted by severity, most severe first
    """
    t = thresholds or engine_config.alerts
    alerts: List[QualityAlert] = []

    def add(alert_id, severity, message, value, threshold):
        alerts.append(
            QualityAlert(
                id=alert_id,
                severity=severity,
                message=message,
                value=value,
                threshold=threshold,
            )
        )

    if (
        current.assistant_turns >= t.min_assistant_turns_for_coverage
        and current.telemetry_coverage < t.telemetry_coverage_warn
    ):
        add(
            "telemetry-coverage-low",
            AlertSeverity.WARNING,
            f"Only {_pct(current.telemetry_coverage)} of assistant turns carry quality telemetry",
            current.telemetry_coverage,
            t.telemetry_coverage_warn,
        )

    if current.evaluated_turns < t.min_evaluated_turns:
        add(
            "sample-too-small",
            AlertSeverity.INFO,
            f"Evaluated turns {current.evaluated_turns}/{t.min_evaluated_turns}: "
            "wait for more traffic before acting",
            float(current.evaluated_turns),
            float(t.min_evaluated_turns),
        )
    else:
        if current.pass_rate < t.pass_rate_critical:
            add(
                "pass-rate-critical",
                AlertSeverity.CRITICAL,
                f"Pass rate {_pct(current.pass_rate)} below critical threshold",
                current.pass_rate,
                t.pass_rate_critical,
            )
        elif current.pass_rate < t.pass_rate_warn:
            add(
                "pass-rate-warning",
                AlertSeverity.WARNING,
                f"Pass rate {_pct(current.pass_rate)} below warning threshold",
                current.pass_rate,
                t.pass_rate_warn,
            )

        if current.gate_trigger_rate > t.gate_trigger_critical:
            add(
                "gate-trigger-critical",
                AlertSeverity.CRITICAL,
                f"Quality gate triggered on {_pct(current.gate_trigger_rate)} of evaluated turns",
                current.gate_trigger_rate,
                t.gate_trigger_critical,
            )
        elif current.gate_trigger_rate > t.gate_trigger_warn:
            add(
                "gate-trigger-warning",
                AlertSeverity.WARNING,
                f"Quality gate triggered on {_pct(current.gate_trigger_rate)} of evaluated turns",
                current.gate_trigger_rate,
                t.gate_trigger_warn,
            )

        if current.fallback_rate > t.fallback_critical:
            add(
                "fallback-critical",
                AlertSeverity.CRITICAL,
                f"Deterministic fallback used on {_pct(current.fallback_rate)} of evaluated turns",
                current.fallback_rate,
                t.fallback_critical,
            )
        elif current.fallback_rate > t.fallback_warn:
            add(
                "fallback-warning",
                AlertSeverity.WARNING,
                f"Deterministic fallback used on {_pct(current.fallback_rate)} of evaluated turns",
                current.fallback_rate,
                t.fallback_warn,
            )

        if current.completion_guard_rate > t.completion_guard_warn:
            add(
                "completion-guard-warning",
                AlertSeverity.WARNING,
                f"Completion guard intercepted {current.flow.completion_guard_intercepted} "
                f"turns ({_pct(current.completion_guard_rate)})",
                current.completion_guard_rate,
                t.completion_guard_warn,
            )

    if (
        current.evaluated_turns >= t.min_evaluated_turns
        and previous.evaluated_turns >= t.min_evaluated_turns
    ):
        delta = current.pass_rate - previous.pass_rate
        if delta <= -t.pass_rate_drop_warn:
            add(
                "pass-rate-drop",
                AlertSeverity.WARNING,
                f"Pass rate {_pct(current.pass_rate)} "
                f"({delta * 100:.1f} points vs previous window)",
                delta,
                -t.pass_rate_drop_warn,
            )

    return sorted(alerts, key=lambda a: a.severity.rank, reverse=True)


def top_failing_bots(summary: QualitySummary) -> List[BotQualitySummary]:
    """Bots with enough evaluated turns, worst pass rate first."""
    eligible = [
        bot
        for bot in summary.by_bot.values()
        if bot.evaluated_turns >= MIN_TURNS_FOR_TOP_FAILING
    ]
    eligible.sort(key=lambda b: (b.pass_rate, -b.fail_turns))
    return eligible[:TOP_FAILING_LIMIT]


def quality_delta(current: QualitySummary, previous: QualitySummary) -> QualityDelta:
    avg_score = None
    if current.avg_score is not None and previous.avg_score is not None:
        avg_score = current.avg_score - previous.avg_score
    return QualityDelta(
        pass_rate=current.pass_rate - previous.pass_rate,
        avg_score=avg_score,
        gate_trigger_rate=current.gate_trigger_rate - previous.gate_trigger_rate,
        fallback_rate=current.fallback_rate - previous.fallback_rate,
    )


class QualityDashboardService:
    """Builds the current-vs-previous quality dashboard from stored turns."""

    def __init__(self, repository, thresholds: Optional[AlertThresholds] = None):
        """
        Args:
            repository: QualityTurnRepository (anything with list_between)
            thresholds: Alert thresholds (engine config when omitted)
        """
        self.repository = repository
        self.thresholds = thresholds or engine_config.alerts

    async def build_dashboard(
        self,
        window_hours: int = 24,
        now: Optional[datetime] = None,
        bot_id: Optional[str] = None,
        max_turns: int = DEFAULT_MAX_TURNS,
    ) -> QualityDashboard:
        window_hours = min(MAX_WINDOW_HOURS, max(MIN_WINDOW_HOURS, int(window_hours)))
        now = now or datetime.now(timezone.utc)
        window = timedelta(hours=window_hours)
        current_from = now - window
        previous_from = now - 2 * window

        current_rows = await self.repository.list_between(
            current_from, now, bot_id=bot_id, limit=max_turns
        )
        previous_rows = await self.repository.list_between(
            previous_from, current_from, bot_id=bot_id, limit=max_turns
        )

        current = summarize_quality(current_rows, truncated=len(current_rows) >= max_turns)
        previous = summarize_quality(previous_rows, truncated=len(previous_rows) >= max_turns)
        alerts = build_alerts(current, previous, self.thresholds)

        log.info(
            "quality_dashboard_built",
            window_hours=window_hours,
            bot_id=bot_id,
            current_turns=current.assistant_turns,
            previous_turns=previous.assistant_turns,
            alerts=[a.id for a in alerts],
        )

        return QualityDashboard(
            generated_at=now,
            window_hours=window_hours,
            current=current,
            previous=previous,
            delta=quality_delta(current, previous),
            alerts=alerts,
            top_failing_bots=top_failing_bots(current),
        )
