"""
Quality dashboard routes.

Read-only aggregation of per-turn quality telemetry.
"""

from typing import Optional

from fastapi import APIRouter, Query

from dialogue_engine.api.dependencies import DashboardServiceDep
from dialogue_engine.domain.models.quality import QualityDashboard

router = APIRouter(prefix="/quality", tags=["quality"])


@router.get("/summary", response_model=QualityDashboard)
async def get_quality_summary(
    dashboard_service: DashboardServiceDep,
    window_hours: int = Query(default=24, description="Window length, clamped to 1-168"),
    bot_id: Optional[str] = Query(default=None, description="Restrict to one bot"),
):
    """Current window vs the previous one, with alerts and the worst bots."""
    return await dashboard_service.build_dashboard(
        window_hours=window_hours, bot_id=bot_id
    )
