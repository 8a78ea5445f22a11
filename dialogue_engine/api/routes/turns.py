"""
Turn API routes.

One stateless endpoint: the caller sends the conversation state, the plan
and a recent transcript slice, and receives the next assistant turn. The
quality metadata of every produced turn is persisted for the dashboard.
"""

import uuid
from datetime import datetime, timezone

from fastapi import APIRouter
import structlog

from dialogue_engine.api.dependencies import (
    EngineBuilderDep,
    QualityTurnRepoDep,
    TokenUsageDep,
)
from dialogue_engine.api.schemas import TurnRequest, TurnResponse
from dialogue_engine.core.logging import bind_context
from dialogue_engine.domain.models.quality import QualityTurnRecord

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/turns", tags=["turns"])


# ============ TURN PROCESSING ============


@router.post("", response_model=TurnResponse)
async def produce_turn(
    request: TurnRequest,
    build_engine: EngineBuilderDep,
    quality_repo: QualityTurnRepoDep,
    usage_service: TokenUsageDep,
):
    """Produce the next assistant turn of a conversation.

    Returns 409 when the conversation is already completed.
    """
    conversation_id = request.state.conversation_id
    bind_context(conversation_id=conversation_id)

    engine = build_engine(usage_service.collector_for(conversation_id))
    result = await engine.produce_turn(request.state, request.plan, request.transcript)

    await quality_repo.save(
        QualityTurnRecord(
            id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            bot_id=request.state.bot_id,
            organization_id=request.state.organization_id,
            phase=result.new_phase.value,
            created_at=datetime.now(timezone.utc),
            metadata=result.quality,
        )
    )

    usage = usage_service.get_conversation_usage(conversation_id)
    if result.is_completed:
        usage_service.clear_conversation(conversation_id)

    log.info(
        "turn_request_completed",
        phase=result.new_phase.value,
        is_completed=result.is_completed,
    )

    return TurnResponse(
        assistant_text=result.assistant_text,
        new_phase=result.new_phase,
        new_topic_index=result.new_topic_index,
        is_completed=result.is_completed,
        state=result.state,
        quality=result.quality,
        field_result=result.field_result,
        usage=usage,
    )
