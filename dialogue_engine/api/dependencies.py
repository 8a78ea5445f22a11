"""Dependency injection for API routes."""

from functools import lru_cache
from typing import Annotated, Callable, Optional

from fastapi import Depends

from dialogue_engine.core.config import engine_config, settings
from dialogue_engine.llm.client import LLMClient, get_llm_client
from dialogue_engine.llm.structured import UsageCollector
from dialogue_engine.persistence.repositories.quality_turn_repo import QualityTurnRepository
from dialogue_engine.services.field_extraction_service import FieldExtractionService
from dialogue_engine.services.intent_service import IntentService
from dialogue_engine.services.quality_service import QualityDashboardService
from dialogue_engine.services.question_service import QuestionService
from dialogue_engine.services.token_usage_service import (
    TokenUsageService,
    get_token_usage_service,
)
from dialogue_engine.services.turn_service import DialogueEngine

EngineBuilder = Callable[[Optional[UsageCollector]], DialogueEngine]


@lru_cache(maxsize=None)
def get_shared_llm_client(task: str) -> LLMClient:
    """Cached fallback client for one routed task.

    Created once per process and reused across requests.
    """
    return get_llm_client(task)


def build_dialogue_engine(usage_collector: Optional[UsageCollector] = None) -> DialogueEngine:
    """Wire a DialogueEngine on the shared task clients."""
    question_service = QuestionService(
        get_shared_llm_client("question_generation"),
        offer_client=get_shared_llm_client("extension_offer"),
        data_client=get_shared_llm_client("field_question"),
        usage_collector=usage_collector,
    )
    return DialogueEngine(
        question_service,
        intent_service=IntentService(
            get_shared_llm_client("intent_classification"), usage_collector
        ),
        field_extraction_service=FieldExtractionService(
            get_shared_llm_client("field_extraction"), usage_collector
        ),
        config=engine_config,
    )


def get_engine_builder() -> EngineBuilder:
    """FastAPI dependency returning the engine builder.

    The engine is built per request so usage can be bound to the
    conversation of that request.
    """
    return build_dialogue_engine


def get_quality_turn_repository() -> QualityTurnRepository:
    """FastAPI dependency injection for QualityTurnRepository."""
    return QualityTurnRepository(str(settings.database_path))


def get_quality_dashboard_service(
    repository: QualityTurnRepository = Depends(get_quality_turn_repository),
) -> QualityDashboardService:
    return QualityDashboardService(repository, engine_config.alerts)


# Type aliases for dependency injection
EngineBuilderDep = Annotated[EngineBuilder, Depends(get_engine_builder)]
QualityTurnRepoDep = Annotated[QualityTurnRepository, Depends(get_quality_turn_repository)]
DashboardServiceDep = Annotated[
    QualityDashboardService, Depends(get_quality_dashboard_service)
]
TokenUsageDep = Annotated[TokenUsageService, Depends(get_token_usage_service)]
