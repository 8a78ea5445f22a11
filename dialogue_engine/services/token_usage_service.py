"""
Token usage aggregation for LLM cost tracking.

Implements the usage-collector capability the generators accept: bind a
conversation with collector_for() and pass the returned callable down.
Usage is kept in memory per conversation, organized by model and call
site, with costs from the engine config pricing table.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

import structlog

from dialogue_engine.core.config import EngineConfig, engine_config
from dialogue_engine.llm.structured import UsageCollector, UsageEvent

log = structlog.get_logger(__name__)


@dataclass
class SourceUsage:
    """Token usage and costs of one call site within a model."""

    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    input_cost: float = 0.0
    output_cost: float = 0.0

    @property
    def total_cost(self) -> float:
        return self.input_cost + self.output_cost


@dataclass
class ModelUsage:
    """Usage of one model, keyed by call site."""

    sources: Dict[str, SourceUsage] = field(default_factory=dict)

    def record(
        self,
        source: str,
        input_tokens: int,
        output_tokens: int,
        input_cost: float,
        output_cost: float,
    ) -> None:
        usage = self.sources.setdefault(source, SourceUsage())
        usage.calls += 1
        usage.input_tokens += input_tokens
        usage.output_tokens += output_tokens
        usage.input_cost += input_cost
        usage.output_cost += output_cost


class TokenUsageService:
    """
    In-memory usage aggregation per conversation.

    Usage:
        service = TokenUsageService()
        collector = service.collector_for(conversation_id)
        await question_service.generate_question(..., usage_collector=collector)
        totals = service.get_conversation_usage(conversation_id)
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or engine_config
        # conversation_id -> model -> ModelUsage
        self._usage: Dict[str, Dict[str, ModelUsage]] = {}

    def record(self, conversation_id: str, event: UsageEvent) -> None:
        """Record one LLM call for a conversation."""
        input_tokens = event.usage.get("input_tokens", 0)
        output_tokens = event.usage.get("output_tokens", 0)

        pricing = self.config.get_pricing_for_model(event.model)
        input_cost = output_cost = 0.0
        if pricing is not None:
            input_cost = input_tokens / 1_000_000 * pricing.input_per_million
            output_cost = output_tokens / 1_000_000 * pricing.output_per_million

        models = self._usage.setdefault(conversation_id, {})
        models.setdefault(event.model, ModelUsage()).record(
            source=event.source,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            input_cost=input_cost,
            output_cost=output_cost,
        )

        log.debug(
            "llm_usage_recorded",
            conversation_id=conversation_id,
            model=event.model,
            source=event.source,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            priced=pricing is not None,
        )

    def collector_for(self, conversation_id: str) -> UsageCollector:
        """Usage collector bound to one conversation."""

        def collect(event: UsageEvent) -> None:
            self.record(conversation_id, event)

        return collect

    def get_conversation_usage(self, conversation_id: str) -> Optional[Dict[str, Dict]]:
        """
        Aggregated usage for a conversation, or None if nothing was recorded.

        Format:
        {
            "model_name": {
                "source": {
                    "calls": 2,
                    "input_tokens": 123,
                    "output_tokens": 456,
                    "input_cost": 0.0123,
                    "output_cost": 0.0456,
                    "total_cost": 0.0579
                }
            }
        }
        """
        if conversation_id not in self._usage:
            return None

        result: Dict[str, Dict] = {}
        for model, model_usage in self._usage[conversation_id].items():
            result[model] = {
                source: {
                    "calls": usage.calls,
                    "input_tokens": usage.input_tokens,
                    "output_tokens": usage.output_tokens,
                    "input_cost": round(usage.input_cost, 4),
                    "output_cost": round(usage.output_cost, 4),
                    "total_cost": round(usage.total_cost, 4),
                }
                for source, usage in model_usage.sources.items()
            }
        return result

    def clear_conversation(self, conversation_id: str) -> None:
        """Drop usage of a conversation once it has been persisted."""
        if self._usage.pop(conversation_id, None) is not None:
            log.debug("llm_usage_cleared", conversation_id=conversation_id)


# Global singleton instance
_token_usage_service: Optional[TokenUsageService] = None


def get_token_usage_service() -> TokenUsageService:
    """Get the global TokenUsageService singleton instance."""
    global _token_usage_service
    if _token_usage_service is None:
        _token_usage_service = TokenUsageService()
    return _token_usage_service
