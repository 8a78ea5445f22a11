"""Test doubles shared across test modules."""

import json
from unittest.mock import AsyncMock

from dialogue_engine.domain.models.conversation import Message, Role
from dialogue_engine.llm.client import LLMClient, LLMResponse


def llm_response(payload, model: str = "test-model") -> LLMResponse:
    """LLMResponse carrying a JSON body (dict) or raw text (str)."""
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return LLMResponse(
        content=content,
        model=model,
        usage={"input_tokens": 100, "output_tokens": 20},
        latency_ms=12.0,
    )


def scripted_client(*payloads, model: str = "test-model") -> AsyncMock:
    """AsyncMock LLM client answering with the given payloads in order.

    An exception instance in payloads is raised instead of answered.
    """
    client = AsyncMock(spec=LLMClient)
    client.model = model
    client.complete.side_effect = [
        p if isinstance(p, Exception) else llm_response(p, model=model) for p in payloads
    ]
    return client


def message(role: str, text: str) -> Message:
    return Message(role=Role(role), text=text)
