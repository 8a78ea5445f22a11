"""
Structured-output LLM calls.

The engine asks providers for a single JSON object and validates it with a
pydantic model. Every call reports its token usage through an optional
usage collector, tagged by call-site name and model, so generation code
never depends on a billing component.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple, Type, TypeVar

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from dialogue_engine.core.exceptions import LLMResponseParseError
from dialogue_engine.llm.client import LLMClient, LLMResponse

log = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


@dataclass(frozen=True)
class UsageEvent:
    """Token usage of one LLM call."""

    source: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)


UsageCollector = Callable[[UsageEvent], None]


def usage_event(source: str, response: LLMResponse) -> UsageEvent:
    input_tokens = int(response.usage.get("input_tokens", 0))
    output_tokens = int(response.usage.get("output_tokens", 0))
    return UsageEvent(
        source=source,
        model=response.model,
        usage={
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
        },
    )


def strip_markdown_fences(text: str) -> str:
    """Strip markdown code fences from an LLM response."""
    text = (text or "").strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def parse_json_object(response_text: str) -> dict:
    """
    Parse the first JSON object in an LLM response.

    Tolerates code fences, prose around the object and trailing commas.

    Raises:
        LLMResponseParseError: If no JSON object can be decoded
    """
    text = strip_markdown_fences(response_text)
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise LLMResponseParseError("No JSON object in LLM response")
        candidate = _TRAILING_COMMA.sub(r"\1", text[start : end + 1])
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError as e:
            raise LLMResponseParseError(f"Invalid JSON in LLM response: {e}") from e
        log.debug("llm_json_repaired", original_length=len(text))

    if not isinstance(data, dict):
        raise LLMResponseParseError("LLM response must be a JSON object")
    return data


def schema_instruction(output_model: Type[BaseModel]) -> str:
    """One-line instruction describing the required JSON shape."""
    fields = ", ".join(f'"{name}": ...' for name in output_model.model_fields)
    return (
        "Respond with a single JSON object and nothing else, exactly in this "
        f"shape: {{{fields}}}"
    )


async def generate_structured(
    client: LLMClient,
    prompt: str,
    output_model: Type[T],
    source: str,
    system: Optional[str] = None,
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    usage_collector: Optional[UsageCollector] = None,
) -> Tuple[T, LLMResponse]:
    """
    Run one structured-output call.

    Args:
        client: LLM client (usually a task FallbackLLMClient)
        prompt: Prompt body; the JSON shape instruction is appended
        output_model: Pydantic model the JSON object must satisfy
        source: Call-site name reported with usage
        system: Optional system prompt
        temperature: Optional temperature override
        max_tokens: Optional max-tokens override
        usage_collector: Receives a UsageEvent after the provider answers

    Returns:
        (validated output, raw LLMResponse)

    Raises:
        LLMError: Provider failure (chain exhausted, timeout, ...)
        LLMResponseParseError: Response does not match output_model
    """
    response = await client.complete(
        prompt=f"{prompt}\n\n{schema_instruction(output_model)}",
        system=system,
        temperature=temperature,
        max_tokens=max_tokens,
    )

    # Usage is billed even when the content turns out unusable
    if usage_collector is not None:
        usage_collector(usage_event(source, response))

    data = parse_json_object(response.content)
    try:
        output = output_model.model_validate(data)
    except PydanticValidationError as e:
        raise LLMResponseParseError(
            f"{source}: response does not match {output_model.__name__}: {e}"
        ) from e
    return output, response
