"""
LLM client abstraction for multiple LLM providers.

Provides async interface for LLM calls with:
- Structured logging of requests/responses
- Bounded timeout and one retry on timeout/rate-limit per call
- Usage tracking (tokens)
- Task-routed fallback chains built from the engine config routing table

Supported providers:
- anthropic: Claude models (Messages API)
- openai: GPT models (Chat Completions API)
- kimi: Moonshot AI models (OpenAI-compatible)
- deepseek: DeepSeek models (OpenAI-compatible)
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
import structlog

from dialogue_engine.core.config import (
    EngineConfig,
    ModelDescriptor,
    Settings,
    engine_config,
    settings,
)
from dialogue_engine.core.exceptions import (
    ConfigurationError,
    LLMError,
    LLMFallbackExhaustedError,
    LLMRateLimitError,
    LLMTimeoutError,
)

log = structlog.get_logger(__name__)

# Base URLs of providers that speak the OpenAI chat-completions format
OPENAI_COMPATIBLE_BASE_URLS = {
    "openai": "https://api.openai.com/v1",
    "kimi": "https://api.moonshot.ai/v1",
    "deepseek": "https://api.deepseek.com",
}


# =============================================================================
# Response and Base Classes
# =============================================================================


@dataclass
class LLMResponse:
    """Standardized LLM response."""

    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0
    raw_response: Optional[Dict[str, Any]] = None
    provider: Optional[str] = None


class LLMClient(ABC):
    """Abstract base for LLM providers."""

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            prompt: User message/prompt
            system: Optional system prompt
            temperature: Sampling temperature (0.0-2.0)
            max_tokens: Maximum tokens in response
            timeout: Optional timeout override in seconds

        Returns:
            LLMResponse with content and metadata
        """
        pass


class HTTPLLMClient(LLMClient):
    """Shared request/retry loop for HTTP providers."""

    provider_name = "unknown"
    max_retries = 1  # 2 total attempts
    base_delay = 1.0  # seconds

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        task: str,
        api_key: str,
        base_url: str,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.task = task
        self.api_key = api_key
        self.base_url = base_url

        log.info(
            "llm_client_initialized",
            provider=self.provider_name,
            task=self.task,
            model=self.model,
            timeout=self.timeout,
        )

    @abstractmethod
    def _request(
        self, prompt: str, system: Optional[str], temperature: float, max_tokens: int
    ) -> tuple:
        """Return (path, headers, payload) for one call."""

    @abstractmethod
    def _parse(self, data: Dict[str, Any]) -> tuple:
        """Return (content, usage) from a provider response body."""

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """
        Call the provider with automatic retry on timeout/rate-limit.

        Raises:
            LLMTimeoutError: After all retries exhausted on timeout
            LLMRateLimitError: After all retries exhausted on rate limit (429)
            httpx.HTTPStatusError: On other API errors (no retry)
        """
        # Use instance defaults if not provided
        temperature = self.temperature if temperature is None else temperature
        max_tokens = self.max_tokens if max_tokens is None else max_tokens
        timeout = self.timeout if timeout is None else timeout

        # Build once; retries resend the same payload
        path, headers, payload = self._request(prompt, system, temperature, max_tokens)

        for attempt in range(self.max_retries + 1):
            start = time.perf_counter()

            log.debug(
                "llm_call_start",
                provider=self.provider_name,
                task=self.task,
                model=self.model,
                prompt_length=len(prompt),
                temperature=temperature,
                max_tokens=max_tokens,
                attempt=attempt + 1,
            )

            try:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.post(
                        f"{self.base_url}{path}", headers=headers, json=payload
                    )
                    response.raise_for_status()
                    data = response.json()

                latency_ms = (time.perf_counter() - start) * 1000

                # Extract content and token usage from the provider body
                content, usage = self._parse(data)

                log.info(
                    "llm_call_complete",
                    provider=self.provider_name,
                    task=self.task,
                    model=self.model,
                    latency_ms=round(latency_ms, 2),
                    input_tokens=usage["input_tokens"],
                    output_tokens=usage["output_tokens"],
                    attempt=attempt + 1,
                )

                return LLMResponse(
                    content=content,
                    model=data.get("model", self.model),
                    usage=usage,
                    latency_ms=latency_ms,
                    raw_response=data,
                    provider=self.provider_name,
                )

            except httpx.TimeoutException as e:
                log.warning(
                    "llm_timeout",
                    provider=self.provider_name,
                    attempt=attempt + 1,
                    timeout_seconds=timeout,
                )
                if attempt >= self.max_retries:
                    raise LLMTimeoutError(
                        f"{self.provider_name}/{self.model} timed out after "
                        f"{self.max_retries + 1} attempts (timeout={timeout}s)"
                    ) from e

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                # Don't retry other 4xx/5xx errors
                if status_code != 429:
                    log.error(
                        "llm_http_error",
                        provider=self.provider_name,
                        status_code=status_code,
                    )
                    raise
                log.warning(
                    "llm_rate_limit", provider=self.provider_name, attempt=attempt + 1
                )
                if attempt >= self.max_retries:
                    raise LLMRateLimitError(
                        f"{self.provider_name}/{self.model} rate limited after "
                        f"{self.max_retries + 1} attempts"
                    ) from e

            # Exponential backoff before the next attempt
            delay = self.base_delay * (2**attempt)
            log.info("llm_retry", delay_seconds=delay, next_attempt=attempt + 2)
            await asyncio.sleep(delay)

        # Unreachable: loop either returns LLMResponse or raises an exception
        assert False, "unreachable"


# =============================================================================
# Anthropic Client
# =============================================================================


class AnthropicClient(HTTPLLMClient):
    """Anthropic Claude API client (Messages API)."""

    provider_name = "anthropic"

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        task: str,
        api_key: Optional[str] = None,
    ):
        api_key = api_key or settings.anthropic_api_key
        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY not configured. Set it in .env.")
        super().__init__(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            task=task,
            api_key=api_key,
            base_url="https://api.anthropic.com/v1",
        )

    def _request(self, prompt, system, temperature, max_tokens):
        headers = {
            "x-api-key": self.api_key,
            "content-type": "application/json",
            "anthropic-version": "2023-06-01",
        }
        # Messages API takes the system prompt as a top-level field
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
        }
        if system:
            payload["system"] = system
        return "/messages", headers, payload

    def _parse(self, data):
        # Extract text from the first content block
        content = ""
        if data.get("content"):
            content = data["content"][0].get("text", "")
        usage = {
            "input_tokens": data.get("usage", {}).get("input_tokens", 0),
            "output_tokens": data.get("usage", {}).get("output_tokens", 0),
        }
        return content, usage


# =============================================================================
# OpenAI-Compatible Clients
# =============================================================================


class OpenAICompatibleClient(HTTPLLMClient):
    """
    Client for providers that follow the OpenAI chat-completions format
    (OpenAI, Kimi, DeepSeek).
    """

    def __init__(
        self,
        provider: str,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        task: str,
        api_key: Optional[str] = None,
    ):
        if provider not in OPENAI_COMPATIBLE_BASE_URLS:
            raise ValueError(f"Unknown OpenAI-compatible provider '{provider}'")
        self.provider_name = provider
        api_key = api_key or settings.api_key_for(provider)
        if not api_key:
            raise ValueError(
                f"{provider.upper()}_API_KEY not configured. Set it in .env."
            )
        super().__init__(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            task=task,
            api_key=api_key,
            base_url=OPENAI_COMPATIBLE_BASE_URLS[provider],
        )

    def _request(self, prompt, system, temperature, max_tokens):
        messages = []
        # Build messages array
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        return "/chat/completions", headers, payload

    def _parse(self, data):
        content = ""
        # Extract content from OpenAI-compatible response
        if data.get("choices"):
            content = data["choices"][0].get("message", {}).get("content", "") or ""
        usage = {
            "input_tokens": data.get("usage", {}).get("prompt_tokens", 0),
            "output_tokens": data.get("usage", {}).get("completion_tokens", 0),
        }
        return content, usage


# =============================================================================
# Fallback Chain
# =============================================================================


class FallbackLLMClient(LLMClient):
    """
    Tries each client of a task's chain in order until one answers.

    Provider failures (timeouts, rate limits, HTTP and transport errors,
    undecodable bodies) move on to the next model; when the chain is
    exhausted LLMFallbackExhaustedError is raised so the caller can resolve
    the turn deterministically.
    """

    def __init__(self, task: str, clients: List[LLMClient]):
        if not clients:
            raise ConfigurationError(f"No usable LLM client for task '{task}'")
        self.task = task
        self.clients = clients

    @property
    def model(self) -> str:
        return getattr(self.clients[0], "model", "unknown")

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        errors: List[str] = []
        for position, client in enumerate(self.clients):
            try:
                return await client.complete(
                    prompt,
                    system=system,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    timeout=timeout,
                )
            # ValueError covers undecodable JSON bodies
            except (LLMError, httpx.HTTPError, ValueError) as e:
                model = getattr(client, "model", type(client).__name__)
                errors.append(f"{model}: {type(e).__name__}")
                log.warning(
                    "llm_fallback",
                    task=self.task,
                    failed_model=model,
                    position=position,
                    error_type=type(e).__name__,
                    remaining=len(self.clients) - position - 1,
                )
        # Every model in the chain failed
        log.error("llm_fallback_exhausted", task=self.task, errors=errors)
        raise LLMFallbackExhaustedError(self.task, errors)


# =============================================================================
# Client Factory Functions
# =============================================================================


def create_client(
    descriptor: ModelDescriptor, task: str, api_key: Optional[str] = None
) -> LLMClient:
    """Instantiate the provider client for one routing-table entry.

    Raises:
        ValueError: If the provider's API key is missing
    """
    kwargs = dict(
        model=descriptor.model,
        temperature=descriptor.temperature,
        max_tokens=descriptor.max_tokens,
        timeout=descriptor.timeout,
        task=task,
        api_key=api_key,
    )
    # Create client based on provider
    if descriptor.provider == "anthropic":
        return AnthropicClient(**kwargs)
    return OpenAICompatibleClient(provider=descriptor.provider, **kwargs)


def get_llm_client(
    task: str,
    config: Optional[EngineConfig] = None,
    app_settings: Optional[Settings] = None,
) -> FallbackLLMClient:
    """
    Build the fallback chain for a task from the routing table.

    Entries whose provider has no API key are skipped.

    Raises:
        ConfigurationError: If the task is not routed or no entry is usable
    """
    config = config or engine_config
    app_settings = app_settings or settings

    try:
        chain = config.chain_for(task)
    except KeyError as e:
        raise ConfigurationError(f"No model routing configured for task '{task}'") from e

    clients: List[LLMClient] = []
    for descriptor in chain:
        # Skip entries whose provider has no key configured
        api_key = app_settings.api_key_for(descriptor.provider)
        if not api_key:
            log.info(
                "llm_chain_entry_skipped",
                task=task,
                provider=descriptor.provider,
                model=descriptor.model,
                reason="missing_api_key",
            )
            continue
        clients.append(create_client(descriptor, task, api_key=api_key))

    return FallbackLLMClient(task, clients)
