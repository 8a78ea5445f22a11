"""
Bounded regeneration: first attempt, at most one regeneration, then a
deterministic fallback.

Each attempt is generate -> validate. A failed validation feeds its reason
into the next attempt as a prompt hint; a generation error (provider chain
exhausted, unparseable output) counts as a failed attempt. After
max_attempts failures the fallback producer supplies the text, so a turn
never hangs and never surfaces invalid output.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

import structlog

from dialogue_engine.core.exceptions import LLMError
from dialogue_engine.domain.models.post_processing import PostProcessingResult

log = structlog.get_logger(__name__)

Generate = Callable[[Optional[str]], Awaitable[str]]
Validate = Callable[[str], PostProcessingResult]
FallbackProducer = Callable[[], str]


@dataclass
class RegenerationOutcome:
    """Final text of one bounded generation plus what happened on the way."""

    text: str
    attempts: int
    fallback_used: bool
    failures: List[PostProcessingResult] = field(default_factory=list)
    generation_errors: List[str] = field(default_factory=list)
    first_attempt_rejected: bool = False

    @property
    def regenerated(self) -> bool:
        return self.attempts > 1

    @property
    def gate_triggered(self) -> bool:
        """True when the first generated text was rejected by a gate."""
        return self.first_attempt_rejected


class BoundedRegeneration:
    """Two-attempt generation with a deterministic fallback."""

    def __init__(self, fallback_producer: FallbackProducer, max_attempts: int = 2):
        if not 1 <= max_attempts <= 2:
            raise ValueError("max_attempts must be 1 or 2")
        self.fallback_producer = fallback_producer
        self.max_attempts = max_attempts

    async def run(
        self, generate: Generate, validate: Validate, source: str = "generation"
    ) -> RegenerationOutcome:
        """
        Generate until a text passes validation or attempts run out.

        Args:
            generate: Coroutine factory; receives the previous rejection
                reason (None on the first attempt)
            validate: Gate applied to every generated text
            source: Call-site name for logging

        Returns:
            RegenerationOutcome
        """
        failures: List[PostProcessingResult] = []
        errors: List[str] = []
        first_attempt_rejected = False
        hint: Optional[str] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                text = await generate(hint)
            except LLMError as e:
                errors.append(str(e))
                log.warning(
                    "generation_attempt_failed",
                    source=source,
                    attempt=attempt,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            verdict = validate(text)
            if verdict.is_valid:
                if attempt > 1:
                    log.info("regeneration_succeeded", source=source, attempt=attempt)
                return RegenerationOutcome(
                    text=text,
                    attempts=attempt,
                    fallback_used=False,
                    failures=failures,
                    generation_errors=errors,
                    first_attempt_rejected=first_attempt_rejected,
                )

            if attempt == 1:
                first_attempt_rejected = True
            failures.append(verdict)
            hint = verdict.reason

        text = self.fallback_producer()
        log.warning(
            "fallback_used",
            source=source,
            attempts=self.max_attempts,
            gate_failures=[f.reason for f in failures],
            generation_errors=len(errors),
        )
        return RegenerationOutcome(
            text=text,
            attempts=self.max_attempts,
            fallback_used=True,
            failures=failures,
            generation_errors=errors,
            first_attempt_rejected=first_attempt_rejected,
        )
