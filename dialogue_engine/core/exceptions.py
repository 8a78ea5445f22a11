"""
Custom exception hierarchy for the dialogue engine.

All application exceptions inherit from DialogueEngineError. Validation
outcomes (field reasons, gate verdicts) are values, not exceptions; the
classes below cover configuration, provider and state-machine failures.
"""


class DialogueEngineError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(DialogueEngineError):
    """Invalid or missing configuration."""

    pass


# =============================================================================
# LLM Errors
# =============================================================================


class LLMError(DialogueEngineError):
    """Base for LLM-related errors."""

    pass


class LLMTimeoutError(LLMError):
    """LLM call timed out."""

    pass


class LLMRateLimitError(LLMError):
    """LLM rate limit exceeded."""

    pass


class LLMResponseParseError(LLMError):
    """Failed to parse LLM response into the requested output shape."""

    pass


class LLMFallbackExhaustedError(LLMError):
    """Every model in a task's fallback chain failed."""

    def __init__(self, task: str, errors: list):
        self.task = task
        self.errors = errors
        super().__init__(
            f"All {len(errors)} model(s) failed for task '{task}': "
            + "; ".join(errors)
        )


# =============================================================================
# Session / Phase Errors
# =============================================================================


class SessionError(DialogueEngineError):
    """Conversation-state error."""

    pass


class SessionCompletedError(SessionError):
    """Attempted to produce a turn for a conversation in a terminal phase."""

    pass


class IllegalPhaseTransitionError(SessionError):
    """Phase change along an edge the state machine does not allow."""

    def __init__(self, source: str, target: str):
        self.source = source
        self.target = target
        super().__init__(f"Illegal phase transition {source} -> {target}")


class InvalidPlanError(SessionError):
    """Interview plan does not match the conversation it is asked to drive."""

    pass


# =============================================================================
# Input Errors
# =============================================================================


class ValidationError(DialogueEngineError):
    """Input validation failed."""

    pass
