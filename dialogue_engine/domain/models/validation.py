"""Field-extraction validation models.

Failure reasons and recovery strategies are closed enums; a validation
outcome is a value, produced fresh per attempt and never mutated.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class FieldType(str, Enum):
    """Semantic type of a candidate field, inferred from its name."""

    EMAIL = "email"
    PHONE = "phone"
    URL = "url"
    TEXT = "text"


class ConfidenceLevel(str, Enum):
    """Extractor confidence in a field value."""

    HIGH = "high"
    LOW = "low"
    NONE = "none"


class ValidationFailureReason(str, Enum):
    """Why an extracted field value was rejected."""

    EMAIL_INVALID_FORMAT = "email_invalid_format"
    EMAIL_INCOMPLETE = "email_incomplete"
    PHONE_INVALID_FORMAT = "phone_invalid_format"
    URL_INVALID_FORMAT = "url_invalid_format"
    FIELD_NO_VALUE_EXTRACTED = "field_no_value_extracted"
    INTENT_UNCLEAR = "intent_unclear"
    INTENT_NEUTRAL = "intent_neutral"
    RESPONSE_TOO_BRIEF = "response_too_brief"
    CLARIFICATION_NEEDED = "clarification_needed"
    USER_SKIP_REQUESTED = "user_skip_requested"


class ReengagementStrategy(str, Enum):
    """How to recover after a failed field extraction."""

    EXPLAIN_BETTER = "explain_better"
    ASK_DIFFERENTLY = "ask_differently"
    SKIP_FIELD = "skip_field"
    MOVE_ON = "move_on"
    ACCEPT_AND_CONTINUE = "accept_and_continue"
    GIVE_EXAMPLE = "give_example"
    ACCEPT_SKIP_NOTIFY = "accept_skip_notify"


class ValidationResponse(BaseModel):
    """Outcome of one field-extraction attempt."""

    model_config = ConfigDict(frozen=True)

    is_valid: bool
    reason: Optional[ValidationFailureReason] = None
    confidence: ConfidenceLevel = ConfidenceLevel.NONE
    feedback: Optional[str] = None
    strategy: ReengagementStrategy = ReengagementStrategy.MOVE_ON
    attempt_number: int = 1
    max_attempts: int = 2
    extracted_value: Optional[str] = None


class FieldExtractionResult(BaseModel):
    """Validated extraction for one field, with the chosen recovery."""

    model_config = ConfigDict(frozen=True)

    field_name: str
    field_type: FieldType
    value: Optional[str] = None
    validation: ValidationResponse

    @property
    def accepted(self) -> bool:
        """True when the value should be stored."""
        return self.validation.is_valid and self.value is not None

    @property
    def should_skip(self) -> bool:
        """True when the field should be abandoned."""
        if self.accepted:
            return False
        return self.validation.strategy in (
            ReengagementStrategy.SKIP_FIELD,
            ReengagementStrategy.ACCEPT_SKIP_NOTIFY,
            ReengagementStrategy.MOVE_ON,
        )
