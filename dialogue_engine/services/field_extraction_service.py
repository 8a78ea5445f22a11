"""Extract one candidate field value from a respondent message."""

from typing import Optional, Tuple

import structlog

from dialogue_engine.core.exceptions import LLMError
from dialogue_engine.domain.models.validation import ConfidenceLevel
from dialogue_engine.llm.client import LLMClient
from dialogue_engine.llm.prompts.intent import FieldExtractionOutput, get_field_extraction_prompt
from dialogue_engine.llm.structured import UsageCollector, generate_structured

log = structlog.get_logger(__name__)


class FieldExtractionService:
    """LLM-backed extraction of a single field (name, email, phone, ...).

    A failed call yields (None, none) so the validator reports
    field_no_value_extracted instead of the turn failing.
    """

    def __init__(
        self, llm_client: LLMClient, usage_collector: Optional[UsageCollector] = None
    ):
        self.llm = llm_client
        self.usage_collector = usage_collector

    async def extract(
        self,
        field_name: str,
        message: str,
        language: str,
        description: Optional[str] = None,
    ) -> Tuple[Optional[str], ConfidenceLevel]:
        if not (message or "").strip():
            return None, ConfidenceLevel.NONE

        try:
            output, _ = await generate_structured(
                self.llm,
                get_field_extraction_prompt(field_name, message, language, description),
                FieldExtractionOutput,
                source="extract_field_from_message",
                temperature=0.0,
                usage_collector=self.usage_collector,
            )
        except LLMError as e:
            log.warning("field_extraction_failed", field_name=field_name, error=str(e))
            return None, ConfidenceLevel.NONE

        value = (output.extracted_value or "").strip() or None
        confidence = ConfidenceLevel(output.confidence)
        log.debug(
            "field_extracted",
            field_name=field_name,
            found=value is not None,
            confidence=confidence.value,
        )
        return value, confidence
