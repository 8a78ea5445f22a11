"""Field validation routes."""

from fastapi import APIRouter

from dialogue_engine.api.schemas import FieldValidationRequest, FieldValidationResponse
from dialogue_engine.services.field_validator import validate_extracted_field

router = APIRouter(prefix="/fields", tags=["fields"])


@router.post("/validate", response_model=FieldValidationResponse)
async def validate_field(request: FieldValidationRequest):
    """Validate one extraction attempt and return the recovery strategy."""
    result = validate_extracted_field(
        request.field_name,
        request.extracted_value,
        request.confidence,
        attempt_number=request.attempt_number,
        language=request.language,
        max_attempts=request.max_attempts,
        user_message=request.user_message,
    )
    return FieldValidationResponse(
        result=result,
        strategy=result.validation.strategy,
        accepted=result.accepted,
        should_skip=result.should_skip,
    )
