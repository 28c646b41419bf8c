"""AI content generation endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request

from leadpilot.core.exceptions import ValidationError
from leadpilot.dependencies import get_client_ip, get_current_owner, get_generator, get_plan
from leadpilot.schemas.common import ApiResponse
from leadpilot.schemas.generation import GENERATION_REQUESTS
from leadpilot.services.generation_service import GenerationService

router = APIRouter()


@router.post("/{namespace}", response_model=ApiResponse)
async def generate(
    namespace: str,
    request: Request,
    owner_id: UUID = Depends(get_current_owner),
    plan: str = Depends(get_plan),
    client_ip: Optional[str] = Depends(get_client_ip),
    service: GenerationService = Depends(get_generator),
):
    """Generate titles, hashtags or a translation for a listing.

    Identical requests are served from the cache without consuming quota.
    """
    schema = GENERATION_REQUESTS.get(namespace)
    if schema is None:
        raise ValidationError(
            f"Unknown generation namespace '{namespace}', expected one of {', '.join(GENERATION_REQUESTS)}"
        )
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")
    body = schema.model_validate(payload)

    content, cached = await service.generate(
        namespace,
        body.model_dump(mode="json"),
        user_id=str(owner_id),
        plan=plan,
        client_ip=client_ip,
    )

    return ApiResponse(data={**content, "cached": cached})
