"""Prospecting automation trigger endpoint."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends

from leadpilot.core.exceptions import QuotaError
from leadpilot.dependencies import get_current_owner, get_limiter, get_orchestrator, require_prospecting_plan
from leadpilot.schemas.automation import AutomationRequest, AutomationResult
from leadpilot.schemas.common import ApiResponse
from leadpilot.services.automation_service import AutomationOrchestrator
from leadpilot.services.rate_limiter import TIER_BURST, RateLimiter

router = APIRouter()


@router.post("", response_model=ApiResponse)
async def run_automation(
    body: Optional[AutomationRequest] = None,
    owner_id: UUID = Depends(get_current_owner),
    plan: str = Depends(require_prospecting_plan),
    limiter: RateLimiter = Depends(get_limiter),
    orchestrator: AutomationOrchestrator = Depends(get_orchestrator),
):
    """Run one filter by id, or every active auto_run filter.

    Burst-limited under the "scraping" category.
    """
    limit = await limiter.check(str(owner_id), TIER_BURST, category="scraping")
    if not limit.allowed:
        raise QuotaError(
            limit.message or "Too many automation runs. Please wait before retrying.",
            tier=TIER_BURST,
            retry_after=limit.retry_after,
        )

    filter_id = body.filter_id if body else None
    report = await orchestrator.run(owner_id, filter_id=filter_id)

    if report.filters_processed == 0 and not report.errors:
        message = "No active filters to run"
    else:
        message = f"Processed {report.filters_processed} filters"

    return ApiResponse(
        data=AutomationResult(**report.to_dict()).model_dump(mode="json", exclude_none=True),
        message=message,
    )
