"""Prospecting filter API endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leadpilot.dependencies import get_current_owner, get_db, require_prospecting_plan
from leadpilot.schemas.common import ApiResponse
from leadpilot.schemas.filter import FilterCreateRequest, FilterResponse, FilterUpdateRequest
from leadpilot.services.filter_service import FilterService

router = APIRouter()


@router.get("", response_model=ApiResponse)
async def list_filters(
    is_active: Optional[bool] = None,
    owner_id: UUID = Depends(get_current_owner),
    plan: str = Depends(require_prospecting_plan),
    db: AsyncSession = Depends(get_db),
):
    """Get the caller's prospecting filters, newest first."""
    service = FilterService(db)
    filters = await service.list_filters(owner_id, is_active=is_active)

    return ApiResponse(
        data=[FilterResponse.model_validate(f).model_dump(mode="json") for f in filters],
    )


@router.post("", response_model=ApiResponse, status_code=201)
async def create_filter(
    body: FilterCreateRequest,
    owner_id: UUID = Depends(get_current_owner),
    plan: str = Depends(require_prospecting_plan),
    db: AsyncSession = Depends(get_db),
):
    """Create a prospecting filter within the plan's filter limit."""
    service = FilterService(db)
    prospecting_filter = await service.create_filter(
        owner_id=owner_id,
        plan=plan,
        name=body.name,
        criteria=body.criteria.model_dump(mode="json", exclude_none=True),
        is_active=body.is_active,
        auto_run=body.auto_run,
    )

    return ApiResponse(
        data=FilterResponse.model_validate(prospecting_filter).model_dump(mode="json"),
        message="Filter created",
    )


@router.patch("/{filter_id}", response_model=ApiResponse)
async def update_filter(
    filter_id: UUID,
    body: FilterUpdateRequest,
    owner_id: UUID = Depends(get_current_owner),
    plan: str = Depends(require_prospecting_plan),
    db: AsyncSession = Depends(get_db),
):
    """Partially update a prospecting filter."""
    service = FilterService(db)
    criteria = body.criteria.model_dump(mode="json", exclude_none=True) if body.criteria else None
    prospecting_filter = await service.update_filter(
        owner_id,
        filter_id,
        name=body.name,
        criteria=criteria,
        is_active=body.is_active,
        auto_run=body.auto_run,
    )

    return ApiResponse(
        data=FilterResponse.model_validate(prospecting_filter).model_dump(mode="json"),
        message="Filter updated",
    )


@router.delete("/{filter_id}", response_model=ApiResponse)
async def delete_filter(
    filter_id: UUID,
    owner_id: UUID = Depends(get_current_owner),
    plan: str = Depends(require_prospecting_plan),
    db: AsyncSession = Depends(get_db),
):
    """Delete a prospecting filter; its listings are kept."""
    service = FilterService(db)
    await service.delete_filter(owner_id, filter_id)

    return ApiResponse(data={"deleted": True}, message="Filter deleted")
