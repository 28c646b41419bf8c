"""External listing API endpoints."""

import math
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from leadpilot.core.exceptions import NotFoundError
from leadpilot.dependencies import get_current_owner, get_listing_repository, require_prospecting_plan
from leadpilot.schemas.common import ApiResponse, PaginationMeta
from leadpilot.schemas.filter import SourcePlatform
from leadpilot.schemas.listing import ListingResponse, ListingStatus, ListingStatusUpdate
from leadpilot.services.listing_repository import ListingRepository

router = APIRouter()


@router.get("", response_model=ApiResponse)
async def list_listings(
    status: Optional[ListingStatus] = None,
    platform: Optional[SourcePlatform] = None,
    filter_id: Optional[UUID] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    owner_id: UUID = Depends(get_current_owner),
    plan: str = Depends(require_prospecting_plan),
    repository: ListingRepository = Depends(get_listing_repository),
):
    """Get the caller's prospected listings, newest first."""
    items, total = await repository.list_for_owner(
        owner_id,
        status=status,
        platform=platform,
        filter_id=filter_id,
        page=page,
        limit=limit,
    )

    return ApiResponse(
        data=[ListingResponse.model_validate(item).model_dump(mode="json") for item in items],
        meta=PaginationMeta(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if total else 0,
        ),
    )


@router.patch("/{listing_id}", response_model=ApiResponse)
async def update_listing_status(
    listing_id: UUID,
    body: ListingStatusUpdate,
    owner_id: UUID = Depends(get_current_owner),
    plan: str = Depends(require_prospecting_plan),
    repository: ListingRepository = Depends(get_listing_repository),
):
    """Mark a listing as new, reviewed or discarded."""
    listing = await repository.update_status(owner_id, listing_id, body.status)
    if listing is None:
        raise NotFoundError("Listing", str(listing_id))

    return ApiResponse(data=ListingResponse.model_validate(listing).model_dump(mode="json"))
