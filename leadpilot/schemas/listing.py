"""External listing Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

ListingStatus = Literal["new", "reviewed", "discarded"]


class ListingResponse(BaseModel):
    """Persisted external listing."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    filter_id: Optional[UUID] = None
    source_url: str
    source_url_hash: str
    source_platform: str
    title: Optional[str] = None
    price: Optional[Decimal] = None
    location: Optional[str] = None
    raw_data: dict
    lead_score: Optional[int] = None
    status: ListingStatus
    created_at: datetime


class ListingStatusUpdate(BaseModel):
    """Request to change a listing's status."""

    status: ListingStatus
