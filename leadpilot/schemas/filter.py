"""Prospecting filter Pydantic schemas."""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

SourcePlatform = Literal["idealista", "immobiliare", "zillow", "mls", "subito", "casa"]


class FilterCriteria(BaseModel):
    """Open criteria record; unknown keys are kept as-is."""

    model_config = ConfigDict(extra="allow")

    location: Optional[str] = Field(default=None, max_length=200)
    price_min: Optional[float] = Field(default=None, ge=0)
    price_max: Optional[float] = Field(default=None, ge=0)
    property_type: Optional[str] = Field(default=None, max_length=100)
    rooms_min: Optional[int] = Field(default=None, ge=1)
    rooms_max: Optional[int] = Field(default=None, ge=1)
    source_platforms: Optional[List[SourcePlatform]] = None

    @model_validator(mode="after")
    def check_ranges(self) -> "FilterCriteria":
        if self.price_min is not None and self.price_max is not None and self.price_min > self.price_max:
            raise ValueError("price_min must not exceed price_max")
        if self.rooms_min is not None and self.rooms_max is not None and self.rooms_min > self.rooms_max:
            raise ValueError("rooms_min must not exceed rooms_max")
        return self


class FilterCreateRequest(BaseModel):
    """Request to create a prospecting filter."""

    name: str = Field(min_length=1, max_length=200)
    criteria: FilterCriteria = Field(default_factory=FilterCriteria)
    is_active: bool = True
    auto_run: bool = False


class FilterUpdateRequest(BaseModel):
    """Partial update of a prospecting filter."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    criteria: Optional[FilterCriteria] = None
    is_active: Optional[bool] = None
    auto_run: Optional[bool] = None


class FilterResponse(BaseModel):
    """Prospecting filter response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    criteria: dict
    is_active: bool
    auto_run: bool
    last_run_at: Optional[datetime] = None
    listings_found_count: int = 0
    created_at: datetime
    updated_at: datetime
