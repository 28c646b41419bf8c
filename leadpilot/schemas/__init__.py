"""Pydantic schemas for the LeadPilot API."""

from leadpilot.schemas.common import ApiResponse, PaginationMeta, error_envelope
from leadpilot.schemas.filter import (
    FilterCreateRequest,
    FilterCriteria,
    FilterResponse,
    FilterUpdateRequest,
)
from leadpilot.schemas.listing import ListingResponse, ListingStatusUpdate
from leadpilot.schemas.automation import AutomationRequest, AutomationResult
from leadpilot.schemas.generation import (
    GENERATION_REQUESTS,
    HashtagsRequest,
    TitlesRequest,
    TranslateRequest,
)
from leadpilot.schemas.health import HealthCheckResponse

__all__ = [
    # Common
    "ApiResponse",
    "PaginationMeta",
    "error_envelope",
    # Filters
    "FilterCreateRequest",
    "FilterCriteria",
    "FilterResponse",
    "FilterUpdateRequest",
    # Listings
    "ListingResponse",
    "ListingStatusUpdate",
    # Automation
    "AutomationRequest",
    "AutomationResult",
    # Generation
    "GENERATION_REQUESTS",
    "HashtagsRequest",
    "TitlesRequest",
    "TranslateRequest",
    # Health
    "HealthCheckResponse",
]
