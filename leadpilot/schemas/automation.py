"""Automation trigger Pydantic schemas."""

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class AutomationRequest(BaseModel):
    """Run one filter by id, or every auto_run filter when omitted."""

    filter_id: Optional[UUID] = None


class AutomationResult(BaseModel):
    """Aggregated outcome of one automation run."""

    filters_processed: int = 0
    listings_found: int = 0
    listings_added: int = 0
    errors: Optional[List[str]] = None
