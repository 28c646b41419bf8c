"""Health check schema."""

from typing import Dict

from pydantic import BaseModel


class HealthCheckResponse(BaseModel):
    """Service health status."""

    status: str
    database: str
    cache: str
    services: Dict[str, str] = {}
