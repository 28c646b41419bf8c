"""Health check endpoint."""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from leadpilot.dependencies import get_db
from leadpilot.schemas import HealthCheckResponse
from leadpilot.scrapers.factory import get_adapter_factory
from leadpilot.services.cache_service import get_cache
from leadpilot.services.llm_client import get_llm_client

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """Return service health status.

    Checks connectivity to the database and the content cache backend, and
    reports which source adapters and providers are configured.
    """
    services = {}

    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {str(e)}"

    services["database"] = db_status

    cache = await get_cache()
    cache_status = "ok" if await cache.health_check() else "error: unreachable"
    services["cache"] = cache_status

    services["llm"] = "configured" if get_llm_client().configured else "not configured"
    services["adapters"] = ",".join(get_adapter_factory().get_registered_platforms()) or "none"

    overall_status = "ok" if db_status == "ok" and cache_status == "ok" else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        database=db_status,
        cache=cache_status,
        services=services,
    )
