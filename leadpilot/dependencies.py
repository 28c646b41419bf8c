"""FastAPI dependency injection providers."""

import uuid
from typing import AsyncGenerator, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from leadpilot.core.exceptions import AuthError, QuotaError
from leadpilot.db.session import async_session_factory
from leadpilot.services.automation_service import AutomationOrchestrator, get_automation_orchestrator
from leadpilot.services.generation_service import GenerationService, get_generation_service
from leadpilot.services.listing_repository import ListingRepository
from leadpilot.services.rate_limiter import RateLimiter, get_rate_limiter
from leadpilot.services.subscription import (
    SubscriptionLookup,
    get_subscription_lookup,
    plan_allows_prospecting,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for request-scoped usage.

    The session is committed on success or rolled back on error, and
    always closed after the request completes.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_current_owner(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> uuid.UUID:
    """Caller identity as supplied by the upstream auth layer.

    Raises 401 if the header is missing or not a UUID.
    """
    if not x_user_id:
        raise AuthError()
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise AuthError("Invalid user identity")


async def get_subscriptions() -> SubscriptionLookup:
    return get_subscription_lookup()


async def get_plan(
    owner_id: uuid.UUID = Depends(get_current_owner),
    subscriptions: SubscriptionLookup = Depends(get_subscriptions),
) -> str:
    """Subscription plan of the current caller."""
    return await subscriptions.get_plan(owner_id)


async def require_prospecting_plan(plan: str = Depends(get_plan)) -> str:
    """Raises 403 unless the caller's plan includes the prospecting engine."""
    if not plan_allows_prospecting(plan):
        raise QuotaError(
            "Prospecting is a premium feature. Upgrade to the PRO or AGENCY plan.",
            tier="plan",
        )
    return plan


def get_client_ip(request: Request) -> Optional[str]:
    """Client address, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


async def get_limiter() -> RateLimiter:
    return get_rate_limiter()


async def get_orchestrator() -> AutomationOrchestrator:
    return get_automation_orchestrator()


async def get_generator() -> GenerationService:
    return get_generation_service()


async def get_listing_repository() -> ListingRepository:
    return ListingRepository(async_session_factory)
