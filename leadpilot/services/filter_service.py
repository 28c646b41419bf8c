"""Prospecting filter service: CRUD plus run bookkeeping."""

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leadpilot.core.exceptions import NotFoundError, ValidationError
from leadpilot.models.filter import ProspectingFilter
from leadpilot.services.subscription import filter_limit_for

logger = structlog.get_logger(__name__)


class FilterService:
    """Handles CRUD for prospecting filters, scoped to their owner."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="filter_service")

    async def list_filters(
        self, owner_id: uuid.UUID, is_active: Optional[bool] = None
    ) -> List[ProspectingFilter]:
        """Get an owner's filters, newest first."""
        stmt = select(ProspectingFilter).where(ProspectingFilter.owner_id == owner_id)
        if is_active is not None:
            stmt = stmt.where(ProspectingFilter.is_active == is_active)
        stmt = stmt.order_by(ProspectingFilter.created_at.desc())

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_filter(self, owner_id: uuid.UUID, filter_id: uuid.UUID) -> ProspectingFilter:
        """Get one filter.

        Raises:
            NotFoundError: If the owner has no such filter
        """
        result = await self.db.execute(
            select(ProspectingFilter).where(
                ProspectingFilter.id == filter_id,
                ProspectingFilter.owner_id == owner_id,
            )
        )
        prospecting_filter = result.scalar_one_or_none()
        if prospecting_filter is None:
            raise NotFoundError("Filter", str(filter_id))
        return prospecting_filter

    async def count_filters(self, owner_id: uuid.UUID) -> int:
        total = await self.db.scalar(
            select(func.count(ProspectingFilter.id)).where(ProspectingFilter.owner_id == owner_id)
        )
        return int(total or 0)

    async def create_filter(
        self,
        owner_id: uuid.UUID,
        plan: str,
        name: str,
        criteria: Optional[dict] = None,
        is_active: bool = True,
        auto_run: bool = False,
    ) -> ProspectingFilter:
        """Create a filter within the plan's filter limit.

        Raises:
            ValidationError: If the owner already has the maximum number of filters
        """
        limit = filter_limit_for(plan)
        if await self.count_filters(owner_id) >= limit:
            raise ValidationError(f"Filter limit reached: the {plan} plan allows at most {limit} filters")

        prospecting_filter = ProspectingFilter(
            owner_id=owner_id,
            name=name.strip(),
            criteria=criteria or {},
            is_active=is_active,
            auto_run=auto_run,
            listings_found_count=0,
        )
        self.db.add(prospecting_filter)
        await self.db.flush()
        await self.db.refresh(prospecting_filter)

        self.logger.info("filter_created", owner_id=str(owner_id), filter_id=str(prospecting_filter.id))
        return prospecting_filter

    async def update_filter(
        self, owner_id: uuid.UUID, filter_id: uuid.UUID, **changes
    ) -> ProspectingFilter:
        """Apply a partial update; None values are ignored."""
        prospecting_filter = await self.get_filter(owner_id, filter_id)

        for field_name in ("name", "criteria", "is_active", "auto_run"):
            value = changes.get(field_name)
            if value is None:
                continue
            if field_name == "name":
                value = value.strip()
            setattr(prospecting_filter, field_name, value)

        await self.db.flush()
        await self.db.refresh(prospecting_filter)
        return prospecting_filter

    async def delete_filter(self, owner_id: uuid.UUID, filter_id: uuid.UUID) -> None:
        prospecting_filter = await self.get_filter(owner_id, filter_id)
        await self.db.delete(prospecting_filter)
        await self.db.flush()
        self.logger.info("filter_deleted", owner_id=str(owner_id), filter_id=str(filter_id))

    async def get_filters_for_run(
        self, owner_id: uuid.UUID, filter_id: Optional[uuid.UUID] = None
    ) -> List[ProspectingFilter]:
        """Active filters to run: one by id, or every auto_run filter."""
        stmt = select(ProspectingFilter).where(
            ProspectingFilter.owner_id == owner_id,
            ProspectingFilter.is_active == True,
        )
        if filter_id is not None:
            stmt = stmt.where(ProspectingFilter.id == filter_id)
        else:
            stmt = stmt.where(ProspectingFilter.auto_run == True)

        result = await self.db.execute(stmt.order_by(ProspectingFilter.created_at))
        return list(result.scalars().all())

    async def get_auto_run_owners(self) -> List[uuid.UUID]:
        """Owners with at least one active auto_run filter."""
        result = await self.db.execute(
            select(ProspectingFilter.owner_id)
            .where(ProspectingFilter.is_active == True, ProspectingFilter.auto_run == True)
            .distinct()
        )
        return list(result.scalars().all())

    async def mark_run(self, added_counts: Dict[uuid.UUID, int]) -> None:
        """Stamp last_run_at and add each filter's new listings to its counter."""
        now = datetime.now(timezone.utc)
        for filter_id, added in added_counts.items():
            await self.db.execute(
                update(ProspectingFilter)
                .where(ProspectingFilter.id == filter_id)
                .values(
                    last_run_at=now,
                    listings_found_count=ProspectingFilter.listings_found_count + added,
                )
            )
        await self.db.flush()
