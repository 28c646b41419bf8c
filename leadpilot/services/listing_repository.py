"""Repository for external listings, keyed by owner and id."""

import uuid
from decimal import Decimal
from typing import List, Optional, Tuple

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadpilot.core.exceptions import PersistenceError, ValidationError
from leadpilot.models.listing import LISTING_STATUSES, ExternalListing

logger = structlog.get_logger(__name__)


class ListingRepository:
    """Storage operations for ExternalListing.

    Each method opens its own short-lived session, so concurrent
    automation workers never share one.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self.logger = logger.bind(service="listing_repository")

    async def find_by_hash(self, owner_id: uuid.UUID, url_hash: str) -> Optional[ExternalListing]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ExternalListing).where(
                    ExternalListing.owner_id == owner_id,
                    ExternalListing.source_url_hash == url_hash,
                )
            )
            return result.scalar_one_or_none()

    async def upsert_if_absent(
        self,
        owner_id: uuid.UUID,
        url_hash: str,
        source_url: str,
        source_platform: str,
        title: Optional[str] = None,
        price: Optional[Decimal] = None,
        location: Optional[str] = None,
        raw_data: Optional[dict] = None,
        lead_score: Optional[int] = None,
        filter_id: Optional[uuid.UUID] = None,
    ) -> Tuple[bool, uuid.UUID]:
        """Insert a listing unless (owner_id, url_hash) already exists.

        One INSERT ... ON CONFLICT DO NOTHING RETURNING id against the unique
        constraint, so concurrent callers cannot both insert.

        Returns:
            Tuple of (added, listing id)

        Raises:
            PersistenceError: If the write fails
        """
        try:
            async with self.session_factory() as session:
                insert = pg_insert if session.bind.dialect.name == "postgresql" else sqlite_insert
                stmt = (
                    insert(ExternalListing.__table__)
                    .values(
                        id=uuid.uuid4(),
                        owner_id=owner_id,
                        filter_id=filter_id,
                        source_url=source_url,
                        source_url_hash=url_hash,
                        source_platform=source_platform,
                        title=title,
                        price=price,
                        location=location,
                        raw_data=raw_data or {},
                        lead_score=lead_score,
                        status="new",
                    )
                    .on_conflict_do_nothing(index_elements=["owner_id", "source_url_hash"])
                    .returning(ExternalListing.__table__.c.id)
                )
                result = await session.execute(stmt)
                new_id = result.scalar_one_or_none()
                await session.commit()

                if new_id is not None:
                    return True, new_id

                existing = await session.execute(
                    select(ExternalListing.id).where(
                        ExternalListing.owner_id == owner_id,
                        ExternalListing.source_url_hash == url_hash,
                    )
                )
                return False, existing.scalar_one()
        except SQLAlchemyError as e:
            self.logger.error("listing_upsert_failed", url=source_url, error=str(e))
            raise PersistenceError(f"Failed to save listing {source_url}: {e.__class__.__name__}") from e

    async def update_status(
        self, owner_id: uuid.UUID, listing_id: uuid.UUID, status: str
    ) -> Optional[ExternalListing]:
        """Set a listing's status; None if the owner has no such listing."""
        if status not in LISTING_STATUSES:
            raise ValidationError(f"Invalid status '{status}', expected one of {', '.join(LISTING_STATUSES)}")
        return await self._update(owner_id, listing_id, status=status)

    async def update_score(
        self, owner_id: uuid.UUID, listing_id: uuid.UUID, lead_score: Optional[int]
    ) -> Optional[ExternalListing]:
        """Set or clear a listing's lead score."""
        if lead_score is not None and not 0 <= lead_score <= 100:
            raise ValidationError("lead_score must be between 0 and 100")
        return await self._update(owner_id, listing_id, lead_score=lead_score)

    async def _update(self, owner_id: uuid.UUID, listing_id: uuid.UUID, **values) -> Optional[ExternalListing]:
        async with self.session_factory() as session:
            result = await session.execute(
                update(ExternalListing)
                .where(ExternalListing.id == listing_id, ExternalListing.owner_id == owner_id)
                .values(**values)
            )
            await session.commit()
            if not result.rowcount:
                return None
            return await session.get(ExternalListing, listing_id, populate_existing=True)

    async def list_for_owner(
        self,
        owner_id: uuid.UUID,
        status: Optional[str] = None,
        platform: Optional[str] = None,
        filter_id: Optional[uuid.UUID] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[ExternalListing], int]:
        """Page through an owner's listings, newest first.

        Returns:
            Tuple of (listings on this page, total matching)
        """
        conditions = [ExternalListing.owner_id == owner_id]
        if status:
            conditions.append(ExternalListing.status == status)
        if platform:
            conditions.append(ExternalListing.source_platform == platform)
        if filter_id:
            conditions.append(ExternalListing.filter_id == filter_id)

        async with self.session_factory() as session:
            total = await session.scalar(select(func.count(ExternalListing.id)).where(*conditions))
            result = await session.execute(
                select(ExternalListing)
                .where(*conditions)
                .order_by(ExternalListing.created_at.desc(), ExternalListing.id)
                .offset((page - 1) * limit)
                .limit(limit)
            )
            return list(result.scalars().all()), int(total or 0)
