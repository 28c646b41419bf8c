"""Durable content-cache rows for externally generated results."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from leadpilot.models.base import Base, UUIDPrimaryKeyMixin


class CacheEntry(UUIDPrimaryKeyMixin, Base):
    """One cached generation result, keyed by namespace + input hash."""

    __tablename__ = "ai_response_cache"

    cache_key: Mapped[str] = mapped_column(String(160), nullable=False, unique=True)
    namespace: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    value: Mapped[dict] = mapped_column(JSON, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    hit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<CacheEntry(key='{self.cache_key}', expires_at={self.expires_at})>"
