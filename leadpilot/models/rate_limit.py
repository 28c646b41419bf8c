"""Durable rate-limit window counters."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from leadpilot.models.base import Base, UUIDPrimaryKeyMixin


class RateLimitState(UUIDPrimaryKeyMixin, Base):
    """Window counter for one identity on one tier.

    The count only goes back to 1 when a new window starts; it is never
    decremented inside a window.
    """

    __tablename__ = "rate_limit_states"
    __table_args__ = (
        UniqueConstraint("identity", "tier", name="uq_rate_limit_states_identity_tier"),
    )

    identity: Mapped[str] = mapped_column(String(200), nullable=False)
    tier: Mapped[str] = mapped_column(String(50), nullable=False)
    window_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<RateLimitState(identity='{self.identity}', tier='{self.tier}', count={self.count})>"
