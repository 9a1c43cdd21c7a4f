"""Rate limit model: daily request counters per principal or per IP."""

from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from finder.database import Base


class RateLimit(Base):
    """Quota counter for exactly one identity (a principal or an IP) and one service.

    ``request_count`` belongs to the UTC day in ``window_start``; a row from
    an earlier day counts as zero until the next increment rewrites it.
    """

    __tablename__ = "rate_limits"
    __table_args__ = (
        UniqueConstraint("principal_id", "service", name="uq_rate_limits_principal_service"),
        UniqueConstraint("ip_address", "service", name="uq_rate_limits_ip_service"),
        CheckConstraint(
            "(principal_id IS NULL) <> (ip_address IS NULL)",
            name="ck_rate_limits_one_identity",
        ),
    )

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    principal_id: Mapped[int | None] = mapped_column(Integer)
    ip_address: Mapped[str | None] = mapped_column(String(45))
    service: Mapped[str] = mapped_column(String(50), nullable=False)

    request_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    daily_limit: Mapped[int] = mapped_column(Integer, nullable=False)
    window_start: Mapped[date] = mapped_column(Date, nullable=False)
    violations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    blocked_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
