"""Business search model: the search ledger and result cache."""

from datetime import datetime
from enum import StrEnum
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from finder.database import Base


class SearchStatus(StrEnum):
    COMPLETED = "completed"
    EXPIRED_ON_READ = "expired_on_read"


class BusinessSearch(Base):
    """One completed search: the query, its merged results and a TTL.

    Rows are written once and never updated on the request path; expired
    rows are simply skipped by lookups.
    """

    __tablename__ = "business_searches"
    __table_args__ = (
        Index("ix_business_searches_lookup", "query_hash", "principal_id", "expires_at"),
        Index("ix_business_searches_history", "principal_id", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    principal_id: Mapped[int] = mapped_column(Integer, nullable=False)
    tenant_id: Mapped[int] = mapped_column(Integer, nullable=False)

    query: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str | None] = mapped_column(Text)
    radius_km: Mapped[float | None] = mapped_column(Float)
    category: Mapped[str | None] = mapped_column(String(100))
    result_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=20)
    query_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    sources: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    results: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    total_results: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    response_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SearchStatus.COMPLETED.value
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
