"""Business finder tables: search ledger, rate limits, provider API keys.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── business_searches ──
    op.create_table(
        "business_searches",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("principal_id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("query", sa.Text(), nullable=False),
        sa.Column("location", sa.Text(), nullable=True),
        sa.Column("radius_km", sa.Float(), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("result_limit", sa.Integer(), nullable=False, server_default="20"),
        sa.Column("query_hash", sa.String(64), nullable=False, comment="SHA-256 of normalized query"),
        sa.Column("sources", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("results", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("total_results", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("response_time_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default="completed",
            comment="completed | expired_on_read",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    # Not unique: a principal may re-run a search after the previous entry expired
    op.create_index(
        "ix_business_searches_lookup",
        "business_searches",
        ["query_hash", "principal_id", "expires_at"],
    )
    op.create_index(
        "ix_business_searches_history",
        "business_searches",
        ["principal_id", "created_at"],
    )

    # ── rate_limits ──
    op.create_table(
        "rate_limits",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("principal_id", sa.Integer(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("service", sa.String(50), nullable=False),
        sa.Column("request_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("daily_limit", sa.Integer(), nullable=False),
        sa.Column("window_start", sa.Date(), nullable=False, comment="UTC day the count belongs to"),
        sa.Column("violations", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("blocked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.UniqueConstraint("principal_id", "service", name="uq_rate_limits_principal_service"),
        sa.UniqueConstraint("ip_address", "service", name="uq_rate_limits_ip_service"),
        sa.CheckConstraint(
            "(principal_id IS NULL) <> (ip_address IS NULL)",
            name="ck_rate_limits_one_identity",
        ),
    )

    # ── api_keys ──
    op.create_table(
        "api_keys",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("principal_id", sa.Integer(), nullable=False),
        sa.Column("service", sa.String(50), nullable=False),
        sa.Column("key_name", sa.String(100), nullable=False),
        sa.Column("key_value", sa.Text(), nullable=False, comment="Fernet token"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("daily_limit", sa.Integer(), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.UniqueConstraint(
            "principal_id", "service", "key_name",
            name="uq_api_keys_principal_service_name",
        ),
    )
    op.create_index("ix_api_keys_principal_id", "api_keys", ["principal_id"])


def downgrade() -> None:
    op.drop_index("ix_api_keys_principal_id", table_name="api_keys")
    op.drop_table("api_keys")
    op.drop_table("rate_limits")
    op.drop_index("ix_business_searches_history", table_name="business_searches")
    op.drop_index("ix_business_searches_lookup", table_name="business_searches")
    op.drop_table("business_searches")
