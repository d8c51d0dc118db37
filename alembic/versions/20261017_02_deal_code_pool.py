"""Coupon code settings on deals and the unique code pool.

Revision ID: 20261017_02
Revises: 20261017_01
Create Date: 2026-10-17
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261017_02"
down_revision: Union[str, None] = "20261017_01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE TYPE coupon_redemption_type AS ENUM ('free_static_code', 'pass_unique_code_pool')")
    op.execute("CREATE TYPE deal_code_status AS ENUM ('available', 'reserved', 'redeemed', 'expired')")

    op.add_column(
        "deals",
        sa.Column(
            "coupon_redemption_type",
            sa.Enum(name="coupon_redemption_type", create_type=False),
            nullable=True,
        ),
    )
    op.add_column("deals", sa.Column("static_code", sa.String(length=50), nullable=True))
    op.add_column(
        "deals",
        sa.Column("code_reserve_minutes", sa.Integer(), nullable=False, server_default="30"),
    )

    op.create_table(
        "deal_codes",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("deal_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column(
            "status",
            sa.Enum(name="deal_code_status", create_type=False),
            nullable=False,
            server_default="available",
        ),
        sa.Column("assigned_to_user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reserved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["deal_id"], ["deals.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["assigned_to_user_id"], ["users.id"]),
        sa.UniqueConstraint("deal_id", "code", name="uq_deal_codes_deal_code"),
    )
    op.create_index("ix_deal_codes_deal_status", "deal_codes", ["deal_id", "status"])
    op.create_index("ix_deal_codes_user_deal", "deal_codes", ["assigned_to_user_id", "deal_id"])
    op.create_index(
        "uq_deal_codes_active_reservation",
        "deal_codes",
        ["assigned_to_user_id", "deal_id"],
        unique=True,
        postgresql_where=sa.text("status = 'reserved'"),
        sqlite_where=sa.text("status = 'reserved'"),
    )


def downgrade() -> None:
    op.drop_index("uq_deal_codes_active_reservation", table_name="deal_codes")
    op.drop_index("ix_deal_codes_user_deal", table_name="deal_codes")
    op.drop_index("ix_deal_codes_deal_status", table_name="deal_codes")
    op.drop_table("deal_codes")
    op.drop_column("deals", "code_reserve_minutes")
    op.drop_column("deals", "static_code")
    op.drop_column("deals", "coupon_redemption_type")

    op.execute("DROP TYPE IF EXISTS deal_code_status")
    op.execute("DROP TYPE IF EXISTS coupon_redemption_type")
