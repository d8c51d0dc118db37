"""Users, vendors, deals and deal redemptions.

Revision ID: 20261017_01
Revises:
Create Date: 2026-10-17
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261017_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE TYPE deal_discount_type AS ENUM ('percent', 'dollar', 'free_item', 'bogo')")
    op.execute("CREATE TYPE deal_status AS ENUM ('draft', 'published', 'archived')")
    op.execute(
        "CREATE TYPE deal_redemption_frequency AS ENUM ('unlimited', 'once', 'weekly', 'monthly', 'custom')"
    )
    op.execute("CREATE TYPE deal_redemption_flow AS ENUM ('code', 'direct')")
    op.execute(
        "CREATE TYPE deal_redemption_status AS ENUM ('issued', 'verified', 'expired', 'voided', 'redeemed')"
    )

    op.create_table(
        "users",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("is_pass_member", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("pass_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "vendors",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("city", sa.String(), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["owner_user_id"], ["users.id"], ondelete="SET NULL"),
    )

    op.create_table(
        "deals",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("vendor_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "discount_type",
            sa.Enum(name="deal_discount_type", create_type=False),
            nullable=False,
        ),
        sa.Column("discount_value", sa.Numeric(10, 2), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "status",
            sa.Enum(name="deal_status", create_type=False),
            nullable=False,
            server_default="draft",
        ),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_redemptions_per_user", sa.Integer(), nullable=True, server_default="1"),
        sa.Column("max_redemptions_total", sa.Integer(), nullable=True),
        sa.Column("cooldown_hours", sa.Integer(), nullable=True),
        sa.Column(
            "redemption_frequency",
            sa.Enum(name="deal_redemption_frequency", create_type=False),
            nullable=False,
            server_default="once",
        ),
        sa.Column("custom_redemption_days", sa.Integer(), nullable=True),
        sa.Column("is_pass_locked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_deals_vendor_id", "deals", ["vendor_id"])

    op.create_table(
        "deal_redemptions",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("deal_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("vendor_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("flow", sa.Enum(name="deal_redemption_flow", create_type=False), nullable=False),
        sa.Column("code", sa.String(length=16), nullable=True, unique=True),
        sa.Column("status", sa.Enum(name="deal_redemption_status", create_type=False), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("void_reason", sa.String(), nullable=True),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("source", sa.String(length=32), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["deal_id"], ["deals.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "(flow = 'code' AND code IS NOT NULL AND status IN ('issued', 'verified', 'expired', 'voided'))"
            " OR (flow = 'direct' AND code IS NULL AND status = 'redeemed')",
            name="ck_deal_redemptions_flow_status",
        ),
    )
    op.create_index("ix_deal_redemptions_vendor_id", "deal_redemptions", ["vendor_id"])
    op.create_index(
        "ix_deal_redemptions_user_deal_status",
        "deal_redemptions",
        ["user_id", "deal_id", "status"],
    )
    op.create_index("ix_deal_redemptions_deal_status", "deal_redemptions", ["deal_id", "status"])
    op.create_index(
        "uq_deal_redemptions_active_issue",
        "deal_redemptions",
        ["user_id", "deal_id"],
        unique=True,
        postgresql_where=sa.text("status = 'issued'"),
        sqlite_where=sa.text("status = 'issued'"),
    )


def downgrade() -> None:
    op.drop_index("uq_deal_redemptions_active_issue", table_name="deal_redemptions")
    op.drop_index("ix_deal_redemptions_deal_status", table_name="deal_redemptions")
    op.drop_index("ix_deal_redemptions_user_deal_status", table_name="deal_redemptions")
    op.drop_index("ix_deal_redemptions_vendor_id", table_name="deal_redemptions")
    op.drop_table("deal_redemptions")
    op.drop_index("ix_deals_vendor_id", table_name="deals")
    op.drop_table("deals")
    op.drop_table("vendors")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    op.execute("DROP TYPE IF EXISTS deal_redemption_status")
    op.execute("DROP TYPE IF EXISTS deal_redemption_flow")
    op.execute("DROP TYPE IF EXISTS deal_redemption_frequency")
    op.execute("DROP TYPE IF EXISTS deal_status")
    op.execute("DROP TYPE IF EXISTS deal_discount_type")
