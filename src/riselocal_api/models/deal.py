"""Deal domain models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from riselocal_api.db.base import Base


class DealDiscountType(str, Enum):
    """Discount terms a vendor can attach to a deal."""

    PERCENT = "percent"
    DOLLAR = "dollar"
    FREE_ITEM = "free_item"
    BOGO = "bogo"


class DealStatus(str, Enum):
    """Publication status for deals."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class RedemptionFrequency(str, Enum):
    """How often a user may use the one-tap redemption path."""

    UNLIMITED = "unlimited"
    ONCE = "once"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class CouponRedemptionType(str, Enum):
    """How an online coupon code is handed out for a deal."""

    FREE_STATIC_CODE = "free_static_code"
    PASS_UNIQUE_CODE_POOL = "pass_unique_code_pool"


class Deal(Base):
    """Merchant-defined offer with optional validity window and limits."""

    __tablename__ = "deals"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    vendor_id = Column(
        UUID(as_uuid=True), ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    discount_type = Column(
        SqlEnum(
            DealDiscountType,
            name="deal_discount_type",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=DealDiscountType.PERCENT,
    )
    discount_value = Column(Numeric(10, 2), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    status = Column(
        SqlEnum(
            DealStatus,
            name="deal_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=DealStatus.DRAFT,
        server_default=DealStatus.DRAFT.value,
    )
    starts_at = Column(DateTime(timezone=True), nullable=True)
    ends_at = Column(DateTime(timezone=True), nullable=True)
    max_redemptions_per_user = Column(Integer, nullable=True, default=1, server_default="1")
    max_redemptions_total = Column(Integer, nullable=True)
    cooldown_hours = Column(Integer, nullable=True)
    redemption_frequency = Column(
        SqlEnum(
            RedemptionFrequency,
            name="deal_redemption_frequency",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=RedemptionFrequency.ONCE,
        server_default=RedemptionFrequency.ONCE.value,
    )
    custom_redemption_days = Column(Integer, nullable=True)
    is_pass_locked = Column(Boolean, nullable=False, default=False, server_default="false")
    coupon_redemption_type = Column(
        SqlEnum(
            CouponRedemptionType,
            name="coupon_redemption_type",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=True,
    )
    static_code = Column(String(50), nullable=True)
    code_reserve_minutes = Column(Integer, nullable=False, default=30, server_default="30")
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    vendor = relationship("Vendor", back_populates="deals")
    redemptions = relationship("DealRedemption", back_populates="deal")
    pool_codes = relationship("DealCode", back_populates="deal")
