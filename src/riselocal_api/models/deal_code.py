"""Vendor-uploaded coupon codes handed out one per Rise Local Pass member."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from riselocal_api.db.base import Base


class DealCodeStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    REDEEMED = "redeemed"
    EXPIRED = "expired"


_RESERVED_PREDICATE = "status = 'reserved'"


class DealCode(Base):
    """One code in a deal's pool.

    ``available`` codes move to ``reserved`` through a conditional update when
    a member reveals one; a member holds at most one reservation per deal.
    """

    __tablename__ = "deal_codes"
    __table_args__ = (
        UniqueConstraint("deal_id", "code", name="uq_deal_codes_deal_code"),
        Index("ix_deal_codes_deal_status", "deal_id", "status"),
        Index("ix_deal_codes_user_deal", "assigned_to_user_id", "deal_id"),
        Index(
            "uq_deal_codes_active_reservation",
            "assigned_to_user_id",
            "deal_id",
            unique=True,
            sqlite_where=text(_RESERVED_PREDICATE),
            postgresql_where=text(_RESERVED_PREDICATE),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    deal_id = Column(UUID(as_uuid=True), ForeignKey("deals.id", ondelete="CASCADE"), nullable=False)
    code = Column(String(50), nullable=False)
    status = Column(
        SqlEnum(
            DealCodeStatus,
            name="deal_code_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=DealCodeStatus.AVAILABLE,
        server_default=DealCodeStatus.AVAILABLE.value,
    )
    assigned_to_user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    reserved_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    deal = relationship("Deal", back_populates="pool_codes")
