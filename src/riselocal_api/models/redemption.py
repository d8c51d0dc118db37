"""Deal redemption records shared by the code and one-tap flows."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    String,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from riselocal_api.db.base import Base


class RedemptionFlow(str, Enum):
    """Protocol that produced a redemption row."""

    CODE = "code"
    DIRECT = "direct"


class RedemptionStatus(str, Enum):
    """Union of both flows' status vocabularies as stored in the database."""

    ISSUED = "issued"
    VERIFIED = "verified"
    EXPIRED = "expired"
    VOIDED = "voided"
    REDEEMED = "redeemed"


CODE_FLOW_STATUSES = frozenset(
    {
        RedemptionStatus.ISSUED,
        RedemptionStatus.VERIFIED,
        RedemptionStatus.EXPIRED,
        RedemptionStatus.VOIDED,
    }
)
DIRECT_FLOW_STATUSES = frozenset({RedemptionStatus.REDEEMED})

_ACTIVE_ISSUE_PREDICATE = "status = 'issued'"


class DealRedemption(Base):
    """One attempt by a user to use a deal.

    ``flow`` tags the row as either a code-issuance record (``issued`` ->
    ``verified``/``expired``/``voided``) or a one-tap record (``redeemed``).
    The check constraint keeps the two vocabularies apart and the partial
    unique index allows a single live ``issued`` code per user and deal.
    """

    __tablename__ = "deal_redemptions"
    __table_args__ = (
        CheckConstraint(
            "(flow = 'code' AND code IS NOT NULL AND status IN ('issued', 'verified', 'expired', 'voided'))"
            " OR (flow = 'direct' AND code IS NULL AND status = 'redeemed')",
            name="ck_deal_redemptions_flow_status",
        ),
        Index(
            "uq_deal_redemptions_active_issue",
            "user_id",
            "deal_id",
            unique=True,
            sqlite_where=text(_ACTIVE_ISSUE_PREDICATE),
            postgresql_where=text(_ACTIVE_ISSUE_PREDICATE),
        ),
        Index("ix_deal_redemptions_user_deal_status", "user_id", "deal_id", "status"),
        Index("ix_deal_redemptions_deal_status", "deal_id", "status"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    deal_id = Column(UUID(as_uuid=True), ForeignKey("deals.id", ondelete="CASCADE"), nullable=False)
    vendor_id = Column(UUID(as_uuid=True), ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    flow = Column(
        SqlEnum(
            RedemptionFlow,
            name="deal_redemption_flow",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    code = Column(String(16), nullable=True, unique=True)
    status = Column(
        SqlEnum(
            RedemptionStatus,
            name="deal_redemption_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
    )
    issued_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    voided_at = Column(DateTime(timezone=True), nullable=True)
    void_reason = Column(String, nullable=True)
    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    source = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    deal = relationship("Deal", back_populates="redemptions")
