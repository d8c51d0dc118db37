"""Structured outcomes returned by the redemption engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from riselocal_api.models.redemption import DealRedemption, RedemptionStatus


class RedemptionFailureReason(str, Enum):
    """Why a redemption operation was refused."""

    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    NOT_STARTED = "not_started"
    DEAL_EXPIRED = "deal_expired"
    MEMBERS_ONLY = "members_only"
    LIMIT_REACHED = "limit_reached"
    COOLDOWN = "cooldown"
    SOLD_OUT = "sold_out"
    EXHAUSTED = "exhausted"
    WRONG_VENDOR = "wrong_vendor"
    ALREADY_USED = "already_used"
    VOIDED = "voided"
    CODE_EXPIRED = "code_expired"
    ALREADY_REDEEMED = "already_redeemed"
    FREQUENCY_LIMITED = "frequency_limited"
    COUPON_UNAVAILABLE = "coupon_unavailable"
    POOL_EMPTY = "pool_empty"


@dataclass
class RedemptionResult:
    """Display-ready result; ``message`` is shown verbatim to users."""

    success: bool
    message: str
    reason: RedemptionFailureReason | None = None
    redemption: DealRedemption | None = None
    code: str | None = None
    expires_at: datetime | None = None

    @property
    def outcome(self) -> str:
        return "success" if self.success else (self.reason.value if self.reason else "failed")

    @classmethod
    def failure(
        cls,
        reason: RedemptionFailureReason,
        message: str,
        *,
        redemption: DealRedemption | None = None,
    ) -> "RedemptionResult":
        return cls(success=False, message=message, reason=reason, redemption=redemption)


@dataclass
class DirectEligibility:
    """Pre-check for the one-tap redemption button."""

    can_redeem: bool
    reason: str | None = None
    failure: RedemptionFailureReason | None = None
    next_available_at: datetime | None = None


@dataclass
class OutstandingCode:
    """Issued code as seen by vendor reporting, with lapsed codes shown as expired."""

    redemption: DealRedemption
    effective_status: RedemptionStatus
    seconds_remaining: int


class CouponCodeType(str, Enum):
    STATIC = "STATIC"
    UNIQUE = "UNIQUE"


@dataclass
class CouponCodeResult:
    """Outcome of revealing or redeeming an online coupon code."""

    success: bool
    message: str
    reason: RedemptionFailureReason | None = None
    type: CouponCodeType | None = None
    code: str | None = None
    code_id: UUID | None = None
    expires_at: datetime | None = None
    requires_pass: bool = False
    pool_empty: bool = False

    @property
    def outcome(self) -> str:
        return "success" if self.success else (self.reason.value if self.reason else "failed")


@dataclass
class PoolUploadResult:
    added: int
    skipped: int
    available: int


__all__ = [
    "CouponCodeResult",
    "CouponCodeType",
    "DirectEligibility",
    "OutstandingCode",
    "PoolUploadResult",
    "RedemptionFailureReason",
    "RedemptionResult",
]
