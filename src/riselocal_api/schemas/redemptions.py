"""Request and response payloads for the redemption API."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from riselocal_api.models.redemption import DealRedemption, RedemptionFlow, RedemptionStatus
from riselocal_api.services.redemptions import (
    CouponCodeResult,
    DirectEligibility,
    OutstandingCode,
    PoolUploadResult,
    RedemptionResult,
)
from riselocal_api.services.redemptions.store import effective_status
from riselocal_api.services.redemptions.timeutils import as_utc


class CodeRedemptionResponse(BaseModel):
    flow: Literal["code"] = "code"
    id: UUID
    dealId: UUID
    vendorId: UUID
    userId: UUID
    code: str
    status: Literal["issued", "verified", "expired", "voided"]
    issuedAt: Optional[datetime]
    expiresAt: Optional[datetime]
    verifiedAt: Optional[datetime] = None
    voidedAt: Optional[datetime] = None
    voidReason: Optional[str] = None


class DirectRedemptionResponse(BaseModel):
    flow: Literal["direct"] = "direct"
    id: UUID
    dealId: UUID
    vendorId: UUID
    userId: UUID
    status: Literal["redeemed"]
    redeemedAt: Optional[datetime]
    source: Optional[str] = None


RedemptionRecord = Annotated[
    Union[CodeRedemptionResponse, DirectRedemptionResponse],
    Field(discriminator="flow"),
]


class IssueCodeRequest(BaseModel):
    vendorId: Optional[UUID] = Field(None, description="Vendor the consumer is redeeming with")


class IssueCodeResponse(BaseModel):
    success: bool
    message: str
    reason: Optional[str] = None
    code: Optional[str] = None
    expiresAt: Optional[datetime] = None
    redemption: Optional[CodeRedemptionResponse] = None


class VerifyCodeRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=32, description="Code presented by the consumer")

    @field_validator("code")
    @classmethod
    def _reject_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("code must not be blank")
        return value


class VerifyCodeResponse(BaseModel):
    success: bool
    message: str
    reason: Optional[str] = None
    redemption: Optional[CodeRedemptionResponse] = None


class DirectRedeemRequest(BaseModel):
    source: Optional[str] = Field(None, max_length=32, description="Client surface, e.g. web")


class DirectRedeemResponse(BaseModel):
    success: bool
    message: str
    reason: Optional[str] = None
    redemption: Optional[DirectRedemptionResponse] = None


class CanRedeemResponse(BaseModel):
    canRedeem: bool
    reason: Optional[str] = None
    nextAvailableAt: Optional[datetime] = None


class VoidRedemptionRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=200, description="Why the code was voided")


class OutstandingCodeResponse(BaseModel):
    redemption: CodeRedemptionResponse
    effectiveStatus: Literal["issued", "expired"]
    secondsRemaining: int


class RedemptionDetailResponse(BaseModel):
    redemption: RedemptionRecord
    effectiveStatus: Literal["issued", "verified", "expired", "voided", "redeemed"]
    isExpired: bool
    secondsRemaining: Optional[int] = None


class CouponCodeResponse(BaseModel):
    success: bool
    type: Optional[Literal["STATIC", "UNIQUE"]] = None
    code: Optional[str] = None
    codeId: Optional[UUID] = None
    expiresAt: Optional[datetime] = None
    message: str
    reason: Optional[str] = None
    error: Optional[str] = None
    requiresPass: bool = False
    poolEmpty: bool = False


class PoolUploadRequest(BaseModel):
    codes: list[str] = Field(..., min_length=1, max_length=5000, description="Coupon codes to add to the pool")


class PoolUploadResponse(BaseModel):
    added: int
    skipped: int
    available: int


class PoolCodeRedeemRequest(BaseModel):
    dealId: UUID
    code: str = Field(..., min_length=1, max_length=50)


class DealRedemptionSummaryResponse(BaseModel):
    dealId: UUID
    totalVerified: int
    maxRedemptionsTotal: Optional[int]
    remaining: Optional[int]


def serialize_code_redemption(redemption: DealRedemption) -> CodeRedemptionResponse:
    return CodeRedemptionResponse(
        id=redemption.id,
        dealId=redemption.deal_id,
        vendorId=redemption.vendor_id,
        userId=redemption.user_id,
        code=redemption.code,
        status=redemption.status.value,
        issuedAt=as_utc(redemption.issued_at),
        expiresAt=as_utc(redemption.expires_at),
        verifiedAt=as_utc(redemption.verified_at),
        voidedAt=as_utc(redemption.voided_at),
        voidReason=redemption.void_reason,
    )


def serialize_direct_redemption(redemption: DealRedemption) -> DirectRedemptionResponse:
    return DirectRedemptionResponse(
        id=redemption.id,
        dealId=redemption.deal_id,
        vendorId=redemption.vendor_id,
        userId=redemption.user_id,
        status=redemption.status.value,
        redeemedAt=as_utc(redemption.redeemed_at),
        source=redemption.source,
    )


def serialize_redemption(
    redemption: DealRedemption,
) -> Union[CodeRedemptionResponse, DirectRedemptionResponse]:
    if redemption.flow == RedemptionFlow.DIRECT:
        return serialize_direct_redemption(redemption)
    return serialize_code_redemption(redemption)


def serialize_issue_result(result: RedemptionResult) -> IssueCodeResponse:
    return IssueCodeResponse(
        success=result.success,
        message=result.message,
        reason=result.reason.value if result.reason else None,
        code=result.code,
        expiresAt=result.expires_at,
        redemption=serialize_code_redemption(result.redemption) if result.redemption else None,
    )


def serialize_verify_result(result: RedemptionResult) -> VerifyCodeResponse:
    return VerifyCodeResponse(
        success=result.success,
        message=result.message,
        reason=result.reason.value if result.reason else None,
        redemption=serialize_code_redemption(result.redemption) if result.redemption else None,
    )


def serialize_direct_result(result: RedemptionResult) -> DirectRedeemResponse:
    return DirectRedeemResponse(
        success=result.success,
        message=result.message,
        reason=result.reason.value if result.reason else None,
        redemption=serialize_direct_redemption(result.redemption) if result.redemption else None,
    )


def serialize_eligibility(eligibility: DirectEligibility) -> CanRedeemResponse:
    return CanRedeemResponse(
        canRedeem=eligibility.can_redeem,
        reason=eligibility.reason,
        nextAvailableAt=eligibility.next_available_at,
    )


def serialize_outstanding(entry: OutstandingCode) -> OutstandingCodeResponse:
    return OutstandingCodeResponse(
        redemption=serialize_code_redemption(entry.redemption),
        effectiveStatus=entry.effective_status.value,
        secondsRemaining=entry.seconds_remaining,
    )


def serialize_redemption_detail(redemption: DealRedemption, *, now: datetime) -> RedemptionDetailResponse:
    status = effective_status(redemption, now=now)
    seconds_remaining = None
    if status == RedemptionStatus.ISSUED:
        expires_at = as_utc(redemption.expires_at)
        seconds_remaining = max(int((expires_at - now).total_seconds()), 0) if expires_at else None
    return RedemptionDetailResponse(
        redemption=serialize_redemption(redemption),
        effectiveStatus=status.value,
        isExpired=status == RedemptionStatus.EXPIRED,
        secondsRemaining=seconds_remaining,
    )


def serialize_coupon_result(result: CouponCodeResult) -> CouponCodeResponse:
    return CouponCodeResponse(
        success=result.success,
        type=result.type.value if result.type else None,
        code=result.code,
        codeId=result.code_id,
        expiresAt=result.expires_at,
        message=result.message,
        reason=result.reason.value if result.reason else None,
        error=None if result.success else result.message,
        requiresPass=result.requires_pass,
        poolEmpty=result.pool_empty,
    )


def serialize_pool_upload(result: PoolUploadResult) -> PoolUploadResponse:
    return PoolUploadResponse(added=result.added, skipped=result.skipped, available=result.available)
