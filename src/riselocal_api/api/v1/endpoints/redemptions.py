"""API endpoints for redemption codes, coupon codes and one-tap redemption."""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from riselocal_api.api.dependencies.security import require_vendor_api_key
from riselocal_api.api.dependencies.session import require_member_session
from riselocal_api.db.session import get_session
from riselocal_api.models.user import User
from riselocal_api.schemas.redemptions import (
    CanRedeemResponse,
    CodeRedemptionResponse,
    CouponCodeResponse,
    DealRedemptionSummaryResponse,
    DirectRedeemRequest,
    DirectRedeemResponse,
    IssueCodeRequest,
    IssueCodeResponse,
    OutstandingCodeResponse,
    PoolCodeRedeemRequest,
    PoolUploadRequest,
    PoolUploadResponse,
    RedemptionDetailResponse,
    RedemptionRecord,
    VerifyCodeRequest,
    VerifyCodeResponse,
    VoidRedemptionRequest,
    serialize_code_redemption,
    serialize_coupon_result,
    serialize_direct_result,
    serialize_eligibility,
    serialize_issue_result,
    serialize_outstanding,
    serialize_pool_upload,
    serialize_redemption,
    serialize_redemption_detail,
    serialize_verify_result,
)
from riselocal_api.services.redemptions import RedemptionService
from riselocal_api.services.redemptions.timeutils import utcnow


router = APIRouter(tags=["redemptions"])


async def _require_vendor(service: RedemptionService, vendor_id: UUID) -> None:
    vendor = await service.directory.get_vendor(vendor_id)
    if vendor is None:
        raise HTTPException(status_code=404, detail="Vendor not found")


@router.post("/deals/{deal_id}/codes", response_model=IssueCodeResponse)
async def issue_deal_code(
    deal_id: UUID,
    request: Optional[IssueCodeRequest] = None,
    user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> IssueCodeResponse:
    """Issue (or return the live) redemption code for the session user."""

    service = RedemptionService(db)
    vendor_id = request.vendorId if request else None
    result = await service.issue_deal_code(deal_id, vendor_id, user.id)
    await db.commit()
    return serialize_issue_result(result)


@router.get("/deals/{deal_id}/codes/active", response_model=CodeRedemptionResponse)
async def get_active_deal_code(
    deal_id: UUID,
    user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> CodeRedemptionResponse:
    service = RedemptionService(db)
    redemption = await service.get_active_redemption_for_user_deal(user.id, deal_id)
    if redemption is None:
        raise HTTPException(status_code=404, detail="No active code for this deal")
    return serialize_code_redemption(redemption)


@router.post("/deals/{deal_id}/redeem", response_model=DirectRedeemResponse)
async def redeem_deal(
    deal_id: UUID,
    request: Optional[DirectRedeemRequest] = None,
    user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> DirectRedeemResponse:
    """One-tap redemption without the vendor code handshake."""

    service = RedemptionService(db)
    result = await service.redeem_deal(deal_id, user.id, source=request.source if request else None)
    await db.commit()
    return serialize_direct_result(result)


@router.get("/deals/{deal_id}/can-redeem", response_model=CanRedeemResponse)
async def can_redeem_deal(
    deal_id: UUID,
    user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> CanRedeemResponse:
    service = RedemptionService(db)
    eligibility = await service.check_direct_eligibility(deal_id, user.id)
    return serialize_eligibility(eligibility)


@router.get("/me/redemptions", response_model=List[RedemptionRecord])
async def list_my_redemptions(
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> list:
    service = RedemptionService(db)
    redemptions = await service.list_user_redemptions(user.id, limit=limit)
    return [serialize_redemption(redemption) for redemption in redemptions]


@router.get("/redemptions/{redemption_id}", response_model=RedemptionDetailResponse)
async def get_my_redemption(
    redemption_id: UUID,
    user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> RedemptionDetailResponse:
    """One of the session user's redemptions, with lapsed codes reported as expired."""

    service = RedemptionService(db)
    redemption = await service.get_user_redemption(redemption_id, user.id)
    if redemption is None:
        raise HTTPException(status_code=404, detail="Redemption not found")
    return serialize_redemption_detail(redemption, now=utcnow())


@router.post("/deals/{deal_id}/coupon-code", response_model=CouponCodeResponse)
async def reveal_coupon_code(
    deal_id: UUID,
    user: User = Depends(require_member_session),
    db: AsyncSession = Depends(get_session),
) -> CouponCodeResponse:
    """Reveal the static code or reserve a unique pool code for the session user."""

    service = RedemptionService(db)
    result = await service.reveal_coupon_code(deal_id, user.id)
    await db.commit()
    return serialize_coupon_result(result)


@router.post(
    "/deals/{deal_id}/coupon-codes",
    response_model=PoolUploadResponse,
    dependencies=[Depends(require_vendor_api_key)],
)
async def upload_coupon_codes(
    deal_id: UUID,
    request: PoolUploadRequest,
    db: AsyncSession = Depends(get_session),
) -> PoolUploadResponse:
    service = RedemptionService(db)
    try:
        result = await service.add_pool_codes(deal_id, request.codes)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail="Deal not found") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    await db.commit()
    return serialize_pool_upload(result)


@router.post(
    "/vendors/{vendor_id}/coupon-codes/redeem",
    response_model=CouponCodeResponse,
    dependencies=[Depends(require_vendor_api_key)],
)
async def redeem_coupon_code(
    vendor_id: UUID,
    request: PoolCodeRedeemRequest,
    db: AsyncSession = Depends(get_session),
) -> CouponCodeResponse:
    service = RedemptionService(db)
    await _require_vendor(service, vendor_id)
    result = await service.redeem_pool_code(vendor_id, request.dealId, request.code)
    await db.commit()
    return serialize_coupon_result(result)


@router.post(
    "/vendors/{vendor_id}/redemptions/verify",
    response_model=VerifyCodeResponse,
    dependencies=[Depends(require_vendor_api_key)],
)
async def verify_redemption_code(
    vendor_id: UUID,
    request: VerifyCodeRequest,
    db: AsyncSession = Depends(get_session),
) -> VerifyCodeResponse:
    """Vendor-side code entry."""

    service = RedemptionService(db)
    await _require_vendor(service, vendor_id)
    result = await service.verify_redemption_code(request.code, vendor_id)
    await db.commit()
    return serialize_verify_result(result)


@router.get(
    "/vendors/{vendor_id}/redemptions/outstanding",
    response_model=List[OutstandingCodeResponse],
    dependencies=[Depends(require_vendor_api_key)],
)
async def list_outstanding_codes(
    vendor_id: UUID,
    deal_id: Optional[UUID] = Query(None, alias="dealId"),
    db: AsyncSession = Depends(get_session),
) -> list[OutstandingCodeResponse]:
    service = RedemptionService(db)
    await _require_vendor(service, vendor_id)
    entries = await service.list_outstanding_codes(vendor_id, deal_id=deal_id)
    return [serialize_outstanding(entry) for entry in entries]


@router.post(
    "/redemptions/{redemption_id}/void",
    response_model=RedemptionRecord,
    dependencies=[Depends(require_vendor_api_key)],
)
async def void_redemption(
    redemption_id: UUID,
    request: Optional[VoidRedemptionRequest] = None,
    db: AsyncSession = Depends(get_session),
):
    service = RedemptionService(db)
    redemption = await service.void_redemption(redemption_id, request.reason if request else None)
    if redemption is None:
        raise HTTPException(status_code=404, detail="Redemption not found")
    await db.commit()
    return serialize_redemption(redemption)


@router.get(
    "/deals/{deal_id}/redemptions/summary",
    response_model=DealRedemptionSummaryResponse,
    dependencies=[Depends(require_vendor_api_key)],
)
async def get_deal_redemption_summary(
    deal_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> DealRedemptionSummaryResponse:
    service = RedemptionService(db)
    deal = await service.directory.get_deal_by_id(deal_id)
    if deal is None:
        raise HTTPException(status_code=404, detail="Deal not found")
    total = await service.get_total_verified_count_for_deal(deal_id)
    cap = deal.max_redemptions_total
    return DealRedemptionSummaryResponse(
        dealId=deal_id,
        totalVerified=total,
        maxRedemptionsTotal=cap,
        remaining=max(cap - total, 0) if cap is not None else None,
    )
