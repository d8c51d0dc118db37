"""Online coupon codes: one shared static code, or a vendor-uploaded pool of unique codes."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from riselocal_api.core.settings import settings
from riselocal_api.models.deal import CouponRedemptionType, Deal
from riselocal_api.models.deal_code import DealCode, DealCodeStatus
from riselocal_api.services.deals import DealDirectory
from riselocal_api.services.redemptions.guard import DEAL_MEMBERS_ONLY_MESSAGE, check_deal_availability
from riselocal_api.services.redemptions.results import (
    CouponCodeResult,
    CouponCodeType,
    PoolUploadResult,
    RedemptionFailureReason,
)
from riselocal_api.services.redemptions.timeutils import as_utc, utcnow


STATIC_CODE_MESSAGE = "Use this code at checkout"
UNIQUE_CODE_MESSAGE = "Your member code is reserved for you"
UNIQUE_CODE_REISSUED_MESSAGE = "You already have a reserved code for this deal"
NO_COUPON_MESSAGE = "This deal doesn't use a coupon code"
POOL_EMPTY_MESSAGE = "All member codes for this deal have been claimed"
POOL_LIMIT_MESSAGE = "You've already used a member code for this deal"
POOL_CODE_NOT_FOUND_MESSAGE = "Coupon code not found"
POOL_CODE_WRONG_VENDOR_MESSAGE = "This coupon code belongs to a different vendor"
POOL_CODE_EXPIRED_MESSAGE = "This coupon code reservation has expired"
POOL_CODE_USED_MESSAGE = "This coupon code has already been used"
POOL_CODE_REDEEMED_MESSAGE = "Coupon code redeemed"


class DealCodeStore:
    """Row access for ``deal_codes``; transitions are conditional updates."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def find(self, deal_id: UUID, code: str) -> DealCode | None:
        stmt = select(DealCode).where(DealCode.deal_id == deal_id, DealCode.code == code)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def existing_codes(self, deal_id: UUID, codes: Iterable[str]) -> set[str]:
        stmt = select(DealCode.code).where(DealCode.deal_id == deal_id, DealCode.code.in_(list(codes)))
        result = await self._db.execute(stmt)
        return set(result.scalars().all())

    async def add(self, deal_id: UUID, codes: Iterable[str]) -> None:
        self._db.add_all(DealCode(deal_id=deal_id, code=code) for code in codes)
        await self._db.flush()

    async def count_available(self, deal_id: UUID) -> int:
        stmt = select(func.count(DealCode.id)).where(
            DealCode.deal_id == deal_id,
            DealCode.status == DealCodeStatus.AVAILABLE,
        )
        result = await self._db.execute(stmt)
        return int(result.scalar_one() or 0)

    async def count_redeemed_for_user(self, user_id: UUID, deal_id: UUID) -> int:
        stmt = select(func.count(DealCode.id)).where(
            DealCode.assigned_to_user_id == user_id,
            DealCode.deal_id == deal_id,
            DealCode.status == DealCodeStatus.REDEEMED,
        )
        result = await self._db.execute(stmt)
        return int(result.scalar_one() or 0)

    async def get_live_reservation(self, user_id: UUID, deal_id: UUID, *, now: datetime) -> DealCode | None:
        stmt = select(DealCode).where(
            DealCode.assigned_to_user_id == user_id,
            DealCode.deal_id == deal_id,
            DealCode.status == DealCodeStatus.RESERVED,
            DealCode.expires_at > now,
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def expire_lapsed(self, deal_id: UUID, *, now: datetime) -> int:
        stmt = (
            update(DealCode)
            .where(
                DealCode.deal_id == deal_id,
                DealCode.status == DealCodeStatus.RESERVED,
                DealCode.expires_at <= now,
            )
            .values(status=DealCodeStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        if result.rowcount:
            logger.info("Expired lapsed coupon reservations", deal_id=str(deal_id), count=result.rowcount)
        return int(result.rowcount or 0)

    async def next_available_id(self, deal_id: UUID, *, skip: set[UUID]) -> UUID | None:
        stmt = select(DealCode.id).where(
            DealCode.deal_id == deal_id,
            DealCode.status == DealCodeStatus.AVAILABLE,
        )
        if skip:
            stmt = stmt.where(DealCode.id.not_in(skip))
        stmt = stmt.order_by(DealCode.created_at.asc(), DealCode.code.asc()).limit(1).with_for_update(skip_locked=True)
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def _transition(self, code_id: UUID, *, expected: DealCodeStatus, values: dict[str, object]) -> bool:
        stmt = (
            update(DealCode)
            .where(DealCode.id == code_id, DealCode.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(stmt)
        return result.rowcount == 1

    async def reserve(self, code_id: UUID, *, user_id: UUID, now: datetime, expires_at: datetime) -> DealCode | None:
        """Compare-and-swap ``available`` -> ``reserved``; None when another member took it."""

        claimed = await self._transition(
            code_id,
            expected=DealCodeStatus.AVAILABLE,
            values={
                "status": DealCodeStatus.RESERVED,
                "assigned_to_user_id": user_id,
                "reserved_at": now,
                "expires_at": expires_at,
            },
        )
        if not claimed:
            return None
        return await self._refreshed(code_id)

    async def mark_redeemed(self, deal_code: DealCode, *, now: datetime) -> bool:
        won = await self._transition(
            deal_code.id,
            expected=DealCodeStatus.RESERVED,
            values={"status": DealCodeStatus.REDEEMED, "redeemed_at": now},
        )
        await self._db.refresh(deal_code)
        return won

    async def mark_expired(self, deal_code: DealCode) -> bool:
        won = await self._transition(
            deal_code.id,
            expected=DealCodeStatus.RESERVED,
            values={"status": DealCodeStatus.EXPIRED},
        )
        await self._db.refresh(deal_code)
        return won

    async def _refreshed(self, code_id: UUID) -> DealCode | None:
        deal_code = await self._db.get(DealCode, code_id)
        if deal_code is not None:
            await self._db.refresh(deal_code)
        return deal_code


class CouponCodeService:
    """Reveal coupon codes to members and settle pool codes at the vendor.

    Static deals hand every eligible user the same code. Pool deals reserve
    one unused code per Rise Local Pass member for ``code_reserve_minutes``;
    asking again while the reservation is live returns the same code.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        store: DealCodeStore | None = None,
        directory: DealDirectory | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self._db = db_session
        self._store = store or DealCodeStore(db_session)
        self._directory = directory or DealDirectory(db_session)
        self._max_attempts = max_attempts or settings.redemption_code_max_attempts

    async def reveal(self, deal_id: UUID, user_id: UUID, *, now: datetime | None = None) -> CouponCodeResult:
        reference = as_utc(now) or utcnow()
        deal = await self._directory.get_deal_by_id(deal_id)
        user = await self._directory.get_user(user_id)

        availability = check_deal_availability(deal, user=user, now=reference)
        if not availability.available:
            return CouponCodeResult(
                success=False,
                message=availability.message,
                reason=availability.reason,
                requires_pass=availability.reason == RedemptionFailureReason.MEMBERS_ONLY,
            )

        if deal.coupon_redemption_type == CouponRedemptionType.FREE_STATIC_CODE and deal.static_code:
            return CouponCodeResult(
                success=True,
                message=STATIC_CODE_MESSAGE,
                type=CouponCodeType.STATIC,
                code=deal.static_code,
            )
        if deal.coupon_redemption_type != CouponRedemptionType.PASS_UNIQUE_CODE_POOL:
            return CouponCodeResult(
                success=False,
                message=NO_COUPON_MESSAGE,
                reason=RedemptionFailureReason.COUPON_UNAVAILABLE,
            )

        if user is None or not user.has_active_pass(reference):
            return CouponCodeResult(
                success=False,
                message=DEAL_MEMBERS_ONLY_MESSAGE,
                reason=RedemptionFailureReason.MEMBERS_ONLY,
                type=CouponCodeType.UNIQUE,
                requires_pass=True,
            )
        return await self._reserve_unique(deal, user_id, reference)

    async def _reserve_unique(self, deal: Deal, user_id: UUID, now: datetime) -> CouponCodeResult:
        await self._store.expire_lapsed(deal.id, now=now)
        existing = await self._store.get_live_reservation(user_id, deal.id, now=now)
        if existing is not None:
            return self._revealed(existing, UNIQUE_CODE_REISSUED_MESSAGE)

        if deal.max_redemptions_per_user is not None:
            used = await self._store.count_redeemed_for_user(user_id, deal.id)
            if used >= deal.max_redemptions_per_user:
                return CouponCodeResult(
                    success=False,
                    message=POOL_LIMIT_MESSAGE,
                    reason=RedemptionFailureReason.LIMIT_REACHED,
                    type=CouponCodeType.UNIQUE,
                )

        expires_at = now + timedelta(minutes=deal.code_reserve_minutes or 30)
        taken: set[UUID] = set()
        try:
            for attempt in range(1, self._max_attempts + 1):
                candidate = await self._store.next_available_id(deal.id, skip=taken)
                if candidate is None:
                    break
                reserved = await self._store.reserve(candidate, user_id=user_id, now=now, expires_at=expires_at)
                if reserved is not None:
                    logger.info(
                        "Reserved coupon code",
                        deal_id=str(deal.id),
                        user_id=str(user_id),
                        code_id=str(reserved.id),
                        code=reserved.code,
                    )
                    return self._revealed(reserved, UNIQUE_CODE_MESSAGE)
                taken.add(candidate)
                logger.debug("Coupon code taken by another member", deal_id=str(deal.id), attempt=attempt)
        except IntegrityError:
            await self._db.rollback()
            logger.warning("Detected race when reserving coupon code", deal_id=str(deal.id), user_id=str(user_id))
            winner = await self._store.get_live_reservation(user_id, deal.id, now=now)
            if winner is None:
                raise
            return self._revealed(winner, UNIQUE_CODE_REISSUED_MESSAGE)

        logger.warning("Coupon code pool exhausted", deal_id=str(deal.id))
        return CouponCodeResult(
            success=False,
            message=POOL_EMPTY_MESSAGE,
            reason=RedemptionFailureReason.POOL_EMPTY,
            type=CouponCodeType.UNIQUE,
            pool_empty=True,
        )

    async def add_pool_codes(self, deal_id: UUID, codes: Iterable[str]) -> PoolUploadResult:
        """Append vendor codes to a pool deal, skipping blanks and duplicates.

        Raises ``LookupError`` when the deal does not exist and ``ValueError``
        when it does not hand out pool codes.
        """

        deal = await self._directory.get_deal_by_id(deal_id)
        if deal is None or deal.deleted_at is not None:
            raise LookupError(f"Deal {deal_id} not found")
        if deal.coupon_redemption_type != CouponRedemptionType.PASS_UNIQUE_CODE_POOL:
            raise ValueError("Deal does not use a unique code pool")

        submitted = [code.strip() for code in codes]
        unique: list[str] = []
        for code in submitted:
            if code and code not in unique:
                unique.append(code)
        existing = await self._store.existing_codes(deal_id, unique) if unique else set()
        fresh = [code for code in unique if code not in existing]
        if fresh:
            await self._store.add(deal_id, fresh)

        available = await self._store.count_available(deal_id)
        logger.info("Uploaded coupon codes", deal_id=str(deal_id), added=len(fresh), available=available)
        return PoolUploadResult(added=len(fresh), skipped=len(submitted) - len(fresh), available=available)

    async def redeem_pool_code(
        self,
        vendor_id: UUID,
        deal_id: UUID,
        code: str,
        *,
        now: datetime | None = None,
    ) -> CouponCodeResult:
        """Settle a member's reserved pool code at the vendor."""

        reference = as_utc(now) or utcnow()
        deal_code = await self._store.find(deal_id, code.strip())
        if deal_code is None or deal_code.status == DealCodeStatus.AVAILABLE:
            return self._refused(RedemptionFailureReason.NOT_FOUND, POOL_CODE_NOT_FOUND_MESSAGE)

        deal = await self._directory.get_deal_by_id(deal_id)
        if deal is None or deal.vendor_id != vendor_id:
            logger.warning("Coupon code presented to wrong vendor", deal_id=str(deal_id), vendor_id=str(vendor_id))
            return self._refused(RedemptionFailureReason.WRONG_VENDOR, POOL_CODE_WRONG_VENDOR_MESSAGE)

        if deal_code.status == DealCodeStatus.RESERVED:
            expires_at = as_utc(deal_code.expires_at)
            if expires_at is not None and expires_at <= reference:
                if await self._store.mark_expired(deal_code):
                    return self._refused(RedemptionFailureReason.CODE_EXPIRED, POOL_CODE_EXPIRED_MESSAGE)
            elif await self._store.mark_redeemed(deal_code, now=reference):
                logger.info("Redeemed coupon code", deal_id=str(deal_id), code_id=str(deal_code.id), code=deal_code.code)
                return CouponCodeResult(
                    success=True,
                    message=POOL_CODE_REDEEMED_MESSAGE,
                    type=CouponCodeType.UNIQUE,
                    code=deal_code.code,
                    code_id=deal_code.id,
                )

        if deal_code.status == DealCodeStatus.EXPIRED:
            return self._refused(RedemptionFailureReason.CODE_EXPIRED, POOL_CODE_EXPIRED_MESSAGE)
        return self._refused(RedemptionFailureReason.ALREADY_USED, POOL_CODE_USED_MESSAGE)

    @staticmethod
    def _revealed(deal_code: DealCode, message: str) -> CouponCodeResult:
        return CouponCodeResult(
            success=True,
            message=message,
            type=CouponCodeType.UNIQUE,
            code=deal_code.code,
            code_id=deal_code.id,
            expires_at=as_utc(deal_code.expires_at),
        )

    @staticmethod
    def _refused(reason: RedemptionFailureReason, message: str) -> CouponCodeResult:
        return CouponCodeResult(success=False, message=message, reason=reason, type=CouponCodeType.UNIQUE)


__all__ = ["CouponCodeService", "DealCodeStore"]
