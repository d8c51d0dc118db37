"""Storage-layer interface consumed by the HTTP handlers."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from riselocal_api.models.redemption import DealRedemption, RedemptionFlow
from riselocal_api.observability.redemptions import (
    RedemptionObservabilityStore,
    get_redemption_store,
)
from riselocal_api.observability.tracing import get_tracer
from riselocal_api.services.deals import DealDirectory
from riselocal_api.services.redemptions.coupons import CouponCodeService
from riselocal_api.services.redemptions.direct import DirectRedemptionService
from riselocal_api.services.redemptions.issuance import IssuancePolicy
from riselocal_api.services.redemptions.results import (
    CouponCodeResult,
    DirectEligibility,
    OutstandingCode,
    PoolUploadResult,
    RedemptionResult,
)
from riselocal_api.services.redemptions.store import RedemptionStore
from riselocal_api.services.redemptions.timeutils import as_utc, utcnow
from riselocal_api.services.redemptions.verification import VerificationService


_tracer = get_tracer(__name__)


class RedemptionService:
    """Coordinates issuance, verification, voiding and one-tap redemption.

    Operations flush but never commit; the caller owns the transaction.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        code_generator: Callable[[], str] | None = None,
        observability: RedemptionObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._store = RedemptionStore(db_session)
        self._directory = DealDirectory(db_session)
        self._issuance = IssuancePolicy(
            db_session,
            store=self._store,
            directory=self._directory,
            code_generator=code_generator,
        )
        self._verification = VerificationService(db_session, store=self._store)
        self._direct = DirectRedemptionService(db_session, store=self._store, directory=self._directory)
        self._coupons = CouponCodeService(db_session, directory=self._directory)
        self._observability = observability or get_redemption_store()

    @property
    def directory(self) -> DealDirectory:
        return self._directory

    async def issue_deal_code(
        self,
        deal_id: UUID,
        vendor_id: UUID | None,
        user_id: UUID,
        *,
        now: datetime | None = None,
    ) -> RedemptionResult:
        with _tracer.start_as_current_span("redemptions.issue_code") as span:
            span.set_attribute("deal.id", str(deal_id))
            result = await self._issuance.issue_code(deal_id, vendor_id, user_id, now=now)
            span.set_attribute("redemption.outcome", result.outcome)
        self._observability.record_issuance(result.outcome)
        if not result.success:
            logger.info(
                "Refused redemption code issuance",
                deal_id=str(deal_id),
                user_id=str(user_id),
                reason=result.outcome,
            )
        return result

    async def verify_redemption_code(
        self,
        code: str,
        vendor_id: UUID,
        *,
        now: datetime | None = None,
    ) -> RedemptionResult:
        with _tracer.start_as_current_span("redemptions.verify_code") as span:
            span.set_attribute("vendor.id", str(vendor_id))
            result = await self._verification.verify_code(code, vendor_id, now=now)
            span.set_attribute("redemption.outcome", result.outcome)
        self._observability.record_verification(result.outcome)
        return result

    async def void_redemption(
        self,
        redemption_id: UUID,
        reason: str | None = None,
        *,
        now: datetime | None = None,
    ) -> DealRedemption | None:
        """Void an issued code; terminal and one-tap rows are returned unchanged."""

        redemption = await self._store.get(redemption_id)
        if redemption is None:
            return None
        if redemption.flow != RedemptionFlow.CODE:
            logger.info("Ignoring void for one-tap redemption", redemption_id=str(redemption_id))
            return redemption

        reference = as_utc(now) or utcnow()
        if await self._store.mark_voided(redemption, now=reference, reason=reason):
            self._observability.record_void()
            logger.info("Voided redemption code", redemption_id=str(redemption_id), reason=reason)
        else:
            logger.info(
                "Redemption already resolved",
                redemption_id=str(redemption_id),
                status=redemption.status.value,
            )
        return redemption

    async def get_active_redemption_for_user_deal(
        self, user_id: UUID, deal_id: UUID, *, now: datetime | None = None
    ) -> DealRedemption | None:
        return await self._store.get_active_redemption_for_user_deal(user_id, deal_id, now=now)

    async def get_user_verified_count_for_deal(self, user_id: UUID, deal_id: UUID) -> int:
        return await self._store.get_user_verified_count_for_deal(user_id, deal_id)

    async def get_total_verified_count_for_deal(self, deal_id: UUID) -> int:
        return await self._store.get_total_verified_count_for_deal(deal_id)

    async def get_last_verified_redemption_for_user_deal(
        self, user_id: UUID, deal_id: UUID
    ) -> DealRedemption | None:
        return await self._store.get_last_verified_redemption_for_user_deal(user_id, deal_id)

    async def redeem_deal(
        self,
        deal_id: UUID,
        user_id: UUID,
        *,
        source: str | None = None,
        now: datetime | None = None,
    ) -> RedemptionResult:
        result = await self._direct.redeem_deal(deal_id, user_id, source=source, now=now)
        self._observability.record_direct_redemption(result.outcome)
        return result

    async def check_direct_eligibility(
        self, deal_id: UUID, user_id: UUID, *, now: datetime | None = None
    ) -> DirectEligibility:
        return await self._direct.check_eligibility(deal_id, user_id, now=now)

    async def list_outstanding_codes(
        self,
        vendor_id: UUID,
        *,
        deal_id: UUID | None = None,
        now: datetime | None = None,
    ) -> list[OutstandingCode]:
        return await self._store.list_outstanding_for_vendor(vendor_id, deal_id=deal_id, now=now)

    async def list_user_redemptions(self, user_id: UUID, *, limit: int = 50) -> Sequence[DealRedemption]:
        return await self._store.list_for_user(user_id, limit=limit)

    async def get_user_redemption(self, redemption_id: UUID, user_id: UUID) -> DealRedemption | None:
        """Return the redemption only when it belongs to ``user_id``."""

        redemption = await self._store.get(redemption_id)
        if redemption is None or redemption.user_id != user_id:
            return None
        return redemption

    async def reveal_coupon_code(
        self, deal_id: UUID, user_id: UUID, *, now: datetime | None = None
    ) -> CouponCodeResult:
        with _tracer.start_as_current_span("redemptions.reveal_coupon") as span:
            span.set_attribute("deal.id", str(deal_id))
            result = await self._coupons.reveal(deal_id, user_id, now=now)
            span.set_attribute("redemption.outcome", result.outcome)
        self._observability.record_coupon(result.outcome)
        return result

    async def add_pool_codes(self, deal_id: UUID, codes: Sequence[str]) -> PoolUploadResult:
        return await self._coupons.add_pool_codes(deal_id, codes)

    async def redeem_pool_code(
        self,
        vendor_id: UUID,
        deal_id: UUID,
        code: str,
        *,
        now: datetime | None = None,
    ) -> CouponCodeResult:
        return await self._coupons.redeem_pool_code(vendor_id, deal_id, code, now=now)


__all__ = ["RedemptionService"]
