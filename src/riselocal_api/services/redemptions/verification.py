"""Vendor-side verification of issued redemption codes."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from riselocal_api.models.redemption import DealRedemption, RedemptionStatus
from riselocal_api.services.redemptions.codes import normalize_redemption_code
from riselocal_api.services.redemptions.results import RedemptionFailureReason, RedemptionResult
from riselocal_api.services.redemptions.store import RedemptionStore
from riselocal_api.services.redemptions.timeutils import as_utc, utcnow


CODE_VERIFIED_MESSAGE = "Code verified successfully"
CODE_NOT_FOUND_MESSAGE = "Invalid redemption code"
WRONG_VENDOR_MESSAGE = "This code belongs to a different vendor"
ALREADY_USED_MESSAGE = "This code has already been used"
VOIDED_MESSAGE = "This code has been voided"
CODE_EXPIRED_MESSAGE = "This code has expired"

_TERMINAL_REFUSALS = {
    RedemptionStatus.VERIFIED: (RedemptionFailureReason.ALREADY_USED, ALREADY_USED_MESSAGE),
    RedemptionStatus.VOIDED: (RedemptionFailureReason.VOIDED, VOIDED_MESSAGE),
    RedemptionStatus.EXPIRED: (RedemptionFailureReason.CODE_EXPIRED, CODE_EXPIRED_MESSAGE),
}


def _refusal_for_resolved(redemption: DealRedemption) -> RedemptionResult:
    """Refusal matching the status another caller moved the row to."""

    reason, message = _TERMINAL_REFUSALS.get(
        redemption.status,
        (RedemptionFailureReason.ALREADY_USED, ALREADY_USED_MESSAGE),
    )
    return RedemptionResult.failure(reason, message, redemption=redemption)


class VerificationService:
    """Flip an issued code to verified exactly once.

    Expiry is enforced lazily here; there is no background sweep. The final
    transition is a compare-and-swap on ``status`` so concurrent vendors
    entering the same code cannot both succeed.
    """

    def __init__(self, db_session: AsyncSession, *, store: RedemptionStore | None = None) -> None:
        self._store = store or RedemptionStore(db_session)

    async def verify_code(
        self,
        code: str,
        vendor_id: UUID,
        *,
        now: datetime | None = None,
    ) -> RedemptionResult:
        reference = as_utc(now) or utcnow()
        normalized = normalize_redemption_code(code)

        redemption = await self._store.find_by_code(normalized) if normalized else None
        if redemption is None:
            return RedemptionResult.failure(RedemptionFailureReason.NOT_FOUND, CODE_NOT_FOUND_MESSAGE)

        if redemption.vendor_id != vendor_id:
            logger.warning(
                "Redemption code presented to foreign vendor",
                redemption_id=str(redemption.id),
                vendor_id=str(vendor_id),
            )
            return RedemptionResult.failure(RedemptionFailureReason.WRONG_VENDOR, WRONG_VENDOR_MESSAGE)

        refusal = _TERMINAL_REFUSALS.get(redemption.status)
        if refusal is not None:
            reason, message = refusal
            return RedemptionResult.failure(reason, message, redemption=redemption)

        expires_at = as_utc(redemption.expires_at)
        if expires_at is not None and reference >= expires_at:
            if await self._store.mark_expired(redemption):
                logger.info("Redemption code lapsed at verification", redemption_id=str(redemption.id))
                return RedemptionResult.failure(
                    RedemptionFailureReason.CODE_EXPIRED,
                    CODE_EXPIRED_MESSAGE,
                    redemption=redemption,
                )
            return _refusal_for_resolved(redemption)

        if not await self._store.mark_verified(redemption, now=reference):
            logger.warning("Lost verification race", redemption_id=str(redemption.id), status=redemption.status.value)
            return _refusal_for_resolved(redemption)

        logger.info(
            "Verified redemption code",
            redemption_id=str(redemption.id),
            code=redemption.code,
            deal_id=str(redemption.deal_id),
            vendor_id=str(vendor_id),
        )
        return RedemptionResult(
            success=True,
            message=CODE_VERIFIED_MESSAGE,
            redemption=redemption,
            code=redemption.code,
            expires_at=expires_at,
        )


__all__ = ["VerificationService"]
