"""Issuance policy: decides whether a user may receive a new redemption code."""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Callable
from uuid import UUID

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from riselocal_api.core.settings import settings
from riselocal_api.models.deal import Deal
from riselocal_api.models.redemption import DealRedemption
from riselocal_api.services.deals import DealDirectory
from riselocal_api.services.redemptions.codes import generate_redemption_code
from riselocal_api.services.redemptions.guard import check_deal_availability
from riselocal_api.services.redemptions.results import RedemptionFailureReason, RedemptionResult
from riselocal_api.services.redemptions.store import RedemptionStore
from riselocal_api.services.redemptions.timeutils import as_utc, utcnow


CODE_ISSUED_MESSAGE = "Your redemption code is ready"
CODE_REISSUED_MESSAGE = "You already have an active code for this deal"
LIMIT_REACHED_MESSAGE = "You've reached the redemption limit for this deal"
SOLD_OUT_MESSAGE = "This deal has been fully redeemed"
EXHAUSTED_MESSAGE = "Unable to generate a redemption code. Please try again."


def cooldown_message(remaining: timedelta) -> str:
    hours = max(1, math.ceil(remaining.total_seconds() / 3600))
    unit = "hour" if hours == 1 else "hours"
    return f"You can redeem this deal again in {hours} {unit}"


class IssuancePolicy:
    """Mint time-boxed codes after lifecycle, limit, cooldown and cap checks.

    Checks short-circuit in a fixed order so the most specific refusal
    reaches the UI: deal lifecycle, live code (idempotent return), per-user
    limit, cooldown, total cap, then code generation.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        store: RedemptionStore | None = None,
        directory: DealDirectory | None = None,
        code_generator: Callable[[], str] | None = None,
        claim_window: timedelta | None = None,
        max_code_attempts: int | None = None,
    ) -> None:
        self._db = db_session
        self._store = store or RedemptionStore(db_session)
        self._directory = directory or DealDirectory(db_session)
        self._generate_code = code_generator or generate_redemption_code
        self._claim_window = claim_window or timedelta(minutes=settings.redemption_claim_window_minutes)
        self._max_code_attempts = max_code_attempts or settings.redemption_code_max_attempts

    @property
    def claim_window(self) -> timedelta:
        return self._claim_window

    async def issue_code(
        self,
        deal_id: UUID,
        vendor_id: UUID | None,
        user_id: UUID,
        *,
        now: datetime | None = None,
    ) -> RedemptionResult:
        reference = as_utc(now) or utcnow()

        deal = await self._directory.get_deal_by_id(deal_id)
        if deal is not None and vendor_id is not None and deal.vendor_id != vendor_id:
            logger.info(
                "Deal requested under a different vendor",
                deal_id=str(deal_id),
                vendor_id=str(vendor_id),
            )
            deal = None
        user = await self._directory.get_user(user_id) if deal is not None and deal.is_pass_locked else None
        availability = check_deal_availability(deal, user=user, now=reference)
        if not availability.available:
            return RedemptionResult.failure(availability.reason, availability.message)

        await self._store.expire_lapsed_for_user_deal(user_id, deal_id, now=reference)
        existing = await self._store.get_active_redemption_for_user_deal(user_id, deal_id, now=reference)
        if existing is not None:
            logger.debug("Returning live redemption code", redemption_id=str(existing.id))
            return self._issued(existing, CODE_REISSUED_MESSAGE)

        refusal = await self._check_limits(deal, user_id, reference)
        if refusal is not None:
            return refusal

        code = await self._mint_unique_code()
        if code is None:
            logger.error("Exhausted redemption code attempts", deal_id=str(deal_id), attempts=self._max_code_attempts)
            return RedemptionResult.failure(RedemptionFailureReason.EXHAUSTED, EXHAUSTED_MESSAGE)

        try:
            redemption = await self._store.create_issued(
                deal,
                user_id=user_id,
                code=code,
                issued_at=reference,
                expires_at=reference + self._claim_window,
            )
        except IntegrityError:
            await self._db.rollback()
            logger.warning("Detected race when issuing redemption code", deal_id=str(deal_id), user_id=str(user_id))
            winner = await self._store.get_active_redemption_for_user_deal(user_id, deal_id, now=reference)
            if winner is None:
                raise
            return self._issued(winner, CODE_REISSUED_MESSAGE)

        logger.info(
            "Issued redemption code",
            redemption_id=str(redemption.id),
            code=redemption.code,
            deal_id=str(deal_id),
            user_id=str(user_id),
            expires_at=redemption.expires_at.isoformat(),
        )
        return self._issued(redemption, CODE_ISSUED_MESSAGE)

    async def _check_limits(self, deal: Deal, user_id: UUID, now: datetime) -> RedemptionResult | None:
        if deal.max_redemptions_per_user is not None:
            used = await self._store.get_user_verified_count_for_deal(user_id, deal.id)
            if used >= deal.max_redemptions_per_user:
                return RedemptionResult.failure(RedemptionFailureReason.LIMIT_REACHED, LIMIT_REACHED_MESSAGE)

        if deal.cooldown_hours:
            last = await self._store.get_last_verified_redemption_for_user_deal(user_id, deal.id)
            verified_at = as_utc(last.verified_at) if last is not None else None
            if verified_at is not None:
                available_at = verified_at + timedelta(hours=deal.cooldown_hours)
                if now < available_at:
                    return RedemptionResult.failure(
                        RedemptionFailureReason.COOLDOWN,
                        cooldown_message(available_at - now),
                    )

        if deal.max_redemptions_total is not None:
            total = await self._store.get_total_verified_count_for_deal(deal.id)
            if total >= deal.max_redemptions_total:
                return RedemptionResult.failure(RedemptionFailureReason.SOLD_OUT, SOLD_OUT_MESSAGE)

        return None

    async def _mint_unique_code(self) -> str | None:
        for attempt in range(1, self._max_code_attempts + 1):
            candidate = self._generate_code()
            if not await self._store.code_exists(candidate):
                return candidate
            logger.warning("Redemption code collision", attempt=attempt)
        return None

    @staticmethod
    def _issued(redemption: DealRedemption, message: str) -> RedemptionResult:
        return RedemptionResult(
            success=True,
            message=message,
            redemption=redemption,
            code=redemption.code,
            expires_at=as_utc(redemption.expires_at),
        )


__all__ = ["IssuancePolicy", "cooldown_message"]
