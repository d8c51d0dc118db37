"""One-tap redemption path governed by a redemption frequency."""

from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from riselocal_api.models.deal import Deal, RedemptionFrequency
from riselocal_api.services.deals import DealDirectory
from riselocal_api.services.redemptions.guard import check_deal_availability
from riselocal_api.services.redemptions.results import (
    DirectEligibility,
    RedemptionFailureReason,
    RedemptionResult,
)
from riselocal_api.services.redemptions.store import RedemptionStore
from riselocal_api.services.redemptions.timeutils import as_utc, utcnow


DEAL_REDEEMED_MESSAGE = "Deal redeemed"
ALREADY_REDEEMED_MESSAGE = "You have already redeemed this deal"

_FIXED_WINDOWS = {
    RedemptionFrequency.WEEKLY: timedelta(days=7),
    RedemptionFrequency.MONTHLY: timedelta(days=30),
}


def frequency_window(deal: Deal) -> timedelta | None:
    """Return the wait between one-tap redemptions, or None for unlimited/once."""

    frequency = deal.redemption_frequency or RedemptionFrequency.ONCE
    if frequency in _FIXED_WINDOWS:
        return _FIXED_WINDOWS[frequency]
    if frequency == RedemptionFrequency.CUSTOM:
        if not deal.custom_redemption_days or deal.custom_redemption_days <= 0:
            raise ValueError("Custom redemption frequency requires a positive day count")
        return timedelta(days=deal.custom_redemption_days)
    return None


def frequency_message(available_at: datetime) -> str:
    return f"You can redeem this deal again on {available_at.strftime('%b %d, %Y')}"


class DirectRedemptionService:
    """Record ``redeemed`` rows without the issue/verify handshake.

    Only rows tagged ``direct`` are consulted; code-flow rows never count
    against the frequency policy.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        store: RedemptionStore | None = None,
        directory: DealDirectory | None = None,
    ) -> None:
        self._store = store or RedemptionStore(db_session)
        self._directory = directory or DealDirectory(db_session)

    async def check_eligibility(
        self,
        deal_id: UUID,
        user_id: UUID,
        *,
        now: datetime | None = None,
    ) -> DirectEligibility:
        reference = as_utc(now) or utcnow()
        deal = await self._directory.get_deal_by_id(deal_id)
        user = await self._directory.get_user(user_id)
        availability = check_deal_availability(deal, user=user, now=reference)
        if not availability.available:
            return DirectEligibility(
                can_redeem=False,
                reason=availability.message,
                failure=availability.reason,
            )

        frequency = deal.redemption_frequency or RedemptionFrequency.ONCE
        if frequency == RedemptionFrequency.UNLIMITED:
            return DirectEligibility(can_redeem=True)

        last = await self._store.get_last_direct_redemption(user_id, deal_id)
        if last is None:
            return DirectEligibility(can_redeem=True)

        window = frequency_window(deal)
        if window is None:
            return DirectEligibility(
                can_redeem=False,
                reason=ALREADY_REDEEMED_MESSAGE,
                failure=RedemptionFailureReason.ALREADY_REDEEMED,
            )

        available_at = as_utc(last.redeemed_at) + window
        if reference < available_at:
            return DirectEligibility(
                can_redeem=False,
                reason=frequency_message(available_at),
                failure=RedemptionFailureReason.FREQUENCY_LIMITED,
                next_available_at=available_at,
            )
        return DirectEligibility(can_redeem=True)

    async def redeem_deal(
        self,
        deal_id: UUID,
        user_id: UUID,
        *,
        source: str | None = None,
        now: datetime | None = None,
    ) -> RedemptionResult:
        """Record a one-tap redemption.

        The deal row is locked first and the insert re-checks the frequency
        window in the same statement, so two taps cannot both land.
        """

        reference = as_utc(now) or utcnow()
        await self._store.lock_deal(deal_id)
        eligibility = await self.check_eligibility(deal_id, user_id, now=reference)
        if not eligibility.can_redeem:
            return RedemptionResult.failure(eligibility.failure, eligibility.reason)

        deal = await self._directory.get_deal_by_id(deal_id)
        if deal.redemption_frequency == RedemptionFrequency.UNLIMITED:
            redemption = await self._store.create_direct(
                deal,
                user_id=user_id,
                redeemed_at=reference,
                source=source,
            )
        else:
            window = frequency_window(deal)
            redemption = await self._store.create_direct_unless_redeemed(
                deal,
                user_id=user_id,
                redeemed_at=reference,
                since=reference - window if window is not None else None,
                source=source,
            )
            if redemption is None:
                logger.warning("Lost one-tap redemption race", deal_id=str(deal_id), user_id=str(user_id))
                return await self._refusal_after_race(deal_id, user_id, reference)

        logger.info(
            "Recorded one-tap redemption",
            redemption_id=str(redemption.id),
            deal_id=str(deal_id),
            user_id=str(user_id),
            source=source,
        )
        return RedemptionResult(success=True, message=DEAL_REDEEMED_MESSAGE, redemption=redemption)

    async def _refusal_after_race(self, deal_id: UUID, user_id: UUID, now: datetime) -> RedemptionResult:
        eligibility = await self.check_eligibility(deal_id, user_id, now=now)
        if eligibility.can_redeem:
            return RedemptionResult.failure(RedemptionFailureReason.ALREADY_REDEEMED, ALREADY_REDEEMED_MESSAGE)
        return RedemptionResult.failure(eligibility.failure, eligibility.reason)


__all__ = ["DirectRedemptionService", "frequency_window"]
