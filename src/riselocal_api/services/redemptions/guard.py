"""Deal lifecycle checks shared by code issuance and one-tap redemption."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from riselocal_api.models.deal import Deal, DealStatus
from riselocal_api.models.user import User
from riselocal_api.services.redemptions.results import RedemptionFailureReason
from riselocal_api.services.redemptions.timeutils import as_utc, utcnow


DEAL_NOT_FOUND_MESSAGE = "Deal not found"
DEAL_INACTIVE_MESSAGE = "This deal is no longer active"
DEAL_NOT_STARTED_MESSAGE = "This deal hasn't started yet"
DEAL_EXPIRED_MESSAGE = "This deal has expired"
DEAL_MEMBERS_ONLY_MESSAGE = "This deal is only available to Rise Local Pass members"


@dataclass(frozen=True)
class DealAvailability:
    available: bool
    reason: RedemptionFailureReason | None = None
    message: str | None = None


_AVAILABLE = DealAvailability(available=True)


def _refuse(reason: RedemptionFailureReason, message: str) -> DealAvailability:
    return DealAvailability(available=False, reason=reason, message=message)


def check_deal_availability(
    deal: Deal | None,
    *,
    user: User | None = None,
    now: datetime | None = None,
) -> DealAvailability:
    """Validate that a deal can be issued or redeemed right now.

    Checks run in order: existence, soft delete, ``is_active``, published
    status, start bound, end bound, then Rise Local Pass membership for
    pass-locked deals. Unset bounds are unbounded.
    """

    if deal is None or deal.deleted_at is not None:
        return _refuse(RedemptionFailureReason.NOT_FOUND, DEAL_NOT_FOUND_MESSAGE)
    if not deal.is_active or deal.status != DealStatus.PUBLISHED:
        return _refuse(RedemptionFailureReason.INACTIVE, DEAL_INACTIVE_MESSAGE)

    reference = now or utcnow()
    starts_at = as_utc(deal.starts_at)
    if starts_at is not None and reference < starts_at:
        return _refuse(RedemptionFailureReason.NOT_STARTED, DEAL_NOT_STARTED_MESSAGE)
    ends_at = as_utc(deal.ends_at)
    if ends_at is not None and reference > ends_at:
        return _refuse(RedemptionFailureReason.DEAL_EXPIRED, DEAL_EXPIRED_MESSAGE)

    if deal.is_pass_locked and (user is None or not user.has_active_pass(reference)):
        return _refuse(RedemptionFailureReason.MEMBERS_ONLY, DEAL_MEMBERS_ONLY_MESSAGE)

    return _AVAILABLE


__all__ = ["DealAvailability", "check_deal_availability"]
