from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from riselocal_api.models.redemption import DealRedemption, RedemptionStatus
from riselocal_api.services.redemptions import (
    IssuancePolicy,
    RedemptionFailureReason,
    RedemptionService,
    RedemptionStore,
    cooldown_message,
    is_redemption_code,
)
from riselocal_api.services.redemptions.timeutils import as_utc


T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


async def _issue(factory, deal_id, user_id, now, *, vendor_id=None, **service_kwargs):
    async with factory() as session:
        service = RedemptionService(session, **service_kwargs)
        result = await service.issue_deal_code(deal_id, vendor_id, user_id, now=now)
        await session.commit()
        return result


async def _verify(factory, code, vendor_id, now):
    async with factory() as session:
        result = await RedemptionService(session).verify_redemption_code(code, vendor_id, now=now)
        await session.commit()
        return result


async def _rows(factory, deal_id):
    async with factory() as session:
        result = await session.execute(
            select(DealRedemption).where(DealRedemption.deal_id == deal_id).order_by(DealRedemption.issued_at)
        )
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_issue_code_mints_ten_minute_code(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id)

    result = await _issue(session_factory, deal.id, marketplace.user_id, T0)

    assert result.success
    assert result.message == "Your redemption code is ready"
    assert is_redemption_code(result.code)
    assert result.expires_at == T0 + timedelta(minutes=10)
    assert result.redemption.status == RedemptionStatus.ISSUED
    assert result.redemption.vendor_id == marketplace.vendor_id
    assert as_utc(result.redemption.issued_at) == T0


@pytest.mark.asyncio
async def test_issue_code_is_idempotent_while_code_is_live(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id)

    first = await _issue(session_factory, deal.id, marketplace.user_id, T0)
    second = await _issue(session_factory, deal.id, marketplace.user_id, T0 + timedelta(minutes=9))

    assert second.success
    assert second.code == first.code
    assert second.redemption.id == first.redemption.id
    assert second.message == "You already have an active code for this deal"
    assert second.expires_at == T0 + timedelta(minutes=10)
    assert len(await _rows(session_factory, deal.id)) == 1


@pytest.mark.asyncio
async def test_lapsed_code_is_expired_before_reissue(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id)

    first = await _issue(session_factory, deal.id, marketplace.user_id, T0)
    second = await _issue(session_factory, deal.id, marketplace.user_id, T0 + timedelta(minutes=10))

    assert second.success
    assert second.code != first.code
    assert second.message == "Your redemption code is ready"

    rows = await _rows(session_factory, deal.id)
    assert [row.status for row in rows] == [RedemptionStatus.EXPIRED, RedemptionStatus.ISSUED]


@pytest.mark.asyncio
async def test_per_user_limit_counts_verified_codes(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id)

    issued = await _issue(session_factory, deal.id, marketplace.user_id, T0)
    verified = await _verify(session_factory, issued.code, marketplace.vendor_id, T0 + timedelta(minutes=2))
    assert verified.success

    refused = await _issue(session_factory, deal.id, marketplace.user_id, T0 + timedelta(days=2))

    assert not refused.success
    assert refused.reason == RedemptionFailureReason.LIMIT_REACHED
    assert refused.message == "You've reached the redemption limit for this deal"
    assert refused.code is None
    assert len(await _rows(session_factory, deal.id)) == 1


@pytest.mark.asyncio
async def test_unbounded_per_user_limit_allows_repeat_codes(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id, max_redemptions_per_user=None)

    for offset in range(3):
        now = T0 + timedelta(hours=offset)
        issued = await _issue(session_factory, deal.id, marketplace.user_id, now)
        assert issued.success
        assert (await _verify(session_factory, issued.code, marketplace.vendor_id, now)).success

    async with session_factory() as session:
        service = RedemptionService(session)
        assert await service.get_user_verified_count_for_deal(marketplace.user_id, deal.id) == 3


@pytest.mark.asyncio
async def test_cooldown_blocks_until_window_elapses(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id, max_redemptions_per_user=None, cooldown_hours=24)

    issued = await _issue(session_factory, deal.id, marketplace.user_id, T0)
    await _verify(session_factory, issued.code, marketplace.vendor_id, T0 + timedelta(minutes=1))

    early = await _issue(session_factory, deal.id, marketplace.user_id, T0 + timedelta(hours=23))
    assert not early.success
    assert early.reason == RedemptionFailureReason.COOLDOWN
    assert early.message == "You can redeem this deal again in 2 hours"

    later = await _issue(session_factory, deal.id, marketplace.user_id, T0 + timedelta(hours=24, minutes=2))
    assert later.success


@pytest.mark.asyncio
async def test_cooldown_hours_are_measured_from_verification(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id, max_redemptions_per_user=None, cooldown_hours=24)

    issued = await _issue(session_factory, deal.id, marketplace.user_id, T0)
    assert (await _verify(session_factory, issued.code, marketplace.vendor_id, T0)).success

    one_hour = await _issue(session_factory, deal.id, marketplace.user_id, T0 + timedelta(hours=1))
    assert not one_hour.success
    assert one_hour.reason == RedemptionFailureReason.COOLDOWN
    assert one_hour.message == "You can redeem this deal again in 23 hours"

    next_day = await _issue(session_factory, deal.id, marketplace.user_id, T0 + timedelta(hours=25))
    assert next_day.success
    assert next_day.expires_at == T0 + timedelta(hours=25, minutes=10)


def test_cooldown_message_rounds_up_to_whole_hours() -> None:
    assert cooldown_message(timedelta(minutes=5)) == "You can redeem this deal again in 1 hour"
    assert cooldown_message(timedelta(hours=1)) == "You can redeem this deal again in 1 hour"
    assert cooldown_message(timedelta(hours=1, seconds=1)) == "You can redeem this deal again in 2 hours"


@pytest.mark.asyncio
async def test_total_cap_reports_sold_out(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id, max_redemptions_total=1)

    issued = await _issue(session_factory, deal.id, marketplace.user_id, T0)
    await _verify(session_factory, issued.code, marketplace.vendor_id, T0 + timedelta(minutes=1))

    refused = await _issue(session_factory, deal.id, marketplace.other_user_id, T0 + timedelta(minutes=5))

    assert not refused.success
    assert refused.reason == RedemptionFailureReason.SOLD_OUT
    assert refused.message == "This deal has been fully redeemed"


@pytest.mark.asyncio
async def test_code_generation_exhaustion(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id)
    constant = lambda: "RL-AAAAAA"  # noqa: E731

    first = await _issue(session_factory, deal.id, marketplace.user_id, T0, code_generator=constant)
    assert first.success

    second = await _issue(session_factory, deal.id, marketplace.other_user_id, T0, code_generator=constant)
    assert not second.success
    assert second.reason == RedemptionFailureReason.EXHAUSTED
    assert second.message == "Unable to generate a redemption code. Please try again."


@pytest.mark.asyncio
async def test_vendor_mismatch_is_reported_as_missing_deal(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id)

    result = await _issue(
        session_factory,
        deal.id,
        marketplace.user_id,
        T0,
        vendor_id=marketplace.other_vendor_id,
    )

    assert not result.success
    assert result.reason == RedemptionFailureReason.NOT_FOUND
    assert await _rows(session_factory, deal.id) == []


@pytest.mark.asyncio
async def test_lifecycle_refusals_do_not_write(session_factory, marketplace, deal_factory) -> None:
    inactive = await deal_factory(marketplace.vendor_id, is_active=False)
    upcoming = await deal_factory(marketplace.vendor_id, starts_at=T0 + timedelta(days=1))
    ended = await deal_factory(marketplace.vendor_id, ends_at=T0 - timedelta(days=1))

    assert (await _issue(session_factory, inactive.id, marketplace.user_id, T0)).reason == (
        RedemptionFailureReason.INACTIVE
    )
    assert (await _issue(session_factory, upcoming.id, marketplace.user_id, T0)).reason == (
        RedemptionFailureReason.NOT_STARTED
    )
    assert (await _issue(session_factory, ended.id, marketplace.user_id, T0)).reason == (
        RedemptionFailureReason.DEAL_EXPIRED
    )
    for deal in (inactive, upcoming, ended):
        assert await _rows(session_factory, deal.id) == []


@pytest.mark.asyncio
async def test_pass_locked_deal_requires_membership(session_factory, marketplace, deal_factory) -> None:
    from riselocal_api.models.user import User

    deal = await deal_factory(marketplace.vendor_id, is_pass_locked=True)

    refused = await _issue(session_factory, deal.id, marketplace.user_id, T0)
    assert refused.reason == RedemptionFailureReason.MEMBERS_ONLY

    async with session_factory() as session:
        user = await session.get(User, marketplace.user_id)
        user.is_pass_member = True
        user.pass_expires_at = T0 + timedelta(days=30)
        await session.commit()

    assert (await _issue(session_factory, deal.id, marketplace.user_id, T0)).success


@pytest.mark.asyncio
async def test_single_live_code_per_user_and_deal_is_enforced(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id)

    async with session_factory() as session:
        store = RedemptionStore(session)
        await store.create_issued(
            deal, user_id=marketplace.user_id, code="RL-BBBBBB", issued_at=T0, expires_at=T0 + timedelta(minutes=10)
        )
        await session.commit()

    async with session_factory() as session:
        store = RedemptionStore(session)
        with pytest.raises(IntegrityError):
            await store.create_issued(
                deal,
                user_id=marketplace.user_id,
                code="RL-CCCCCC",
                issued_at=T0,
                expires_at=T0 + timedelta(minutes=10),
            )
        await session.rollback()

    async with session_factory() as session:
        store = RedemptionStore(session)
        assert await store.expire_lapsed_for_user_deal(marketplace.user_id, deal.id, now=T0 + timedelta(minutes=10)) == 1
        await store.create_issued(
            deal,
            user_id=marketplace.user_id,
            code="RL-CCCCCC",
            issued_at=T0 + timedelta(minutes=10),
            expires_at=T0 + timedelta(minutes=20),
        )
        await session.commit()

    rows = await _rows(session_factory, deal.id)
    assert sorted(row.code for row in rows) == ["RL-BBBBBB", "RL-CCCCCC"]


class _LateStore(RedemptionStore):
    """Misses the live code on the first lookup, as if another request committed it just after."""

    def __init__(self, db_session) -> None:
        super().__init__(db_session)
        self.lookups = 0

    async def get_active_redemption_for_user_deal(self, user_id, deal_id, *, now=None):
        self.lookups += 1
        if self.lookups == 1:
            return None
        return await super().get_active_redemption_for_user_deal(user_id, deal_id, now=now)


@pytest.mark.asyncio
async def test_issuance_race_returns_the_committed_code(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id)

    async with session_factory() as session:
        await RedemptionStore(session).create_issued(
            deal, user_id=marketplace.user_id, code="RL-WWWWWW", issued_at=T0, expires_at=T0 + timedelta(minutes=10)
        )
        await session.commit()

    async with session_factory() as session:
        store = _LateStore(session)
        policy = IssuancePolicy(session, store=store, code_generator=lambda: "RL-NEWNEW")
        result = await policy.issue_code(deal.id, None, marketplace.user_id, now=T0 + timedelta(minutes=1))
        await session.commit()

    assert result.success
    assert result.code == "RL-WWWWWW"
    assert result.message == "You already have an active code for this deal"
    assert result.expires_at == T0 + timedelta(minutes=10)
    assert store.lookups == 2

    rows = await _rows(session_factory, deal.id)
    assert [row.code for row in rows] == ["RL-WWWWWW"]
