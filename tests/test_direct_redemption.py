import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from riselocal_api.models.deal import Deal, RedemptionFrequency
from riselocal_api.models.redemption import DealRedemption, RedemptionFlow, RedemptionStatus
from riselocal_api.services.redemptions import (
    RedemptionFailureReason,
    RedemptionService,
    RedemptionStore,
    frequency_window,
)


T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


async def _redeem(factory, deal_id, user_id, now, source=None):
    async with factory() as session:
        result = await RedemptionService(session).redeem_deal(deal_id, user_id, source=source, now=now)
        await session.commit()
        return result


async def _eligibility(factory, deal_id, user_id, now):
    async with factory() as session:
        return await RedemptionService(session).check_direct_eligibility(deal_id, user_id, now=now)


@pytest.mark.asyncio
async def test_once_frequency_allows_single_redemption(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id)

    first = await _redeem(session_factory, deal.id, marketplace.user_id, T0, source="web")
    assert first.success
    assert first.message == "Deal redeemed"
    assert first.redemption.flow == RedemptionFlow.DIRECT
    assert first.redemption.status == RedemptionStatus.REDEEMED
    assert first.redemption.code is None
    assert first.redemption.source == "web"

    second = await _redeem(session_factory, deal.id, marketplace.user_id, T0 + timedelta(days=90))
    assert not second.success
    assert second.reason == RedemptionFailureReason.ALREADY_REDEEMED
    assert second.message == "You have already redeemed this deal"

    eligibility = await _eligibility(session_factory, deal.id, marketplace.user_id, T0 + timedelta(days=90))
    assert not eligibility.can_redeem
    assert eligibility.reason == "You have already redeemed this deal"
    assert eligibility.next_available_at is None


@pytest.mark.asyncio
async def test_weekly_frequency_reports_next_available_date(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id, redemption_frequency=RedemptionFrequency.WEEKLY)

    assert (await _redeem(session_factory, deal.id, marketplace.user_id, T0)).success

    eligibility = await _eligibility(session_factory, deal.id, marketplace.user_id, T0 + timedelta(days=3))
    assert not eligibility.can_redeem
    assert eligibility.failure == RedemptionFailureReason.FREQUENCY_LIMITED
    assert eligibility.next_available_at == T0 + timedelta(days=7)
    assert eligibility.reason == "You can redeem this deal again on Mar 09, 2026"

    refused = await _redeem(session_factory, deal.id, marketplace.user_id, T0 + timedelta(days=3))
    assert refused.reason == RedemptionFailureReason.FREQUENCY_LIMITED

    assert (await _redeem(session_factory, deal.id, marketplace.user_id, T0 + timedelta(days=7))).success


@pytest.mark.asyncio
async def test_unlimited_frequency_never_blocks(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id, redemption_frequency=RedemptionFrequency.UNLIMITED)

    for minute in range(3):
        assert (await _redeem(session_factory, deal.id, marketplace.user_id, T0 + timedelta(minutes=minute))).success


@pytest.mark.asyncio
async def test_lifecycle_checks_apply_to_one_tap(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id, ends_at=T0 - timedelta(hours=1))

    refused = await _redeem(session_factory, deal.id, marketplace.user_id, T0)
    assert refused.reason == RedemptionFailureReason.DEAL_EXPIRED
    assert refused.message == "This deal has expired"

    eligibility = await _eligibility(session_factory, deal.id, marketplace.user_id, T0)
    assert not eligibility.can_redeem
    assert eligibility.reason == "This deal has expired"


@pytest.mark.asyncio
async def test_code_flow_rows_do_not_count_against_frequency(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id)

    async with session_factory() as session:
        service = RedemptionService(session)
        issued = await service.issue_deal_code(deal.id, None, marketplace.user_id, now=T0)
        await service.verify_redemption_code(issued.code, marketplace.vendor_id, now=T0)
        await session.commit()

    assert (await _redeem(session_factory, deal.id, marketplace.user_id, T0 + timedelta(minutes=1))).success

    async with session_factory() as session:
        service = RedemptionService(session)
        assert await service.get_user_verified_count_for_deal(marketplace.user_id, deal.id) == 1
        history = await service.list_user_redemptions(marketplace.user_id)

    assert {row.flow for row in history} == {RedemptionFlow.CODE, RedemptionFlow.DIRECT}


def test_frequency_window_durations() -> None:
    assert frequency_window(Deal(redemption_frequency=RedemptionFrequency.ONCE)) is None
    assert frequency_window(Deal(redemption_frequency=RedemptionFrequency.UNLIMITED)) is None
    assert frequency_window(Deal(redemption_frequency=RedemptionFrequency.WEEKLY)) == timedelta(days=7)
    assert frequency_window(Deal(redemption_frequency=RedemptionFrequency.MONTHLY)) == timedelta(days=30)
    custom = Deal(redemption_frequency=RedemptionFrequency.CUSTOM, custom_redemption_days=14)
    assert frequency_window(custom) == timedelta(days=14)


def test_custom_frequency_requires_day_count() -> None:
    with pytest.raises(ValueError):
        frequency_window(Deal(redemption_frequency=RedemptionFrequency.CUSTOM))


async def _direct_rows(factory, deal_id) -> int:
    async with factory() as session:
        stmt = select(func.count(DealRedemption.id)).where(
            DealRedemption.deal_id == deal_id,
            DealRedemption.flow == RedemptionFlow.DIRECT,
        )
        return (await session.execute(stmt)).scalar_one()


@pytest.mark.asyncio
@pytest.mark.parametrize("frequency", [RedemptionFrequency.ONCE, RedemptionFrequency.WEEKLY])
async def test_double_tap_records_a_single_redemption(
    file_session_factory, file_marketplace, file_deal_factory, frequency
) -> None:
    deal = await file_deal_factory(file_marketplace.vendor_id, redemption_frequency=frequency)

    results = await asyncio.gather(
        _redeem(file_session_factory, deal.id, file_marketplace.user_id, T0),
        _redeem(file_session_factory, deal.id, file_marketplace.user_id, T0),
    )

    assert sorted(result.success for result in results) == [False, True]
    loser = next(result for result in results if not result.success)
    expected = (
        RedemptionFailureReason.ALREADY_REDEEMED
        if frequency == RedemptionFrequency.ONCE
        else RedemptionFailureReason.FREQUENCY_LIMITED
    )
    assert loser.reason == expected
    assert await _direct_rows(file_session_factory, deal.id) == 1


@pytest.mark.asyncio
async def test_insert_refuses_when_a_prior_tap_already_landed(session_factory, marketplace, deal_factory) -> None:
    deal = await deal_factory(marketplace.vendor_id)
    assert (await _redeem(session_factory, deal.id, marketplace.user_id, T0)).success

    async with session_factory() as session:
        store = RedemptionStore(session)
        loaded = await session.get(Deal, deal.id)
        duplicate = await store.create_direct_unless_redeemed(
            loaded, user_id=marketplace.user_id, redeemed_at=T0 + timedelta(minutes=1), since=None
        )
        other_user = await store.create_direct_unless_redeemed(
            loaded, user_id=marketplace.other_user_id, redeemed_at=T0 + timedelta(minutes=1), since=None
        )
        await session.commit()

    assert duplicate is None
    assert other_user is not None
    assert other_user.status == RedemptionStatus.REDEEMED
    assert await _direct_rows(session_factory, deal.id) == 2
