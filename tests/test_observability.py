import pytest
from httpx import ASGITransport, AsyncClient

from riselocal_api.observability.redemptions import RedemptionObservabilityStore


def test_store_groups_outcomes() -> None:
    store = RedemptionObservabilityStore()
    store.record_issuance("success")
    store.record_issuance("success")
    store.record_issuance("cooldown")
    store.record_verification("wrong_vendor")
    store.record_direct_redemption("already_redeemed")
    store.record_coupon("pool_empty")
    store.record_void()

    snapshot = store.snapshot().as_dict()
    assert snapshot == {
        "issuance": {"success": 2, "cooldown": 1},
        "verification": {"wrong_vendor": 1},
        "direct": {"already_redeemed": 1},
        "coupon": {"pool_empty": 1},
        "voids": 1,
    }

    store.reset()
    assert store.snapshot().as_dict()["issuance"] == {}


@pytest.mark.asyncio
async def test_observability_endpoints_expose_counters(app_with_db, redemption_observability) -> None:
    app, _ = app_with_db
    redemption_observability.record_issuance("success")
    redemption_observability.record_verification("code_expired")
    redemption_observability.record_coupon("success")
    redemption_observability.record_void()

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        snapshot_resp = await client.get("/api/v1/observability/redemptions")
        prometheus_resp = await client.get("/api/v1/observability/prometheus")

    assert snapshot_resp.status_code == 200
    assert snapshot_resp.json()["verification"] == {"code_expired": 1}

    assert prometheus_resp.status_code == 200
    body = prometheus_resp.text
    assert 'riselocal_redemption_issuance_total{outcome="success"} 1' in body
    assert 'riselocal_redemption_verification_total{outcome="code_expired"} 1' in body
    assert 'riselocal_redemption_coupon_total{outcome="success"} 1' in body
    assert "riselocal_redemption_voids_total 1" in body
