from datetime import datetime, timezone
from types import SimpleNamespace

from riselocal_api.core.logging import _build_payload, mask_redemption_code


def test_mask_redemption_code_keeps_prefix_and_tail() -> None:
    assert mask_redemption_code("RL-AB2C3D") == "RL-****3D"
    assert mask_redemption_code("RL-") == "RL-"
    assert mask_redemption_code(None) is None


def test_payload_masks_code_extras() -> None:
    record = {
        "time": datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc),
        "level": SimpleNamespace(name="INFO"),
        "message": "Exported outstanding redemption codes",
        "name": "tooling",
        "extra": {"code": "RL-XYZ234", "deal_id": "d-1"},
        "exception": None,
    }

    payload = _build_payload(record, {"service_name": "riselocal-api", "environment": "development"})

    assert payload["code"] == "RL-****34"
    assert payload["deal_id"] == "d-1"
    assert payload["service"] == "riselocal-api"
    assert payload["version"] == "unknown"
    assert "trace_id" not in payload
