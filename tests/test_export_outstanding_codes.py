import csv
import json
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from riselocal_api.services.redemptions import RedemptionService
from tooling.scripts.export_outstanding_codes import (
    FIELDNAMES,
    fetch_outstanding_codes,
    parse_args,
    write_csv,
    write_json,
)


def test_parse_args_requires_vendor() -> None:
    vendor_id = uuid4()
    args = parse_args(["--vendor-id", str(vendor_id), "--format", "json"])

    assert args.vendor_id == vendor_id
    assert args.deal_id is None
    assert args.format == "json"

    with pytest.raises(SystemExit):
        parse_args([])


@pytest.mark.asyncio
async def test_export_reports_live_and_lapsed_codes(session_factory, marketplace, deal_factory, tmp_path) -> None:
    deal = await deal_factory(marketplace.vendor_id)
    now = datetime.now(timezone.utc)

    async with session_factory() as session:
        service = RedemptionService(session)
        live = await service.issue_deal_code(deal.id, None, marketplace.user_id, now=now)
        lapsed = await service.issue_deal_code(
            deal.id, None, marketplace.other_user_id, now=now - timedelta(minutes=30)
        )
        await session.commit()

    rows = await fetch_outstanding_codes(marketplace.vendor_id, session_factory=session_factory)

    by_code = {row["code"]: row for row in rows}
    assert set(by_code) == {live.code, lapsed.code}
    assert by_code[live.code]["effective_status"] == "issued"
    assert by_code[live.code]["seconds_remaining"] > 0
    assert by_code[lapsed.code]["status"] == "issued"
    assert by_code[lapsed.code]["effective_status"] == "expired"
    assert by_code[lapsed.code]["seconds_remaining"] == 0

    csv_path = tmp_path / "codes.csv"
    write_csv(csv_path, rows)
    with csv_path.open(encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        assert reader.fieldnames == FIELDNAMES
        assert len(list(reader)) == 2

    json_path = tmp_path / "codes.json"
    write_json(json_path, rows)
    assert json.loads(json_path.read_text(encoding="utf-8")) == rows


@pytest.mark.asyncio
async def test_export_rejects_unknown_vendor(session_factory) -> None:
    with pytest.raises(ValueError):
        await fetch_outstanding_codes(uuid4(), session_factory=session_factory)
