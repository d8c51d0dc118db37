"""Export a vendor's outstanding redemption codes.

Counter staff use this to reconcile codes that were issued but never
entered at the till. Lapsed codes are reported with ``effective_status``
``expired`` even if no verification attempt has touched them yet.

Example::
    python tooling/scripts/export_outstanding_codes.py --vendor-id <uuid> --format csv --output codes.csv
"""

from __future__ import annotations

import argparse
import asyncio
import csv
import json
import sys
from pathlib import Path
from typing import Any, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from riselocal_api.services.redemptions import OutstandingCode, RedemptionService
from riselocal_api.services.redemptions.timeutils import as_utc


FIELDNAMES = [
    "id",
    "deal_id",
    "user_id",
    "code",
    "status",
    "effective_status",
    "issued_at",
    "expires_at",
    "seconds_remaining",
]


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export outstanding redemption codes for a vendor")
    parser.add_argument("--vendor-id", type=UUID, required=True, help="Vendor whose codes should be exported.")
    parser.add_argument("--deal-id", type=UUID, default=None, help="Restrict the export to a single deal.")
    parser.add_argument(
        "--format",
        choices=("csv", "json"),
        default="csv",
        help="Output format for the export.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Output file path. Defaults to outstanding-codes.<format> in the current directory.",
    )
    return parser.parse_args(argv)


def serialize_outstanding_codes(entries: Sequence[OutstandingCode]) -> list[dict[str, Any]]:
    serialized: list[dict[str, Any]] = []
    for entry in entries:
        redemption = entry.redemption
        issued_at = as_utc(redemption.issued_at)
        expires_at = as_utc(redemption.expires_at)
        serialized.append(
            {
                "id": str(redemption.id),
                "deal_id": str(redemption.deal_id),
                "user_id": str(redemption.user_id),
                "code": redemption.code,
                "status": redemption.status.value,
                "effective_status": entry.effective_status.value,
                "issued_at": issued_at.isoformat() if issued_at else None,
                "expires_at": expires_at.isoformat() if expires_at else None,
                "seconds_remaining": entry.seconds_remaining,
            }
        )
    return serialized


async def fetch_outstanding_codes(
    vendor_id: UUID,
    *,
    deal_id: UUID | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> list[dict[str, Any]]:
    if session_factory is None:
        from riselocal_api.db.session import async_session

        session_factory = async_session

    async with session_factory() as session:
        service = RedemptionService(session)
        vendor = await service.directory.get_vendor(vendor_id)
        if vendor is None:
            raise ValueError(f"Vendor {vendor_id} not found")
        entries = await service.list_outstanding_codes(vendor_id, deal_id=deal_id)
        return serialize_outstanding_codes(entries)


def write_csv(output_path: Path, rows: list[dict[str, Any]]) -> None:
    with output_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=FIELDNAMES)
        writer.writeheader()
        for row in rows:
            writer.writerow(row)


def write_json(output_path: Path, rows: list[dict[str, Any]]) -> None:
    with output_path.open("w", encoding="utf-8") as handle:
        json.dump(rows, handle, ensure_ascii=False, indent=2)


async def _run(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        rows = await fetch_outstanding_codes(args.vendor_id, deal_id=args.deal_id)
    except ValueError as exc:
        logger.error("Unable to export outstanding codes", error=str(exc))
        return 1

    if not rows:
        logger.warning("No outstanding redemption codes found", vendor_id=str(args.vendor_id))

    output_path = args.output or Path(f"outstanding-codes.{args.format}")
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if args.format == "csv":
        write_csv(output_path, rows)
    else:
        write_json(output_path, rows)

    logger.success(
        "Exported outstanding redemption codes",
        output=str(output_path),
        format=args.format,
        vendor_id=str(args.vendor_id),
        codes=len(rows),
    )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    return asyncio.run(_run(argv))


if __name__ == "__main__":
    sys.exit(main())
