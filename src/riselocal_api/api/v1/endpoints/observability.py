"""Observability endpoints for redemption counters and Prometheus metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from riselocal_api.api.dependencies.security import require_vendor_api_key
from riselocal_api.observability.redemptions import get_redemption_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/redemptions",
    dependencies=[Depends(require_vendor_api_key)],
    summary="Redemption outcome snapshot",
)
async def get_redemption_snapshot() -> dict[str, object]:
    return get_redemption_store().snapshot().as_dict()


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} gauge",
        f"{name}{label_fragment} {value}",
    ]


@router.get(
    "/prometheus",
    dependencies=[Depends(require_vendor_api_key)],
    summary="Prometheus-formatted observability metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_redemption_store().snapshot()

    lines: list[str] = []
    for outcome, value in sorted(snapshot.issuance.items()):
        lines.extend(
            _format_metric(
                "riselocal_redemption_issuance_total",
                "Code issuance attempts grouped by outcome",
                value,
                {"outcome": outcome},
            )
        )
    for outcome, value in sorted(snapshot.verification.items()):
        lines.extend(
            _format_metric(
                "riselocal_redemption_verification_total",
                "Code verification attempts grouped by outcome",
                value,
                {"outcome": outcome},
            )
        )
    for outcome, value in sorted(snapshot.direct.items()):
        lines.extend(
            _format_metric(
                "riselocal_redemption_direct_total",
                "One-tap redemption attempts grouped by outcome",
                value,
                {"outcome": outcome},
            )
        )
    for outcome, value in sorted(snapshot.coupon.items()):
        lines.extend(
            _format_metric(
                "riselocal_redemption_coupon_total",
                "Coupon code reveals grouped by outcome",
                value,
                {"outcome": outcome},
            )
        )
    lines.extend(
        _format_metric("riselocal_redemption_voids_total", "Issued codes voided by vendors", snapshot.voids)
    )

    return PlainTextResponse("\n".join(lines) + "\n")
