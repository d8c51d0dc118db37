from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class RedemptionSnapshot:
    issuance: Dict[str, int]
    verification: Dict[str, int]
    direct: Dict[str, int]
    coupon: Dict[str, int]
    voids: int

    def as_dict(self) -> Dict[str, object]:
        return {
            "issuance": dict(self.issuance),
            "verification": dict(self.verification),
            "direct": dict(self.direct),
            "coupon": dict(self.coupon),
            "voids": self.voids,
        }


class RedemptionObservabilityStore:
    """Collect redemption outcome counters for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._issuance: Dict[str, int] = defaultdict(int)
        self._verification: Dict[str, int] = defaultdict(int)
        self._direct: Dict[str, int] = defaultdict(int)
        self._coupon: Dict[str, int] = defaultdict(int)
        self._voids = 0

    def record_issuance(self, outcome: str) -> None:
        with self._lock:
            self._issuance[outcome] += 1

    def record_verification(self, outcome: str) -> None:
        with self._lock:
            self._verification[outcome] += 1

    def record_direct_redemption(self, outcome: str) -> None:
        with self._lock:
            self._direct[outcome] += 1

    def record_coupon(self, outcome: str) -> None:
        with self._lock:
            self._coupon[outcome] += 1

    def record_void(self) -> None:
        with self._lock:
            self._voids += 1

    def snapshot(self) -> RedemptionSnapshot:
        with self._lock:
            return RedemptionSnapshot(
                issuance=dict(self._issuance),
                verification=dict(self._verification),
                direct=dict(self._direct),
                coupon=dict(self._coupon),
                voids=self._voids,
            )

    def reset(self) -> None:
        with self._lock:
            self._issuance.clear()
            self._verification.clear()
            self._direct.clear()
            self._coupon.clear()
            self._voids = 0


_STORE = RedemptionObservabilityStore()


def get_redemption_store() -> RedemptionObservabilityStore:
    return _STORE


__all__ = ["get_redemption_store", "RedemptionObservabilityStore", "RedemptionSnapshot"]
