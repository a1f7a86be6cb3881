from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from navstamp.utils.dates import parse_ymd

# Keys written by older stamp runs, mapped onto the current field names.
_LEGACY_KEYS = {
    "SharePrice": "sharePrice",
    "basePriceRaw": "baselinePrice",
    "tvl": "totalValueLocked",
    "source": "provenance",
}

_KNOWN_KEYS = {
    "date",
    "timestamp",
    "sharePrice",
    "baselinePrice",
    "totalValueLocked",
    "rawSharePrice",
    "dayChangePct",
    "calibrationVersion",
    "warnings",
    "provenance",
}


def _optf(v: Any) -> float | None:
    if v is None or (isinstance(v, str) and not v.strip()):
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class NavRecord:
    date: date
    timestamp: str
    share_price: float | None
    provenance: str
    baseline_price: float | None = None
    total_value_locked: float | None = None
    raw_share_price: float | None = None
    day_change_pct: float | None = None
    calibration_version: str | None = None
    warnings: tuple[str, ...] = ()
    # Keys we do not model are carried through untouched.
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def date_key(self) -> str:
        return self.date.isoformat()

    @property
    def has_valid_price(self) -> bool:
        p = self.share_price
        return isinstance(p, (int, float)) and not isinstance(p, bool) and math.isfinite(p) and p > 0

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        out.update(
            {
                "date": self.date_key,
                "timestamp": self.timestamp,
                "sharePrice": self.share_price,
                "baselinePrice": self.baseline_price,
                "totalValueLocked": self.total_value_locked,
                "rawSharePrice": self.raw_share_price,
                "dayChangePct": self.day_change_pct,
                "provenance": self.provenance,
            }
        )
        if self.calibration_version is not None:
            out["calibrationVersion"] = self.calibration_version
        if self.warnings:
            out["warnings"] = list(self.warnings)
        return out

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> "NavRecord":
        """Build from a persisted row. Raises ValueError when the date is missing or malformed."""
        data = dict(row)
        for old, new in _LEGACY_KEYS.items():
            if old in data:
                value = data.pop(old)
                data.setdefault(new, value)

        raw_date = data.get("date")
        if not raw_date:
            raise ValueError(f"NAV row without a date: {row!r}")
        day = parse_ymd(str(raw_date))

        warnings = data.get("warnings") or ()
        if isinstance(warnings, str):
            warnings = (warnings,)

        return cls(
            date=day,
            timestamp=str(data.get("timestamp") or ""),
            share_price=_optf(data.get("sharePrice")),
            provenance=str(data.get("provenance") or ""),
            baseline_price=_optf(data.get("baselinePrice")),
            total_value_locked=_optf(data.get("totalValueLocked")),
            raw_share_price=_optf(data.get("rawSharePrice")),
            day_change_pct=_optf(data.get("dayChangePct")),
            calibration_version=(str(data["calibrationVersion"]) if data.get("calibrationVersion") else None),
            warnings=tuple(str(w) for w in warnings),
            extra={k: v for k, v in data.items() if k not in _KNOWN_KEYS},
        )
