"""
Versioned normalization ratios.

The secondary source (Prime Number KV1) reports a share price on its own
scale. To splice it into the official series it is multiplied by a ratio
that is recalibrated by hand every so often. Each ratio is stored as a
versioned entry with an effective-date range in `nav-calibration.json`,
beside the NAV history, so any past record can be reproduced with the
ratio that was active on its date.

File layout:
    {
      "entries": [
        {"version": "2026-01", "ratio": 0.8123, "effectiveFrom": "2026-01-01",
         "effectiveTo": "2026-01-31", "note": "..."},
        {"version": "2026-02", "ratio": 0.8150, "effectiveFrom": "2026-02-01",
         "effectiveTo": null, "note": ""}
      ]
    }
"""
from __future__ import annotations

import json
import math
from dataclasses import dataclass, replace
from datetime import date, timedelta
from pathlib import Path
from typing import Any

from navstamp.errors import CalibrationMissing, PersistenceFailure
from navstamp.utils.atomic import atomic_write_json
from navstamp.utils.dates import parse_iso_date, parse_ymd


@dataclass(frozen=True)
class CalibrationEntry:
    version: str
    ratio: float
    effective_from: date
    effective_to: date | None = None
    note: str = ""

    def covers(self, day: date) -> bool:
        if day < self.effective_from:
            return False
        return self.effective_to is None or day <= self.effective_to

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "ratio": self.ratio,
            "effectiveFrom": self.effective_from.isoformat(),
            "effectiveTo": self.effective_to.isoformat() if self.effective_to else None,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, row: dict[str, Any]) -> "CalibrationEntry":
        return cls(
            version=str(row["version"]),
            ratio=float(row["ratio"]),
            effective_from=parse_ymd(row["effectiveFrom"]),
            effective_to=parse_iso_date(row.get("effectiveTo")),
            note=str(row.get("note") or ""),
        )


class CalibrationBook:
    def __init__(self, entries: list[CalibrationEntry] | None = None):
        self.entries: list[CalibrationEntry] = sorted(entries or [], key=lambda e: e.effective_from)

    def __len__(self) -> int:
        return len(self.entries)

    def active_for(self, day: date) -> CalibrationEntry | None:
        # Latest start wins when ranges overlap.
        matches = [e for e in self.entries if e.covers(day)]
        return matches[-1] if matches else None

    def normalize(self, raw_price: float, day: date) -> tuple[float, CalibrationEntry]:
        entry = self.active_for(day)
        if entry is None:
            raise CalibrationMissing(f"no calibration entry covers {day.isoformat()}")
        return raw_price * entry.ratio, entry

    def add(self, entry: CalibrationEntry) -> CalibrationEntry:
        """
        Append a new calibration. The open-ended entry before it is closed the
        day before `entry.effective_from`. History is append-only: a new entry
        must start after every existing one.
        """
        if not (math.isfinite(entry.ratio) and entry.ratio > 0):
            raise ValueError(f"calibration ratio must be finite and > 0, got {entry.ratio!r}")
        if any(e.version == entry.version for e in self.entries):
            raise ValueError(f"calibration version {entry.version!r} already exists")
        if self.entries and entry.effective_from <= self.entries[-1].effective_from:
            raise ValueError(
                f"calibration must start after {self.entries[-1].effective_from.isoformat()}, "
                f"got {entry.effective_from.isoformat()}"
            )
        if entry.effective_to is not None and entry.effective_to < entry.effective_from:
            raise ValueError("effective_to is before effective_from")

        closed: list[CalibrationEntry] = []
        for e in self.entries:
            if e.effective_to is None or e.effective_to >= entry.effective_from:
                e = replace(e, effective_to=entry.effective_from - timedelta(days=1))
            closed.append(e)
        self.entries = closed + [entry]
        return entry

    def to_dict(self) -> dict[str, Any]:
        return {"entries": [e.to_dict() for e in self.entries]}


def load_calibration(path: str | Path) -> CalibrationBook:
    path = Path(path)
    if not path.exists():
        return CalibrationBook()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return CalibrationBook([CalibrationEntry.from_dict(r) for r in raw.get("entries", [])])
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
        raise PersistenceFailure(f"cannot read calibration {path}: {e}") from e


def save_calibration(book: CalibrationBook, path: str | Path) -> Path:
    try:
        return atomic_write_json(path, book.to_dict())
    except OSError as e:
        raise PersistenceFailure(f"cannot write calibration {path}: {e}") from e
