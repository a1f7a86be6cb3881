"""
Date-keyed JSON series shared by the daily fetch jobs.

Every job keeps one row per date: fresh rows overwrite stored rows for the
same date, older dates are kept, the result is sorted ascending.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable

from navstamp.errors import PersistenceFailure
from navstamp.utils.atomic import atomic_write_json
from navstamp.utils.dates import parse_iso_date

logger = logging.getLogger(__name__)


def merge_by_date(existing: Iterable[dict[str, Any]], fresh: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    by_date: dict[str, dict[str, Any]] = {}
    for row in list(existing) + list(fresh):
        if not isinstance(row, dict):
            logger.debug("Dropping non-object row: %r", row)
            continue
        d = parse_iso_date(str(row.get("date") or ""))
        if d is None:
            logger.debug("Dropping row without a usable date: %r", row)
            continue
        by_date[d.isoformat()] = row
    return [by_date[k] for k in sorted(by_date)]


def load_json(path: str | Path, default: Any) -> Any:
    """Read a job's previous output. Absent or unreadable files yield `default` (the job rebuilds it)."""
    path = Path(path)
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Could not read existing %s: %s", path, e)
        return default


def load_accumulated(path: str | Path, default: Any) -> Any:
    """
    Read a series that only grows and cannot be re-fetched (daily snapshots).

    Absent file yields `default`. Unlike `load_json`, an unreadable file or one
    of the wrong shape raises PersistenceFailure, so the job aborts instead of
    replacing the whole history with today's row.
    """
    path = Path(path)
    if not path.exists():
        return default
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise PersistenceFailure(f"cannot read {path}: {e}") from e
    if not isinstance(data, type(default)):
        raise PersistenceFailure(f"{path} is not a JSON {type(default).__name__}")
    return data


def write_json(path: str | Path, obj: Any) -> Path:
    try:
        return atomic_write_json(path, obj)
    except OSError as e:
        raise PersistenceFailure(f"cannot write {path}: {e}") from e
