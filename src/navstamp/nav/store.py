from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Iterable

from navstamp.errors import PersistenceFailure
from navstamp.nav.models import NavRecord
from navstamp.utils.atomic import atomic_write_json

logger = logging.getLogger(__name__)


def load_history(path: str | Path) -> list[NavRecord]:
    """
    Read the full NAV history, sorted by date.

    A missing file is an empty history. A file that exists but cannot be
    parsed raises PersistenceFailure: rewriting it from an empty list would
    silently drop every prior day.
    """
    path = Path(path)
    if not path.exists():
        return []
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise PersistenceFailure(f"cannot read NAV history {path}: {e}") from e
    if not isinstance(raw, list):
        raise PersistenceFailure(f"NAV history {path} is not a JSON array")

    out: list[NavRecord] = []
    for i, row in enumerate(raw):
        if not isinstance(row, dict):
            raise PersistenceFailure(f"NAV history {path} row {i} is not an object")
        try:
            out.append(NavRecord.from_dict(row))
        except ValueError as e:
            raise PersistenceFailure(f"NAV history {path} row {i}: {e}") from e
    out.sort(key=lambda r: r.date)
    return out


def save_history(
    history: Iterable[NavRecord],
    path: str | Path,
    *,
    before_replace: Callable[[], None] | None = None,
) -> Path:
    """Rewrite the whole history atomically (temp file + rename). `before_replace` can veto the rename."""
    path = Path(path)
    rows = [r.to_dict() for r in history]
    try:
        atomic_write_json(path, rows, before_replace=before_replace)
    except OSError as e:
        raise PersistenceFailure(f"cannot write NAV history {path}: {e}") from e
    logger.info("Saved %d NAV records to %s", len(rows), path)
    return path
