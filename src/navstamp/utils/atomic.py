from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable


def atomic_write_text(path: str | Path, text: str, *, before_replace: Callable[[], None] | None = None) -> Path:
    """
    Write `text` to `path` so readers only ever see the old or the new file.

    The content goes to a temp file in the same directory (same filesystem),
    is fsynced, then renamed over the target with os.replace. If anything
    fails before the rename the target is untouched and the temp file removed.
    `before_replace` runs after the fsync; raising from it aborts the write.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        if before_replace is not None:
            before_replace()
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise
    return path


def atomic_write_json(path: str | Path, obj: Any, *, before_replace: Callable[[], None] | None = None) -> Path:
    text = json.dumps(obj, indent=2, ensure_ascii=False, default=str) + "\n"
    return atomic_write_text(path, text, before_replace=before_replace)
