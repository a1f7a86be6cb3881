"""
Pytest configuration and shared fixtures for navstamp tests.

Usage:
    @pytest.fixture functions are automatically available to all tests.
    Import helpers from conftest when needed.
"""
import json
import sys
import threading
from datetime import date, datetime, timezone
from pathlib import Path

import pytest


def pytest_configure():
    """
    Ensure `src/` is on sys.path for the src-layout package import (`navstamp`).
    This keeps tests runnable without requiring an editable install.
    """
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    if src.exists():
        sys.path.insert(0, str(src))


# =============================================================================
# Settings
# =============================================================================

@pytest.fixture
def settings(tmp_path: Path):
    """Settings pointed at a temp data dir, with no .env and no Telegram."""
    from navstamp.config import load_settings

    return load_settings(
        _env_file=None,
        NAV_DATA_DIR=str(tmp_path / "data"),
        NAV_VAULT_URL="https://vault.example/equity",
        TELEGRAM_BOT_TOKEN=None,
        TELEGRAM_CHAT_ID=None,
    )


# 17:00 New York on 2026-02-18 (EST, UTC-5).
STAMP_NOW = datetime(2026, 2, 18, 22, 0, tzinfo=timezone.utc)


@pytest.fixture
def stamp_now() -> datetime:
    return STAMP_NOW


# =============================================================================
# Fakes
# =============================================================================

class FakeSource:
    """Stands in for a price source; returns `quote`, raises `error`, or blocks on `gate`."""

    def __init__(self, name: str, quote=None, error=None, gate: threading.Event | None = None):
        self.name = name
        self.quote = quote
        self.error = error
        self.gate = gate
        self.calls = 0

    def fetch(self, deadline):
        self.calls += 1
        if self.gate is not None:
            self.gate.wait(5)
        if self.error is not None:
            raise self.error
        return self.quote


class RecordingNotifier:
    def __init__(self):
        self.messages: list[str] = []

    def send(self, message: str) -> bool:
        self.messages.append(message)
        return True


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# =============================================================================
# Test Data Helpers
# =============================================================================

def make_record(day: str, price, **kwargs):
    """
    Build a NavRecord for a YYYY-MM-DD day.

    Usage:
        rec = make_record("2026-02-17", 1.20, total_value_locked=5e6)
    """
    from navstamp.nav.models import NavRecord

    kwargs.setdefault("timestamp", f"{day}T22:00:00.000Z")
    kwargs.setdefault("provenance", "test")
    return NavRecord(date=date.fromisoformat(day), share_price=price, **kwargs)


def write_history(path: Path, rows: list[dict]) -> bytes:
    """Write a raw history file and return its bytes for later comparison."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(rows, indent=2), encoding="utf-8")
    return path.read_bytes()
