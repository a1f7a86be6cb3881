from __future__ import annotations

from navstamp.notify.telegram import LogNotifier, Notifier, TelegramNotifier, make_notifier

__all__ = ["LogNotifier", "Notifier", "TelegramNotifier", "make_notifier"]
