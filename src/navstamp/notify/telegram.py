from __future__ import annotations

import logging
from typing import Protocol

import requests

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"


class Notifier(Protocol):
    def send(self, message: str) -> bool:
        """Deliver `message`. Must never raise; returns False when delivery failed."""
        ...


class LogNotifier:
    """Sink used when no bot is configured: the summary only goes to the log."""

    def __init__(self) -> None:
        self.sent: list[str] = []

    def send(self, message: str) -> bool:
        self.sent.append(message)
        logger.info("Notification (not delivered, no Telegram config):\n%s", message)
        return True


class TelegramNotifier:
    def __init__(self, token: str, chat_id: str, *, timeout: float = 10.0, api_base: str = TELEGRAM_API):
        self.token = token
        self.chat_id = chat_id
        self.timeout = timeout
        self.api_base = api_base.rstrip("/")

    def send(self, message: str) -> bool:
        url = f"{self.api_base}/bot{self.token}/sendMessage"
        try:
            resp = requests.post(
                url,
                json={"chat_id": self.chat_id, "text": message, "parse_mode": "Markdown"},
                timeout=self.timeout,
            )
            body = resp.json()
        except (requests.RequestException, ValueError) as e:
            # Can't alert if the network is down; a failed alert never fails the run.
            logger.warning("Telegram send failed: %s", e)
            return False
        if not isinstance(body, dict) or not body.get("ok"):
            logger.warning("Telegram API error: %s", body)
            return False
        return True


def make_notifier(token: str | None, chat_id: str | None) -> Notifier:
    if token and chat_id:
        return TelegramNotifier(token, chat_id)
    logger.warning("TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID not set; notifications will only be logged")
    return LogNotifier()
