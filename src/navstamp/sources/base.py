from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Protocol

import requests

from navstamp.errors import SourceUnavailable
from navstamp.utils.deadline import Deadline

logger = logging.getLogger(__name__)

USER_AGENT = "navstamp/0.1"


@dataclass(frozen=True)
class PriceQuote:
    """What a source returns: a share price plus optional context figures."""

    source: str
    share_price: float | None
    baseline_price: float | None = None
    total_value_locked: float | None = None
    raw_share_price: float | None = None


class PriceSource(Protocol):
    name: str

    def fetch(self, deadline: Deadline) -> PriceQuote:
        """Return a quote or raise SourceUnavailable. Never return a fabricated zero."""
        ...


def get_json(url: str, *, source: str, deadline: Deadline, timeout: float, params: dict | None = None) -> Any:
    """
    GET `url` and decode JSON, mapping every transport/HTTP/decoding failure
    to SourceUnavailable so callers can tell "failed" apart from "zero".
    """
    try:
        resp = requests.get(
            url,
            params=params,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            timeout=deadline.timeout(timeout),
        )
        resp.raise_for_status()
        return resp.json()
    except requests.RequestException as e:
        raise SourceUnavailable(source, f"GET {url} failed: {e}") from e
    except ValueError as e:
        raise SourceUnavailable(source, f"GET {url} returned invalid JSON: {e}") from e


def finite_number(value: Any, *, source: str, field: str) -> float:
    try:
        x = float(value)
    except (TypeError, ValueError) as e:
        raise SourceUnavailable(source, f"{field} is not numeric: {value!r}") from e
    if not math.isfinite(x):
        raise SourceUnavailable(source, f"{field} is not finite: {value!r}")
    return x
