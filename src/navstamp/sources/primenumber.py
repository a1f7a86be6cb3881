"""Secondary valuation: Prime Number KV1 (private vault) TVL and raw share price."""
from __future__ import annotations

import logging
from typing import Any

from navstamp.errors import SourceUnavailable
from navstamp.sources.base import PriceQuote, finite_number, get_json
from navstamp.utils.deadline import Deadline

logger = logging.getLogger(__name__)

PN_KV1_URL = "https://app.primenumber.trade/data/PN_KV1.json"


class PrimeNumberSource:
    name = "private-kv1"

    def __init__(self, url: str = PN_KV1_URL, *, timeout: float = 15.0):
        self.url = url
        self.timeout = timeout

    def fetch(self, deadline: Deadline) -> PriceQuote:
        return self.parse(get_json(self.url, source=self.name, deadline=deadline, timeout=self.timeout))

    def parse(self, data: Any) -> PriceQuote:
        if not isinstance(data, dict) or not data.get("tvl") or not data.get("SharePrice"):
            raise SourceUnavailable(self.name, "missing tvl or SharePrice in response")
        tvl = finite_number(data["tvl"], source=self.name, field="tvl")
        raw = finite_number(data["SharePrice"], source=self.name, field="SharePrice")
        if raw <= 0:
            raise SourceUnavailable(self.name, f"non-positive SharePrice {raw!r}")
        logger.info("Private vault TVL (KV1): $%s", f"{tvl:,.0f}")
        # The raw price is on KV1's own scale; it only becomes a share price after calibration.
        return PriceQuote(source=self.name, share_price=None, total_value_locked=tvl, raw_share_price=raw)
