"""Primary valuation: vault equity per share, net of manager fees."""
from __future__ import annotations

import logging
from typing import Any

from navstamp.errors import SourceUnavailable
from navstamp.sources.base import PriceQuote, finite_number, get_json
from navstamp.utils.deadline import Deadline

logger = logging.getLogger(__name__)


class VaultEquitySource:
    """
    Reads a vault equity document and derives the share price.

    Expected payload (integers in `precision` units, 1e6 for USDC vaults):
        {"equity": 1234567890, "totalShares": 1000000000, "netDeposits": 1100000000}

    share price = equity / totalShares (includes unrealized P&L)
    baseline    = netDeposits / totalShares (no unrealized P&L, for drift checks)
    """

    name = "vault-equity"

    def __init__(self, url: str, *, precision: float = 1_000_000, timeout: float = 15.0):
        self.url = url
        self.precision = float(precision)
        self.timeout = timeout

    def fetch(self, deadline: Deadline) -> PriceQuote:
        data = get_json(self.url, source=self.name, deadline=deadline, timeout=self.timeout)
        return self.parse(data)

    def parse(self, data: Any) -> PriceQuote:
        if not isinstance(data, dict):
            raise SourceUnavailable(self.name, f"unexpected payload type {type(data).__name__}")
        if data.get("equity") is None or data.get("totalShares") is None:
            raise SourceUnavailable(self.name, "payload missing equity or totalShares")

        equity = finite_number(data["equity"], source=self.name, field="equity") / self.precision
        total_shares = finite_number(data["totalShares"], source=self.name, field="totalShares") / self.precision
        if total_shares <= 0:
            raise SourceUnavailable(self.name, f"invalid totalShares {total_shares} (vault data corrupted or unavailable)")

        share_price = equity / total_shares
        baseline = None
        if data.get("netDeposits") is not None:
            net_deposits = finite_number(data["netDeposits"], source=self.name, field="netDeposits") / self.precision
            baseline = net_deposits / total_shares

        logger.info("Vault equity: $%.2f, shares: %.4f", equity, total_shares)
        logger.info(
            "Vault share price: $%.6f (baseline: %s)",
            share_price,
            "n/a" if baseline is None else f"${baseline:.6f}",
        )
        return PriceQuote(source=self.name, share_price=share_price, baseline_price=baseline)
