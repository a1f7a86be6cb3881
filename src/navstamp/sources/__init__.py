"""Upstream valuation sources used by the daily NAV stamp."""
from __future__ import annotations

from navstamp.sources.base import PriceQuote, PriceSource
from navstamp.sources.primenumber import PrimeNumberSource
from navstamp.sources.vault import VaultEquitySource

__all__ = ["PriceQuote", "PriceSource", "PrimeNumberSource", "VaultEquitySource"]
