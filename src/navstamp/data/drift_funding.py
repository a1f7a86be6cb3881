"""Drift perp funding rates: hourly records -> daily average and annualized %.

Endpoint: {DRIFT_DATA_API}/fundingRates?marketIndex=N
Precision: fundingRate is 1e9, oraclePriceTwap is 1e6, so
    hourly rate (decimal) = (fundingRate / 1e9) / (oraclePriceTwap / 1e6)
    annualized %          = hourly * 24 * 365 * 100
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pandas as pd

from navstamp.config import Settings
from navstamp.data.series import load_json, merge_by_date, write_json
from navstamp.errors import SourceUnavailable
from navstamp.sources.base import get_json
from navstamp.utils.dates import to_iso_z, utc_now
from navstamp.utils.deadline import Deadline

logger = logging.getLogger(__name__)

OUTPUT_FILE = "drift-funding-rates.json"

MARKETS: dict[str, int] = {
    "SOL-PERP": 0,
    "BTC-PERP": 1,
    "ETH-PERP": 2,
}

FUNDING_RATE_PRECISION = 1e9
PRICE_PRECISION = 1e6
HOURS_PER_YEAR = 24 * 365


def parse_funding_payload(payload: Any) -> list[dict[str, Any]]:
    """The API answers with a bare list, {"fundingRates": [...]}, or a single record."""
    if isinstance(payload, list):
        return [r for r in payload if isinstance(r, dict)]
    if isinstance(payload, dict):
        if isinstance(payload.get("fundingRates"), list):
            return [r for r in payload["fundingRates"] if isinstance(r, dict)]
        return [payload]
    return []


def daily_funding(records: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Group hourly records by UTC date and average the hourly rate."""
    if not records:
        return []
    df = pd.DataFrame(records)
    for col in ("ts", "fundingRate", "oraclePriceTwap"):
        if col not in df.columns:
            return []
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df = df.dropna(subset=["ts", "fundingRate", "oraclePriceTwap"])
    # Zero oracle TWAP = bad record.
    df = df[df["oraclePriceTwap"] != 0].copy()
    if df.empty:
        return []

    df["hourly"] = (df["fundingRate"] / FUNDING_RATE_PRECISION) / (df["oraclePriceTwap"] / PRICE_PRECISION)
    df["date"] = pd.to_datetime(df["ts"], unit="s", utc=True).dt.strftime("%Y-%m-%d")
    daily = df.groupby("date", sort=True)["hourly"].mean()

    return [
        {
            "date": day,
            "avgRate": round(float(avg), 8),
            "annualizedPct": round(float(avg) * HOURS_PER_YEAR * 100.0, 4),
        }
        for day, avg in daily.items()
    ]


def _stored_series(stored: dict[str, Any], name: str) -> list[dict[str, Any]]:
    rows = stored.get(name)
    return list(rows) if isinstance(rows, list) else []


def fetch_market(settings: Settings, market_index: int, *, deadline: Deadline) -> list[dict[str, Any]]:
    payload = get_json(
        f"{settings.drift_data_api}/fundingRates",
        source="drift-funding",
        deadline=deadline,
        timeout=settings.http_timeout_s,
        params={"marketIndex": market_index},
    )
    return parse_funding_payload(payload)


def update_funding_rates(
    settings: Settings,
    *,
    markets: dict[str, int] | None = None,
    deadline: Deadline | None = None,
    output: str | Path | None = None,
) -> dict[str, Any]:
    """
    Refresh every market's daily series and merge with the stored file.

    A market whose fetch fails keeps its stored series. If every market fails
    nothing is written and SourceUnavailable is raised.
    """
    markets = markets or MARKETS
    deadline = deadline or Deadline.unbounded()
    output = Path(output or settings.data_dir / OUTPUT_FILE)
    existing = load_json(output, {})
    stored = existing.get("markets") if isinstance(existing, dict) else None
    if not isinstance(stored, dict):
        # Funding history is re-fetchable; a malformed file is rebuilt from the API.
        if existing:
            logger.warning("Ignoring malformed %s", output)
        stored = {}

    result: dict[str, Any] = {"lastUpdated": to_iso_z(utc_now()), "markets": {}}
    failed: list[str] = []
    for name, index in markets.items():
        logger.info("Fetching %s (marketIndex=%d)", name, index)
        try:
            records = fetch_market(settings, index, deadline=deadline)
        except SourceUnavailable as e:
            logger.warning("%s funding fetch failed: %s", name, e)
            failed.append(name)
            result["markets"][name] = _stored_series(stored, name)
            continue

        daily = daily_funding(records)[-settings.series_keep_days :]
        merged = merge_by_date(_stored_series(stored, name), daily)
        result["markets"][name] = merged
        if merged:
            logger.info("%s: %d days (%s to %s)", name, len(merged), merged[0]["date"], merged[-1]["date"])
        else:
            logger.info("%s: no data", name)

    if len(failed) == len(markets):
        raise SourceUnavailable("drift-funding", f"all markets failed: {', '.join(failed)}")

    write_json(output, result)
    logger.info("Written to %s", output)
    return result
