"""Jupiter JLP pool: daily pool snapshot and trader P&L snapshot.

Both are keyed by exchange-local date and merged into their own JSON files,
one row per day (a same-day re-run replaces the row).
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Any

from navstamp.config import Settings
from navstamp.data.series import load_accumulated, merge_by_date, write_json
from navstamp.errors import PersistenceFailure, SourceUnavailable
from navstamp.sources.base import get_json
from navstamp.utils.dates import local_date, to_iso_z, utc_now
from navstamp.utils.deadline import Deadline

logger = logging.getLogger(__name__)

SNAPSHOT_FILE = "jlp-snapshots.json"
TRADER_PNL_FILE = "trader-pnl-snapshots.json"

USD_PRECISION = 1e6
TRACKED_CUSTODIES = ("SOL", "ETH", "WBTC")
# LPs receive 75% of fees.
LP_FEE_SHARE = 0.75


def _num(v: Any, default: float = 0.0) -> float:
    try:
        return float(v)
    except (TypeError, ValueError):
        return default


def _opt_num(v: Any) -> float | None:
    if v is None:
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def trader_exposure(custodies: list[dict[str, Any]]) -> tuple[dict[str, dict[str, Any]], float]:
    """Per-asset short exposure; net P&L is positive when short traders are in profit."""
    exposure: dict[str, dict[str, Any]] = {}
    total = 0.0
    for c in custodies:
        if not isinstance(c, dict):
            continue
        symbol = c.get("symbol")
        if symbol not in TRACKED_CUSTODIES:
            continue
        delta = _num(c.get("shortPnlDelta")) / USD_PRECISION
        has_profit = bool(c.get("shortTradersHasProfit") or False)
        net = delta if has_profit else -delta
        exposure[symbol] = {
            "guaranteedUsd": _num(c.get("guaranteedUsd")) / USD_PRECISION,
            "globalShortSizes": _num(c.get("globalShortSizes")) / USD_PRECISION,
            "shortPnlDelta": delta,
            "shortTradersHasProfit": has_profit,
            "netPnl": net,
        }
        total += net
    return exposure, total


def build_jlp_snapshot(jlp_info: dict[str, Any], fee_data: dict[str, Any], *, now: datetime, tz: str) -> dict[str, Any]:
    aum = _num(jlp_info.get("aumUsd")) / USD_PRECISION
    nav_price = _num(jlp_info.get("jlpPriceUsd")) / USD_PRECISION
    if aum <= 0 or nav_price <= 0:
        raise SourceUnavailable("jlp-info", f"missing aumUsd/jlpPriceUsd (aum={aum}, price={nav_price})")

    custodies = jlp_info.get("custodies") or []
    if not isinstance(custodies, list):
        raise SourceUnavailable("jlp-info", f"custodies is {type(custodies).__name__}, expected a list")
    exposure, total_pnl = trader_exposure(custodies)

    chart = fee_data.get("totalDataChart") or []
    if not isinstance(chart, list) or not all(isinstance(p, (list, tuple)) and len(p) >= 2 for p in chart):
        raise SourceUnavailable("defillama", "totalDataChart is not a list of [timestamp, fees] pairs")
    recent = chart[-7:]
    avg_daily_fees = sum(_num(p[1]) for p in recent) / (len(recent) or 1)

    return {
        "timestamp": to_iso_z(now),
        "date": local_date(now, tz).isoformat(),
        "navPrice": nav_price,
        "aum": aum,
        "jupiterApyPct": _num(jlp_info.get("jlpApyPct")),
        "fees24h": _num(fee_data.get("total24h")),
        "avgDailyFees7d": round(avg_daily_fees),
        "realTimeFeeApyPct": round(avg_daily_fees * LP_FEE_SHARE * 365 / aum * 100, 2),
        "traderExposure": exposure,
        "totalTraderPnl": round(total_pnl, 2),
        "traderPnlLabel": "traders_winning" if total_pnl > 0 else "pool_winning",
    }


def update_jlp_snapshots(
    settings: Settings,
    *,
    deadline: Deadline | None = None,
    now: datetime | None = None,
    output: str | Path | None = None,
) -> dict[str, Any]:
    deadline = deadline or Deadline.unbounded()
    now = now or utc_now()
    output = Path(output or settings.data_dir / SNAPSHOT_FILE)

    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="jlp") as pool:
        info_f = pool.submit(
            get_json, settings.jlp_info_url, source="jlp-info", deadline=deadline, timeout=settings.http_timeout_s
        )
        fee_f = pool.submit(
            get_json,
            settings.defillama_fees_url,
            source="defillama",
            deadline=deadline,
            timeout=settings.http_timeout_s,
        )
        jlp_info, fee_data = info_f.result(), fee_f.result()

    if not isinstance(jlp_info, dict) or not isinstance(fee_data, dict):
        raise SourceUnavailable("jlp-info", "unexpected payload shape")
    snapshot = build_jlp_snapshot(jlp_info, fee_data, now=now, tz=settings.timezone)
    logger.info(
        "NAV: $%.4f, AUM: $%.3fB, real-time fee APY: %s%%, trader PnL: $%.0fK (%s)",
        snapshot["navPrice"],
        snapshot["aum"] / 1e9,
        snapshot["realTimeFeeApyPct"],
        snapshot["totalTraderPnl"] / 1e3,
        snapshot["traderPnlLabel"],
    )

    history = load_accumulated(output, {"snapshots": []})
    stored = history.get("snapshots") or []
    if not isinstance(stored, list):
        raise PersistenceFailure(f"{output}: snapshots is not a JSON array")
    history["snapshots"] = merge_by_date(stored, [snapshot])
    history["lastUpdated"] = snapshot["timestamp"]
    write_json(output, history)
    logger.info("Written to %s (%d snapshots)", output, len(history["snapshots"]))
    return snapshot


def build_trader_pnl_snapshot(info: dict[str, Any], *, now: datetime, tz: str) -> dict[str, Any]:
    return {
        "timestamp": to_iso_z(now),
        "date": local_date(now, tz).isoformat(),
        "poolNavUsd": info.get("poolNavUsd"),
        "aumUsd": info.get("aumUsd"),
        "jlpPrice": info.get("jlpPrice"),
        "jlpSupply": info.get("jlpSupply"),
        "jlpApyPct": _opt_num(info.get("jlpApyPct")),
        "jlpAprPct": _opt_num(info.get("jlpAprPct")),
        "totalLongExposureUsd": info.get("totalLongExposureUsd"),
        "totalShortExposureUsd": info.get("totalShortExposureUsd"),
        "totalOpenInterestUsd": info.get("totalOpenInterestUsd"),
        "traderPnl": info.get("traderPnl") or None,
        "unrealizedPnl": info.get("unrealizedPnl") or None,
        "poolApy24h": info.get("poolApy24h") or None,
    }


def update_trader_pnl(
    settings: Settings,
    *,
    deadline: Deadline | None = None,
    now: datetime | None = None,
    output: str | Path | None = None,
) -> dict[str, Any]:
    deadline = deadline or Deadline.unbounded()
    now = now or utc_now()
    output = Path(output or settings.data_dir / TRADER_PNL_FILE)

    info = get_json(settings.jlp_info_url, source="jlp-info", deadline=deadline, timeout=settings.http_timeout_s)
    if not isinstance(info, dict):
        raise SourceUnavailable("jlp-info", "unexpected payload shape")
    snapshot = build_trader_pnl_snapshot(info, now=now, tz=settings.timezone)

    existing = load_accumulated(output, [])
    rows = merge_by_date(existing, [snapshot])
    write_json(output, rows)
    oi = _num(snapshot["totalOpenInterestUsd"]) / USD_PRECISION
    logger.info("Snapshot saved for %s: OI $%.1fM, APY %s%%", snapshot["date"], oi, snapshot["jlpApyPct"])
    return snapshot
