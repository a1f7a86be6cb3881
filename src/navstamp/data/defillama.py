from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from navstamp.config import Settings
from navstamp.data.series import write_json
from navstamp.errors import SourceUnavailable
from navstamp.sources.base import get_json
from navstamp.utils.dates import to_iso_z, utc_date_of_epoch, utc_now
from navstamp.utils.deadline import Deadline

logger = logging.getLogger(__name__)

FEES_FILE = "allium-fees.json"
META_FILE = "allium-meta.json"


def fee_rows(chart: list[Any], *, now: datetime, keep_days: int) -> list[dict[str, Any]]:
    """
    Turn DefiLlama's totalDataChart ([[unix_ts, fees], ...]) into daily fee rows.

    DefiLlama does not split position/swap fees nor count transactions; those
    fields are filled so the rows keep the shape dashboards already read.
    """
    cutoff = (now - timedelta(days=keep_days)).timestamp()
    rows: list[dict[str, Any]] = []
    for point in chart:
        if not isinstance(point, (list, tuple)) or len(point) < 2:
            continue
        ts, fees = point[0], point[1]
        try:
            ts = float(ts)
            value = round(float(fees or 0), 2)
        except (TypeError, ValueError):
            continue
        if ts < cutoff:
            continue
        rows.append(
            {
                "date": utc_date_of_epoch(ts).isoformat(),
                "total_fees": value,
                "position_fees": value,
                "swap_fees": 0,
                "close_count": None,
                "total_txns": None,
                "source": "defillama",
            }
        )
    rows.sort(key=lambda r: r["date"])
    return rows


def update_fees(
    settings: Settings,
    *,
    deadline: Deadline | None = None,
    now: datetime | None = None,
    data_dir: str | Path | None = None,
) -> list[dict[str, Any]]:
    """Replace the fee file with the last N days from DefiLlama and refresh the metadata file."""
    deadline = deadline or Deadline.unbounded()
    now = now or utc_now()
    data_dir = Path(data_dir or settings.data_dir)

    payload = get_json(
        settings.defillama_fees_url,
        source="defillama",
        deadline=deadline,
        timeout=settings.http_timeout_s,
        params={"dataType": "dailyFees"},
    )
    if not isinstance(payload, dict):
        raise SourceUnavailable("defillama", "unexpected payload shape")
    chart = payload.get("totalDataChart") or []
    if not isinstance(chart, list):
        raise SourceUnavailable("defillama", f"totalDataChart is {type(chart).__name__}, expected a list")
    rows = fee_rows(chart, now=now, keep_days=settings.series_keep_days)

    write_json(data_dir / FEES_FILE, rows)
    write_json(
        data_dir / META_FILE,
        {
            "lastFetch": to_iso_z(now),
            "source": "defillama",
            "feeDays": len(rows),
            "traderPnlAvailable": False,
            "warning": "DefiLlama does not provide trader P&L; on-chain trader P&L data is stale.",
        },
    )
    logger.info("Saved %d days of fee data (DefiLlama)", len(rows))
    return rows
