"""
Daily data fetch: every job runs independently, one failure won't block the rest.

Order: Drift funding rates, JLP pool snapshot, trader P&L snapshot, official
NAV stamp, DefiLlama fees (non-blocking). Afterwards `fetch-status.json`
records when each output file last changed so dashboards can flag stale data.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

from navstamp.config import Settings
from navstamp.data.defillama import FEES_FILE, update_fees
from navstamp.data.drift_funding import OUTPUT_FILE as FUNDING_FILE
from navstamp.data.drift_funding import update_funding_rates
from navstamp.data.jlp import SNAPSHOT_FILE, TRADER_PNL_FILE, update_jlp_snapshots, update_trader_pnl
from navstamp.data.series import write_json
from navstamp.nav.stamp import run_stamp
from navstamp.utils.dates import to_iso_z, utc_now

logger = logging.getLogger(__name__)

STATUS_FILE = "fetch-status.json"


@dataclass(frozen=True)
class Step:
    name: str
    label: str
    run: Callable[[Settings], object]
    # Non-blocking steps are reported but do not count as errors.
    counts: bool = True


@dataclass
class PipelineReport:
    errors: int = 0
    results: dict[str, str] = field(default_factory=dict)


def _stamp_step(settings: Settings) -> object:
    outcome = run_stamp(settings)
    if outcome.status != "ok":
        raise RuntimeError(f"NAV stamp {outcome.status}: {outcome.error}")
    return outcome


def default_steps() -> list[Step]:
    return [
        Step("drift", "Drift funding rates", update_funding_rates),
        Step("jlp", "JLP pool snapshot", update_jlp_snapshots),
        Step("traderPnl", "Trader P&L snapshot", update_trader_pnl),
        Step("nav", "Official NAV stamp", _stamp_step),
        Step("fees", "Fee data (DefiLlama)", update_fees, counts=False),
    ]


def file_mtime(path: Path) -> str:
    try:
        return datetime.fromtimestamp(path.stat().st_mtime).strftime("%Y-%m-%dT%H:%M:%S")
    except OSError:
        return "missing"


def write_fetch_status(settings: Settings, errors: int, *, now: datetime | None = None) -> Path:
    data_dir = settings.data_dir
    status = {
        "lastFetch": to_iso_z(now or utc_now()),
        "errors": errors,
        "sources": {
            "drift": file_mtime(data_dir / FUNDING_FILE),
            "jlp": file_mtime(data_dir / SNAPSHOT_FILE),
            "traderPnl": file_mtime(data_dir / TRADER_PNL_FILE),
            "nav": file_mtime(settings.history_path),
            "fees": file_mtime(data_dir / FEES_FILE),
        },
    }
    return write_json(data_dir / STATUS_FILE, status)


def run_daily(settings: Settings, *, steps: list[Step] | None = None) -> PipelineReport:
    steps = steps if steps is not None else default_steps()
    report = PipelineReport()
    total = len(steps)
    for i, step in enumerate(steps, start=1):
        logger.info("[%d/%d] %s...", i, total, step.label)
        try:
            step.run(settings)
        except Exception as e:
            # Isolate jobs from each other; the failure is counted and reported in the status file.
            if step.counts:
                report.errors += 1
                logger.error("%s FAILED: %s", step.label, e)
                report.results[step.name] = "failed"
            else:
                logger.warning("%s FAILED (non-blocking): %s", step.label, e)
                report.results[step.name] = "failed (non-blocking)"
            continue
        logger.info("%s OK", step.label)
        report.results[step.name] = "ok"

    write_fetch_status(settings, report.errors)
    logger.info("Done (%d errors)", report.errors)
    return report
