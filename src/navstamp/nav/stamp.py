"""
Daily NAV stamp: the official close-of-business vault valuation.

One run = fetch sources (concurrently) -> build today's record -> validate ->
plausibility policy -> reconcile with history -> atomic save -> one
notification describing the outcome.

Primary source: vault equity / total shares (net of manager fees).
Secondary source: Prime Number KV1 TVL and raw share price. The secondary is
non-essential: when it fails the record simply has no TVL. When the primary
fails, the secondary price is used only if a calibration entry covers today.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import date, datetime
from pathlib import Path
from typing import Literal

from navstamp.config import Settings
from navstamp.errors import CalibrationMissing, NavStampError, RunTimeout, SourceUnavailable
from navstamp.nav.calibration import CalibrationBook, load_calibration
from navstamp.nav.models import NavRecord
from navstamp.nav.reconcile import check_plausibility, reconcile, validate_record
from navstamp.nav.store import load_history, save_history
from navstamp.notify import Notifier, make_notifier
from navstamp.sources import PriceQuote, PriceSource, PrimeNumberSource, VaultEquitySource
from navstamp.utils.dates import local_date, to_iso_z, utc_now
from navstamp.utils.deadline import Deadline, run_with_deadline

logger = logging.getLogger(__name__)

Status = Literal["ok", "failed", "timeout"]
EXIT_CODES: dict[str, int] = {"ok": 0, "failed": 1, "timeout": 2}


@dataclass(frozen=True)
class StampOutcome:
    status: Status
    date: date
    record: NavRecord | None = None
    warnings: tuple[str, ...] = ()
    error: str | None = None
    history_size: int = 0
    replaced: bool = False

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self.status]


@dataclass(frozen=True)
class _Fetched:
    primary: PriceQuote | None
    primary_error: SourceUnavailable | None
    secondary: PriceQuote | None
    secondary_error: SourceUnavailable | None


def make_sources(settings: Settings) -> tuple[PriceSource | None, PriceSource | None]:
    primary = None
    if settings.vault_url:
        primary = VaultEquitySource(
            settings.vault_url, precision=settings.vault_precision, timeout=settings.http_timeout_s
        )
    secondary = None
    if settings.secondary_url:
        secondary = PrimeNumberSource(settings.secondary_url, timeout=settings.http_timeout_s)
    return primary, secondary


def fetch_quotes(primary: PriceSource | None, secondary: PriceSource | None, deadline: Deadline) -> _Fetched:
    """
    Fetch both sources together. SourceUnavailable is captured per source; anything else propagates.

    Each fetch runs on its own daemon thread so a hung upstream cannot keep the
    process alive once the run driver has given up on it.
    """
    results: dict[str, PriceQuote | None] = {"primary": None, "secondary": None}
    errors: dict[str, SourceUnavailable | None] = {"primary": None, "secondary": None}
    crashed: dict[str, BaseException] = {}
    if primary is None:
        errors["primary"] = SourceUnavailable("vault-equity", "NAV_VAULT_URL not configured")

    def _fetch(key: str, source: PriceSource) -> None:
        try:
            results[key] = source.fetch(deadline)
        except SourceUnavailable as e:
            logger.warning("%s source FAILED: %s", key.capitalize(), e)
            errors[key] = e
        except BaseException as e:  # re-raised on the calling thread
            crashed[key] = e

    workers = [
        threading.Thread(target=_fetch, args=(k, s), name=f"nav-source-{k}", daemon=True)
        for k, s in (("primary", primary), ("secondary", secondary))
        if s is not None
    ]
    for w in workers:
        w.start()
    for w in workers:
        w.join()
    for k in ("primary", "secondary"):
        if k in crashed:
            raise crashed[k]

    return _Fetched(results["primary"], errors["primary"], results["secondary"], errors["secondary"])


def build_record(fetched: _Fetched, *, day: date, now: datetime, calibration: CalibrationBook) -> NavRecord:
    warnings: list[str] = []
    sec = fetched.secondary
    tvl = sec.total_value_locked if sec else None
    raw = sec.raw_share_price if sec else None

    if fetched.primary is not None:
        p = fetched.primary
        provenance = p.source + (f" + {sec.source}-tvl" if sec else "")
        if fetched.secondary_error is not None:
            warnings.append(f"Private vault TVL unavailable: {fetched.secondary_error.reason}")
        return NavRecord(
            date=day,
            timestamp=to_iso_z(now),
            share_price=p.share_price,
            provenance=provenance,
            baseline_price=p.baseline_price,
            total_value_locked=tvl,
            raw_share_price=raw,
            warnings=tuple(warnings),
        )

    primary_error = fetched.primary_error or SourceUnavailable("vault-equity", "no quote")
    if sec is None or raw is None:
        raise primary_error
    try:
        price, entry = calibration.normalize(raw, day)
    except CalibrationMissing as e:
        raise SourceUnavailable(primary_error.source, f"{primary_error.reason}; fallback unusable: {e}") from e

    logger.warning(
        "Primary unavailable, using %s price %.6f x calibration %s (%.6f)", sec.source, raw, entry.version, entry.ratio
    )
    warnings.append(f"Primary source unavailable ({primary_error.reason}); used calibrated {sec.source} price")
    return NavRecord(
        date=day,
        timestamp=to_iso_z(now),
        share_price=price,
        provenance=f"{sec.source}-calibrated-fallback",
        total_value_locked=tvl,
        raw_share_price=raw,
        calibration_version=entry.version,
        warnings=tuple(warnings),
    )


def stamp_nav(
    settings: Settings,
    *,
    primary: PriceSource | None,
    secondary: PriceSource | None,
    deadline: Deadline,
    now: datetime,
    history_path: str | Path | None = None,
    calibration_path: str | Path | None = None,
) -> StampOutcome:
    """Fetch, reconcile and persist. Raises NavStampError subclasses on abort; nothing is written then."""
    history_path = history_path or settings.history_path
    calibration_path = calibration_path or settings.calibration_path
    day = local_date(now, settings.timezone)
    logger.info("NAV stamp %s starting (%s)", day.isoformat(), to_iso_z(now))

    history = load_history(history_path)
    calibration = load_calibration(calibration_path)

    fetched = fetch_quotes(primary, secondary, deadline)
    record = build_record(fetched, day=day, now=now, calibration=calibration)
    validate_record(record)

    problems = check_plausibility(
        record, history, max_price=settings.max_share_price, max_drop_pct=settings.max_drop_pct
    )
    if problems:
        if settings.on_implausible == "reject":
            raise problems[0]
        for p in problems:
            logger.warning("Implausible value (persisting anyway): %s", p)
        record = replace(record, warnings=record.warnings + tuple(str(p) for p in problems))

    result = reconcile(
        record,
        history,
        lookback=settings.deviation_lookback,
        threshold=settings.deviation_threshold,
        precision=settings.day_change_precision,
    )

    # Never persist after the run budget is gone: the driver has already reported a timeout.
    # Checked again right before the rename so a timeout during the fsync cannot land late.
    deadline.check("NAV stamp")
    save_history(result.history, history_path, before_replace=lambda: deadline.check("NAV stamp"))
    logger.info("%s entry for %s", "Updated" if result.replaced else "Added", day.isoformat())

    return StampOutcome(
        status="ok",
        date=day,
        record=result.record,
        warnings=result.record.warnings,
        history_size=len(result.history),
        replaced=result.replaced,
    )


def format_message(outcome: StampOutcome) -> str:
    day = outcome.date.isoformat()
    if outcome.status == "timeout":
        return (
            f"🚨 *NAV Stamp TIMED OUT* — {day}\n\n"
            f"{outcome.error}\nShare price was NOT recorded.\n"
            f"Likely cause: upstream connection hung.\n\n"
            f"Run manually: `navstamp nav stamp`"
        )
    if outcome.status == "failed":
        return (
            f"🚨 *NAV Stamp FAILED* — {day}\n\n"
            f"Error: {outcome.error}\n\n"
            f"Share price was NOT recorded. Run manually: `navstamp nav stamp`"
        )

    rec = outcome.record
    if rec is None or rec.share_price is None:
        return f"🚨 *NAV Stamp FAILED* — {day}\n\nError: no record was produced\n\nShare price was NOT recorded."
    change = "N/A" if rec.day_change_pct is None else f"{rec.day_change_pct:+.4f}%"
    tvl = "⚠️ unavailable" if rec.total_value_locked is None else f"${rec.total_value_locked:,.0f}"
    msg = (
        f"✅ *NAV Stamp — {day}*\n\n"
        f"Share Price: `${rec.share_price:.6f}`\n"
        f"KV1 TVL: `{tvl}`\n"
        f"Day Change: `{change}`"
    )
    for w in outcome.warnings:
        msg += f"\n\n⚠️ {w}"
    return msg


def run_stamp(
    settings: Settings,
    *,
    primary: PriceSource | None = None,
    secondary: PriceSource | None = None,
    notifier: Notifier | None = None,
    deadline: Deadline | None = None,
    now: datetime | None = None,
    history_path: str | Path | None = None,
    calibration_path: str | Path | None = None,
) -> StampOutcome:
    """
    Top-level driver: race the stamp against the run deadline and report.

    Every terminal state (ok, failed, timeout) produces exactly one
    notification. Sources default to the ones configured in `settings`.
    """
    if primary is None and secondary is None:
        primary, secondary = make_sources(settings)
    notifier = notifier or make_notifier(settings.telegram_bot_token, settings.telegram_chat_id)
    deadline = deadline or Deadline(settings.run_timeout_s)
    now = now or utc_now()
    day = local_date(now, settings.timezone)

    try:
        outcome = run_with_deadline(
            lambda: stamp_nav(
                settings,
                primary=primary,
                secondary=secondary,
                deadline=deadline,
                now=now,
                history_path=history_path,
                calibration_path=calibration_path,
            ),
            deadline,
            name="nav-stamp",
        )
    except RunTimeout as e:
        logger.error("NAV stamp TIMEOUT: %s", e)
        outcome = StampOutcome(status="timeout", date=day, error=str(e))
    except NavStampError as e:
        logger.error("NAV stamp FAILED: %s", e)
        outcome = StampOutcome(status="failed", date=day, error=f"{type(e).__name__}: {e}")
    except Exception as e:
        logger.exception("NAV stamp crashed")
        outcome = StampOutcome(status="failed", date=day, error=f"{type(e).__name__}: {e}")

    try:
        notifier.send(format_message(outcome))
    except Exception:
        # A lost alert never changes the outcome of the run.
        logger.exception("Notification failed for %s stamp", outcome.status)
    return outcome
