"""
Daily NAV history reconciliation.

Merges one freshly computed record into the persisted history:
- validate the share price (abort before any write when it is unusable)
- replace the record for the same date in place, or append
- re-sort ascending by calendar date
- attach the day-over-day change and a trailing-average deviation warning

Nothing here touches the filesystem; see `navstamp.nav.store` for that.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import Sequence

from navstamp.errors import ImplausibleValue, InvalidRecord
from navstamp.nav.models import NavRecord

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK = 4
DEFAULT_DEVIATION_THRESHOLD = 0.05
DEFAULT_PRECISION = 4


@dataclass(frozen=True)
class ReconcileResult:
    history: list[NavRecord]
    record: NavRecord
    replaced: bool
    deviation_warning: str | None = None


def validate_record(record: NavRecord) -> None:
    """Raise InvalidRecord unless `record.share_price` is a finite positive number."""
    if not record.has_valid_price:
        raise InvalidRecord(f"share price for {record.date_key} must be finite and > 0, got {record.share_price!r}")


def day_change_pct(today: float, yesterday: float | None, *, precision: int = DEFAULT_PRECISION) -> float | None:
    """Percent change vs the prior record; None when there is no usable prior price."""
    if yesterday is None or not math.isfinite(yesterday) or yesterday <= 0:
        return None
    return round((today - yesterday) / yesterday * 100.0, precision)


def trailing_mean(history: Sequence[NavRecord], *, before_index: int, lookback: int) -> float | None:
    prices = [
        r.share_price
        for r in history[max(0, before_index - lookback) : before_index]
        if r.has_valid_price
    ]
    if not prices:
        return None
    return sum(prices) / len(prices)  # type: ignore[arg-type]


def deviation_warning(
    price: float,
    history: Sequence[NavRecord],
    *,
    before_index: int,
    lookback: int = DEFAULT_LOOKBACK,
    threshold: float = DEFAULT_DEVIATION_THRESHOLD,
) -> str | None:
    """
    Compare `price` to the mean of the `lookback` records before `before_index`.

    Returns a human-readable warning when the relative deviation exceeds
    `threshold`, else None. Never raises: the warning does not block the write.
    """
    avg = trailing_mean(history, before_index=before_index, lookback=lookback)
    if avg is None or avg <= 0:
        return None
    dev = abs(price - avg) / avg
    if dev <= threshold:
        return None
    return f"Price deviates {dev * 100:.1f}% from {lookback}-day avg (${avg:.6f})"


def reconcile(
    new_record: NavRecord,
    existing_history: Sequence[NavRecord],
    *,
    lookback: int = DEFAULT_LOOKBACK,
    threshold: float = DEFAULT_DEVIATION_THRESHOLD,
    precision: int = DEFAULT_PRECISION,
) -> ReconcileResult:
    validate_record(new_record)

    # Prior records only: a same-day re-run must not compare against its own earlier stamp.
    prior = sorted((r for r in existing_history if r.date < new_record.date), key=lambda r: r.date)
    replaced = any(r.date == new_record.date for r in existing_history)

    prev = prior[-1] if prior else None
    price = float(new_record.share_price)  # type: ignore[arg-type]
    change = day_change_pct(price, prev.share_price if prev else None, precision=precision)
    warning = deviation_warning(price, prior, before_index=len(prior), lookback=lookback, threshold=threshold)
    if warning:
        logger.warning("NAV %s: %s", new_record.date_key, warning)

    record = replace(new_record, day_change_pct=change)
    if warning and warning not in record.warnings:
        record = replace(record, warnings=record.warnings + (warning,))

    history: list[NavRecord] = []
    for r in existing_history:
        history.append(record if r.date == record.date else r)
    if not replaced:
        history.append(record)
    history.sort(key=lambda r: r.date)

    # Collapse duplicate dates that may already be in a hand-edited file; the later row wins.
    deduped: list[NavRecord] = []
    for r in history:
        if deduped and deduped[-1].date == r.date:
            deduped[-1] = r
        else:
            deduped.append(r)

    return ReconcileResult(history=deduped, record=record, replaced=replaced, deviation_warning=warning)


def check_plausibility(
    record: NavRecord,
    history: Sequence[NavRecord],
    *,
    max_price: float,
    max_drop_pct: float,
) -> list[ImplausibleValue]:
    """
    Anomaly checks that do not fail validation on their own.

    - price above a sane upper bound (corrupted upstream read)
    - a drop of more than `max_drop_pct` percent vs the previous valid record
    """
    problems: list[ImplausibleValue] = []
    price = record.share_price
    if price is None:
        return problems
    if price > max_price:
        problems.append(ImplausibleValue(f"share price {price:.6f} above sane bound {max_price:g}"))

    prev = next(
        (r for r in sorted(history, key=lambda r: r.date, reverse=True) if r.date < record.date and r.has_valid_price),
        None,
    )
    if prev is not None:
        drop = (prev.share_price - price) / prev.share_price * 100.0  # type: ignore[operator]
        if drop > max_drop_pct:
            problems.append(
                ImplausibleValue(
                    f"share price fell {drop:.1f}% vs {prev.date_key} (${prev.share_price:.6f} -> ${price:.6f})"
                )
            )
    return problems
