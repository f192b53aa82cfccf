"""Monthly-recurrence heuristic used by the recategorization pass.

A merchant "looks monthly" when, among its debits dated up to
``RECURRENCE_WINDOW_DAYS`` before (and including) the transaction being
classified, there are at least two occurrences and some pair of consecutive
dates lies between ``MIN_GAP_DAYS`` and ``MAX_GAP_DAYS`` apart.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta

from .models import Direction, StoredTransaction
from .persistence import PersistenceGateway

RECURRENCE_WINDOW_DAYS = 90
MIN_GAP_DAYS = 25
MAX_GAP_DAYS = 35


def looks_monthly(
    dates: Iterable[date],
    *,
    min_gap: int = MIN_GAP_DAYS,
    max_gap: int = MAX_GAP_DAYS,
) -> bool:
    ordered = sorted(dates)
    if len(ordered) < 2:
        return False
    return any(
        min_gap <= (later - earlier).days <= max_gap
        for earlier, later in zip(ordered, ordered[1:])
    )


def is_recurring(
    gateway: PersistenceGateway,
    tx: StoredTransaction,
    *,
    window_days: int = RECURRENCE_WINDOW_DAYS,
) -> bool:
    """True when ``tx`` is a debit to a merchant billed roughly once a month."""

    if tx.direction is not Direction.DEBIT or not tx.merchant:
        return False
    since = tx.date - timedelta(days=window_days)
    others = gateway.merchant_debit_dates(tx.owner_id, tx.merchant, since=since, exclude_id=tx.id)
    return looks_monthly([tx.date, *(d for d in others if d <= tx.date)])


__all__ = [
    "MAX_GAP_DAYS",
    "MIN_GAP_DAYS",
    "RECURRENCE_WINDOW_DAYS",
    "is_recurring",
    "looks_monthly",
]
