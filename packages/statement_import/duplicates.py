"""Deduplication hash for imported statement lines.

``compute_dedup_hash`` is the idempotency key of the import: a row whose hash
already exists in the store is counted as a duplicate and skipped.

Hash input is the plain concatenation ``owner + date + amount + description``
(amount rendered with exactly two decimals). Identical purchases on the same
day with the same description therefore collide; that is accepted for sources
without a natural id. When the source does supply one (OFX ``FITID``) it is
appended so such purchases stay distinct.
"""

from __future__ import annotations

import hashlib
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from .models import NormalizedTransaction


def _fmt_amount(amount: Decimal) -> str:
    # Two decimals, ASCII dot, never scientific notation.
    return f"{amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP):.2f}"


def compute_dedup_hash(
    owner_id: str,
    iso_date: str | date,
    amount: Decimal,
    description: str,
    *,
    natural_id: str | None = None,
) -> str:
    """Return the SHA-256 hex digest identifying one statement line for ``owner_id``."""

    day = iso_date.isoformat() if isinstance(iso_date, date) else iso_date
    payload = f"{owner_id}{day}{_fmt_amount(amount)}{description}"
    if natural_id:
        payload += natural_id
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def dedup_hash_for(owner_id: str, tx: NormalizedTransaction) -> str:
    """Hash a normalized row, falling back to the merchant for blank descriptions."""

    return compute_dedup_hash(
        owner_id,
        tx.date,
        tx.amount,
        tx.description or (tx.merchant or ""),
        natural_id=tx.natural_id,
    )


__all__ = ["compute_dedup_hash", "dedup_hash_for"]
