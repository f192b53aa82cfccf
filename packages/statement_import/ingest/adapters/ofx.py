"""Adapter for OFX/QFX statements (SGML v1 and XML v2).

Each ``<STMTTRN>...</STMTTRN>`` block becomes one raw record, in file order.
Field values are read up to the next tag or line break, which covers both the
unclosed SGML style (``<TRNAMT>-120.00``) and the closed XML style
(``<TRNAMT>-120.00</TRNAMT>``).

Recognized tags: ``DTPOSTED`` (``YYYYMMDD`` with optional time/zone),
``TRNAMT`` (signed decimal), ``MEMO``, ``NAME``, ``FITID`` and ``TRNTYPE``;
``CURDEF`` at statement level gives the currency. A block carrying neither
``DTPOSTED`` nor ``TRNAMT`` is skipped; a block carrying only one of them is
yielded and fails normalization later.
"""

from __future__ import annotations

import re

from ...errors import FormatError
from ...models import ParsedStatement, RawTransactionRecord
from ...normalizers import amount_sign, clean_text

_BLOCK_RE = re.compile(r"<STMTTRN>(.*?)</STMTTRN>", re.IGNORECASE | re.DOTALL)
_OFX_MARKER_RE = re.compile(r"OFXHEADER:|<OFX[\s>]", re.IGNORECASE)


def _tag(block: str, name: str) -> str | None:
    m = re.search(rf"<{name}>([^<\r\n]*)", block, re.IGNORECASE)
    if m is None:
        return None
    return m.group(1).strip() or None


def looks_like_ofx(text: str) -> bool:
    return bool(_OFX_MARKER_RE.search(text[:4096])) or "<STMTTRN>" in text.upper()


def _direction_hint(raw_amount: str | None) -> str | None:
    sign = amount_sign(raw_amount)
    if sign < 0:
        return "debit"
    if sign > 0:
        return "credit"
    return None


def parse_ofx(text: str) -> ParsedStatement:
    """Parse OFX ``text`` into raw records; ``FormatError`` when no block is usable."""

    if not looks_like_ofx(text):
        raise FormatError("File does not look like an OFX statement")

    currency = _tag(text, "CURDEF")
    records: list[RawTransactionRecord] = []
    for block_no, m in enumerate(_BLOCK_RE.finditer(text), start=1):
        block = m.group(1)
        posted = _tag(block, "DTPOSTED")
        amount = _tag(block, "TRNAMT")
        if posted is None and amount is None:
            continue
        memo = clean_text(_tag(block, "MEMO"))
        name = clean_text(_tag(block, "NAME"))
        fields = {
            k: v
            for k in ("TRNTYPE", "DTPOSTED", "TRNAMT", "FITID", "NAME", "MEMO")
            if (v := _tag(block, k)) is not None
        }
        records.append(
            RawTransactionRecord(
                line_no=block_no,
                date=posted or "",
                amount=amount or "",
                description=memo or name or "",
                counterpart=name or memo,
                currency_hint=currency,
                direction_hint=_direction_hint(amount),
                natural_id=_tag(block, "FITID"),
                fields=fields,
            )
        )

    if not records:
        raise FormatError("No transactions found in OFX file")

    return ParsedStatement(format="ofx", records=tuple(records), currency=currency)


__all__ = ["looks_like_ofx", "parse_ofx"]
