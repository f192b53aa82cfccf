"""Adapter for header-driven CSV statement exports.

No fixed schema: each logical column (date, amount, description, merchant,
currency, category, type) is located by matching the header cells against a
small synonym set, exact match first and substring match second. Headers are
compared case- and accent-insensitively. Only ``date`` and ``amount`` are
mandatory.

Parsing follows RFC 4180 via the stdlib :mod:`csv` module, so quoted fields
with embedded commas survive. Comma is the delimiter; a header line that
contains semicolons but no commas switches the file to ``;``.
"""

from __future__ import annotations

import csv
from collections.abc import Sequence
from io import StringIO

from ...errors import FormatError
from ...models import ParsedStatement, RawTransactionRecord
from ...normalizers import clean_text, fold_text, infer_day_first

# Concept -> synonyms, in matching priority order. Earlier concepts claim a
# column first, so a header can only feed one concept.
COLUMN_SYNONYMS: dict[str, tuple[str, ...]] = {
    "date": ("date", "data"),
    "amount": ("amount", "valor", "value"),
    "description": ("description", "descri", "memo", "historico"),
    "merchant": ("merchant", "estabelecimento", "name", "payee"),
    "currency": ("currency", "moeda"),
    # Located only so it cannot feed another concept; the cell stays in ``fields``.
    "category": ("category", "categoria"),
    "type": ("type", "tipo"),
}
REQUIRED_COLUMNS: tuple[str, ...] = ("date", "amount")


def map_columns(headers: Sequence[str]) -> dict[str, int]:
    """Return ``{concept: column_index}`` for every concept found in ``headers``."""

    folded = [fold_text(h) for h in headers]
    claimed: set[int] = set()
    mapping: dict[str, int] = {}
    for concept, synonyms in COLUMN_SYNONYMS.items():
        index = _find_column(folded, synonyms, claimed)
        if index is not None:
            mapping[concept] = index
            claimed.add(index)
    return mapping


def _find_column(folded: list[str], synonyms: Sequence[str], claimed: set[int]) -> int | None:
    for name in synonyms:
        for i, col in enumerate(folded):
            if i not in claimed and col == name:
                return i
    for name in synonyms:
        for i, col in enumerate(folded):
            if i not in claimed and name in col:
                return i
    return None


def _sniff_delimiter(header_line: str) -> str:
    if ";" in header_line and "," not in header_line:
        return ";"
    return ","


def _cell(row: Sequence[str], mapping: dict[str, int], concept: str) -> str | None:
    index = mapping.get(concept)
    if index is None or index >= len(row):
        return None
    return row[index].strip()


def _row_fields(headers: Sequence[str], row: Sequence[str]) -> dict[str, str]:
    # Unnamed header cells still keep their values under a positional key.
    return {(h or f"column_{i}"): row[i] for i, h in enumerate(headers) if i < len(row)}


def parse_csv(text: str) -> ParsedStatement:
    """Parse CSV ``text`` into raw records in file order.

    Raises ``FormatError`` when the file has no header, lacks a date or amount
    column, or holds no data rows.
    """

    stripped = text.lstrip("\ufeff")
    first_line = stripped.split("\n", 1)[0]
    if not first_line.strip():
        raise FormatError("File is empty or has no header row")

    reader = csv.reader(StringIO(stripped, newline=""), delimiter=_sniff_delimiter(first_line))
    try:
        headers = [h.strip() for h in next(reader)]
    except StopIteration as exc:
        raise FormatError("File is empty or has no header row") from exc
    except csv.Error as exc:
        raise FormatError(f"Failed to parse CSV header: {exc}") from exc

    mapping = map_columns(headers)
    missing = [c for c in REQUIRED_COLUMNS if c not in mapping]
    if missing:
        raise FormatError(
            "Missing required headers. Need at least: "
            + ", ".join(REQUIRED_COLUMNS)
            + ". Found: "
            + ", ".join(h for h in headers if h)
        )

    records: list[RawTransactionRecord] = []
    try:
        for row in reader:
            if not any(cell.strip() for cell in row):
                continue
            description = _cell(row, mapping, "description") or ""
            records.append(
                RawTransactionRecord(
                    line_no=reader.line_num,
                    date=_cell(row, mapping, "date") or "",
                    amount=_cell(row, mapping, "amount") or "",
                    description=clean_text(description) or "",
                    counterpart=clean_text(_cell(row, mapping, "merchant")),
                    currency_hint=_cell(row, mapping, "currency") or None,
                    direction_hint=_cell(row, mapping, "type") or None,
                    fields=_row_fields(headers, row),
                )
            )
    except csv.Error as exc:
        raise FormatError(f"Failed to parse CSV at line {reader.line_num}: {exc}") from exc

    if not records:
        raise FormatError("No transaction rows found after the header")

    return ParsedStatement(
        format="csv",
        records=tuple(records),
        headers=tuple(headers),
        day_first=infer_day_first(r.date for r in records),
    )


__all__ = ["COLUMN_SYNONYMS", "REQUIRED_COLUMNS", "map_columns", "parse_csv"]
