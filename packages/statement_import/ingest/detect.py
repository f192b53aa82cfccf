"""Pick a parser for an uploaded statement and run it.

Detection order: filename extension (``.ofx``/``.qfx``), then the declared
type sent by the caller, then content sniffing for OFX markers. Everything
else is treated as CSV.
"""

from __future__ import annotations

from pathlib import PurePath
from typing import Literal, TypeAlias

from ..errors import FormatError
from ..logging_setup import get_logger
from ..models import ParsedStatement
from .adapters.generic_csv import parse_csv
from .adapters.ofx import looks_like_ofx, parse_ofx

logger = get_logger("statement_import.ingest.detect")

StatementFormat: TypeAlias = Literal["csv", "ofx"]

_OFX_SUFFIXES = frozenset({".ofx", ".qfx"})


def decode_content(content: bytes | str) -> str:
    """Decode upload bytes as UTF-8 (BOM tolerated), falling back to Latin-1.

    Brazilian bank exports (and OFX ``CHARSET:1252`` files) are frequently not
    UTF-8; Latin-1 never fails, so the fallback always yields text.
    """

    if isinstance(content, str):
        return content.lstrip("\ufeff")
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("latin-1")


def detect_format(filename: str | None, declared_type: str | None, text: str) -> StatementFormat:
    suffix = PurePath(filename or "").suffix.lower()
    if suffix in _OFX_SUFFIXES:
        return "ofx"
    if suffix == ".csv":
        return "csv"
    declared = (declared_type or "").strip().lower()
    if "ofx" in declared or "qfx" in declared:
        return "ofx"
    if "csv" in declared:
        return "csv"
    return "ofx" if looks_like_ofx(text) else "csv"


def parse_statement(
    content: bytes | str,
    *,
    filename: str | None = None,
    declared_type: str | None = None,
) -> ParsedStatement:
    """Decode, detect and parse. Raises ``FormatError`` on structural problems."""

    text = decode_content(content)
    if not text.strip():
        raise FormatError("File is empty")

    fmt = detect_format(filename, declared_type, text)
    parsed = parse_ofx(text) if fmt == "ofx" else parse_csv(text)
    logger.info(
        "Parsed %s statement %r: %d rows", fmt, filename or "<upload>", len(parsed.records)
    )
    return parsed


__all__ = ["StatementFormat", "decode_content", "detect_format", "parse_statement"]
