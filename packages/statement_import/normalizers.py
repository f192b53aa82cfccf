"""Field normalizers: raw statement strings -> typed canonical values.

Every function here is pure. ``normalize_date`` and ``normalize_amount``
return ``None`` on unparseable input instead of raising; the orchestrator
turns a ``None`` into a row failure.

Date layouts
------------
- ``YYYY-MM-DD`` (optionally followed by a time), ``YYYY/MM/DD``,
  ``YYYY.MM.DD`` and compact ``YYYYMMDD`` (OFX, optionally with a time and a
  ``[tz]`` suffix) are unambiguous.
- ``NN/NN/YYYY`` (also ``-``/``.`` separators and 2-digit years): a component
  above 12 decides the order; otherwise ``day_first`` decides. Parsers infer
  ``day_first`` per file with :func:`infer_day_first`.

Amount layouts
--------------
Currency symbols/codes, spaces and sign markers are stripped. When both ``.``
and ``,`` occur the rightmost one is the decimal separator; a single ``,`` or
``.`` is a decimal separator; repeated separators of one kind are thousands
separators. The result is a magnitude quantized to cents.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .models import Direction

# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

_YMD_RE = re.compile(r"^(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})(?:[T\s].*)?$")
_COMPACT_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})(?:\d{2,6}(?:\.\d+)?)?(?:\s*\[[^\]]*\])?$")
_NN_NN_YYYY_RE = re.compile(r"^(\d{1,2})([-/.])(\d{1,2})\2(\d{4}|\d{2})(?:[T\s].*)?$")


def _expand_year(raw: str) -> int:
    y = int(raw)
    if len(raw) == 2:
        # Same pivot as strptime's %y.
        return 2000 + y if y < 69 else 1900 + y
    return y


def _safe_date(y: int, m: int, d: int) -> date | None:
    try:
        return date(y, m, d)
    except ValueError:
        return None


def normalize_date(raw: str | None, *, day_first: bool = True) -> date | None:
    """Parse ``raw`` into a ``date`` or return ``None``."""

    if raw is None:
        return None
    s = raw.strip()
    if not s:
        return None

    m = _YMD_RE.match(s)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _COMPACT_RE.match(s)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _NN_NN_YYYY_RE.match(s)
    if m:
        first, second = int(m.group(1)), int(m.group(3))
        year = _expand_year(m.group(4))
        if first > 12:
            return _safe_date(year, second, first)
        if second > 12:
            return _safe_date(year, first, second)
        if day_first:
            return _safe_date(year, second, first)
        return _safe_date(year, first, second)

    return None


def infer_day_first(values: Iterable[str]) -> bool | None:
    """Guess the day/month order of a date column.

    Returns ``True`` when some ``NN/NN/YYYY`` value has a first component above
    12, ``False`` when some value has a second component above 12, and ``None``
    when the column never disambiguates itself (or contradicts itself).
    """

    saw_day_first = saw_month_first = False
    for v in values:
        m = _NN_NN_YYYY_RE.match((v or "").strip())
        if not m:
            continue
        first, second = int(m.group(1)), int(m.group(3))
        if first > 12 >= second:
            saw_day_first = True
        elif second > 12 >= first:
            saw_month_first = True
    if saw_day_first == saw_month_first:
        return None
    return saw_day_first


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

_CENT = Decimal("0.01")
_LEADING_CURRENCY_RE = re.compile(r"^(?:[A-Za-z]{3}|R\$|US\$|[$€£¥])\s*")
_TRAILING_CURRENCY_RE = re.compile(r"\s*(?:[A-Za-z]{3}|[$€£¥])$")
_NUMERIC_RE = re.compile(r"^[\d.,]*\d[\d.,]*$")


def _strip_amount(raw: str | None) -> tuple[bool, str] | None:
    """Return ``(negative, digits_and_separators)`` or ``None``."""

    if raw is None:
        return None
    s = raw.strip().replace("\u00a0", " ")
    if not s:
        return None

    negative = False
    # Strip sign, currency and parentheses markers in any order until stable,
    # so "-R$ 1.234,56", "(1,234.56)" and "12.50-" all reduce to the number.
    while True:
        before = s
        if s.startswith("+"):
            s = s[1:].lstrip()
        elif s.startswith("-"):
            negative = True
            s = s[1:].lstrip()
        if s.endswith("-"):
            negative = True
            s = s[:-1].rstrip()
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1].strip()
        s = _LEADING_CURRENCY_RE.sub("", s, count=1)
        s = _TRAILING_CURRENCY_RE.sub("", s, count=1)
        if s == before:
            break

    # Space-grouped thousands ("1 234,56")
    s = s.replace(" ", "").replace("'", "")
    if not _NUMERIC_RE.match(s):
        return None
    return negative, s


def _canonical_decimal_text(s: str) -> str:
    last_dot, last_comma = s.rfind("."), s.rfind(",")
    if last_dot >= 0 and last_comma >= 0:
        decimal_sep = "." if last_dot > last_comma else ","
        thousands_sep = "," if decimal_sep == "." else "."
        return s.replace(thousands_sep, "").replace(decimal_sep, ".")
    for sep in (",", "."):
        count = s.count(sep)
        if count > 1:
            return s.replace(sep, "")
        if count == 1:
            return s.replace(sep, ".")
    return s


def normalize_amount(raw: str | None) -> Decimal | None:
    """Parse ``raw`` into a non-negative ``Decimal`` with two places, or ``None``."""

    stripped = _strip_amount(raw)
    if stripped is None:
        return None
    _negative, s = stripped
    try:
        d = Decimal(_canonical_decimal_text(s))
        if not d.is_finite():
            return None
        # Raises once the digits exceed the context precision.
        return abs(d).quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None


def amount_sign(raw: str | None) -> int:
    """Return -1, 0 or 1 for a signed source amount (0 when unparseable or zero)."""

    stripped = _strip_amount(raw)
    if stripped is None:
        return 0
    negative, _s = stripped
    magnitude = normalize_amount(raw)
    if magnitude is None or magnitude == 0:
        return 0
    return -1 if negative else 1


# ---------------------------------------------------------------------------
# Currency
# ---------------------------------------------------------------------------

_CURRENCY_ALIASES: dict[str, str] = {
    "real": "BRL",
    "reais": "BRL",
    "r$": "BRL",
    "brl": "BRL",
    "dollar": "USD",
    "dollars": "USD",
    "dolar": "USD",
    "dólar": "USD",
    "us$": "USD",
    "$": "USD",
    "usd": "USD",
    "euro": "EUR",
    "euros": "EUR",
    "€": "EUR",
    "eur": "EUR",
}
_ISO_CODE_RE = re.compile(r"^[a-z]{3}$")


def normalize_currency(raw: str | None, home: str = "BRL") -> str:
    """Map a currency hint to a 3-letter code, defaulting to ``home``."""

    token = (raw or "").strip().lower()
    if not token:
        return home
    alias = _CURRENCY_ALIASES.get(token)
    if alias is not None:
        return alias
    if _ISO_CODE_RE.match(token):
        return token.upper()
    return home


# ---------------------------------------------------------------------------
# Direction
# ---------------------------------------------------------------------------

_CREDIT_HINTS = frozenset(
    {
        "credit",
        "credito",
        "c",
        "cr",
        "income",
        "receita",
        "entrada",
        "deposit",
        "deposito",
        "inflow",
    }
)


def resolve_direction(hint: str | None, sign: int | None = None) -> Direction:
    """Decide credit vs debit.

    An explicit hint wins: credit/income-like words mean credit, any other
    non-empty hint means debit. Without a hint a signed source amount decides
    (positive is credit). Everything else is a debit.
    """

    token = fold_text(hint or "")
    if token:
        return Direction.CREDIT if token in _CREDIT_HINTS else Direction.DEBIT
    if sign is not None and sign > 0:
        return Direction.CREDIT
    return Direction.DEBIT


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------

_WS_RE = re.compile(r"\s+")
_MERCHANT_DROP_RE = re.compile(r"[^\w\s-]")


def clean_text(value: str | None) -> str | None:
    """Collapse internal whitespace and trim; empty strings become ``None``."""

    if value is None:
        return None
    cleaned = _WS_RE.sub(" ", value).strip()
    return cleaned or None


def fold_text(value: str) -> str:
    """Case- and accent-insensitive form used for keyword matching."""

    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _WS_RE.sub(" ", stripped.casefold()).strip()


def normalize_merchant_name(name: str | None) -> str:
    """Key used for learned merchant mappings.

    Lower-cases, drops punctuation other than ``-`` (accented letters are word
    characters and survive), then collapses whitespace.
    """

    if not name:
        return ""
    lowered = name.lower()
    return _WS_RE.sub(" ", _MERCHANT_DROP_RE.sub("", lowered)).strip()


__all__ = [
    "amount_sign",
    "clean_text",
    "fold_text",
    "infer_day_first",
    "normalize_amount",
    "normalize_currency",
    "normalize_date",
    "normalize_merchant_name",
    "resolve_direction",
]
