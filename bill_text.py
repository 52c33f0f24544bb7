"""
Text helpers shared by every provider parser.

Bill text arrives from PDF extraction with its line structure intact, so most
fields are found by locating an anchor phrase and reading the line it sits on
(or the line below). Every pattern match runs with a time limit because the
text is externally supplied and several patterns use open-ended quantifiers.
"""

import calendar
import logging
import math
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, List, Optional, Tuple

import regex

logger = logging.getLogger(__name__)

# Configuration: seconds a single pattern match may run before it counts as no match
MATCH_TIMEOUT = 1.0

# Configuration: date layouts tried when a parser does not name its own
DATE_FORMATS = ("%b %d, %Y", "%B %d, %Y")

MONTH_YEAR_FORMATS = ("%B %Y", "%b %Y")

_COMMA_SPACING = regex.compile(r"\s*,\s*")
_CURRENCY_NOISE = regex.compile(r"[$,\s]")
_CENTS = Decimal("0.01")


# ----------------------------------------------------------------------------
# Bounded-time matching
# ----------------------------------------------------------------------------


def compile_pattern(pattern: str, flags: int = 0):
    return regex.compile(pattern, flags)


def _timed_out(pattern) -> None:
    logger.warning(
        "Pattern timed out after %ss, treating as no match: %.60s",
        MATCH_TIMEOUT,
        pattern.pattern,
    )


def search(pattern, text: str, pos: int = 0):
    """Return the first match of ``pattern`` in ``text``, or None on no match or timeout."""
    try:
        return pattern.search(text, pos, timeout=MATCH_TIMEOUT)
    except TimeoutError:
        _timed_out(pattern)
        return None


def find_all(pattern, text: str) -> list:
    """Return every match in order; a timeout yields no matches at all."""
    try:
        return list(pattern.finditer(text, timeout=MATCH_TIMEOUT))
    except TimeoutError:
        _timed_out(pattern)
        return []


def substitute(pattern, replacement: str, text: str) -> str:
    """Replace every match; a timeout leaves the text unchanged."""
    try:
        return pattern.sub(replacement, text, timeout=MATCH_TIMEOUT)
    except TimeoutError:
        _timed_out(pattern)
        return text


# ----------------------------------------------------------------------------
# Anchor lookups
# ----------------------------------------------------------------------------


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def split_lines(text: str) -> List[str]:
    """Split on LF or CRLF without dropping blank lines."""
    return normalize_newlines(text).split("\n")


def _find_anchor(text: str, anchor: str) -> int:
    match = search(compile_pattern(regex.escape(anchor), regex.IGNORECASE), text)
    return match.start() if match else -1


def line_containing(text: str, anchor: str) -> Optional[str]:
    """
    Return the stripped line holding the first case-insensitive occurrence of anchor.

    Example: line_containing(text, "CURRENT CHARGES") -> "CURRENT CHARGES $156.02"
    """
    idx = _find_anchor(text, anchor)
    if idx < 0:
        return None

    start = text.rfind("\n", 0, idx) + 1
    end = text.find("\n", idx)
    if end < 0:
        end = len(text)

    return text[start:end].strip()


def line_after(text: str, anchor: str, offset: int = 1) -> Optional[str]:
    """
    Return the stripped line ``offset`` lines below the anchor's line.

    Returns None when the anchor is missing or the text ends first.
    """
    idx = _find_anchor(text, anchor)
    if idx < 0:
        return None

    start = idx
    for _ in range(offset):
        eol = text.find("\n", start)
        if eol < 0:
            return None
        start = eol + 1

    if start >= len(text):
        return None

    end = text.find("\n", start)
    if end < 0:
        end = len(text)

    return text[start:end].strip()


def strip_spaces(value: Optional[str]) -> Optional[str]:
    """Remove all whitespace, e.g. "1234 5678 901" -> "12345678901"."""
    if value is None:
        return None
    return "".join(value.split()) or None


def join_lines(value: Optional[str]) -> Optional[str]:
    """Collapse a multi-line capture into one line with single spaces."""
    if value is None:
        return None
    return " ".join(value.split()) or None


# ----------------------------------------------------------------------------
# Number and date normalization
# ----------------------------------------------------------------------------


def parse_quantity(value: Optional[str]) -> float:
    """
    Parse a consumption figure, ignoring thousands separators.

    "2,680.000" -> 2680.0; negative or unparseable -> 0.0
    """
    if not value:
        return 0.0
    cleaned = substitute(_CURRENCY_NOISE, "", value)
    try:
        quantity = float(cleaned)
    except ValueError:
        return 0.0
    # Consumption is never negative
    if not math.isfinite(quantity) or quantity < 0:
        return 0.0
    return quantity


def parse_amount(value: Optional[str]) -> Decimal:
    """
    Parse a money amount to two decimal places, keeping its sign.

    "-$45.10" -> Decimal("-45.10"); "$1,045.02" -> Decimal("1045.02");
    anything unparseable -> Decimal("0.00")
    """
    if not value:
        return Decimal("0.00")
    cleaned = substitute(_CURRENCY_NOISE, "", value)
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return Decimal("0.00")
    if not amount.is_finite():
        return Decimal("0.00")
    try:
        return amount.quantize(_CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Too many digits for the decimal context
        return Decimal("0.00")


def parse_date(value: Optional[str], formats: Iterable[str] = DATE_FORMATS) -> Optional[date]:
    """
    Parse a date token against each format in turn.

    Whitespace is collapsed and comma spacing normalized first, so
    "Apr  6,2025" and "April 6, 2025" both parse. Returns None when no
    format fits (e.g. "13/45/2025").
    """
    if not value:
        return None
    cleaned = " ".join(value.split())
    cleaned = substitute(_COMMA_SPACING, ", ", cleaned)

    for fmt in formats:
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    return None


def month_bounds(
    value: Optional[str], formats: Iterable[str] = MONTH_YEAR_FORMATS
) -> Tuple[Optional[date], Optional[date]]:
    """Expand "February 2025" to (2025-02-01, 2025-02-28)."""
    first = parse_date(value, formats)
    if first is None:
        return None, None
    last_day = calendar.monthrange(first.year, first.month)[1]
    return first, first.replace(day=last_day)


def previous_year(value: date) -> date:
    """Same calendar day one year earlier (Feb 29 falls back to Feb 28)."""
    try:
        return value.replace(year=value.year - 1)
    except ValueError:
        return value.replace(year=value.year - 1, day=28)
