"""
marketplace/coerce.py

Lenient value coercion shared by the query pipeline and the SQL layer.

Query-string values arrive as text and listing prices may carry currency
formatting ("₦2,500,000", "$1,200.50"). Everything here returns None instead
of raising, so callers can treat "unparseable" as "absent".

fold_text and compare_text are also registered on every SQLite connection
(see db.prepare_connection) so filters and ORDER BY share these rules.
"""

from __future__ import annotations

import locale
import math
import re
from typing import Any, Optional, Tuple

NUMBER_WORDS = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
}

_PRICE_NOISE = re.compile(r"[^0-9.\-]")
_GREATER_THAN = re.compile(r"^>\s*(\w+)$")


def to_number(value: Any) -> Optional[float]:
    """Coerce a value to float, or None when it is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
        return None if math.isnan(number) or math.isinf(number) else number
    return None


def parse_price(value: Any) -> Optional[float]:
    """
    Parse a listing price, stripping currency symbols and separators.

    Returns None for NULL, empty and non-numeric values ("N/A", "Contact us").
    """
    if isinstance(value, str):
        stripped = _PRICE_NOISE.sub("", value)
        if not stripped or stripped in ("-", ".", "-."):
            return None
        return to_number(stripped)
    return to_number(value)


def to_int(value: Any) -> Optional[int]:
    """Coerce to int; integral floats and digit strings only."""
    number = to_number(value)
    if number is None or number != int(number):
        return None
    return int(number)


def parse_count(value: Any) -> Optional[int]:
    """Parse a room count given as digits or a number word ("three")."""
    if isinstance(value, str):
        word = value.strip().lower()
        if word in NUMBER_WORDS:
            return NUMBER_WORDS[word]
    return to_int(value)


def parse_count_filter(value: Any) -> Optional[Tuple[str, int]]:
    """
    Parse a bedrooms/bathrooms filter into (operator, count).

    "3" and "three" give ("=", 3); ">2" and ">two" give (">", 2).
    Anything else gives None (no filter).
    """
    if value is None:
        return None
    text = str(value).strip().lower()
    match = _GREATER_THAN.match(text)
    if match:
        count = parse_count(match.group(1))
        return (">", count) if count is not None else None
    count = parse_count(text)
    if count is None:
        return None
    return ("=", count)


def fold_text(value: Any) -> Optional[str]:
    """Unicode case-fold for case-insensitive matching ("ÌKOYI" -> "ìkoyi")."""
    if value is None:
        return None
    return str(value).casefold()


def compare_text(left: str, right: str) -> int:
    """Locale-aware text order, case-insensitive first, then exact."""
    result = locale.strcoll(left.casefold(), right.casefold())
    if result == 0:
        result = locale.strcoll(left, right)
    return (result > 0) - (result < 0)
