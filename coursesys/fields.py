"""
Field formatting (token string -> typed scalar).

Every cell on the search page arrives as text. The helpers here turn one
token into the value stored on a record:

- format_prop: None / float / int / stripped text, in that priority order
- format_currency: same, after removing "$" and thousands separators
- format_date: "11-Apr-23" -> "2023-04-11", century taken from the page year
"""

from __future__ import annotations

import re
from datetime import date
from typing import Optional, Union


Scalar = Union[None, int, float, str]

_DECIMAL_RE = re.compile(r"^\d+\.\d+$")
_INTEGER_RE = re.compile(r"^\d+$")
_DATE_RE = re.compile(r"^(\d{1,2})-([A-Za-z]{3})-(\d{2})$")

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}


def is_blank(token: Optional[str]) -> bool:
    return token is None or not token.strip()


def format_prop(token: Optional[str]) -> Scalar:
    """
    Classify a token as null, decimal, integer or text.
    """
    if is_blank(token):
        return None
    assert token is not None
    raw = token.strip()
    if _DECIMAL_RE.match(raw):
        return float(raw)
    if _INTEGER_RE.match(raw):
        return int(raw)
    return raw


def format_currency(token: Optional[str]) -> Scalar:
    """
    "$1,250.00" -> 1250.0; anything non-numeric falls back to format_prop.
    """
    if is_blank(token):
        return None
    assert token is not None
    return format_prop(token.replace("$", "").replace(",", ""))


def format_text(token: Optional[str]) -> Optional[str]:
    """
    Nullable string: blank -> None, otherwise the stripped text.
    """
    if is_blank(token):
        return None
    assert token is not None
    return token.strip()


def is_integer(token: Optional[str]) -> bool:
    return isinstance(format_prop(token), int)


def to_float(value: Scalar) -> Optional[float]:
    if isinstance(value, (int, float)):
        return float(value)
    return None


def to_int(value: Scalar) -> Optional[int]:
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def format_date(token: Optional[str], page_year: int) -> Optional[str]:
    """
    Convert "DD-Mon-YY" into "YYYY-MM-DD".

    The century is inferred from the year of the page the token came from,
    not from the two digit year. Unknown months and days that do not exist
    in the month leave the token untouched.
    """
    if is_blank(token):
        return None
    assert token is not None
    raw = token.strip()

    m = _DATE_RE.match(raw)
    if not m:
        return raw

    day, month_name, yy = m.groups()
    month = _MONTHS.get(month_name.lower())
    if month is None:
        return raw

    century = 1900 if page_year <= 1999 else 2000
    try:
        value = date(century + int(yy), month, int(day))
    except ValueError:
        return raw
    return value.isoformat()
