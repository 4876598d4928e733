"""
Token extraction (HTML -> flat list of cell strings) and term resolution.

The semester search page renders every section as rows of one big table
(table.dataentrytable). The rows carry no ids or classes we can rely on,
so we flatten every <td> into a cleaned string and let the reconstructor in
parse.py work out where records start and end.

Cells that never carry data are dropped here:
- grey separator lines (class "deseparator")
- filler cells under long comments (colspan="22")
- the "CPSC 1150" course header repeated above each course
- course banners such as "BINF 4225 ***NEW COURSE***"
- the legend block that ends with the "Instructor(s)" column header
"""

from __future__ import annotations

import re
import unicodedata
from typing import List, Optional, Tuple, Union

from bs4 import BeautifulSoup, Tag


TABLE_SELECTOR = "table.dataentrytable"
SEPARATOR_CLASS = "deseparator"
FILLER_COLSPAN = "22"
INSTRUCTOR_HEADER = "Instructor(s)"
LEGEND_WIDTH = 18

COURSE_HEADER_RE = re.compile(r"^[A-Za-z]{4} \d{4}$")
COURSE_BANNER_RE = re.compile(r"^[A-Za-z]{4} \d{4}.*\*\*\*$")
HEADING_YEAR_RE = re.compile(r"\b(\d{4})\b")

TERM_CODES = {
    "spring": 10,
    "summer": 20,
    "fall": 30,
}


class TermResolutionError(ValueError):
    """Raised when a page (or term identifier) does not name a known term."""


def _soup(page: Union[str, BeautifulSoup]) -> BeautifulSoup:
    if isinstance(page, BeautifulSoup):
        return page
    return BeautifulSoup(page, "html.parser")


def clean_text(text: str) -> str:
    """
    Unicode-normalize a cell and collapse its whitespace.

    "&nbsp;" cells end up as the empty string.
    """
    text = unicodedata.normalize("NFKD", text)
    return " ".join(text.split())


def _is_filler(td: Tag) -> bool:
    classes = td.get("class") or []
    if SEPARATOR_CLASS in classes:
        return True
    return td.get("colspan") == FILLER_COLSPAN


# ---------------------------------------------------------------------------
# Cell tokens
# ---------------------------------------------------------------------------


def extract_tokens(page: Union[str, BeautifulSoup]) -> Optional[List[str]]:
    """
    Flatten the course table into an ordered list of cleaned cell strings.

    Returns None when the page has no course table at all ("no data"),
    which callers treat as an empty page rather than a broken one.
    """
    soup = _soup(page)
    table = soup.select_one(TABLE_SELECTOR)
    if table is None:
        return None

    tokens: List[str] = []
    for td in table.find_all("td"):
        if _is_filler(td):
            continue

        text = clean_text(td.get_text(" "))

        # the legend at the top of the page was captured as data
        if text == INSTRUCTOR_HEADER:
            del tokens[-LEGEND_WIDTH:]
            continue

        if COURSE_HEADER_RE.match(text) or COURSE_BANNER_RE.match(text):
            continue

        tokens.append(text)

    return tokens


# ---------------------------------------------------------------------------
# Term
# ---------------------------------------------------------------------------


def term_code(season: str) -> int:
    """
    Map a season name to its numeric term code (10/20/30).
    """
    lowered = season.lower()
    for name, code in TERM_CODES.items():
        if name in lowered:
            return code
    raise TermResolutionError(f"Unknown season: {season!r}")


def resolve_term(page: Union[str, BeautifulSoup], heading: str = "h2") -> Tuple[int, int]:
    """
    Read (year, term_code) from the page heading, e.g. "2024 Spring" -> (2024, 10).

    `heading` is a CSS selector; the first match carrying a four digit year
    is used.
    """
    soup = _soup(page)
    for el in soup.select(heading):
        text = clean_text(el.get_text(" "))
        m = HEADING_YEAR_RE.search(text)
        if not m:
            continue
        season = (text[: m.start()] + " " + text[m.end():]).strip()
        return int(m.group(1)), term_code(season)

    raise TermResolutionError(f"No term heading found (selector {heading!r})")


def parse_term_identifier(identifier: str) -> Tuple[int, int]:
    """
    Split a Banner term identifier such as "202410" into (2024, 10).
    """
    raw = identifier.strip()
    if not re.match(r"^\d{6}$", raw):
        raise TermResolutionError(f"Invalid term identifier: {identifier!r}")
    year, code = int(raw[:4]), int(raw[4:])
    if code not in TERM_CODES.values():
        raise TermResolutionError(f"Invalid term code in identifier: {identifier!r}")
    return year, code
