"""
Closed vocabulary of meeting types found in the "Type" column.

The reconstructor uses this to decide whether a token really starts a
schedule group. A token outside the set means the row layout is not what we
expect, so schedule consumption stops for the current section.
"""

from __future__ import annotations

from typing import Optional


SCHEDULE_TYPES = frozenset(
    {
        "",  # blank placeholder
        "Lecture",
        "Lab",
        "Seminar",
        "Practicum",
        "WWW",
        "On Site Work",
        "CO-OP(on site work experience)",
        "Exchange-International",
        "Tutorial",
        "Exam",
        "Field School",
        "Flexible Assessment",
        "GIS Guided Independent Study",
    }
)


def is_schedule_type(token: Optional[str]) -> bool:
    if token is None:
        return False
    return token.strip() in SCHEDULE_TYPES
