"""
Central data model definitions used across the project.

This module defines the canonical structure of Section and ScheduleEntry
records so that:
- the decoder, the storage layer and the CLI share the same field names
- the natural keys used for upserts are computed in exactly one place
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, List, Tuple


SectionKey = Tuple[str, str, int, int, int]


@dataclass
class Section:
    """
    One offering of a course in a term, tracked by its CRN.
    """

    subject: str
    course_number: str
    year: int
    term: int
    crn: int
    section: Optional[str]
    credits: float
    abbreviated_title: Optional[str]
    rp: Optional[str]
    seats: Optional[str]
    waitlist: Optional[str]
    add_fees: Optional[float]
    rpt_limit: Optional[int]
    notes: Optional[str] = None
    source_id: Optional[str] = None

    @property
    def key(self) -> SectionKey:
        return (self.subject, self.course_number, self.year, self.term, self.crn)

    @property
    def course(self) -> str:
        """
        Subject and course number as printed on the page, e.g. "CPSC 1150".
        """
        return f"{self.subject} {self.course_number}"


@dataclass
class ScheduleEntry:
    """
    Represents one meeting pattern of a section (one row of the schedule block).

    schedule_index starts at 0 and is contiguous within the parent section.
    """

    subject: str
    course_number: str
    year: int
    term: int
    crn: int
    schedule_index: int
    type: str
    days: str
    time: str
    start: Optional[str]
    end: Optional[str]
    room: str
    instructor: str
    source_id: Optional[str] = None

    @property
    def section_key(self) -> SectionKey:
        return (self.subject, self.course_number, self.year, self.term, self.crn)


@dataclass
class PendingNote:
    """
    A class-wide note waiting for the sections of its course.
    """

    course: str
    text: str


@dataclass
class Diagnostic:
    """
    One skip/truncate event raised while decoding a page.
    """

    kind: str
    position: int
    message: str
    section_key: Optional[SectionKey] = None


@dataclass
class DecodeResult:
    """
    Everything the decoder produced for one page.
    """

    year: Optional[int]
    term: Optional[int]
    source_id: Optional[str]
    records: List[Tuple[Section, List[ScheduleEntry]]] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.year is not None and self.term is not None and not any(
            d.kind in ("no_table", "term_unresolved") for d in self.diagnostics
        )

    @property
    def sections(self) -> List[Section]:
        return [s for s, _ in self.records]

    @property
    def schedule_entries(self) -> List[ScheduleEntry]:
        return [e for _, entries in self.records for e in entries]
