"""
Parsing (semester search HTML -> Section / ScheduleEntry records).

- Reads cached semester search pages from data/raw/
- Flattens the course table into cell tokens (see extract.py)
- Rebuilds sections and their schedule rows from the token stream
- Upserts everything into the sqlite database (see storage.py)

The search page has no schema we can select on. A section is a run of 12
header cells followed by one or more 7-cell schedule groups, and the only
thing telling us what comes next is how many blank cells follow a group:

    <= 5 blanks  -> padding before the next section header
       9 blanks  -> a note for the current section
      12 blanks  -> another schedule row of the same section

Those numbers are exact. Anything else means the current section is cut
short and we look for the next header.
"""

from __future__ import annotations

import argparse
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

from bs4 import BeautifulSoup

from coursesys.extract import (
    TermResolutionError,
    extract_tokens,
    parse_term_identifier,
    resolve_term,
)
from coursesys.fields import (
    format_currency,
    format_date,
    format_prop,
    format_text,
    is_blank,
    is_integer,
    to_float,
    to_int,
)
from coursesys.logs import setup_logging
from coursesys.model import (
    DecodeResult,
    Diagnostic,
    PendingNote,
    ScheduleEntry,
    Section,
    SectionKey,
)
from coursesys.schedule_types import is_schedule_type
from coursesys.storage import init_db, save_result


log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

PACKAGE_DIR = Path(__file__).resolve().parent
RAW_DIR = PACKAGE_DIR / "data" / "raw"


# ---------------------------------------------------------------------------
# Layout constants
# ---------------------------------------------------------------------------

HEADER_WIDTH = 12
SCHEDULE_WIDTH = 7

MAX_PADDING_GAP = 5
NOTE_GAP = 9
CONTINUATION_GAP = 12

# "CPSC 1150 Students must also register in a lab section."
CLASS_NOTE_RE = re.compile(r"^([A-Za-z]{4} \d{4}) (.+)$")


class State(Enum):
    SCANNING_FOR_HEADER = "scanning_for_header"
    EMITTING_SECTION = "emitting_section"
    EMITTING_SCHEDULE_BLOCK = "emitting_schedule_block"
    RESOLVING_GAP = "resolving_gap"
    END_OF_STREAM = "end_of_stream"


class Gap(Enum):
    NEXT_SECTION = "next_section"
    NOTE = "note"
    CONTINUATION = "continuation"
    UNEXPECTED = "unexpected"


def classify_gap(run_length: int) -> Gap:
    """
    Decide what a run of blank tokens after a schedule group means.
    """
    if run_length <= MAX_PADDING_GAP:
        return Gap.NEXT_SECTION
    if run_length == NOTE_GAP:
        return Gap.NOTE
    if run_length == CONTINUATION_GAP:
        return Gap.CONTINUATION
    return Gap.UNEXPECTED


def header_width(tokens: Sequence[str], start: int) -> int:
    """
    Width of the header group starting at `start`.

    The last slot of a header is a marker cell that is normally blank or
    text. Some rows are rendered without it; the slot then holds a bare
    integer that already belongs to the next record, so the header is one
    token shorter.
    """
    marker = start + HEADER_WIDTH - 1
    if marker < len(tokens) and is_integer(tokens[marker]):
        return HEADER_WIDTH - 1
    return HEADER_WIDTH


def is_header_at(tokens: Sequence[str], start: int) -> bool:
    """
    Whether a well-formed header group (without its marker slot) starts at `start`.
    """
    if start < 0 or start + HEADER_WIDTH - 1 > len(tokens):
        return False
    crn = tokens[start + 3]
    subject = tokens[start + 4]
    course_number = tokens[start + 5]
    credits = tokens[start + 7]
    return (
        is_integer(crn)
        and subject.strip().isalpha()
        and not is_blank(course_number)
        and to_float(format_prop(credits)) is not None
    )


def looks_like_header_start(tokens: Sequence[str], start: int) -> bool:
    """
    Whether the tokens from `start` on could be the beginning of a header
    cut off by the end of the stream.
    """
    crn = start + 3
    subject = start + 4
    if crn >= len(tokens) or not is_integer(tokens[crn]):
        return False
    return subject >= len(tokens) or tokens[subject].strip().isalpha()


# ---------------------------------------------------------------------------
# Reconstructor (CORE LOGIC)
# ---------------------------------------------------------------------------


class Reconstructor:
    """
    Single-use state machine turning one page's tokens into records.

    All state (cursor, pending class-wide note, open section) lives on the
    instance, so separate pages can be decoded independently.
    """

    def __init__(
        self,
        tokens: Sequence[str],
        year: int,
        term: int,
        source_id: Optional[str] = None,
    ) -> None:
        self.tokens: List[str] = list(tokens)
        self.year = year
        self.term = term
        self.source_id = source_id

        self.pos = 0
        self.pending_note: Optional[PendingNote] = None
        self.records: List[Tuple[Section, List[ScheduleEntry]]] = []
        self.diagnostics: List[Diagnostic] = []

        self._section: Optional[Section] = None
        self._schedule: List[ScheduleEntry] = []
        self._emit = True
        self._seen: Set[SectionKey] = set()
        self._resyncing = False

        # index of the last non-blank token; everything after it is padding
        self._last = -1
        for i, token in enumerate(self.tokens):
            if not is_blank(token):
                self._last = i

    # -- driver --------------------------------------------------------------

    def run(self) -> Tuple[List[Tuple[Section, List[ScheduleEntry]]], List[Diagnostic]]:
        handlers = {
            State.SCANNING_FOR_HEADER: self._scan_for_header,
            State.EMITTING_SECTION: self._emit_section,
            State.EMITTING_SCHEDULE_BLOCK: self._emit_schedule_block,
            State.RESOLVING_GAP: self._resolve_gap,
        }

        state = State.SCANNING_FOR_HEADER
        while state is not State.END_OF_STREAM:
            state = handlers[state]()

        self._close_section()
        return self.records, self.diagnostics

    # -- helpers -------------------------------------------------------------

    def _at_end(self) -> bool:
        return self.pos > self._last

    def _report(self, kind: str, message: str, level: int = logging.WARNING) -> None:
        key = self._section.key if self._section is not None else None
        self.diagnostics.append(Diagnostic(kind=kind, position=self.pos, message=message, section_key=key))
        log.log(level, "[%s] token %d: %s", kind, self.pos, message)

    def _describe(self) -> str:
        if self._section is None:
            return "(no section)"
        return f"{self._section.course} CRN {self._section.crn}"

    def _open_section(self, section: Section) -> None:
        self._section = section
        self._schedule = []
        self._emit = section.key not in self._seen
        if self._emit:
            self._seen.add(section.key)
        else:
            self._report("duplicate_section", f"Section {self._describe()} already emitted, skipping")

    def _close_section(self) -> None:
        if self._section is not None and self._emit:
            self.records.append((self._section, self._schedule))
        self._section = None
        self._schedule = []

    def _abandon_section(self) -> None:
        # the rest of the broken group is skipped without further diagnostics
        self._close_section()
        self._resyncing = True

    def _apply_pending_note(self, section: Section) -> None:
        if self.pending_note is None:
            return
        if self.pending_note.course == section.course:
            section.notes = self.pending_note.text
        else:
            self.pending_note = None

    def _attach_note(self, text: str) -> None:
        assert self._section is not None
        text = text.strip()
        if self._section.notes:
            self._section.notes = f"{text} {self._section.notes}"
        else:
            self._section.notes = text

    def _build_section(self, fields: Sequence[str]) -> Section:
        rp, seats, waitlist, crn, subject, course_number, label, credits, title, fees, rpt = fields
        return Section(
            subject=subject.strip(),
            course_number=course_number.strip(),
            year=self.year,
            term=self.term,
            crn=int(crn.strip()),
            section=format_text(label),
            credits=to_float(format_prop(credits)) or 0.0,
            abbreviated_title=format_text(title),
            rp=format_text(rp),
            seats=format_text(seats),
            waitlist=format_text(waitlist),
            add_fees=to_float(format_currency(fees)),
            rpt_limit=to_int(format_prop(rpt)),
            source_id=self.source_id,
        )

    def _build_entry(self, fields: Sequence[str]) -> ScheduleEntry:
        assert self._section is not None
        kind, days, time, start, end, room, instructor = fields
        s = self._section
        return ScheduleEntry(
            subject=s.subject,
            course_number=s.course_number,
            year=s.year,
            term=s.term,
            crn=s.crn,
            schedule_index=len(self._schedule),
            type=kind.strip(),
            days=days.strip(),
            time=time.strip(),
            start=format_date(start, self.year),
            end=format_date(end, self.year),
            room=room.strip(),
            instructor=instructor.strip(),
            source_id=self.source_id,
        )

    # -- states --------------------------------------------------------------

    def _scan_for_header(self) -> State:
        if self._at_end():
            return State.END_OF_STREAM

        token = self.tokens[self.pos]

        m = CLASS_NOTE_RE.match(token)
        if m:
            self.pending_note = PendingNote(course=m.group(1), text=m.group(2).strip())
            self.pos += 1
            return State.SCANNING_FOR_HEADER

        if is_header_at(self.tokens, self.pos):
            self._resyncing = False
            return State.EMITTING_SECTION

        remaining = len(self.tokens) - self.pos
        if remaining < HEADER_WIDTH - 1 and looks_like_header_start(self.tokens, self.pos):
            self._report("truncated_header", f"Stream ends inside a header group ({token!r})")
            return State.END_OF_STREAM

        # blank cells are padding; anything else is a broken header
        if not is_blank(token) and not self._resyncing:
            self._report("malformed_header", f"No well-formed header at {token!r}, resyncing")
            self._resyncing = True

        self.pos += 1
        return State.SCANNING_FOR_HEADER

    def _emit_section(self) -> State:
        start = self.pos
        width = header_width(self.tokens, start)

        section = self._build_section(self.tokens[start:start + HEADER_WIDTH - 1])
        self._apply_pending_note(section)
        self._open_section(section)
        self.pos = start + width

        if width < HEADER_WIDTH:
            self._report(
                "shift_corrected",
                f"Header of {self._describe()} is missing its marker slot, rewinding one token",
                level=logging.INFO,
            )
            # the rewound token starts the next record, never a schedule group
            self._close_section()
            return State.SCANNING_FOR_HEADER

        return State.EMITTING_SCHEDULE_BLOCK

    def _emit_schedule_block(self) -> State:
        if self._at_end():
            return State.END_OF_STREAM

        token = self.tokens[self.pos]
        if not is_schedule_type(token):
            self._report(
                "unknown_schedule_type",
                f"Unexpected meeting type {token!r} in {self._describe()}",
            )
            self._abandon_section()
            return State.SCANNING_FOR_HEADER

        if self.pos + SCHEDULE_WIDTH > len(self.tokens):
            self._report("truncated_schedule", f"Stream ends inside a schedule group of {self._describe()}")
            return State.END_OF_STREAM

        entry = self._build_entry(self.tokens[self.pos:self.pos + SCHEDULE_WIDTH])
        self._schedule.append(entry)
        self.pos += SCHEDULE_WIDTH
        return State.RESOLVING_GAP

    def _resolve_gap(self) -> State:
        if self._at_end():
            return State.END_OF_STREAM

        run = 0
        while is_blank(self.tokens[self.pos + run]):
            run += 1

        gap = classify_gap(run)

        if gap is Gap.NEXT_SECTION:
            # the blanks are the leading empty cells of the next header
            self._close_section()
            return State.SCANNING_FOR_HEADER

        if gap is Gap.UNEXPECTED:
            # the run may end in blank leading cells of the next header
            self._report("unexpected_gap", f"Run of {run} blank cells after {self._describe()}")
            self._abandon_section()
            return State.SCANNING_FOR_HEADER

        self.pos += run

        if gap is Gap.NOTE:
            self._attach_note(self.tokens[self.pos])
            self.pos += 1
            self._close_section()
            return State.SCANNING_FOR_HEADER

        return State.EMITTING_SCHEDULE_BLOCK


def reconstruct(
    tokens: Sequence[str],
    year: int,
    term: int,
    source_id: Optional[str] = None,
) -> Tuple[List[Tuple[Section, List[ScheduleEntry]]], List[Diagnostic]]:
    """
    Rebuild (Section, [ScheduleEntry]) pairs from a flat token list.
    """
    return Reconstructor(tokens, year, term, source_id).run()


# ---------------------------------------------------------------------------
# Page parsing
# ---------------------------------------------------------------------------


def decode_page(
    html: str,
    source_id: Optional[str] = None,
    term_identifier: Optional[str] = None,
) -> DecodeResult:
    """
    Decode one semester search page.

    Never raises for irregular pages: a missing table or an unknown term
    gives an empty result with a diagnostic, and a broken section only
    loses its own remaining rows.
    """
    soup = BeautifulSoup(html, "html.parser")
    result = DecodeResult(year=None, term=None, source_id=source_id)

    try:
        year, term = resolve_term(soup)
    except TermResolutionError as e:
        log.warning("Skipping page %s: %s", source_id, e)
        result.diagnostics.append(Diagnostic(kind="term_unresolved", position=0, message=str(e)))
        return result

    result.year, result.term = year, term

    if term_identifier:
        try:
            expected: Optional[Tuple[int, int]] = parse_term_identifier(term_identifier)
        except TermResolutionError:
            log.debug("Term identifier %r is not a Banner term, not checking it", term_identifier)
            expected = None
        if expected is not None and expected != (year, term):
            message = f"Page heading says {year}/{term} but it was fetched for {term_identifier}"
            log.warning(message)
            result.diagnostics.append(Diagnostic(kind="term_mismatch", position=0, message=message))

    tokens = extract_tokens(soup)
    if tokens is None:
        log.warning("No course table found in page %s", source_id)
        result.diagnostics.append(Diagnostic(kind="no_table", position=0, message="No course table found"))
        return result

    records, diagnostics = reconstruct(tokens, year, term, source_id)
    result.records = records
    result.diagnostics.extend(diagnostics)

    log.debug(
        "Decoded %s: %d tokens, %d sections, %d diagnostics",
        source_id, len(tokens), len(records), len(diagnostics),
    )
    return result


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_all(
    raw_dir: Path = RAW_DIR,
    db_path: Optional[Path] = None,
) -> List[Dict[str, object]]:
    """
    Decode every cached page and upsert the records into the database.

    Each file's stem (e.g. "202410") is used both as the term identifier and
    as the source id of its records. Returns one summary dict per page.
    """
    raw_path = raw_dir.resolve()
    files = sorted(raw_path.glob("*.html"))
    log.info("RAW_DIR: %s (%d pages)", raw_path, len(files))

    summaries: List[Dict[str, object]] = []
    conn = init_db(db_path)
    try:
        for html_file in files:
            source_id = html_file.stem
            html = html_file.read_text(encoding="utf-8", errors="replace")

            result = decode_page(html, source_id=source_id, term_identifier=source_id)

            saved = False
            if result.ok:
                saved = save_result(conn, result)

            summaries.append(
                {
                    "source_id": source_id,
                    "year": result.year,
                    "term": result.term,
                    "sections": len(result.records),
                    "schedule_entries": len(result.schedule_entries),
                    "diagnostics": len(result.diagnostics),
                    "saved": saved,
                }
            )
    finally:
        conn.close()

    return summaries


# ---------------------------------------------------------------------------
# CLI connection
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="coursesys.parse",
        description="Parse cached semester search pages into the database",
    )
    p.add_argument("--raw-dir", type=Path, default=RAW_DIR)
    p.add_argument("--db", type=Path, default=None, help="sqlite database path")
    return p


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging()

    for summary in parse_all(raw_dir=args.raw_dir, db_path=args.db):
        print(
            f"{summary['source_id']}: {summary['sections']} sections, "
            f"{summary['schedule_entries']} schedule entries, "
            f"{summary['diagnostics']} diagnostics"
        )


if __name__ == "__main__":
    main()
