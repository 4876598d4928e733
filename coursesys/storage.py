"""
Persistent storage for decoded sections and schedule entries.

This module manages the sqlite database:

    data/processed/coursesys.sqlite

Every record is upserted on its natural key, so parsing the same page again
leaves the database exactly as it was. One page is written in one
transaction: either all of its rows land or none do.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import List, Optional

from coursesys.model import DecodeResult, ScheduleEntry, Section, SectionKey


log = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS sections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_id TEXT,
    subject TEXT NOT NULL,
    course_number TEXT NOT NULL,
    year INTEGER NOT NULL,
    term INTEGER NOT NULL,
    crn INTEGER NOT NULL,
    section TEXT,
    credits REAL NOT NULL,
    abbreviated_title TEXT,
    rp TEXT,
    seats TEXT,
    waitlist TEXT,
    add_fees REAL,
    rpt_limit INTEGER,
    notes TEXT,
    UNIQUE(subject, course_number, year, term, crn)
);

CREATE INDEX IF NOT EXISTS idx_sections_subject ON sections(subject);
CREATE INDEX IF NOT EXISTS idx_sections_year_term ON sections(year, term);
CREATE INDEX IF NOT EXISTS idx_sections_crn ON sections(crn);

CREATE TABLE IF NOT EXISTS schedule_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source_id TEXT,
    subject TEXT NOT NULL,
    course_number TEXT NOT NULL,
    year INTEGER NOT NULL,
    term INTEGER NOT NULL,
    crn INTEGER NOT NULL,
    schedule_index INTEGER NOT NULL,
    type TEXT NOT NULL,
    days TEXT NOT NULL,
    time TEXT NOT NULL,
    start_date TEXT,
    end_date TEXT,
    room TEXT NOT NULL,
    instructor TEXT NOT NULL,
    UNIQUE(subject, course_number, year, term, crn, schedule_index)
);

CREATE INDEX IF NOT EXISTS idx_schedule_crn ON schedule_entries(crn);
CREATE INDEX IF NOT EXISTS idx_schedule_year_term ON schedule_entries(year, term);
"""

_UPSERT_SECTION = """
INSERT INTO sections (
    source_id, subject, course_number, year, term, crn, section, credits,
    abbreviated_title, rp, seats, waitlist, add_fees, rpt_limit, notes
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(subject, course_number, year, term, crn) DO UPDATE SET
    source_id = excluded.source_id,
    section = excluded.section,
    credits = excluded.credits,
    abbreviated_title = excluded.abbreviated_title,
    rp = excluded.rp,
    seats = excluded.seats,
    waitlist = excluded.waitlist,
    add_fees = excluded.add_fees,
    rpt_limit = excluded.rpt_limit,
    notes = excluded.notes
"""

_UPSERT_SCHEDULE = """
INSERT INTO schedule_entries (
    source_id, subject, course_number, year, term, crn, schedule_index,
    type, days, time, start_date, end_date, room, instructor
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(subject, course_number, year, term, crn, schedule_index) DO UPDATE SET
    source_id = excluded.source_id,
    type = excluded.type,
    days = excluded.days,
    time = excluded.time,
    start_date = excluded.start_date,
    end_date = excluded.end_date,
    room = excluded.room,
    instructor = excluded.instructor
"""

_DELETE_STALE_SCHEDULE = """
DELETE FROM schedule_entries
WHERE subject = ? AND course_number = ? AND year = ? AND term = ? AND crn = ?
  AND schedule_index >= ?
"""

_KEY_WHERE = "subject = ? AND course_number = ? AND year = ? AND term = ? AND crn = ?"


def _default_db_path() -> Path:
    """
    Return the default database path inside the package data folder.

    Tests pass their own path instead.
    """
    base_dir = Path(__file__).resolve().parent
    return base_dir / "data" / "processed" / "coursesys.sqlite"


def init_db(path: str | Path | None = None) -> sqlite3.Connection:
    """
    Open (and create if needed) the database and make sure the schema exists.
    """
    if path is not None and str(path) == ":memory:":
        conn = sqlite3.connect(":memory:")
    else:
        db_path = Path(path) if path is not None else _default_db_path()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(db_path))

    conn.row_factory = sqlite3.Row
    conn.executescript(SCHEMA)
    conn.commit()
    return conn


def _section_row(s: Section) -> tuple:
    return (
        s.source_id, s.subject, s.course_number, s.year, s.term, s.crn, s.section, s.credits,
        s.abbreviated_title, s.rp, s.seats, s.waitlist, s.add_fees, s.rpt_limit, s.notes,
    )


def _schedule_row(e: ScheduleEntry) -> tuple:
    return (
        e.source_id, e.subject, e.course_number, e.year, e.term, e.crn, e.schedule_index,
        e.type, e.days, e.time, e.start, e.end, e.room, e.instructor,
    )


def save_result(conn: sqlite3.Connection, result: DecodeResult) -> bool:
    """
    Upsert all records of one decoded page in a single transaction.

    Returns False (and rolls back) when the write fails; the page is then
    left untouched in the database.
    """
    try:
        with conn:
            for section, entries in result.records:
                conn.execute(_UPSERT_SECTION, _section_row(section))
                conn.executemany(_UPSERT_SCHEDULE, [_schedule_row(e) for e in entries])
                # a re-parsed section may have fewer rows than last time
                conn.execute(_DELETE_STALE_SCHEDULE, (*section.key, len(entries)))
    except sqlite3.Error:
        log.exception("Saving page %s failed, rolled back", result.source_id)
        return False

    log.info(
        "Saved %s: %d sections, %d schedule entries",
        result.source_id, len(result.records), len(result.schedule_entries),
    )
    return True


def load_sections(
    conn: sqlite3.Connection,
    subject: Optional[str] = None,
    course_number: Optional[str] = None,
    year: Optional[int] = None,
    term: Optional[int] = None,
) -> List[Section]:
    """
    Read sections back, optionally filtered, ordered by course and CRN.
    """
    clauses: List[str] = []
    params: List[object] = []
    for column, value in (
        ("subject", subject),
        ("course_number", course_number),
        ("year", year),
        ("term", term),
    ):
        if value is not None:
            clauses.append(f"{column} = ?")
            params.append(value)

    sql = "SELECT * FROM sections"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    sql += " ORDER BY year, term, subject, course_number, crn"

    out: List[Section] = []
    for row in conn.execute(sql, params):
        out.append(
            Section(
                subject=row["subject"],
                course_number=row["course_number"],
                year=row["year"],
                term=row["term"],
                crn=row["crn"],
                section=row["section"],
                credits=row["credits"],
                abbreviated_title=row["abbreviated_title"],
                rp=row["rp"],
                seats=row["seats"],
                waitlist=row["waitlist"],
                add_fees=row["add_fees"],
                rpt_limit=row["rpt_limit"],
                notes=row["notes"],
                source_id=row["source_id"],
            )
        )
    return out


def load_schedule(conn: sqlite3.Connection, key: SectionKey) -> List[ScheduleEntry]:
    """
    Read the schedule entries of one section, in schedule_index order.
    """
    rows = conn.execute(
        f"SELECT * FROM schedule_entries WHERE {_KEY_WHERE} ORDER BY schedule_index",
        key,
    )
    return [
        ScheduleEntry(
            subject=row["subject"],
            course_number=row["course_number"],
            year=row["year"],
            term=row["term"],
            crn=row["crn"],
            schedule_index=row["schedule_index"],
            type=row["type"],
            days=row["days"],
            time=row["time"],
            start=row["start_date"],
            end=row["end_date"],
            room=row["room"],
            instructor=row["instructor"],
            source_id=row["source_id"],
        )
        for row in rows
    ]


def count_rows(conn: sqlite3.Connection) -> tuple[int, int]:
    """
    Return (sections, schedule_entries) row counts.
    """
    sections = conn.execute("SELECT COUNT(*) FROM sections").fetchone()[0]
    entries = conn.execute("SELECT COUNT(*) FROM schedule_entries").fetchone()[0]
    return sections, entries
