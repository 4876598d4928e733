"""
CLI (Command Line Interface).

This module provides the terminal commands of the pipeline, e.g.:

    coursesys scrape --term 202410
    coursesys parse
    coursesys sections CPSC 1150
    coursesys decode data/raw/202410.html

Note:
- scraping only caches raw pages, parsing decodes them into the database
- `decode` is a dry run: it prints what a page decodes to without saving
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

import requests
from rich.console import Console
from rich.table import Table

from coursesys.extract import TermResolutionError, term_code
from coursesys.logs import setup_logging
from coursesys.parse import RAW_DIR, decode_page, parse_all
from coursesys.scrape import ScrapeError, scrape_term
from coursesys.storage import init_db, load_schedule, load_sections


log = logging.getLogger(__name__)

console = Console()

TERM_NAMES = {10: "Spring", 20: "Summer", 30: "Fall"}


def _cmd_scrape(args: argparse.Namespace) -> int:
    """
    Fetch and cache the search page of each requested term.
    """
    status = 0
    for term in args.term:
        term = term.strip()
        try:
            path = scrape_term(term, refresh=args.refresh, raw_dir=args.raw_dir)
        except (requests.RequestException, ScrapeError) as e:
            log.error("Fetching %s failed: %s", term, e)
            status = 1
            continue
        print(f"{term} -> {path}")
    return status


def _cmd_parse(args: argparse.Namespace) -> int:
    """
    Decode every cached page into the database.
    """
    summaries = parse_all(raw_dir=args.raw_dir, db_path=args.db)
    if not summaries:
        print("No cached pages found.")
        return 0

    failed = 0
    for s in summaries:
        state = "saved" if s["saved"] else "SKIPPED"
        print(
            f"{s['source_id']}: {s['sections']} sections, {s['schedule_entries']} schedule entries, "
            f"{s['diagnostics']} diagnostics ({state})"
        )
        if not s["saved"]:
            failed += 1

    return 1 if failed == len(summaries) else 0


def _parse_term_filter(text: str | None) -> tuple[int | None, int | None]:
    """
    "2024" -> (2024, None), "2024 Fall" / "202430" -> (2024, 30).
    """
    if not text:
        return None, None
    raw = text.strip()
    if raw.isdigit() and len(raw) == 6:
        return int(raw[:4]), int(raw[4:])
    if raw.isdigit():
        return int(raw), None
    year_part, _, season = raw.partition(" ")
    return int(year_part), term_code(season)


def _cmd_sections(args: argparse.Namespace) -> int:
    """
    Print the stored sections (and their meeting times) of a subject or course.
    """
    subject = (args.subject or "").strip().upper()
    if not subject:
        print("Please provide a subject.")
        return 1

    try:
        year, term = _parse_term_filter(args.term)
    except (ValueError, TermResolutionError):
        print(f"Invalid term filter: {args.term!r}")
        return 1

    conn = init_db(args.db)
    try:
        sections = load_sections(conn, subject=subject, course_number=args.course, year=year, term=term)
        if not sections:
            print("No results.")
            return 0

        table = Table(title=f"{subject} {args.course or ''}".strip())
        for col in ("Term", "Course", "Sec", "CRN", "Cr", "Title", "Seats", "Type", "Days", "Time", "Room", "Instructor"):
            table.add_column(col)

        for s in sections:
            entries = load_schedule(conn, s.key)
            term_label = f"{s.year} {TERM_NAMES.get(s.term, s.term)}"
            first = True
            for e in entries or [None]:
                table.add_row(
                    term_label if first else "",
                    s.course if first else "",
                    (s.section or "") if first else "",
                    str(s.crn) if first else "",
                    f"{s.credits:g}" if first else "",
                    (s.abbreviated_title or "") if first else "",
                    (s.seats or "") if first else "",
                    e.type if e else "",
                    e.days if e else "",
                    e.time if e else "",
                    e.room if e else "",
                    e.instructor if e else "",
                )
                first = False
        console.print(table)
    finally:
        conn.close()

    return 0


def _cmd_decode(args: argparse.Namespace) -> int:
    """
    Decode a single page and show what it contains, without touching the database.
    """
    path = Path(args.file)
    try:
        html = path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        print(f"Cannot read {path}: {e}")
        return 1

    result = decode_page(html, source_id=path.stem, term_identifier=path.stem)
    if not result.ok:
        for d in result.diagnostics:
            print(f"{d.kind}: {d.message}")
        return 1

    print(f"{result.year} {TERM_NAMES.get(result.term, result.term)}: "
          f"{len(result.records)} sections, {len(result.schedule_entries)} schedule entries")

    if result.diagnostics:
        print(f"Diagnostics: {len(result.diagnostics)}")
        for d in result.diagnostics:
            print(f"- [{d.kind}] token {d.position}: {d.message}")

    return 0


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="coursesys", description="Course search page scraper and decoder")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_scrape = sub.add_parser("scrape", help="Fetch and cache semester search pages")
    p_scrape.add_argument("--term", "-t", type=str, action="append", required=True, help="Term code (e.g. 202410)")
    p_scrape.add_argument("--refresh", action="store_true", help="Re-fetch and overwrite cached pages")
    p_scrape.add_argument("--raw-dir", type=Path, default=RAW_DIR)

    p_parse = sub.add_parser("parse", help="Decode cached pages into the database")
    p_parse.add_argument("--raw-dir", type=Path, default=RAW_DIR)
    p_parse.add_argument("--db", type=Path, default=None, help="sqlite database path")

    p_sections = sub.add_parser("sections", help="Show stored sections of a subject or course")
    p_sections.add_argument("subject", type=str, help="Subject code (e.g. CPSC)")
    p_sections.add_argument("course", type=str, nargs="?", default=None, help="Course number (e.g. 1150)")
    p_sections.add_argument("--term", type=str, default=None, help="Year, '2024 Fall' or 202430")
    p_sections.add_argument("--db", type=Path, default=None, help="sqlite database path")

    p_decode = sub.add_parser("decode", help="Decode one page without saving it")
    p_decode.add_argument("file", type=str, help="Path to a cached search page")

    return parser


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if args.command == "scrape":
        raise SystemExit(_cmd_scrape(args))
    if args.command == "parse":
        raise SystemExit(_cmd_parse(args))
    if args.command == "sections":
        raise SystemExit(_cmd_sections(args))
    if args.command == "decode":
        raise SystemExit(_cmd_decode(args))

    raise SystemExit(2)
