from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List

import requests
from bs4 import BeautifulSoup

from coursesys.logs import setup_logging


log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Paths & URLs
# ---------------------------------------------------------------------------

PACKAGE_DIR = Path(__file__).resolve().parent
RAW_DIR = PACKAGE_DIR / "data" / "raw"

BASE_URL = "https://swing.langara.bc.ca/prod"
SUBJECTS_URL = f"{BASE_URL}/hzgkfcls.P_Sel_Crse_Search"
SEARCH_URL = f"{BASE_URL}/hzgkfcls.P_GetCrse"

TIMEOUT = 60


class ScrapeError(RuntimeError):
    """Raised when the search form does not look like we expect."""


# ---------------------------------------------------------------------------
# Core logic
# ---------------------------------------------------------------------------


def fetch_subjects(term: str, session: requests.Session | None = None) -> List[str]:
    """
    Load the search form for a term and return the subject codes it offers.

    Returns:
        ["ABST", "ANTH", "APPL", ...]
    """
    http = session or requests.Session()
    resp = http.post(SUBJECTS_URL, params={"term": term}, timeout=TIMEOUT)
    resp.raise_for_status()

    soup = BeautifulSoup(resp.text, "html.parser")
    select = soup.select_one("select#subj_id")
    if select is None:
        raise ScrapeError(f"Could not find subject select element for term {term}")

    subjects = [opt.get("value", "").strip() for opt in select.find_all("option")]
    subjects = [s for s in subjects if s]
    if not subjects:
        raise ScrapeError(f"No subjects found for term {term}")

    return subjects


def _search_form(term: str, subjects: List[str]) -> List[tuple[str, str]]:
    # Banner expects a "dummy" entry in front of every multi-select
    form: List[tuple[str, str]] = [("term_in", term)]
    for name in (
        "sel_subj", "sel_day", "sel_schd", "sel_insm", "sel_camp", "sel_levl",
        "sel_sess", "sel_instr", "sel_ptrm", "sel_attr", "sel_dept",
    ):
        form.append((name, "dummy"))

    form.extend(("sel_subj", s) for s in subjects)

    form.extend(
        [
            ("sel_crse", ""),
            ("sel_title", "%"),
            ("sel_dept", "%"),
            ("begin_hh", "0"),
            ("begin_mi", "0"),
            ("begin_ap", "a"),
            ("end_hh", "0"),
            ("end_mi", "0"),
            ("end_ap", "a"),
            ("sel_incl_restr", "Y"),
            ("sel_incl_preq", "Y"),
            ("SUB_BTN", "Get Courses"),
        ]
    )
    return form


def fetch_semester_search(term: str, session: requests.Session | None = None) -> str:
    """
    Fetch the full semester search page (all subjects) for a term like "202410".
    """
    http = session or requests.Session()
    subjects = fetch_subjects(term, session=http)
    log.info("Term %s: %d subjects", term, len(subjects))

    resp = http.post(SEARCH_URL, data=_search_form(term, subjects), timeout=TIMEOUT)
    resp.raise_for_status()
    return resp.text


def scrape_term(
    term: str,
    refresh: bool = False,
    raw_dir: Path = RAW_DIR,
) -> Path:
    """
    Fetch one term's search page and cache it as data/raw/<term>.html.
    """
    raw_dir.mkdir(parents=True, exist_ok=True)
    out_file = raw_dir / f"{term}.html"

    if out_file.exists() and not refresh:
        log.info("SKIP  %s (cached)", term)
        return out_file

    log.info("FETCH %s", term)
    html = fetch_semester_search(term)
    out_file.write_text(html, encoding="utf-8")
    return out_file


# ---------------------------------------------------------------------------
# CLI entry
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="coursesys.scrape", description="Fetch semester search pages (cache HTML)")
    p.add_argument("--term", "-t", type=str, action="append", required=True, help="Term code (e.g., 202410)")
    p.add_argument("--refresh", action="store_true", help="Re-fetch and overwrite existing HTML files")
    p.add_argument("--raw-dir", type=Path, default=RAW_DIR)
    return p


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging()
    for term in args.term:
        scrape_term(term.strip(), refresh=args.refresh, raw_dir=args.raw_dir)


if __name__ == "__main__":
    main()
