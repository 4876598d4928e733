"""
Unit tests for the sqlite storage layer.

Storage contract:
- records are upserted on their natural keys
- saving the same page twice leaves the database unchanged
- a re-parsed section that lost schedule rows loses them in the database too
- a failed write reports False instead of raising
"""

import dataclasses
import tempfile
import unittest
from pathlib import Path

from coursesys.parse import decode_page
from coursesys.storage import count_rows, init_db, load_schedule, load_sections, save_result

from sample_page import build_page


class TestStorage(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = Path(self._tmp.name) / "data" / "coursesys.sqlite"
        self.conn = init_db(self.db_path)

    def tearDown(self) -> None:
        self.conn.close()
        self._tmp.cleanup()

    def test_init_creates_parent_dirs(self) -> None:
        self.assertTrue(self.db_path.exists())
        self.assertEqual(count_rows(self.conn), (0, 0))

    def test_save_and_load_roundtrip(self) -> None:
        result = decode_page(build_page(), source_id="202410")
        self.assertTrue(save_result(self.conn, result))
        self.assertEqual(count_rows(self.conn), (3, 4))

        sections = load_sections(self.conn, subject="CPSC", course_number="1150")
        self.assertEqual([s.crn for s in sections], [10234, 10235])
        self.assertEqual(sections[0], result.records[0][0])

        entries = load_schedule(self.conn, sections[0].key)
        self.assertEqual(entries, result.records[0][1])

    def test_filters(self) -> None:
        save_result(self.conn, decode_page(build_page(), source_id="202410"))
        self.assertEqual(len(load_sections(self.conn, year=2024, term=10)), 3)
        self.assertEqual(len(load_sections(self.conn, term=30)), 0)
        self.assertEqual([s.crn for s in load_sections(self.conn, subject="MATH")], [20001])

    def test_saving_twice_is_idempotent(self) -> None:
        first = decode_page(build_page(), source_id="202410")
        second = decode_page(build_page(), source_id="202410")

        self.assertTrue(save_result(self.conn, first))
        before = [tuple(r) for r in self.conn.execute("SELECT * FROM schedule_entries ORDER BY id")]

        self.assertTrue(save_result(self.conn, second))
        after = [tuple(r) for r in self.conn.execute("SELECT * FROM schedule_entries ORDER BY id")]

        self.assertEqual(count_rows(self.conn), (3, 4))
        self.assertEqual(before, after)

    def test_upsert_updates_and_drops_stale_rows(self) -> None:
        result = decode_page(build_page(), source_id="202410")
        save_result(self.conn, result)

        section, entries = result.records[0]
        changed = dataclasses.replace(section, seats="0", notes=None, source_id="202410-b")
        result.records[0] = (changed, entries[:1])
        self.assertTrue(save_result(self.conn, result))

        stored = load_sections(self.conn, subject="CPSC", course_number="1150")[0]
        self.assertEqual(stored.seats, "0")
        self.assertIsNone(stored.notes)
        self.assertEqual(stored.source_id, "202410-b")
        self.assertEqual([e.schedule_index for e in load_schedule(self.conn, section.key)], [0])
        self.assertEqual(count_rows(self.conn), (3, 3))

    def test_failed_save_returns_false(self) -> None:
        result = decode_page(build_page(), source_id="202410")
        self.conn.close()
        self.assertFalse(save_result(self.conn, result))
        self.conn = init_db(self.db_path)
        self.assertEqual(count_rows(self.conn), (0, 0))


if __name__ == "__main__":
    unittest.main()
