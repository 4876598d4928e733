"""
Tests for the section/schedule reconstructor.

Tokens are written out by hand here, the way extract_tokens would produce
them: 12 header cells, then 7-cell schedule groups, with runs of blank
cells deciding what comes next.
"""

import unittest

from coursesys.parse import (
    CONTINUATION_GAP,
    HEADER_WIDTH,
    NOTE_GAP,
    Gap,
    classify_gap,
    header_width,
    reconstruct,
)


HEADER = ["R", "12", "3", "10234", "CPSC", "1150", "001", "3", "Data Structures", "$5.00", "2", ""]
HEADER_2 = ["P", "20", "", "10235", "CPSC", "1150", "002", "3", "Data Structures", "", "", ""]
HEADER_MATH = ["", "30", "", "20001", "MATH", "1171", "001", "5", "Calculus I", "", "", ""]

LECTURE = ["Lecture", "M-W----", "1030-1220", "11-Apr-23", "20-Jul-23", "A322", "Jane Doe"]
LAB = ["Lab", "--W----", "1430-1620", "11-Apr-23", "20-Jul-23", "B019", "Jane Doe"]
WEBINAR = ["Webinar", "M------", "1030-1220", "11-Apr-23", "20-Jul-23", "WWW", "Jane Doe"]


def kinds(diagnostics):
    return [d.kind for d in diagnostics]


class TestClassifyGap(unittest.TestCase):
    def test_thresholds_are_exact(self) -> None:
        expected = {
            0: Gap.NEXT_SECTION,
            4: Gap.NEXT_SECTION,
            5: Gap.NEXT_SECTION,
            6: Gap.UNEXPECTED,
            8: Gap.UNEXPECTED,
            9: Gap.NOTE,
            10: Gap.UNEXPECTED,
            11: Gap.UNEXPECTED,
            12: Gap.CONTINUATION,
            13: Gap.UNEXPECTED,
        }
        for run, gap in expected.items():
            with self.subTest(run=run):
                self.assertEqual(classify_gap(run), gap)


class TestHeaderWidth(unittest.TestCase):
    def test_blank_marker_slot(self) -> None:
        self.assertEqual(header_width(HEADER + LECTURE, 0), HEADER_WIDTH)

    def test_integer_in_marker_slot_shortens_header(self) -> None:
        tokens = HEADER[:11] + ["1"] + HEADER_2[1:]
        self.assertEqual(header_width(tokens, 0), HEADER_WIDTH - 1)

    def test_text_in_marker_slot(self) -> None:
        tokens = HEADER[:11] + ["Y"] + LECTURE
        self.assertEqual(header_width(tokens, 0), HEADER_WIDTH)


class TestSingleSection(unittest.TestCase):
    def test_header_and_one_lecture(self) -> None:
        records, diagnostics = reconstruct(HEADER + LECTURE, 2023, 20, source_id="202320")

        self.assertEqual(diagnostics, [])
        self.assertEqual(len(records), 1)

        section, entries = records[0]
        self.assertEqual(section.crn, 10234)
        self.assertEqual(section.subject, "CPSC")
        self.assertEqual(section.course_number, "1150")
        self.assertEqual(section.section, "001")
        self.assertEqual(section.credits, 3.0)
        self.assertEqual(section.add_fees, 5.0)
        self.assertEqual(section.rpt_limit, 2)
        self.assertEqual(section.rp, "R")
        self.assertEqual(section.seats, "12")
        self.assertEqual(section.waitlist, "3")
        self.assertEqual(section.abbreviated_title, "Data Structures")
        self.assertIsNone(section.notes)
        self.assertEqual(section.key, ("CPSC", "1150", 2023, 20, 10234))
        self.assertEqual(section.source_id, "202320")

        self.assertEqual(len(entries), 1)
        entry = entries[0]
        self.assertEqual(entry.schedule_index, 0)
        self.assertEqual(entry.type, "Lecture")
        self.assertEqual(entry.days, "M-W----")
        self.assertEqual(entry.time, "1030-1220")
        self.assertEqual(entry.start, "2023-04-11")
        self.assertEqual(entry.end, "2023-07-20")
        self.assertEqual(entry.room, "A322")
        self.assertEqual(entry.instructor, "Jane Doe")
        self.assertEqual(entry.section_key, section.key)

    def test_header_without_schedule(self) -> None:
        records, diagnostics = reconstruct(HEADER + ["", ""], 2023, 20)
        self.assertEqual(diagnostics, [])
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0][1], [])

    def test_empty_stream(self) -> None:
        self.assertEqual(reconstruct([], 2023, 20), ([], []))
        self.assertEqual(reconstruct(["", "", ""], 2023, 20), ([], []))


class TestGapResolution(unittest.TestCase):
    def test_short_runs_start_next_section(self) -> None:
        for run in (0, 4, 5):
            with self.subTest(run=run):
                tokens = HEADER + LECTURE + [""] * run + HEADER_2 + LECTURE
                records, diagnostics = reconstruct(tokens, 2023, 20)
                self.assertEqual(diagnostics, [])
                self.assertEqual([s.crn for s, _ in records], [10234, 10235])
                self.assertEqual([len(e) for _, e in records], [1, 1])

    def test_leading_blank_header_cells_are_part_of_next_section(self) -> None:
        # the blank run is the empty RP cell of the next header
        tokens = HEADER + LECTURE + HEADER_MATH + LECTURE
        records, diagnostics = reconstruct(tokens, 2023, 20)
        self.assertEqual(diagnostics, [])
        self.assertEqual([s.course for s, _ in records], ["CPSC 1150", "MATH 1171"])
        self.assertIsNone(records[1][0].rp)
        self.assertEqual(records[1][0].seats, "30")

    def test_six_blanks_is_not_padding(self) -> None:
        tokens = HEADER + LECTURE + [""] * 6 + HEADER_2 + LECTURE
        records, diagnostics = reconstruct(tokens, 2023, 20)
        self.assertEqual(kinds(diagnostics), ["unexpected_gap"])
        self.assertEqual([s.crn for s, _ in records], [10234, 10235])
        first, entries = records[0]
        self.assertIsNone(first.notes)
        self.assertEqual(len(entries), 1)

    def test_nine_blanks_is_a_note(self) -> None:
        tokens = HEADER + LECTURE + [""] * NOTE_GAP + ["Bring a calculator."]
        records, diagnostics = reconstruct(tokens, 2023, 20)
        self.assertEqual(diagnostics, [])
        self.assertEqual(records[0][0].notes, "Bring a calculator.")

    def test_note_closes_section(self) -> None:
        tokens = HEADER + LECTURE + [""] * NOTE_GAP + ["Bring a calculator."] + HEADER_2 + LECTURE
        records, diagnostics = reconstruct(tokens, 2023, 20)
        self.assertEqual(diagnostics, [])
        self.assertEqual([s.crn for s, _ in records], [10234, 10235])
        self.assertIsNone(records[1][0].notes)

    def test_eight_and_ten_blanks_are_not_notes(self) -> None:
        for run in (8, 10):
            with self.subTest(run=run):
                tokens = HEADER + LECTURE + [""] * run + ["Bring a calculator."]
                records, diagnostics = reconstruct(tokens, 2023, 20)
                self.assertEqual(kinds(diagnostics), ["unexpected_gap"])
                self.assertEqual(len(records), 1)
                self.assertIsNone(records[0][0].notes)

    def test_twelve_blanks_continue_the_section(self) -> None:
        tokens = HEADER + LECTURE + [""] * CONTINUATION_GAP + LAB
        records, diagnostics = reconstruct(tokens, 2023, 20)
        self.assertEqual(diagnostics, [])
        self.assertEqual(len(records), 1)
        entries = records[0][1]
        self.assertEqual([e.schedule_index for e in entries], [0, 1])
        self.assertEqual([e.type for e in entries], ["Lecture", "Lab"])

    def test_eleven_and_thirteen_blanks_do_not_continue(self) -> None:
        for run in (11, 13):
            with self.subTest(run=run):
                tokens = HEADER + LECTURE + [""] * run + LAB
                records, diagnostics = reconstruct(tokens, 2023, 20)
                self.assertEqual(kinds(diagnostics), ["unexpected_gap"])
                self.assertEqual(len(records), 1)
                self.assertEqual(len(records[0][1]), 1)

    def test_unexpected_gap_keeps_next_section_with_blank_leading_cell(self) -> None:
        # the next header's empty RP cell is part of the blank run
        tokens = HEADER + LECTURE + [""] * 6 + HEADER_MATH + LECTURE
        records, diagnostics = reconstruct(tokens, 2023, 20)
        self.assertEqual(kinds(diagnostics), ["unexpected_gap"])
        self.assertEqual([s.crn for s, _ in records], [10234, 20001])
        self.assertEqual([len(e) for _, e in records], [1, 1])

    def test_long_unexpected_gap_before_next_section(self) -> None:
        tokens = HEADER + LECTURE + [""] * 10 + HEADER_MATH + LECTURE
        records, diagnostics = reconstruct(tokens, 2023, 20)
        self.assertEqual(kinds(diagnostics), ["unexpected_gap"])
        self.assertEqual([s.crn for s, _ in records], [10234, 20001])

    def test_continuation_then_note(self) -> None:
        tokens = (
            HEADER + LECTURE
            + [""] * CONTINUATION_GAP + LAB
            + [""] * NOTE_GAP + ["Lab is in B019."]
            + HEADER_2 + LECTURE
        )
        records, diagnostics = reconstruct(tokens, 2023, 20)
        self.assertEqual(diagnostics, [])
        self.assertEqual(len(records[0][1]), 2)
        self.assertEqual(records[0][0].notes, "Lab is in B019.")
        self.assertEqual(len(records[1][1]), 1)


class TestClassWideNotes(unittest.TestCase):
    def test_note_applies_to_matching_sections(self) -> None:
        tokens = ["CPSC 1150 Lab required."] + HEADER + LECTURE + HEADER_2 + LECTURE
        records, diagnostics = reconstruct(tokens, 2023, 20)
        self.assertEqual(diagnostics, [])
        self.assertEqual([s.notes for s, _ in records], ["Lab required.", "Lab required."])

    def test_trailing_note_comes_first(self) -> None:
        tokens = ["CPSC 1150 Lab required."] + HEADER + LECTURE + [""] * NOTE_GAP + ["Bring a calculator."]
        records, _ = reconstruct(tokens, 2023, 20)
        self.assertEqual(records[0][0].notes, "Bring a calculator. Lab required.")

    def test_note_is_discarded_on_other_course(self) -> None:
        header_3 = ["", "8", "", "10236", "CPSC", "1150", "003", "3", "Data Structures", "", "", ""]
        tokens = (
            ["CPSC 1150 Lab required."]
            + HEADER + LECTURE
            + HEADER_MATH + LECTURE
            + header_3 + LECTURE
        )
        records, diagnostics = reconstruct(tokens, 2023, 20)
        self.assertEqual(diagnostics, [])
        self.assertEqual([s.notes for s, _ in records], ["Lab required.", None, None])


class TestCorruption(unittest.TestCase):
    def test_unknown_meeting_type_keeps_section(self) -> None:
        records, diagnostics = reconstruct(HEADER + WEBINAR, 2023, 20)
        self.assertEqual(kinds(diagnostics), ["unknown_schedule_type"])
        self.assertEqual(len(records), 1)
        section, entries = records[0]
        self.assertEqual(section.crn, 10234)
        self.assertEqual(entries, [])

    def test_unknown_meeting_type_after_valid_rows(self) -> None:
        tokens = HEADER + LECTURE + [""] * CONTINUATION_GAP + WEBINAR + HEADER_2 + LECTURE
        records, diagnostics = reconstruct(tokens, 2023, 20)
        self.assertEqual(kinds(diagnostics), ["unknown_schedule_type"])
        self.assertEqual([s.crn for s, _ in records], [10234, 10235])
        self.assertEqual([len(e) for _, e in records], [1, 1])

    def test_unknown_meeting_type_before_blank_led_section(self) -> None:
        tokens = HEADER + WEBINAR + HEADER_MATH + LECTURE
        records, diagnostics = reconstruct(tokens, 2023, 20)
        self.assertEqual(kinds(diagnostics), ["unknown_schedule_type"])
        self.assertEqual([s.crn for s, _ in records], [10234, 20001])

    def test_shift_correction_recovers_next_section(self) -> None:
        # the marker slot is missing; "1" is the first cell of the next record
        next_record = ["1", "25", "0", "10235", "CPSC", "1150", "002", "3", "Data Structures", "", "", ""]
        tokens = HEADER[:11] + next_record + LECTURE
        records, diagnostics = reconstruct(tokens, 2023, 20)

        self.assertIn("shift_corrected", kinds(diagnostics))
        self.assertEqual(len(records), 2)

        first, first_entries = records[0]
        self.assertEqual(first.crn, 10234)
        self.assertEqual(first.rpt_limit, 2)
        self.assertEqual(first_entries, [])

        second, second_entries = records[1]
        self.assertEqual(second.crn, 10235)
        self.assertEqual(second.section, "002")
        self.assertEqual(second.seats, "25")
        self.assertEqual(len(second_entries), 1)

    def test_malformed_prefix_is_skipped(self) -> None:
        tokens = ["garbage", "more garbage"] + HEADER + LECTURE
        records, diagnostics = reconstruct(tokens, 2023, 20)
        self.assertEqual(kinds(diagnostics), ["malformed_header"])
        self.assertEqual([s.crn for s, _ in records], [10234])

    def test_truncated_schedule_group(self) -> None:
        records, diagnostics = reconstruct(HEADER + ["Lecture", "M-W----"], 2023, 20)
        self.assertEqual(kinds(diagnostics), ["truncated_schedule"])
        self.assertEqual(len(records), 1)
        self.assertEqual(records[0][1], [])

    def test_truncated_header(self) -> None:
        tokens = HEADER + LECTURE + ["R", "12", "3", "10299"]
        records, diagnostics = reconstruct(tokens, 2023, 20)
        self.assertEqual(kinds(diagnostics), ["truncated_header"])
        self.assertEqual([s.crn for s, _ in records], [10234])

    def test_trailing_garbage_is_not_a_truncated_header(self) -> None:
        tokens = HEADER + LECTURE + ["Lecture hall closed"]
        records, diagnostics = reconstruct(tokens, 2023, 20)
        self.assertEqual(kinds(diagnostics), ["malformed_header"])
        self.assertEqual([s.crn for s, _ in records], [10234])

    def test_duplicate_section_is_emitted_once(self) -> None:
        tokens = HEADER + LECTURE + HEADER + LECTURE + [""] * CONTINUATION_GAP + LAB
        records, diagnostics = reconstruct(tokens, 2023, 20)
        self.assertEqual(kinds(diagnostics), ["duplicate_section"])
        self.assertEqual(len(records), 1)
        self.assertEqual(len(records[0][1]), 1)


class TestInvariants(unittest.TestCase):
    TOKENS = (
        ["CPSC 1150 Lab required."]
        + HEADER + LECTURE + [""] * CONTINUATION_GAP + LAB + [""] * CONTINUATION_GAP + LECTURE
        + [""] * NOTE_GAP + ["Bring a calculator."]
        + HEADER_2 + WEBINAR
        + HEADER_MATH + LECTURE + [""] * 7 + ["stray"]
        + HEADER + LECTURE
        + ["", "9", "", "10237", "CPSC", "1150", "004", "3", "Data Structures", "", "", ""]
        + LECTURE + [""] * CONTINUATION_GAP + LAB
    )

    def test_schedule_indices_are_contiguous(self) -> None:
        records, _ = reconstruct(self.TOKENS, 2023, 20)
        for section, entries in records:
            with self.subTest(crn=section.crn):
                self.assertEqual([e.schedule_index for e in entries], list(range(len(entries))))
                for e in entries:
                    self.assertEqual(e.section_key, section.key)

    def test_section_keys_are_unique(self) -> None:
        records, _ = reconstruct(self.TOKENS, 2023, 20)
        keys = [s.key for s, _ in records]
        self.assertEqual(len(keys), len(set(keys)))
        self.assertEqual(
            [s.crn for s, _ in records],
            [10234, 10235, 20001, 10237],
        )

    def test_decoding_is_deterministic(self) -> None:
        self.assertEqual(reconstruct(self.TOKENS, 2023, 20), reconstruct(self.TOKENS, 2023, 20))


if __name__ == "__main__":
    unittest.main()
