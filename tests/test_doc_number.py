import unittest
from datetime import date

from inventaris.domain.doc_number import (
    doc_number_preview,
    format_doc_number,
    month_to_roman,
    parse_doc_number,
    roman_to_month,
)
from inventaris.errors import InvalidMonthError


class DocNumberFormatTest(unittest.TestCase):
    def test_first_request_of_march(self) -> None:
        self.assertEqual(format_doc_number(1, "MLD", 3, 2026), "REQ/0001/MLD/III/2026")

    def test_department_code_is_kept_verbatim(self) -> None:
        self.assertEqual(format_doc_number(12, "Assembly", 12, 2025), "REQ/0012/Assembly/XII/2025")

    def test_sequence_wider_than_four_digits_is_not_truncated(self) -> None:
        self.assertEqual(format_doc_number(12345, "QC", 1, 2026), "REQ/12345/QC/I/2026")

    def test_invalid_month_raises(self) -> None:
        for month in (0, 13, -1):
            with self.assertRaises(InvalidMonthError):
                format_doc_number(1, "MLD", month, 2026)
        with self.assertRaises(InvalidMonthError):
            month_to_roman("3")

    def test_non_positive_sequence_and_bad_department_are_refused(self) -> None:
        with self.assertRaises(ValueError):
            format_doc_number(0, "MLD", 3, 2026)
        with self.assertRaises(ValueError):
            format_doc_number(1, "ML/D", 3, 2026)
        with self.assertRaises(ValueError):
            format_doc_number(1, "", 3, 2026)

    def test_preview_uses_given_date(self) -> None:
        self.assertEqual(doc_number_preview("PLA", date(2026, 11, 2)), "REQ/0001/PLA/XI/2026")


class DocNumberParseTest(unittest.TestCase):
    def test_parse_inverts_format_across_months_and_departments(self) -> None:
        for sequence, dept, month, year in ((1, "MLD", 1, 2026), (9999, "PPIC", 12, 1000), (42, "QA", 9, 9999)):
            parts = parse_doc_number(format_doc_number(sequence, dept, month, year))
            self.assertIsNotNone(parts)
            self.assertEqual((parts.sequence, parts.dept_code, parts.month, parts.year), (sequence, dept, month, year))

    def test_malformed_values_return_none(self) -> None:
        for value in (
            "",
            None,
            "REQ/001/MLD/III/2026",
            "REQ/0001/MLD/XIII/2026",
            "REQ/0001/MLD/iii/2026",
            "REQ/0000/MLD/III/2026",
            "PO/0001/MLD/III/2026",
            "REQ/0001/MLD/III/26",
            "REQ/0001//III/2026",
        ):
            self.assertIsNone(parse_doc_number(value), msg=value)

    def test_roman_lookup(self) -> None:
        self.assertEqual(roman_to_month("IX"), 9)
        self.assertIsNone(roman_to_month("IIII"))


if __name__ == "__main__":
    unittest.main()
