"""Request document numbers: ``REQ/{SEQ4}/{DEPT}/{ROMAN_MONTH}/{YEAR}``.

The sequence restarts every year for each department, so two departments
never collide and numbering matches the printed forms already in use.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict

from inventaris.errors import InvalidMonthError


PREFIX = "REQ"

ROMAN_MONTHS: Dict[int, str] = {
    1: "I",
    2: "II",
    3: "III",
    4: "IV",
    5: "V",
    6: "VI",
    7: "VII",
    8: "VIII",
    9: "IX",
    10: "X",
    11: "XI",
    12: "XII",
}
_MONTHS_BY_ROMAN: Dict[str, int] = {roman: month for month, roman in ROMAN_MONTHS.items()}

_DOC_NUMBER_PATTERN = re.compile(
    r"^REQ/(?P<seq>\d{4}|[1-9]\d{4,})/(?P<dept>[^/\s]+)/(?P<month>[IVX]+)/(?P<year>\d{4})$"
)


@dataclass(frozen=True)
class DocNumberParts:
    sequence: int
    dept_code: str
    month: int
    year: int


def month_to_roman(month: int) -> str:
    if not isinstance(month, int) or month not in ROMAN_MONTHS:
        raise InvalidMonthError(details=f"Invalid month: {month}. Must be between 1 and 12.")
    return ROMAN_MONTHS[month]


def roman_to_month(roman: str) -> int | None:
    return _MONTHS_BY_ROMAN.get(str(roman or "").strip())


def pad_sequence(sequence: int) -> str:
    return str(int(sequence)).zfill(4)


def format_doc_number(sequence: int, dept_code: str, month: int, year: int) -> str:
    roman = month_to_roman(month)
    if int(sequence) < 1:
        raise ValueError(f"sequence must be positive, got {sequence}")
    dept = str(dept_code or "")
    if not dept or "/" in dept or any(ch.isspace() for ch in dept):
        raise ValueError(f"invalid department code for document number: {dept_code!r}")
    return f"{PREFIX}/{pad_sequence(sequence)}/{dept}/{roman}/{int(year)}"


def parse_doc_number(doc_number: str) -> DocNumberParts | None:
    match = _DOC_NUMBER_PATTERN.match(str(doc_number or ""))
    if not match:
        return None
    month = roman_to_month(match.group("month"))
    sequence = int(match.group("seq"))
    if month is None or sequence < 1:
        return None
    return DocNumberParts(
        sequence=sequence,
        dept_code=match.group("dept"),
        month=month,
        year=int(match.group("year")),
    )


def doc_number_preview(dept_code: str, on: date | datetime, preview_sequence: int = 1) -> str:
    # Display only; the persisted number always comes from the sequence allocator.
    return format_doc_number(preview_sequence, dept_code, on.month, on.year)
