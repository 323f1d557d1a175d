"""Spreadsheet exports for attendance records and user lists.

Rows are plain dictionaries keyed by their column headers.  Department
sheets are derived from the roll number convention ``YYDDD###`` where
``DDD`` is the department code, e.g. ``25BBA001``.
"""

from __future__ import annotations

import io
import re
from collections import OrderedDict
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Sequence

import pandas as pd

from .config import get_timezone
from .models import User, to_datetime_any

UNKNOWN_DEPARTMENT = "UNKNOWN"
OTHERS_SHEET = "Others"
ROLL_FIELD = "Roll Number"

ATTENDANCE_COLUMNS = [
    "Event Name",
    "Date",
    "Session",
    "Full Name",
    "Roll Number",
    "Brigade",
    "Status",
    "Marked At",
    "Marked By",
]
USER_COLUMNS = ["Full Name", "Roll Number", "Email", "Brigade Name", "Created At"]
STATS_COLUMNS = ["Brigade", "Total Count", "Present", "Absent", "Not Marked"]

STATUS_PRESENT = "Present"
STATUS_ABSENT = "Absent"
STATUS_NOT_MARKED = "Not Marked"

TEMPLATE_ROWS = [
    ["Full Name", "Roll Number", "Email", "Brigade Name"],
    ["John Doe", "25BBA001", "john.doe@example.com", "Tech Brigade"],
    ["Jane Smith", "25BCA002", "jane.smith@example.com", "Media Brigade"],
    ["Mike Johnson", "25BCW003", "mike.johnson@example.com", "Design Brigade"],
    ["Sarah Wilson", "25TCW004", "sarah.wilson@example.com", "Management Brigade"],
]
TEMPLATE_SHEET = "Brigade Leads Template"
TEMPLATE_FILENAME = "brigade_leads_template.xlsx"

# BCW and TCW students share one sheet.
_MERGED_CODES = {"BCW": "CW", "TCW": "CW"}


def get_department_code(roll_number: str) -> str:
    """Department bucket for ``roll_number``.

    >>> get_department_code("25BBA001")
    'BBA'
    >>> get_department_code("25TCW004")
    'CW'
    >>> get_department_code("25XBA001")
    'UNKNOWN'
    """

    roll = str(roll_number or "")
    if len(roll) < 5:
        return UNKNOWN_DEPARTMENT
    code = roll[2:5]
    if code in _MERGED_CODES:
        return _MERGED_CODES[code]
    if roll[2] != "B":
        return UNKNOWN_DEPARTMENT
    return code


def _roll_of(row: Mapping[str, Any], roll_field: str) -> str:
    return str(row.get(roll_field) or "")


def sort_by_roll(rows: Iterable[Mapping[str, Any]], roll_field: str = ROLL_FIELD) -> List[Mapping[str, Any]]:
    return sorted(rows, key=lambda row: _roll_of(row, roll_field))


def group_by_department(
    rows: Iterable[Mapping[str, Any]], roll_field: str = ROLL_FIELD
) -> "OrderedDict[str, List[Mapping[str, Any]]]":
    """Bucket ``rows`` by department code.

    Buckets are ordered by code and each bucket is sorted by roll number.
    Every input row lands in exactly one bucket.
    """

    buckets: Dict[str, List[Mapping[str, Any]]] = {}
    for row in rows:
        code = get_department_code(_roll_of(row, roll_field))
        buckets.setdefault(code, []).append(row)
    return OrderedDict(
        (code, sort_by_roll(buckets[code], roll_field)) for code in sorted(buckets)
    )


def sheet_name_for(code: str) -> str:
    return OTHERS_SHEET if code == UNKNOWN_DEPARTMENT else code


def has_known_departments(groups: Mapping[str, Any]) -> bool:
    return any(code != UNKNOWN_DEPARTMENT for code in groups)


def brigade_stats(rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Per-brigade present/absent/not-marked counts, in first-seen order."""

    stats: Dict[str, Dict[str, Any]] = {}
    for row in rows:
        brigade = row.get("Brigade")
        entry = stats.setdefault(
            brigade,
            {"Brigade": brigade, "Total Count": 0, "Present": 0, "Absent": 0, "Not Marked": 0},
        )
        entry["Total Count"] += 1
        status = row.get("Status")
        if status == STATUS_PRESENT:
            entry["Present"] += 1
        elif status == STATUS_ABSENT:
            entry["Absent"] += 1
        elif status == STATUS_NOT_MARKED:
            entry["Not Marked"] += 1
    return list(stats.values())


def format_export_date(value: Any) -> str:
    """``"Jul 2, 2025"``; unparseable values pass through unchanged."""

    if isinstance(value, date) and not isinstance(value, datetime):
        day = value
    else:
        parsed = to_datetime_any(value)
        if parsed is None:
            return str(value or "")
        day = parsed.date()
    return f"{day:%b} {day.day}, {day.year}"


def format_export_datetime(value: Any) -> str:
    """``"Jul 2, 08:58"`` or ``"N/A"`` when there is no timestamp."""

    if value in (None, "", "N/A"):
        return "N/A"
    parsed = to_datetime_any(value)
    if parsed is None:
        return str(value)
    local = parsed.astimezone(get_timezone())
    return f"{local:%b} {local.day}, {local:%H:%M}"


def user_rows(users: Iterable[User]) -> List[Dict[str, Any]]:
    return [
        {
            "Full Name": user.full_name,
            "Roll Number": user.roll_number,
            "Email": user.email,
            "Brigade Name": user.brigade_name,
            "Created At": user.created_at.date().isoformat() if user.created_at else "N/A",
        }
        for user in users
    ]


_ILLEGAL_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|]+')


def build_export_filename(parts: Sequence[str], separator: str = "+") -> str:
    """Join filter labels into an ``.xlsx`` file name."""

    stem = separator.join(str(part) for part in parts if str(part).strip()) or "export"
    stem = _ILLEGAL_FILENAME_CHARS.sub("-", stem)
    return f"{stem}.xlsx"


# ---------------------------------------------------------------------------
# Workbook writers
# ---------------------------------------------------------------------------


def _frame(rows: Sequence[Mapping[str, Any]], columns: Sequence[str]) -> pd.DataFrame:
    return pd.DataFrame(list(rows), columns=list(columns))


_SHEET_TITLE_MAX = 31
_INVALID_SHEET_CHARS = re.compile(r"[\[\]:*?/\\]")


def _sheet_title(name: str, used: set) -> str:
    """Excel-safe sheet title for ``name`` that is not yet in ``used``.

    Characters Excel rejects become ``-``, titles are cut to 31 characters
    and clashes (compared case-insensitively) get a ``" (2)"`` style suffix.
    """

    base = _INVALID_SHEET_CHARS.sub("-", str(name)).strip() or "Sheet"
    title = base[:_SHEET_TITLE_MAX]
    counter = 2
    while title.lower() in used:
        suffix = f" ({counter})"
        title = base[: _SHEET_TITLE_MAX - len(suffix)] + suffix
        counter += 1
    used.add(title.lower())
    return title


def _write_workbook(sheets: Sequence[tuple]) -> bytes:
    buffer = io.BytesIO()
    used: set = set()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for name, frame in sheets:
            frame.to_excel(writer, sheet_name=_sheet_title(name, used), index=False)
    return buffer.getvalue()


def _format_attendance_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    formatted = {column: row.get(column, "") for column in ATTENDANCE_COLUMNS}
    formatted["Date"] = format_export_date(row.get("Date"))
    formatted["Marked At"] = format_export_datetime(row.get("Marked At"))
    return formatted


def export_attendance_plain(rows: Iterable[Mapping[str, Any]]) -> bytes:
    """Single "Attendance" sheet in the order given."""

    formatted = [_format_attendance_row(row) for row in rows]
    return _write_workbook([("Attendance", _frame(formatted, ATTENDANCE_COLUMNS))])


def export_attendance_by_department(rows: Iterable[Mapping[str, Any]]) -> bytes:
    """Sheets "Overall Data", "Stats" and one per department."""

    formatted = [_format_attendance_row(row) for row in rows]
    sheets = [
        ("Overall Data", _frame(sort_by_roll(formatted), ATTENDANCE_COLUMNS)),
        ("Stats", _frame(brigade_stats(formatted), STATS_COLUMNS)),
    ]
    for code, bucket in group_by_department(formatted).items():
        sheets.append((sheet_name_for(code), _frame(bucket, ATTENDANCE_COLUMNS)))
    return _write_workbook(sheets)


def export_users_by_department(users: Iterable[User]) -> bytes:
    """One sheet per department, or a single "All Users" sheet when no
    roll number carries a recognisable department."""

    rows = user_rows(users)
    groups = group_by_department(rows)
    if not has_known_departments(groups):
        return _write_workbook([("All Users", _frame(sort_by_roll(rows), USER_COLUMNS))])
    return _write_workbook(
        [(sheet_name_for(code), _frame(bucket, USER_COLUMNS)) for code, bucket in groups.items()]
    )


def build_template_workbook() -> bytes:
    header, *examples = TEMPLATE_ROWS
    return _write_workbook([(TEMPLATE_SHEET, pd.DataFrame(examples, columns=header))])


__all__ = [
    "ATTENDANCE_COLUMNS",
    "OTHERS_SHEET",
    "STATUS_ABSENT",
    "STATUS_NOT_MARKED",
    "STATUS_PRESENT",
    "TEMPLATE_FILENAME",
    "UNKNOWN_DEPARTMENT",
    "USER_COLUMNS",
    "brigade_stats",
    "build_export_filename",
    "build_template_workbook",
    "export_attendance_by_department",
    "export_attendance_plain",
    "export_users_by_department",
    "format_export_date",
    "format_export_datetime",
    "get_department_code",
    "group_by_department",
    "has_known_departments",
    "sheet_name_for",
    "sort_by_roll",
    "user_rows",
]
