import io
from datetime import date, datetime, timezone

import pandas as pd
import pytest

from tracker import reports
from tracker.models import User
from tracker.reports import (
    brigade_stats,
    build_export_filename,
    export_attendance_by_department,
    export_attendance_plain,
    export_users_by_department,
    format_export_date,
    format_export_datetime,
    get_department_code,
    group_by_department,
)


@pytest.mark.parametrize(
    "roll, code",
    [
        ("25BBA001", "BBA"),
        ("25BCA002", "BCA"),
        ("25BCW003", "CW"),
        ("25TCW004", "CW"),
        ("25XBA001", "UNKNOWN"),
        ("25TBA001", "UNKNOWN"),
        ("25BB", "UNKNOWN"),
        ("", "UNKNOWN"),
        (None, "UNKNOWN"),
        ("24BCOM01", "BCO"),
    ],
)
def test_get_department_code(roll, code):
    assert get_department_code(roll) == code


def _row(roll, name="x", status="Present", brigade="Tech"):
    return {
        "Event Name": "Orientation",
        "Date": date(2025, 7, 2),
        "Session": "FN",
        "Full Name": name,
        "Roll Number": roll,
        "Brigade": brigade,
        "Status": status,
        "Marked At": datetime(2025, 7, 2, 3, 28, tzinfo=timezone.utc),
        "Marked By": "admin",
    }


def test_group_by_department_partitions_and_sorts():
    rows = [_row("25BCA010"), _row("25BBA002"), _row("25TCW001"), _row("bad"), _row("25BBA001"), _row("25BCW005")]
    groups = group_by_department(rows)

    assert list(groups) == ["BBA", "BCA", "CW", "UNKNOWN"]
    assert [r["Roll Number"] for r in groups["BBA"]] == ["25BBA001", "25BBA002"]
    assert [r["Roll Number"] for r in groups["CW"]] == ["25BCW005", "25TCW001"]
    assert sum(len(bucket) for bucket in groups.values()) == len(rows)
    assert sorted(id(r) for bucket in groups.values() for r in bucket) == sorted(id(r) for r in rows)


def test_brigade_stats():
    rows = [
        _row("1", status="Present", brigade="Tech"),
        _row("2", status="Absent", brigade="Tech"),
        _row("3", status="Not Marked", brigade="Media"),
        _row("4", status="Present", brigade="Tech"),
    ]
    assert brigade_stats(rows) == [
        {"Brigade": "Tech", "Total Count": 3, "Present": 2, "Absent": 1, "Not Marked": 0},
        {"Brigade": "Media", "Total Count": 1, "Present": 0, "Absent": 0, "Not Marked": 1},
    ]


def test_export_formats():
    assert format_export_date(date(2025, 7, 2)) == "Jul 2, 2025"
    assert format_export_date("2025-12-25") == "Dec 25, 2025"
    assert format_export_datetime(datetime(2025, 7, 2, 3, 28, tzinfo=timezone.utc)) == "Jul 2, 08:58"
    assert format_export_datetime(None) == "N/A"
    assert format_export_datetime("N/A") == "N/A"


def test_build_export_filename():
    name = build_export_filename(["Orientation", "All Brigades", "Present", "All Sessions", "2025-07-01", "No End Date"])
    assert name == "Orientation+All Brigades+Present+All Sessions+2025-07-01+No End Date.xlsx"
    assert build_export_filename(["a/b", "c:d"]) == "a-b+c-d.xlsx"
    assert build_export_filename([]) == "export.xlsx"


def _sheets(data):
    return pd.read_excel(io.BytesIO(data), sheet_name=None)


def test_plain_export_has_single_sheet():
    sheets = _sheets(export_attendance_plain([_row("25BBA001", name="Asha")]))
    assert list(sheets) == ["Attendance"]
    frame = sheets["Attendance"]
    assert list(frame.columns) == reports.ATTENDANCE_COLUMNS
    assert frame.loc[0, "Full Name"] == "Asha"
    assert frame.loc[0, "Date"] == "Jul 2, 2025"
    assert frame.loc[0, "Marked At"] == "Jul 2, 08:58"


def test_department_export_sheet_layout():
    rows = [_row("25BCA002"), _row("25BBA001", status="Absent"), _row("25TCW003"), _row("99")]
    sheets = _sheets(export_attendance_by_department(rows))

    assert list(sheets) == ["Overall Data", "Stats", "BBA", "BCA", "CW", "Others"]
    assert list(sheets["Overall Data"]["Roll Number"].astype(str)) == ["25BBA001", "25BCA002", "25TCW003", "99"]
    stats = sheets["Stats"]
    assert list(stats.columns) == reports.STATS_COLUMNS
    assert int(stats.loc[0, "Absent"]) == 1


def _user(roll, name="n"):
    return User(id=roll, full_name=name, roll_number=roll, email="e@x.io", brigade_name="Tech")


def test_user_export_by_department():
    sheets = _sheets(export_users_by_department([_user("25BCA001"), _user("25BBA001")]))
    assert list(sheets) == ["BBA", "BCA"]
    assert list(sheets["BBA"].columns) == reports.USER_COLUMNS


def test_user_export_without_departments_uses_one_sheet():
    sheets = _sheets(export_users_by_department([_user("X2"), _user("X1")]))
    assert list(sheets) == ["All Users"]
    assert list(sheets["All Users"]["Roll Number"]) == ["X1", "X2"]


def test_template_workbook():
    sheets = _sheets(reports.build_template_workbook())
    assert list(sheets) == [reports.TEMPLATE_SHEET]
    frame = sheets[reports.TEMPLATE_SHEET]
    assert list(frame.columns) == ["Full Name", "Roll Number", "Email", "Brigade Name"]
    assert len(frame) == 4


def test_user_export_cleans_sheet_titles():
    sheets = _sheets(export_users_by_department([_user("25B/A001"), _user("25BBA001")]))
    assert list(sheets) == ["B-A", "BBA"]
    assert list(sheets["B-A"]["Roll Number"]) == ["25B/A001"]


def test_department_export_cleans_sheet_titles():
    rows = [_row("25B[1]01"), _row("25BBA001")]
    sheets = _sheets(export_attendance_by_department(rows))
    assert list(sheets) == ["Overall Data", "Stats", "B-1", "BBA"]


def test_sheet_titles_are_unique_ignoring_case():
    sheets = _sheets(export_users_by_department([_user("25B/A001"), _user("25B:A002"), _user("25Bba003")]))
    assert list(sheets) == ["B-A", "B-A (2)", "Bba"]

    used = {"bba"}
    assert reports._sheet_title("BBA", used) == "BBA (2)"
    assert reports._sheet_title("x" * 40, used) == "x" * 31
    assert reports._sheet_title("x" * 40, used) == "x" * 27 + " (2)"
