import io

import pandas as pd
import pytest

from tracker.excel_import import (
    PARSE_FAILED_MSG,
    WRONG_EXTENSION_MSG,
    ImportFileError,
    parse_user_sheet,
    rows_to_users,
)
from tracker.reports import build_template_workbook


def _workbook(rows):
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, index=False, header=False)
    return buffer.getvalue()


def test_template_round_trips_through_import():
    users = parse_user_sheet(build_template_workbook(), "brigade_leads_template.xlsx")
    assert [u.roll_number for u in users] == ["25BBA001", "25BCA002", "25BCW003", "25TCW004"]
    assert users[0].full_name == "John Doe"
    assert users[0].brigade_name == "Tech Brigade"
    assert all(u.id == "" for u in users)


def test_incomplete_rows_are_skipped(caplog):
    data = _workbook(
        [
            ["Full Name", "Roll Number", "Email", "Brigade Name"],
            ["Asha", "25BBA001", "asha@x.io", "Tech"],
            ["No Email", "25BBA002", None, "Tech"],
            [" Ravi ", 25001, "ravi@x.io", " Media "],
        ]
    )
    users = parse_user_sheet(data, "leads.XLSX")
    assert [u.full_name for u in users] == ["Asha", "Ravi"]
    assert users[1].roll_number == "25001"
    assert users[1].brigade_name == "Media"


def test_rows_to_users_ignores_header_and_short_rows():
    rows = [["h1", "h2", "h3", "h4"], ["a", "b"], ["a", "b", "c", "d", "extra"]]
    users = rows_to_users(rows)
    assert len(users) == 1
    assert users[0].email == "c"


def test_wrong_extension_is_rejected():
    with pytest.raises(ImportFileError) as info:
        parse_user_sheet(b"name,roll", "leads.csv")
    assert str(info.value) == WRONG_EXTENSION_MSG


def test_corrupt_workbook_is_rejected():
    with pytest.raises(ImportFileError) as info:
        parse_user_sheet(b"not really a workbook", "leads.xlsx")
    assert str(info.value) == PARSE_FAILED_MSG
