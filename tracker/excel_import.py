"""Bulk user import from an uploaded spreadsheet.

The first sheet is read positionally: full name, roll number, email,
brigade name.  Row one is a header.  Rows missing any of the four leading
values are skipped.
"""

from __future__ import annotations

import io
import logging
from typing import List

import pandas as pd

from .models import User

ALLOWED_EXTENSIONS = (".xlsx", ".xls")
WRONG_EXTENSION_MSG = "Please upload an Excel file (.xlsx or .xls)"
PARSE_FAILED_MSG = "Failed to parse Excel file. Please check the format."


class ImportFileError(ValueError):
    """The uploaded file could not be used at all."""


def _cell(value) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def rows_to_users(rows: List[list]) -> List[User]:
    users: List[User] = []
    skipped = 0
    for row in rows[1:]:
        cells = [_cell(value) for value in list(row)[:4]]
        if len(cells) < 4 or not all(cells):
            skipped += 1
            continue
        full_name, roll_number, email, brigade_name = cells
        users.append(
            User(
                id="",
                full_name=full_name,
                roll_number=roll_number,
                email=email,
                brigade_name=brigade_name,
            )
        )
    if skipped:
        logging.info("Skipped %d incomplete rows during user import", skipped)
    return users


def parse_user_sheet(data: bytes, filename: str) -> List[User]:
    """Return unsaved users parsed from an ``.xlsx``/``.xls`` upload."""

    if not str(filename or "").lower().endswith(ALLOWED_EXTENSIONS):
        raise ImportFileError(WRONG_EXTENSION_MSG)
    try:
        frame = pd.read_excel(io.BytesIO(data), sheet_name=0, header=None, dtype=object)
    except Exception as exc:
        logging.warning("Could not parse uploaded workbook %s: %s", filename, exc)
        raise ImportFileError(PARSE_FAILED_MSG) from exc
    return rows_to_users(frame.values.tolist())


__all__ = [
    "ImportFileError",
    "PARSE_FAILED_MSG",
    "WRONG_EXTENSION_MSG",
    "parse_user_sheet",
    "rows_to_users",
]
