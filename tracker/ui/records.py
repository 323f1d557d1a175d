"""Attendance records page: filters, stats, exports and duplicate cleanup."""

from __future__ import annotations

from typing import List

import pandas as pd
import streamlit as st

from tracker.attendance import cleanup_duplicates, duplicate_summary
from tracker.reports import (
    build_export_filename,
    export_attendance_by_department,
    export_attendance_plain,
    format_export_date,
    format_export_datetime,
)
from tracker.stats import (
    ALL,
    SESSION_LABELS,
    STATUS_LABELS,
    RecordFilters,
    brigade_names,
    export_rows,
    filter_labels,
    filter_records,
    join_records,
    not_marked_rows,
    record_stats,
)
from tracker.utils.toasts import report_write, toast_warn

from . import data
from .users import XLSX_MIME

EXPORT_PLAIN = "Plain"
EXPORT_BY_DEPARTMENT = "By department"


def _read_filters(events, users) -> RecordFilters:
    search = st.text_input("Search", placeholder="Name, roll number, brigade or event")
    c1, c2, c3, c4 = st.columns(4)
    event_names = {ALL: "All Events", **{e.id: e.name for e in events}}
    event_id = c1.selectbox("Event", list(event_names), format_func=event_names.get)
    brigade = c2.selectbox("Brigade", [ALL, *brigade_names(users)], format_func=lambda b: "All Brigades" if b == ALL else b)
    status = c3.selectbox("Status", list(STATUS_LABELS), format_func=STATUS_LABELS.get)
    session = c4.selectbox("Session", list(SESSION_LABELS), format_func=SESSION_LABELS.get)
    d1, d2 = st.columns(2)
    start_date = d1.date_input("From", value=None)
    end_date = d2.date_input("To", value=None)
    return RecordFilters(
        search=search,
        event_id=event_id,
        brigade=brigade,
        status=status,
        session=session,
        start_date=start_date,
        end_date=end_date,
    )


def build_export(rows: List[dict], mode: str) -> bytes:
    if mode == EXPORT_BY_DEPARTMENT:
        return export_attendance_by_department(rows)
    return export_attendance_plain(rows)


def _render_duplicates(records) -> None:
    summary = duplicate_summary(records)
    if not summary:
        return
    with st.expander(f"⚠️ Duplicate marks found ({sum(summary.values())})"):
        st.caption("Only the most recent mark for each user and session is kept.")
        st.dataframe(
            pd.DataFrame(
                [
                    {"Date": format_export_date(day), "Session": session, "Duplicates": count}
                    for (day, session), count in summary.items()
                ]
            ),
            hide_index=True,
        )
        if st.button("Remove duplicates"):
            result = cleanup_duplicates(records)
            report_write(
                result,
                f"Removed {result.count} duplicate records",
                "Failed to remove duplicates",
            )


def render_records() -> None:
    events = data.events()
    users = data.users()
    records = data.attendance()

    filters = _read_filters(events, users)
    joined = filter_records(join_records(records, users, events), filters)
    numbers = record_stats(joined)

    cols = st.columns(4)
    cols[0].metric("Total Records", numbers["total"])
    cols[1].metric("Present", numbers["present"], f"{numbers['rate']}%")
    cols[2].metric("FN Present", f"{numbers['fn_present']}/{numbers['fn_total']}", f"{numbers['fn_rate']}%")
    cols[3].metric("AN Present", f"{numbers['an_present']}/{numbers['an_total']}", f"{numbers['an_rate']}%")

    rows = export_rows(joined)
    if rows:
        table = pd.DataFrame(rows)
        table["Date"] = table["Date"].map(format_export_date)
        table["Marked At"] = table["Marked At"].map(format_export_datetime)
        st.dataframe(table, use_container_width=True, hide_index=True)
    else:
        st.info("No attendance records match the filters.")

    st.subheader("Export")
    mode = st.radio("Layout", [EXPORT_PLAIN, EXPORT_BY_DEPARTMENT], horizontal=True)
    selected_event = next((e for e in events if e.id == filters.event_id), None)
    include_unmarked = False
    if selected_event is not None and filters.status == ALL:
        include_unmarked = st.checkbox("Include users who were not marked")

    export = list(rows)
    if include_unmarked and selected_event is not None:
        export.extend(not_marked_rows(selected_event, users, records, filters))
    if not export:
        if st.button("Prepare export"):
            toast_warn("No data to export")
    else:
        st.download_button(
            "⬇️ Download Excel",
            data=build_export(export, mode),
            file_name=build_export_filename(filter_labels(filters, events)),
            mime=XLSX_MIME,
        )

    _render_duplicates(records)
