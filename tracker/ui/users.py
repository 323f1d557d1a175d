"""Users page: list, add, bulk upload and brigade management."""

from __future__ import annotations

from datetime import datetime, timezone

import pandas as pd
import streamlit as st

from tracker import firestore_utils
from tracker.excel_import import ImportFileError, parse_user_sheet
from tracker.forms import ValidationError, validate_brigade_name, validate_user_fields
from tracker.reports import (
    TEMPLATE_FILENAME,
    build_export_filename,
    build_template_workbook,
    export_users_by_department,
    user_rows,
)
from tracker.stats import brigade_names, user_search
from tracker.utils.toasts import report_write, request_rerun, toast_err, toast_ok

from . import data

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
_PREVIEW_KEY = "bulk_upload_preview"


def _brigade_options(brigades, users):
    active = [b.name for b in brigades if b.is_active]
    return active or brigade_names(users)


def _render_list(users) -> None:
    term = st.text_input("Search users", placeholder="Name, roll number, email or brigade")
    shown = user_search(users, term)

    cols = st.columns(3)
    cols[0].metric("Total Users", len(users))
    cols[1].metric("Brigades", len(brigade_names(users)))
    cols[2].metric("Matching", len(shown))

    if not shown:
        st.info("No users found.")
        return
    st.dataframe(pd.DataFrame(user_rows(shown)), use_container_width=True, hide_index=True)

    stamp = datetime.now(timezone.utc).date().isoformat()
    st.download_button(
        "⬇️ Export users by department",
        data=export_users_by_department(shown),
        file_name=build_export_filename(["Users", stamp]),
        mime=XLSX_MIME,
    )

    with st.expander("Delete a user"):
        labels = {u.id: f"{u.full_name} ({u.roll_number})" for u in shown}
        user_id = st.selectbox("User", list(labels), format_func=labels.get, key="delete_user_pick")
        confirm = st.checkbox("Confirm delete", key="delete_user_confirm")
        if st.button("Delete user", disabled=not confirm):
            report_write(
                firestore_utils.delete_user(user_id),
                "User deleted successfully",
                "Failed to delete user",
            )


def _render_add(brigades, users) -> None:
    options = _brigade_options(brigades, users)
    with st.form("add_user", clear_on_submit=True):
        full_name = st.text_input("Full name")
        roll_number = st.text_input("Roll number")
        email = st.text_input("Email")
        if options:
            brigade_name = st.selectbox("Brigade", options, index=None)
        else:
            brigade_name = st.text_input("Brigade")
        submitted = st.form_submit_button("Add User")
    if not submitted:
        return
    try:
        user = validate_user_fields(full_name, roll_number, email, brigade_name or "")
    except ValidationError as exc:
        toast_err(str(exc))
        return
    report_write(firestore_utils.add_user(user), "User added successfully!", "Failed to add user")


def _render_bulk_upload() -> None:
    st.download_button(
        "⬇️ Download template",
        data=build_template_workbook(),
        file_name=TEMPLATE_FILENAME,
        mime=XLSX_MIME,
    )
    upload = st.file_uploader("Upload Excel file", type=["xlsx", "xls"], key="bulk_upload_file")
    if upload is not None and st.button("Preview"):
        try:
            st.session_state[_PREVIEW_KEY] = parse_user_sheet(upload.getvalue(), upload.name)
        except ImportFileError as exc:
            st.session_state.pop(_PREVIEW_KEY, None)
            toast_err(str(exc))

    preview = st.session_state.get(_PREVIEW_KEY)
    if preview is None:
        return
    if not preview:
        st.warning("No valid rows found in the uploaded file.")
        return
    st.caption(f"{len(preview)} users ready to import")
    st.dataframe(pd.DataFrame(user_rows(preview)).drop(columns=["Created At"]), hide_index=True)
    c1, c2 = st.columns(2)
    if c1.button(f"Import {len(preview)} users", type="primary"):
        result = firestore_utils.add_users_bulk(preview)
        if result.success:
            toast_ok(f"{result.count} users imported successfully!")
            st.session_state.pop(_PREVIEW_KEY, None)
            request_rerun()
        elif result.count:
            toast_err(f"Import stopped after {result.count} of {len(preview)} users")
            request_rerun()
        else:
            toast_err("Failed to import users")
    if c2.button("Cancel"):
        st.session_state.pop(_PREVIEW_KEY, None)
        request_rerun()


def _render_brigades(brigades, users) -> None:
    with st.form("add_brigade", clear_on_submit=True):
        name = st.text_input("Brigade name")
        description = st.text_area("Description")
        submitted = st.form_submit_button("Add Brigade")
    if submitted:
        try:
            brigade = validate_brigade_name(name, brigades, description)
        except ValidationError as exc:
            toast_err(str(exc))
        else:
            report_write(
                firestore_utils.add_brigade(brigade),
                "Brigade added successfully!",
                "Failed to add brigade",
            )

    if not brigades:
        st.info("No brigades yet.")
        return
    members = {}
    for user in users:
        members[user.brigade_name] = members.get(user.brigade_name, 0) + 1
    for brigade in brigades:
        c1, c2, c3 = st.columns([3, 1, 1])
        c1.markdown(f"**{brigade.name}**  \n{brigade.description or ''}")
        c2.caption(f"{members.get(brigade.name, 0)} members")
        if c3.button("Delete", key=f"delete_brigade_{brigade.id}"):
            report_write(
                firestore_utils.delete_brigade(brigade.id),
                "Brigade deleted successfully",
                "Failed to delete brigade",
            )


def render_users() -> None:
    users = data.users()
    brigades = data.brigades()
    list_tab, add_tab, bulk_tab, brigade_tab = st.tabs(
        ["All Users", "Add User", "Bulk Upload", "Brigades"]
    )
    with list_tab:
        _render_list(users)
    with add_tab:
        _render_add(brigades, users)
    with bulk_tab:
        _render_bulk_upload()
    with brigade_tab:
        _render_brigades(brigades, users)
