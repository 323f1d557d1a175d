"""Attendance marking page."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Sequence

import streamlit as st

from tracker.attendance import (
    bulk_mark,
    find_day,
    find_record,
    mark_or_update,
    resolve_marking_date,
    unmarked_users,
)
from tracker.forms import ValidationError
from tracker.models import SESSION_AN, SESSION_FN, AttendanceRecord, Event, Session, User
from tracker.session_status import (
    InvalidSessionWindow,
    SessionStatus,
    evaluate_session,
    format_time_range,
    session_badges,
)
from tracker.utils.toasts import request_rerun, toast_err, toast_ok

from . import data


def session_notice(session: Session, status: SessionStatus) -> Optional[str]:
    """Explanation shown when marking is not possible, else ``None``."""

    if not session.is_active:
        return "This session has been suspended by the administrator."
    if not status.can_mark:
        window = format_time_range(session.start_time, session.end_time)
        return f"Attendance marking is only allowed during the session time window: {window}"
    return None


def _status_label(record: Optional[AttendanceRecord]) -> str:
    if record is None:
        return "Not marked"
    return "✅ Present" if record.is_present else "❌ Absent"


def _mark_one(records, event, user, session_type, day_date, is_present) -> None:
    result = mark_or_update(records, event, user, session_type, day_date, is_present)
    if result.success:
        toast_ok(f"{user.full_name} marked as {'Present' if is_present else 'Absent'}")
        request_rerun()
    else:
        toast_err("Failed to mark attendance")


def _render_bulk(records, event, users: Sequence[User], session_type, day_date) -> None:
    pending = unmarked_users(users, records, session_type, day_date, event_id=event.id)
    if not pending:
        return
    labels = {user.id: f"{user.full_name} ({user.roll_number})" for user in pending}
    key = f"bulk_{event.id}_{day_date}_{session_type}"
    select_all = st.checkbox(f"Select all unmarked ({len(pending)})", key=f"{key}_all")
    selected = st.multiselect(
        "Unmarked users",
        options=list(labels),
        default=list(labels) if select_all else [],
        format_func=labels.get,
        key=key,
    )
    c1, c2 = st.columns(2)
    for column, is_present, label in ((c1, True, "Mark Present"), (c2, False, "Mark Absent")):
        if column.button(f"{label} ({len(selected)})", key=f"{key}_{is_present}", disabled=not selected):
            try:
                outcome = bulk_mark(records, event, users, selected, session_type, day_date, is_present)
            except ValidationError as exc:
                toast_err(str(exc))
                continue
            if outcome.success:
                toast_ok(f"{len(outcome.succeeded)} users marked as {'Present' if is_present else 'Absent'}")
            else:
                toast_err(
                    f"Failed to update bulk attendance: {len(outcome.failed)} of "
                    f"{len(outcome.failed) + len(outcome.succeeded)} writes failed"
                )
            request_rerun()


def _render_session(event: Event, users, records, session_type: str, day_date, now) -> None:
    day = find_day(event, day_date)
    if day is None:
        st.info("No session data available for this date.")
        return
    session = day.session(session_type)
    try:
        status = evaluate_session(session, now, day.date)
        window = format_time_range(session.start_time, session.end_time)
    except InvalidSessionWindow as exc:
        st.error(str(exc))
        return
    except ValueError:
        st.error("Session times are not configured for this day.")
        return

    st.subheader(f"{session_type} Session - {day.date:%b %d, %Y}")
    badges = " · ".join([status.message, *session_badges(status, session)])
    st.caption(f"{window} · {badges}")
    notice = session_notice(session, status)
    if notice:
        st.warning(notice)
    else:
        _render_bulk(records, event, users, session_type, day.date)

    for user in users:
        record = find_record(records, user.id, session_type, day.date, event_id=event.id)
        c1, c2, c3, c4 = st.columns([4, 2, 1, 1])
        c1.markdown(f"**{user.full_name}**  \n{user.roll_number} • {user.brigade_name}")
        c2.write(_status_label(record))
        key = f"{event.id}_{day.date}_{session_type}_{user.id}"
        if c3.button(
            "Present",
            key=f"p_{key}",
            disabled=not status.can_mark or (record is not None and record.is_present),
        ):
            _mark_one(records, event, user, session_type, day.date, True)
        if c4.button(
            "Absent",
            key=f"a_{key}",
            disabled=not status.can_mark or (record is not None and not record.is_present),
        ):
            _mark_one(records, event, user, session_type, day.date, False)


def render_marking(now: datetime | None = None) -> None:
    now = now or datetime.now(timezone.utc)
    events = data.events()
    users = data.users()
    if not events:
        st.info("No events available. Create an event first.")
        return

    names = {event.id: event.name for event in events}
    event_id = st.selectbox("Select Event", list(names), format_func=names.get, key="mark_event")
    event = next(e for e in events if e.id == event_id)
    default_day = resolve_marking_date(event, now)
    if default_day is None:
        st.info("This event has no days configured.")
        return
    day_options = [day.date for day in event.days]
    day_date = st.selectbox(
        "Day",
        day_options,
        index=day_options.index(default_day),
        format_func=lambda d: f"{d:%a, %b %d, %Y}",
        key=f"mark_day_{event.id}",
    )

    records = data.attendance(event.id)
    fn_tab, an_tab = st.tabs(["FN Session", "AN Session"])
    with fn_tab:
        _render_session(event, users, records, SESSION_FN, day_date, now)
    with an_tab:
        _render_session(event, users, records, SESSION_AN, day_date, now)
