"""Events page: create, edit, suspend and delete events."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, time, timezone
from typing import List

import streamlit as st

from tracker import firestore_utils
from tracker.attendance import session_attendance_count
from tracker.config import default_an_window, default_fn_window
from tracker.forms import ValidationError, build_event_days, validate_event
from tracker.models import SESSION_AN, SESSION_FN, Event, EventDay, Session
from tracker.session_status import (
    InvalidSessionWindow,
    evaluate_session,
    format_time_range,
    parse_hhmm,
)
from tracker.utils.toasts import report_write, toast_err

from . import data

_SESSION_LABELS = {SESSION_FN: "FN (Forenoon)", SESSION_AN: "AN (Afternoon)"}


def _to_time(value: str) -> time:
    try:
        minutes = parse_hhmm(value)
    except ValueError:
        minutes = 0
    return time(minutes // 60, minutes % 60)


def _to_hhmm(value: time) -> str:
    return value.strftime("%H:%M")


def status_line(session: Session, day_date, now: datetime) -> str:
    """``"9:00 AM - 12:00 PM · Session is active"`` plus a suspension note."""

    try:
        window = format_time_range(session.start_time, session.end_time)
        status = evaluate_session(session, now, day_date)
    except InvalidSessionWindow:
        return f"{session.start_time}-{session.end_time} · invalid window"
    except ValueError:
        return "Session times are not configured"
    line = f"{window} · {status.message}"
    if not session.is_active:
        line += " · Suspended"
    return line


def _render_create_form() -> None:
    fn_start, fn_end = default_fn_window()
    an_start, an_end = default_an_window()
    with st.form("create_event", clear_on_submit=True):
        name = st.text_input("Event name")
        c1, c2 = st.columns(2)
        start = c1.date_input("Start date", value=None)
        end = c2.date_input("End date", value=None)
        st.caption("Session times for every day (editable per day afterwards)")
        t1, t2, t3, t4 = st.columns(4)
        fn_s = t1.time_input("FN start", _to_time(fn_start))
        fn_e = t2.time_input("FN end", _to_time(fn_end))
        an_s = t3.time_input("AN start", _to_time(an_start))
        an_e = t4.time_input("AN end", _to_time(an_end))
        submitted = st.form_submit_button("Create Event")

    if not submitted:
        return
    try:
        if start is None or end is None:
            raise ValidationError("Please fill in all required fields")
        days = [
            replace(
                day,
                fn_session=replace(day.fn_session, start_time=_to_hhmm(fn_s), end_time=_to_hhmm(fn_e)),
                an_session=replace(day.an_session, start_time=_to_hhmm(an_s), end_time=_to_hhmm(an_e)),
            )
            for day in build_event_days(start, end)
        ]
        event = validate_event(name, start, end, days)
    except ValidationError as exc:
        toast_err(str(exc))
        return
    report_write(firestore_utils.add_event(event), "Event created successfully!")


def _render_day_editor(event: Event) -> None:
    with st.form(f"edit_event_{event.id}"):
        edited: List[EventDay] = []
        for index, day in enumerate(event.days):
            st.markdown(f"**{day.date:%A, %B %d, %Y}**")
            sessions = {}
            for session_type in (SESSION_FN, SESSION_AN):
                session = day.session(session_type)
                # Stored times are part of the key so a remote edit reseeds the inputs.
                key = f"{event.id}_{index}_{session_type}_{session.start_time}_{session.end_time}"
                c1, c2 = st.columns(2)
                start = c1.time_input(f"{session_type} start", _to_time(session.start_time), key=f"{key}_s")
                end = c2.time_input(f"{session_type} end", _to_time(session.end_time), key=f"{key}_e")
                sessions[session_type] = replace(
                    session, start_time=_to_hhmm(start), end_time=_to_hhmm(end)
                )
            edited.append(replace(day, fn_session=sessions[SESSION_FN], an_session=sessions[SESSION_AN]))
        submitted = st.form_submit_button("Save Changes")

    if not submitted:
        return
    try:
        validate_event(event.name, event.start_date or event.days[0].date, event.end_date or event.days[-1].date, edited)
    except ValidationError as exc:
        toast_err(str(exc))
        return
    report_write(
        firestore_utils.update_event_days(event.id, edited, stored_days=event.stored_days),
        "Event updated successfully!",
        "Failed to update event",
    )


def toggle_key(event: Event, index: int, session_type: str) -> str:
    """Widget key for one session switch.

    The stored flag is part of the key: when the snapshot changes the switch
    is recreated from it instead of keeping its previous state.
    """

    is_active = event.days[index].session(session_type).is_active
    return f"toggle_{event.id}_{index}_{session_type}_{int(is_active)}"


def _on_toggle(event: Event, index: int, session_type: str, key: str) -> None:
    is_active = bool(st.session_state[key])
    report_write(
        firestore_utils.set_session_active(event, index, session_type, is_active),
        f"{session_type} session {'activated' if is_active else 'suspended'}",
        "Failed to update session status",
    )


def _render_event(event: Event, records, now: datetime) -> None:
    span = ""
    if event.start_date and event.end_date:
        span = f"{event.start_date:%b %d, %Y} - {event.end_date:%b %d, %Y}"
    with st.expander(f"{event.name}  {span}"):
        if not event.days:
            st.info("This event has no days configured.")
        for index, day in enumerate(event.days):
            st.markdown(f"**{day.date:%a, %b %d, %Y}**")
            for session_type in (SESSION_FN, SESSION_AN):
                session = day.session(session_type)
                c1, c2, c3 = st.columns([1, 3, 1])
                key = toggle_key(event, index, session_type)
                c1.toggle(
                    _SESSION_LABELS[session_type],
                    value=session.is_active,
                    key=key,
                    on_change=_on_toggle,
                    args=(event, index, session_type, key),
                )
                c2.caption(status_line(session, day.date, now))
                count = session_attendance_count(records, event.id, day.date, session_type)
                c3.caption(f"{count} attended")

        if event.days and st.checkbox("Edit session timings", key=f"edit_{event.id}"):
            _render_day_editor(event)

        confirm = st.checkbox("I understand this cannot be undone", key=f"confirm_del_{event.id}")
        if st.button("Delete event", key=f"delete_{event.id}", disabled=not confirm):
            report_write(
                firestore_utils.delete_event(event.id),
                "Event deleted successfully",
                "Failed to delete event",
            )


def render_events(now: datetime | None = None) -> None:
    now = now or datetime.now(timezone.utc)
    events = data.events()
    records = data.attendance()

    cols = st.columns(3)
    cols[0].metric("Total Events", len(events))
    cols[1].metric(
        "With Active Sessions",
        sum(1 for e in events if any(d.fn_session.is_active or d.an_session.is_active for d in e.days)),
    )
    cols[2].metric("Present Marks", sum(1 for r in records if r.is_present))

    with st.expander("➕ Create New Event", expanded=not events):
        _render_create_form()

    if not events:
        st.info("No events yet. Create one to start marking attendance.")
        return
    for event in events:
        _render_event(event, records, now)
