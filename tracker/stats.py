"""Filtering and statistics for the records and dashboard pages.

The functions here were written against plain lists so the pages can pass
whatever snapshot they hold; nothing in this module talks to Firestore.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .attendance import find_record
from .models import SESSION_AN, SESSION_FN, AttendanceRecord, Event, User
from .reports import STATUS_ABSENT, STATUS_NOT_MARKED, STATUS_PRESENT

ALL = "all"
SESSION_FILTERS = {"forenoon": SESSION_FN, "afternoon": SESSION_AN}
SESSION_LABELS = {ALL: "All Sessions", "forenoon": "Forenoon", "afternoon": "Afternoon"}
STATUS_LABELS = {ALL: "All Status", "present": "Present", "absent": "Absent"}


@dataclass
class RecordFilters:
    search: str = ""
    event_id: str = ALL
    brigade: str = ALL
    status: str = ALL
    session: str = ALL
    start_date: Optional[date] = None
    end_date: Optional[date] = None


@dataclass
class JoinedRecord:
    record: AttendanceRecord
    user: User
    event: Event


def join_records(
    records: Iterable[AttendanceRecord], users: Iterable[User], events: Iterable[Event]
) -> List[JoinedRecord]:
    """Attach user and event to each record, dropping orphans."""

    users_by_id = {user.id: user for user in users}
    events_by_id = {event.id: event for event in events}
    joined: List[JoinedRecord] = []
    orphans = 0
    for record in records:
        user = users_by_id.get(record.user_id)
        event = events_by_id.get(record.event_id)
        if user is None or event is None:
            orphans += 1
            continue
        joined.append(JoinedRecord(record, user, event))
    if orphans:
        logging.warning("Ignoring %d attendance records whose user or event was deleted", orphans)
    return joined


def _matches_search(item: JoinedRecord, term: str) -> bool:
    haystack = (
        item.user.full_name,
        item.user.roll_number,
        item.user.brigade_name,
        item.event.name,
    )
    return any(term in (value or "").lower() for value in haystack)


def filter_records(joined: Iterable[JoinedRecord], filters: RecordFilters) -> List[JoinedRecord]:
    term = filters.search.strip().lower()
    wanted_session = SESSION_FILTERS.get(filters.session)
    result = []
    for item in joined:
        record = item.record
        if term and not _matches_search(item, term):
            continue
        if filters.event_id != ALL and record.event_id != filters.event_id:
            continue
        if filters.brigade != ALL and item.user.brigade_name != filters.brigade:
            continue
        if filters.status == "present" and not record.is_present:
            continue
        if filters.status == "absent" and record.is_present:
            continue
        if wanted_session and record.session_type != wanted_session:
            continue
        if filters.start_date and (record.event_date is None or record.event_date < filters.start_date):
            continue
        if filters.end_date and (record.event_date is None or record.event_date > filters.end_date):
            continue
        result.append(item)
    return result


def export_rows(joined: Iterable[JoinedRecord]) -> List[Dict[str, Any]]:
    return [
        {
            "Event Name": item.event.name,
            "Date": item.record.event_date,
            "Session": item.record.session_type,
            "Full Name": item.user.full_name,
            "Roll Number": item.user.roll_number,
            "Brigade": item.user.brigade_name,
            "Status": STATUS_PRESENT if item.record.is_present else STATUS_ABSENT,
            "Marked At": item.record.marked_at or "N/A",
            "Marked By": item.record.marked_by,
        }
        for item in joined
    ]


def not_marked_rows(
    event: Event,
    users: Iterable[User],
    records: Sequence[AttendanceRecord],
    filters: RecordFilters,
) -> List[Dict[str, Any]]:
    """Rows for users with no mark on a day/session of ``event`` that
    passes the date, session and brigade filters."""

    wanted_session = SESSION_FILTERS.get(filters.session)
    sessions = [wanted_session] if wanted_session else [SESSION_FN, SESSION_AN]
    term = filters.search.strip().lower()
    rows = []
    for day in event.days:
        if filters.start_date and day.date < filters.start_date:
            continue
        if filters.end_date and day.date > filters.end_date:
            continue
        for session_type in sessions:
            if not day.session(session_type).is_active:
                continue
            for user in users:
                if filters.brigade != ALL and user.brigade_name != filters.brigade:
                    continue
                if term and not any(
                    term in (value or "").lower()
                    for value in (user.full_name, user.roll_number, user.brigade_name, event.name)
                ):
                    continue
                if find_record(records, user.id, session_type, day.date, event_id=event.id):
                    continue
                rows.append(
                    {
                        "Event Name": event.name,
                        "Date": day.date,
                        "Session": session_type,
                        "Full Name": user.full_name,
                        "Roll Number": user.roll_number,
                        "Brigade": user.brigade_name,
                        "Status": STATUS_NOT_MARKED,
                        "Marked At": "N/A",
                        "Marked By": "",
                    }
                )
    return rows


def _rate(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


def record_stats(joined: Sequence[JoinedRecord]) -> Dict[str, int]:
    total = len(joined)
    present = sum(1 for item in joined if item.record.is_present)
    fn = [item for item in joined if item.record.session_type == SESSION_FN]
    an = [item for item in joined if item.record.session_type == SESSION_AN]
    fn_present = sum(1 for item in fn if item.record.is_present)
    an_present = sum(1 for item in an if item.record.is_present)
    return {
        "total": total,
        "present": present,
        "absent": total - present,
        "rate": _rate(present, total),
        "fn_total": len(fn),
        "fn_present": fn_present,
        "fn_rate": _rate(fn_present, len(fn)),
        "an_total": len(an),
        "an_present": an_present,
        "an_rate": _rate(an_present, len(an)),
    }


def filter_labels(filters: RecordFilters, events: Iterable[Event]) -> List[str]:
    """Human labels of the active filters, used to name exports."""

    if filters.event_id == ALL:
        event_label = "All Events"
    else:
        event_label = next(
            (event.name for event in events if event.id == filters.event_id), "Unknown Event"
        )
    return [
        event_label,
        "All Brigades" if filters.brigade == ALL else filters.brigade,
        STATUS_LABELS.get(filters.status, filters.status),
        SESSION_LABELS.get(filters.session, filters.session),
        filters.start_date.isoformat() if filters.start_date else "No Start Date",
        filters.end_date.isoformat() if filters.end_date else "No End Date",
    ]


def brigade_names(users: Iterable[User]) -> List[str]:
    return sorted({user.brigade_name for user in users if user.brigade_name})


def user_search(users: Iterable[User], term: str) -> List[User]:
    needle = (term or "").strip().lower()
    if not needle:
        return list(users)
    return [
        user
        for user in users
        if any(
            needle in (value or "").lower()
            for value in (user.full_name, user.roll_number, user.email, user.brigade_name)
        )
    ]


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


def ongoing_events(events: Iterable[Event], today: date) -> List[Event]:
    """Events with at least one day today or later."""

    return [event for event in events if any(day.date >= today for day in event.days)]


def dashboard_stats(
    events: Iterable[Event],
    users: Sequence[User],
    records: Iterable[AttendanceRecord],
    today: date,
) -> Dict[str, int]:
    """Headline numbers over ongoing events.

    ``average`` is present marks over active session slots times users.
    """

    ongoing = ongoing_events(events, today)
    ongoing_ids = {event.id for event in ongoing}
    present = sum(1 for record in records if record.event_id in ongoing_ids and record.is_present)
    possible = 0
    for event in ongoing:
        for day in event.days:
            active = int(day.fn_session.is_active) + int(day.an_session.is_active)
            possible += active * len(users)
    return {
        "events": len(ongoing),
        "users": len(users),
        "present": present,
        "average": _rate(present, possible),
    }


def session_chart_data(
    events: Iterable[Event], records: Sequence[AttendanceRecord], today: date
) -> List[Dict[str, Any]]:
    data = []
    for event in ongoing_events(events, today):
        name = event.name if len(event.name) <= 15 else event.name[:15] + "..."
        present = [r for r in records if r.event_id == event.id and r.is_present]
        data.append(
            {
                "Event": name,
                "FN": sum(1 for r in present if r.session_type == SESSION_FN),
                "AN": sum(1 for r in present if r.session_type == SESSION_AN),
            }
        )
    return data


def brigade_chart_data(
    events: Iterable[Event],
    users: Iterable[User],
    records: Sequence[AttendanceRecord],
    today: date,
) -> List[Dict[str, Any]]:
    ongoing_ids = {event.id for event in ongoing_events(events, today)}
    present_by_user: Dict[str, int] = {}
    for record in records:
        if record.event_id in ongoing_ids and record.is_present:
            present_by_user[record.user_id] = present_by_user.get(record.user_id, 0) + 1
    totals: Dict[str, int] = {}
    for user in users:
        totals[user.brigade_name] = totals.get(user.brigade_name, 0) + present_by_user.get(user.id, 0)
    return [
        {"Brigade": (name or "").replace(" Brigade", ""), "Attendance": count}
        for name, count in totals.items()
    ]


__all__ = [
    "ALL",
    "JoinedRecord",
    "RecordFilters",
    "brigade_chart_data",
    "brigade_names",
    "dashboard_stats",
    "export_rows",
    "filter_labels",
    "filter_records",
    "join_records",
    "not_marked_rows",
    "ongoing_events",
    "record_stats",
    "session_chart_data",
    "user_search",
]
