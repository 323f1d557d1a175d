"""Attendance record resolution, marking and duplicate repair.

Records are matched on calendar day, never on instant.  Marking resolves
against the caller's snapshot first (update when a record is known) and
otherwise creates the record under a key derived from
``(eventId, eventDate, userId, sessionType)``.  The create is conditional,
so two admins marking the same tuple at once end up with one document: the
slower one sees a conflict and updates instead.

Records written before keyed creation may still be duplicated;
:func:`find_duplicates` and :func:`cleanup_duplicates` handle those.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from . import firestore_utils
from .config import get_marked_by
from .forms import ValidationError
from .models import AttendanceRecord, Event, EventDay, User, calendar_day
from .session_status import today_in_zone

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"

_LOG = logging.getLogger(__name__)

TupleKey = Tuple[str, Optional[date], str, str]


@dataclass
class MarkResult:
    action: str
    record_id: Optional[str]
    success: bool
    error: Optional[str] = None


@dataclass
class BulkMarkResult:
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


def find_record(
    records: Iterable[AttendanceRecord],
    user_id: str,
    session_type: str,
    on_date: Optional[date] = None,
    *,
    event_id: Optional[str] = None,
) -> Optional[AttendanceRecord]:
    """Return the first record for ``user_id``/``session_type`` on ``on_date``.

    ``on_date`` may be a ``date`` or an instant; instants are reduced to
    their calendar day in the configured timezone.
    """

    day = calendar_day(on_date) if on_date is not None else None
    for record in records:
        if record.user_id != user_id or record.session_type != session_type:
            continue
        if event_id is not None and record.event_id != event_id:
            continue
        if on_date is not None and (record.event_date is None or record.event_date != day):
            continue
        return record
    return None


def attendance_key(event_id: str, on_date: date, user_id: str, session_type: str) -> str:
    """Document id for one (event, day, user, session) tuple."""

    safe = [re.sub(r"[^A-Za-z0-9_\-]+", "_", str(part)) for part in (event_id, user_id)]
    return f"{safe[0]}__{on_date:%Y-%m-%d}__{safe[1]}__{session_type}"


def mark_or_update(
    records: Sequence[AttendanceRecord],
    event: Event,
    user: User,
    session_type: str,
    on_date: date,
    is_present: bool,
    marked_by: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> MarkResult:
    """Record ``user`` as present/absent, updating an existing mark in place."""

    day = calendar_day(on_date)
    existing = find_record(records, user.id, session_type, day, event_id=event.id)
    if existing is not None:
        result = firestore_utils.update_attendance(existing.id, {"isPresent": bool(is_present)})
        return MarkResult(ACTION_UPDATED, existing.id, result.success, result.error)

    record = AttendanceRecord(
        id="",
        event_id=event.id,
        event_date=day,
        user_id=user.id,
        session_type=session_type,
        is_present=bool(is_present),
        marked_at=now or datetime.now(timezone.utc),
        marked_by=marked_by or get_marked_by(),
    )
    key = attendance_key(event.id, day, user.id, session_type)
    result = firestore_utils.create_attendance(key, record.to_payload())
    if result.conflict:
        # Someone else created this tuple since our snapshot was taken.
        _LOG.info("Attendance %s already exists; updating instead", key)
        result = firestore_utils.update_attendance(key, {"isPresent": bool(is_present)})
        return MarkResult(ACTION_UPDATED, key, result.success, result.error)
    return MarkResult(ACTION_CREATED, key, result.success, result.error)


def bulk_mark(
    records: Sequence[AttendanceRecord],
    event: Event,
    users: Sequence[User],
    user_ids: Sequence[str],
    session_type: str,
    on_date: date,
    is_present: bool,
    marked_by: Optional[str] = None,
    *,
    now: Optional[datetime] = None,
) -> BulkMarkResult:
    """Apply :func:`mark_or_update` to each selected user.

    The writes are independent; some may succeed while others fail, and
    the result lists both.
    """

    if not user_ids:
        raise ValidationError("Please select users first")
    by_id = {user.id: user for user in users}
    outcome = BulkMarkResult()
    for user_id in user_ids:
        user = by_id.get(user_id)
        if user is None:
            outcome.skipped.append(user_id)
            continue
        result = mark_or_update(
            records, event, user, session_type, on_date, is_present, marked_by, now=now
        )
        if result.success:
            outcome.succeeded.append(user_id)
        else:
            outcome.failed[user_id] = result.error or "unknown error"
    if outcome.failed:
        _LOG.warning(
            "Bulk %s marking: %d ok, %d failed", session_type, len(outcome.succeeded), len(outcome.failed)
        )
    return outcome


def unmarked_users(
    users: Iterable[User],
    records: Sequence[AttendanceRecord],
    session_type: str,
    on_date: date,
    *,
    event_id: Optional[str] = None,
) -> List[User]:
    return [
        user
        for user in users
        if find_record(records, user.id, session_type, on_date, event_id=event_id) is None
    ]


def find_day(event: Event, on_date: date) -> Optional[EventDay]:
    for day in event.days:
        if day.date == on_date:
            return day
    return None


def resolve_marking_date(event: Event, now: datetime) -> Optional[date]:
    """Today when it is one of the event's days, else the first event day."""

    today = today_in_zone(now)
    if find_day(event, today) is not None:
        return today
    return event.days[0].date if event.days else None


def session_attendance_count(
    records: Iterable[AttendanceRecord], event_id: str, on_date: date, session_type: str
) -> int:
    return sum(
        1
        for record in records
        if record.event_id == event_id
        and record.event_date == on_date
        and record.session_type == session_type
        and record.is_present
    )


# ---------------------------------------------------------------------------
# Duplicate detection and repair
# ---------------------------------------------------------------------------


def tuple_key(record: AttendanceRecord) -> TupleKey:
    return (record.event_id, record.event_date, record.user_id, record.session_type)


def find_duplicates(records: Iterable[AttendanceRecord]) -> Dict[TupleKey, List[AttendanceRecord]]:
    """Tuples holding more than one record."""

    groups: Dict[TupleKey, List[AttendanceRecord]] = defaultdict(list)
    for record in records:
        if record.event_date is None:
            continue
        groups[tuple_key(record)].append(record)
    return {key: group for key, group in groups.items() if len(group) > 1}


def duplicate_summary(records: Iterable[AttendanceRecord]) -> Dict[Tuple[date, str], int]:
    """Surplus record count per (date, session type), sorted by date."""

    summary: Dict[Tuple[date, str], int] = defaultdict(int)
    for (_event_id, day, _user_id, session_type), group in find_duplicates(records).items():
        summary[(day, session_type)] += len(group) - 1
    return dict(sorted(summary.items()))


def _keep_order(record: AttendanceRecord):
    marked = record.marked_at or datetime.min.replace(tzinfo=timezone.utc)
    return (marked, record.id)


def surplus_records(records: Iterable[AttendanceRecord]) -> List[AttendanceRecord]:
    """Every duplicate except the most recently marked record of its tuple."""

    surplus: List[AttendanceRecord] = []
    for group in find_duplicates(records).values():
        ordered = sorted(group, key=_keep_order, reverse=True)
        surplus.extend(ordered[1:])
    return surplus


def cleanup_duplicates(records: Iterable[AttendanceRecord]) -> firestore_utils.WriteResult:
    """Delete surplus duplicates; ``count`` on the result is how many went."""

    doomed = surplus_records(records)
    if not doomed:
        return firestore_utils.WriteResult(True, count=0)
    _LOG.info("Deleting %d duplicate attendance records", len(doomed))
    return firestore_utils.delete_attendance_bulk([record.id for record in doomed])


__all__ = [
    "ACTION_CREATED",
    "ACTION_UPDATED",
    "BulkMarkResult",
    "MarkResult",
    "attendance_key",
    "bulk_mark",
    "cleanup_duplicates",
    "duplicate_summary",
    "find_day",
    "find_duplicates",
    "find_record",
    "mark_or_update",
    "resolve_marking_date",
    "session_attendance_count",
    "surplus_records",
    "tuple_key",
    "unmarked_users",
]
