"""Domain records for events, users, brigades and attendance.

Firestore documents are converted with ``from_snapshot`` on the read path
and ``to_payload`` on the write path.  Stored field names follow the
camelCase layout already present in the ``events``, ``users``,
``brigades`` and ``attendance`` collections.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from dateutil import parser as _dateparse

from .config import get_timezone

SESSION_FN = "FN"
SESSION_AN = "AN"
SESSION_TYPES = (SESSION_FN, SESSION_AN)

_LOG = logging.getLogger(__name__)


def to_datetime_any(value: Any) -> Optional[datetime]:
    """Best-effort conversion of Firestore/JSON datetime payloads.

    Returns an aware ``datetime`` (naive values are taken as UTC) or
    ``None`` when the value cannot be interpreted.
    """
    if value is None or value == "":
        return None

    dt_val: Optional[datetime] = None
    if isinstance(value, datetime):
        dt_val = value
    elif isinstance(value, date):
        dt_val = datetime(value.year, value.month, value.day)
    else:
        try:
            if hasattr(value, "to_datetime"):
                dt_val = value.to_datetime()
        except Exception:
            dt_val = None

        if dt_val is None:
            try:
                if hasattr(value, "seconds"):
                    dt_val = datetime.fromtimestamp(int(value.seconds), timezone.utc)
            except Exception:
                dt_val = None

        if dt_val is None and isinstance(value, (int, float)) and not isinstance(value, bool):
            try:
                dt_val = datetime.fromtimestamp(float(value), timezone.utc)
            except (OverflowError, OSError, ValueError):
                dt_val = None

        if dt_val is None and isinstance(value, str):
            try:
                dt_val = _dateparse.parse(value)
            except (ValueError, OverflowError):
                dt_val = None

    if dt_val is not None and dt_val.tzinfo is None:
        dt_val = dt_val.replace(tzinfo=timezone.utc)
    return dt_val


def _stored_datetime(data: Dict[str, Any], key: str, owner: str) -> Optional[datetime]:
    raw = data.get(key)
    parsed = to_datetime_any(raw)
    if parsed is None:
        _LOG.warning("%s has missing or malformed %s: %r", owner, key, raw)
    return parsed


def calendar_day(value: Any) -> Optional[date]:
    """Return the calendar day of ``value`` in the configured timezone."""

    if value is None:
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    parsed = to_datetime_any(value)
    if parsed is None:
        return None
    return parsed.astimezone(get_timezone()).date()


def day_start(day: date) -> datetime:
    """Midnight of ``day`` in the configured timezone."""

    return datetime(day.year, day.month, day.day, tzinfo=get_timezone())


@dataclass
class Session:
    is_active: bool = True
    start_time: str = "09:00"
    end_time: str = "12:00"
    attendance_count: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> "Session":
        data = data if isinstance(data, dict) else {}
        try:
            count = int(data.get("attendanceCount") or 0)
        except (TypeError, ValueError):
            count = 0
        return cls(
            is_active=bool(data.get("isActive", True)),
            start_time=str(data.get("startTime") or ""),
            end_time=str(data.get("endTime") or ""),
            attendance_count=count,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "isActive": bool(self.is_active),
            "startTime": self.start_time,
            "endTime": self.end_time,
            "attendanceCount": int(self.attendance_count),
        }


@dataclass
class EventDay:
    date: date
    fn_session: Session = field(default_factory=Session)
    an_session: Session = field(default_factory=Session)

    def session(self, session_type: str) -> Session:
        if session_type == SESSION_FN:
            return self.fn_session
        if session_type == SESSION_AN:
            return self.an_session
        raise ValueError(f"Unknown session type: {session_type!r}")

    def to_payload(self) -> Dict[str, Any]:
        return {
            "date": day_start(self.date),
            "fnSession": self.fn_session.to_payload(),
            "anSession": self.an_session.to_payload(),
        }


@dataclass
class Event:
    id: str
    name: str
    start_date: Optional[date]
    end_date: Optional[date]
    days: List[EventDay] = field(default_factory=list)
    created_at: Optional[datetime] = None
    # Raw ``days`` array as stored, malformed entries included.
    stored_days: List[Any] = field(default_factory=list, repr=False, compare=False)

    @classmethod
    def from_snapshot(cls, doc_id: str, data: Dict[str, Any]) -> "Event":
        owner = f"Event {doc_id}"
        days: List[EventDay] = []
        for raw in data.get("days") or []:
            if not isinstance(raw, dict):
                continue
            day = calendar_day(raw.get("date"))
            if day is None:
                _LOG.warning("%s has a day without a usable date; skipping it", owner)
                continue
            days.append(
                EventDay(
                    date=day,
                    fn_session=Session.from_dict(raw.get("fnSession")),
                    an_session=Session.from_dict(raw.get("anSession")),
                )
            )
        start = _stored_datetime(data, "startDate", owner)
        end = _stored_datetime(data, "endDate", owner)
        return cls(
            id=doc_id,
            name=str(data.get("name") or ""),
            start_date=calendar_day(start),
            end_date=calendar_day(end),
            days=days,
            created_at=_stored_datetime(data, "createdAt", owner),
            stored_days=list(data.get("days") or []),
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "startDate": day_start(self.start_date) if self.start_date else None,
            "endDate": day_start(self.end_date) if self.end_date else None,
            "days": [day.to_payload() for day in self.days],
        }
        if self.created_at is not None:
            payload["createdAt"] = self.created_at
        return payload


@dataclass
class User:
    id: str
    full_name: str
    roll_number: str
    email: str
    brigade_name: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_snapshot(cls, doc_id: str, data: Dict[str, Any]) -> "User":
        return cls(
            id=doc_id,
            full_name=str(data.get("fullName") or ""),
            roll_number=str(data.get("rollNumber") or ""),
            email=str(data.get("email") or ""),
            brigade_name=str(data.get("brigadeName") or ""),
            created_at=_stored_datetime(data, "createdAt", f"User {doc_id}"),
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "fullName": self.full_name,
            "rollNumber": self.roll_number,
            "email": self.email,
            "brigadeName": self.brigade_name,
        }
        if self.created_at is not None:
            payload["createdAt"] = self.created_at
        return payload


@dataclass
class Brigade:
    id: str
    name: str
    description: str = ""
    is_active: bool = True
    created_at: Optional[datetime] = None

    @classmethod
    def from_snapshot(cls, doc_id: str, data: Dict[str, Any]) -> "Brigade":
        return cls(
            id=doc_id,
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            is_active=bool(data.get("isActive", True)),
            created_at=_stored_datetime(data, "createdAt", f"Brigade {doc_id}"),
        )

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "isActive": bool(self.is_active),
        }
        if self.created_at is not None:
            payload["createdAt"] = self.created_at
        return payload


@dataclass
class AttendanceRecord:
    id: str
    event_id: str
    event_date: Optional[date]
    user_id: str
    session_type: str
    is_present: bool
    marked_at: Optional[datetime] = None
    marked_by: str = ""

    @classmethod
    def from_snapshot(cls, doc_id: str, data: Dict[str, Any]) -> "AttendanceRecord":
        owner = f"Attendance {doc_id}"
        return cls(
            id=doc_id,
            event_id=str(data.get("eventId") or ""),
            event_date=calendar_day(_stored_datetime(data, "eventDate", owner)),
            user_id=str(data.get("userId") or ""),
            session_type=str(data.get("sessionType") or "").upper(),
            is_present=bool(data.get("isPresent")),
            marked_at=_stored_datetime(data, "markedAt", owner),
            marked_by=str(data.get("markedBy") or ""),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "eventId": self.event_id,
            "eventDate": day_start(self.event_date) if self.event_date else None,
            "userId": self.user_id,
            "sessionType": self.session_type,
            "isPresent": bool(self.is_present),
            "markedAt": self.marked_at,
            "markedBy": self.marked_by,
        }


__all__ = [
    "AttendanceRecord",
    "Brigade",
    "Event",
    "EventDay",
    "SESSION_AN",
    "SESSION_FN",
    "SESSION_TYPES",
    "Session",
    "User",
    "calendar_day",
    "day_start",
    "to_datetime_any",
]
