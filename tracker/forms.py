"""Validation for the admin forms.

Every check here runs before anything is written, so a rejected form has
no partial effect.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, List, Optional, Sequence

from .config import default_an_window, default_fn_window
from .models import Brigade, Event, EventDay, Session, User
from .session_status import InvalidSessionWindow, window_minutes


class ValidationError(ValueError):
    """A form value was missing or inconsistent."""


REQUIRED_FIELDS_MSG = "Please fill in all required fields"


def _clean(value: Optional[str]) -> str:
    return str(value or "").strip()


def validate_user_fields(
    full_name: str, roll_number: str, email: str, brigade_name: str
) -> User:
    """Return an unsaved :class:`User` built from the stripped form values."""

    values = [_clean(v) for v in (full_name, roll_number, email, brigade_name)]
    if not all(values):
        raise ValidationError(REQUIRED_FIELDS_MSG)
    name, roll, mail, brigade = values
    return User(id="", full_name=name, roll_number=roll, email=mail, brigade_name=brigade)


def validate_brigade_name(
    name: str, brigades: Iterable[Brigade], description: str = ""
) -> Brigade:
    """Reject empty names and names already used by an active brigade."""

    cleaned = _clean(name)
    if not cleaned:
        raise ValidationError("Please enter a brigade name")
    lowered = cleaned.lower()
    for brigade in brigades:
        if brigade.is_active and brigade.name.strip().lower() == lowered:
            raise ValidationError("Brigade with this name already exists")
    return Brigade(id="", name=cleaned, description=_clean(description), is_active=True)


def validate_session_window(start_time: str, end_time: str, label: str = "Session") -> None:
    try:
        window_minutes(start_time, end_time)
    except InvalidSessionWindow as exc:
        raise ValidationError(f"{label}: end time must not be before start time") from exc
    except ValueError as exc:
        raise ValidationError(f"{label}: {exc}") from exc


def _default_session(window) -> Session:
    start, end = window
    return Session(is_active=True, start_time=start, end_time=end, attendance_count=0)


def build_event_days(start: date, end: date) -> List[EventDay]:
    """One :class:`EventDay` per calendar day from ``start`` to ``end`` inclusive."""

    if start > end:
        raise ValidationError("End date must be after start date")
    fn_window, an_window = default_fn_window(), default_an_window()
    days = []
    current = start
    while current <= end:
        days.append(
            EventDay(
                date=current,
                fn_session=_default_session(fn_window),
                an_session=_default_session(an_window),
            )
        )
        current += timedelta(days=1)
    return days


def validate_event(
    name: str,
    start: Optional[date],
    end: Optional[date],
    days: Sequence[EventDay],
) -> Event:
    cleaned = _clean(name)
    if not cleaned or start is None or end is None or not days:
        raise ValidationError(REQUIRED_FIELDS_MSG)
    if start > end:
        raise ValidationError("End date must be after start date")
    seen = set()
    for day in days:
        if day.date in seen:
            raise ValidationError(f"Duplicate event day {day.date:%Y-%m-%d}")
        seen.add(day.date)
        label = f"{day.date:%b %d}"
        validate_session_window(day.fn_session.start_time, day.fn_session.end_time, f"{label} FN")
        validate_session_window(day.an_session.start_time, day.an_session.end_time, f"{label} AN")
    return Event(id="", name=cleaned, start_date=start, end_date=end, days=list(days))


__all__ = [
    "REQUIRED_FIELDS_MSG",
    "ValidationError",
    "build_event_days",
    "validate_brigade_name",
    "validate_event",
    "validate_session_window",
    "validate_user_fields",
]
