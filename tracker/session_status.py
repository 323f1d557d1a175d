"""Session time-window evaluation.

All comparisons happen in minutes since midnight in the configured target
timezone, never in the caller's local zone, so every admin sees the same
phase for the same wall-clock inputs.  The reference instant is always
passed in by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from typing import Optional

from .config import get_timezone
from .models import Session

PHASE_UPCOMING = "upcoming"
PHASE_ACTIVE = "active"
PHASE_ENDED = "ended"

_MESSAGES = {
    PHASE_UPCOMING: "Session hasn't started yet",
    PHASE_ACTIVE: "Session is active",
    PHASE_ENDED: "Session has ended",
}


class InvalidSessionWindow(ValueError):
    """Raised for windows that end before they start (overnight windows)."""


@dataclass(frozen=True)
class SessionStatus:
    phase: str
    can_mark: bool
    message: str


def parse_hhmm(value: str) -> int:
    """Return minutes since midnight for an ``"HH:MM"`` string.

    A trailing seconds component is accepted and ignored.
    """

    parts = str(value or "").strip().split(":")
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time {value!r}; expected HH:MM")
    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError as exc:
        raise ValueError(f"Invalid time {value!r}; expected HH:MM") from exc
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Time out of range: {value!r}")
    return hour * 60 + minute


def window_minutes(start_time: str, end_time: str) -> tuple[int, int]:
    start, end = parse_hhmm(start_time), parse_hhmm(end_time)
    if end < start:
        raise InvalidSessionWindow(
            f"Session window {start_time}-{end_time} ends before it starts; "
            "overnight sessions are not supported"
        )
    return start, end


def to_zone(now: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Convert ``now`` to the target zone; naive values are taken as UTC."""

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz or get_timezone())


def today_in_zone(now: datetime, tz: Optional[tzinfo] = None) -> date:
    return to_zone(now, tz).date()


def _minutes_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def evaluate(
    start_time: str,
    end_time: str,
    now: datetime,
    event_date: Optional[date] = None,
    *,
    is_active: bool = True,
    tz: Optional[tzinfo] = None,
) -> SessionStatus:
    """Classify a session window relative to ``now``.

    With ``event_date`` the day is compared first: past days are always
    ``ended`` and future days always ``upcoming``.  Only a session on the
    current day consults the ``HH:MM`` window, whose bounds are inclusive.
    ``can_mark`` additionally requires the administrator switch
    ``is_active``.
    """

    start, end = window_minutes(start_time, end_time)
    local_now = to_zone(now, tz)

    if event_date is not None and event_date < local_now.date():
        phase = PHASE_ENDED
    elif event_date is not None and event_date > local_now.date():
        phase = PHASE_UPCOMING
    else:
        current = _minutes_of_day(local_now)
        if current < start:
            phase = PHASE_UPCOMING
        elif current > end:
            phase = PHASE_ENDED
        else:
            phase = PHASE_ACTIVE

    return SessionStatus(
        phase=phase,
        can_mark=bool(is_active) and phase == PHASE_ACTIVE,
        message=_MESSAGES[phase],
    )


def evaluate_session(
    session: Session,
    now: datetime,
    event_date: Optional[date] = None,
    *,
    tz: Optional[tzinfo] = None,
) -> SessionStatus:
    return evaluate(
        session.start_time,
        session.end_time,
        now,
        event_date,
        is_active=session.is_active,
        tz=tz,
    )


def is_within_time_range(
    start_time: str, end_time: str, now: datetime, *, tz: Optional[tzinfo] = None
) -> bool:
    return evaluate(start_time, end_time, now, tz=tz).phase == PHASE_ACTIVE


def session_badges(status: SessionStatus, session: Session) -> list[str]:
    """Extra badge labels shown beside the phase message."""

    if not session.is_active:
        return ["Suspended"]
    if status.phase == PHASE_ACTIVE:
        return ["Active"]
    return []


def _format_hhmm(value: str) -> str:
    minutes = parse_hhmm(value)
    hour, minute = divmod(minutes, 60)
    ampm = "PM" if hour >= 12 else "AM"
    return f"{hour % 12 or 12}:{minute:02d} {ampm}"


def format_time_range(start_time: str, end_time: str) -> str:
    """``"09:00", "12:00"`` -> ``"9:00 AM - 12:00 PM"``."""

    return f"{_format_hhmm(start_time)} - {_format_hhmm(end_time)}"


def format_clock(now: datetime, tz: Optional[tzinfo] = None) -> str:
    """12-hour wall clock in the target zone, e.g. ``"10:30:05 AM"``."""

    local_now = to_zone(now, tz)
    return f"{local_now.hour % 12 or 12}:{local_now:%M:%S} {'PM' if local_now.hour >= 12 else 'AM'}"


__all__ = [
    "InvalidSessionWindow",
    "PHASE_ACTIVE",
    "PHASE_ENDED",
    "PHASE_UPCOMING",
    "SessionStatus",
    "evaluate",
    "evaluate_session",
    "format_clock",
    "format_time_range",
    "is_within_time_range",
    "parse_hhmm",
    "session_badges",
    "to_zone",
    "today_in_zone",
    "window_minutes",
]
