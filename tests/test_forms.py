from datetime import date

import pytest

from tracker.forms import (
    REQUIRED_FIELDS_MSG,
    ValidationError,
    build_event_days,
    validate_brigade_name,
    validate_event,
    validate_session_window,
    validate_user_fields,
)
from tracker.models import Brigade, EventDay, Session


def test_validate_user_fields_strips_values():
    user = validate_user_fields(" Asha ", "25BBA001 ", "a@x.io", " Tech ")
    assert (user.full_name, user.roll_number, user.brigade_name) == ("Asha", "25BBA001", "Tech")


@pytest.mark.parametrize("field", range(4))
def test_validate_user_fields_requires_every_field(field):
    values = ["Asha", "25BBA001", "a@x.io", "Tech"]
    values[field] = "   "
    with pytest.raises(ValidationError, match=REQUIRED_FIELDS_MSG):
        validate_user_fields(*values)


def test_brigade_name_unique_among_active_brigades():
    existing = [Brigade(id="b1", name="Tech Brigade"), Brigade(id="b2", name="Old", is_active=False)]
    with pytest.raises(ValidationError, match="already exists"):
        validate_brigade_name(" tech brigade ", existing)
    assert validate_brigade_name("old", existing).name == "old"
    with pytest.raises(ValidationError, match="Please enter a brigade name"):
        validate_brigade_name("  ", existing)


def test_build_event_days_uses_default_windows(monkeypatch):
    monkeypatch.setenv("DEFAULT_AN_WINDOW", "14:00-17:30")
    days = build_event_days(date(2025, 7, 1), date(2025, 7, 3))
    assert [d.date for d in days] == [date(2025, 7, 1), date(2025, 7, 2), date(2025, 7, 3)]
    assert (days[0].fn_session.start_time, days[0].fn_session.end_time) == ("09:00", "12:00")
    assert (days[0].an_session.start_time, days[0].an_session.end_time) == ("14:00", "17:30")
    assert all(d.fn_session.is_active and d.an_session.is_active for d in days)


def test_build_event_days_single_day():
    assert len(build_event_days(date(2025, 7, 1), date(2025, 7, 1))) == 1


def test_build_event_days_rejects_reversed_range():
    with pytest.raises(ValidationError, match="End date must be after start date"):
        build_event_days(date(2025, 7, 3), date(2025, 7, 1))


def test_validate_session_window_rejects_overnight():
    with pytest.raises(ValidationError, match="end time must not be before start time"):
        validate_session_window("22:00", "01:00", "FN")
    with pytest.raises(ValidationError):
        validate_session_window("nine", "12:00", "FN")


def test_validate_event():
    days = build_event_days(date(2025, 7, 1), date(2025, 7, 2))
    event = validate_event("  Orientation ", date(2025, 7, 1), date(2025, 7, 2), days)
    assert event.name == "Orientation"
    assert len(event.days) == 2

    with pytest.raises(ValidationError, match=REQUIRED_FIELDS_MSG):
        validate_event("", date(2025, 7, 1), date(2025, 7, 2), days)
    with pytest.raises(ValidationError, match="Duplicate event day"):
        validate_event("x", date(2025, 7, 1), date(2025, 7, 2), [days[0], days[0]])

    bad = [EventDay(date=date(2025, 7, 1), fn_session=Session(start_time="12:00", end_time="09:00"))]
    with pytest.raises(ValidationError, match="Jul 01 FN"):
        validate_event("x", date(2025, 7, 1), date(2025, 7, 1), bad)
