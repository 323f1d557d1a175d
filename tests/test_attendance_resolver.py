from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from tracker import attendance, firestore_utils
from tracker.attendance import (
    ACTION_CREATED,
    ACTION_UPDATED,
    attendance_key,
    bulk_mark,
    find_record,
    mark_or_update,
    resolve_marking_date,
    session_attendance_count,
    unmarked_users,
)
from tracker.config import ATTENDANCE_COL
from tracker.firestore_utils import WriteResult, load_attendance
from tracker.forms import ValidationError
from tracker.models import AttendanceRecord, Event, EventDay, User

IST = ZoneInfo("Asia/Kolkata")
DAY = date(2025, 7, 2)
NOW = datetime(2025, 7, 2, 4, 0, tzinfo=timezone.utc)


def _event(days=(DAY,)):
    return Event(
        id="ev1",
        name="Orientation",
        start_date=days[0],
        end_date=days[-1],
        days=[EventDay(date=d) for d in days],
    )


def _user(uid="u1", name="Asha"):
    return User(id=uid, full_name=name, roll_number="25BBA001", email=f"{uid}@x.io", brigade_name="Tech")


def _record(rid="r1", user_id="u1", session="FN", day=DAY, present=True, event_id="ev1", marked_at=NOW):
    return AttendanceRecord(
        id=rid,
        event_id=event_id,
        event_date=day,
        user_id=user_id,
        session_type=session,
        is_present=present,
        marked_at=marked_at,
        marked_by="admin",
    )


def test_find_record_matches_calendar_day_not_instant():
    records = [_record()]
    late_evening = datetime(2025, 7, 2, 21, 15, tzinfo=IST)
    assert find_record(records, "u1", "FN", late_evening) is records[0]
    assert find_record(records, "u1", "FN", DAY) is records[0]


def test_find_record_uses_target_zone_for_instants():
    records = [_record()]
    # 20:00 UTC on Jul 1 is already Jul 2 in the target zone.
    assert find_record(records, "u1", "FN", datetime(2025, 7, 1, 20, 0, tzinfo=timezone.utc)) is records[0]
    assert find_record(records, "u1", "FN", datetime(2025, 7, 1, 12, 0, tzinfo=timezone.utc)) is None


def test_find_record_filters_user_session_and_event():
    records = [_record("a", session="AN"), _record("b", user_id="u2"), _record("c", event_id="ev2")]
    assert find_record(records, "u1", "FN", DAY) is records[2]
    assert find_record(records, "u1", "FN", DAY, event_id="ev1") is None
    assert find_record(records, "u1", "AN", DAY, event_id="ev1") is records[0]


def test_find_record_without_date_returns_first_match():
    records = [_record("a", day=date(2025, 7, 1)), _record("b")]
    assert find_record(records, "u1", "FN") is records[0]


def test_find_record_skips_records_without_a_date():
    records = [_record("a", day=None), _record("b")]
    assert find_record(records, "u1", "FN", DAY) is records[1]


def test_attendance_key_is_deterministic():
    assert attendance_key("ev1", DAY, "u1", "FN") == "ev1__2025-07-02__u1__FN"
    assert attendance_key("ev/1", DAY, "u 1", "AN") == "ev_1__2025-07-02__u_1__AN"


def test_mark_then_update_leaves_one_record(fake_db):
    event, user = _event(), _user()

    first = mark_or_update([], event, user, "FN", DAY, True, now=NOW)
    assert first.action == ACTION_CREATED
    assert first.success

    snapshot = load_attendance()
    assert len(snapshot) == 1
    assert snapshot[0].is_present is True
    assert snapshot[0].event_date == DAY
    assert snapshot[0].marked_by == "admin"

    second = mark_or_update(snapshot, event, user, "FN", DAY, False, now=NOW)
    assert second.action == ACTION_UPDATED
    assert second.record_id == first.record_id

    after = load_attendance()
    assert len(after) == 1
    assert after[0].is_present is False


def test_stale_snapshot_conflict_updates_instead_of_duplicating(fake_db):
    event, user = _event(), _user()
    mark_or_update([], event, user, "FN", DAY, True, now=NOW)

    # A second admin still holds the empty snapshot.
    result = mark_or_update([], event, user, "FN", DAY, False, now=NOW)

    assert result.action == ACTION_UPDATED
    assert result.success
    records = load_attendance()
    assert len(records) == 1
    assert records[0].is_present is False


def test_mark_stores_calendar_day_at_target_midnight(fake_db):
    mark_or_update([], _event(), _user(), "AN", DAY, True, now=NOW)
    (payload,) = fake_db.store[ATTENDANCE_COL].values()
    assert payload["eventDate"] == datetime(2025, 7, 2, tzinfo=IST)
    assert payload["sessionType"] == "AN"
    assert payload["markedAt"] == NOW


def test_mark_uses_configured_marked_by(fake_db, monkeypatch):
    monkeypatch.setenv("ATTENDANCE_MARKED_BY", "lead-desk")
    mark_or_update([], _event(), _user(), "FN", DAY, True, now=NOW)
    (payload,) = fake_db.store[ATTENDANCE_COL].values()
    assert payload["markedBy"] == "lead-desk"


def test_mark_reports_backend_failure(monkeypatch):
    monkeypatch.setattr(
        firestore_utils, "create_attendance", lambda key, payload: WriteResult(False, id=key, error="offline")
    )
    result = mark_or_update([], _event(), _user(), "FN", DAY, True, now=NOW)
    assert result.success is False
    assert result.error == "offline"


def test_bulk_mark_requires_selection():
    with pytest.raises(ValidationError, match="Please select users first"):
        bulk_mark([], _event(), [_user()], [], "FN", DAY, True)


def test_bulk_mark_reports_partial_failure(monkeypatch):
    users = [_user("u1"), _user("u2"), _user("u3")]

    def fake_create(key, payload):
        if payload["userId"] == "u2":
            return WriteResult(False, id=key, error="denied")
        return WriteResult(True, id=key, count=1)

    monkeypatch.setattr(attendance.firestore_utils, "create_attendance", fake_create)
    outcome = bulk_mark([], _event(), users, ["u1", "u2", "u3", "ghost"], "FN", DAY, True, now=NOW)

    assert outcome.succeeded == ["u1", "u3"]
    assert outcome.failed == {"u2": "denied"}
    assert outcome.skipped == ["ghost"]
    assert outcome.success is False


def test_bulk_mark_mixes_create_and_update(fake_db):
    event = _event()
    users = [_user("u1"), _user("u2")]
    mark_or_update([], event, users[0], "AN", DAY, True, now=NOW)
    snapshot = load_attendance()

    outcome = bulk_mark(snapshot, event, users, ["u1", "u2"], "AN", DAY, False, now=NOW)

    assert outcome.success
    records = load_attendance()
    assert len(records) == 2
    assert all(record.is_present is False for record in records)


def test_unmarked_users_and_counts():
    users = [_user("u1"), _user("u2")]
    records = [_record("r1", user_id="u1", present=True), _record("r2", user_id="u1", session="AN", present=False)]
    assert [u.id for u in unmarked_users(users, records, "FN", DAY, event_id="ev1")] == ["u2"]
    assert session_attendance_count(records, "ev1", DAY, "FN") == 1
    assert session_attendance_count(records, "ev1", DAY, "AN") == 0


def test_resolve_marking_date():
    event = _event(days=(date(2025, 7, 1), DAY, date(2025, 7, 3)))
    assert resolve_marking_date(event, NOW) == DAY
    outside = datetime(2025, 8, 1, 4, 0, tzinfo=timezone.utc)
    assert resolve_marking_date(event, outside) == date(2025, 7, 1)
    assert resolve_marking_date(Event(id="e", name="Empty", start_date=None, end_date=None), NOW) is None
