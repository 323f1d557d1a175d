from datetime import date, datetime, timedelta, timezone

from tracker.attendance import (
    cleanup_duplicates,
    duplicate_summary,
    find_duplicates,
    surplus_records,
)
from tracker.config import ATTENDANCE_COL
from tracker.firestore_utils import load_attendance
from tracker.models import AttendanceRecord

BASE = datetime(2025, 7, 2, 4, 0, tzinfo=timezone.utc)


def _rec(rid, user_id="u1", session="FN", day=date(2025, 7, 2), minutes=0):
    return AttendanceRecord(
        id=rid,
        event_id="ev1",
        event_date=day,
        user_id=user_id,
        session_type=session,
        is_present=True,
        marked_at=BASE + timedelta(minutes=minutes),
        marked_by="admin",
    )


def _seed(db, records):
    db.store[ATTENDANCE_COL] = {record.id: record.to_payload() for record in records}


def test_find_duplicates_groups_by_tuple():
    records = [_rec("a"), _rec("b"), _rec("c", session="AN"), _rec("d", user_id="u2")]
    groups = find_duplicates(records)
    assert list(groups) == [("ev1", date(2025, 7, 2), "u1", "FN")]
    assert [r.id for r in groups[("ev1", date(2025, 7, 2), "u1", "FN")]] == ["a", "b"]


def test_duplicate_summary_counts_surplus_per_day_and_session():
    records = [
        _rec("a"), _rec("b"), _rec("c"),
        _rec("d", session="AN"), _rec("e", session="AN"),
        _rec("f", day=date(2025, 7, 1)), _rec("g", day=date(2025, 7, 1)),
    ]
    assert duplicate_summary(records) == {
        (date(2025, 7, 1), "FN"): 1,
        (date(2025, 7, 2), "AN"): 1,
        (date(2025, 7, 2), "FN"): 2,
    }


def test_no_duplicates_gives_empty_summary():
    assert duplicate_summary([_rec("a"), _rec("b", session="AN")]) == {}


def test_surplus_keeps_latest_mark():
    records = [_rec("old", minutes=0), _rec("new", minutes=5), _rec("mid", minutes=2)]
    assert sorted(r.id for r in surplus_records(records)) == ["mid", "old"]


def test_cleanup_duplicates_deletes_surplus(fake_db):
    records = [_rec("old", minutes=0), _rec("new", minutes=5), _rec("other", user_id="u2")]
    _seed(fake_db, records)

    result = cleanup_duplicates(load_attendance())

    assert result.success
    assert result.count == 1
    assert sorted(fake_db.store[ATTENDANCE_COL]) == ["new", "other"]
    assert duplicate_summary(load_attendance()) == {}


def test_cleanup_without_duplicates_does_not_write(fake_db):
    _seed(fake_db, [_rec("a")])
    result = cleanup_duplicates(load_attendance())
    assert result.success
    assert result.count == 0
    assert fake_db.commits == 0


def test_cleanup_reports_partial_progress(fake_db, monkeypatch):
    from tracker import firestore_utils

    monkeypatch.setattr(firestore_utils, "BATCH_LIMIT", 2)
    records = [_rec(f"r{i}", minutes=i) for i in range(6)]
    _seed(fake_db, records)
    fake_db.fail_commit_after = 1

    result = cleanup_duplicates(load_attendance())

    assert result.success is False
    assert result.count == 2
    assert len(fake_db.store[ATTENDANCE_COL]) == 4
