"""Firestore access for events, users, brigades and attendance.

Every read returns domain objects from :mod:`tracker.models`; every write
returns a :class:`WriteResult` instead of raising so the UI can turn a
backend failure into a toast.  Nothing here retries: a failed write simply
never shows up in the next snapshot.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from firebase_admin import firestore
from google.api_core.exceptions import AlreadyExists, FailedPrecondition
from google.cloud.firestore_v1 import FieldFilter

from brigade.client import get_db

from .config import ATTENDANCE_COL, BATCH_LIMIT, BRIGADES_COL, EVENTS_COL, USERS_COL
from .models import (
    AttendanceRecord,
    Brigade,
    Event,
    EventDay,
    SESSION_FN,
    User,
    calendar_day,
    to_datetime_any,
)

db = None  # type: ignore

_FACTORIES: Dict[str, Callable[[str, Dict[str, Any]], Any]] = {
    EVENTS_COL: Event.from_snapshot,
    USERS_COL: User.from_snapshot,
    BRIGADES_COL: Brigade.from_snapshot,
    ATTENDANCE_COL: AttendanceRecord.from_snapshot,
}

_ORDER_FIELDS = {
    EVENTS_COL: "createdAt",
    USERS_COL: "createdAt",
    BRIGADES_COL: "createdAt",
    ATTENDANCE_COL: "markedAt",
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _get_db():
    return db if db is not None else get_db()


@dataclass
class WriteResult:
    success: bool
    id: Optional[str] = None
    error: Optional[str] = None
    count: int = 0
    conflict: bool = False


def _failure(action: str, exc: Exception, doc_id: Optional[str] = None) -> WriteResult:
    logging.warning("Firestore %s failed for %s: %s", action, doc_id or "<new>", exc)
    return WriteResult(False, id=doc_id, error=str(exc) or exc.__class__.__name__)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def _firestore_where(query, field: str, op: str, value: Any):
    return query.where(filter=FieldFilter(field, op, value))


def _snapshot_sort_key(snap: Any, order_field: str) -> datetime:
    try:
        data = snap.to_dict() or {}
    except Exception:
        data = {}
    return to_datetime_any(data.get(order_field)) or _EPOCH


def stream_ordered(query: Any, order_field: str) -> List[Any]:
    """Return snapshots ordered by ``order_field`` descending.

    Ordered queries combined with a filter need a composite index; when
    Firestore rejects the query the unordered stream is sorted locally.
    """

    try:
        return list(
            query.order_by(order_field, direction=firestore.Query.DESCENDING).stream()
        )
    except FailedPrecondition:
        logging.info("Missing index for %s ordering; sorting client-side", order_field)
        snapshots = list(query.stream())
        snapshots.sort(key=lambda snap: _snapshot_sort_key(snap, order_field), reverse=True)
        return snapshots


def convert_snapshots(collection: str, snapshots: Iterable[Any]) -> List[Any]:
    factory = _FACTORIES[collection]
    items = []
    for snap in snapshots:
        if snap is None:
            continue
        try:
            data = snap.to_dict() or {}
        except Exception:
            data = {}
        items.append(factory(getattr(snap, "id", ""), data if isinstance(data, dict) else {}))
    return items


def _query_for(db_client, collection: str, event_id: Optional[str] = None):
    query = db_client.collection(collection)
    if event_id and collection == ATTENDANCE_COL:
        query = _firestore_where(query, "eventId", "==", event_id)
    return query


def load_collection(collection: str, *, event_id: Optional[str] = None) -> List[Any]:
    """Return every document of ``collection`` newest first.

    Read failures are logged and produce an empty list.
    """

    db_client = _get_db()
    if db_client is None:
        return []
    try:
        snapshots = stream_ordered(
            _query_for(db_client, collection, event_id), _ORDER_FIELDS[collection]
        )
    except Exception:
        logging.exception("Failed to load %s", collection)
        return []
    return convert_snapshots(collection, snapshots)


def load_events() -> List[Event]:
    return load_collection(EVENTS_COL)


def load_users() -> List[User]:
    return load_collection(USERS_COL)


def load_brigades() -> List[Brigade]:
    return load_collection(BRIGADES_COL)


def load_attendance(event_id: Optional[str] = None) -> List[AttendanceRecord]:
    return load_collection(ATTENDANCE_COL, event_id=event_id)


# ---------------------------------------------------------------------------
# Live subscriptions
# ---------------------------------------------------------------------------


class CollectionMirror:
    """Latest full snapshot of one collection, fed by a live listener.

    The listener callback replaces the whole list on every change; nothing
    else mutates it.
    """

    def __init__(self, collection: str, *, event_id: Optional[str] = None) -> None:
        self.collection = collection
        self.event_id = event_id
        self.version = 0
        self._items: List[Any] = []
        self._lock = threading.Lock()
        self._watch = None

    @property
    def ready(self) -> bool:
        return self.version > 0

    def replace(self, items: Sequence[Any]) -> None:
        with self._lock:
            self._items = list(items)
            self.version += 1

    def items(self) -> List[Any]:
        with self._lock:
            return list(self._items)

    def start(self) -> "CollectionMirror":
        if self._watch is None:
            self._watch = watch_collection(
                self.collection, self.replace, event_id=self.event_id
            )
        return self

    def stop(self) -> None:
        if self._watch is not None:
            self._watch.unsubscribe()
            self._watch = None


def watch_collection(
    collection: str,
    callback: Callable[[List[Any]], None],
    *,
    event_id: Optional[str] = None,
):
    """Subscribe to ``collection`` and pass each full snapshot to ``callback``.

    Returns the Firestore watch handle (call ``unsubscribe()`` to stop) or
    ``None`` when no client is available.
    """

    db_client = _get_db()
    if db_client is None:
        return None
    order_field = _ORDER_FIELDS[collection]

    def _on_snapshot(col_snapshot, _changes, _read_time):
        items = convert_snapshots(collection, col_snapshot)
        items.sort(
            key=lambda item: getattr(item, _attr_for(order_field)) or _EPOCH,
            reverse=True,
        )
        try:
            callback(items)
        except Exception:
            logging.exception("Snapshot callback failed for %s", collection)

    return _query_for(db_client, collection, event_id).on_snapshot(_on_snapshot)


def _attr_for(order_field: str) -> str:
    return "marked_at" if order_field == "markedAt" else "created_at"


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def _add(collection: str, payload: Dict[str, Any]) -> WriteResult:
    try:
        ref = _get_db().collection(collection).document()
        ref.set(payload)
        return WriteResult(True, id=ref.id, count=1)
    except Exception as exc:
        return _failure(f"add to {collection}", exc)


def _update(collection: str, doc_id: str, updates: Dict[str, Any]) -> WriteResult:
    try:
        _get_db().collection(collection).document(doc_id).update(updates)
        return WriteResult(True, id=doc_id, count=1)
    except Exception as exc:
        return _failure(f"update of {collection}", exc, doc_id)


def _delete(collection: str, doc_id: str) -> WriteResult:
    try:
        _get_db().collection(collection).document(doc_id).delete()
        return WriteResult(True, id=doc_id, count=1)
    except Exception as exc:
        return _failure(f"delete from {collection}", exc, doc_id)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def add_event(event: Event, *, now: Optional[datetime] = None) -> WriteResult:
    payload = event.to_payload()
    payload["createdAt"] = now or _now()
    return _add(EVENTS_COL, payload)


def _merge_days(stored_days: Sequence[Any], days: Sequence[EventDay]) -> List[Any]:
    """Overlay ``days`` onto the stored array, matched by calendar day.

    Stored entries that did not parse into an ``EventDay`` stay where they
    are. Days with no stored counterpart are appended.
    """

    pending = {day.date: day for day in days}
    merged: List[Any] = []
    for raw in stored_days:
        key = calendar_day(raw.get("date")) if isinstance(raw, dict) else None
        day = pending.pop(key, None) if key is not None else None
        merged.append(day.to_payload() if day is not None else raw)
    merged.extend(day.to_payload() for day in days if day.date in pending)
    return merged


def update_event_days(
    event_id: str, days: Sequence[EventDay], *, stored_days: Optional[Sequence[Any]] = None
) -> WriteResult:
    """Rewrite the ``days`` array of an event.

    Pass ``stored_days`` (``Event.stored_days``) to keep entries the app
    could not read; without it the array is replaced by ``days``.
    """

    if stored_days:
        payload = _merge_days(stored_days, days)
    else:
        payload = [day.to_payload() for day in days]
    return _update(EVENTS_COL, event_id, {"days": payload})


def set_session_active(
    event: Event, day_index: int, session_type: str, is_active: bool
) -> WriteResult:
    """Suspend or re-activate one session of one event day.

    Firestore cannot patch a single array element, so the whole ``days``
    array is rewritten. Stored days that failed to parse are kept in place.
    """

    days = list(event.days)
    day = days[day_index]
    updated = replace(day.session(session_type), is_active=is_active)
    if session_type == SESSION_FN:
        days[day_index] = replace(day, fn_session=updated)
    else:
        days[day_index] = replace(day, an_session=updated)
    return update_event_days(event.id, days, stored_days=event.stored_days)


def delete_event(event_id: str) -> WriteResult:
    return _delete(EVENTS_COL, event_id)


def add_user(user: User, *, now: Optional[datetime] = None) -> WriteResult:
    payload = user.to_payload()
    payload["createdAt"] = now or _now()
    return _add(USERS_COL, payload)


def add_users_bulk(users: Sequence[User], *, now: Optional[datetime] = None) -> WriteResult:
    """Create ``users`` with batched writes.

    Each batch commit is all-or-nothing; with more than ``BATCH_LIMIT``
    users earlier batches stay committed if a later one fails, and
    ``count`` reports how many were written.
    """

    created_at = now or _now()
    written = 0
    try:
        db_client = _get_db()
        users_ref = db_client.collection(USERS_COL)
        batch = db_client.batch()
        ops = 0
        for user in users:
            payload = user.to_payload()
            payload["createdAt"] = created_at
            batch.set(users_ref.document(), payload)
            ops += 1
            if ops >= BATCH_LIMIT:
                batch.commit()
                written += ops
                batch = db_client.batch()
                ops = 0
        if ops:
            batch.commit()
            written += ops
    except Exception as exc:
        result = _failure("bulk user import", exc)
        result.count = written
        return result
    return WriteResult(True, count=written)


def delete_user(user_id: str) -> WriteResult:
    return _delete(USERS_COL, user_id)


def add_brigade(brigade: Brigade, *, now: Optional[datetime] = None) -> WriteResult:
    payload = brigade.to_payload()
    payload["createdAt"] = now or _now()
    return _add(BRIGADES_COL, payload)


def delete_brigade(brigade_id: str) -> WriteResult:
    return _delete(BRIGADES_COL, brigade_id)


def create_attendance(doc_id: str, payload: Dict[str, Any]) -> WriteResult:
    """Create ``attendance/<doc_id>`` only if it does not exist yet.

    An existing document is reported with ``conflict=True`` rather than
    overwritten.
    """

    try:
        _get_db().collection(ATTENDANCE_COL).document(doc_id).create(payload)
        return WriteResult(True, id=doc_id, count=1)
    except AlreadyExists:
        return WriteResult(False, id=doc_id, error="already exists", conflict=True)
    except Exception as exc:
        return _failure("create of attendance", exc, doc_id)


def update_attendance(record_id: str, updates: Dict[str, Any]) -> WriteResult:
    return _update(ATTENDANCE_COL, record_id, updates)


def delete_attendance_bulk(record_ids: Sequence[str]) -> WriteResult:
    deleted = 0
    try:
        db_client = _get_db()
        attendance_ref = db_client.collection(ATTENDANCE_COL)
        batch = db_client.batch()
        ops = 0
        for record_id in record_ids:
            batch.delete(attendance_ref.document(record_id))
            ops += 1
            if ops >= BATCH_LIMIT:
                batch.commit()
                deleted += ops
                batch = db_client.batch()
                ops = 0
        if ops:
            batch.commit()
            deleted += ops
    except Exception as exc:
        result = _failure("bulk attendance delete", exc)
        result.count = deleted
        return result
    return WriteResult(True, count=deleted)


__all__ = [
    "CollectionMirror",
    "WriteResult",
    "add_brigade",
    "add_event",
    "add_user",
    "add_users_bulk",
    "convert_snapshots",
    "create_attendance",
    "delete_attendance_bulk",
    "delete_brigade",
    "delete_event",
    "delete_user",
    "load_attendance",
    "load_brigades",
    "load_collection",
    "load_events",
    "load_users",
    "set_session_active",
    "stream_ordered",
    "update_attendance",
    "update_event_days",
    "watch_collection",
]
