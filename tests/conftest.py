import itertools

import pytest
from google.api_core.exceptions import AlreadyExists

from tracker import firestore_utils


@pytest.fixture(autouse=True)
def _fixed_settings(monkeypatch):
    monkeypatch.setenv("ATTENDANCE_TIMEZONE", "Asia/Kolkata")
    monkeypatch.setenv("ATTENDANCE_MARKED_BY", "admin")
    for name in ("DEFAULT_FN_WINDOW", "DEFAULT_AN_WINDOW", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


class FakeSnapshot:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = dict(data)

    def to_dict(self):
        return dict(self._data)


class FakeDocRef:
    def __init__(self, collection, doc_id):
        self._collection = collection
        self.id = doc_id

    @property
    def _docs(self):
        return self._collection.db.store.setdefault(self._collection.name, {})

    def set(self, payload):
        self._docs[self.id] = dict(payload)

    def create(self, payload):
        if self.id in self._docs:
            raise AlreadyExists(f"{self.id} already exists")
        self._docs[self.id] = dict(payload)

    def update(self, updates):
        if self.id not in self._docs:
            raise KeyError(self.id)
        self._docs[self.id].update(updates)

    def delete(self):
        self._docs.pop(self.id, None)


class FakeQuery:
    def __init__(self, collection, filters=()):
        self._collection = collection
        self._filters = tuple(filters)

    def where(self, *args, filter=None):
        return FakeQuery(self._collection, self._filters + (filter,))

    def order_by(self, field, direction=None):
        if self._collection.db.fail_ordered:
            from google.api_core.exceptions import FailedPrecondition

            raise FailedPrecondition("index required")
        return FakeOrderedQuery(self, field)

    def _matches(self, data):
        return all(data.get(f.field_path) == f.value for f in self._filters)

    def stream(self):
        docs = self._collection.db.store.get(self._collection.name, {})
        return [FakeSnapshot(doc_id, data) for doc_id, data in docs.items() if self._matches(data)]

    def on_snapshot(self, callback):
        self._collection.db.watchers.append((self, callback))
        callback(self.stream(), [], None)
        return FakeWatch()


class FakeOrderedQuery:
    def __init__(self, query, field):
        self._query = query
        self._field = field

    def stream(self):
        return sorted(
            self._query.stream(),
            key=lambda snap: firestore_utils._snapshot_sort_key(snap, self._field),
            reverse=True,
        )


class FakeCollection(FakeQuery):
    def __init__(self, db, name):
        super().__init__(self)
        self.db = db
        self.name = name

    def document(self, doc_id=None):
        return FakeDocRef(self, doc_id or f"{self.name}-{next(self.db.ids)}")


class FakeBatch:
    def __init__(self, db):
        self.db = db
        self.ops = []

    def set(self, ref, payload):
        self.ops.append(("set", ref, payload))

    def delete(self, ref):
        self.ops.append(("delete", ref, None))

    def commit(self):
        if self.db.fail_commit_after is not None and self.db.commits >= self.db.fail_commit_after:
            raise RuntimeError("commit rejected")
        for op, ref, payload in self.ops:
            if op == "set":
                ref.set(payload)
            else:
                ref.delete()
        self.db.commits += 1
        self.db.batch_sizes.append(len(self.ops))


class FakeWatch:
    def __init__(self):
        self.unsubscribed = False

    def unsubscribe(self):
        self.unsubscribed = True


class FakeFirestore:
    def __init__(self):
        self.store = {}
        self.ids = itertools.count(1)
        self.fail_ordered = False
        self.fail_commit_after = None
        self.commits = 0
        self.batch_sizes = []
        self.watchers = []

    def collection(self, name):
        return FakeCollection(self, name)

    def batch(self):
        return FakeBatch(self)


@pytest.fixture
def fake_db(monkeypatch):
    db = FakeFirestore()
    monkeypatch.setattr(firestore_utils, "db", db)
    return db
