"""Collection snapshots shared by every page.

One live listener per collection feeds a :class:`CollectionMirror`; pages
read the mirror on each rerun.  Until a listener has delivered its first
snapshot the page falls back to a one-off query.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import streamlit as st

from tracker import firestore_utils
from tracker.config import ATTENDANCE_COL, BRIGADES_COL, EVENTS_COL, USERS_COL
from tracker.firestore_utils import CollectionMirror

COLLECTIONS = (EVENTS_COL, USERS_COL, BRIGADES_COL, ATTENDANCE_COL)


@st.cache_resource(show_spinner=False)
def _mirrors() -> Dict[str, CollectionMirror]:
    mirrors: Dict[str, CollectionMirror] = {}
    for name in COLLECTIONS:
        try:
            mirrors[name] = CollectionMirror(name).start()
        except Exception:
            logging.exception("Could not start live listener for %s", name)
    return mirrors


def collection_snapshot(name: str) -> List[Any]:
    mirror = _mirrors().get(name)
    if mirror is not None and mirror.ready:
        return mirror.items()
    return firestore_utils.load_collection(name)


def events():
    return collection_snapshot(EVENTS_COL)


def users():
    return collection_snapshot(USERS_COL)


def brigades():
    return collection_snapshot(BRIGADES_COL)


def attendance(event_id: str | None = None):
    records = collection_snapshot(ATTENDANCE_COL)
    if event_id is None:
        return records
    return [record for record in records if record.event_id == event_id]
