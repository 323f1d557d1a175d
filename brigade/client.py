"""Firestore client bootstrap."""

import logging
from typing import Optional

import firebase_admin
import streamlit as st
from firebase_admin import credentials, firestore

_db_client: Optional[firestore.Client] = None
db: Optional[firestore.Client] = None  # tests assign a fake client here


def _credentials():
    """Service account from ``st.secrets["firebase"]`` or application defaults."""

    try:
        cred_dict = dict(st.secrets["firebase"])
    except Exception:  # no secrets.toml or no [firebase] table
        logging.info("No [firebase] secrets found; using application default credentials")
        return None
    return credentials.Certificate(cred_dict)


def get_db() -> firestore.Client:
    """Return a cached Firestore client."""

    global _db_client, db
    if db is not None:
        return db
    if _db_client is not None:
        db = _db_client
        return _db_client
    try:  # pragma: no cover - runtime side effects
        if not firebase_admin._apps:  # guard against re-init on reruns
            cred = _credentials()
            if cred is None:
                firebase_admin.initialize_app()
            else:
                firebase_admin.initialize_app(cred)
        _db_client = firestore.client()
        db = _db_client
        return _db_client
    except Exception as e:  # pragma: no cover - streamlit UI feedback
        logging.exception("Firebase initialisation failed")
        st.error(f"Firebase init failed: {e}")
        raise RuntimeError("Firebase initialization failed") from e
