"""Application configuration utilities.

Settings are looked up in the process environment first, then in
``st.secrets`` and finally fall back to the defaults below.  Keeping the
lookup here lets the pure modules import a single source of truth without
pulling in the Streamlit entrypoint.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import streamlit as st

DEFAULT_TIMEZONE = "Asia/Kolkata"
DEFAULT_MARKED_BY = "admin"
DEFAULT_FN_WINDOW = ("09:00", "12:00")
DEFAULT_AN_WINDOW = ("13:00", "16:00")

EVENTS_COL = "events"
USERS_COL = "users"
BRIGADES_COL = "brigades"
ATTENDANCE_COL = "attendance"

# Firestore allows 500 writes per batch; stay below it.
BATCH_LIMIT = 450


def get_setting(name: str, default: Any = None) -> Any:
    """Return ``name`` from the environment, ``st.secrets`` or ``default``."""

    value = os.environ.get(name)
    if value not in (None, ""):
        return value
    try:
        value = st.secrets.get(name)
    except Exception:  # secrets.toml is optional
        value = None
    return default if value in (None, "") else value


def get_timezone() -> ZoneInfo:
    """Return the fixed timezone used for all session calculations."""

    name = str(get_setting("ATTENDANCE_TIMEZONE", DEFAULT_TIMEZONE))
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logging.warning("Unknown ATTENDANCE_TIMEZONE %r; using %s", name, DEFAULT_TIMEZONE)
        return ZoneInfo(DEFAULT_TIMEZONE)


def get_marked_by() -> str:
    return str(get_setting("ATTENDANCE_MARKED_BY", DEFAULT_MARKED_BY))


def _window(name: str, default: Tuple[str, str]) -> Tuple[str, str]:
    raw = str(get_setting(name, "") or "").strip()
    if not raw:
        return default
    start, sep, end = raw.partition("-")
    if not sep or not start.strip() or not end.strip():
        logging.warning("Ignoring malformed %s=%r (expected HH:MM-HH:MM)", name, raw)
        return default
    return start.strip(), end.strip()


def default_fn_window() -> Tuple[str, str]:
    return _window("DEFAULT_FN_WINDOW", DEFAULT_FN_WINDOW)


def default_an_window() -> Tuple[str, str]:
    return _window("DEFAULT_AN_WINDOW", DEFAULT_AN_WINDOW)


def get_log_level() -> int:
    name = str(get_setting("LOG_LEVEL", "INFO")).upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


__all__ = [
    "ATTENDANCE_COL",
    "BATCH_LIMIT",
    "BRIGADES_COL",
    "EVENTS_COL",
    "USERS_COL",
    "default_an_window",
    "default_fn_window",
    "get_log_level",
    "get_marked_by",
    "get_setting",
    "get_timezone",
]
