"""Header and sidebar navigation."""

from __future__ import annotations

from datetime import datetime, timezone

import streamlit as st

from tracker.config import get_timezone
from tracker.session_status import format_clock

PAGES = ("Dashboard", "Events", "Users", "Attendance", "Attendance Records")


@st.fragment(run_every="1s")
def _clock() -> None:
    now = datetime.now(timezone.utc)
    st.caption(f"🕒 {format_clock(now)} ({get_timezone().key})")


def render_header() -> None:
    left, right = st.columns([3, 1])
    with left:
        st.title("Brigade Attendance")
        st.caption("Attendance tracking for brigade leads and co-leads")
    with right:
        _clock()


def render_navigation() -> str:
    """Sidebar page switch; returns the selected page name."""

    return st.sidebar.radio("Navigate", PAGES, key="nav_page")
