"""Streamlit entrypoint for the brigade attendance tracker."""

import logging

import streamlit as st

from tracker.config import get_log_level
from tracker.ui.dashboard import render_dashboard
from tracker.ui.events import render_events
from tracker.ui.layout import render_header, render_navigation
from tracker.ui.marking import render_marking
from tracker.ui.records import render_records
from tracker.ui.users import render_users

logging.basicConfig(
    level=get_log_level(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

PAGE_RENDERERS = {
    "Dashboard": render_dashboard,
    "Events": render_events,
    "Users": render_users,
    "Attendance": render_marking,
    "Attendance Records": render_records,
}


def main() -> None:
    st.set_page_config(page_title="Brigade Attendance", page_icon="📋", layout="wide")
    render_header()
    page = render_navigation()
    PAGE_RENDERERS[page]()

    if st.session_state.pop("need_rerun", False):
        st.rerun()


if __name__ == "__main__":
    main()
