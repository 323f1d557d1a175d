"""Dashboard page: headline numbers and charts for ongoing events."""

from __future__ import annotations

from datetime import datetime, timezone

import pandas as pd
import streamlit as st

from tracker import stats
from tracker.session_status import today_in_zone

from . import data


def render_dashboard(now: datetime | None = None) -> None:
    now = now or datetime.now(timezone.utc)
    today = today_in_zone(now)
    events, users, records = data.events(), data.users(), data.attendance()

    headline = stats.dashboard_stats(events, users, records, today)
    cols = st.columns(4)
    cols[0].metric("Ongoing Events", headline["events"])
    cols[1].metric("Brigade Leads", headline["users"])
    cols[2].metric("Total Attendance", headline["present"])
    cols[3].metric("Avg Attendance", f"{headline['average']}%")

    session_data = stats.session_chart_data(events, records, today)
    brigade_data = stats.brigade_chart_data(events, users, records, today)

    left, right = st.columns(2)
    with left:
        st.subheader("Session attendance")
        if session_data:
            st.bar_chart(pd.DataFrame(session_data).set_index("Event"))
        else:
            st.info("No ongoing events.")
    with right:
        st.subheader("Attendance by brigade")
        if brigade_data:
            st.bar_chart(pd.DataFrame(brigade_data).set_index("Brigade"))
        else:
            st.info("No brigade leads registered yet.")
