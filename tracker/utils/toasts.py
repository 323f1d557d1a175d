import logging
from typing import Any, Optional

import streamlit as st


def toast_ok(msg: str) -> None:
    """Show a success toast."""
    st.toast(msg, icon="✅")


def toast_err(msg: str) -> None:
    """Show an error toast and log it.

    Parameters
    ----------
    msg:
        The message to display.
    """
    logging.info("User-facing error: %s", msg)
    st.toast(msg, icon="❌")


def toast_warn(msg: str) -> None:
    st.toast(msg, icon="⚠️")


def report_write(result: Any, success_msg: str, failure_msg: Optional[str] = None) -> bool:
    """Toast the outcome of a Firestore write and return ``result.success``.

    ``failure_msg`` defaults to the backend's own error text.
    """
    if getattr(result, "success", False):
        toast_ok(success_msg)
        request_rerun()
        return True
    toast_err(failure_msg or getattr(result, "error", None) or "Something went wrong")
    return False


def request_rerun() -> None:
    """Bump ``__refresh`` so the page re-reads its collections."""
    st.session_state["__refresh"] = st.session_state.get("__refresh", 0) + 1
    st.session_state["need_rerun"] = True
