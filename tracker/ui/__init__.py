"""Streamlit pages for the brigade attendance tracker."""
