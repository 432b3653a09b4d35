"""Streamlit screens for each role."""
