"""Helpers shared by the role screens."""

import logging
from typing import Callable, Optional, TypeVar

import streamlit as st

from ..auth.session import SessionStore
from ..config import config
from ..data.factory import Stores, get_session_store, get_stores

logger = logging.getLogger(__name__)

T = TypeVar("T")


@st.cache_resource(show_spinner=False)
def get_cached_stores() -> Stores:
    """Return the data stores for the app runtime."""
    return get_stores()


@st.cache_resource(show_spinner=False)
def get_cached_session_store() -> SessionStore:
    return get_session_store()


def run_action(
    action: Callable[[], T],
    error_message: str,
    success_message: Optional[str] = None
) -> Optional[T]:
    """
    Run a backend call for a button press.

    Failures are logged and shown with a fixed message; None is returned.
    """
    try:
        result = action()
    except Exception as e:
        logger.error(f"{error_message}: {e}", exc_info=True)
        st.error(error_message)
        return None

    if success_message:
        st.success(success_message)
    return result


def format_money(value) -> str:
    return f"${float(value or 0):,.2f}"


def status_label(status) -> str:
    key = getattr(status, "value", status)
    return config.labels.trip_status.get(key, str(key))


def vehicle_label(vehicle_type) -> str:
    key = getattr(vehicle_type, "value", vehicle_type)
    return config.labels.vehicle_type.get(key, "")
