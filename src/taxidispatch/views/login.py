"""Phone and PIN login screen."""

import logging

import streamlit as st

from ..config import config
from ..errors import LoginError
from .common import get_cached_session_store, get_cached_stores

logger = logging.getLogger(__name__)


def render_login():
    """Display the login form and start a session on success."""
    st.title(config.app_title, anchor=False)

    with st.form("login"):
        phone_number = st.text_input("Número de teléfono")
        pin = st.text_input("PIN", type="password", max_chars=6)
        submitted = st.form_submit_button("Ingresar", type="primary", use_container_width=True)

    if not submitted:
        return

    if not phone_number or not pin:
        st.error("Ingresa tu número de teléfono y PIN")
        return

    try:
        user = get_cached_stores().users.login(phone_number.strip(), pin)
    except LoginError as e:
        st.error(str(e))
        return
    except Exception as e:
        logger.error(f"Login failed: {e}", exc_info=True)
        st.error("No se pudo iniciar sesión")
        return

    session = get_cached_session_store().update_user(user)
    st.session_state.user = session.user
    st.rerun()
