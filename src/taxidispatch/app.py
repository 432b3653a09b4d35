"""Main Streamlit app for TaxiDispatch."""

import logging

import streamlit as st

from taxidispatch.config import config
from taxidispatch.views import admin, driver, navigation, operator
from taxidispatch.views.common import get_cached_session_store
from taxidispatch.views.login import render_login

logger = logging.getLogger(__name__)

TAB_RENDERERS = {
    navigation.DRIVER_HOME: driver.render_driver_home,
    navigation.DRIVER_TRIPS: driver.render_driver_trips,
    navigation.DRIVER_BALANCE: driver.render_driver_balance,
    navigation.DRIVER_STATS: driver.render_driver_stats,
    navigation.OPERATOR_REQUEST: operator.render_request_form,
    navigation.OPERATOR_MAP: operator.render_driver_map,
    navigation.OPERATOR_TRIPS: operator.render_operator_trips,
    navigation.ADMIN_DASHBOARD: admin.render_dashboard,
    navigation.ADMIN_DRIVERS: admin.render_driver_management,
    navigation.ADMIN_OPERATORS: admin.render_operator_management,
    navigation.ADMIN_BALANCES: admin.render_balances,
    navigation.ADMIN_REPORTS: admin.render_reports,
    navigation.ADMIN_REQUEST: lambda user: operator.render_request_form(user, key_prefix="admin"),
}


def setup_page():
    """Set up the Streamlit page configuration."""
    st.set_page_config(page_title=config.app_title, page_icon="🚖", layout='wide')


def load_session():
    """Restore the persisted session once per browser session."""
    if 'user' in st.session_state:
        return st.session_state.user

    try:
        session = get_cached_session_store().load()
    except Exception as e:
        logger.error(f"Error loading session: {e}", exc_info=True)
        st.session_state.user = None
        return None

    st.session_state.user = session.user
    return session.user


def display_sidebar(user):
    with st.sidebar:
        st.subheader(user.display_name, anchor=False)
        st.caption(f"{user.phone_number} · {user.role.value}")
        if st.button("Cerrar sesión", use_container_width=True):
            get_cached_session_store().logout()
            st.session_state.clear()
            st.rerun()


def main():
    """Run the TaxiDispatch Streamlit app."""
    setup_page()
    user = load_session()

    if user is None:
        render_login()
        return

    display_sidebar(user)

    titles = navigation.tabs_for_role(user.role)
    if not titles:
        st.error("Rol de usuario no reconocido")
        return

    for title, tab in zip(titles, st.tabs(titles)):
        with tab:
            TAB_RENDERERS[title](user)


if __name__ == '__main__':
    main()
