"""Supabase client for TaxiDispatch."""

import logging
import os
from functools import lru_cache
from typing import List

import streamlit as st
import supabase

from taxidispatch.data.schema import ALL_TABLES, TABLE_DDL

logger = logging.getLogger(__name__)


def _read_credentials():
    """Return (url, key) from Streamlit secrets, falling back to the environment."""
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get("SUPABASE_API_KEY")

    try:
        if "supabase_url" in st.secrets and "supabase_key" in st.secrets:
            url = st.secrets["supabase_url"]
            key = st.secrets["supabase_key"]
    except FileNotFoundError:
        pass

    if not url or not key:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_API_KEY not set. "
            "Set them via environment variables or Streamlit secrets."
        )
    return url, key


@lru_cache(maxsize=1)
def get_supabase_client():
    """Get a cached Supabase client instance.

    Returns:
        Client: Configured Supabase client
    """
    url, key = _read_credentials()
    return supabase.create_client(url, key)


def check_tables(client=None) -> List[str]:
    """Check that the tables the app reads from are reachable.

    The Python client cannot create tables, so missing ones are logged with
    the SQL to run in the Supabase dashboard.

    Returns:
        Names of tables that could not be queried
    """
    client = client or get_supabase_client()
    missing = []

    for table_name in ALL_TABLES:
        try:
            client.table(table_name).select("*").limit(1).execute()
            logger.debug("Table '%s' exists", table_name)
        except Exception as e:
            logger.warning("Table '%s' is not reachable: %s", table_name, e)
            logger.warning(
                "Run this SQL in the Supabase dashboard: %s...",
                TABLE_DDL[table_name].strip()[:60]
            )
            missing.append(table_name)

    return missing
