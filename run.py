#!/usr/bin/env python3
"""
Development runner for TaxiDispatch
Run this script to start the application during development
"""

import os
import sys

import streamlit.web.cli as stcli

if __name__ == "__main__":
    current_dir = os.path.dirname(os.path.abspath(__file__))

    sys.argv = [
        "streamlit", "run",
        os.path.join(current_dir, "src", "taxidispatch", "app.py"),
        "--server.port=8501",
        "--server.address=localhost"
    ]

    sys.exit(stcli.main())
