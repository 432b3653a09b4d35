#!/usr/bin/env python3
"""
TaxiDispatch request watcher

Polls a driver's pending trip requests and notifies new ones, outside the
Streamlit app. Can run once (cron/systemd timer) or as a long-running process.
"""

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import List, Optional

import requests

from taxidispatch.config import config, env_config
from taxidispatch.data.factory import get_stores
from taxidispatch.tracking.notifications import Notifier
from taxidispatch.tracking.watcher import RequestWatcher

LOG_DIR = Path(os.getenv("TAXIDISPATCH_LOG_DIR", "logs"))

# Optional: Healthchecks.io monitoring
HEALTHCHECK_URL = env_config.HEALTHCHECK_URL


def setup_logging(log_dir: Path = LOG_DIR):
    """Configure logging to both file and console."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "watcher.log"

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)

    logger = logging.getLogger()
    logger.setLevel(logging.INFO)
    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logging.getLogger(__name__)


def ping_healthcheck(endpoint: str = "", log_output: Optional[str] = None):
    """
    Ping Healthchecks.io to report watcher status.

    Args:
        endpoint: /start, /fail, or "" for success
        log_output: Optional log message to send
    """
    if not HEALTHCHECK_URL:
        return

    url = f"{HEALTHCHECK_URL.rstrip('/')}{endpoint}"
    logger = logging.getLogger(__name__)

    try:
        if log_output:
            requests.post(url, data=log_output.encode('utf-8'), timeout=10)
        else:
            requests.get(url, timeout=10)
        logger.debug(f"Healthcheck ping sent: {endpoint or 'success'}")
    except requests.RequestException as e:
        logger.warning(f"Failed to ping healthcheck: {e}")


def build_watcher(driver_id: str, interval: Optional[float] = None) -> RequestWatcher:
    stores = get_stores()
    notifier = Notifier(stores.trips, webhook_url=env_config.NOTIFY_WEBHOOK_URL)
    return RequestWatcher(stores.drivers, stores.trips, notifier, driver_id, interval)


def run_watcher(driver_id: str, interval: Optional[float] = None, once: bool = False) -> int:
    """
    Watch a driver's pending requests.

    Args:
        driver_id: Driver to watch
        interval: Seconds between polls (defaults to the configured interval)
        once: Run a single cycle and exit

    Returns:
        Process exit code
    """
    logger = logging.getLogger(__name__)
    ping_healthcheck("/start")

    try:
        env_config.validate()
        watcher = build_watcher(driver_id, interval)

        if once:
            new_requests = watcher.check()
            logger.info(f"Single check finished with {len(new_requests)} new request(s)")
            ping_healthcheck()
            return 0

        logger.info(f"Watching requests for driver {driver_id} every {watcher.loop.interval}s")
        watcher.start()
        try:
            while watcher.is_running:
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info("Interrupted, stopping watcher")
        finally:
            watcher.stop()

        ping_healthcheck()
        return 0

    except Exception as e:
        logger.error(f"Watcher failed: {e}", exc_info=True)
        ping_healthcheck("/fail", log_output=f"Request watcher failed: {e}")
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Notify a driver of new trip requests")
    parser.add_argument("--driver-id", required=True, help="Driver profile id to watch")
    parser.add_argument(
        "--interval",
        type=float,
        default=config.dispatch.watcher_poll_seconds,
        help="Seconds between polls",
    )
    parser.add_argument("--once", action="store_true", help="Run a single check and exit")
    parser.add_argument("--log-dir", type=Path, default=LOG_DIR, help="Directory for watcher.log")
    args = parser.parse_args(argv)

    logger = setup_logging(args.log_dir)
    logger.info("Starting request watcher")
    return run_watcher(args.driver_id, args.interval, args.once)


if __name__ == "__main__":
    sys.exit(main())
