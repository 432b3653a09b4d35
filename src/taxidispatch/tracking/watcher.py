"""Background watcher that notifies a driver of new trip requests."""

import logging
from typing import List, Optional, Set

from ..config import config
from ..data.driver_store import DriverStore
from ..data.models import TripRequest
from ..data.schema import VehicleType
from ..data.trip_store import TripStore
from .notifications import Notifier
from .polling import PollingLoop

logger = logging.getLogger(__name__)


class RequestWatcher:
    """
    Poll a driver's pending requests and notify the ones not seen before.

    The set of previously seen request ids lives in memory only and is reset
    when the watcher stops. The watcher stops itself once the driver goes
    off duty.
    """

    def __init__(
        self,
        drivers: DriverStore,
        trips: TripStore,
        notifier: Notifier,
        driver_id: str,
        interval: Optional[float] = None
    ):
        self.drivers = drivers
        self.trips = trips
        self.notifier = notifier
        self.driver_id = driver_id
        self.previous_requests: Set[str] = set()
        self.foreground_interval = interval or config.dispatch.watcher_poll_seconds
        self.loop = PollingLoop(
            self.foreground_interval,
            self.check,
            name=f"request-watcher-{driver_id}",
        )

    @property
    def is_running(self) -> bool:
        return self.loop.is_running

    def check(self) -> List[TripRequest]:
        """
        Run one polling cycle.

        Returns:
            Requests notified in this cycle
        """
        profile = self.drivers.get_driver_profile(self.driver_id)
        if not profile.is_on_duty:
            logger.info(f"Driver {self.driver_id} is off duty, stopping watcher")
            self.stop()
            return []

        vehicle_type = profile.vehicle_type or VehicleType.FOUR_WHEELS
        requests = self.trips.get_driver_pending_requests(self.driver_id, vehicle_type)

        new_requests = [r for r in requests if r.id not in self.previous_requests]
        for request in new_requests:
            self.notifier.notify(request)

        self.previous_requests = {r.id for r in requests}
        if new_requests:
            logger.info(f"Found {len(new_requests)} new request(s) for driver {self.driver_id}")
        return new_requests

    def set_background(self, background: bool) -> None:
        """Poll less often while the app is not in the foreground."""
        self.loop.interval = (
            config.dispatch.watcher_background_poll_seconds if background
            else self.foreground_interval
        )

    def start(self) -> None:
        self.loop.start()

    def stop(self) -> None:
        self.loop.stop()
        self.previous_requests = set()
        self.notifier.cancel_all()
