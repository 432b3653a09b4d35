"""Fixed-interval polling loops."""

import logging
import threading
from typing import Callable, List, Optional

from ..config import config
from ..data.models import TripRequest
from ..data.schema import VehicleType
from ..data.trip_store import TripStore
from ..dispatch import RejectedRequests
from .duty import DutyTracker

logger = logging.getLogger(__name__)


class PollingLoop:
    """
    Run a task on a background thread every ``interval`` seconds.

    Runs are sequential, so at most one call is in flight. Task errors are
    logged and the loop keeps going.
    """

    def __init__(self, interval: float, task: Callable[[], object], name: str = "poller"):
        self.interval = interval
        self.task = task
        self.name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> None:
        try:
            self.task()
        except Exception as e:
            logger.error(f"{self.name} failed: {e}", exc_info=True)

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.run_once()
            self._stop_event.wait(self.interval)

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.debug(f"Started {self.name} every {self.interval}s")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None


class PendingRequestPoller:
    """
    Keep the list of requests a driver can currently take.

    Nothing is fetched while the driver is off duty, has no known position,
    or is already on a trip. Requests the driver rejected stay hidden.
    """

    def __init__(
        self,
        trips: TripStore,
        tracker: DutyTracker,
        vehicle_type: VehicleType,
        rejected: Optional[RejectedRequests] = None,
        has_active_trip: Callable[[], bool] = lambda: False,
        interval: Optional[float] = None
    ):
        self.trips = trips
        self.tracker = tracker
        self.vehicle_type = vehicle_type
        self.rejected = rejected if rejected is not None else RejectedRequests()
        self.has_active_trip = has_active_trip
        self.requests: List[TripRequest] = []
        self.loop = PollingLoop(
            interval or config.dispatch.request_poll_seconds,
            self.poll,
            name=f"pending-requests-{tracker.driver_id}",
        )

    def poll(self) -> List[TripRequest]:
        if not self.tracker.is_on_duty or self.tracker.position is None or self.has_active_trip():
            self.requests = []
            return self.requests

        pending = self.trips.get_driver_pending_requests(self.tracker.driver_id, self.vehicle_type)
        self.requests = [request for request in pending if request.id not in self.rejected]
        return self.requests

    def start(self) -> None:
        self.loop.start()

    def stop(self) -> None:
        self.loop.stop()
