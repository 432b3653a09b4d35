"""Driver duty flag and location forwarding."""

import logging
import threading
from datetime import datetime
from typing import Callable, Iterable, Optional

from ..data.driver_store import DriverStore
from ..data.models import Position

logger = logging.getLogger(__name__)


class DutyTracker:
    """
    Keep a driver's duty flag and last position in sync with the backend.

    Positions are forwarded on every reported change while on duty. Failed
    updates are not retried or buffered. The first failure asks the driver
    (through ``on_offline_prompt``) whether to switch to offline mode, which
    only silences later failure prompts.
    """

    def __init__(
        self,
        drivers: DriverStore,
        driver_id: str,
        on_offline_prompt: Optional[Callable[[], bool]] = None
    ):
        self.drivers = drivers
        self.driver_id = driver_id
        self.on_offline_prompt = on_offline_prompt
        self.is_on_duty = False
        self.position: Optional[Position] = None
        self.offline_mode = False
        self._prompted = False

    def load_initial_status(self) -> bool:
        """Read the stored duty flag and last position; False if unavailable."""
        try:
            profile = self.drivers.get_driver_profile(self.driver_id)
        except Exception as e:
            logger.error(f"Error loading driver status: {e}", exc_info=True)
            return False

        self.is_on_duty = profile.is_on_duty
        if profile.has_location:
            self.position = Position(
                latitude=profile.latitude,
                longitude=profile.longitude,
                timestamp=profile.last_location_update or datetime.now(),
            )
        return True

    def set_duty(self, on_duty: bool) -> bool:
        """
        Store the requested duty flag.

        The local flag only changes once the backend accepted the update.

        Returns:
            True if the update succeeded
        """
        try:
            profile = self.drivers.update_driver_status(self.driver_id, on_duty)
        except Exception as e:
            logger.error(f"Error updating duty status: {e}", exc_info=True)
            self._handle_failure()
            return False

        self.is_on_duty = profile.is_on_duty
        logger.info(f"Driver {self.driver_id} is {'on' if self.is_on_duty else 'off'} duty")
        return True

    def toggle(self) -> bool:
        return self.set_duty(not self.is_on_duty)

    def on_position(self, position: Position) -> bool:
        """
        Record a new device position and forward it while on duty.

        Returns:
            True if the position was sent to the backend
        """
        self.position = position
        if not self.is_on_duty:
            return False

        try:
            self.drivers.update_location(self.driver_id, position.latitude, position.longitude)
        except Exception as e:
            logger.error(f"Error updating location: {e}", exc_info=True)
            self._handle_failure()
            return False
        return True

    def watch(self, positions: Iterable[Position], stop_event: Optional[threading.Event] = None) -> int:
        """
        Forward every position from a device feed until it ends or is stopped.

        Returns:
            Number of positions sent to the backend
        """
        sent = 0
        for position in positions:
            if stop_event is not None and stop_event.is_set():
                break
            if self.on_position(position):
                sent += 1
        return sent

    def _handle_failure(self) -> None:
        if self.offline_mode or self._prompted:
            return
        self._prompted = True
        if self.on_offline_prompt is not None and self.on_offline_prompt():
            self.offline_mode = True
            logger.info("Offline mode enabled")
