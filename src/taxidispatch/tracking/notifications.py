"""Trip request notifications and their accept/reject actions."""

import logging
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

import requests

from ..data.models import Trip, TripRequest
from ..data.schema import RequestStatus
from ..data.trip_store import TripStore
from ..dispatch import accept_request
from ..errors import RequestUnavailableError

logger = logging.getLogger(__name__)

CHANNEL_ID = "trip-requests"
ACTION_ACCEPT = "accept"
ACTION_REJECT = "reject"
NOTIFICATION_TITLE = "¡Nueva solicitud de viaje! 🚖"


def notification_id(request_id: str) -> str:
    return f"trip_request_{request_id}"


def format_price(price) -> str:
    if isinstance(price, (int, float)):
        return f"{price:.2f}"
    return str(price)


@dataclass
class Notification:
    """A trip request alert as shown to the driver."""

    id: str
    request_id: str
    title: str
    body: str
    channel_id: str = CHANNEL_ID
    actions: List[Dict[str, str]] = field(default_factory=lambda: [
        {"id": ACTION_ACCEPT, "title": "✅ Aceptar"},
        {"id": ACTION_REJECT, "title": "❌ Rechazar"},
    ])


def build_notification(request: TripRequest) -> Notification:
    return Notification(
        id=notification_id(request.id),
        request_id=request.id,
        title=NOTIFICATION_TITLE,
        body=(
            f"Origen: {request.origin}\n"
            f"Destino: {request.destination}\n"
            f"Precio: ${format_price(request.price)}"
        ),
    )


class Notifier:
    """
    Show trip request notifications and route their actions.

    Notifications are kept in memory while displayed and, when a webhook URL
    is configured, also posted there. Delivery is best effort. Which
    requests count as new is decided by the caller; every call to notify()
    shows and delivers.
    """

    def __init__(self, trips: TripStore, webhook_url: Optional[str] = None, timeout: int = 10):
        self.trips = trips
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.displayed: Dict[str, Notification] = {}

    def notify(self, request: TripRequest) -> Notification:
        """Display a notification for a request, replacing one with the same id."""
        notification = build_notification(request)
        self.displayed[notification.id] = notification
        logger.info(f"Notifying trip request {request.id}")

        if self.webhook_url:
            self._deliver(notification)
        return notification

    def _deliver(self, notification: Notification) -> None:
        try:
            response = requests.post(self.webhook_url, json=asdict(notification), timeout=self.timeout)
            response.raise_for_status()
            logger.debug(f"Webhook delivered {notification.id}")
        except requests.RequestException as e:
            logger.warning(f"Failed to deliver notification {notification.id}: {e}")

    def cancel(self, key: str) -> None:
        self.displayed.pop(key, None)

    def cancel_all(self) -> None:
        self.displayed.clear()

    def handle_action(self, key: str, action: str, driver_id: str) -> Optional[Trip]:
        """
        Run the accept or reject action pressed on a notification.

        Args:
            key: Notification id ('trip_request_<request id>')
            action: 'accept' or 'reject'
            driver_id: Driver who pressed the action

        Returns:
            The trip when an accept succeeded, None otherwise
        """
        notification = self.displayed.get(key)
        request_id = notification.request_id if notification else key.replace("trip_request_", "", 1)
        trip = None

        if action == ACTION_ACCEPT:
            try:
                trip = accept_request(self.trips, request_id, driver_id)
            except RequestUnavailableError as e:
                logger.info(f"Request {request_id} no longer available: {e}")
        elif action == ACTION_REJECT:
            self.trips.update_request_status(request_id, RequestStatus.REJECTED)
        else:
            raise ValueError(f"Unknown notification action: {action}")

        self.cancel(key)
        return trip
