"""Driver-side trip workflows: accept, reject, pickup and completion."""

import logging
from dataclasses import dataclass, field
from typing import Optional, Set, Tuple

from .config import config
from .data.driver_store import DriverStore
from .data.models import Trip
from .data.schema import BalanceOperationType, TripStatus
from .data.trip_store import TripStore
from .errors import RequestUnavailableError

logger = logging.getLogger(__name__)


def commission_breakdown(price: float, rate: Optional[float] = None) -> Tuple[float, float]:
    """
    Split a trip price into the platform commission and the driver's net.

    Args:
        price: Trip price
        rate: Commission rate (defaults to the configured rate)

    Returns:
        (commission, net)
    """
    rate = config.dispatch.commission_rate if rate is None else rate
    commission = price * rate
    return commission, price - commission


@dataclass
class CompletionResult:
    """Outcome of closing a trip."""

    trip: Trip
    commission: float
    balance: Optional[float]
    suspended: bool = False

    @property
    def message(self) -> str:
        text = (
            "Viaje completado exitosamente.\n"
            f"Se ha descontado una comisión de ${self.commission:.2f}"
        )
        if self.suspended:
            text += "\n\nTu cuenta ha sido suspendida por balance negativo."
        return text


@dataclass
class RejectedRequests:
    """Request ids a driver declined during this session."""

    ids: Set[str] = field(default_factory=set)

    def add(self, request_id: str) -> None:
        self.ids.add(request_id)

    def clear(self) -> None:
        self.ids.clear()

    def __contains__(self, request_id: str) -> bool:
        return request_id in self.ids


def accept_request(trips: TripStore, request_id: str, driver_id: str) -> Trip:
    """
    Take a broadcast request for a driver.

    The backend reservation decides races between drivers; the loser gets
    RequestUnavailableError. A failed confirmation releases the reservation.

    Returns:
        The trip created for the driver

    Raises:
        RequestUnavailableError: If another driver took the request first
    """
    if not trips.attempt_accept_request(request_id, driver_id):
        raise RequestUnavailableError("Esta solicitud ya no está disponible")

    trip = trips.confirm_request_acceptance(request_id, driver_id)
    logger.info(f"Driver {driver_id} accepted request {request_id} as trip {trip.id}")
    return trip


def reject_request(rejected: RejectedRequests, request_id: str) -> None:
    """Hide a request from the driver for the rest of the session."""
    rejected.add(request_id)
    logger.debug(f"Request {request_id} rejected")


def mark_pickup_reached(trips: TripStore, trip_id: str) -> Trip:
    return trips.update_trip_status(trip_id, TripStatus.PICKUP_REACHED)


def complete_trip(
    trips: TripStore,
    drivers: DriverStore,
    trip: Trip,
    driver_id: str,
    rate: Optional[float] = None
) -> CompletionResult:
    """
    Close a trip and charge the commission to the driver's balance.

    When the balance goes negative the driver is taken off duty and the
    account is deactivated until an administrator recharges it.

    Args:
        trips: Trip store
        drivers: Driver store
        trip: Trip being closed
        driver_id: Driver who drove it
        rate: Commission rate (defaults to the configured rate)

    Returns:
        The completed trip, the commission charged and the resulting balance
    """
    completed = trips.update_trip_status(trip.id, TripStatus.COMPLETED)
    commission, _ = commission_breakdown(trip.price, rate)

    update = drivers.update_driver_balance(
        driver_id,
        commission,
        BalanceOperationType.DEDUCTION,
        f"Comisión del viaje #{trip.id}",
        driver_id,
    )

    suspended = update.balance is not None and update.balance < 0
    if suspended:
        drivers.update_driver_status(driver_id, False)
        drivers.set_active(driver_id, False)
        logger.warning(f"Driver {driver_id} suspended with balance {update.balance}")

    return CompletionResult(
        trip=completed,
        commission=commission,
        balance=update.balance,
        suspended=suspended,
    )
