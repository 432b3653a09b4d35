"""Trip and trip request data access layer."""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..config import DispatchSettings, config
from ..errors import NotFoundError
from .dates import day_bounds, to_iso
from .geo import haversine_distance
from .models import (
    BroadcastRequestCreate,
    BroadcastResult,
    OperatorTripItem,
    Trip,
    TripRequest,
)
from .schema import (
    DRIVER_PROFILES,
    RPC_ATTEMPT_ACCEPT,
    RPC_CONFIRM_ACCEPT,
    RPC_CONVERT_REQUEST,
    RPC_DRIVERS_IN_RADIUS,
    RPC_RELEASE_REQUEST,
    TRIP_REQUESTS,
    TRIP_STOPS,
    TRIPS,
    RequestStatus,
    TripStatus,
    VehicleType,
)

logger = logging.getLogger(__name__)

FINISHED_TRIP_STATUSES = [TripStatus.COMPLETED.value, TripStatus.CANCELLED.value]


def _rpc_row(data: Any) -> Dict[str, Any]:
    """Normalize an RPC payload (row or one-row list) to a dict."""
    if isinstance(data, list):
        data = data[0] if data else None
    if not isinstance(data, dict):
        raise ValueError(f"Unexpected RPC result: {data!r}")
    return data


def _sort_key(item) -> float:
    created = item.created_at
    return created.timestamp() if created else 0.0


class TripStore:
    """Create, broadcast, accept and close trips and trip requests."""

    def __init__(
        self,
        client,
        settings: Optional[DispatchSettings] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize trip store.

        Args:
            client: Supabase client
            settings: Dispatch timing rules (defaults to the app config)
            sleep: Wait used for the special drivers' head start
        """
        self.client = client
        self.settings = settings or config.dispatch
        self.sleep = sleep

    # Trip requests

    def create_broadcast_request(self, request_data: BroadcastRequestCreate) -> TripRequest:
        """
        Create a trip request and its ordered stops.

        Args:
            request_data: Form data entered by the operator

        Returns:
            Created TripRequest including its stops
        """
        row = request_data.model_dump(mode="json", exclude={"operator_id", "stops"})
        row["created_by"] = request_data.operator_id

        result = self.client.table(TRIP_REQUESTS).insert(row).execute()
        if not result.data:
            raise ValueError("No se pudo crear la solicitud de viaje")
        request = result.data[0]

        stops = []
        if request_data.stops:
            stops = [
                {
                    "trip_request_id": request["id"],
                    "name": stop.name,
                    "latitude": stop.latitude,
                    "longitude": stop.longitude,
                    "order_index": index,
                }
                for index, stop in enumerate(request_data.stops, start=1)
            ]
            self.client.table(TRIP_STOPS).insert(stops).execute()

        logger.info(f"Created trip request {request['id']} with {len(stops)} stops")
        return TripRequest.model_validate({**request, "trip_stops": stops})

    def create_request(
        self,
        driver_id: str,
        operator_id: str,
        origin: str,
        destination: str,
        price: float
    ) -> TripRequest:
        """Create a request addressed to one driver."""
        result = self.client.table(TRIP_REQUESTS).insert({
            "driver_id": driver_id,
            "created_by": operator_id,
            "origin": origin,
            "destination": destination,
            "price": price,
            "status": RequestStatus.PENDING.value,
        }).execute()

        if not result.data:
            raise ValueError("No se pudo crear la solicitud de viaje")
        return TripRequest.model_validate(result.data[0])

    def get_request(self, request_id: str) -> TripRequest:
        result = (self.client
                  .table(TRIP_REQUESTS)
                  .select("*, trip_stops(*)")
                  .eq("id", request_id)
                  .limit(1)
                  .execute())

        if not result.data:
            raise NotFoundError("Solicitud no encontrada")
        return TripRequest.model_validate(result.data[0])

    def resend_cancelled_trip(self, trip_id: str) -> TripRequest:
        """Broadcast a new request with the details of a cancelled trip."""
        trip = self.get_trip_by_id(trip_id)

        result = self.client.table(TRIP_REQUESTS).insert({
            "origin": trip.origin,
            "destination": trip.destination,
            "origin_lat": trip.origin_lat,
            "origin_lng": trip.origin_lng,
            "destination_lat": trip.destination_lat,
            "destination_lng": trip.destination_lng,
            "price": trip.price,
            "created_by": trip.created_by,
            "status": RequestStatus.BROADCASTING.value,
            "vehicle_type": trip.vehicle_type.value if trip.vehicle_type else None,
            "passenger_phone": trip.passenger_phone,
            "cancelled_trip_id": trip_id,
        }).execute()

        if not result.data:
            raise ValueError("No se pudo reenviar el viaje")

        logger.info(f"Resent cancelled trip {trip_id} as request {result.data[0]['id']}")
        return TripRequest.model_validate(result.data[0])

    def get_driver_pending_requests(
        self,
        driver_id: str,
        vehicle_type: VehicleType
    ) -> List[TripRequest]:
        """
        Open requests a driver may take from their last reported position.

        A request qualifies when it is broadcasting, matches the vehicle
        type, has not been notified to this driver yet, has a radius within
        the broadcast cap, has not expired, and its origin lies within its
        current radius of the driver. Special drivers get the backend order;
        everyone else sees the newest first.

        Lookup failures are logged and yield an empty list.
        """
        try:
            profile_result = (self.client
                              .table(DRIVER_PROFILES)
                              .select("latitude, longitude, is_special")
                              .eq("id", driver_id)
                              .limit(1)
                              .execute())
            if not profile_result.data:
                logger.warning(f"Driver profile {driver_id} not found")
                return []
            profile = profile_result.data[0]

            if profile.get("latitude") is None or profile.get("longitude") is None:
                logger.warning(f"Driver {driver_id} has no recorded location")
                return []

            result = (self.client
                      .table(TRIP_REQUESTS)
                      .select("*, trip_stops(*)")
                      .eq("status", RequestStatus.BROADCASTING.value)
                      .eq("vehicle_type", VehicleType(vehicle_type).value)
                      .lte("current_radius", self.settings.max_broadcast_radius_m)
                      .gt("expires_at", datetime.now(timezone.utc).isoformat())
                      .execute())
        except Exception as e:
            logger.error(f"Error fetching pending requests: {e}", exc_info=True)
            return []

        nearby = []
        for row in result.data or []:
            request = TripRequest.model_validate(row)
            if driver_id in request.notified_drivers:
                continue
            if request.origin_lat is None or request.origin_lng is None:
                continue
            radius = request.current_radius if request.current_radius is not None else request.search_radius
            distance = haversine_distance(
                profile["latitude"], profile["longitude"],
                request.origin_lat, request.origin_lng
            )
            if radius is not None and distance <= radius:
                nearby.append(request)

        if profile.get("is_special"):
            return nearby
        return sorted(nearby, key=_sort_key, reverse=True)

    def update_request_status(
        self,
        request_id: str,
        status: RequestStatus,
        driver_id: Optional[str] = None
    ) -> Optional[TripRequest]:
        """Set a request's status; an accepting driver is stamped on the row."""
        status = RequestStatus(status)
        updates: Dict[str, Any] = {"status": status.value}
        if driver_id and status == RequestStatus.ACCEPTED:
            updates["driver_id"] = driver_id

        result = (self.client
                  .table(TRIP_REQUESTS)
                  .update(updates)
                  .eq("id", request_id)
                  .execute())
        return TripRequest.model_validate(result.data[0]) if result.data else None

    def update_trip_request(self, request_id: str, updates: Dict[str, Any]) -> TripRequest:
        result = (self.client
                  .table(TRIP_REQUESTS)
                  .update(updates)
                  .eq("id", request_id)
                  .execute())

        if not result.data:
            raise NotFoundError("Solicitud no encontrada")
        return TripRequest.model_validate(result.data[0])

    def convert_request_to_trip(self, request_id: str) -> Trip:
        """
        Turn an accepted request into a trip through the backend function.

        Raises:
            NotFoundError: If the request does not exist
            ValueError: If no driver has been assigned to the request
        """
        request = self.get_request(request_id)
        if not request.driver_id:
            raise ValueError("La solicitud no tiene un conductor asignado")

        result = self.client.rpc(RPC_CONVERT_REQUEST, {"request_id": request_id}).execute()
        row = _rpc_row(result.data)
        logger.info(f"Converted request {request_id} into trip {row.get('id')}")
        return Trip.model_validate({**row, "driver_id": request.driver_id})

    def attempt_accept_request(self, request_id: str, driver_id: str) -> bool:
        """Reserve a request for a driver; False when someone else got it first."""
        result = self.client.rpc(RPC_ATTEMPT_ACCEPT, {
            "p_request_id": request_id,
            "p_driver_id": driver_id,
        }).execute()
        return bool(result.data)

    def confirm_request_acceptance(self, request_id: str, driver_id: str) -> Trip:
        """
        Confirm a reserved request and return the resulting trip.

        The reservation is released when confirmation fails.
        """
        try:
            result = self.client.rpc(RPC_CONFIRM_ACCEPT, {
                "p_request_id": request_id,
                "p_driver_id": driver_id,
            }).execute()
            return Trip.model_validate(_rpc_row(result.data))
        except Exception as e:
            logger.error(f"Error confirming request {request_id}: {e}", exc_info=True)
            self.release_request(request_id)
            raise

    def release_request(self, request_id: str) -> None:
        """Return a reserved request to the open pool; failures are only logged."""
        try:
            self.client.rpc(RPC_RELEASE_REQUEST, {"p_request_id": request_id}).execute()
        except Exception as e:
            logger.error(f"Error releasing request {request_id}: {e}", exc_info=True)

    def _drivers_in_radius(self, request: TripRequest, special_only: bool) -> List[str]:
        result = self.client.rpc(RPC_DRIVERS_IN_RADIUS, {
            "p_request_id": request.id,
            "p_latitude": request.origin_lat,
            "p_longitude": request.origin_lng,
            "p_radius": request.search_radius,
            "p_vehicle_type": request.vehicle_type.value if request.vehicle_type else None,
            "p_special_only": special_only,
        }).execute()
        return [row["driver_id"] for row in result.data or []]

    def _mark_notified(self, request_id: str, notified: List[str], driver_ids: List[str]) -> List[str]:
        merged = notified + [d for d in driver_ids if d not in notified]
        (self.client
         .table(TRIP_REQUESTS)
         .update({"notified_drivers": merged})
         .eq("id", request_id)
         .execute())
        return merged

    def broadcast_request(self, request_id: str) -> BroadcastResult:
        """
        Notify drivers around the request origin in two waves.

        Special drivers are notified first and get a head start before the
        regular drivers in range are added.

        Returns:
            Number of drivers notified in each wave
        """
        request = self.get_request(request_id)
        notified = list(request.notified_drivers)

        special = self._drivers_in_radius(request, special_only=True)
        if special:
            notified = self._mark_notified(request_id, notified, special)
            self.sleep(self.settings.special_driver_head_start_seconds)

        regular = self._drivers_in_radius(request, special_only=False)
        if regular:
            self._mark_notified(request_id, notified, regular)

        logger.info(
            f"Broadcast request {request_id}: {len(special)} special, {len(regular)} regular drivers"
        )
        return BroadcastResult(
            success=True,
            special_drivers_count=len(special),
            regular_drivers_count=len(regular),
        )

    # Trips

    def create_trip(self, trip_data: Dict[str, Any]) -> Trip:
        result = self.client.table(TRIPS).insert(trip_data).execute()
        if not result.data:
            raise ValueError("No se pudo crear el viaje")
        return Trip.model_validate(result.data[0])

    def get_trip_by_id(self, trip_id: str) -> Trip:
        """
        Get a trip with its stops.

        Raises:
            NotFoundError: If the trip does not exist
        """
        result = (self.client
                  .table(TRIPS)
                  .select("*, trip_stops(*)")
                  .eq("id", trip_id)
                  .limit(1)
                  .execute())

        if not result.data:
            raise NotFoundError("Viaje no encontrado")
        return Trip.model_validate(result.data[0])

    def update_trip_status(self, trip_id: str, status: TripStatus) -> Trip:
        """Set a trip's status; completion is timestamped."""
        status = TripStatus(status)
        updates: Dict[str, Any] = {"status": status.value}
        if status == TripStatus.COMPLETED:
            updates["completed_at"] = datetime.now(timezone.utc).isoformat()

        result = (self.client
                  .table(TRIPS)
                  .update(updates)
                  .eq("id", trip_id)
                  .execute())

        if not result.data:
            raise NotFoundError("Viaje no encontrado")
        return Trip.model_validate(result.data[0])

    def cancel_trip(self, trip_id: str, reason: str) -> Trip:
        result = (self.client
                  .table(TRIPS)
                  .update({
                      "status": TripStatus.CANCELLED.value,
                      "cancellation_reason": reason,
                      "cancelled_at": datetime.now(timezone.utc).isoformat(),
                  })
                  .eq("id", trip_id)
                  .execute())

        if not result.data:
            raise NotFoundError("Viaje no encontrado")
        logger.info(f"Cancelled trip {trip_id}: {reason}")
        return Trip.model_validate(result.data[0])

    def get_driver_trips(self, driver_id: str) -> List[Trip]:
        """Finished (completed or cancelled) trips of a driver, newest first."""
        try:
            result = (self.client
                      .table(TRIPS)
                      .select("id, status, price, origin, destination, created_at, completed_at")
                      .eq("driver_id", driver_id)
                      .in_("status", FINISHED_TRIP_STATUSES)
                      .order("created_at", desc=True)
                      .execute())
        except Exception as e:
            logger.error(f"Error fetching driver trips: {e}", exc_info=True)
            return []
        return [Trip.model_validate(row) for row in result.data or []]

    def get_operator_trips(
        self,
        operator_id: str,
        now: Optional[datetime] = None
    ) -> List[OperatorTripItem]:
        """Today's trips and still-broadcasting requests of an operator, newest first."""
        start, end = day_bounds(now)

        trips = (self.client
                 .table(TRIPS)
                 .select("id, status, price, origin, destination, created_at, completed_at, created_by")
                 .eq("created_by", operator_id)
                 .gte("created_at", to_iso(start))
                 .lte("created_at", to_iso(end))
                 .order("created_at", desc=True)
                 .execute())

        requests = (self.client
                    .table(TRIP_REQUESTS)
                    .select("id, status, price, origin, destination, created_at")
                    .eq("created_by", operator_id)
                    .eq("status", RequestStatus.BROADCASTING.value)
                    .gte("created_at", to_iso(start))
                    .lte("created_at", to_iso(end))
                    .order("created_at", desc=True)
                    .execute())

        items = [OperatorTripItem.model_validate({**row, "kind": "request"})
                 for row in requests.data or []]
        items += [OperatorTripItem.model_validate({**row, "kind": "trip"})
                  for row in trips.data or []]
        return sorted(items, key=_sort_key, reverse=True)
