"""Tests for TripStore request broadcasting, acceptance and trip lifecycle."""

from datetime import datetime, timedelta, timezone

import pytest

from taxidispatch.data.models import BroadcastRequestCreate, StopCreate
from taxidispatch.data.schema import RequestStatus, TripStatus, VehicleType
from taxidispatch.errors import NotFoundError

CENTER = (19.4326, -99.1332)


def _iso(dt):
    return dt.isoformat()


@pytest.fixture
def driver(seed_driver):
    return seed_driver(latitude=CENTER[0], longitude=CENTER[1], is_on_duty=True)


@pytest.fixture
def seed_request(fake_client):
    def _seed(**fields):
        row = {
            "origin": "Zócalo",
            "destination": "Aeropuerto",
            "origin_lat": CENTER[0],
            "origin_lng": CENTER[1],
            "price": 120.0,
            "search_radius": 3000,
            "vehicle_type": "4_ruedas",
            "status": "broadcasting",
        }
        row.update(fields)
        return fake_client.seed("trip_requests", row)
    return _seed


class TestCreateRequests:

    def test_broadcast_request_with_ordered_stops(self, trip_store, fake_client):
        request = trip_store.create_broadcast_request(BroadcastRequestCreate(
            operator_id="op-1",
            origin="Zócalo",
            destination="Aeropuerto",
            price=150.0,
            origin_lat=CENTER[0],
            origin_lng=CENTER[1],
            destination_lat=19.4361,
            destination_lng=-99.0719,
            stops=[
                StopCreate(name="Farmacia", latitude=19.43, longitude=-99.12),
                StopCreate(name="Hotel", latitude=19.44, longitude=-99.10),
            ],
        ))

        row = fake_client.rows("trip_requests")[0]
        assert row["created_by"] == "op-1"
        assert row["status"] == "broadcasting"
        assert "stops" not in row
        stops = fake_client.rows("trip_stops")
        assert [stop["order_index"] for stop in stops] == [1, 2]
        assert all(stop["trip_request_id"] == request.id for stop in stops)
        assert [stop.name for stop in request.trip_stops] == ["Farmacia", "Hotel"]

    def test_request_without_stops(self, trip_store, fake_client):
        trip_store.create_broadcast_request(BroadcastRequestCreate(
            operator_id="op-1", origin="A", destination="B", price=50.0,
            origin_lat=1.0, origin_lng=1.0, destination_lat=2.0, destination_lng=2.0,
        ))

        assert fake_client.rows("trip_stops") == []

    def test_create_direct_request(self, trip_store):
        request = trip_store.create_request("driver-1", "op-1", "A", "B", 60.0)

        assert request.status == RequestStatus.PENDING
        assert request.driver_id == "driver-1"

    def test_missing_request(self, trip_store):
        with pytest.raises(NotFoundError):
            trip_store.get_request("missing")

    def test_resend_cancelled_trip(self, trip_store, fake_client):
        trip = fake_client.seed("trips", {
            "origin": "A",
            "destination": "B",
            "price": 90.0,
            "created_by": "op-1",
            "status": "cancelled",
            "vehicle_type": "2_ruedas",
        })

        request = trip_store.resend_cancelled_trip(trip["id"])

        assert request.cancelled_trip_id == trip["id"]
        assert request.status == RequestStatus.BROADCASTING
        assert request.vehicle_type == VehicleType.TWO_WHEELS
        assert request.price == 90.0


class TestPendingRequests:

    def test_nearby_request_is_listed(self, trip_store, driver, seed_request):
        request = seed_request()

        pending = trip_store.get_driver_pending_requests(driver["id"], VehicleType.FOUR_WHEELS)

        assert [r.id for r in pending] == [request["id"]]

    def test_excludes_far_requests(self, trip_store, driver, seed_request):
        seed_request(origin_lat=CENTER[0] + 0.1)

        assert trip_store.get_driver_pending_requests(driver["id"], "4_ruedas") == []

    def test_current_radius_extends_reach(self, trip_store, driver, seed_request):
        seed_request(origin_lat=CENTER[0] + 0.05, current_radius=8000)

        assert len(trip_store.get_driver_pending_requests(driver["id"], "4_ruedas")) == 1

    def test_excludes_radius_above_cap(self, trip_store, driver, seed_request):
        seed_request(current_radius=20000)

        assert trip_store.get_driver_pending_requests(driver["id"], "4_ruedas") == []

    def test_excludes_other_vehicle_type(self, trip_store, driver, seed_request):
        seed_request(vehicle_type="2_ruedas")

        assert trip_store.get_driver_pending_requests(driver["id"], "4_ruedas") == []

    def test_excludes_expired_and_closed(self, trip_store, driver, seed_request):
        seed_request(expires_at=_iso(datetime.now(timezone.utc) - timedelta(minutes=1)))
        seed_request(status="accepted")

        assert trip_store.get_driver_pending_requests(driver["id"], "4_ruedas") == []

    def test_excludes_already_notified(self, trip_store, driver, seed_request):
        seed_request(notified_drivers=[driver["id"]])

        assert trip_store.get_driver_pending_requests(driver["id"], "4_ruedas") == []

    def test_driver_without_location(self, trip_store, seed_driver, seed_request):
        driver = seed_driver()
        seed_request()

        assert trip_store.get_driver_pending_requests(driver["id"], "4_ruedas") == []

    def test_lookup_error_returns_empty(self, trip_store, fake_client, driver):
        fake_client.failures[("select", "trip_requests")] = RuntimeError("offline")

        assert trip_store.get_driver_pending_requests(driver["id"], "4_ruedas") == []

    def test_regular_driver_sees_newest_first(self, trip_store, driver, seed_request):
        base = datetime.now(timezone.utc)
        older = seed_request(created_at=_iso(base - timedelta(minutes=2)))
        newer = seed_request(created_at=_iso(base - timedelta(minutes=1)))

        pending = trip_store.get_driver_pending_requests(driver["id"], "4_ruedas")

        assert [r.id for r in pending] == [newer["id"], older["id"]]

    def test_special_driver_keeps_backend_order(self, trip_store, seed_driver, seed_request):
        special = seed_driver(latitude=CENTER[0], longitude=CENTER[1], is_special=True)
        base = datetime.now(timezone.utc)
        older = seed_request(created_at=_iso(base - timedelta(minutes=2)))
        newer = seed_request(created_at=_iso(base - timedelta(minutes=1)))

        pending = trip_store.get_driver_pending_requests(special["id"], "4_ruedas")

        assert [r.id for r in pending] == [older["id"], newer["id"]]


class TestRequestStatus:

    def test_accept_stamps_driver(self, trip_store, fake_client, seed_request):
        request = seed_request()

        updated = trip_store.update_request_status(request["id"], RequestStatus.ACCEPTED, "driver-9")

        assert updated.status == RequestStatus.ACCEPTED
        assert fake_client.rows("trip_requests")[0]["driver_id"] == "driver-9"

    def test_reject_does_not_stamp_driver(self, trip_store, fake_client, seed_request):
        request = seed_request()

        trip_store.update_request_status(request["id"], "rejected", "driver-9")

        assert "driver_id" not in fake_client.rows("trip_requests")[0]

    def test_update_trip_request(self, trip_store, seed_request):
        request = seed_request()

        updated = trip_store.update_trip_request(request["id"], {"current_radius": 5000})

        assert updated.current_radius == 5000


class TestAcceptance:

    def test_convert_requires_driver(self, trip_store, seed_request):
        request = seed_request()

        with pytest.raises(ValueError, match="conductor asignado"):
            trip_store.convert_request_to_trip(request["id"])

    def test_convert_calls_backend(self, trip_store, fake_client, seed_request):
        request = seed_request(driver_id="driver-1", status="accepted")
        fake_client.rpc_handlers["convert_request_to_trip"] = lambda params: [
            {"id": "trip-1", "status": "pending", "price": 120.0}
        ]

        trip = trip_store.convert_request_to_trip(request["id"])

        assert trip.id == "trip-1"
        assert trip.driver_id == "driver-1"
        assert fake_client.rpc_calls[-1] == ("convert_request_to_trip", {"request_id": request["id"]})

    def test_attempt_accept(self, trip_store, fake_client):
        fake_client.rpc_handlers["attempt_accept_trip_request"] = lambda params: params["p_driver_id"] == "winner"

        assert trip_store.attempt_accept_request("req-1", "winner") is True
        assert trip_store.attempt_accept_request("req-1", "loser") is False

    def test_confirm_returns_trip(self, trip_store, fake_client):
        fake_client.rpc_handlers["confirm_trip_request_acceptance"] = lambda params: {
            "id": "trip-2", "driver_id": params["p_driver_id"], "status": "pending"
        }

        trip = trip_store.confirm_request_acceptance("req-1", "driver-1")

        assert trip.id == "trip-2"
        assert trip.driver_id == "driver-1"

    def test_confirm_failure_releases_reservation(self, trip_store, fake_client):
        released = []

        def fail(params):
            raise RuntimeError("conflict")

        fake_client.rpc_handlers["confirm_trip_request_acceptance"] = fail
        fake_client.rpc_handlers["release_trip_request"] = released.append

        with pytest.raises(RuntimeError):
            trip_store.confirm_request_acceptance("req-1", "driver-1")

        assert released == [{"p_request_id": "req-1"}]

    def test_release_failure_is_logged(self, trip_store):
        trip_store.release_request("req-1")


class TestBroadcast:

    @pytest.fixture
    def drivers_in_radius(self, fake_client):
        waves = {True: [], False: []}
        fake_client.rpc_handlers["get_available_drivers_in_radius"] = (
            lambda params: [{"driver_id": d} for d in waves[params["p_special_only"]]]
        )
        return waves

    def test_special_wave_gets_head_start(
        self, trip_store, fake_client, seed_request, drivers_in_radius, sleeps
    ):
        request = seed_request()
        drivers_in_radius[True] = ["special-1"]
        drivers_in_radius[False] = ["regular-1", "regular-2"]

        result = trip_store.broadcast_request(request["id"])

        assert result.success
        assert result.special_drivers_count == 1
        assert result.regular_drivers_count == 2
        assert sleeps == [10]
        assert fake_client.rows("trip_requests")[0]["notified_drivers"] == [
            "special-1", "regular-1", "regular-2"
        ]
        special_call = fake_client.rpc_calls[0][1]
        assert special_call["p_special_only"] is True
        assert special_call["p_radius"] == 3000

    def test_no_special_drivers_no_wait(self, trip_store, fake_client, seed_request,
                                        drivers_in_radius, sleeps):
        request = seed_request(notified_drivers=["earlier"])
        drivers_in_radius[False] = ["regular-1", "earlier"]

        result = trip_store.broadcast_request(request["id"])

        assert sleeps == []
        assert result.special_drivers_count == 0
        assert fake_client.rows("trip_requests")[0]["notified_drivers"] == ["earlier", "regular-1"]


class TestTrips:

    def test_complete_sets_timestamp(self, trip_store, fake_client):
        trip = fake_client.seed("trips", {"status": "in_progress", "price": 100.0})

        updated = trip_store.update_trip_status(trip["id"], TripStatus.COMPLETED)

        assert updated.status == TripStatus.COMPLETED
        assert updated.completed_at is not None

    def test_pickup_reached_keeps_completion_empty(self, trip_store, fake_client):
        trip = fake_client.seed("trips", {"status": "in_progress"})

        updated = trip_store.update_trip_status(trip["id"], "pickup_reached")

        assert updated.completed_at is None

    def test_update_missing_trip(self, trip_store):
        with pytest.raises(NotFoundError):
            trip_store.update_trip_status("missing", TripStatus.COMPLETED)

    def test_cancel_trip(self, trip_store, fake_client):
        trip = fake_client.seed("trips", {"status": "pending"})

        cancelled = trip_store.cancel_trip(trip["id"], "Pasajero no se presentó")

        assert cancelled.status == TripStatus.CANCELLED
        assert cancelled.cancellation_reason == "Pasajero no se presentó"
        assert cancelled.cancelled_at is not None

    def test_driver_trips_only_finished(self, trip_store, fake_client):
        for status in ("completed", "cancelled", "in_progress"):
            fake_client.seed("trips", {"driver_id": "driver-1", "status": status})
        fake_client.seed("trips", {"driver_id": "driver-2", "status": "completed"})

        trips = trip_store.get_driver_trips("driver-1")

        assert sorted(trip.status.value for trip in trips) == ["cancelled", "completed"]

    def test_operator_trips_merge_today(self, trip_store, fake_client):
        now = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
        trip = fake_client.seed("trips", {
            "created_by": "op-1", "status": "completed",
            "created_at": _iso(now.replace(hour=8)),
        })
        fake_client.seed("trips", {
            "created_by": "op-1", "status": "completed",
            "created_at": _iso(now - timedelta(days=1)),
        })
        fake_client.seed("trips", {
            "created_by": "op-2", "status": "completed",
            "created_at": _iso(now.replace(hour=9)),
        })
        request = fake_client.seed("trip_requests", {
            "created_by": "op-1", "status": "broadcasting",
            "created_at": _iso(now.replace(hour=10)),
        })
        fake_client.seed("trip_requests", {
            "created_by": "op-1", "status": "accepted",
            "created_at": _iso(now.replace(hour=11)),
        })

        items = trip_store.get_operator_trips("op-1", now=now)

        assert [(item.kind, item.id) for item in items] == [
            ("request", request["id"]),
            ("trip", trip["id"]),
        ]
