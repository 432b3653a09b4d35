"""Tests for the polling loops."""

import threading

import pytest

from taxidispatch.data.models import Position
from taxidispatch.dispatch import RejectedRequests
from taxidispatch.tracking.duty import DutyTracker
from taxidispatch.tracking.polling import PendingRequestPoller, PollingLoop


class TestPollingLoop:

    def test_run_once_logs_errors(self, caplog):
        def boom():
            raise RuntimeError("backend down")

        loop = PollingLoop(1, boom, name="test-loop")
        loop.run_once()

        assert "test-loop failed: backend down" in caplog.text

    def test_start_runs_immediately_and_stops(self):
        ran = threading.Event()
        loop = PollingLoop(60, ran.set)

        loop.start()
        assert ran.wait(2)
        assert loop.is_running

        loop.stop(timeout=2)
        assert not loop.is_running

    def test_start_twice_keeps_one_thread(self):
        calls = []
        first_run = threading.Event()

        def task():
            calls.append(1)
            first_run.set()

        loop = PollingLoop(60, task)
        loop.start()
        first_run.wait(2)
        loop.start()
        loop.stop(timeout=2)

        assert calls == [1]

    def test_stop_from_inside_task(self):
        done = threading.Event()
        loop = None

        def task():
            loop.stop()
            done.set()

        loop = PollingLoop(0.01, task)
        loop.start()

        assert done.wait(2)
        assert loop._stop_event.is_set()


@pytest.fixture
def on_duty_tracker(driver_store, seed_driver):
    driver = seed_driver(is_on_duty=True, latitude=19.4326, longitude=-99.1332)
    tracker = DutyTracker(driver_store, driver["id"])
    tracker.load_initial_status()
    return tracker


@pytest.fixture
def open_request(fake_client):
    return fake_client.seed("trip_requests", {
        "origin": "A",
        "destination": "B",
        "origin_lat": 19.4326,
        "origin_lng": -99.1332,
        "price": 70.0,
        "search_radius": 3000,
        "vehicle_type": "4_ruedas",
        "status": "broadcasting",
    })


class TestPendingRequestPoller:

    def test_lists_open_requests(self, trip_store, on_duty_tracker, open_request):
        poller = PendingRequestPoller(trip_store, on_duty_tracker, "4_ruedas")

        assert [r.id for r in poller.poll()] == [open_request["id"]]

    def test_rejected_requests_hidden(self, trip_store, on_duty_tracker, open_request):
        rejected = RejectedRequests()
        rejected.add(open_request["id"])
        poller = PendingRequestPoller(trip_store, on_duty_tracker, "4_ruedas", rejected=rejected)

        assert poller.poll() == []

    def test_nothing_while_off_duty(self, trip_store, on_duty_tracker, open_request, fake_client):
        on_duty_tracker.is_on_duty = False
        poller = PendingRequestPoller(trip_store, on_duty_tracker, "4_ruedas")
        queries = len(fake_client.queries)

        assert poller.poll() == []
        assert len(fake_client.queries) == queries

    def test_nothing_without_position(self, trip_store, on_duty_tracker, open_request):
        on_duty_tracker.position = None
        poller = PendingRequestPoller(trip_store, on_duty_tracker, "4_ruedas")

        assert poller.poll() == []

    def test_nothing_during_active_trip(self, trip_store, on_duty_tracker, open_request):
        poller = PendingRequestPoller(
            trip_store, on_duty_tracker, "4_ruedas", has_active_trip=lambda: True
        )

        assert poller.poll() == []

    def test_uses_configured_interval(self, trip_store, on_duty_tracker):
        assert PendingRequestPoller(trip_store, on_duty_tracker, "4_ruedas").loop.interval == 10
        assert PendingRequestPoller(
            trip_store, on_duty_tracker, "4_ruedas", interval=3
        ).loop.interval == 3

    def test_poll_replaces_previous_list(self, trip_store, on_duty_tracker, open_request):
        poller = PendingRequestPoller(trip_store, on_duty_tracker, "4_ruedas")
        poller.poll()

        on_duty_tracker.on_position(Position(latitude=0.0, longitude=0.0))

        assert poller.poll() == []
        assert poller.requests == []
