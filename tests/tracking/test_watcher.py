"""Tests for RequestWatcher."""

import pytest

from taxidispatch.tracking import notifications
from taxidispatch.tracking.notifications import Notifier, notification_id
from taxidispatch.tracking.watcher import RequestWatcher

ORIGIN = {"origin_lat": 19.4326, "origin_lng": -99.1332}


@pytest.fixture
def driver(seed_driver):
    return seed_driver(is_on_duty=True, latitude=ORIGIN["origin_lat"], longitude=ORIGIN["origin_lng"])


@pytest.fixture
def notifier(trip_store):
    return Notifier(trip_store)


@pytest.fixture
def watcher(driver_store, trip_store, notifier, driver):
    return RequestWatcher(driver_store, trip_store, notifier, driver["id"])


@pytest.fixture
def add_request(fake_client):
    def _add(**fields):
        row = {
            "origin": "Centro",
            "destination": "Norte",
            "price": 55.0,
            "search_radius": 2000,
            "vehicle_type": "4_ruedas",
            "status": "broadcasting",
            **ORIGIN,
        }
        row.update(fields)
        return fake_client.seed("trip_requests", row)
    return _add


def test_new_requests_notified_once(watcher, notifier, add_request):
    first = add_request()

    assert [r.id for r in watcher.check()] == [first["id"]]
    assert watcher.check() == []

    second = add_request()
    assert [r.id for r in watcher.check()] == [second["id"]]
    assert set(notifier.displayed) == {notification_id(first["id"]), notification_id(second["id"])}


def test_previous_set_tracks_current_cycle(watcher, add_request, fake_client):
    request = add_request()
    watcher.check()

    fake_client.rows("trip_requests")[0]["status"] = "accepted"
    watcher.check()

    assert watcher.previous_requests == set()
    assert request["id"] not in watcher.previous_requests


def test_off_duty_stops_watcher(watcher, fake_client, add_request):
    add_request()
    fake_client.rows("driver_profiles")[0]["is_on_duty"] = False

    assert watcher.check() == []
    assert not watcher.is_running


def test_stop_resets_seen_requests(watcher, notifier, add_request):
    request = add_request()
    watcher.check()
    assert watcher.previous_requests

    watcher.stop()

    assert watcher.previous_requests == set()
    assert notifier.displayed == {}
    assert len(watcher.check()) == 1
    assert set(notifier.displayed) == {notification_id(request["id"])}


def test_restart_delivers_webhook_again(driver_store, trip_store, driver, add_request, monkeypatch):
    posted = []

    class Response:
        def raise_for_status(self):
            pass

    def fake_post(url, json=None, timeout=None):
        posted.append(json["request_id"])
        return Response()

    monkeypatch.setattr(notifications.requests, "post", fake_post)
    notifier = Notifier(trip_store, webhook_url="https://hooks.example.com/taxi")
    watcher = RequestWatcher(driver_store, trip_store, notifier, driver["id"])
    request = add_request()

    watcher.check()
    watcher.check()
    watcher.stop()
    watcher.check()

    assert posted == [request["id"], request["id"]]


def test_background_interval(watcher):
    assert watcher.loop.interval == 15

    watcher.set_background(True)
    assert watcher.loop.interval == 30

    watcher.set_background(False)
    assert watcher.loop.interval == 15


def test_background_restores_custom_interval(driver_store, trip_store, notifier, driver):
    watcher = RequestWatcher(driver_store, trip_store, notifier, driver["id"], interval=5)

    watcher.set_background(True)
    assert watcher.loop.interval == 30

    watcher.set_background(False)
    assert watcher.loop.interval == 5
