"""Tests for the standalone request watcher entry point."""

import pytest
import requests

from taxidispatch.tracking import service


class StubWatcher:
    def __init__(self, found=0, error=None):
        self.found = found
        self.error = error
        self.checks = 0

    def check(self):
        self.checks += 1
        if self.error:
            raise self.error
        return [object()] * self.found


@pytest.fixture
def pings(monkeypatch):
    sent = []
    monkeypatch.setattr(service, "HEALTHCHECK_URL", "https://hc.example.com/ping/abc/")
    monkeypatch.setattr(service.requests, "get", lambda url, timeout: sent.append(url))
    monkeypatch.setattr(
        service.requests, "post", lambda url, data, timeout: sent.append((url, data.decode()))
    )
    return sent


@pytest.fixture
def configured(monkeypatch):
    monkeypatch.setattr(service.env_config, "validate", lambda: None)


def test_ping_without_url_is_noop(monkeypatch):
    monkeypatch.setattr(service, "HEALTHCHECK_URL", None)

    def fail(*args, **kwargs):
        raise AssertionError("no request expected")

    monkeypatch.setattr(service.requests, "get", fail)
    service.ping_healthcheck()


def test_ping_failure_is_logged(monkeypatch, caplog):
    monkeypatch.setattr(service, "HEALTHCHECK_URL", "https://hc.example.com/ping/abc")

    def fail(url, timeout):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(service.requests, "get", fail)
    service.ping_healthcheck("/start")

    assert "Failed to ping healthcheck" in caplog.text


def test_single_check(monkeypatch, pings, configured):
    watcher = StubWatcher(found=2)
    monkeypatch.setattr(service, "build_watcher", lambda driver_id, interval: watcher)

    assert service.run_watcher("driver-1", once=True) == 0
    assert watcher.checks == 1
    assert pings == [
        "https://hc.example.com/ping/abc/start",
        "https://hc.example.com/ping/abc",
    ]


def test_failure_reports_fail(monkeypatch, pings, configured):
    watcher = StubWatcher(error=RuntimeError("backend down"))
    monkeypatch.setattr(service, "build_watcher", lambda driver_id, interval: watcher)

    assert service.run_watcher("driver-1", once=True) == 1
    url, body = pings[-1]
    assert url == "https://hc.example.com/ping/abc/fail"
    assert "backend down" in body


def test_missing_backend_config(monkeypatch, pings):
    def missing():
        raise ValueError("Missing required config: SUPABASE_URL")

    monkeypatch.setattr(service.env_config, "validate", missing)

    assert service.run_watcher("driver-1", once=True) == 1


def test_main_parses_arguments(monkeypatch, tmp_path):
    calls = []
    monkeypatch.setattr(service, "setup_logging", lambda log_dir: service.logging.getLogger("test"))
    monkeypatch.setattr(
        service, "run_watcher", lambda driver_id, interval, once: calls.append((driver_id, interval, once)) or 0
    )

    code = service.main(["--driver-id", "driver-7", "--interval", "5", "--once", "--log-dir", str(tmp_path)])

    assert code == 0
    assert calls == [("driver-7", 5.0, True)]


def test_main_default_interval(monkeypatch):
    calls = []
    monkeypatch.setattr(service, "setup_logging", lambda log_dir: service.logging.getLogger("test"))
    monkeypatch.setattr(
        service, "run_watcher", lambda driver_id, interval, once: calls.append(interval) or 0
    )

    service.main(["--driver-id", "driver-7"])

    assert calls == [15]
