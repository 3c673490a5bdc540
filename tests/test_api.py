"""Tests for the process control HTTP API."""

import os

import pytest
from fastapi.testclient import TestClient

from conftest import sleeper_command
from proctl.api import create_app
from proctl.config import Config, ServerConfig
from proctl.errors import (
    InvalidArgumentError,
    LaunchFailureError,
    ProcessNotFoundError,
    TerminationFailureError,
)
from proctl.models import Process
from proctl.registry import ProcessRegistry


class FakeRegistry:
    """Registry double that records calls and can be told to fail."""

    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[tuple] = []
        self.error = error

    def list_processes(self):
        self.calls.append(("list_processes",))
        return iter([Process(id=1, name="init", memory=4096)])

    def start(self, name):
        self.calls.append(("start", name))
        if self.error:
            raise self.error
        return Process(id=10, name=name, memory=0)

    def stop(self, pid):
        self.calls.append(("stop", pid))
        if self.error:
            raise self.error
        return Process(id=pid, name="victim", memory=0)

    def stop_by_name(self, name):
        self.calls.append(("stop_by_name", name))
        if self.error:
            raise self.error
        return [Process(id=11, name=name, memory=0)]


@pytest.fixture
def config():
    return Config(server=ServerConfig(display_name="Ada"))


@pytest.fixture
def api(registry, config):
    """API over a real registry of launched children."""
    return TestClient(create_app(registry=registry, config=config))


@pytest.fixture
def fake_registry():
    return FakeRegistry()


@pytest.fixture
def fake_api(fake_registry, config):
    return TestClient(create_app(registry=fake_registry, config=config))


def test_get_name(api):
    response = api.get("/api/name")

    assert response.status_code == 200
    assert response.json() == {"name": "Ada"}


def test_list_processes_empty(api):
    response = api.get("/api/processes")

    assert response.status_code == 200
    assert response.json() == []


def test_list_processes_wire_format(fake_api):
    response = fake_api.get("/api/processes")

    assert response.json() == [{"id": 1, "name": "init", "memory": 4096}]


def test_start_then_list(api):
    command = sleeper_command()

    response = api.post("/api/add", json={"name": command})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["process"]["name"] == command

    listed = api.get("/api/processes").json()
    assert [p["id"] for p in listed if p["name"] == command] == [body["process"]["id"]]


def test_start_accepts_legacy_field(fake_api, fake_registry):
    response = fake_api.post("/api/add", json={"Name": "nginx"})

    assert response.status_code == 200
    assert fake_registry.calls == [("start", "nginx")]


def test_start_missing_field_is_rejected_before_registry(fake_api, fake_registry):
    response = fake_api.post("/api/add", json={})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "INVALID_ARGUMENT"
    assert fake_registry.calls == []


def test_start_malformed_json_is_rejected(fake_api, fake_registry):
    response = fake_api.post(
        "/api/add", content=b"{not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_ARGUMENT"
    assert fake_registry.calls == []


def test_start_blank_name(api):
    response = api.post("/api/add", json={"name": "   "})

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_ARGUMENT"
    assert api.get("/api/processes").json() == []


def test_start_missing_executable(api):
    response = api.post("/api/add", json={"name": "definitely-not-a-real-executable-4f1c"})

    assert response.status_code == 422
    body = response.json()
    assert body == {
        "success": False,
        "error": body["error"],
        "error_code": "LAUNCH_FAILURE",
    }
    assert "definitely-not-a-real-executable-4f1c" in body["error"]
    assert api.get("/api/processes").json() == []


def test_stop_by_id(api):
    started = api.post("/api/add", json={"name": sleeper_command()}).json()["process"]

    response = api.post("/api/stop", json={"id": started["id"]})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [p["id"] for p in body["stopped"]] == [started["id"]]
    assert api.get("/api/processes").json() == []


def test_stop_unknown_id(api):
    started = api.post("/api/add", json={"name": sleeper_command()}).json()["process"]
    api.post("/api/stop", json={"id": started["id"]})

    response = api.post("/api/stop", json={"id": started["id"]})

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "NOT_FOUND"
    assert "no such process" in body["error"]


def test_stop_by_name(api):
    command = sleeper_command()
    api.post("/api/add", json={"name": command})
    api.post("/api/add", json={"name": command})

    response = api.post("/api/stop", json={"name": command})

    assert response.status_code == 200
    assert len(response.json()["stopped"]) == 2
    assert api.get("/api/processes").json() == []


def test_stop_legacy_string_id(fake_api, fake_registry):
    """Older clients sent the pid as a string under Id."""
    response = fake_api.post("/api/stop", json={"Id": "123"})

    assert response.status_code == 200
    assert fake_registry.calls == [("stop", 123)]


@pytest.mark.parametrize(
    "payload",
    [{}, {"id": 1, "name": "both"}, {"id": "abc"}, {"id": -5}],
)
def test_stop_malformed_request(fake_api, fake_registry, payload):
    response = fake_api.post("/api/stop", json=payload)

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_ARGUMENT"
    assert fake_registry.calls == []


@pytest.mark.parametrize(
    ("error", "status", "code"),
    [
        (InvalidArgumentError("bad input"), 400, "INVALID_ARGUMENT"),
        (ProcessNotFoundError("no such process: 9"), 404, "NOT_FOUND"),
        (TerminationFailureError("access denied"), 409, "TERMINATION_FAILURE"),
        (LaunchFailureError("permission denied"), 422, "LAUNCH_FAILURE"),
    ],
)
def test_registry_errors_map_to_distinct_statuses(config, error, status, code):
    api = TestClient(create_app(registry=FakeRegistry(error=error), config=config))

    for path, payload in (("/api/add", {"name": "x"}), ("/api/stop", {"id": 9})):
        response = api.post(path, json=payload)

        assert response.status_code == status
        assert response.json() == {"success": False, "error": error.message, "error_code": code}


def test_unknown_route(fake_api):
    response = fake_api.get("/api/nope")

    assert response.status_code == 404
    assert response.json()["success"] is False
    assert response.json()["error_code"] == "HTTP_NOT_FOUND"


def test_stop_refuses_service_process(config):
    """The service answers instead of terminating itself."""
    api = TestClient(create_app(registry=ProcessRegistry(include_system=True), config=config))

    response = api.post("/api/stop", json={"id": os.getpid()})

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_ARGUMENT"
    assert api.get("/api/name").status_code == 200


def test_cors_allows_browser_origin(fake_api):
    response = fake_api.get("/api/name", headers={"Origin": "http://localhost:8080"})

    assert response.headers["access-control-allow-origin"] == "*"
