"""Tests for the async API client."""

import json

import httpx
import pytest

from conftest import sleeper_command
from proctl.api import create_app
from proctl.client import ProcessControlClient
from proctl.config import Config, ServerConfig
from proctl.errors import (
    LaunchFailureError,
    NetworkFailureError,
    ProcessControlError,
    ProcessNotFoundError,
    RequestTimeoutError,
)
from proctl.models import Process


def make_client(handler) -> ProcessControlClient:
    return ProcessControlClient("http://proctl.test", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_get_name():
    client = make_client(lambda request: httpx.Response(200, json={"name": "Ada"}))

    async with client:
        assert await client.get_name() == "Ada"


@pytest.mark.asyncio
async def test_list_processes_keeps_server_order():
    payload = [
        {"id": 3, "name": "zeta", "memory": 1},
        {"Id": "1", "Name": "alpha", "Memory": 2},
    ]
    client = make_client(lambda request: httpx.Response(200, json=payload))

    async with client:
        processes = await client.list_processes()

    assert processes == [Process(id=3, name="zeta", memory=1), Process(id=1, name="alpha", memory=2)]


@pytest.mark.asyncio
async def test_start_sends_name():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "process": {"id": 7, "name": "top", "memory": 0}})

    async with make_client(handler) as client:
        process = await client.start("top")

    assert process == Process(id=7, name="top", memory=0)
    assert seen == {"path": "/api/add", "body": {"name": "top"}}


@pytest.mark.asyncio
async def test_stop_sends_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "stopped": [{"id": 5, "name": "x", "memory": 0}]})

    async with make_client(handler) as client:
        stopped = await client.stop(5)

    assert seen["body"] == {"id": 5}
    assert [p.id for p in stopped] == [5]


@pytest.mark.asyncio
async def test_error_code_maps_to_exception():
    body = {"success": False, "error": "no such process: 5", "error_code": "NOT_FOUND"}
    client = make_client(lambda request: httpx.Response(404, json=body))

    async with client:
        with pytest.raises(ProcessNotFoundError, match="no such process: 5"):
            await client.stop(5)


@pytest.mark.asyncio
async def test_success_false_body_is_an_error():
    """A 200 carrying success=false is still a failure."""
    client = make_client(
        lambda request: httpx.Response(200, json={"success": False, "error": "no such process"})
    )

    async with client:
        with pytest.raises(ProcessControlError) as excinfo:
            await client.stop(5)

    assert str(excinfo.value) == "no such process"


@pytest.mark.asyncio
async def test_non_json_error():
    client = make_client(lambda request: httpx.Response(502, text="Bad Gateway"))

    async with client:
        with pytest.raises(ProcessControlError, match="HTTP 502"):
            await client.list_processes()


@pytest.mark.asyncio
async def test_malformed_list():
    client = make_client(lambda request: httpx.Response(200, json={"processes": []}))

    async with client:
        with pytest.raises(ProcessControlError, match="malformed"):
            await client.list_processes()


@pytest.mark.asyncio
async def test_connection_refused_is_network_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with make_client(handler) as client:
        with pytest.raises(NetworkFailureError):
            await client.list_processes()


@pytest.mark.asyncio
async def test_timeout_is_distinguishable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    async with make_client(handler) as client:
        with pytest.raises(RequestTimeoutError):
            await client.get_name()


@pytest.mark.asyncio
async def test_client_against_service(registry):
    """Drive the real API in-process through the ASGI transport."""
    app = create_app(registry=registry, config=Config(server=ServerConfig(display_name="Ada")))
    client = ProcessControlClient("http://testserver", transport=httpx.ASGITransport(app=app))
    command = sleeper_command()

    async with client:
        assert await client.get_name() == "Ada"

        started = await client.start(command)
        assert [p.id for p in await client.list_processes()] == [started.id]

        with pytest.raises(LaunchFailureError):
            await client.start("definitely-not-a-real-executable-4f1c")

        stopped = await client.stop(started.id)
        assert [p.id for p in stopped] == [started.id]
        assert await client.list_processes() == []

        with pytest.raises(ProcessNotFoundError):
            await client.stop(started.id)


@pytest.mark.asyncio
async def test_unknown_route_is_not_a_missing_process(registry):
    """A base URL pointing at the wrong prefix must not read as 'process not found'."""
    app = create_app(registry=registry, config=Config(server=ServerConfig(display_name="Ada")))
    client = ProcessControlClient("http://testserver/wrong", transport=httpx.ASGITransport(app=app))

    async with client:
        with pytest.raises(ProcessControlError) as excinfo:
            await client.stop(1)

    assert not isinstance(excinfo.value, ProcessNotFoundError)
