"""Async HTTP client for the process control API."""

from typing import Any

import httpx

from proctl.errors import (
    NetworkFailureError,
    ProcessControlError,
    RequestTimeoutError,
    error_for_code,
)
from proctl.logging_setup import get_logger
from proctl.models import Process

logger = get_logger("client")


class ProcessControlClient:
    """
    Talks to a proctl service.

    Every call either returns parsed data or raises a ProcessControlError
    subclass: NetworkFailureError when the service is unreachable,
    RequestTimeoutError when it does not answer in time, and the error class
    named by the response's error_code otherwise.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:2000",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    @property
    def base_url(self) -> str:
        return str(self._http.base_url)

    async def __aenter__(self) -> "ProcessControlClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def get_name(self) -> str:
        """Display name of the user running the service."""
        body = await self._request("GET", "/api/name")
        try:
            return str(body["name"])
        except (KeyError, TypeError) as e:
            raise ProcessControlError(f"malformed name response: {body!r}") from e

    async def list_processes(self) -> list[Process]:
        """Current process table, in server order."""
        body = await self._request("GET", "/api/processes")
        if not isinstance(body, list):
            raise ProcessControlError(f"malformed process list: {body!r}")
        return [self._process(item) for item in body]

    async def start(self, name: str) -> Process:
        """Launch a process for the given command line."""
        body = await self._request("POST", "/api/add", json={"name": name})
        try:
            return self._process(body["process"])
        except (KeyError, TypeError) as e:
            raise ProcessControlError(f"malformed start response: {body!r}") from e

    async def stop(self, pid: int) -> list[Process]:
        """Stop the process with the given id."""
        return await self._stop({"id": pid})

    async def stop_by_name(self, name: str) -> list[Process]:
        """Stop every process with the given name."""
        return await self._stop({"name": name})

    async def _stop(self, payload: dict[str, Any]) -> list[Process]:
        body = await self._request("POST", "/api/stop", json=payload)
        try:
            return [self._process(item) for item in body["stopped"]]
        except (KeyError, TypeError) as e:
            raise ProcessControlError(f"malformed stop response: {body!r}") from e

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> Any:
        try:
            response = await self._http.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"{method} {path} timed out") from e
        except httpx.TransportError as e:
            raise NetworkFailureError(f"{method} {path} failed: {e}") from e
        logger.debug(f"{method} {path} -> {response.status_code}")

        try:
            body = response.json()
        except ValueError:
            body = None

        failed = isinstance(body, dict) and body.get("success") is False
        if response.is_error or failed:
            raise self._error(response, body)
        if body is None:
            raise ProcessControlError(f"{method} {path} returned a non-JSON body")
        return body

    @staticmethod
    def _error(response: httpx.Response, body: Any) -> ProcessControlError:
        if isinstance(body, dict):
            message = body.get("error") or body.get("message") or f"HTTP {response.status_code}"
            return error_for_code(body.get("error_code"), str(message))
        return ProcessControlError(f"HTTP {response.status_code}")

    @staticmethod
    def _process(item: Any) -> Process:
        try:
            return Process.from_dict(item)
        except (KeyError, TypeError, ValueError) as e:
            raise ProcessControlError(f"malformed process entry: {item!r}") from e
