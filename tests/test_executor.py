# tests/test_executor.py
"""Tests for the single-flight executor and the aiohttp transport."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import pytest
from aiohttp import ClientConnectionError

from fcm_registration.exceptions import RequestInFlightError, TransportError
from fcm_registration.executor import AiohttpTransport, HttpRequest, RequestExecutor
from tests.helpers.transport import FakeTransport

REQUEST = HttpRequest(url="https://example.invalid/checkin", json={"a": 1})


@dataclass
class _FakeResponse:
    status: int
    body: bytes

    async def __aenter__(self) -> _FakeResponse:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        return None

    async def read(self) -> bytes:
        return self.body


class _FakeSession:
    """Minimal aiohttp session stub that records requests."""

    def __init__(self, response: _FakeResponse | Exception) -> None:
        self._response = response
        self.calls: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        if isinstance(self._response, Exception):
            raise self._response
        return self._response


def test_in_flight_flag_cleared_before_completion() -> None:
    transport = FakeTransport([b"payload"])
    seen: list[tuple[bytes | None, BaseException | None, bool]] = []

    async def run() -> None:
        executor = RequestExecutor(transport)

        def on_complete(body: bytes | None, error: BaseException | None) -> None:
            seen.append((body, error, executor.in_flight))

        executor.submit(REQUEST, on_complete)
        assert executor.in_flight
        await executor.wait_idle()
        assert not executor.in_flight

    asyncio.run(run())

    assert seen == [(b"payload", None, False)]


def test_transport_error_reaches_completion() -> None:
    error = TransportError(detail="connection reset")
    transport = FakeTransport([error])
    seen: list[tuple[bytes | None, BaseException | None]] = []

    async def run() -> None:
        executor = RequestExecutor(transport)
        executor.submit(REQUEST, lambda body, err: seen.append((body, err)))
        await executor.wait_idle()

    asyncio.run(run())

    assert seen == [(None, error)]


def test_submit_while_in_flight_raises() -> None:
    transport = FakeTransport([b"one"])

    async def run() -> None:
        executor = RequestExecutor(transport)
        executor.submit(REQUEST, lambda *_: None)
        with pytest.raises(RequestInFlightError):
            executor.submit(REQUEST, lambda *_: None)
        await executor.wait_idle()

    asyncio.run(run())

    assert len(transport.requests) == 1


def test_wait_idle_follows_chained_submissions() -> None:
    transport = FakeTransport([b"first", b"second"])
    bodies: list[bytes | None] = []

    async def run() -> None:
        executor = RequestExecutor(transport)

        def on_second(body: bytes | None, _error: BaseException | None) -> None:
            bodies.append(body)

        def on_first(body: bytes | None, _error: BaseException | None) -> None:
            bodies.append(body)
            executor.submit(REQUEST, on_second)

        executor.submit(REQUEST, on_first)
        await executor.wait_idle()

    asyncio.run(run())

    assert bodies == [b"first", b"second"]


def test_aiohttp_transport_returns_body() -> None:
    session = _FakeSession(_FakeResponse(200, b"ok"))
    transport = AiohttpTransport(session)  # type: ignore[arg-type]
    request = HttpRequest(
        url="https://example.invalid/register",
        headers={"app": "bundle"},
        data={"a": "b"},
    )

    body = asyncio.run(transport.send(request))

    assert body == b"ok"
    call = session.calls[0]
    assert call["method"] == "POST"
    assert call["url"] == "https://example.invalid/register"
    assert call["headers"] == {"app": "bundle"}
    assert call["data"] == {"a": "b"}
    assert call["json"] is None
    assert call["timeout"] is AiohttpTransport.CLIENT_TIMEOUT


def test_aiohttp_transport_rejects_error_status() -> None:
    session = _FakeSession(_FakeResponse(500, b"<!doctype html>oops"))
    transport = AiohttpTransport(session)  # type: ignore[arg-type]

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(transport.send(REQUEST))

    assert excinfo.value.status == 500
    assert excinfo.value.detail is not None
    assert excinfo.value.detail.endswith("[html]")


def test_aiohttp_transport_wraps_client_errors() -> None:
    session = _FakeSession(ClientConnectionError("refused"))
    transport = AiohttpTransport(session)  # type: ignore[arg-type]

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(transport.send(REQUEST))

    assert excinfo.value.status is None
    assert "refused" in str(excinfo.value)


def test_aiohttp_transport_does_not_close_shared_session() -> None:
    session = _FakeSession(_FakeResponse(200, b"ok"))
    transport = AiohttpTransport(session)  # type: ignore[arg-type]

    asyncio.run(transport.close())

    assert transport._session is session


def test_completion_callback_error_is_logged(
    caplog: pytest.LogCaptureFixture,
) -> None:
    transport = FakeTransport([b"payload"])

    def on_complete(_body: bytes | None, _error: BaseException | None) -> None:
        raise RuntimeError("listener blew up")

    async def run() -> asyncio.Task[None]:
        executor = RequestExecutor(transport)
        task = executor.submit(REQUEST, on_complete)
        await executor.wait_idle()
        assert not executor.in_flight
        return task

    with caplog.at_level(logging.ERROR):
        task = asyncio.run(run())

    assert task.exception() is None
    assert any(
        "Completion callback for https://example.invalid/checkin raised"
        in record.getMessage()
        for record in caplog.records
    )
