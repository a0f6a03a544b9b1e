# fcm_registration/executor.py
#
# firebase-messaging
# https://github.com/sdb9696/firebase-messaging
#
# MIT License
#
# Copyright (c) 2017 Matthieu Lemoine
# Copyright (c) 2023 Steven Beth
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
"""Single-flight request execution for the registration handshake.

The executor owns the handshake-wide "one request in flight" flag. It is set
synchronously when a request is submitted and cleared as soon as the
transport finishes, before the completion callback runs, so a completion may
immediately submit the next stage.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Protocol

from aiohttp import ClientError, ClientSession, ClientTimeout

from ._typing import CompletionCallable, JSONDict
from .const import CLIENT_TIMEOUT_S
from .exceptions import RequestInFlightError, TransportError
from .util import body_snippet

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HttpRequest:
    """A single backend call.

    At most one of ``json`` (JSON body) and ``data`` (form fields) is set.
    """

    url: str
    method: str = "POST"
    headers: Mapping[str, str] = field(default_factory=dict)
    json: JSONDict | None = None
    data: Mapping[str, str] | None = None


class Transport(Protocol):
    """Sends one request and returns the raw response body."""

    async def send(self, request: HttpRequest) -> bytes:
        """Return the body, or raise TransportError if none was obtained."""
        ...


class AiohttpTransport:
    """Transport backed by an aiohttp ClientSession."""

    CLIENT_TIMEOUT = ClientTimeout(total=CLIENT_TIMEOUT_S)

    def __init__(
        self,
        http_client_session: ClientSession | None = None,
        *,
        timeout: ClientTimeout | None = None,
    ) -> None:
        """
        Initialize the transport.

        Args:
            http_client_session: Optional aiohttp ClientSession to reuse.
            timeout: Optional timeout overriding CLIENT_TIMEOUT.
        """
        self._http_client_session = http_client_session
        self._local_session: ClientSession | None = None
        self._timeout = timeout or self.CLIENT_TIMEOUT

    @property
    def _session(self) -> ClientSession:
        """
        Return the aiohttp session, creating one if it doesn't exist.
        """
        if self._http_client_session:
            return self._http_client_session
        if self._local_session is None:
            self._local_session = ClientSession()
        return self._local_session

    async def send(self, request: HttpRequest) -> bytes:
        try:
            async with self._session.request(
                request.method,
                request.url,
                headers=dict(request.headers),
                json=request.json,
                data=dict(request.data) if request.data is not None else None,
                timeout=self._timeout,
            ) as resp:
                status = resp.status
                body = await resp.read()
        except (ClientError, TimeoutError) as err:
            raise TransportError(detail=str(err) or type(err).__name__) from err

        if not HTTPStatus.OK <= status < HTTPStatus.MULTIPLE_CHOICES:
            raise TransportError(status, body_snippet(body))
        return body

    async def close(self) -> None:
        """Close the local aiohttp session if one was created."""
        session = self._local_session
        self._local_session = None
        if session:
            await session.close()


class RequestExecutor:
    """Dispatches handshake requests one at a time."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self._in_flight = False
        self._task: asyncio.Task[None] | None = None

    @property
    def in_flight(self) -> bool:
        """Return True while a request has been submitted but not completed."""
        return self._in_flight

    def submit(
        self, request: HttpRequest, on_complete: CompletionCallable
    ) -> asyncio.Task[None]:
        """Send ``request`` in the background.

        ``on_complete`` is invoked exactly once, with the response body and
        ``None``, or with ``None`` and the error that prevented a response.
        Must be called from a running event loop.
        """
        if self._in_flight:
            raise RequestInFlightError
        loop = asyncio.get_running_loop()
        self._in_flight = True
        _logger.debug("Dispatching %s %s", request.method, request.url)
        task = loop.create_task(self._run(request, on_complete))
        self._task = task
        return task

    async def _run(self, request: HttpRequest, on_complete: CompletionCallable) -> None:
        body: bytes | None = None
        error: BaseException | None = None
        try:
            body = await self._transport.send(request)
        except Exception as err:  # every transport failure reaches the stage
            error = err
        finally:
            self._in_flight = False
        try:
            on_complete(body, error)
        except Exception:
            _logger.exception("Completion callback for %s raised", request.url)

    async def wait_idle(self) -> None:
        """Wait until no request is in flight.

        Completions may submit follow-up requests, so this keeps waiting until
        the chain of submissions has ended.
        """
        while (task := self._task) is not None and not task.done():
            await asyncio.wait({task})
