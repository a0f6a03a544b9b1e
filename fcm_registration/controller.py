# fcm_registration/controller.py
"""Registration state machine.

The controller owns the cached check-in, installation and push token state
and drives the handshake one stage at a time:

    check-in -> installation (issue or refresh) -> token registration

Every successful stage notifies listeners and re-drives ``register`` with the
most recently supplied platform token, so a token that arrives while a
request is in flight is picked up as soon as that request completes ("latest
wins"). A failed stage invalidates the state it was trying to establish and
stops; retrying is left to the caller.

All methods must be called from the event loop that runs the requests.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import replace
from functools import partial
from typing import Any, Protocol, TypeVar

from ._typing import (
    CheckinUpdatedCallable,
    InstallationUpdatedCallable,
    PushTokenUpdatedCallable,
)
from .checkin import CheckinStage
from .exceptions import MissingPrerequisiteError, ResponseParseError, StageError
from .executor import AiohttpTransport, RequestExecutor, Transport
from .installation import InstallationStage
from .models import CheckinRecord, InstallationRecord, ServiceConfig, SystemInfo
from .registration import TokenRegistrationStage
from .util import redact

_logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class RegistrationListener(Protocol):
    """Observer of handshake progress.

    Listeners may implement any subset of these methods; missing ones are
    skipped. Each fires once per successful stage.
    """

    def on_checkin_updated(self, checkin: CheckinRecord) -> None: ...

    def on_installation_updated(self, installation: InstallationRecord) -> None: ...

    def on_push_token_updated(self, push_token: str, platform_token: bytes) -> None: ...


class _CallbackListener:
    """Adapts individual constructor callbacks to the listener interface."""

    def __init__(
        self,
        checkin_updated: CheckinUpdatedCallable | None,
        installation_updated: InstallationUpdatedCallable | None,
        push_token_updated: PushTokenUpdatedCallable | None,
    ) -> None:
        if checkin_updated is not None:
            self.on_checkin_updated = checkin_updated
        if installation_updated is not None:
            self.on_installation_updated = installation_updated
        if push_token_updated is not None:
            self.on_push_token_updated = push_token_updated


class RegistrationController:  # pylint:disable=too-many-instance-attributes
    """Obtains and maintains a push token for one application installation."""

    def __init__(
        self,
        config: ServiceConfig,
        system_info: SystemInfo | None = None,
        *,
        sandbox: bool = False,
        transport: Transport | None = None,
        checkin: CheckinRecord | None = None,
        installation: InstallationRecord | None = None,
        push_token: str | None = None,
        checkin_updated_callback: CheckinUpdatedCallable | None = None,
        installation_updated_callback: InstallationUpdatedCallable | None = None,
        push_token_updated_callback: PushTokenUpdatedCallable | None = None,
        clock: Callable[[], float] = time.time,
        log_debug_verbose: bool = False,
    ) -> None:
        """
        Initialize the controller.

        Args:
            config: Backend identifiers for the application.
            system_info: Host metadata; defaults to SystemInfo().
            sandbox: Register the platform token against the sandbox environment.
            transport: Optional transport; an AiohttpTransport is created otherwise.
            checkin: Previously persisted check-in record.
            installation: Previously persisted installation record.
            push_token: Previously registered push token.
            checkin_updated_callback: Optional callback for check-in updates.
            installation_updated_callback: Optional callback for installation updates.
            push_token_updated_callback: Optional callback for push token updates.
            clock: Returns the current time in seconds since the epoch.
            log_debug_verbose: If True, enables verbose debug logging.
        """
        self.config = config
        self.system_info = system_info if system_info is not None else SystemInfo()
        self.sandbox = sandbox

        self._owns_transport = transport is None
        self._transport: Transport = transport or AiohttpTransport()
        self._executor = RequestExecutor(self._transport)

        self._checkin_stage = CheckinStage()
        self._installation_stage = InstallationStage(config)
        self._registration_stage = TokenRegistrationStage(config, sandbox=sandbox)

        self._checkin = checkin
        self._installation = installation
        self._push_token = push_token
        self._pending_platform_token: bytes | None = None

        self._clock = clock
        self._closed = False
        self._log_debug_verbose = log_debug_verbose

        self._listeners: list[Any] = []
        if (
            checkin_updated_callback
            or installation_updated_callback
            or push_token_updated_callback
        ):
            self._listeners.append(
                _CallbackListener(
                    checkin_updated_callback,
                    installation_updated_callback,
                    push_token_updated_callback,
                )
            )

    # ---------------------------------------------------------------------
    # State accessors
    # ---------------------------------------------------------------------
    @property
    def checkin(self) -> CheckinRecord | None:
        return self._checkin

    @property
    def installation(self) -> InstallationRecord | None:
        return self._installation

    @property
    def push_token(self) -> str | None:
        return self._push_token

    @property
    def pending_platform_token(self) -> bytes | None:
        return self._pending_platform_token

    @property
    def is_requesting(self) -> bool:
        return self._executor.in_flight

    @property
    def is_settled(self) -> bool:
        """Return True when no platform token awaits registration."""
        return self._pending_platform_token is None and not self._executor.in_flight

    @property
    def closed(self) -> bool:
        return self._closed

    # ---------------------------------------------------------------------
    # Listeners
    # ---------------------------------------------------------------------
    def add_listener(self, listener: RegistrationListener | Any) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _notify(self, method: str, *args: object) -> None:
        for listener in list(self._listeners):
            callback = getattr(listener, method, None)
            if callback is None:
                continue
            try:
                callback(*args)
            except Exception as err:  # avoid a listener breaking the handshake
                _logger.warning(
                    "Listener %s.%s raised: %s",
                    type(listener).__name__,
                    method,
                    err,
                    exc_info=self._log_debug_verbose,
                )

    # ---------------------------------------------------------------------
    # Handshake
    # ---------------------------------------------------------------------
    def register(self, platform_token: bytes) -> None:
        """Obtain a push token for ``platform_token``.

        Safe to call whenever the platform token changes. While a request is
        in flight the token is only queued; the running handshake picks it up
        when that request completes. Results are reported to listeners.
        """
        platform_token = bytes(platform_token)
        self._pending_platform_token = platform_token
        if self._closed:
            _logger.debug("Ignoring register(): controller is closed")
            return
        if self._executor.in_flight:
            self._log_verbose("Request in flight; queued platform token")
            return

        checkin = self._checkin
        if (
            checkin is not None
            and checkin.timestamp is not None
            and not checkin.is_valid(self._now_ms())
        ):
            _logger.debug("Check-in data expired; a new check-in is required")
            checkin = self._checkin = replace(checkin, timestamp=None)

        system_info = replace(self.system_info)
        if checkin is None or checkin.timestamp is None:
            self._start_checkin(system_info)
        elif self._installation is None or not self._installation.has_auth_token:
            self._start_installation()
        else:
            self._start_registration(platform_token, system_info)

    def _restore(self) -> None:
        """Re-drive the handshake with the most recent platform token."""
        if self._pending_platform_token is not None:
            self.register(self._pending_platform_token)

    # -- check-in ----------------------------------------------------------
    def _start_checkin(self, system_info: SystemInfo) -> None:
        self._log_verbose("Selected stage: %s", self._checkin_stage.name)
        request = self._checkin_stage.build_request(self._checkin, system_info)
        self._executor.submit(request, self._on_checkin_complete)

    def _on_checkin_complete(
        self, body: bytes | None, error: BaseException | None
    ) -> None:
        if self._closed:
            return
        record = self._parse_result(
            self._checkin_stage.name, body, error, self._checkin_stage.parse_response
        )
        if record is None:
            self._checkin = None
            return

        if record.timestamp is None:
            record = replace(record, timestamp=self._now_ms())
        self._checkin = record
        self._notify("on_checkin_updated", record)
        self._restore()

    # -- installation ------------------------------------------------------
    def _start_installation(self) -> None:
        self._log_verbose("Selected stage: %s", self._installation_stage.name)
        request = self._installation_stage.build_request(self._installation)
        self._executor.submit(request, self._on_installation_complete)

    def _on_installation_complete(
        self, body: bytes | None, error: BaseException | None
    ) -> None:
        if self._closed:
            return
        installation = self._installation
        record = self._parse_result(
            self._installation_stage.name,
            body,
            error,
            partial(self._installation_stage.parse_response, installation=installation),
        )
        if record is None:
            if self._checkin is not None:
                self._checkin = replace(self._checkin, timestamp=None)
            self._installation = None
            return

        self._installation = record
        self._notify("on_installation_updated", record)
        self._restore()

    # -- token registration ------------------------------------------------
    def _start_registration(
        self, platform_token: bytes, system_info: SystemInfo
    ) -> None:
        self._log_verbose("Selected stage: %s", self._registration_stage.name)
        try:
            request = self._registration_stage.build_request(
                self._checkin, self._installation, platform_token, system_info
            )
        except MissingPrerequisiteError as err:
            self._on_registration_complete(platform_token, None, err)
            return
        self._executor.submit(
            request, partial(self._on_registration_complete, platform_token)
        )

    def _on_registration_complete(
        self,
        platform_token: bytes,
        body: bytes | None,
        error: BaseException | None,
    ) -> None:
        if self._closed:
            return
        push_token = self._parse_result(
            self._registration_stage.name,
            body,
            error,
            self._registration_stage.parse_response,
        )
        if push_token is None:
            if self._installation is not None:
                self._installation = replace(self._installation, auth_token=None)
            return

        self._push_token = push_token
        self._notify("on_push_token_updated", push_token, platform_token)
        if self._pending_platform_token == platform_token:
            self._pending_platform_token = None
            _logger.info("Registered push token %s", redact(push_token))
        else:
            _logger.debug(
                "Platform token changed during registration; registering again"
            )
            self._restore()

    # ---------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------
    def _parse_result(
        self,
        stage: str,
        body: bytes | None,
        error: BaseException | None,
        parse: Callable[[bytes], _T],
    ) -> _T | None:
        """Return the parsed stage result, or None if the stage failed."""
        if error is None:
            if body is None:
                error = ResponseParseError("Empty response")
            else:
                try:
                    return parse(body)
                except StageError as err:
                    error = err
                except Exception as err:  # malformed payloads count as parse failures
                    _logger.debug(
                        "Unexpected error parsing %s response", stage, exc_info=err
                    )
                    error = err

        _logger.warning("FCM %s failed: %s", stage, error)
        return None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _log_verbose(self, msg: str, *args: object) -> None:
        """Log a debug message only if verbose logging is enabled."""
        if self._log_debug_verbose:
            _logger.debug(msg, *args)

    # ---------------------------------------------------------------------
    # Lifetime
    # ---------------------------------------------------------------------
    async def async_wait_idle(self) -> None:
        """Wait until the handshake has no request in flight."""
        await self._executor.wait_idle()

    def close(self) -> None:
        """Stop driving the handshake; pending completions become no-ops."""
        self._closed = True

    async def async_close(self) -> None:
        """Close the controller and any transport it created."""
        self.close()
        if self._owns_transport and isinstance(self._transport, AiohttpTransport):
            await self._transport.close()
