# fcm_registration/registration.py
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

from __future__ import annotations

import logging

from .const import (
    FCM_REGISTER_URL,
    HEADER_CLIENT_LOG_TYPE,
    HEADER_INSTALLATIONS_AUTH,
    PRODUCTION_TOKEN_PREFIX,
    REGISTER_CLIENT_VERSION,
    REGISTER_PLATFORM,
    REGISTER_SCOPE,
    SANDBOX_TOKEN_PREFIX,
)
from .executor import HttpRequest
from .exceptions import MissingPrerequisiteError, ResponseParseError
from .models import CheckinRecord, InstallationRecord, ServiceConfig, SystemInfo
from .util import body_snippet, redact

_logger = logging.getLogger(__name__)


def encode_platform_token(platform_token: bytes, sandbox: bool) -> str:
    """Return the APNs token as sent to the backend (``s_``/``p_`` + hex)."""
    prefix = SANDBOX_TOKEN_PREFIX if sandbox else PRODUCTION_TOKEN_PREFIX
    return prefix + platform_token.hex()


class TokenRegistrationStage:
    """Exchanges check-in, installation and platform token for a push token."""

    name = "token registration"

    def __init__(self, config: ServiceConfig, *, sandbox: bool = False) -> None:
        self.config = config
        self.sandbox = sandbox

    def build_request(
        self,
        checkin: CheckinRecord | None,
        installation: InstallationRecord | None,
        platform_token: bytes,
        system_info: SystemInfo,
    ) -> HttpRequest:
        """
        Build the form-encoded registration request.

        Raises:
            MissingPrerequisiteError: The check-in has no timestamp or the
                installation has no auth token.
        """
        if checkin is None or checkin.timestamp is None:
            raise MissingPrerequisiteError("Registration requires a valid check-in")
        if installation is None or not installation.has_auth_token:
            raise MissingPrerequisiteError(
                "Registration requires an installation auth token"
            )

        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "app": self.config.bundle_id,
            "info": checkin.version,
            "Authorization": f"AidLogin {checkin.device_id}:{checkin.secret_token}",
            HEADER_INSTALLATIONS_AUTH: installation.auth_token,
            HEADER_CLIENT_LOG_TYPE: "0",
        }
        body = {
            "app": self.config.bundle_id,
            "gmp_app_id": self.config.app_id,
            "sender": self.config.sender_id,
            "X-subtype": self.config.sender_id,
            "app_ver": system_info.app_version,
            "X-osv": system_info.os_version,
            "X-cliv": REGISTER_CLIENT_VERSION,
            "device": str(checkin.device_id),
            "appid": installation.app_instance_id,
            "apns_token": encode_platform_token(platform_token, self.sandbox),
            "plat": REGISTER_PLATFORM,
            "X-scope": REGISTER_SCOPE,
        }
        _logger.debug(
            "Registration request: app=%s, device=%s, appid=%s, sandbox=%s",
            body["app"],
            redact(body["device"]),
            redact(body["appid"]),
            self.sandbox,
        )
        return HttpRequest(url=FCM_REGISTER_URL, headers=headers, data=body)

    def parse_response(self, body: bytes) -> str:
        """Return the push token from a ``key=value`` line response.

        Raises:
            ResponseParseError: No ``token=`` line is present.
        """
        text = body.decode("utf-8", errors="replace")
        error_code: str | None = None
        for line in text.split("\n"):
            if line.startswith("token="):
                if token := line.removeprefix("token=").strip():
                    return token
                continue
            key, _, value = line.partition("=")
            if key.strip().lower() == "error":
                error_code = value.strip().upper()

        if error_code:
            raise ResponseParseError(f"Registration rejected: Error={error_code}")
        raise ResponseParseError(
            f"Registration response has no token: {body_snippet(text)}"
        )
