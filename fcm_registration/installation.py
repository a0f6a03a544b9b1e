# fcm_registration/installation.py
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

import json
import logging
import uuid
from base64 import urlsafe_b64encode
from dataclasses import replace
from typing import Any

from .const import (
    AUTH_VERSION,
    FCM_INSTALLATION,
    HEADER_API_KEY,
    HEADER_BUNDLE_ID,
    HEADER_CLIENT_LOG_TYPE,
    INSTALLATION_SDK_VERSION,
)
from .executor import HttpRequest
from .exceptions import ResponseParseError
from .models import InstallationRecord, ServiceConfig
from .util import body_snippet, redact

_logger = logging.getLogger(__name__)

FID_HEADER = 0b01110000


def generate_fid() -> str:
    """Return a new Firebase installation id.

    The id is a version-4 UUID whose first byte carries the FID header
    ``0b0111`` in its high nibble, encoded as unpadded URL-safe base64
    (22 characters).
    """
    fid = bytearray(uuid.uuid4().bytes)
    fid[0] = FID_HEADER | (fid[0] & 0b00001111)
    return urlsafe_b64encode(bytes(fid)).decode("ascii").rstrip("=")


class InstallationStage:
    """Firebase installation: issues the FID or refreshes its auth token."""

    name = "installation"

    def __init__(self, config: ServiceConfig) -> None:
        self.config = config

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            HEADER_API_KEY: self.config.api_key,
            HEADER_BUNDLE_ID: self.config.bundle_id,
            HEADER_CLIENT_LOG_TYPE: "0",
        }

    def build_request(self, installation: InstallationRecord | None) -> HttpRequest:
        """Return the issuance request, or a refresh request if an FID exists."""
        url = FCM_INSTALLATION + f"projects/{self.config.project_id}/installations/"
        headers = self._headers()

        if installation is None:
            fid = generate_fid()
            _logger.debug("Requesting new installation for fid=%s", redact(fid))
            return HttpRequest(
                url=url,
                headers=headers,
                json={
                    "appId": self.config.app_id,
                    "authVersion": AUTH_VERSION,
                    "fid": fid,
                    "sdkVersion": INSTALLATION_SDK_VERSION,
                },
            )

        _logger.debug(
            "Refreshing installation auth token for fid=%s",
            redact(installation.app_instance_id),
        )
        headers["Authorization"] = f"{AUTH_VERSION} {installation.refresh_token}"
        return HttpRequest(
            url=url + f"{installation.app_instance_id}/authTokens:generate",
            headers=headers,
            json={"installation": {"sdkVersion": INSTALLATION_SDK_VERSION}},
        )

    def parse_response(
        self, body: bytes, installation: InstallationRecord | None
    ) -> InstallationRecord:
        """Return the installation record carried by ``body``.

        A full issuance response replaces the record; a bare ``token`` only
        replaces the auth token of the existing record.

        Raises:
            ResponseParseError: Neither response shape is present.
        """
        try:
            parsed: Any = json.loads(body)
        except ValueError as err:
            raise ResponseParseError(
                f"Installation response is not JSON: {body_snippet(body)}"
            ) from err
        if not isinstance(parsed, dict):
            raise ResponseParseError("Installation response is not a JSON object")

        auth = parsed.get("authToken")
        auth_token = auth.get("token") if isinstance(auth, dict) else None
        refresh_token = parsed.get("refreshToken")
        fid = parsed.get("fid")
        if (
            isinstance(auth_token, str)
            and isinstance(refresh_token, str)
            and isinstance(fid, str)
        ):
            return InstallationRecord(
                app_instance_id=fid,
                refresh_token=refresh_token,
                auth_token=auth_token,
            )

        token = parsed.get("token")
        if installation is not None and isinstance(token, str):
            return replace(installation, auth_token=token)

        raise ResponseParseError(
            "Installation response has neither an installation nor a token"
        )
