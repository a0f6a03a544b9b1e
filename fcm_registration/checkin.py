# fcm_registration/checkin.py
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
from typing import Any

from ._typing import JSONDict
from .const import (
    CHECKIN_DEVICE_TYPE,
    CHECKIN_OS_FAMILY,
    CHECKIN_PROTOCOL_VERSION,
    CHECKIN_URL,
)
from .executor import HttpRequest
from .exceptions import ResponseParseError
from .models import CheckinRecord, SystemInfo, coerce_uint64
from .util import body_snippet, redact

_logger = logging.getLogger(__name__)


class CheckinStage:
    """Device check-in: issues the device id and security token."""

    name = "check-in"

    def _get_checkin_payload(
        self, checkin: CheckinRecord | None, system_info: SystemInfo
    ) -> JSONDict:
        """
        Construct the JSON payload for a check-in request.

        Args:
            checkin: The record from a previous check-in, if any.
            system_info: Host metadata reported to the backend.

        Returns:
            The request body as a dictionary.
        """
        return {
            "checkin": {
                "iosbuild": {
                    "model": system_info.device_model,
                    "os_version": f"{CHECKIN_OS_FAMILY}_{system_info.os_version}",
                },
                "last_checkin_msec": (checkin.timestamp or 0) if checkin else 0,
                "type": CHECKIN_DEVICE_TYPE,
                "user_number": 0,
            },
            "locale": system_info.locale,
            "time_zone": system_info.time_zone,
            "id": checkin.device_id if checkin else 0,
            "security_token": checkin.secret_token if checkin else 0,
            "digest": checkin.digest if checkin else "",
            "user_serial_number": 0,
            "fragment": 0,
            "version": CHECKIN_PROTOCOL_VERSION,
        }

    def build_request(
        self, checkin: CheckinRecord | None, system_info: SystemInfo
    ) -> HttpRequest:
        _logger.debug(
            "Check-in payload prepared (with%s previous device id).",
            "" if checkin else "out",
        )
        return HttpRequest(
            url=CHECKIN_URL,
            headers={"Content-Type": "application/json"},
            json=self._get_checkin_payload(checkin, system_info),
        )

    def parse_response(self, body: bytes) -> CheckinRecord:
        """Return the check-in record carried by ``body``.

        Raises:
            ResponseParseError: ``android_id``, ``security_token`` or
                ``version_info`` is missing or malformed.
        """
        try:
            parsed: Any = json.loads(body)
        except ValueError as err:
            raise ResponseParseError(
                f"Check-in response is not JSON: {body_snippet(body)}"
            ) from err
        if not isinstance(parsed, dict):
            raise ResponseParseError("Check-in response is not a JSON object")

        device_id = coerce_uint64(parsed.get("android_id"))
        security_token = coerce_uint64(parsed.get("security_token"))
        version = parsed.get("version_info")
        if device_id is None:
            raise ResponseParseError("Check-in response has no android_id")
        if security_token is None:
            raise ResponseParseError("Check-in response has no security_token")
        if not isinstance(version, str):
            raise ResponseParseError("Check-in response has no version_info")

        digest = parsed.get("digest")
        timestamp = coerce_uint64(parsed.get("time_msec"))
        record = CheckinRecord(
            device_id=device_id,
            secret_token=security_token,
            version=version,
            digest=digest if isinstance(digest, str) else "",
            timestamp=timestamp,
        )
        _logger.debug(
            "Check-in succeeded: device=%s, timestamp=%s",
            redact(record.device_id),
            record.timestamp,
        )
        return record
