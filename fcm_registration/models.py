# fcm_registration/models.py
"""Configuration and cached state records for the registration handshake.

Records are plain dataclasses so that an external collaborator can persist
them (``as_dict``) and hand them back at startup (``from_dict``).
"""

from __future__ import annotations

import json
import plistlib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ._typing import JSONDict
from .const import CHECKIN_VALIDITY_MS, CLOCK_SKEW_MARGIN_MS, UINT64_MAX
from .exceptions import ConfigurationError

# Key names used by GoogleService-Info.plist
_SERVICE_INFO_KEYS = {
    "bundle_id": "BUNDLE_ID",
    "project_id": "PROJECT_ID",
    "api_key": "API_KEY",
    "app_id": "GOOGLE_APP_ID",
    "sender_id": "GCM_SENDER_ID",
}


def coerce_uint64(value: Any) -> int | None:
    """Return ``value`` as an unsigned 64-bit integer, or None if it is not one.

    The backend encodes 64-bit numbers either as JSON integers or as decimal
    strings; booleans are rejected even though they subclass ``int``.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        if not (value.isascii() and value.isdigit()):
            return None
        value = int(value)
    if not isinstance(value, int):
        return None
    if value < 0 or value > UINT64_MAX:
        return None
    return value


@dataclass(frozen=True, slots=True)
class ServiceConfig:
    """Backend identifiers for the application.

    Attributes:
        bundle_id: The application bundle identifier.
        project_id: The Firebase project ID.
        api_key: The API key for the Firebase project.
        app_id: The Firebase (GMP) application ID.
        sender_id: The numeric messaging sender ID.
    """

    bundle_id: str
    project_id: str
    api_key: str
    app_id: str
    sender_id: str

    @classmethod
    def from_google_service_info(cls, info: Mapping[str, Any]) -> ServiceConfig:
        """Build a config from GoogleService-Info key names."""
        values: dict[str, str] = {}
        missing: list[str] = []
        for field_name, key in _SERVICE_INFO_KEYS.items():
            raw = info.get(key)
            if raw is None or raw == "":
                missing.append(key)
                continue
            values[field_name] = str(raw)
        if missing:
            raise ConfigurationError(
                f"Service info is missing required keys: {', '.join(missing)}"
            )
        return cls(**values)

    @classmethod
    def from_file(cls, path: str | Path) -> ServiceConfig:
        """Load a config from a ``.plist`` or ``.json`` service info file."""
        path = Path(path)
        try:
            raw = path.read_bytes()
        except OSError as err:
            raise ConfigurationError(f"Cannot read service info {path}: {err}") from err

        try:
            if path.suffix.lower() == ".json":
                info = json.loads(raw)
            else:
                info = plistlib.loads(raw)
        except (ValueError, plistlib.InvalidFileException) as err:
            raise ConfigurationError(f"Malformed service info {path}: {err}") from err

        if not isinstance(info, Mapping):
            raise ConfigurationError(f"Service info {path} is not a mapping")
        return cls.from_google_service_info(info)


@dataclass(slots=True)
class SystemInfo:
    """Host metadata reported during check-in and registration."""

    os_version: str = "10.0"
    app_version: str = "1.0"
    device_model: str = ""
    locale: str = "en"
    time_zone: str = ""


@dataclass(slots=True)
class CheckinRecord:
    """Device identity issued by the check-in stage.

    ``timestamp`` is the server check-in time in milliseconds since the epoch.
    A record without a timestamp keeps its identity but must check in again.
    """

    device_id: int
    secret_token: int
    version: str
    digest: str = ""
    timestamp: int | None = None

    @property
    def expires_at(self) -> int | None:
        """Return the epoch-ms instant after which a new check-in is needed."""
        if self.timestamp is None:
            return None
        return self.timestamp + CHECKIN_VALIDITY_MS - CLOCK_SKEW_MARGIN_MS

    def is_valid(self, now_ms: int) -> bool:
        """Return True while the record can be used for token registration."""
        expires_at = self.expires_at
        return expires_at is not None and now_ms < expires_at

    def as_dict(self) -> JSONDict:
        return {
            "device_id": self.device_id,
            "secret_token": self.secret_token,
            "version": self.version,
            "digest": self.digest,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CheckinRecord:
        """Rebuild a record previously produced by :meth:`as_dict`."""
        device_id = coerce_uint64(data.get("device_id"))
        secret_token = coerce_uint64(data.get("secret_token"))
        version = data.get("version")
        if device_id is None or secret_token is None or not isinstance(version, str):
            raise ConfigurationError("Persisted check-in record is incomplete")

        timestamp = data.get("timestamp")
        if timestamp is not None:
            timestamp = coerce_uint64(timestamp)
            if timestamp is None:
                raise ConfigurationError("Persisted check-in timestamp is invalid")

        return cls(
            device_id=device_id,
            secret_token=secret_token,
            version=version,
            digest=str(data.get("digest") or ""),
            timestamp=timestamp,
        )


@dataclass(slots=True)
class InstallationRecord:
    """Installation identity (FID) and its auth token."""

    app_instance_id: str
    refresh_token: str
    auth_token: str | None = None

    @property
    def has_auth_token(self) -> bool:
        return bool(self.auth_token)

    def as_dict(self) -> JSONDict:
        return {
            "app_instance_id": self.app_instance_id,
            "refresh_token": self.refresh_token,
            "auth_token": self.auth_token,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InstallationRecord:
        """Rebuild a record previously produced by :meth:`as_dict`."""
        app_instance_id = data.get("app_instance_id")
        refresh_token = data.get("refresh_token")
        if not isinstance(app_instance_id, str) or not app_instance_id:
            raise ConfigurationError("Persisted installation has no instance id")
        if not isinstance(refresh_token, str) or not refresh_token:
            raise ConfigurationError("Persisted installation has no refresh token")
        auth_token = data.get("auth_token")
        if auth_token is not None and not isinstance(auth_token, str):
            raise ConfigurationError("Persisted installation auth token is invalid")
        return cls(
            app_instance_id=app_instance_id,
            refresh_token=refresh_token,
            auth_token=auth_token or None,
        )
