# tests/test_models.py
"""Tests for configuration loading and persisted record round-trips."""

from __future__ import annotations

import json
import plistlib
from pathlib import Path

import pytest

from fcm_registration.const import CHECKIN_VALIDITY_MS, CLOCK_SKEW_MARGIN_MS
from fcm_registration.exceptions import ConfigurationError
from fcm_registration.models import (
    CheckinRecord,
    InstallationRecord,
    ServiceConfig,
    coerce_uint64,
)
from tests.helpers.transport import NOW_MS, valid_checkin

SERVICE_INFO = {
    "BUNDLE_ID": "com.example.app",
    "PROJECT_ID": "example-project",
    "API_KEY": "api-key",
    "GOOGLE_APP_ID": "1:1234567890:ios:abcdef",
    "GCM_SENDER_ID": "1234567890",
    "IS_ADS_ENABLED": False,
}


def test_checkin_validity_window() -> None:
    record = valid_checkin(timestamp=NOW_MS)
    boundary = NOW_MS + CHECKIN_VALIDITY_MS - CLOCK_SKEW_MARGIN_MS

    assert record.expires_at == boundary
    assert record.is_valid(boundary - 1000)
    assert not record.is_valid(boundary + 1000)


def test_checkin_without_timestamp_is_never_valid() -> None:
    record = valid_checkin(timestamp=None)

    assert record.expires_at is None
    assert not record.is_valid(0)


def test_checkin_record_persistence() -> None:
    record = valid_checkin()

    restored = CheckinRecord.from_dict(json.loads(json.dumps(record.as_dict())))

    assert restored == record


def test_installation_record_persistence() -> None:
    record = InstallationRecord("fid", "refresh", None)

    restored = InstallationRecord.from_dict(record.as_dict())

    assert restored == record
    assert not restored.has_auth_token


@pytest.mark.parametrize(
    "data",
    [
        {"secret_token": 1, "version": "v"},
        {"device_id": 1, "secret_token": 1, "version": 3},
        {"device_id": 1, "secret_token": 1, "version": "v", "timestamp": "soon"},
        {"device_id": "\u00b2", "secret_token": 1, "version": "v"},
    ],
)
def test_checkin_record_rejects_incomplete_data(data: dict) -> None:
    with pytest.raises(ConfigurationError):
        CheckinRecord.from_dict(data)


def test_installation_record_rejects_missing_refresh_token() -> None:
    with pytest.raises(ConfigurationError):
        InstallationRecord.from_dict({"app_instance_id": "fid"})


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (0, 0),
        (2**64 - 1, 2**64 - 1),
        ("123", 123),
        (2**64, None),
        (-1, None),
        (True, None),
        ("12a", None),
        ("\u00b2", None),
        (1.5, None),
        (None, None),
    ],
)
def test_coerce_uint64(value: object, expected: int | None) -> None:
    assert coerce_uint64(value) == expected


def test_service_config_from_google_service_info() -> None:
    config = ServiceConfig.from_google_service_info(SERVICE_INFO)

    assert config == ServiceConfig(
        bundle_id="com.example.app",
        project_id="example-project",
        api_key="api-key",
        app_id="1:1234567890:ios:abcdef",
        sender_id="1234567890",
    )


def test_service_config_reports_missing_keys() -> None:
    info = dict(SERVICE_INFO)
    del info["API_KEY"]
    info["GCM_SENDER_ID"] = ""

    with pytest.raises(ConfigurationError, match="API_KEY, GCM_SENDER_ID"):
        ServiceConfig.from_google_service_info(info)


def test_service_config_from_plist_and_json(tmp_path: Path) -> None:
    plist_path = tmp_path / "GoogleService-Info.plist"
    plist_path.write_bytes(plistlib.dumps(SERVICE_INFO))
    json_path = tmp_path / "service.json"
    json_path.write_text(json.dumps(SERVICE_INFO), encoding="utf-8")

    assert ServiceConfig.from_file(plist_path) == ServiceConfig.from_file(json_path)


def test_service_config_from_malformed_file(tmp_path: Path) -> None:
    path = tmp_path / "broken.plist"
    path.write_bytes(b"not a plist")

    with pytest.raises(ConfigurationError):
        ServiceConfig.from_file(path)
    with pytest.raises(ConfigurationError):
        ServiceConfig.from_file(tmp_path / "missing.plist")
