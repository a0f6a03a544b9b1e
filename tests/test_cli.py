# tests/test_cli.py
"""Tests for the command line entry point."""

from __future__ import annotations

import json
import plistlib
from pathlib import Path

import pytest

import fcm_registration.__main__ as cli
from fcm_registration.controller import RegistrationController
from tests.helpers.transport import NOW_MS, authorized_installation, valid_checkin

SERVICE_INFO = {
    "BUNDLE_ID": "com.example.app",
    "PROJECT_ID": "example-project",
    "API_KEY": "api-key",
    "GOOGLE_APP_ID": "1:1234567890:ios:abcdef",
    "GCM_SENDER_ID": "1234567890",
}


@pytest.fixture
def service_info_path(tmp_path: Path) -> Path:
    path = tmp_path / "GoogleService-Info.plist"
    path.write_bytes(plistlib.dumps(SERVICE_INFO))
    return path


def test_cli_prints_push_token_and_saves_state(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    service_info_path: Path,
    tmp_path: Path,
) -> None:
    state_path = tmp_path / "state.json"
    seen: dict[str, object] = {}

    async def fake_register(
        controller: RegistrationController, platform_token: bytes, **kwargs: object
    ) -> str:
        seen["token"] = platform_token
        seen["sandbox"] = controller.sandbox
        seen["os_version"] = controller.system_info.os_version
        controller._notify("on_checkin_updated", valid_checkin())
        controller._notify("on_push_token_updated", "push-1", platform_token)
        return "push-1"

    monkeypatch.setattr(cli, "async_register_until_settled", fake_register)

    exit_code = cli.main(
        [
            "--config",
            str(service_info_path),
            "--token",
            "aa01",
            "--sandbox",
            "--os-version",
            "17.2",
            "--state",
            str(state_path),
        ]
    )

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == "push-1"
    assert seen == {"token": b"\xaa\x01", "sandbox": True, "os_version": "17.2"}
    state = json.loads(state_path.read_text(encoding="utf-8"))
    assert state["checkin"]["timestamp"] == NOW_MS
    assert state["push_token"] == "push-1"
    assert state["platform_token"] == "aa01"


def test_cli_loads_persisted_state(
    monkeypatch: pytest.MonkeyPatch, service_info_path: Path, tmp_path: Path
) -> None:
    state_path = tmp_path / "state.json"
    state_path.write_text(
        json.dumps(
            {
                "checkin": valid_checkin().as_dict(),
                "installation": authorized_installation().as_dict(),
                "push_token": "old",
            }
        ),
        encoding="utf-8",
    )
    seen: dict[str, object] = {}

    async def fake_register(
        controller: RegistrationController, platform_token: bytes, **kwargs: object
    ) -> None:
        seen["checkin"] = controller.checkin
        seen["installation"] = controller.installation
        seen["push_token"] = controller.push_token
        return None

    monkeypatch.setattr(cli, "async_register_until_settled", fake_register)

    exit_code = cli.main(
        [
            "--config",
            str(service_info_path),
            "--token",
            "aa01",
            "--state",
            str(state_path),
        ]
    )

    assert exit_code == 1
    assert seen == {
        "checkin": valid_checkin(),
        "installation": authorized_installation(),
        "push_token": "old",
    }


def test_cli_rejects_invalid_token(
    capsys: pytest.CaptureFixture[str], service_info_path: Path
) -> None:
    exit_code = cli.main(["--config", str(service_info_path), "--token", "zz"])

    assert exit_code == 1
    assert "hex" in capsys.readouterr().err


def test_cli_reports_bad_config(
    capsys: pytest.CaptureFixture[str], tmp_path: Path
) -> None:
    path = tmp_path / "service.json"
    path.write_text(json.dumps({"BUNDLE_ID": "x"}), encoding="utf-8")

    exit_code = cli.main(["--config", str(path), "--token", "aa01"])

    assert exit_code == 1
    assert "PROJECT_ID" in capsys.readouterr().err


def test_cli_reports_corrupt_state(
    capsys: pytest.CaptureFixture[str], service_info_path: Path, tmp_path: Path
) -> None:
    state_path = tmp_path / "state.json"
    state_path.write_text(
        json.dumps(
            {"checkin": {"device_id": "\u00b2", "secret_token": 1, "version": "v"}}
        ),
        encoding="utf-8",
    )

    exit_code = cli.main(
        [
            "--config",
            str(service_info_path),
            "--token",
            "aa01",
            "--state",
            str(state_path),
        ]
    )

    assert exit_code == 1
    assert capsys.readouterr().err.startswith("Error:")
