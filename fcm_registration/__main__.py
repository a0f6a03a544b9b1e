# fcm_registration/__main__.py
"""Run one registration handshake from the command line.

Example::

    python -m fcm_registration --config GoogleService-Info.plist \
        --token 0123abcd... --state fcm_state.json

The optional ``--state`` file stores the check-in and installation records so
that later runs skip the stages whose results are still valid.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from .controller import RegistrationController
from .exceptions import ConfigurationError
from .models import CheckinRecord, InstallationRecord, ServiceConfig, SystemInfo
from .retry import DEFAULT_MAX_ATTEMPTS, async_register_until_settled

_DEFAULT_SYSTEM_INFO = SystemInfo()


class _StateFile:
    """JSON file mirroring the controller's notifications."""

    def __init__(self, path: Path | None) -> None:
        self.path = path
        self.data: dict[str, Any] = {}
        if path is not None and path.exists():
            try:
                loaded = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as err:
                raise ConfigurationError(
                    f"Cannot read state file {path}: {err}"
                ) from err
            if isinstance(loaded, dict):
                self.data = loaded

    def checkin(self) -> CheckinRecord | None:
        raw = self.data.get("checkin")
        return CheckinRecord.from_dict(raw) if isinstance(raw, dict) else None

    def installation(self) -> InstallationRecord | None:
        raw = self.data.get("installation")
        return InstallationRecord.from_dict(raw) if isinstance(raw, dict) else None

    def _save(self) -> None:
        if self.path is not None:
            self.path.write_text(json.dumps(self.data, indent=2), encoding="utf-8")

    def on_checkin_updated(self, checkin: CheckinRecord) -> None:
        self.data["checkin"] = checkin.as_dict()
        self._save()

    def on_installation_updated(self, installation: InstallationRecord) -> None:
        self.data["installation"] = installation.as_dict()
        self._save()

    def on_push_token_updated(self, push_token: str, platform_token: bytes) -> None:
        self.data["push_token"] = push_token
        self.data["platform_token"] = platform_token.hex()
        self._save()


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="fcm_registration",
        description="Obtain an FCM push token for an APNs device token.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="GoogleService-Info .plist or .json file with the service identifiers.",
    )
    parser.add_argument(
        "--token", required=True, help="Platform (APNs) device token as hex."
    )
    parser.add_argument(
        "--sandbox",
        action="store_true",
        help="Register the token against the APNs sandbox environment.",
    )
    parser.add_argument("--state", type=Path, help="JSON file to load/save state.")
    parser.add_argument("--os-version", default=_DEFAULT_SYSTEM_INFO.os_version)
    parser.add_argument("--app-version", default=_DEFAULT_SYSTEM_INFO.app_version)
    parser.add_argument("--device-model", default=_DEFAULT_SYSTEM_INFO.device_model)
    parser.add_argument("--locale", default=_DEFAULT_SYSTEM_INFO.locale)
    parser.add_argument("--time-zone", default=_DEFAULT_SYSTEM_INFO.time_zone)
    parser.add_argument(
        "--attempts",
        type=int,
        default=DEFAULT_MAX_ATTEMPTS,
        help="Number of handshake attempts before giving up.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logs.")
    return parser.parse_args(argv)


async def _async_main(args: argparse.Namespace) -> int:
    try:
        platform_token = bytes.fromhex(args.token)
    except ValueError:
        print("The platform token must be a hex string.", file=sys.stderr)
        return 1

    try:
        config = ServiceConfig.from_file(args.config)
        state = _StateFile(args.state)
        checkin = state.checkin()
        installation = state.installation()
    except ConfigurationError as err:
        print(f"Error: {err}", file=sys.stderr)
        return 1

    system_info = SystemInfo(
        os_version=args.os_version,
        app_version=args.app_version,
        device_model=args.device_model,
        locale=args.locale,
        time_zone=args.time_zone,
    )
    controller = RegistrationController(
        config,
        system_info,
        sandbox=args.sandbox,
        checkin=checkin,
        installation=installation,
        push_token=state.data.get("push_token"),
        log_debug_verbose=args.verbose,
    )
    controller.add_listener(state)
    try:
        push_token = await async_register_until_settled(
            controller, platform_token, max_attempts=args.attempts
        )
    finally:
        await controller.async_close()

    if push_token is None:
        print("Failed to obtain a push token.", file=sys.stderr)
        return 1
    print(push_token)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_async_main(args))
    except KeyboardInterrupt:
        print("\nExiting.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
