# fcm_registration/__init__.py
"""Push token registration against the FCM provisioning backends."""

from .controller import RegistrationController, RegistrationListener
from .exceptions import (
    ConfigurationError,
    FcmRegistrationError,
    MissingPrerequisiteError,
    RequestInFlightError,
    ResponseParseError,
    StageError,
    TransportError,
)
from .executor import AiohttpTransport, HttpRequest, RequestExecutor, Transport
from .installation import generate_fid
from .models import CheckinRecord, InstallationRecord, ServiceConfig, SystemInfo
from .registration import encode_platform_token
from .retry import async_register_until_settled

__all__ = [
    "AiohttpTransport",
    "CheckinRecord",
    "ConfigurationError",
    "FcmRegistrationError",
    "HttpRequest",
    "InstallationRecord",
    "MissingPrerequisiteError",
    "RegistrationController",
    "RegistrationListener",
    "RequestExecutor",
    "RequestInFlightError",
    "ResponseParseError",
    "ServiceConfig",
    "StageError",
    "SystemInfo",
    "Transport",
    "TransportError",
    "async_register_until_settled",
    "encode_platform_token",
    "generate_fid",
]
