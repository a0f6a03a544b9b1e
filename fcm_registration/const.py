# fcm_registration/const.py
"""Constants for the FCM device registration handshake."""

CHECKIN_URL = "https://device-provisioning.googleapis.com/checkin"
FCM_INSTALLATION = "https://firebaseinstallations.googleapis.com/v1/"
FCM_REGISTER_URL = "https://fcmtoken.googleapis.com/register"

SDK_VERSION = "8.9.1"
INSTALLATION_SDK_VERSION = f"i:{SDK_VERSION}"
REGISTER_CLIENT_VERSION = f"fiid-{SDK_VERSION}"
AUTH_VERSION = "FIS_v2"

# Check-in request constants
CHECKIN_OS_FAMILY = "IOS"
CHECKIN_DEVICE_TYPE = 2
CHECKIN_PROTOCOL_VERSION = 2

# Registration form constants
REGISTER_PLATFORM = "2"
REGISTER_SCOPE = "*"
SANDBOX_TOKEN_PREFIX = "s_"
PRODUCTION_TOKEN_PREFIX = "p_"

# Check-in data is accepted for 7 days, minus a 1 hour clock-skew margin.
CHECKIN_VALIDITY_MS = 7 * 24 * 3600 * 1000
CLOCK_SKEW_MARGIN_MS = 3600 * 1000

UINT64_MAX = 2**64 - 1

HEADER_API_KEY = "X-Goog-Api-Key"
HEADER_BUNDLE_ID = "X-Ios-Bundle-Identifier"
HEADER_CLIENT_LOG_TYPE = "X-firebase-client-log-type"
HEADER_INSTALLATIONS_AUTH = "x-goog-firebase-installations-auth"

CLIENT_TIMEOUT_S = 100
