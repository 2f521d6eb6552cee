"""
Shared Enumerations for authcore Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents, which is
what the log ``extra`` fields and the UI rely on.
"""

from __future__ import annotations
from enum import StrEnum


class SessionState(StrEnum):
    """Lifecycle of the single process-wide session.

    ``REFRESHING`` is internal: while a background refresh is in flight
    the public projection still reports the session as authenticated.
    """

    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


class DomainErrorKind(StrEnum):
    """Exhaustive taxonomy of backend-facing failures."""

    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    SERVER = "server"
    NETWORK = "network"
    DECODING = "decoding"
    UNKNOWN = "unknown"


class BiometricErrorKind(StrEnum):
    """Outcomes of a failed biometric challenge."""

    NOT_AVAILABLE = "not_available"
    NOT_ENROLLED = "not_enrolled"
    USER_CANCELLED = "user_cancelled"
    USER_FALLBACK = "user_fallback"
    LOCKED_OUT = "locked_out"
    FAILED = "failed"


class BiometricCapability(StrEnum):
    """Biometric hardware available on the device."""

    NONE = "none"
    FACE = "face"
    FINGERPRINT = "fingerprint"


class PlatformBiometricOutcome(StrEnum):
    """Raw result codes reported by a platform biometric prompt."""

    SUCCESS = "success"
    AUTHENTICATION_FAILED = "authentication_failed"
    USER_CANCEL = "user_cancel"
    USER_FALLBACK = "user_fallback"
    SYSTEM_CANCEL = "system_cancel"
    PASSCODE_NOT_SET = "passcode_not_set"
    BIOMETRY_NOT_ENROLLED = "biometry_not_enrolled"
    BIOMETRY_LOCKOUT = "biometry_lockout"
    NOT_AVAILABLE = "not_available"
    UNKNOWN = "unknown"


class SocialProvider(StrEnum):
    """Identity providers accepted by ``POST /auth/social``."""

    GOOGLE = "google"
    APPLE = "apple"

    @property
    def display_name(self) -> str:
        return _PROVIDER_DISPLAY_NAMES[self]


_PROVIDER_DISPLAY_NAMES: dict[SocialProvider, str] = {
    SocialProvider.GOOGLE: "Google",
    SocialProvider.APPLE: "Apple",
}


# ---------------------------------------------------------------------------
# Wire mapping tables
# ---------------------------------------------------------------------------
# Enum members are never serialized through their ``value`` implicitly;
# every crossing of the HTTP boundary goes through one of these tables so
# that an unknown string is a decoding error rather than a silent default.

SOCIAL_PROVIDER_TO_WIRE: dict[SocialProvider, str] = {
    SocialProvider.GOOGLE: "google",
    SocialProvider.APPLE: "apple",
}

WIRE_TO_SOCIAL_PROVIDER: dict[str, SocialProvider] = {
    wire: provider for provider, wire in SOCIAL_PROVIDER_TO_WIRE.items()
}


class SecureStoreKey(StrEnum):
    """Secure-store item names.  Stable across versions; never rename."""

    ACCESS_TOKEN = "access_token"
    REFRESH_TOKEN = "refresh_token"
    USER_ID = "user_id"
    USER_EMAIL = "user_email"
    BIOMETRIC_ENABLED = "biometric_enabled"
    BIOMETRIC_STORED_EMAIL = "biometric_stored_email"
    BIOMETRIC_PROMPT_SHOWN = "biometric_prompt_shown"
