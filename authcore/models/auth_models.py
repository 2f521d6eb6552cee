"""
Authentication Pipeline Models.

Pydantic models for the contracts between the session core's
components and the UI layer.  Every boundary returns one of these typed
results rather than raising, so callers branch on ``success`` and a
structured error instead of inspecting exceptions.
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from authcore.models.enums import BiometricErrorKind, DomainErrorKind
from authcore.models.user import User

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Human-readable messages
# ---------------------------------------------------------------------------

GENERIC_ERROR_MESSAGE: str = "Something went wrong. Please try again."
SESSION_EXPIRED_MESSAGE: str = "Your session has expired. Please sign in again."
INVALID_CREDENTIALS_MESSAGE: str = "Incorrect email or password."
PASSWORD_RESET_SENT_MESSAGE: str = (
    "If this email is registered, you will receive a password reset link."
)

_DOMAIN_ERROR_MESSAGES: dict[DomainErrorKind, str] = {
    DomainErrorKind.UNAUTHORIZED: "Authentication failed. Please log in again.",
    DomainErrorKind.FORBIDDEN: "You don't have permission to access this.",
    DomainErrorKind.NOT_FOUND: "The requested item could not be found.",
    DomainErrorKind.VALIDATION: "Please check your input and try again.",
    DomainErrorKind.SERVER: "Server error. Please try again later.",
    DomainErrorKind.NETWORK: "Unable to connect. Check your internet connection.",
    DomainErrorKind.DECODING: "Failed to parse server response.",
    DomainErrorKind.UNKNOWN: GENERIC_ERROR_MESSAGE,
}

_BIOMETRIC_ERROR_MESSAGES: dict[BiometricErrorKind, str] = {
    BiometricErrorKind.NOT_AVAILABLE: (
        "Biometric authentication is not available on this device."
    ),
    BiometricErrorKind.NOT_ENROLLED: (
        "Biometric login is not enabled. "
        "Please log in with email and password first."
    ),
    BiometricErrorKind.USER_CANCELLED: "Authentication cancelled.",
    BiometricErrorKind.USER_FALLBACK: "User chose to enter password.",
    BiometricErrorKind.LOCKED_OUT: (
        "Biometric authentication is locked. Please try again later."
    ),
    BiometricErrorKind.FAILED: "Biometric authentication failed. Please try again.",
}


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class DomainError(BaseModel):
    """A backend-facing failure, classified into exactly one kind.

    Attributes
    ----------
    kind:
        The taxonomy bucket.
    message:
        Backend-supplied message for ``validation`` failures; ``None``
        otherwise.
    status_code:
        HTTP status when one was received (always set for ``server``).
    code:
        Backend error code from the envelope, e.g. ``TOKEN_EXPIRED``.
    """

    kind: DomainErrorKind
    message: Optional[str] = None
    status_code: Optional[int] = None
    code: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def user_message(self) -> str:
        """Text suitable for the single UI error banner."""
        if self.kind == DomainErrorKind.VALIDATION and self.message:
            return self.message
        if self.kind == DomainErrorKind.SERVER and self.status_code is not None:
            return f"Server error (Code: {self.status_code})"
        return _DOMAIN_ERROR_MESSAGES[self.kind]


class BiometricError(BaseModel):
    """A failed biometric challenge."""

    kind: BiometricErrorKind

    model_config = ConfigDict(frozen=True)

    @property
    def is_silent(self) -> bool:
        """``True`` for outcomes the user chose; no banner is shown."""
        return self.kind in (
            BiometricErrorKind.USER_CANCELLED,
            BiometricErrorKind.USER_FALLBACK,
        )

    @property
    def user_message(self) -> str:
        return _BIOMETRIC_ERROR_MESSAGES[self.kind]


class StoreError(BaseModel):
    """An OS-level secure-store failure (locked device, corruption)."""

    key: str
    reason: str

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Generic results
# ---------------------------------------------------------------------------

class ApiResult(BaseModel, Generic[T]):
    """Outcome of one backend call: a value or a ``DomainError``."""

    success: bool
    value: Optional[T] = None
    error: Optional[DomainError] = None

    @classmethod
    def ok(cls, value: T) -> "ApiResult[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: DomainError) -> "ApiResult[T]":
        return cls(success=False, error=error)


class BiometricResult(BaseModel):
    """Outcome of one biometric challenge."""

    success: bool
    error: Optional[BiometricError] = None

    @classmethod
    def ok(cls) -> "BiometricResult":
        return cls(success=True)

    @classmethod
    def fail(cls, kind: BiometricErrorKind) -> "BiometricResult":
        return cls(success=False, error=BiometricError(kind=kind))


class StoreResult(BaseModel):
    """Outcome of a secure-store write."""

    success: bool
    error: Optional[StoreError] = None


# ---------------------------------------------------------------------------
# Wire payloads
# ---------------------------------------------------------------------------

class TokenPair(BaseModel):
    """Credentials minted by login, registration, social auth or refresh."""

    access_token: str = Field(min_length=1)
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: int = 3600

    model_config = ConfigDict(frozen=True, extra="ignore")


class AuthPayload(BaseModel):
    """``data`` of a successful login/register/social response."""

    user: User
    tokens: TokenPair
    is_new_user: bool = False

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Session-level results
# ---------------------------------------------------------------------------

class AuthResult(BaseModel):
    """Unified response for every ``SessionController`` operation.

    The UI inspects ``success`` for the happy path; the human-readable
    text is already published through ``ObservableSessionState``.

    Attributes
    ----------
    success:
        ``True`` when the operation completed without error.
    error:
        The backend failure, if any.
    biometric_error:
        The biometric failure, if any.  Disjoint from ``error``.
    error_message:
        Human-readable description (``None`` on success and for silent
        biometric outcomes).
    user:
        The signed-in user after a successful auth operation.
    is_new_user:
        Set by social login when the backend created the account.
    skipped:
        ``True`` when the call was ignored, e.g. a refresh already in
        flight or a stale timer tick.
    """

    success: bool
    error: Optional[DomainError] = None
    biometric_error: Optional[BiometricError] = None
    error_message: Optional[str] = None
    user: Optional[User] = None
    is_new_user: bool = False
    skipped: bool = False


class BiometricEnrollment(BaseModel):
    """Persisted opt-in for biometric unlock; survives restarts."""

    enabled: bool = False
    stored_email: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class SessionSnapshot(BaseModel):
    """Immutable view of the observable session projection."""

    is_authenticated: bool = False
    current_user: Optional[User] = None
    is_loading: bool = False
    is_refreshing: bool = False
    error_message: Optional[str] = None

    model_config = ConfigDict(frozen=True)
