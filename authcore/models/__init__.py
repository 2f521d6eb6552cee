"""
Data Models Package.

Re-exports the session core's Pydantic models and enumerations:
    from authcore.models import User, TokenPair, AuthResult
    from authcore.models import SessionState, DomainErrorKind
"""

from __future__ import annotations

from authcore.models.auth_models import (
    ApiResult,
    AuthPayload,
    AuthResult,
    BiometricEnrollment,
    BiometricError,
    BiometricResult,
    DomainError,
    SessionSnapshot,
    StoreError,
    StoreResult,
    TokenPair,
)
from authcore.models.enums import (
    BiometricCapability,
    BiometricErrorKind,
    DomainErrorKind,
    PlatformBiometricOutcome,
    SecureStoreKey,
    SessionState,
    SocialProvider,
)
from authcore.models.user import User

__all__ = [
    "ApiResult",
    "AuthPayload",
    "AuthResult",
    "BiometricCapability",
    "BiometricEnrollment",
    "BiometricError",
    "BiometricErrorKind",
    "BiometricResult",
    "DomainError",
    "DomainErrorKind",
    "PlatformBiometricOutcome",
    "SecureStoreKey",
    "SessionSnapshot",
    "SessionState",
    "SocialProvider",
    "StoreError",
    "StoreResult",
    "TokenPair",
    "User",
]
