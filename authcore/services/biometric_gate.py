"""
Biometric Gate.

Wraps a platform biometric prompt (face / fingerprint) behind a single
blocking call that returns a typed ``BiometricResult``.  The gate runs
exactly one challenge per call and never retries; retry policy belongs
to the caller.

The platform side is supplied through the :class:`BiometricPlatform`
protocol so desktop, mobile bridge and test implementations can be
swapped at the composition root.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from authcore.logger import StructuredLogger
from authcore.models.auth_models import BiometricResult
from authcore.models.enums import (
    BiometricCapability,
    BiometricErrorKind,
    PlatformBiometricOutcome,
)
from authcore.services.base_service import BaseService


@runtime_checkable
class BiometricPlatform(Protocol):
    """Adapter over an OS biometric facility."""

    def probe(self) -> BiometricCapability:
        """Report the enrolled biometric hardware, or ``NONE``."""
        ...  # noqa: E704

    def evaluate(self, reason: str) -> PlatformBiometricOutcome:
        """Show one prompt with *reason* and block until it resolves."""
        ...  # noqa: E704


class NullBiometricPlatform:
    """Platform adapter for devices without biometric hardware."""

    def probe(self) -> BiometricCapability:
        return BiometricCapability.NONE

    def evaluate(self, reason: str) -> PlatformBiometricOutcome:
        return PlatformBiometricOutcome.NOT_AVAILABLE


# Every platform outcome except SUCCESS maps to exactly one error kind.
_OUTCOME_TO_ERROR: dict[PlatformBiometricOutcome, BiometricErrorKind] = {
    PlatformBiometricOutcome.AUTHENTICATION_FAILED: BiometricErrorKind.FAILED,
    PlatformBiometricOutcome.USER_CANCEL: BiometricErrorKind.USER_CANCELLED,
    PlatformBiometricOutcome.SYSTEM_CANCEL: BiometricErrorKind.USER_CANCELLED,
    PlatformBiometricOutcome.USER_FALLBACK: BiometricErrorKind.USER_FALLBACK,
    PlatformBiometricOutcome.PASSCODE_NOT_SET: BiometricErrorKind.NOT_AVAILABLE,
    PlatformBiometricOutcome.NOT_AVAILABLE: BiometricErrorKind.NOT_AVAILABLE,
    PlatformBiometricOutcome.BIOMETRY_NOT_ENROLLED: BiometricErrorKind.NOT_ENROLLED,
    PlatformBiometricOutcome.BIOMETRY_LOCKOUT: BiometricErrorKind.LOCKED_OUT,
    PlatformBiometricOutcome.UNKNOWN: BiometricErrorKind.FAILED,
}

_DISPLAY_NAMES: dict[BiometricCapability, str] = {
    BiometricCapability.FACE: "Face ID",
    BiometricCapability.FINGERPRINT: "Touch ID",
    BiometricCapability.NONE: "Biometrics",
}


class BiometricGate(BaseService):
    """Single-shot biometric challenge with a typed result.

    Parameters
    ----------
    platform:
        The OS adapter that actually shows the prompt.
    logger:
        Structured JSON logger.
    """

    def __init__(self, platform: BiometricPlatform, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._platform: BiometricPlatform = platform

    def capability(self) -> BiometricCapability:
        """Return the available biometric type; ``NONE`` on any probe failure."""
        try:
            return self._platform.probe()
        except Exception as exc:
            self._logger.warning("Biometric unavailable: %s", exc)
            return BiometricCapability.NONE

    def display_name(self) -> str:
        """User-facing name: ``Face ID``, ``Touch ID`` or ``Biometrics``."""
        return _DISPLAY_NAMES[self.capability()]

    def authenticate(self, reason: str) -> BiometricResult:
        """Run one biometric challenge.

        Returns ``BiometricResult.ok()`` only for an explicit platform
        success.  Cancellation is reported as ``USER_CANCELLED`` so the
        caller can treat it as a silent no-op.
        """
        if self.capability() == BiometricCapability.NONE:
            return BiometricResult.fail(BiometricErrorKind.NOT_AVAILABLE)

        try:
            outcome: PlatformBiometricOutcome = self._platform.evaluate(reason)
        except Exception as exc:
            self._logger.error(
                "Biometric prompt raised: %s", exc,
                extra={"event": "BIOMETRIC_FAILED"},
            )
            return BiometricResult.fail(BiometricErrorKind.FAILED)

        if outcome == PlatformBiometricOutcome.SUCCESS:
            self._logger.info(
                "Biometric authentication successful.",
                extra={"event": "BIOMETRIC_SUCCESS"},
            )
            return BiometricResult.ok()

        kind: BiometricErrorKind = _OUTCOME_TO_ERROR.get(outcome, BiometricErrorKind.FAILED)
        self._logger.info(
            "Biometric authentication did not succeed: %s", outcome,
            extra={"event": "BIOMETRIC_FAILED", "outcome": str(outcome)},
        )
        return BiometricResult.fail(kind)
