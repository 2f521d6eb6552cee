"""
Session Controller.

Single orchestrator for the authentication lifecycle: login,
registration, social sign-in, biometric unlock, silent token refresh,
user reload and sign-out.

Sits between the UI layer and the backend / secure-store layer so that
views remain thin: they call one method here and observe
``ObservableSessionState`` for the outcome.

Concurrency
-----------
Every mutating operation runs under one re-entrant lock, so operations
queue behind each other and the ``Session`` has exactly one writer at a
time.  ``refresh`` additionally takes a non-blocking guard: while one
refresh is in flight a second request returns immediately with
``skipped=True`` and issues no backend call.  Timer ticks carry the
generation they were armed with; a tick from a previous session is
ignored.

Ordering for every successful sign-in: write the secure store, update
the ``Session``, publish the snapshot, arm the refresh timer.

All methods return typed ``AuthResult`` models; nothing raises into the
UI.
"""

from __future__ import annotations

import threading
from typing import Optional, Union

from authcore.auth import Session
from authcore.logger import StructuredLogger
from authcore.models.auth_models import (
    GENERIC_ERROR_MESSAGE,
    INVALID_CREDENTIALS_MESSAGE,
    SESSION_EXPIRED_MESSAGE,
    ApiResult,
    AuthPayload,
    AuthResult,
    BiometricEnrollment,
    BiometricError,
    DomainError,
    TokenPair,
)
from authcore.models.enums import (
    BiometricCapability,
    BiometricErrorKind,
    DomainErrorKind,
    SecureStoreKey,
    SessionState,
    SocialProvider,
)
from authcore.models.user import User
from authcore.services.auth_backend import AuthBackendClient
from authcore.services.base_service import BaseService
from authcore.services.biometric_gate import BiometricGate
from authcore.services.refresh_scheduler import TokenRefreshScheduler
from authcore.services.secure_store import SecureTokenStore
from authcore.services.session_state import (
    ObservableSessionState,
    SessionStatePublisher,
)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_BIOMETRIC_LOGIN_REASON: str = "Sign in to your account"
_BIOMETRIC_ENABLE_REASON: str = "Enable {name} for quick sign-in"

_BIOMETRIC_KEYS: tuple[SecureStoreKey, ...] = (
    SecureStoreKey.BIOMETRIC_ENABLED,
    SecureStoreKey.BIOMETRIC_STORED_EMAIL,
)

_TRUE: str = "true"


class SessionController(BaseService):
    """Authoritative session state machine.

    Parameters
    ----------
    store:
        Encrypted secure store holding tokens and biometric flags.
    backend:
        Typed client for the ``/auth/*`` endpoints.
    gate:
        Biometric challenge gate.
    state:
        The observable projection this controller is the only writer of.
    logger:
        Structured JSON logger.
    refresh_interval_s:
        Period of the silent refresh timer (3300 s = 55 minutes).
    """

    def __init__(
        self,
        store: SecureTokenStore,
        backend: AuthBackendClient,
        gate: BiometricGate,
        state: ObservableSessionState,
        logger: StructuredLogger,
        refresh_interval_s: float = 3300.0,
    ) -> None:
        super().__init__(logger)
        self._store: SecureTokenStore = store
        self._backend: AuthBackendClient = backend
        self._gate: BiometricGate = gate
        self._publisher: SessionStatePublisher = SessionStatePublisher(state)
        self._session: Session = Session()

        self._op_lock: threading.RLock = threading.RLock()
        self._refresh_guard: threading.Lock = threading.Lock()
        self._scheduler: TokenRefreshScheduler = TokenRefreshScheduler(
            interval_s=refresh_interval_s,
            callback=self._on_refresh_tick,
            logger=logger,
        )
        self._timer_generation: Optional[int] = None
        self._closed: bool = False

    # ==================================================================
    # Read-only surface
    # ==================================================================

    @property
    def state(self) -> SessionState:
        """Current lifecycle state (``REFRESHING`` is internal)."""
        return self._session.state

    @property
    def session_state(self) -> ObservableSessionState:
        """The observable projection the UI binds to."""
        return self._publisher.state

    @property
    def is_authenticated(self) -> bool:
        return self._session.is_authenticated

    @property
    def current_user(self) -> Optional[User]:
        return self._session.current_user

    @property
    def refresh_timer_armed(self) -> bool:
        return self._scheduler.is_armed

    @staticmethod
    def normalize_email(email: str) -> str:
        """Strip whitespace and lowercase."""
        return email.strip().lower()

    # ==================================================================
    # Cold start
    # ==================================================================

    def restore_session(self) -> AuthResult:
        """Resume a session from tokens left in the secure store.

        No stored access token: stay unauthenticated without contacting
        the backend.  Otherwise fetch ``/auth/me``; ``unauthorized``
        clears the stale tokens, any other failure keeps them so a later
        attempt (or biometric unlock) can still use them.
        """
        with self._op_lock:
            if self._session.is_authenticated:
                return AuthResult(success=True, user=self._session.current_user)

            if not self._store.contains(SecureStoreKey.ACCESS_TOKEN):
                self._logger.debug("No stored tokens; starting signed out.")
                return AuthResult(success=False, skipped=True)

            return self.load_current_user()

    # ==================================================================
    # Credential sign-in
    # ==================================================================

    def login(self, email: str, password: str) -> AuthResult:
        """Authenticate with email and password.

        Parameters
        ----------
        email:
            The raw email entered by the user; normalised before sending.
        password:
            The raw password.  It is placed in the request body and not
            kept anywhere else.

        Returns
        -------
        AuthResult
            ``success=True`` with the signed-in ``user``, or the
            classified ``error`` and the message already published.
        """
        email = self.normalize_email(email)
        with self._op_lock:
            self._begin_attempt()
            result = self._backend.login(email, password)
            if not result.success:
                return self._fail_attempt(result.error, event="LOGIN_FAILED", email=email)
            return self._complete_sign_in(result.value, event="LOGIN")

    def register(self, email: str, password: str, full_name: str) -> AuthResult:
        """Create an account and sign straight into it."""
        email = self.normalize_email(email)
        with self._op_lock:
            self._begin_attempt()
            result = self._backend.register(email, password, full_name.strip())
            if not result.success:
                return self._fail_attempt(result.error, event="REGISTER_FAILED", email=email)
            return self._complete_sign_in(result.value, event="REGISTER")

    def social_login(
        self,
        provider: Union[SocialProvider, str],
        id_token: str,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
    ) -> AuthResult:
        """Exchange a provider identity token for a session.

        ``AuthResult.is_new_user`` reports whether the backend created
        the account during this call.
        """
        if email is not None:
            email = self.normalize_email(email)
        with self._op_lock:
            self._begin_attempt()
            result = self._backend.social_auth(provider, id_token, email, full_name)
            if not result.success:
                return self._fail_attempt(
                    result.error, event="SOCIAL_LOGIN_FAILED", email=email or "",
                )
            return self._complete_sign_in(result.value, event="SOCIAL_LOGIN")

    # ==================================================================
    # Biometric unlock
    # ==================================================================

    def login_with_biometrics(self) -> AuthResult:
        """Unlock with a biometric challenge and the stored refresh token.

        Never submits a password.  Without an enabled enrollment or a
        stored refresh token this fails with ``NOT_ENROLLED`` before
        any prompt or backend call.  A cancelled prompt is silent.
        """
        with self._op_lock:
            if self._session.is_authenticated:
                return AuthResult(success=True, user=self._session.current_user)

            if not self.biometric_enrollment().enabled:
                return self._biometric_failure(BiometricErrorKind.NOT_ENROLLED)

            refresh_token: Optional[str] = self._store.get(SecureStoreKey.REFRESH_TOKEN)
            if not refresh_token:
                self._logger.info(
                    "Biometric unlock refused: no stored refresh token.",
                    extra={"event": "BIOMETRIC_LOGIN_FAILED"},
                )
                return self._biometric_failure(BiometricErrorKind.NOT_ENROLLED)

            challenge = self._gate.authenticate(_BIOMETRIC_LOGIN_REASON)
            if not challenge.success:
                kind = challenge.error.kind if challenge.error else BiometricErrorKind.FAILED
                return self._biometric_failure(kind)

            self._begin_attempt()
            refreshed = self._backend.refresh(refresh_token)
            if not refreshed.success:
                return self._fail_unlock(refreshed.error)

            tokens = _carry_refresh_token(refreshed.value, refresh_token)
            write = self._store.set_many({
                SecureStoreKey.ACCESS_TOKEN: tokens.access_token,
                SecureStoreKey.REFRESH_TOKEN: tokens.refresh_token,
            })
            if not write.success:
                return self._fail_store_write()

            fetched = self._backend.fetch_current_user()
            if not fetched.success:
                return self._fail_unlock(fetched.error)

            return self._complete_sign_in(
                AuthPayload(user=fetched.value, tokens=tokens),
                event="BIOMETRIC_LOGIN",
            )

    # ==================================================================
    # Token refresh
    # ==================================================================

    def refresh(self) -> AuthResult:
        """Rotate the access token using the stored refresh token.

        - No refresh token: the session is ended.
        - ``unauthorized``: tokens cleared, session ended, "session
          expired" published.
        - Any other failure: session untouched; the timer retries on
          its next tick.

        A call made while another refresh is running returns
        ``skipped=True`` without contacting the backend.
        """
        return self._guarded_refresh(expected_generation=None)

    def _on_refresh_tick(self, generation: int) -> None:
        result = self._guarded_refresh(expected_generation=generation)
        if result.skipped:
            self._logger.debug("Refresh tick skipped (generation %d).", generation)

    def _guarded_refresh(self, expected_generation: Optional[int]) -> AuthResult:
        if not self._refresh_guard.acquire(blocking=False):
            self._logger.debug("Refresh already in flight; ignoring request.")
            return AuthResult(success=True, skipped=True)
        try:
            with self._op_lock:
                if (
                    expected_generation is not None
                    and expected_generation != self._timer_generation
                ):
                    return AuthResult(success=False, skipped=True)
                if not self._session.is_authenticated:
                    return AuthResult(success=False, skipped=True)
                return self._refresh_locked()
        finally:
            self._refresh_guard.release()

    def _refresh_locked(self) -> AuthResult:
        refresh_token: Optional[str] = (
            self._store.get(SecureStoreKey.REFRESH_TOKEN) or self._session.refresh_token
        )
        if not refresh_token:
            self._logger.warning(
                "No refresh token available; ending session.",
                extra={"event": "SESSION_EXPIRED"},
            )
            self._end_session(SESSION_EXPIRED_MESSAGE)
            return AuthResult(
                success=False,
                error=DomainError(kind=DomainErrorKind.UNAUTHORIZED),
                error_message=SESSION_EXPIRED_MESSAGE,
            )

        self._session.begin_refresh()
        self._publisher.publish(is_refreshing=True)

        result: ApiResult[TokenPair] = self._backend.refresh(refresh_token)
        if not result.success:
            error: DomainError = result.error or DomainError(kind=DomainErrorKind.UNKNOWN)
            if error.kind == DomainErrorKind.UNAUTHORIZED:
                self._logger.warning(
                    "Token refresh rejected; forcing sign-out.",
                    extra={"event": "SESSION_EXPIRED"},
                )
                self._end_session(SESSION_EXPIRED_MESSAGE)
                return AuthResult(
                    success=False, error=error, error_message=SESSION_EXPIRED_MESSAGE,
                )

            self._session.end_refresh()
            self._publisher.publish(is_refreshing=False)
            self._logger.warning(
                "Token refresh failed (%s); will retry on next tick.", error.kind,
                extra={"event": "TOKEN_REFRESH_FAILED"},
            )
            return AuthResult(success=False, error=error)

        tokens = _carry_refresh_token(result.value, refresh_token)
        write = self._store.set_many({
            SecureStoreKey.ACCESS_TOKEN: tokens.access_token,
            SecureStoreKey.REFRESH_TOKEN: tokens.refresh_token,
        })
        if not write.success:
            self._logger.warning(
                "Refreshed tokens could not be persisted: %s",
                write.error.reason if write.error else "unknown",
            )

        self._session.set_tokens(tokens)
        self._session.end_refresh()
        self._publisher.publish(is_refreshing=False)
        self._logger.info("Session token refreshed.", extra={"event": "TOKEN_REFRESHED"})
        return AuthResult(success=True, user=self._session.current_user)

    # ==================================================================
    # Sign-out
    # ==================================================================

    def logout(self) -> AuthResult:
        """Best-effort server sign-out, then clear everything locally.

        Idempotent: a second call finds nothing to revoke and makes no
        backend call.  Never surfaces an error.
        """
        with self._op_lock:
            user = self._session.current_user
            had_session: bool = (
                self._session.is_authenticated
                or self._store.contains(SecureStoreKey.ACCESS_TOKEN)
            )

            if had_session:
                revoked = self._backend.logout()
                if not revoked.success and revoked.error is not None:
                    self._logger.warning(
                        "Server-side logout failed (%s); clearing local session anyway.",
                        revoked.error.kind,
                    )

            self._end_session(None)
            self._store.remove_many(_BIOMETRIC_KEYS)

            if had_session:
                self._logger.info(
                    "User logged out: %s",
                    user.email if user else "unknown",
                    extra={
                        "event": "LOGOUT",
                        "user_id": user.id if user else "unknown",
                    },
                )
            return AuthResult(success=True)

    # ==================================================================
    # Current user
    # ==================================================================

    def load_current_user(self) -> AuthResult:
        """Fetch ``/auth/me`` with the stored access token.

        Establishes the session when it is not yet authenticated (cold
        start), otherwise replaces the user.  ``unauthorized`` signs out.
        """
        with self._op_lock:
            access_token: Optional[str] = self._store.get(SecureStoreKey.ACCESS_TOKEN)
            if not access_token:
                return AuthResult(success=False, skipped=True)

            restoring: bool = not self._session.is_authenticated
            if restoring:
                self._session.begin_authenticating()
            self._publisher.publish(is_loading=True)

            result: ApiResult[User] = self._backend.fetch_current_user()
            if not result.success:
                return self._fail_user_load(result.error, restoring)

            user: User = result.value
            if restoring:
                tokens = TokenPair(
                    access_token=access_token,
                    refresh_token=self._store.get(SecureStoreKey.REFRESH_TOKEN),
                )
                return self._activate(user, tokens, event="SESSION_RESTORED")

            self._session.set_current_user(user)
            self._publisher.publish(current_user=user, is_loading=False)
            self._logger.debug("User profile reloaded.")
            return AuthResult(success=True, user=user)

    def reload(self) -> AuthResult:
        """Re-fetch the user of an authenticated session."""
        with self._op_lock:
            if not self._session.is_authenticated:
                return AuthResult(success=False, skipped=True)
            return self.load_current_user()

    def update_current_user(self, user: User) -> AuthResult:
        """Replace the user after an external profile edit."""
        with self._op_lock:
            if not self._session.is_authenticated:
                return AuthResult(success=False, skipped=True)
            if user.id != self._session.get_current_user().id:
                self._logger.warning("Ignoring profile update for a different user id.")
                return AuthResult(success=False, error_message=GENERIC_ERROR_MESSAGE)
            self._session.set_current_user(user)
            self._publisher.publish(current_user=user)
            self._logger.debug("Current user updated.")
            return AuthResult(success=True, user=user)

    # ==================================================================
    # Password reset
    # ==================================================================

    def request_password_reset(self, email: str) -> AuthResult:
        """Ask the backend to e-mail a reset link.

        An unknown address reports the same success as a known one, so
        the response does not reveal which emails are registered.
        """
        email = self.normalize_email(email)
        with self._op_lock:
            self._publisher.publish(is_loading=True, clear_error=True)
            result = self._backend.request_password_reset(email)
            if result.success or (
                result.error is not None and result.error.kind == DomainErrorKind.NOT_FOUND
            ):
                self._publisher.publish(is_loading=False)
                self._logger.info(
                    "Password reset requested.",
                    extra={"event": "PASSWORD_RESET_REQUESTED", "email": email},
                )
                return AuthResult(success=True)

            return self._fail_side_operation(result.error)

    def confirm_password_reset(self, token: str, new_password: str) -> AuthResult:
        """Submit the reset token from the e-mail link and a new password."""
        with self._op_lock:
            self._publisher.publish(is_loading=True, clear_error=True)
            result = self._backend.confirm_password_reset(token, new_password)
            if not result.success:
                return self._fail_side_operation(result.error)
            self._publisher.publish(is_loading=False)
            self._logger.info(
                "Password reset confirmed.",
                extra={"event": "PASSWORD_RESET_CONFIRMED"},
            )
            return AuthResult(success=True)

    # ==================================================================
    # Biometric enrollment
    # ==================================================================

    def biometric_enrollment(self) -> BiometricEnrollment:
        """Persisted opt-in, read from the secure store."""
        return BiometricEnrollment(
            enabled=self._store.get(SecureStoreKey.BIOMETRIC_ENABLED) == _TRUE,
            stored_email=self._store.get(SecureStoreKey.BIOMETRIC_STORED_EMAIL),
        )

    def can_use_biometrics(self) -> bool:
        """Hardware present, enrollment enabled and a refresh token stored."""
        return (
            self._gate.capability() != BiometricCapability.NONE
            and self.biometric_enrollment().enabled
            and self._store.contains(SecureStoreKey.REFRESH_TOKEN)
        )

    def biometric_display_name(self) -> str:
        return self._gate.display_name()

    def should_prompt_for_biometric_enrollment(self) -> bool:
        """Offer the one-time opt-in prompt after a sign-in?"""
        return (
            self._session.is_authenticated
            and self._gate.capability() != BiometricCapability.NONE
            and not self.biometric_enrollment().enabled
            and self._store.get(SecureStoreKey.BIOMETRIC_PROMPT_SHOWN) != _TRUE
        )

    def mark_biometric_prompt_shown(self) -> None:
        result = self._store.set(SecureStoreKey.BIOMETRIC_PROMPT_SHOWN, _TRUE)
        if not result.success:
            self._logger.warning("Could not persist biometric prompt flag.")

    def enable_biometrics(self) -> AuthResult:
        """Opt in to biometric unlock for the signed-in user.

        Requires an authenticated session and one successful challenge
        to confirm consent.
        """
        with self._op_lock:
            if not self._session.is_authenticated:
                return self._biometric_failure(BiometricErrorKind.NOT_ENROLLED)

            reason = _BIOMETRIC_ENABLE_REASON.format(name=self._gate.display_name())
            challenge = self._gate.authenticate(reason)
            if not challenge.success:
                kind = challenge.error.kind if challenge.error else BiometricErrorKind.FAILED
                return self._biometric_failure(kind)

            user = self._session.get_current_user()
            write = self._store.set_many({
                SecureStoreKey.BIOMETRIC_ENABLED: _TRUE,
                SecureStoreKey.BIOMETRIC_STORED_EMAIL: user.email,
                SecureStoreKey.BIOMETRIC_PROMPT_SHOWN: _TRUE,
            })
            if not write.success:
                self._publisher.publish(error_message=GENERIC_ERROR_MESSAGE)
                return AuthResult(success=False, error_message=GENERIC_ERROR_MESSAGE)

            self._publisher.publish(clear_error=True)
            self._logger.info(
                "Biometric login enabled.",
                extra={"event": "BIOMETRIC_ENABLED", "user_id": user.id},
            )
            return AuthResult(success=True, user=user)

    def disable_biometrics(self) -> AuthResult:
        with self._op_lock:
            self._store.remove_many(_BIOMETRIC_KEYS)
            self._logger.info(
                "Biometric login disabled.", extra={"event": "BIOMETRIC_DISABLED"},
            )
            return AuthResult(success=True)

    # ==================================================================
    # Misc
    # ==================================================================

    def clear_error(self) -> None:
        with self._op_lock:
            self._session.set_last_error(None)
            self._publisher.publish(clear_error=True)

    def shutdown(self) -> None:
        """Stop the refresh timer and release the HTTP client.  Idempotent."""
        with self._op_lock:
            if self._closed:
                return
            self._closed = True
            self._timer_generation = None
        self._scheduler.cancel(wait=True)
        self._backend.close()
        self._logger.info("Session controller shut down.")

    # ==================================================================
    # Transitions
    # ==================================================================

    def _begin_attempt(self) -> None:
        self._session.begin_authenticating()
        self._publisher.publish(is_loading=True, clear_error=True)

    def _complete_sign_in(self, payload: AuthPayload, event: str) -> AuthResult:
        """Persist *payload* tokens, then activate the session."""
        previous_user_id: Optional[str] = self._store.get(SecureStoreKey.USER_ID)
        write = self._store.set_many({
            SecureStoreKey.ACCESS_TOKEN: payload.tokens.access_token,
            SecureStoreKey.REFRESH_TOKEN: payload.tokens.refresh_token,
            SecureStoreKey.USER_ID: payload.user.id,
            SecureStoreKey.USER_EMAIL: payload.user.email,
        })
        if not write.success:
            return self._fail_store_write()

        # Enrollment is bound to one account.
        if previous_user_id and previous_user_id != payload.user.id:
            self._store.remove_many(_BIOMETRIC_KEYS)
            self._logger.info(
                "Account changed; biometric login disabled.",
                extra={"event": "BIOMETRIC_DISABLED", "user_id": payload.user.id},
            )

        result = self._activate(payload.user, payload.tokens, event=event)
        return result.model_copy(update={"is_new_user": payload.is_new_user})

    def _activate(self, user: User, tokens: TokenPair, event: str) -> AuthResult:
        self._session.establish(user, tokens)
        self._publisher.publish(
            is_authenticated=True,
            current_user=user,
            is_loading=False,
            is_refreshing=False,
            clear_error=True,
        )
        self._timer_generation = self._scheduler.arm()
        self._logger.info(
            "User authenticated: %s", user.email,
            extra={"event": event, "email": user.email, "user_id": user.id},
        )
        return AuthResult(success=True, user=user)

    def _end_session(self, error_message: Optional[str]) -> None:
        """Leave the authenticated state: timer, store, session, projection."""
        self._timer_generation = None
        self._scheduler.cancel(wait=False)
        self._store.clear_auth_data()
        self._session.clear(error_message)
        self._publisher.publish(
            is_authenticated=False,
            clear_user=True,
            is_loading=False,
            is_refreshing=False,
            error_message=error_message,
            clear_error=error_message is None,
        )

    def _fail_attempt(
        self,
        error: Optional[DomainError],
        event: str,
        email: str,
    ) -> AuthResult:
        error = error or DomainError(kind=DomainErrorKind.UNKNOWN)
        message: str = (
            INVALID_CREDENTIALS_MESSAGE
            if error.kind == DomainErrorKind.UNAUTHORIZED
            else error.user_message
        )
        self._session.abort(message)
        self._publisher.publish(is_loading=False, error_message=message)
        self._logger.warning(
            "Sign-in failed for %s: %s", email, error.kind,
            extra={"event": event, "email": email, "error_kind": str(error.kind)},
        )
        return AuthResult(success=False, error=error, error_message=message)

    def _fail_unlock(self, error: Optional[DomainError]) -> AuthResult:
        """A biometric unlock that passed the gate but failed at the backend."""
        error = error or DomainError(kind=DomainErrorKind.UNKNOWN)
        if error.kind == DomainErrorKind.UNAUTHORIZED:
            self._store.clear_auth_data()
            message = SESSION_EXPIRED_MESSAGE
        else:
            message = error.user_message
        self._session.abort(message)
        self._publisher.publish(is_loading=False, error_message=message)
        self._logger.warning(
            "Biometric unlock failed at backend: %s", error.kind,
            extra={"event": "BIOMETRIC_LOGIN_FAILED", "error_kind": str(error.kind)},
        )
        return AuthResult(success=False, error=error, error_message=message)

    def _fail_store_write(self) -> AuthResult:
        self._session.abort(GENERIC_ERROR_MESSAGE)
        self._publisher.publish(is_loading=False, error_message=GENERIC_ERROR_MESSAGE)
        self._logger.error(
            "Sign-in aborted: credentials could not be written to the secure store.",
            extra={"event": "STORE_WRITE_FAILED"},
        )
        return AuthResult(success=False, error_message=GENERIC_ERROR_MESSAGE)

    def _fail_user_load(self, error: Optional[DomainError], restoring: bool) -> AuthResult:
        error = error or DomainError(kind=DomainErrorKind.UNKNOWN)
        if error.kind == DomainErrorKind.UNAUTHORIZED:
            self._logger.warning(
                "Stored session rejected by /auth/me; signing out.",
                extra={"event": "SESSION_EXPIRED"},
            )
            message = None if restoring else SESSION_EXPIRED_MESSAGE
            self._end_session(message)
            return AuthResult(success=False, error=error, error_message=message)

        if restoring:
            # Tokens stay in the store for the next attempt.
            self._session.abort()
            self._publisher.publish(is_loading=False)
            self._logger.warning(
                "Could not restore session (%s); starting signed out.", error.kind,
            )
            return AuthResult(success=False, error=error)

        message = error.user_message
        self._session.set_last_error(message)
        self._publisher.publish(is_loading=False, error_message=message)
        self._logger.warning("Failed to reload user: %s", error.kind)
        return AuthResult(success=False, error=error, error_message=message)

    def _fail_side_operation(self, error: Optional[DomainError]) -> AuthResult:
        error = error or DomainError(kind=DomainErrorKind.UNKNOWN)
        message = error.user_message
        self._session.set_last_error(message)
        self._publisher.publish(is_loading=False, error_message=message)
        return AuthResult(success=False, error=error, error_message=message)

    def _biometric_failure(self, kind: BiometricErrorKind) -> AuthResult:
        error = BiometricError(kind=kind)
        if error.is_silent:
            self._publisher.publish(is_loading=False, clear_error=True)
            self._logger.debug("Biometric prompt dismissed by user (%s).", kind)
            return AuthResult(success=False, biometric_error=error)

        message = error.user_message
        self._session.set_last_error(message)
        self._publisher.publish(is_loading=False, error_message=message)
        self._logger.info(
            "Biometric unlock unavailable: %s", kind,
            extra={"event": "BIOMETRIC_LOGIN_FAILED", "biometric_error": str(kind)},
        )
        return AuthResult(success=False, biometric_error=error, error_message=message)


def _carry_refresh_token(tokens: TokenPair, previous: str) -> TokenPair:
    """Keep *previous* when the backend did not rotate the refresh token."""
    if tokens.refresh_token:
        return tokens
    return tokens.model_copy(update={"refresh_token": previous})
