"""
Authentication & Session State.

Provides the ``Session`` entity: the authoritative, in-memory record of
the single process-wide session (lifecycle state, user, mirrored tokens
and the last error).  Only ``SessionController`` mutates it; everything
else observes the published ``SessionSnapshot``.

Usage::

    from authcore.auth import Session

    session = Session()
    session.begin_authenticating()
    session.establish(user, tokens)
    user = session.get_current_user()
"""

from __future__ import annotations

import threading
from typing import Optional

from authcore.models.auth_models import TokenPair
from authcore.models.enums import SessionState
from authcore.models.user import User


class Session:
    """Holder for the current session.

    Enforces ``authenticated ⟺ user ∧ access_token``: the only way into
    ``AUTHENTICATED`` is :meth:`establish`, which requires both, and
    every exit goes through :meth:`clear`.
    """

    def __init__(self) -> None:
        self._lock: threading.RLock = threading.RLock()
        self._state: SessionState = SessionState.UNAUTHENTICATED
        self._current_user: Optional[User] = None
        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._last_error: Optional[str] = None
        self._epoch: int = 0

    # -- Transitions ----------------------------------------------------------

    def begin_authenticating(self) -> None:
        """Enter ``AUTHENTICATING`` from the unauthenticated state."""
        with self._lock:
            if self._state == SessionState.UNAUTHENTICATED:
                self._state = SessionState.AUTHENTICATING

    def establish(self, user: User, tokens: TokenPair) -> None:
        """Enter ``AUTHENTICATED`` with *user* and *tokens*, replacing both outright."""
        with self._lock:
            self._current_user = user
            self._access_token = tokens.access_token
            self._refresh_token = tokens.refresh_token
            self._last_error = None
            self._state = SessionState.AUTHENTICATED

    def begin_refresh(self) -> None:
        with self._lock:
            if self._state == SessionState.AUTHENTICATED:
                self._state = SessionState.REFRESHING

    def end_refresh(self) -> None:
        with self._lock:
            if self._state == SessionState.REFRESHING:
                self._state = SessionState.AUTHENTICATED

    def set_tokens(self, tokens: TokenPair) -> None:
        """Mirror a rotated token pair; a missing refresh token keeps the old one."""
        with self._lock:
            self._access_token = tokens.access_token
            if tokens.refresh_token:
                self._refresh_token = tokens.refresh_token

    def set_current_user(self, user: User) -> None:
        """Replace the user wholesale.  Ignored unless authenticated."""
        with self._lock:
            if self.is_authenticated:
                self._current_user = user

    def abort(self, error: Optional[str] = None) -> None:
        """Leave ``AUTHENTICATING`` after a failed attempt."""
        with self._lock:
            if self._state == SessionState.AUTHENTICATING:
                self._state = SessionState.UNAUTHENTICATED
            self._last_error = error

    def clear(self, error: Optional[str] = None) -> None:
        """Remove the user and tokens, ending the session."""
        with self._lock:
            if self._state != SessionState.UNAUTHENTICATED:
                self._epoch += 1
            self._state = SessionState.UNAUTHENTICATED
            self._current_user = None
            self._access_token = None
            self._refresh_token = None
            self._last_error = error

    def set_last_error(self, error: Optional[str]) -> None:
        with self._lock:
            self._last_error = error

    # -- Reads ----------------------------------------------------------------

    def get_current_user(self) -> User:
        """Return the authenticated user.

        Raises:
            RuntimeError: If no user is currently authenticated.
        """
        with self._lock:
            if self._current_user is None:
                raise RuntimeError(
                    "No user is currently authenticated. Login required."
                )
            return self._current_user

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def current_user(self) -> Optional[User]:
        with self._lock:
            return self._current_user

    @property
    def access_token(self) -> Optional[str]:
        """Return the current access token, or ``None`` if not set."""
        with self._lock:
            return self._access_token

    @property
    def refresh_token(self) -> Optional[str]:
        """Return the refresh token for session renewal."""
        with self._lock:
            return self._refresh_token

    @property
    def last_error(self) -> Optional[str]:
        with self._lock:
            return self._last_error

    @property
    def epoch(self) -> int:
        """Incremented every time an established session ends."""
        with self._lock:
            return self._epoch

    @property
    def is_authenticated(self) -> bool:
        """``True`` while authenticated, including during a background refresh."""
        with self._lock:
            return (
                self._state in (SessionState.AUTHENTICATED, SessionState.REFRESHING)
                and self._current_user is not None
                and self._access_token is not None
            )
