"""
Observable Session State.

Read-only projection of the session that the UI binds to:
``is_authenticated``, ``current_user``, ``is_loading`` and
``error_message`` (plus ``is_refreshing`` for a background-refresh
indicator).

Single-writer discipline: only the :class:`SessionStatePublisher` held
by ``SessionController`` can change the projection.  Consumers get the
:class:`ObservableSessionState` view, which exposes reads and
subscriptions only.

Observers are called synchronously after every transition.  When the
UI toolkit requires callbacks on its own thread, pass a ``dispatcher``
(e.g. ``lambda fn: root.after(0, fn)`` for Tk) and every notification is
routed through it.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from authcore.logger import StructuredLogger
from authcore.models.auth_models import SessionSnapshot
from authcore.models.user import User

SessionObserver = Callable[[SessionSnapshot], None]
Dispatcher = Callable[[Callable[[], None]], None]


def _call_inline(fn: Callable[[], None]) -> None:
    fn()


class ObservableSessionState:
    """Read-only, thread-safe view of the current ``SessionSnapshot``."""

    def __init__(
        self,
        logger: StructuredLogger,
        dispatcher: Optional[Dispatcher] = None,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._dispatcher: Dispatcher = dispatcher or _call_inline
        self._lock: threading.RLock = threading.RLock()
        self._snapshot: SessionSnapshot = SessionSnapshot()
        self._observers: list[SessionObserver] = []

    # -- Reads ----------------------------------------------------------------

    @property
    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def is_authenticated(self) -> bool:
        return self.snapshot.is_authenticated

    @property
    def current_user(self) -> Optional[User]:
        return self.snapshot.current_user

    @property
    def is_loading(self) -> bool:
        return self.snapshot.is_loading

    @property
    def is_refreshing(self) -> bool:
        return self.snapshot.is_refreshing

    @property
    def error_message(self) -> Optional[str]:
        return self.snapshot.error_message

    # -- Subscriptions --------------------------------------------------------

    def subscribe(
        self,
        observer: SessionObserver,
        emit_current: bool = True,
    ) -> Callable[[], None]:
        """Register *observer* and return a callable that unsubscribes it.

        With ``emit_current`` the observer immediately receives the
        current snapshot so it never has to poll for the initial value.
        """
        with self._lock:
            self._observers.append(observer)
            current = self._snapshot

        if emit_current:
            self._deliver(observer, current)

        def _unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return _unsubscribe

    # -- Internal -------------------------------------------------------------

    def _replace(self, snapshot: SessionSnapshot) -> None:
        with self._lock:
            if snapshot == self._snapshot:
                return
            self._snapshot = snapshot
            observers = list(self._observers)

        for observer in observers:
            self._deliver(observer, snapshot)

    def _deliver(self, observer: SessionObserver, snapshot: SessionSnapshot) -> None:
        def _notify() -> None:
            try:
                observer(snapshot)
            except Exception:
                self._logger.error(
                    "Session observer raised; continuing with remaining observers.",
                    exc_info=True,
                )

        self._dispatcher(_notify)


class SessionStatePublisher:
    """Write handle for :class:`ObservableSessionState`.

    Owned exclusively by ``SessionController``.
    """

    def __init__(self, state: ObservableSessionState) -> None:
        self._state: ObservableSessionState = state

    @property
    def state(self) -> ObservableSessionState:
        return self._state

    def publish(
        self,
        *,
        is_authenticated: Optional[bool] = None,
        current_user: Optional[User] = None,
        clear_user: bool = False,
        is_loading: Optional[bool] = None,
        is_refreshing: Optional[bool] = None,
        error_message: Optional[str] = None,
        clear_error: bool = False,
    ) -> SessionSnapshot:
        """Apply a partial update and notify observers if anything changed."""
        current = self._state.snapshot
        updates: dict[str, object] = {}
        if is_authenticated is not None:
            updates["is_authenticated"] = is_authenticated
        if clear_user:
            updates["current_user"] = None
        elif current_user is not None:
            updates["current_user"] = current_user
        if is_loading is not None:
            updates["is_loading"] = is_loading
        if is_refreshing is not None:
            updates["is_refreshing"] = is_refreshing
        if clear_error:
            updates["error_message"] = None
        elif error_message is not None:
            updates["error_message"] = error_message

        snapshot = current.model_copy(update=updates)
        self._state._replace(snapshot)
        return snapshot
