"""
Token Refresh Scheduler.

Background daemon thread that fires the session's refresh callback on a
fixed period while a session is authenticated.  Follows the daemon
lifecycle pattern of a stop-event driven worker: :meth:`arm` starts (or
restarts) the loop, :meth:`cancel` stops it deterministically.

Each arm gets its own stop event and a *generation* number that is
passed to the callback.  The session compares it with its current
generation so a tick that was already in flight when the session was
re-armed or torn down is recognised as stale and ignored.

Thread Safety
-------------
``arm`` and ``cancel`` are guarded by an internal lock.  ``cancel`` may
be called from inside the callback (a refresh that ends the session);
in that case the thread is signalled but not joined.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from authcore.logger import StructuredLogger
from authcore.services.base_service import BaseService

RefreshCallback = Callable[[int], None]


class TokenRefreshScheduler(BaseService):
    """Fixed-period refresh timer on a daemon thread.

    Parameters
    ----------
    interval_s:
        Seconds between refresh attempts (3300 = 55 minutes).
    callback:
        Invoked on the timer thread with the generation it was armed for.
    logger:
        Structured JSON logger.
    """

    _JOIN_TIMEOUT_S: float = 10.0

    def __init__(
        self,
        interval_s: float,
        callback: RefreshCallback,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self._interval_s: float = interval_s
        self._callback: RefreshCallback = callback
        self._lock: threading.Lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._generation: int = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def interval_s(self) -> float:
        return self._interval_s

    @property
    def generation(self) -> int:
        """Generation of the most recent :meth:`arm`; bumped by :meth:`cancel`."""
        with self._lock:
            return self._generation

    @property
    def is_armed(self) -> bool:
        """``True`` while a timer thread is alive and not signalled to stop."""
        with self._lock:
            return (
                self._thread is not None
                and self._thread.is_alive()
                and self._stop_event is not None
                and not self._stop_event.is_set()
            )

    def arm(self) -> int:
        """(Re)start the timer and return its generation.

        Any previously armed timer is signalled to stop first, so there
        is never more than one timer that can act on the session.
        """
        self.cancel(wait=False)
        with self._lock:
            self._generation += 1
            generation = self._generation
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run_loop,
                args=(generation, stop_event),
                name=f"TokenRefresh-{generation}",
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
            thread.start()

        self._logger.debug(
            "Token refresh timer armed (every %.0f s).", self._interval_s,
        )
        return generation

    def cancel(self, wait: bool = True) -> None:
        """Stop the timer.  Safe to call when nothing is armed.

        With ``wait=False`` the thread is only signalled.  Callers that
        hold a lock the callback may need use this to avoid waiting on
        a tick that is blocked on them; the generation bump makes that
        tick stale.
        """
        with self._lock:
            thread = self._thread
            stop_event = self._stop_event
            self._thread = None
            self._stop_event = None
            if thread is not None:
                self._generation += 1

        if thread is None or stop_event is None:
            return

        stop_event.set()
        if not wait:
            return
        if thread is threading.current_thread():
            self._logger.debug("Token refresh timer cancelled from its own tick.")
            return

        thread.join(timeout=self._JOIN_TIMEOUT_S)
        if thread.is_alive():
            self._logger.warning(
                "Token refresh thread did not terminate within %.0f s.",
                self._JOIN_TIMEOUT_S,
            )
        else:
            self._logger.debug("Token refresh timer stopped.")

    # ------------------------------------------------------------------
    # Core loop
    # ------------------------------------------------------------------

    def _run_loop(self, generation: int, stop_event: threading.Event) -> None:
        """Tick every ``interval_s`` until *stop_event* is set.

        A failing callback is logged and the loop keeps its schedule;
        transient refresh failures must not kill the timer.
        """
        while not stop_event.wait(timeout=self._interval_s):
            try:
                self._callback(generation)
            except Exception:
                self._logger.error(
                    "Token refresh tick raised; timer stays armed.", exc_info=True,
                )
