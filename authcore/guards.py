"""
Authentication Guard Decorator.

Provides a factory that produces a decorator for gating consumer
callables (data-sync jobs, profile editors, thin CRUD wrappers) behind
an authenticated session.

Usage::

    from authcore.guards import require_auth

    auth_guard = require_auth(controller)

    @auth_guard
    def sync_meals() -> int:
        return 42  # only reachable when signed in
"""

from __future__ import annotations

from functools import wraps
from typing import TYPE_CHECKING, Callable, ParamSpec, TypeVar

if TYPE_CHECKING:
    from authcore.services.session_controller import SessionController

P = ParamSpec("P")
R = TypeVar("R")


class AuthenticationError(RuntimeError):
    """Raised when a guarded function is called without an active session."""


def require_auth(
    controller: SessionController,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Return a decorator that enforces authentication via *controller*.

    The returned decorator checks ``controller.is_authenticated`` before
    every call to the wrapped function.  If no user is signed in, an
    :class:`AuthenticationError` is raised and the function is not
    called.

    Args:
        controller: The injected ``SessionController`` that owns the
            session.

    Returns:
        A decorator suitable for wrapping consumer callables.
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            if not controller.is_authenticated:
                raise AuthenticationError(
                    "Authentication required. Please sign in before "
                    "performing this action."
                )
            return func(*args, **kwargs)

        return wrapper

    return decorator
