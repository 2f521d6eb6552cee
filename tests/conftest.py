"""
Shared pytest fixtures for the session core.

The secure store runs for real against an in-memory SQLite database
with a low KDF iteration count.  The REST backend is faked with
``httpx.MockTransport`` and the biometric prompt with a scripted
platform adapter.
"""

from __future__ import annotations

import io
import itertools
import json
import logging
import threading
from typing import Any, Callable, Optional

import httpx
import pytest

from authcore.database import LocalDatabase
from authcore.logger import StructuredLogger
from authcore.models.enums import (
    BiometricCapability,
    PlatformBiometricOutcome,
    SecureStoreKey,
)
from authcore.schema import initialize_schema
from authcore.services.auth_backend import AuthBackendClient
from authcore.services.biometric_gate import BiometricGate
from authcore.services.secure_store import SecureTokenStore
from authcore.services.session_controller import SessionController
from authcore.services.session_state import ObservableSessionState

API_ROOT = "https://api.test/api/v1"

_logger_ids = itertools.count()


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def user_payload(email: str = "a@b.com", user_id: str = "user-123", **overrides: Any) -> dict:
    payload = {
        "id": user_id,
        "email": email,
        "full_name": "Ada Lovelace",
        "is_active": True,
        "is_verified": True,
        "created_at": "2024-01-01T00:00:00Z",
        "last_login": None,
    }
    payload.update(overrides)
    return payload


def tokens_payload(access: str = "access-1", refresh: Optional[str] = "refresh-1") -> dict:
    payload: dict[str, Any] = {
        "access_token": access,
        "token_type": "bearer",
        "expires_in": 3600,
    }
    if refresh is not None:
        payload["refresh_token"] = refresh
    return payload


def envelope(data: Any = None, message: str = "OK") -> dict:
    return {"success": True, "data": data, "message": message, "error": None}


def auth_envelope(
    email: str = "a@b.com",
    access: str = "access-1",
    refresh: Optional[str] = "refresh-1",
    is_new_user: bool = False,
) -> dict:
    return envelope({
        "user": user_payload(email),
        "tokens": tokens_payload(access, refresh),
        "is_new_user": is_new_user,
    })


def error_envelope(message: str, code: Optional[str] = None) -> dict:
    error: Any = {"message": message, "code": code} if code else message
    return {"success": False, "data": None, "message": message, "error": error}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

Handler = Callable[[httpx.Request], httpx.Response]


class FakeBackend:
    """Route table over ``httpx.MockTransport`` that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.requests: list[httpx.Request] = []
        self._lock = threading.Lock()
        self._routes: dict[tuple[str, str], Handler] = {}
        self.reply("POST", "/auth/login", 200, auth_envelope())
        self.reply("POST", "/auth/register", 201, auth_envelope())
        self.reply("POST", "/auth/social", 200, auth_envelope())
        self.reply("POST", "/auth/refresh", 200, envelope(tokens_payload("access-2", "refresh-2")))
        self.reply("POST", "/auth/logout", 200, envelope(None, "Logged out"))
        self.reply("GET", "/auth/me", 200, envelope({"user": user_payload()}))
        self.reply("POST", "/auth/reset-password", 200, envelope(None))
        self.reply("POST", "/auth/reset-password/confirm", 200, envelope(None))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def route(self, method: str, path: str, handler: Handler) -> None:
        self._routes[(method, path)] = handler

    def reply(self, method: str, path: str, status: int, body: Any = None) -> None:
        def _handler(request: httpx.Request) -> httpx.Response:
            if body is None:
                return httpx.Response(status)
            return httpx.Response(status, json=body)

        self.route(method, path, _handler)

    def count(self, method: str, path: str) -> int:
        with self._lock:
            return self.calls.count((method, path))

    def last_json(self) -> dict:
        return json.loads(self.requests[-1].content)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api/v1")
        with self._lock:
            self.calls.append((request.method, path))
            self.requests.append(request)
        handler = self._routes.get((request.method, path))
        if handler is None:
            return httpx.Response(404, json=error_envelope("Not found"))
        return handler(request)


class ScriptedBiometricPlatform:
    """Platform adapter that answers every prompt with a preset outcome."""

    def __init__(
        self,
        capability: BiometricCapability = BiometricCapability.FACE,
        outcome: PlatformBiometricOutcome = PlatformBiometricOutcome.SUCCESS,
    ) -> None:
        self.capability = capability
        self.outcome = outcome
        self.reasons: list[str] = []

    def probe(self) -> BiometricCapability:
        return self.capability

    def evaluate(self, reason: str) -> PlatformBiometricOutcome:
        self.reasons.append(reason)
        return self.outcome


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def log_stream():
    return io.StringIO()


@pytest.fixture
def logger(tmp_path, log_stream):
    """Structured logger writing to an in-memory stream and a temp file."""
    return StructuredLogger(
        name=f"authcore.test.{next(_logger_ids)}",
        level=logging.DEBUG,
        stream=log_stream,
        log_file=str(tmp_path / "authcore-test.log"),
    )


@pytest.fixture
def database(logger):
    db = LocalDatabase(sqlite_path=":memory:", logger=logger)
    initialize_schema(db.sqlite, logger)
    yield db
    db.close()


@pytest.fixture
def store(database, logger, tmp_path):
    return SecureTokenStore(
        db=database,
        logger=logger,
        salt_path=tmp_path / "store_salt",
        kdf_iterations=1_000,
    )


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def make_backend(fake_backend, store, logger):
    """Factory for backend clients sharing one fake server and store."""
    clients: list[AuthBackendClient] = []

    def _make() -> AuthBackendClient:
        client = AuthBackendClient(
            base_url=API_ROOT,
            logger=logger,
            token_provider=lambda: store.get(SecureStoreKey.ACCESS_TOKEN),
            app_version="9.9.9",
            platform_name="pytest",
            transport=fake_backend.transport,
        )
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()


@pytest.fixture
def backend(make_backend):
    return make_backend()


@pytest.fixture
def platform():
    return ScriptedBiometricPlatform()


@pytest.fixture
def gate(platform, logger):
    return BiometricGate(platform=platform, logger=logger)


@pytest.fixture
def session_state(logger):
    return ObservableSessionState(logger=logger)


@pytest.fixture
def make_controller(store, backend, gate, session_state, logger):
    """Factory so a test can build a second controller over the same store."""
    created: list[SessionController] = []

    def _make(
        refresh_interval_s: float = 3600.0,
        state: Optional[ObservableSessionState] = None,
        client: Optional[AuthBackendClient] = None,
    ) -> SessionController:
        controller = SessionController(
            store=store,
            backend=client or backend,
            gate=gate,
            state=state or session_state,
            logger=logger,
            refresh_interval_s=refresh_interval_s,
        )
        created.append(controller)
        return controller

    yield _make
    for controller in created:
        controller.shutdown()


@pytest.fixture
def controller(make_controller):
    return make_controller()


def assert_session_invariant(controller: SessionController, store: SecureTokenStore) -> None:
    """``is_authenticated`` iff a user is present and an access token is stored."""
    snapshot = controller.session_state.snapshot
    has_token = bool(store.get(SecureStoreKey.ACCESS_TOKEN))
    assert snapshot.is_authenticated == (snapshot.current_user is not None and has_token)
    assert controller.is_authenticated == snapshot.is_authenticated
