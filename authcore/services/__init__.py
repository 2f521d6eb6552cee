"""
Session Core Services Package.

Contains the secure store, biometric gate, backend client, observable
state and the session controller that orchestrates them.

The ``create_auth_core()`` factory wires every component together,
returning a typed dict that the application layer (views / commands)
can consume without knowing the internal dependency graph.  Build it
once at process start and pass the controller to every consumer.
"""

from __future__ import annotations

import atexit
from typing import Optional, TypedDict

import httpx

from authcore.config import AppConfig
from authcore.database import LocalDatabase
from authcore.logger import StructuredLogger, get_logger
from authcore.models.enums import SecureStoreKey
from authcore.schema import initialize_schema
from authcore.services.auth_backend import AuthBackendClient
from authcore.services.biometric_gate import (
    BiometricGate,
    BiometricPlatform,
    NullBiometricPlatform,
)
from authcore.services.secure_store import SecureTokenStore
from authcore.services.session_controller import SessionController
from authcore.services.session_state import Dispatcher, ObservableSessionState


class AuthCoreContainer(TypedDict):
    """Typed container for the wired session core."""

    database: LocalDatabase
    secure_store: SecureTokenStore
    biometric_gate: BiometricGate
    backend: AuthBackendClient
    session_state: ObservableSessionState
    controller: SessionController


def create_auth_core(
    config: AppConfig,
    biometric_platform: Optional[BiometricPlatform] = None,
    transport: Optional[httpx.BaseTransport] = None,
    dispatcher: Optional[Dispatcher] = None,
    logger: Optional[StructuredLogger] = None,
    register_atexit: bool = True,
) -> AuthCoreContainer:
    """
    Wire the session core together.

    This is the single composition root.  The application entry-point
    calls it once at startup, then usually calls
    ``controller.restore_session()``.

    Args:
        config: Application configuration.
        biometric_platform: OS biometric adapter; devices without one get
            ``NullBiometricPlatform``.
        transport: Optional httpx transport (tests inject a mock).
        dispatcher: Routes state notifications onto the UI thread.
        logger: Shared logger; defaults to the ``authcore`` logger.
        register_atexit: Register controller and database teardown.

    Returns:
        AuthCoreContainer mapping component names to wired instances.
    """
    logger = logger or get_logger("authcore")

    # ------------------------------------------------------------------
    # 1. Persistence
    # ------------------------------------------------------------------
    database = LocalDatabase(sqlite_path=config.SECURE_STORE_PATH, logger=logger)
    with database.write_lock:
        initialize_schema(database.sqlite, logger)

    secure_store = SecureTokenStore(
        db=database,
        logger=logger,
        salt_path=config.SECURE_STORE_SALT_PATH,
        kdf_iterations=config.SECURE_STORE_KDF_ITERATIONS,
    )

    # ------------------------------------------------------------------
    # 2. Leaf services
    # ------------------------------------------------------------------
    biometric_gate = BiometricGate(
        platform=biometric_platform or NullBiometricPlatform(),
        logger=logger,
    )
    backend = AuthBackendClient(
        base_url=config.api_base_url,
        logger=logger,
        token_provider=lambda: secure_store.get(SecureStoreKey.ACCESS_TOKEN),
        app_version=config.APP_VERSION,
        platform_name=config.PLATFORM_NAME,
        timeout=httpx.Timeout(config.REQUEST_TIMEOUT_S, connect=config.CONNECT_TIMEOUT_S),
        transport=transport,
    )
    session_state = ObservableSessionState(logger=logger, dispatcher=dispatcher)

    # ------------------------------------------------------------------
    # 3. Orchestration
    # ------------------------------------------------------------------
    controller = SessionController(
        store=secure_store,
        backend=backend,
        gate=biometric_gate,
        state=session_state,
        logger=logger,
        refresh_interval_s=config.TOKEN_REFRESH_INTERVAL_S,
    )

    if register_atexit:
        # LIFO: the controller stops its timer before the database closes.
        atexit.register(database.close)
        atexit.register(controller.shutdown)

    logger.info(
        "Session core ready (backend %s).", config.api_base_url,
        extra={"event": "AUTH_CORE_READY"},
    )

    return AuthCoreContainer(
        database=database,
        secure_store=secure_store,
        biometric_gate=biometric_gate,
        backend=backend,
        session_state=session_state,
        controller=controller,
    )


__all__ = ["AuthCoreContainer", "create_auth_core"]
