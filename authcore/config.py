"""
Application Configuration.

Pydantic Settings model for the authcore session layer.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from enum import StrEnum
from pathlib import Path
from typing import ClassVar, Optional

from pydantic_settings import BaseSettings
from pydantic import model_validator


class Environment(StrEnum):
    """Deployment targets for the backend API."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Backend API ---
    ENVIRONMENT: Environment = Environment.DEVELOPMENT
    API_BASE_URL_OVERRIDE: str = ""
    API_VERSION: str = "v1"
    REQUEST_TIMEOUT_S: float = 30.0
    CONNECT_TIMEOUT_S: float = 10.0

    BASE_URLS: ClassVar[dict[Environment, str]] = {
        Environment.DEVELOPMENT: "http://localhost:8000",
        Environment.STAGING: "https://macrolens-api-staging.up.railway.app",
        Environment.PRODUCTION: "https://macrolens-api.up.railway.app",
    }

    # --- Client identity headers ---
    APP_VERSION: str = "1.0.0"
    PLATFORM_NAME: str = "python"

    # --- Session ---
    # Access tokens live 60 minutes; refresh 5 minutes before expiry.
    TOKEN_REFRESH_INTERVAL_S: float = 55 * 60

    # --- Secure store ---
    SECURE_STORE_PATH: Path = Path("authcore_secure.db")
    SECURE_STORE_SALT_PATH: Path = Path.home() / ".authcore_store_salt"
    SECURE_STORE_KDF_ITERATIONS: int = 600_000

    # --- Logging ---
    LOG_FILE: str = "authcore.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit a startup warning when critical configuration is empty.

        Pydantic silently falls back to defaults when ``.env`` is missing.
        This validator logs a warning so operators know the client is
        talking to a default backend.
        """
        _log = logging.getLogger("authcore.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found; all configuration loaded from "
                "environment variables or defaults."
            )

        if self.ENVIRONMENT == Environment.DEVELOPMENT and not self.API_BASE_URL_OVERRIDE:
            _log.warning(
                "Running against the development backend at %s.",
                self.BASE_URLS[Environment.DEVELOPMENT],
            )

        if self.TOKEN_REFRESH_INTERVAL_S <= 0:
            raise ValueError("TOKEN_REFRESH_INTERVAL_S must be positive")

        return self

    @property
    def api_base_url(self) -> str:
        """Return the fully-qualified API root, e.g. ``https://host/api/v1``."""
        base: str = self.API_BASE_URL_OVERRIDE or self.BASE_URLS[self.ENVIRONMENT]
        return f"{base.rstrip('/')}/api/{self.API_VERSION}"


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    On first call, creates an ``AppConfig`` instance (reading from ``.env``).
    Subsequent calls return the same instance.  Uses a check-lock-check
    pattern to avoid the lock overhead on the fast path while remaining
    thread-safe during first initialisation.

    Prefer direct constructor injection of ``AppConfig`` in new code;
    this factory exists for modules such as the logger that need
    defaults before the composition root has run.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
