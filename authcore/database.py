"""
Local Database Connection.

Owns the single SQLite connection that backs the encrypted secure store.
Domain-data caching lives elsewhere; this module only manages the raw
connection and its write lock and contains no query logic.

Security Note
-------------
The SQLite file itself is **not** encrypted.  Every value written by
``SecureTokenStore`` is individually AES-256-GCM encrypted before it
reaches this connection, so the file only ever holds ciphertext for
credentials.

Usage (dependency injection at app startup)::

    from authcore.database import LocalDatabase
    from authcore.logger import StructuredLogger

    db = LocalDatabase(
        sqlite_path=config.SECURE_STORE_PATH,
        logger=StructuredLogger(name="database"),
    )
    # Inject `db` into the secure store.
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Optional

from authcore.logger import StructuredLogger


class LocalDatabase:
    """Manages the local SQLite connection used for secret persistence.

    Fully configured at construction time via dependency injection.

    Parameters
    ----------
    sqlite_path:
        Filesystem path for the SQLite database file.  ``":memory:"`` is
        accepted for throwaway stores.
    logger:
        A ``StructuredLogger`` instance for structured JSON log output.
    """

    def __init__(
        self,
        sqlite_path: Path | str,
        logger: StructuredLogger,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._write_lock: threading.RLock = threading.RLock()
        self._closed: bool = False
        self._sqlite_conn: Optional[sqlite3.Connection] = self._connect_sqlite(sqlite_path)

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Return the open SQLite connection.

        Raises
        ------
        sqlite3.ProgrammingError
            If the connection has already been closed.
        """
        if self._sqlite_conn is None:
            raise sqlite3.ProgrammingError("Local database connection is closed.")
        return self._sqlite_conn

    @property
    def write_lock(self) -> threading.RLock:
        """Return the write lock for thread-safe SQLite operations.

        All code that performs SQLite writes should acquire this lock
        first::

            with db.write_lock:
                db.sqlite.execute("INSERT ...")
                db.sqlite.commit()
        """
        return self._write_lock

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the local SQLite connection.

        Safe to call multiple times; subsequent calls are no-ops.
        """
        with self._write_lock:
            if self._sqlite_conn is None:
                return
            try:
                self._sqlite_conn.close()
                self._logger.info("SQLite connection closed.")
            except sqlite3.ProgrammingError:
                # Connection was already closed; nothing to do.
                pass
            finally:
                self._sqlite_conn = None
                self._closed = True

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _connect_sqlite(self, path: Path | str) -> sqlite3.Connection:
        """Open (or create) a SQLite database with defensive error handling.

        Raises
        ------
        PermissionError
            If the OS denies access to the database file or its directory.
        """
        try:
            conn = sqlite3.connect(str(path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            if str(path) != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL;")
            self._logger.info("SQLite database opened at %s", path)
            return conn
        except PermissionError as exc:
            msg = (
                f"Cannot open the secure store at '{path}'. "
                "The file or its directory may be read-only or locked by "
                "another process."
            )
            self._logger.error(msg)
            raise PermissionError(msg) from exc
