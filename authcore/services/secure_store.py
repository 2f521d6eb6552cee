"""
Encrypted Secure Token Store.

Key-value secret store standing in for the platform keychain.  Holds
the access token, refresh token, user id/email and the biometric
enrollment flags as opaque strings in the local SQLite ``secure_items``
table, each value individually encrypted.

Security model
--------------
- The encryption key is derived at runtime from machine-specific
  characteristics (hostname + OS username) via PBKDF2-HMAC-SHA256 with
  a per-machine random salt.  The key is **never** persisted to disk;
  it is cached in memory for the lifetime of the store.
- Values are encrypted with AES-256-GCM.  The item key is bound in as
  associated data, so a ciphertext copied onto another row fails
  verification instead of decrypting under the wrong name.
- An unreadable row (corruption, machine identity changed) is reported
  as *absent* and logged; it never raises into the session core.

Storage layout::

    secure_items
    ├── item_key    TEXT PRIMARY KEY
    ├── ciphertext  BLOB
    ├── nonce       BLOB
    ├── tag         BLOB
    └── updated_at  TIMESTAMP
"""

from __future__ import annotations

import getpass
import os
import platform
import socket
import sqlite3
import stat
import threading
from pathlib import Path
from typing import Mapping, Optional

from Crypto.Cipher import AES
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import PBKDF2

from authcore.database import LocalDatabase
from authcore.logger import StructuredLogger
from authcore.models.auth_models import StoreError, StoreResult
from authcore.models.enums import SecureStoreKey
from authcore.services.base_service import BaseService

_AUTH_KEYS: tuple[SecureStoreKey, ...] = (
    SecureStoreKey.ACCESS_TOKEN,
    SecureStoreKey.REFRESH_TOKEN,
    SecureStoreKey.USER_ID,
    SecureStoreKey.USER_EMAIL,
)


class SecureTokenStore(BaseService):
    """Encrypted key-value store for session secrets.

    All operations are synchronous and never raise for a missing key.
    Writes report OS-level failures through ``StoreResult``; reads and
    removals log them and behave as if nothing was stored.

    Parameters
    ----------
    db:
        Initialised ``LocalDatabase`` whose schema contains
        ``secure_items``.
    logger:
        Structured JSON logger.
    salt_path:
        Location of the per-machine random salt file.
    kdf_iterations:
        PBKDF2 iteration count (600 000 in production).
    """

    _KEY_LENGTH: int = 32  # 256 bits
    _SALT_LENGTH: int = 32

    def __init__(
        self,
        db: LocalDatabase,
        logger: StructuredLogger,
        salt_path: Path,
        kdf_iterations: int = 600_000,
    ) -> None:
        super().__init__(logger)
        self._db: LocalDatabase = db
        self._salt_path: Path = salt_path
        self._kdf_iterations: int = kdf_iterations
        self._key: Optional[bytes] = None
        self._key_lock: threading.Lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[str]:
        """Return the decrypted value stored under *key*, or ``None``."""
        try:
            with self._db.write_lock:
                row = self._db.sqlite.execute(
                    "SELECT ciphertext, nonce, tag FROM secure_items WHERE item_key = ?",
                    (str(key),),
                ).fetchone()
        except sqlite3.Error as exc:
            self._logger.warning("Secure store read failed for '%s': %s", key, exc)
            return None

        if row is None:
            return None

        try:
            cipher = AES.new(self._derive_key(), AES.MODE_GCM, nonce=row["nonce"])
            cipher.update(str(key).encode("utf-8"))
            plaintext: bytes = cipher.decrypt_and_verify(row["ciphertext"], row["tag"])
            return plaintext.decode("utf-8")
        except (ValueError, KeyError, UnicodeDecodeError) as exc:
            self._logger.warning(
                "Decryption of secure item '%s' failed (corrupted data or "
                "machine identity changed): %s",
                key,
                exc,
            )
            return None
        except OSError as exc:
            self._logger.warning("Secure store key unavailable: %s", exc)
            return None

    def contains(self, key: str) -> bool:
        """``True`` when *key* holds a readable, non-empty value."""
        return bool(self.get(key))

    def set(self, key: str, value: str) -> StoreResult:
        """Encrypt and persist *value* under *key*."""
        return self.set_many({key: value})

    def set_many(self, items: Mapping[str, Optional[str]]) -> StoreResult:
        """Write several items in one transaction.

        A ``None`` value removes that item, so a token pair without a
        refresh token does not leave a stale one behind.  Either every
        item is written or none is.
        """
        if not items:
            return StoreResult(success=True)

        try:
            key_material: bytes = self._derive_key()
            rows: list[tuple[str, Optional[tuple[bytes, bytes, bytes]]]] = []
            for item_key, value in items.items():
                if value is None:
                    rows.append((str(item_key), None))
                    continue
                cipher = AES.new(key_material, AES.MODE_GCM)
                cipher.update(str(item_key).encode("utf-8"))
                ciphertext, tag = cipher.encrypt_and_digest(value.encode("utf-8"))
                rows.append((str(item_key), (ciphertext, cipher.nonce, tag)))
        except (OSError, ValueError) as exc:
            self._logger.warning("Failed to encrypt secure items: %s", exc)
            return self._failure(items, f"encryption failed: {exc}")

        try:
            with self._db.write_lock:
                conn = self._db.sqlite
                for item_key, encrypted in rows:
                    if encrypted is None:
                        conn.execute(
                            "DELETE FROM secure_items WHERE item_key = ?", (item_key,),
                        )
                        continue
                    conn.execute(
                        """
                        INSERT INTO secure_items (item_key, ciphertext, nonce, tag)
                        VALUES (?, ?, ?, ?)
                        ON CONFLICT(item_key) DO UPDATE SET
                            ciphertext = excluded.ciphertext,
                            nonce      = excluded.nonce,
                            tag        = excluded.tag,
                            updated_at = CURRENT_TIMESTAMP
                        """,
                        (item_key, *encrypted),
                    )
                conn.commit()
        except sqlite3.Error as exc:
            self._rollback()
            self._logger.warning("Failed to write secure items: %s", exc)
            return self._failure(items, f"write failed: {exc}")

        self._logger.debug(
            "Secure items written: %s", ", ".join(key for key, _ in rows),
        )
        return StoreResult(success=True)

    def remove(self, key: str) -> None:
        """Delete *key*.  Safe to call when it does not exist."""
        self.remove_many((key,))

    def remove_many(self, keys: tuple[str, ...]) -> None:
        try:
            with self._db.write_lock:
                self._db.sqlite.executemany(
                    "DELETE FROM secure_items WHERE item_key = ?",
                    [(str(key),) for key in keys],
                )
                self._db.sqlite.commit()
        except sqlite3.Error as exc:
            self._rollback()
            self._logger.error("Failed to remove secure items %s: %s", keys, exc)

    def clear_auth_data(self) -> None:
        """Remove tokens and user identity; biometric flags are untouched."""
        self.remove_many(_AUTH_KEYS)
        self._logger.info("Auth data cleared from secure store.")

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _failure(self, items: Mapping[str, Optional[str]], reason: str) -> StoreResult:
        return StoreResult(
            success=False,
            error=StoreError(key=",".join(str(k) for k in items), reason=reason),
        )

    def _rollback(self) -> None:
        try:
            self._db.sqlite.rollback()
        except sqlite3.Error:
            self._logger.debug("Rollback after failed write also failed.", exc_info=True)

    def _derive_key(self) -> bytes:
        """Derive (once) a 256-bit AES key from machine identity.

        The key is deterministic for a given (hostname, OS username, salt)
        triple.  If the machine identity changes, previously stored items
        become undecryptable and read back as absent.

        Raises
        ------
        OSError
            If the per-machine salt file cannot be created or read.
        """
        with self._key_lock:
            if self._key is None:
                password: str = f"{socket.gethostname()}:{getpass.getuser()}"
                self._key = PBKDF2(
                    password=password,
                    salt=self._get_or_create_salt(),
                    dkLen=self._KEY_LENGTH,
                    count=self._kdf_iterations,
                    hmac_hash_module=SHA256,
                )
            return self._key

    def _get_or_create_salt(self) -> bytes:
        """Return the per-machine random salt, creating it on first run.

        Raises
        ------
        OSError
            If the salt file cannot be read or written.  Callers refuse
            to store secrets rather than fall back to a static salt.
        """
        if self._salt_path.exists():
            data: bytes = self._salt_path.read_bytes()
            if len(data) == self._SALT_LENGTH:
                return data
            self._logger.warning(
                "Salt file has unexpected length (%d); regenerating.", len(data),
            )
        salt: bytes = os.urandom(self._SALT_LENGTH)
        self._salt_path.parent.mkdir(parents=True, exist_ok=True)
        self._salt_path.write_bytes(salt)

        if platform.system() != "Windows":
            self._salt_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 0o600

        self._logger.info("Per-machine store salt created at %s.", self._salt_path)
        return salt
