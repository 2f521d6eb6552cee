"""Tests for the encrypted SecureTokenStore."""

from __future__ import annotations

import stat
import sys

import pytest

from authcore.models.enums import SecureStoreKey
from authcore.services.secure_store import SecureTokenStore


class TestSecureTokenStore:
    def test_get_missing_key_returns_none(self, store):
        """Should treat an absent key as None, not an error."""
        assert store.get(SecureStoreKey.ACCESS_TOKEN) is None
        assert store.contains(SecureStoreKey.ACCESS_TOKEN) is False

    def test_set_then_get(self, store):
        """Should return the value that was stored."""
        result = store.set(SecureStoreKey.ACCESS_TOKEN, "tok-123")
        assert result.success is True
        assert store.get(SecureStoreKey.ACCESS_TOKEN) == "tok-123"
        assert store.contains(SecureStoreKey.ACCESS_TOKEN) is True

    def test_overwrite(self, store):
        """Should replace an existing value."""
        store.set(SecureStoreKey.REFRESH_TOKEN, "old")
        store.set(SecureStoreKey.REFRESH_TOKEN, "new")
        assert store.get(SecureStoreKey.REFRESH_TOKEN) == "new"

    def test_values_are_encrypted_at_rest(self, store, database):
        """Should never write the plaintext into SQLite."""
        store.set(SecureStoreKey.ACCESS_TOKEN, "plaintext-secret")
        row = database.sqlite.execute(
            "SELECT ciphertext FROM secure_items WHERE item_key = ?",
            (str(SecureStoreKey.ACCESS_TOKEN),),
        ).fetchone()
        assert row is not None
        assert b"plaintext-secret" not in bytes(row["ciphertext"])

    def test_ciphertext_bound_to_its_key(self, store, database):
        """Should refuse to decrypt a row copied under another key name."""
        store.set(SecureStoreKey.ACCESS_TOKEN, "secret")
        database.sqlite.execute(
            """
            INSERT INTO secure_items (item_key, ciphertext, nonce, tag)
            SELECT ?, ciphertext, nonce, tag FROM secure_items WHERE item_key = ?
            """,
            (str(SecureStoreKey.REFRESH_TOKEN), str(SecureStoreKey.ACCESS_TOKEN)),
        )
        database.sqlite.commit()
        assert store.get(SecureStoreKey.REFRESH_TOKEN) is None

    def test_remove_is_safe_for_missing_key(self, store):
        """Should not raise when removing a key that was never set."""
        store.remove(SecureStoreKey.USER_ID)
        store.set(SecureStoreKey.USER_ID, "u-1")
        store.remove(SecureStoreKey.USER_ID)
        assert store.get(SecureStoreKey.USER_ID) is None

    def test_set_many_none_removes(self, store):
        """Should delete an item whose new value is None."""
        store.set(SecureStoreKey.REFRESH_TOKEN, "r-1")
        result = store.set_many({
            SecureStoreKey.ACCESS_TOKEN: "a-2",
            SecureStoreKey.REFRESH_TOKEN: None,
        })
        assert result.success is True
        assert store.get(SecureStoreKey.ACCESS_TOKEN) == "a-2"
        assert store.get(SecureStoreKey.REFRESH_TOKEN) is None

    def test_clear_auth_data_keeps_biometric_flags(self, store):
        """Should remove tokens and identity but leave enrollment flags."""
        store.set_many({
            SecureStoreKey.ACCESS_TOKEN: "a",
            SecureStoreKey.REFRESH_TOKEN: "r",
            SecureStoreKey.USER_ID: "u",
            SecureStoreKey.USER_EMAIL: "a@b.com",
            SecureStoreKey.BIOMETRIC_ENABLED: "true",
        })
        store.clear_auth_data()
        for key in (
            SecureStoreKey.ACCESS_TOKEN,
            SecureStoreKey.REFRESH_TOKEN,
            SecureStoreKey.USER_ID,
            SecureStoreKey.USER_EMAIL,
        ):
            assert store.get(key) is None
        assert store.get(SecureStoreKey.BIOMETRIC_ENABLED) == "true"

    def test_values_survive_a_new_store_instance(self, store, database, logger, tmp_path):
        """Should decrypt with a fresh instance on the same machine and salt."""
        store.set(SecureStoreKey.REFRESH_TOKEN, "persisted")
        reopened = SecureTokenStore(
            db=database,
            logger=logger,
            salt_path=tmp_path / "store_salt",
            kdf_iterations=1_000,
        )
        assert reopened.get(SecureStoreKey.REFRESH_TOKEN) == "persisted"

    def test_different_salt_reads_as_absent(self, store, database, logger, tmp_path):
        """Should report undecryptable rows as absent instead of raising."""
        store.set(SecureStoreKey.REFRESH_TOKEN, "persisted")
        other = SecureTokenStore(
            db=database,
            logger=logger,
            salt_path=tmp_path / "other_salt",
            kdf_iterations=1_000,
        )
        assert other.get(SecureStoreKey.REFRESH_TOKEN) is None

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions only")
    def test_salt_file_is_owner_only(self, store, tmp_path):
        """Should create the salt file with mode 0600."""
        store.set(SecureStoreKey.ACCESS_TOKEN, "x")
        mode = stat.S_IMODE((tmp_path / "store_salt").stat().st_mode)
        assert mode == 0o600

    def test_closed_database_write_returns_store_error(self, store, database):
        """Should report an OS-level failure through StoreResult."""
        store.set(SecureStoreKey.ACCESS_TOKEN, "warm-up")
        database.close()
        result = store.set(SecureStoreKey.ACCESS_TOKEN, "x")
        assert result.success is False
        assert result.error is not None
        assert "access_token" in result.error.key

    def test_closed_database_read_returns_none(self, store, database):
        """Should degrade reads to absent when the database is gone."""
        database.close()
        assert store.get(SecureStoreKey.ACCESS_TOKEN) is None
        store.remove(SecureStoreKey.ACCESS_TOKEN)
