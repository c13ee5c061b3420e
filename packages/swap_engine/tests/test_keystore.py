"""
Tests for MasterKeyStore.
"""
import pytest

from swap_engine.exceptions import KeyStoreError
from swap_engine.keystore import MasterKeyStore

from conftest import MASTER_KEY


class TestMasterKeyStore:
    """AES-256-GCM key encryption."""

    def test_encrypt_decrypt_roundtrip(self, private_key):
        store = MasterKeyStore(MASTER_KEY)

        assert store.decrypt(store.encrypt(private_key)) == private_key.lower()

    def test_blob_layout(self, private_key):
        """iv (12) | tag (16) | ciphertext (32 for a private key)."""
        iv = bytes(range(12))
        blob = MasterKeyStore(MASTER_KEY).encrypt(private_key, iv=iv)

        assert len(blob) == 12 + 16 + 32
        assert blob[:12] == iv

    def test_accepts_key_without_prefix(self, private_key):
        store = MasterKeyStore(MASTER_KEY)

        assert store.decrypt(store.encrypt(private_key[2:])) == private_key.lower()

    def test_wrong_master_key_fails(self, private_key):
        blob = MasterKeyStore(MASTER_KEY).encrypt(private_key)

        with pytest.raises(KeyStoreError, match="decrypt"):
            MasterKeyStore("z" * 40).decrypt(blob)

    def test_truncated_blob_fails(self):
        with pytest.raises(KeyStoreError, match="short"):
            MasterKeyStore(MASTER_KEY).decrypt(b"\x00" * 20)

    def test_short_master_key_rejected(self):
        with pytest.raises(KeyStoreError):
            MasterKeyStore("too-short")
