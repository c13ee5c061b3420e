"""
Master Key Store - AES-256-GCM private key encryption

Blob layout: iv (12 bytes) | tag (16 bytes) | ciphertext. The AES key is
derived from MASTER_KEY with scrypt (N=2**14, r=8, p=1) and a fixed salt,
so blobs written by older deployments still decrypt.
"""
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .exceptions import KeyStoreError
from .models import WalletRecord

STATIC_SALT = b"pulsebot-static-salt-01"
IV_LENGTH = 12
TAG_LENGTH = 16


class MasterKeyStore:
    """Encrypts and decrypts wallet keys with a single master secret."""

    def __init__(self, master_key: str, salt: bytes = STATIC_SALT):
        if not master_key or len(master_key) < 32:
            raise KeyStoreError("MASTER_KEY must be at least 32 characters")
        self._key = self._derive_key(master_key, salt)

    @staticmethod
    def _derive_key(master_key: str, salt: bytes) -> bytes:
        """
        Derive a 256-bit key from the master secret using scrypt.

        Args:
            master_key: Master secret from the environment
            salt: Derivation salt

        Returns:
            32-byte derived key
        """
        kdf = Scrypt(salt=salt, length=32, n=2**14, r=8, p=1)
        return kdf.derive(master_key.encode("utf-8"))

    def encrypt(self, private_key: str, iv: Optional[bytes] = None) -> bytes:
        """
        Encrypt a hex private key (with or without 0x).

        Returns:
            iv | tag | ciphertext
        """
        iv = iv or secrets.token_bytes(IV_LENGTH)
        raw = bytes.fromhex(private_key[2:] if private_key.startswith("0x") else private_key)
        sealed = AESGCM(self._key).encrypt(iv, raw, None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return iv + tag + ciphertext

    def decrypt(self, blob: bytes) -> str:
        """
        Decrypt a blob produced by ``encrypt``.

        Returns:
            0x-prefixed hex private key

        Raises:
            KeyStoreError: Wrong master key or corrupted blob
        """
        if len(blob) <= IV_LENGTH + TAG_LENGTH:
            raise KeyStoreError("Encrypted key blob is too short")

        iv = blob[:IV_LENGTH]
        tag = blob[IV_LENGTH:IV_LENGTH + TAG_LENGTH]
        ciphertext = blob[IV_LENGTH + TAG_LENGTH:]
        try:
            raw = AESGCM(self._key).decrypt(iv, ciphertext + tag, None)
        except InvalidTag:
            raise KeyStoreError("Failed to decrypt private key - wrong MASTER_KEY or corrupted data")
        return "0x" + raw.hex()

    def private_key_for(self, wallet: WalletRecord) -> str:
        return self.decrypt(bytes(wallet.enc_privkey))
