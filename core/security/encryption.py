"""Credential encryption using AES-GCM.

Provides encryption at rest for Odoo admin passwords, user passwords and
API keys. Uses AES-256-GCM for authenticated encryption.

Ciphertext layout:
    version (1 byte) || nonce (12 bytes) || ciphertext + GCM tag
"""

import base64
import binascii
import os
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM


FORMAT_VERSION = 1
NONCE_SIZE = 12
KEY_ENV_VAR = "CREDENTIAL_ENCRYPTION_KEY"


def generate_encryption_key() -> str:
    """Generate a new 256-bit encryption key.

    Returns:
        Base64-encoded 32-byte key suitable for AES-256
    """
    key = secrets.token_bytes(32)
    return base64.b64encode(key).decode('utf-8')


class CredentialVault:
    """AES-256-GCM encryption for stored credentials.

    Security properties:
    - Confidentiality: AES-256 encryption
    - Integrity: GCM authentication tag
    - Uniqueness: Random 96-bit nonce per encryption

    Usage:
        # Generate and store key securely (e.g., env var, KMS)
        key = generate_encryption_key()

        vault = CredentialVault(key)
        blob = vault.encrypt("s3cret")
        assert vault.decrypt(blob) == "s3cret"
    """

    def __init__(self, encryption_key: str):
        """Initialize with base64-encoded encryption key.

        Args:
            encryption_key: Base64-encoded 32-byte key (from generate_encryption_key())
        """
        try:
            key = base64.b64decode(encryption_key, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid encryption key: {e}")
        if len(key) != 32:
            raise ValueError("Invalid encryption key: key must be 32 bytes (256 bits)")

        self._aesgcm = AESGCM(key)

    @classmethod
    def from_env(cls, env_var: str = KEY_ENV_VAR) -> "CredentialVault":
        """Build a vault from the key in the environment."""
        key = os.getenv(env_var)
        if not key:
            raise ValueError(
                f"{env_var} is not set. Generate one with "
                "`python -c \"from core.security import generate_encryption_key; print(generate_encryption_key())\"`"
            )
        return cls(key)

    def encrypt(self, plaintext: str) -> bytes:
        """Encrypt a secret string into the versioned binary layout."""
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aesgcm.encrypt(nonce, plaintext.encode('utf-8'), None)
        return bytes([FORMAT_VERSION]) + nonce + ciphertext

    def decrypt(self, blob: bytes) -> str:
        """Decrypt a blob produced by encrypt().

        Raises:
            ValueError: If decryption fails (wrong key, tampered or truncated data)
        """
        if not blob or len(blob) <= 1 + NONCE_SIZE:
            raise ValueError("Credential decryption failed: ciphertext too short")
        if blob[0] != FORMAT_VERSION:
            raise ValueError(f"Credential decryption failed: unsupported format version {blob[0]}")

        nonce = blob[1:1 + NONCE_SIZE]
        try:
            plaintext = self._aesgcm.decrypt(nonce, blob[1 + NONCE_SIZE:], None)
        except InvalidTag:
            raise ValueError("Credential decryption failed: authentication tag mismatch")
        return plaintext.decode('utf-8')

    def decrypt_optional(self, blob: Optional[bytes]) -> Optional[str]:
        return self.decrypt(blob) if blob is not None else None

    def rotate(self, blob: bytes, new_vault: "CredentialVault") -> bytes:
        """Re-encrypt a blob under another vault's key.

        Use this during key rotation to migrate stored credentials.
        """
        return new_vault.encrypt(self.decrypt(blob))
