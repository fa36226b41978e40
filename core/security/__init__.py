"""Security module - credential encryption at rest."""

from core.security.encryption import (
    CredentialVault,
    generate_encryption_key,
)

__all__ = [
    "CredentialVault",
    "generate_encryption_key",
]
