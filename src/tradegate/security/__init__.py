"""Credential encryption at rest."""

from tradegate.security.vault import CredentialVault, generate_key

__all__ = ["CredentialVault", "generate_key"]
