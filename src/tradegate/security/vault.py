"""Symmetric encryption of stored venue credentials.

Uses Fernet tokens (AES-128-CBC with HMAC-SHA256 authentication) from the
``cryptography`` package, so tampered or truncated ciphertext is detected
instead of decrypting to garbage.

Key rotation: the active key encrypts; previous keys are tried on decrypt
only. A token no configured key can open raises CryptoError. Callers must
never read that as "no credential stored".
"""

from collections.abc import Iterable

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from tradegate.exceptions import CryptoError
from tradegate.logging import get_logger

logger = get_logger(__name__)


def generate_key() -> str:
    """Return a fresh url-safe base64 encoded 32-byte key."""
    return Fernet.generate_key().decode("ascii")


def _load_key(key: str) -> Fernet:
    if not key:
        raise CryptoError("Encryption key is not configured")
    try:
        return Fernet(key)
    except (ValueError, TypeError) as exc:
        raise CryptoError(
            "Encryption key is malformed: expected url-safe base64 of 32 bytes"
        ) from exc


class CredentialVault:
    """Encrypts and decrypts credential strings with a process-wide key.

    Empty or None input passes through unchanged in both directions.

    Args:
        key: Active Fernet key (url-safe base64, 32 bytes decoded).
        previous_keys: Older keys accepted for decryption only.

    Raises:
        CryptoError: If any supplied key is missing or malformed.
    """

    def __init__(self, key: str, previous_keys: Iterable[str] = ()) -> None:
        fernets = [_load_key(key)]
        fernets.extend(_load_key(k) for k in previous_keys)
        self._fernet = MultiFernet(fernets)

    def encrypt(self, plaintext: str | None) -> str | None:
        """Encrypt a UTF-8 string into an opaque text token."""
        if not plaintext:
            return plaintext
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str | None) -> str | None:
        """Decrypt a token produced by encrypt().

        Raises:
            CryptoError: If the token is corrupt, tampered with, or was
                produced under a key this vault does not hold.
        """
        if not ciphertext:
            return ciphertext
        try:
            token = ciphertext.encode("ascii")
        except UnicodeEncodeError as exc:
            raise CryptoError("Ciphertext is not a valid token") from exc
        try:
            plaintext = self._fernet.decrypt(token)
        except InvalidToken as exc:
            logger.error("credential_decrypt_failed", token_length=len(ciphertext))
            raise CryptoError(
                "Ciphertext could not be decrypted with the configured key"
            ) from exc
        return plaintext.decode("utf-8")

    def is_valid_ciphertext(self, ciphertext: str | None) -> bool:
        """Return True if decrypt() would succeed for this token."""
        try:
            self.decrypt(ciphertext)
        except CryptoError:
            return False
        return True
