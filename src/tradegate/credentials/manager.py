"""Credential attach, listing, removal, testing and rotation.

Plaintext keys are only held for the duration of one call: validated,
handed to the vault, and dropped. Every path that changes what a cached
connector was built from invalidates that connector.
"""

import re

from tradegate.config import SecuritySettings
from tradegate.data.store import CredentialStore
from tradegate.exceptions import NotFoundError, ValidationError
from tradegate.exchange.registry import ConnectorRegistry
from tradegate.exchange.venues import VENUE_CLIENTS
from tradegate.logging import get_logger
from tradegate.models import CredentialRecord, CredentialSummary
from tradegate.risk.rate_limiter import RateCategory, RateLimiter
from tradegate.security.vault import CredentialVault

logger = get_logger(__name__)

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


def check_key_format(venue: str, api_key: str, api_secret: str) -> tuple[bool, str]:
    """Check the shape of venue API keys before storing them.

    Returns:
        Tuple of (valid, reason). If valid is True, reason is "".
    """
    if venue == "binance":
        if len(api_key) != 64:
            return False, "Binance API key should be 64 characters long"
        if len(api_secret) != 64:
            return False, "Binance API secret should be 64 characters long"
    elif venue == "coinbase":
        if not _UUID_RE.match(api_key):
            return False, "Coinbase API key should be in UUID format"
    elif venue == "kraken":
        if len(api_key) < 50:
            return False, "Kraken API key should be at least 50 characters long"
    return True, ""


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class CredentialManager:
    """Manages a principal's venue credentials.

    All mutating operations and connection tests draw from the
    ``credentials`` rate category; listing does not.

    Args:
        credential_store: Credential persistence.
        vault: Encrypts secrets before they are stored.
        registry: Connector cache, invalidated on delete and rotate.
        rate_limiter: Admission gate.
        settings: Key format check toggle.
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        vault: CredentialVault,
        registry: ConnectorRegistry,
        rate_limiter: RateLimiter,
        settings: SecuritySettings | None = None,
    ) -> None:
        self._store = credential_store
        self._vault = vault
        self._registry = registry
        self._rate_limiter = rate_limiter
        self._settings = settings or SecuritySettings()

    def _validate_secrets(
        self, venue: str, api_key: str | None, api_secret: str | None, passphrase: str | None
    ) -> tuple[str, str]:
        if not api_key:
            raise ValidationError("API key is required")
        if not api_secret:
            raise ValidationError("API secret is required")
        client_cls = VENUE_CLIENTS.get(venue)
        if client_cls is not None and client_cls.requires_passphrase and not passphrase:
            raise ValidationError(f"Passphrase is required for {venue}")
        if self._settings.validate_key_format:
            valid, reason = check_key_format(venue, api_key, api_secret)
            if not valid:
                raise ValidationError(reason)
        return api_key, api_secret

    async def _owned(self, principal_id: str, credential_id: int) -> CredentialRecord:
        record = await self._store.get(credential_id, principal_id)
        if record is None:
            raise NotFoundError("API key not found")
        return record

    async def add_credential(
        self,
        principal_id: str,
        venue: str,
        api_key: str | None,
        api_secret: str | None,
        passphrase: str | None = None,
    ) -> CredentialSummary:
        """Encrypt and store a new credential for a venue.

        Raises:
            RateLimitedError: Credentials budget exhausted.
            ValidationError: Unsupported venue, missing or malformed key
                material, or an active credential already exists.
        """
        await self._rate_limiter.admit(RateCategory.CREDENTIALS, principal_id)

        venue = (venue or "").strip().lower()
        if not self._registry.is_supported(venue):
            raise ValidationError(f"Unsupported exchange: {venue}")

        passphrase = _clean(passphrase)
        api_key, api_secret = self._validate_secrets(
            venue, _clean(api_key), _clean(api_secret), passphrase
        )

        if await self._store.get_active(principal_id, venue) is not None:
            raise ValidationError(f"API key for {venue} already exists")

        record = await self._store.insert(
            CredentialRecord(
                principal_id=principal_id,
                venue=venue,
                encrypted_api_key=self._vault.encrypt(api_key) or "",
                encrypted_api_secret=self._vault.encrypt(api_secret) or "",
                encrypted_passphrase=self._vault.encrypt(passphrase),
            )
        )
        logger.info(
            "credential_added",
            principal_id=principal_id,
            venue=venue,
            credential_id=record.id,
            has_passphrase=record.has_passphrase,
        )
        return CredentialSummary.from_record(record)

    async def list_credentials(self, principal_id: str) -> list[CredentialSummary]:
        records = await self._store.list_for_principal(principal_id, active_only=True)
        return [CredentialSummary.from_record(record) for record in records]

    async def delete_credential(
        self, principal_id: str, credential_id: int, hard: bool = False
    ) -> None:
        """Deactivate (or with ``hard``, remove) a credential and drop its connector.

        Raises:
            RateLimitedError: Credentials budget exhausted.
            NotFoundError: Credential absent or owned by another principal.
        """
        await self._rate_limiter.admit(RateCategory.CREDENTIALS, principal_id)
        record = await self._owned(principal_id, credential_id)

        if hard:
            await self._store.delete(credential_id)
        else:
            await self._store.deactivate(credential_id)
        await self._registry.invalidate(principal_id, record.venue)

        logger.info(
            "credential_deleted",
            principal_id=principal_id,
            venue=record.venue,
            credential_id=credential_id,
            hard=hard,
        )

    async def test_credential(
        self, principal_id: str, credential_id: int
    ) -> tuple[bool, CredentialSummary]:
        """Run a connection test and record its outcome on the credential.

        Returns:
            Tuple of (succeeded, updated summary).

        Raises:
            RateLimitedError: Credentials budget exhausted.
            NotFoundError: Credential absent or owned by another principal.
            ValidationError: Credential is inactive.
            CryptoError: Stored ciphertext cannot be decrypted.
        """
        await self._rate_limiter.admit(RateCategory.CREDENTIALS, principal_id)
        record = await self._owned(principal_id, credential_id)
        if not record.is_active:
            raise ValidationError("API key is not active")

        ok = await self._registry.test_connection(record)
        refreshed = await self._owned(principal_id, credential_id)
        return ok, CredentialSummary.from_record(refreshed)

    async def rotate_credential(
        self,
        principal_id: str,
        credential_id: int,
        api_key: str | None,
        api_secret: str | None,
        passphrase: str | None = None,
    ) -> CredentialSummary:
        """Replace a credential's key material in place.

        The cached connector for the venue is dropped so the next request
        builds one from the new keys. The test status resets to NOT_TESTED.

        Raises:
            RateLimitedError: Credentials budget exhausted.
            NotFoundError: Credential absent or owned by another principal.
            ValidationError: Inactive credential, or missing or malformed
                key material.
        """
        await self._rate_limiter.admit(RateCategory.CREDENTIALS, principal_id)
        record = await self._owned(principal_id, credential_id)
        if not record.is_active:
            raise ValidationError("API key is not active")

        passphrase = _clean(passphrase)
        api_key, api_secret = self._validate_secrets(
            record.venue, _clean(api_key), _clean(api_secret), passphrase
        )

        await self._store.update_secrets(
            credential_id,
            self._vault.encrypt(api_key) or "",
            self._vault.encrypt(api_secret) or "",
            self._vault.encrypt(passphrase),
        )
        await self._registry.invalidate(principal_id, record.venue)
        logger.info(
            "credential_rotated",
            principal_id=principal_id,
            venue=record.venue,
            credential_id=credential_id,
        )
        return CredentialSummary.from_record(await self._owned(principal_id, credential_id))
