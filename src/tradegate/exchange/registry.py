"""Per-(principal, venue) connector cache.

Builds venue clients on first use from the principal's active credential
(decrypted through the vault) and keeps them for the process lifetime.
Construction happens at most once per key even when many requests arrive
cold at the same time. Entries leave the cache only through explicit
invalidation; there is no TTL.
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import TypeVar

import ccxt

from tradegate.config import ExchangeSettings
from tradegate.data.store import CredentialStore
from tradegate.exceptions import ExchangeError, NoCredentialError, NotFoundError
from tradegate.exchange.client import ExchangeClient
from tradegate.exchange.venues import VENUE_CLIENTS
from tradegate.locks import KeyedLocks
from tradegate.logging import get_logger
from tradegate.models import ConnectionTestStatus, CredentialRecord, VenueCredentials
from tradegate.security.vault import CredentialVault

logger = get_logger(__name__)

T = TypeVar("T")

# (credentials, sandbox, timeout_seconds) -> client
ClientFactory = Callable[[VenueCredentials, bool, float], ExchangeClient]


class ConnectorRegistry:
    """Builds, caches and invalidates venue connectors.

    Args:
        credential_store: Source of active credential records.
        vault: Decrypts credential ciphertext on cache miss.
        settings: Sandbox flag, timeouts, probe toggle.
        client_factories: Venue name to client constructor. Defaults to
            the ccxt-backed VENUE_CLIENTS table.
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        vault: CredentialVault,
        settings: ExchangeSettings | None = None,
        client_factories: Mapping[str, ClientFactory] | None = None,
    ) -> None:
        self._credential_store = credential_store
        self._vault = vault
        self._settings = settings or ExchangeSettings()
        self._factories: dict[str, ClientFactory] = dict(
            VENUE_CLIENTS if client_factories is None else client_factories
        )
        self._connectors: dict[tuple[str, str], ExchangeClient] = {}
        self._locks = KeyedLocks()

    @property
    def supported_venues(self) -> list[str]:
        return sorted(self._factories)

    def is_supported(self, venue: str) -> bool:
        return venue.lower() in self._factories

    def timeout_for(self, venue: str) -> float:
        return self._settings.timeout_for(venue)

    def cached_keys(self) -> list[tuple[str, str]]:
        """Return the (principal_id, venue) keys currently cached."""
        return list(self._connectors)

    async def get_connector(self, principal_id: str, venue: str) -> ExchangeClient:
        """Return the cached connector for (principal, venue), building it on miss.

        Raises:
            NotFoundError: If the venue is not supported.
            NoCredentialError: If the principal has no active credential.
            CryptoError: If the stored credential cannot be decrypted.
        """
        venue = venue.lower()
        if venue not in self._factories:
            raise NotFoundError(f"Unsupported exchange: {venue}")

        key = (principal_id, venue)
        client = self._connectors.get(key)
        if client is not None:
            return client

        async with self._locks.hold(key):
            # Another request may have finished building while we waited
            client = self._connectors.get(key)
            if client is not None:
                return client

            client = await self._build(principal_id, venue)
            self._connectors[key] = client
            logger.info("connector_cached", principal_id=principal_id, venue=venue)
            return client

    async def _build(self, principal_id: str, venue: str) -> ExchangeClient:
        credential = await self._credential_store.get_active(principal_id, venue)
        if credential is None:
            raise NoCredentialError(f"No active API key found for exchange: {venue}")

        credentials = VenueCredentials(
            api_key=self._vault.decrypt(credential.encrypted_api_key) or "",
            api_secret=self._vault.decrypt(credential.encrypted_api_secret) or "",
            passphrase=self._vault.decrypt(credential.encrypted_passphrase),
        )
        client = self._factories[venue](
            credentials, self._settings.sandbox_mode, self.timeout_for(venue)
        )
        logger.info(
            "connector_built",
            principal_id=principal_id,
            venue=venue,
            sandbox=self._settings.sandbox_mode,
        )

        if self._settings.probe_on_connect:
            await self._probe(client, venue)
        return client

    async def _probe(self, client: ExchangeClient, venue: str) -> None:
        """Connect and fetch balances once. Venue failures are logged, not raised."""
        timeout = self.timeout_for(venue)
        try:
            await asyncio.wait_for(client.connect(), timeout)
            await asyncio.wait_for(client.fetch_balances(), timeout)
        except (TimeoutError, ccxt.BaseError, OSError) as exc:
            logger.warning("connection_probe_failed", venue=venue, error=str(exc))

    async def call(
        self,
        venue: str,
        operation: str,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        """Run one outbound venue call with the venue timeout.

        At most one attempt is made; there is no retry.

        Raises:
            ExchangeError: On timeout, transport failure, or a venue-reported
                error.
        """
        timeout = self.timeout_for(venue)
        try:
            return await asyncio.wait_for(call(), timeout)
        except TimeoutError as exc:
            logger.error("venue_call_timeout", venue=venue, operation=operation, timeout=timeout)
            raise ExchangeError(
                f"{operation} on {venue} timed out after {timeout}s",
                venue=venue,
                operation=operation,
            ) from exc
        except (ccxt.BaseError, OSError) as exc:
            logger.error("venue_call_failed", venue=venue, operation=operation, error=str(exc))
            raise ExchangeError(
                f"{operation} on {venue} failed: {exc}",
                venue=venue,
                operation=operation,
            ) from exc

    async def test_connection(self, credential: CredentialRecord) -> bool:
        """Check a credential against its venue and record the outcome.

        The test status and timestamp are written whatever the result.
        A successful test also refreshes the credential's last-used time.

        Returns:
            True if the balance endpoint answered, False otherwise.

        Raises:
            CryptoError: If the credential cannot be decrypted (recorded as
                FAILED first).
        """
        assert credential.id is not None
        status = ConnectionTestStatus.FAILED
        try:
            client = await self.get_connector(credential.principal_id, credential.venue)
            await self.call(credential.venue, "fetch_balance", client.fetch_balances)
            status = ConnectionTestStatus.SUCCESS
        except (ExchangeError, NoCredentialError) as exc:
            logger.warning(
                "connection_test_failed",
                credential_id=credential.id,
                venue=credential.venue,
                error=exc.reason,
            )
        finally:
            credential.test_status = status
            credential.tested_at = await self._credential_store.record_test_result(
                credential.id, status
            )

        if status is not ConnectionTestStatus.SUCCESS:
            return False

        await self._credential_store.touch_last_used(credential.id)
        logger.info("connection_test_succeeded", credential_id=credential.id, venue=credential.venue)
        return True

    async def invalidate(self, principal_id: str, venue: str | None = None) -> int:
        """Drop and close cached connectors for a principal.

        Takes the same per-key lock as get_connector, so a build in flight
        for an affected key finishes first and its connector is dropped too.

        Args:
            principal_id: Whose connectors to drop.
            venue: Restrict to one venue; all of the principal's venues if None.

        Returns:
            Number of connectors dropped.
        """
        venues = [venue.lower()] if venue is not None else sorted(self._factories)
        clients: list[ExchangeClient] = []
        for name in venues:
            key = (principal_id, name)
            async with self._locks.hold(key):
                client = self._connectors.pop(key, None)
            if client is not None:
                clients.append(client)
        await self._close_all(clients)
        logger.info(
            "connectors_invalidated", principal_id=principal_id, venue=venue, count=len(clients)
        )
        return len(clients)

    async def invalidate_all(self) -> int:
        """Drop and close every cached connector."""
        clients: list[ExchangeClient] = []
        for key in list(self._connectors):
            async with self._locks.hold(key):
                client = self._connectors.pop(key, None)
            if client is not None:
                clients.append(client)
        await self._close_all(clients)
        logger.info("connector_cache_cleared", count=len(clients))
        return len(clients)

    async def close(self) -> None:
        await self.invalidate_all()

    async def _close_all(self, clients: list[ExchangeClient]) -> None:
        results = await asyncio.gather(
            *(client.close() for client in clients), return_exceptions=True
        )
        for client, result in zip(clients, results):
            if isinstance(result, Exception):
                logger.warning(
                    "connector_close_failed", venue=client.venue, error=str(result)
                )
