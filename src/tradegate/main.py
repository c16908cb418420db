"""Entry point for the tradegate service.

Wires all components together and serves the FastAPI application with
uvicorn's programmatic API. Components are built inside the FastAPI
lifespan so the database connection and every cached venue connector are
opened and closed on the server's event loop.

Component wiring order (in _build_components):
1. TradeDatabase (record store, schema created on connect)
2. CredentialStore / OrderStore
3. CredentialVault (fails fast on a missing or malformed key)
4. RateLimiter
5. SymbolResolver
6. ConnectorRegistry (per-principal venue connector cache)
7. OrderValidator
8. OrderManager / CredentialManager
9. TradingDesk (result-returning operation surface)
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from tradegate.api.app import create_app
from tradegate.config import AppSettings
from tradegate.credentials.manager import CredentialManager
from tradegate.data.database import TradeDatabase
from tradegate.data.store import CredentialStore, OrderStore
from tradegate.exchange.registry import ConnectorRegistry
from tradegate.exchange.symbols import SymbolResolver
from tradegate.execution.order_manager import OrderManager
from tradegate.logging import get_logger, setup_logging
from tradegate.risk.order_validator import OrderValidator
from tradegate.risk.rate_limiter import RateLimiter
from tradegate.security.vault import CredentialVault
from tradegate.service import TradingDesk


async def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all components from settings.

    Note: Opens the database. The caller owns closing it, together with the
    connector registry.
    """
    database = TradeDatabase(settings.database.path)
    await database.connect()

    credential_store = CredentialStore(database)
    order_store = OrderStore(database)

    vault = CredentialVault(
        settings.security.encryption_key.get_secret_value(),
        [key.get_secret_value() for key in settings.security.previous_keys],
    )
    rate_limiter = RateLimiter(settings.rate_limit)
    resolver = SymbolResolver()

    registry = ConnectorRegistry(credential_store, vault, settings.exchange)
    validator = OrderValidator(settings.trading, order_store, resolver)

    order_manager = OrderManager(
        order_store,
        credential_store,
        registry,
        rate_limiter,
        validator,
        resolver,
    )
    credential_manager = CredentialManager(
        credential_store,
        vault,
        registry,
        rate_limiter,
        settings.security,
    )
    desk = TradingDesk(credential_manager, order_manager, order_store)

    return {
        "database": database,
        "registry": registry,
        "rate_limiter": rate_limiter,
        "desk": desk,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build components on startup; close connectors and the database on shutdown."""
    logger = get_logger("tradegate.main")
    settings: AppSettings = app.state.settings

    components = await _build_components(settings)
    app.state.components = components
    app.state.desk = components["desk"]

    logger.info(
        "lifespan_started",
        sandbox=settings.exchange.sandbox_mode,
        venues=components["registry"].supported_venues,
        database=settings.database.path,
    )

    try:
        yield
    finally:
        await components["registry"].close()
        await components["database"].close()
        logger.info("tradegate_stopped")


async def run() -> None:
    """Load settings, set up logging and serve the HTTP API."""
    # 1. Load settings
    settings = AppSettings()

    # 2. Setup logging
    setup_logging(settings.log_level)
    logger = get_logger("tradegate.main")

    if not settings.api.enabled:
        logger.warning("api_disabled", reason="API_ENABLED=false, nothing to serve")
        return

    app = create_app(lifespan=lifespan)
    app.state.settings = settings

    logger.info(
        "starting_api",
        host=settings.api.host,
        port=settings.api.port,
        sandbox=settings.exchange.sandbox_mode,
    )

    config = uvicorn.Config(
        app,
        host=settings.api.host,
        port=settings.api.port,
        log_level="warning",  # Suppress uvicorn access logs
    )
    server = uvicorn.Server(config)
    await server.serve()


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
