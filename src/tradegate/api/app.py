"""FastAPI application factory for the trading HTTP surface."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from tradegate.api.routes import credentials, markets, orders


def create_app(lifespan: Any = None, desk: Any = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic.
        desk: TradingDesk the routes delegate to. main.py sets it from the
              lifespan when not given here; tests pass a stub.

    Returns:
        Configured FastAPI application with credential, order and market routes.
    """
    app = FastAPI(
        title="tradegate",
        lifespan=lifespan,
    )

    # Route handlers read the desk from app state
    app.state.desk = desk

    app.include_router(credentials.router, prefix="/credentials")
    app.include_router(orders.router, prefix="/orders")
    app.include_router(markets.router)

    @app.get("/health")
    async def health() -> dict:
        return {"ok": True}

    return app
