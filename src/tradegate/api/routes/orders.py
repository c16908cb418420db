"""Order placement, cancellation and history endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from tradegate.api.responses import (
    error_response,
    missing_principal,
    principal_id,
    read_json_body,
    result_response,
)
from tradegate.models import OrderStatus
from tradegate.service import TradingDesk

router = APIRouter()


def _desk(request: Request) -> TradingDesk:
    return request.app.state.desk


@router.post("")
async def create_order(request: Request) -> JSONResponse:
    """Place an order.

    Expects JSON body with: venue, symbol, order_type, side, amount, and
    price for limit orders. Amount and price are best sent as strings to
    keep their exact decimal value.

    A failure after the order was recorded returns the FAILED record under
    "order" next to the error.
    """
    principal = principal_id(request)
    if principal is None:
        return missing_principal()

    body = await read_json_body(request)
    if body is None:
        return error_response(400, "VALIDATION", "Invalid JSON body")
    for field in ("venue", "symbol", "order_type", "side", "amount"):
        if field not in body:
            return error_response(400, "VALIDATION", f"Missing required field: {field}")

    result = await _desk(request).create_order(
        principal,
        str(body["venue"]),
        str(body["symbol"]),
        str(body["order_type"]),
        str(body["side"]),
        body["amount"],
        body.get("price"),
    )
    return result_response(result, status_code=201)


@router.get("")
async def list_orders(
    request: Request, venue: str | None = None, status: str | None = None
) -> JSONResponse:
    """Order history, newest first, optionally filtered by venue and status."""
    principal = principal_id(request)
    if principal is None:
        return missing_principal()

    status_filter = None
    if status:
        try:
            status_filter = OrderStatus(status.upper())
        except ValueError:
            return error_response(400, "VALIDATION", f"Unknown order status: {status}")

    result = await _desk(request).list_orders(principal, venue, status_filter)
    return result_response(result)


@router.get("/stats")
async def get_trading_stats(request: Request) -> JSONResponse:
    principal = principal_id(request)
    if principal is None:
        return missing_principal()
    return result_response(await _desk(request).get_trading_stats(principal))


@router.get("/{order_id}")
async def get_order(request: Request, order_id: int) -> JSONResponse:
    principal = principal_id(request)
    if principal is None:
        return missing_principal()
    return result_response(await _desk(request).get_order(principal, order_id))


@router.delete("/{order_id}")
async def cancel_order(request: Request, order_id: int) -> JSONResponse:
    principal = principal_id(request)
    if principal is None:
        return missing_principal()
    return result_response(await _desk(request).cancel_order(principal, order_id))
