"""Read-only venue queries: balances and tickers."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from tradegate.api.responses import missing_principal, principal_id, result_response

router = APIRouter()


@router.get("/balances/{venue}")
async def get_balance(request: Request, venue: str) -> JSONResponse:
    """Available balances on a venue. Zero balances are omitted."""
    principal = principal_id(request)
    if principal is None:
        return missing_principal()
    result = await request.app.state.desk.get_balance(principal, venue)
    return result_response(result)


@router.get("/tickers/{venue}/{symbol:path}")
async def get_ticker(request: Request, venue: str, symbol: str) -> JSONResponse:
    """Current ticker. The symbol may be given as BTCUSDT, BTC-USDT or BTC/USDT."""
    principal = principal_id(request)
    if principal is None:
        return missing_principal()
    result = await request.app.state.desk.get_ticker(principal, venue, symbol)
    return result_response(result)
