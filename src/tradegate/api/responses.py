"""JSON shaping shared by the route modules."""

from __future__ import annotations

import dataclasses
from decimal import Decimal
from enum import Enum
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from tradegate.exceptions import ErrorKind
from tradegate.service import OperationResult

PRINCIPAL_HEADER = "X-Principal-Id"

ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.INVALID_SYMBOL: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.NO_CREDENTIAL: 409,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.EXCHANGE: 502,
    ErrorKind.CRYPTO: 500,
}


def to_jsonable(obj: Any) -> Any:
    """Recursively convert dataclasses, Decimals and enums for JSON serialization."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        obj = {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(item) for item in obj]
    return obj


def principal_id(request: Request) -> str | None:
    value = request.headers.get(PRINCIPAL_HEADER, "").strip()
    return value or None


def missing_principal() -> JSONResponse:
    return error_response(
        401, "UNAUTHENTICATED", f"Missing {PRINCIPAL_HEADER} header"
    )


def error_response(status_code: int, kind: str, reason: str) -> JSONResponse:
    return JSONResponse(
        content={"ok": False, "error": {"kind": kind, "reason": reason}},
        status_code=status_code,
    )


def result_response(
    result: OperationResult, data: Any = None, status_code: int = 200
) -> JSONResponse:
    """Render an OperationResult.

    Args:
        result: Desk operation outcome.
        data: Payload to send on success instead of ``result.value``.
        status_code: Status for the success case.
    """
    if result.ok:
        payload = result.value if data is None else data
        return JSONResponse(
            content={"ok": True, "data": to_jsonable(payload)},
            status_code=status_code,
        )

    assert result.error is not None
    content: dict[str, Any] = {
        "ok": False,
        "error": {"kind": result.error.kind.value, "reason": result.error.reason},
    }
    if result.recorded and result.value is not None:
        content["order"] = to_jsonable(result.value)
    return JSONResponse(content=content, status_code=ERROR_STATUS[result.error.kind])


async def read_json_body(request: Request) -> dict | None:
    """Return the request's JSON object body, or None if it is not one."""
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None
