"""Credential management endpoints."""

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
from tradegate.logging import get_logger
from tradegate.service import TradingDesk

log = get_logger(__name__)

router = APIRouter()


def _desk(request: Request) -> TradingDesk:
    return request.app.state.desk


@router.post("")
async def add_credential(request: Request) -> JSONResponse:
    """Attach venue API keys.

    Expects JSON body with: venue, api_key, api_secret, and an optional
    passphrase. The response carries the credential summary, never the keys.
    """
    principal = principal_id(request)
    if principal is None:
        return missing_principal()

    body = await read_json_body(request)
    if body is None:
        return error_response(400, "VALIDATION", "Invalid JSON body")
    for field in ("venue", "api_key", "api_secret"):
        if field not in body:
            return error_response(400, "VALIDATION", f"Missing required field: {field}")

    result = await _desk(request).add_credential(
        principal,
        str(body["venue"]),
        body["api_key"],
        body["api_secret"],
        body.get("passphrase"),
    )
    return result_response(result, status_code=201)


@router.get("")
async def list_credentials(request: Request) -> JSONResponse:
    principal = principal_id(request)
    if principal is None:
        return missing_principal()
    return result_response(await _desk(request).list_credentials(principal))


@router.delete("/{credential_id}")
async def delete_credential(
    request: Request, credential_id: int, hard: bool = False
) -> JSONResponse:
    """Deactivate a credential, or remove it entirely with ?hard=true."""
    principal = principal_id(request)
    if principal is None:
        return missing_principal()
    result = await _desk(request).delete_credential(principal, credential_id, hard)
    return result_response(result, data={"id": credential_id, "deleted": True})


@router.post("/{credential_id}/test")
async def test_credential(request: Request, credential_id: int) -> JSONResponse:
    principal = principal_id(request)
    if principal is None:
        return missing_principal()

    result = await _desk(request).test_credential(principal, credential_id)
    if not result.ok:
        return result_response(result)
    succeeded, summary = result.value
    log.info(
        "credential_test_requested",
        principal_id=principal,
        credential_id=credential_id,
        succeeded=succeeded,
    )
    return result_response(result, data={"success": succeeded, "credential": summary})


@router.put("/{credential_id}")
async def rotate_credential(request: Request, credential_id: int) -> JSONResponse:
    """Replace a credential's keys. Same body as attach, without venue."""
    principal = principal_id(request)
    if principal is None:
        return missing_principal()

    body = await read_json_body(request)
    if body is None:
        return error_response(400, "VALIDATION", "Invalid JSON body")
    for field in ("api_key", "api_secret"):
        if field not in body:
            return error_response(400, "VALIDATION", f"Missing required field: {field}")

    result = await _desk(request).rotate_credential(
        principal,
        credential_id,
        body["api_key"],
        body["api_secret"],
        body.get("passphrase"),
    )
    return result_response(result)
