"""OAuth 2.0 Dynamic Client Registration proxy (RFC 7591 / RFC 7592).

Registration records live in the decision engine. Each operation here is a
stateless round trip: local precondition checks, server-side flags injected
into the metadata, then the engine's action mapped to a status code with its
response body passed through byte for byte.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Union

from fastapi import APIRouter, Request
from starlette.responses import Response

from oauth.ade import token_hint
from oauth.middleware import extract_bearer_token
from oauth.models import ADEError, RegistrationAction, UnexpectedActionError
from oauth.responses import NO_STORE_HEADERS, oauth_error, passthrough

logger = logging.getLogger(__name__)

router = APIRouter(tags=["registration"])

# Error statuses shared by get/update/delete
_MANAGEMENT_ERRORS = {
    RegistrationAction.UNAUTHORIZED: 401,
    RegistrationAction.BAD_REQUEST: 400,
    RegistrationAction.INTERNAL_SERVER_ERROR: 500,
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status_code: int, error: str, description: str, headers: dict = None) -> Response:
    return oauth_error(status_code, error, description, headers={**NO_STORE_HEADERS, **(headers or {})})


def _server_error(description: str = "Unexpected server response") -> Response:
    return _error(500, "server_error", description)


def _is_json(request: Request) -> bool:
    return "application/json" in request.headers.get("content-type", "").lower()


async def _read_metadata(request: Request) -> Union[dict, Response]:
    if not _is_json(request):
        return _error(400, "invalid_client_metadata", "Content-Type must be application/json")
    try:
        metadata = json.loads(await request.body() or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _error(400, "invalid_client_metadata", "Request body is not valid JSON")
    if not isinstance(metadata, dict):
        return _error(400, "invalid_client_metadata", "Client metadata must be a JSON object")

    scope = metadata.get("scope")
    scopes = scope.split() if isinstance(scope, str) else scope
    if isinstance(scopes, list) and any(str(s).startswith("mcp:") for s in scopes):
        metadata["is_mcp_client"] = True
    return metadata


def _registration_token(request: Request) -> Union[str, Response]:
    token = extract_bearer_token(request)
    if not token:
        return _error(
            401, "invalid_token", "Registration access token is required",
            headers={"WWW-Authenticate": 'Bearer error="invalid_token"'},
        )
    return token


def _map(result, success: RegistrationAction, success_status: int, operation: str) -> Response:
    action = result.action
    if action == success:
        if success_status == 204:
            return Response(status_code=204, headers=NO_STORE_HEADERS)
        return passthrough(result.response_content, success_status, headers=NO_STORE_HEADERS)

    status = _MANAGEMENT_ERRORS.get(action)
    if status is None:
        logger.error(f"[DCR] Unexpected {operation} action: {action!r} ({result.result_message})")
        return _server_error()

    log = logger.error if status == 500 else logger.warning
    log(f"[DCR] {operation} returned {action.value}: {result.result_message}")
    if not result.response_content:
        return _error(status, "server_error" if status == 500 else "invalid_request",
                      result.result_message or action.value)
    return passthrough(result.response_content, status, headers=NO_STORE_HEADERS)


async def _call(operation: str, coro) -> Union[object, Response]:
    try:
        return await coro
    except UnexpectedActionError as e:
        logger.error(f"[DCR] Unexpected {operation} action: {e.action!r}")
        return _server_error()
    except ADEError as e:
        logger.error(f"[DCR] {operation} failed: {e}")
        return _server_error(f"Internal server error during client {operation}")


# ============== Endpoints ==============

@router.post("/register")
async def register_client(request: Request):
    """Client registration (RFC 7591 section 3.1)."""
    metadata = await _read_metadata(request)
    if isinstance(metadata, Response):
        return metadata

    metadata.update({
        "dynamically_registered": True,
        "registration_method": "dynamic",
        "registration_timestamp": _now(),
    })

    result = await _call("registration", request.app.state.ade.register_client(metadata))
    if isinstance(result, Response):
        return result

    if result.action == RegistrationAction.CREATED:
        logger.info(f"[DCR] Client registered: {metadata.get('client_name', '<unnamed>')}")
        return passthrough(result.response_content, 201, headers=NO_STORE_HEADERS)
    if result.action in (RegistrationAction.BAD_REQUEST, RegistrationAction.INTERNAL_SERVER_ERROR):
        return _map(result, RegistrationAction.CREATED, 201, "registration")

    logger.error(f"[DCR] Unexpected registration action: {result.action!r}")
    return _server_error()


@router.get("/register/{client_id}")
async def get_client(client_id: str, request: Request):
    """Client read (RFC 7592 section 2.1)."""
    token = _registration_token(request)
    if isinstance(token, Response):
        return token

    result = await _call("retrieval", request.app.state.ade.get_registered_client(client_id, token))
    if isinstance(result, Response):
        return result
    return _map(result, RegistrationAction.OK, 200, "retrieval")


@router.put("/register/{client_id}")
async def update_client(client_id: str, request: Request):
    """Client update (RFC 7592 section 2.2)."""
    metadata = await _read_metadata(request)
    if isinstance(metadata, Response):
        return metadata
    token = _registration_token(request)
    if isinstance(token, Response):
        return token

    metadata.update({
        "dynamically_registered": True,
        "registration_method": "dynamic",
        "last_modified_timestamp": _now(),
    })

    result = await _call("update", request.app.state.ade.update_registered_client(client_id, token, metadata))
    if isinstance(result, Response):
        return result
    if result.action == RegistrationAction.UPDATED:
        logger.info(f"[DCR] Client updated: {client_id}")
    return _map(result, RegistrationAction.UPDATED, 200, "update")


@router.delete("/register/{client_id}")
async def delete_client(client_id: str, request: Request):
    """Client delete (RFC 7592 section 2.3)."""
    token = _registration_token(request)
    if isinstance(token, Response):
        return token

    logger.info(f"[DCR] Delete requested for {client_id} with token {token_hint(token)}")
    result = await _call("deletion", request.app.state.ade.delete_registered_client(client_id, token))
    if isinstance(result, Response):
        return result
    if result.action == RegistrationAction.DELETED:
        logger.info(f"[DCR] Client deleted: {client_id}")
    return _map(result, RegistrationAction.DELETED, 204, "deletion")
