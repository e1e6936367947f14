"""Token and introspection endpoints.

The raw form body is forwarded to the decision engine together with the
client credentials; successful responses are passed through verbatim.
"""

import base64
import binascii
import logging
from typing import Optional

from fastapi import APIRouter, Request
from starlette.datastructures import FormData

from oauth.models import ADEError, StandardIntrospectionAction, TokenAction, UnexpectedActionError
from oauth.responses import BODY_ENCODING_DESCRIPTION, NO_STORE_HEADERS, oauth_error, passthrough, server_error

logger = logging.getLogger(__name__)

router = APIRouter(tags=["token"])


def extract_client_credentials(authorization: Optional[str], form: FormData) -> tuple:
    """Client credentials from HTTP Basic, falling back to the form fields.

    Returns (client_id, client_secret, used_basic).
    """
    if authorization and authorization[:6].lower() == "basic ":
        try:
            decoded = base64.b64decode(authorization[6:].strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            logger.warning(f"[TOKEN] Failed to parse Basic credentials: {e}")
        else:
            client_id, _, client_secret = decoded.partition(":")
            return client_id or None, client_secret or None, True

    return form.get("client_id"), form.get("client_secret"), False


@router.post("/token")
async def token(request: Request):
    """OAuth 2.1 Token Endpoint."""
    try:
        parameters = (await request.body()).decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("[TOKEN] Rejected token request body that is not UTF-8")
        return oauth_error(400, "invalid_request", BODY_ENCODING_DESCRIPTION)
    form = await request.form()

    client_id, client_secret, used_basic = extract_client_credentials(request.headers.get("Authorization"), form)
    logger.debug(f"[TOKEN] grant_type: {form.get('grant_type')}, client_id: {client_id}")

    try:
        result = await request.app.state.ade.token(parameters, client_id, client_secret)
    except UnexpectedActionError as e:
        logger.error(f"[TOKEN] Unsupported token action: {e.action!r}")
        return server_error(f"Unsupported action: {e.action}")
    except ADEError as e:
        logger.error(f"[TOKEN] Token request failed: {e}")
        return server_error()

    action = result.action

    if action == TokenAction.INTERNAL_SERVER_ERROR:
        logger.error(f"[TOKEN] Decision engine error: {result.result_message}")
        return server_error()

    if action == TokenAction.INVALID_CLIENT:
        logger.info(f"[TOKEN] Client authentication failed for {client_id}")
        headers = {"WWW-Authenticate": 'Basic realm="token"'} if used_basic else None
        return oauth_error(401, "invalid_client", result.result_message or "Client authentication failed",
                           headers=headers)

    if action == TokenAction.BAD_REQUEST:
        return oauth_error(400, "invalid_request", result.result_message or "Bad request")

    if action == TokenAction.PASSWORD:
        return oauth_error(400, "unsupported_grant_type",
                           "Resource Owner Password Credentials Grant is not supported")

    if action in (TokenAction.OK, TokenAction.TOKEN_EXCHANGE, TokenAction.JWT_BEARER):
        if not result.response_content:
            return server_error("No token response content provided")
        logger.info(f"[TOKEN] Token issued ({action.value}) for client: {client_id}")
        return passthrough(result.response_content, 200, media_type="application/json; charset=UTF-8",
                           headers=NO_STORE_HEADERS)

    logger.error(f"[TOKEN] Unhandled token action: {action!r}")
    return server_error(f"Unsupported action: {action.value}")


# ============== Introspection (RFC 7662) ==============

@router.post("/introspect")
async def introspect(request: Request):
    """Token introspection for resource servers."""
    try:
        parameters = (await request.body()).decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("[TOKEN] Rejected introspection request body that is not UTF-8")
        return oauth_error(400, "invalid_request", BODY_ENCODING_DESCRIPTION)
    form = await request.form()
    if not form.get("token"):
        logger.warning("[TOKEN] Missing token parameter in introspection request")
        return oauth_error(400, "invalid_request", "Missing token parameter")

    try:
        result = await request.app.state.ade.standard_introspect(parameters)
    except UnexpectedActionError as e:
        logger.error(f"[TOKEN] Unexpected introspection action: {e.action!r}")
        return server_error("Unexpected introspection result")
    except ADEError as e:
        logger.error(f"[TOKEN] Introspection request failed: {e}")
        return server_error("Internal server error occurred during token introspection")

    status = {
        StandardIntrospectionAction.OK: 200,
        StandardIntrospectionAction.BAD_REQUEST: 400,
        StandardIntrospectionAction.INTERNAL_SERVER_ERROR: 500,
    }[result.action]
    if not result.response_content:
        return server_error("No introspection response content provided")
    return passthrough(result.response_content, status, headers=NO_STORE_HEADERS)
