"""Authorization endpoint and the consent flow that follows it.

- /authorize: forwards the raw request parameters to the decision engine and
  turns the returned action into an HTTP response
- INTERACTION: the ticket, client and scopes are written to the session and
  persisted before the browser is sent to the consent page (or to login first)
- /authorize/consent: renders the pending request for the signed-in user
- /authorize/decision: claims the pending ticket from the store, clearing it,
  then resolves it with issue (approve) or fail (deny)

A ticket is single-use: only one decision can claim it, and a replayed or
concurrent second decision is rejected as missing session data.
"""

import dataclasses
import json
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse
from starlette.responses import Response

from oauth.ade import token_hint
from oauth.models import (
    ADEError,
    ActionResult,
    AuthorizationAction,
    AuthorizationOutcome,
    ClientSummary,
    FailReason,
    ResultAction,
    UnexpectedActionError,
)
from oauth.responses import (
    BODY_ENCODING_DESCRIPTION,
    NO_STORE_HEADERS,
    form,
    oauth_error,
    passthrough,
    redirect,
    server_error,
)
from oauth.stores import attach_session_cookie, load_session
from oauth.templates import render_consent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["authorization"])

CONSENT_PATH = "/authorize/consent"
LOGIN_PATH = "/auth/login"


def consent_url(ticket: str) -> str:
    return f"{CONSENT_PATH}?{urlencode({'ticket': ticket})}"


def login_url(return_to: str) -> str:
    return f"{LOGIN_PATH}?{urlencode({'return_to': return_to})}"


# ============== Authorization Endpoint ==============

@router.api_route("/authorize", methods=["GET", "POST"])
async def authorize(request: Request):
    """OAuth 2.1 Authorization Endpoint."""
    if request.method == "GET":
        parameters = request.url.query
    else:
        try:
            parameters = (await request.body()).decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("[AUTHZ] Rejected request body that is not UTF-8")
            return oauth_error(400, "invalid_request", BODY_ENCODING_DESCRIPTION)

    try:
        outcome = await request.app.state.ade.authorize(parameters)
    except UnexpectedActionError as e:
        logger.error(f"[AUTHZ] Unsupported authorization action: {e.action!r}")
        return server_error(f"Unsupported action: {e.action}")
    except ADEError as e:
        logger.error(f"[AUTHZ] Authorization request failed: {e}")
        return server_error()

    action = outcome.action
    logger.info(f"[AUTHZ] Decision engine action: {action.value}")

    if action == AuthorizationAction.INTERNAL_SERVER_ERROR:
        logger.error(f"[AUTHZ] Decision engine error: {outcome.result_message}")
        return server_error()

    if action == AuthorizationAction.BAD_REQUEST:
        return oauth_error(400, "invalid_request", outcome.result_message or "Bad request")

    if action == AuthorizationAction.LOCATION:
        if not outcome.response_content:
            return server_error("No redirect location provided")
        return redirect(outcome.response_content)

    if action == AuthorizationAction.FORM:
        if not outcome.response_content:
            return server_error("No form content provided")
        return form(outcome.response_content)

    if action == AuthorizationAction.NO_INTERACTION:
        return oauth_error(400, "interaction_required", "User interaction is required")

    if action == AuthorizationAction.INTERACTION:
        return await begin_consent(request, outcome)

    logger.error(f"[AUTHZ] Unhandled authorization action: {action!r}")
    return server_error(f"Unsupported action: {action.value}")


async def _client_with_details_types(ade, client: ClientSummary) -> ClientSummary:
    """Add the client's authorization details types, which the authorization
    response does not carry. Failure leaves the summary unchanged."""
    if not client.client_id:
        return client
    try:
        details = await ade.get_client(client.client_id)
    except ADEError as e:
        logger.warning(f"[AUTHZ] Could not fetch client details for {client.client_id}: {e}")
        return client

    types = details.get("authorizationDetailsTypes")
    if types:
        return dataclasses.replace(client, authorization_details_types=tuple(types))
    return client


async def begin_consent(request: Request, outcome: AuthorizationOutcome) -> Response:
    """NoPending -> PendingConsent."""
    if not outcome.ticket:
        return server_error("No ticket provided for interaction")

    ade = request.app.state.ade
    client = outcome.client or ClientSummary(client_id="")
    client = await _client_with_details_types(ade, client)

    session = await load_session(request)
    session.begin_pending(outcome.ticket, client, outcome.scopes)
    try:
        await request.app.state.sessions.persist(session)
    except Exception as e:
        logger.error(f"[AUTHZ] Session save error: {e}")
        return server_error("Session management failed")

    target = consent_url(outcome.ticket)
    if session.authenticated_user is None:
        logger.info("[AUTHZ] User not authenticated, redirecting to login")
        target = login_url(target)
    else:
        logger.info("[AUTHZ] User authenticated, redirecting to consent")

    response = redirect(target)
    attach_session_cookie(response, session, request.app.state.config)
    return response


# ============== Consent ==============

@router.get(CONSENT_PATH)
async def consent_page(request: Request, ticket: str = ""):
    """Show the pending authorization request for approval."""
    session = await load_session(request)

    if not session.has_pending:
        logger.warning("[CONSENT] Missing authorization session data")
        return oauth_error(400, "invalid_request", "Missing authorization session data")

    if not session.matches_ticket(ticket):
        logger.warning(f"[CONSENT] Ticket mismatch for {token_hint(ticket)}")
        return oauth_error(400, "invalid_request", "Ticket does not match the pending authorization request")

    if session.authenticated_user is None:
        return redirect(login_url(f"{request.url.path}?{request.url.query}"))

    html = render_consent(
        ticket=session.pending_ticket,
        client=session.pending_client,
        scopes=session.pending_scopes,
        username=session.authenticated_user.username,
    )
    return HTMLResponse(html, headers=NO_STORE_HEADERS)


def parse_authorization_details(raw: Optional[str]) -> Optional[list]:
    """RAR elements posted by the consent form; unusable input is ignored."""
    if not raw or not raw.strip():
        return None
    try:
        details = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"[CONSENT] Failed to parse authorization details JSON: {e}")
        return None
    if not isinstance(details, list) or not all(isinstance(d, dict) for d in details):
        logger.error("[CONSENT] Authorization details must be a list of objects")
        return None
    return details


def result_response(result: ActionResult) -> Response:
    """Map an issue/fail action to the HTTP response for the client."""
    action = result.action
    content = result.response_content

    if action == ResultAction.LOCATION:
        if not content:
            return server_error("No redirect content provided", headers=NO_STORE_HEADERS)
        return redirect(content, headers=NO_STORE_HEADERS)

    if action == ResultAction.FORM:
        if not content:
            return server_error("No form content provided", headers=NO_STORE_HEADERS)
        return form(content, headers=NO_STORE_HEADERS)

    if action == ResultAction.BAD_REQUEST:
        logger.warning(f"[CONSENT] Bad request resolving ticket: {result.result_message}")
        if content:
            return passthrough(content, 400, headers=NO_STORE_HEADERS)
        return oauth_error(400, "invalid_request", result.result_message or "Bad request", headers=NO_STORE_HEADERS)

    if action == ResultAction.INTERNAL_SERVER_ERROR:
        logger.error(f"[CONSENT] Decision engine error resolving ticket: {result.result_message}")
        if content:
            return passthrough(content, 500, headers=NO_STORE_HEADERS)
        return server_error(headers=NO_STORE_HEADERS)

    logger.error(f"[CONSENT] Unhandled issue/fail action: {action!r}")
    return server_error("Failed to generate authorization response", headers=NO_STORE_HEADERS)


async def _resolve_ticket(ade, ticket: str, approved: bool, subject: str, details: Optional[list]) -> Response:
    try:
        if approved:
            result = await ade.issue(ticket, subject=subject, authorization_details=details)
        else:
            result = await ade.fail(ticket, reason=FailReason.DENIED,
                                    description="User denied the authorization request")
    except UnexpectedActionError as e:
        logger.error(f"[CONSENT] Unsupported action resolving ticket: {e.action!r}")
        return server_error(f"Unsupported action: {e.action}", headers=NO_STORE_HEADERS)
    except ADEError as e:
        logger.error(f"[CONSENT] Resolving ticket failed: {e}")
        return server_error(headers=NO_STORE_HEADERS)
    return result_response(result)


@router.post("/authorize/decision")
async def decision(request: Request):
    """PendingConsent -> Resolved."""
    form_data = await request.form()
    ticket = form_data.get("ticket")
    authorized = form_data.get("authorized")

    session = await load_session(request)
    user = session.authenticated_user

    claimed = None
    if ticket and authorized in ("true", "false") and user is not None:
        try:
            claimed = await request.app.state.sessions.take_pending(session.id, ticket)
        except Exception as e:
            logger.error(f"[CONSENT] Session claim error: {e}")
            return server_error("Session management failed", headers=NO_STORE_HEADERS)

    if claimed is None:
        logger.warning(
            f"[CONSENT] Rejected decision: ticket={bool(ticket)} authorized={authorized!r} "
            f"user={user is not None} pending={session.has_pending}"
        )
        return oauth_error(400, "invalid_request", "Missing required parameters or session data",
                           headers=NO_STORE_HEADERS)

    # The stored pending fields are already cleared; a replay now gets 400
    session.clear_pending()

    approved = authorized == "true"
    details = parse_authorization_details(form_data.get("authorization_details")) if approved else None
    logger.info(f"[CONSENT] User {user.username} {'approved' if approved else 'denied'} ticket {token_hint(ticket)}")

    response = await _resolve_ticket(request.app.state.ade, ticket, approved, user.id, details)
    attach_session_cookie(response, session, request.app.state.config)
    return response
