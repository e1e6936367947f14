"""OAuth middleware for protected resource endpoints.

Validates Bearer tokens through the decision engine's introspection call and
enforces access control (RFC 6750):
- Tokens are only accepted from the Authorization header (OAuth 2.1)
- Introspection results are never cached; tokens may be revoked between calls
- A token whose resource list does not cover this resource is rejected even
  when introspection says OK
"""

import logging
import re
from typing import Optional, Union

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from oauth.ade import token_hint
from oauth.models import ADEError, IntrospectionAction, OAuthContext, UnexpectedActionError
from oauth.responses import base_url, bearer_challenge, oauth_error, server_error

logger = logging.getLogger(__name__)

_BEARER_RE = re.compile(r"^Bearer\s+(\S+)\s*$", re.IGNORECASE)

INVALID_TOKEN_DESCRIPTION = "The access token provided is expired, revoked, malformed, or invalid"
INSUFFICIENT_SCOPE_DESCRIPTION = "The request requires higher privileges than provided"
RESOURCE_MISMATCH_DESCRIPTION = "Access token does not include required resource"


def extract_bearer_token(request: Request) -> Optional[str]:
    """Token from ``Authorization: Bearer``; query and body tokens are ignored."""
    match = _BEARER_RE.match(request.headers.get("Authorization", ""))
    return match.group(1) if match else None


def is_secure_transport(request: Request) -> bool:
    if request.url.scheme == "https":
        return True
    return request.headers.get("x-forwarded-proto", "").lower() == "https"


def _covers_resource(token_resources: list, resource_url: str) -> bool:
    wanted = resource_url.rstrip("/")
    return any(str(r).rstrip("/") == wanted for r in token_resources)


class BearerGate:
    """Runs the bearer token checks for one protected resource."""

    def __init__(self, ade, config, required_scopes: Optional[list] = None, resource: Optional[str] = None):
        self.ade = ade
        self.config = config
        self.required_scopes = list(required_scopes or [])
        self.resource = (resource or config.resource_path).strip("/")

    def _challenge(self, base: str, error: str, description: str, scope: Optional[list] = None) -> dict:
        metadata_url = f"{base}/.well-known/oauth-protected-resource/{self.resource}"
        return {"WWW-Authenticate": bearer_challenge(base, error, description, scope, metadata_url)}

    async def check(self, request: Request) -> Union[OAuthContext, Response]:
        """Return the validated context, or the error response to send."""
        if self.config.require_https and not is_secure_transport(request):
            logger.info("[AUTH] Request rejected: insecure transport")
            return oauth_error(400, "invalid_request", "HTTPS is required for OAuth protected resources")

        base = base_url(request, self.config)
        token = extract_bearer_token(request)
        if not token:
            logger.info("[AUTH] Request rejected: no Bearer token")
            return oauth_error(
                401, "invalid_request", "Access token is required",
                headers=self._challenge(base, "invalid_request", "Access token is required"),
            )

        try:
            result = await self.ade.introspect(token, self.required_scopes)
        except UnexpectedActionError as e:
            logger.error(f"[AUTH] Unexpected introspection action: {e.action!r}")
            return server_error("Unexpected token validation result")
        except ADEError as e:
            logger.error(f"[AUTH] Introspection failed: {e}")
            return server_error("Token validation failed")

        action = result.action
        if action == IntrospectionAction.INTERNAL_SERVER_ERROR:
            logger.error(f"[AUTH] Decision engine introspection error: {result.result_message}")
            return server_error("Token validation failed")

        if action == IntrospectionAction.BAD_REQUEST:
            return oauth_error(400, "invalid_request", result.result_message or "Invalid token request")

        if action == IntrospectionAction.UNAUTHORIZED:
            logger.info(f"[AUTH] Request rejected: invalid token {token_hint(token)}")
            return oauth_error(
                401, "invalid_token", INVALID_TOKEN_DESCRIPTION,
                headers=self._challenge(base, "invalid_token", INVALID_TOKEN_DESCRIPTION),
            )

        if action == IntrospectionAction.FORBIDDEN:
            logger.info(f"[AUTH] Request rejected: insufficient scope, required {self.required_scopes}")
            return oauth_error(
                403, "insufficient_scope",
                f"{INSUFFICIENT_SCOPE_DESCRIPTION}. Required scopes: {', '.join(self.required_scopes)}",
                headers=self._challenge(
                    base, "insufficient_scope", INSUFFICIENT_SCOPE_DESCRIPTION, scope=self.required_scopes,
                ),
            )

        if action != IntrospectionAction.OK:
            logger.error(f"[AUTH] Unhandled introspection action: {action!r}")
            return server_error("Unexpected token validation result")

        resource_url = f"{base}/{self.resource}"
        # Only the opt-out lets a token with no resource list through
        unbound_allowed = not result.resources and not self.config.resource_indicator_required
        if not unbound_allowed and not _covers_resource(result.resources, resource_url):
            logger.info(f"[AUTH] Request rejected: token resources {result.resources} exclude {resource_url}")
            return oauth_error(
                401, "invalid_token", RESOURCE_MISMATCH_DESCRIPTION,
                headers=self._challenge(base, "invalid_token", RESOURCE_MISMATCH_DESCRIPTION),
            )

        logger.info(f"[AUTH] Request authorized: subject={result.subject} client={result.client_id}")
        return OAuthContext(
            token=token,
            subject=result.subject or "",
            client_id=result.client_id or "",
            scopes=result.scopes,
            expires_at=result.expires_at,
            resources=result.resources,
            authorization_details=result.authorization_details,
        )


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """Middleware to validate OAuth Bearer tokens for a protected resource."""

    def __init__(self, app, ade, config, required_scopes: Optional[list] = None, resource: Optional[str] = None):
        super().__init__(app)
        self.gate = BearerGate(ade, config, required_scopes, resource)

    async def dispatch(self, request: Request, call_next):
        outcome = await self.gate.check(request)
        if isinstance(outcome, Response):
            return outcome
        request.state.oauth = outcome
        return await call_next(request)


class RequireScopesMiddleware(BaseHTTPMiddleware):
    """Scope gate for requests already authenticated by ``BearerAuthMiddleware``."""

    def __init__(self, app, scopes: list):
        super().__init__(app)
        self.scopes = list(scopes)

    async def dispatch(self, request: Request, call_next):
        context: Optional[OAuthContext] = getattr(request.state, "oauth", None)
        if context is None:
            return JSONResponse(
                {"error": "invalid_token", "error_description": "No OAuth authentication found"},
                status_code=401,
            )

        missing = context.missing_scopes(self.scopes)
        if missing:
            logger.info(f"[AUTH] Scope check failed: missing {missing}")
            return JSONResponse(
                {
                    "error": "insufficient_scope",
                    "error_description": (
                        f"Required scopes: {', '.join(self.scopes)}. "
                        f"Provided scopes: {', '.join(context.scopes)}"
                    ),
                },
                status_code=403,
            )
        return await call_next(request)


def require_scopes(scopes: list) -> Middleware:
    """Middleware entry enforcing ``scopes`` after bearer authentication."""
    return Middleware(RequireScopesMiddleware, scopes=scopes)


def bearer_auth(ade, config, required_scopes: Optional[list] = None, resource: Optional[str] = None) -> Middleware:
    return Middleware(BearerAuthMiddleware, ade=ade, config=config, required_scopes=required_scopes, resource=resource)


class AnonymousAccessMiddleware(BaseHTTPMiddleware):
    """Attaches a fixed context when the resource runs without OAuth."""

    def __init__(self, app, scopes: list):
        super().__init__(app)
        self.scopes = list(scopes)

    async def dispatch(self, request: Request, call_next):
        request.state.oauth = OAuthContext(token="", subject="anonymous", client_id="", scopes=self.scopes)
        return await call_next(request)


def anonymous_access(scopes: list) -> Middleware:
    return Middleware(AnonymousAccessMiddleware, scopes=scopes)
