"""Response helpers shared by the OAuth endpoints."""

from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.responses import HTMLResponse, RedirectResponse, Response

NO_STORE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}
DISCOVERY_HEADERS = {"Cache-Control": "public, max-age=3600", "Access-Control-Allow-Origin": "*"}

BODY_ENCODING_DESCRIPTION = "Request body must be UTF-8 encoded"


def oauth_error(status_code: int, error: str, description: str, headers: Optional[dict] = None) -> JSONResponse:
    """JSON error body in the RFC 6749 section 5.2 shape."""
    return JSONResponse(
        {"error": error, "error_description": description},
        status_code=status_code,
        headers=headers,
    )


def server_error(description: str = "Internal server error occurred", headers: Optional[dict] = None) -> JSONResponse:
    return oauth_error(500, "server_error", description, headers=headers)


def passthrough(content: Optional[str], status_code: int, media_type: str = "application/json",
                headers: Optional[dict] = None) -> Response:
    """Send an ADE-generated body as-is, never parsed or re-encoded."""
    return Response(content=content or "", status_code=status_code, media_type=media_type, headers=headers)


def redirect(location: str, headers: Optional[dict] = None) -> RedirectResponse:
    return RedirectResponse(url=location, status_code=302, headers=headers)


def form(content: str, headers: Optional[dict] = None) -> HTMLResponse:
    response = HTMLResponse(content=content, status_code=200, headers=headers)
    response.headers["Content-Type"] = "text/html; charset=UTF-8"
    return response


def base_url(request: Request, config) -> str:
    """Public base URL: configured SERVER_URL or derived from the request."""
    if config.server_url:
        return config.server_url
    proto = request.headers.get("x-forwarded-proto", request.url.scheme)
    host = request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc
    return f"{proto}://{host}"


def bearer_challenge(
    realm: str,
    error: str,
    description: str,
    scope: Optional[list] = None,
    resource_metadata: Optional[str] = None,
) -> str:
    """Build a single RFC 6750 ``Bearer`` challenge."""
    params = [
        f'realm="{realm}"',
        f'error="{error}"',
        f'error_description="{description}"',
    ]
    if scope is not None:
        params.append(f'scope="{" ".join(scope)}"')
    if resource_metadata:
        params.append(f'resource_metadata="{resource_metadata}"')
    return "Bearer " + ", ".join(params)
