"""OAuth discovery documents.

- Authorization Server Metadata (RFC 8414), published by the decision engine
- Protected Resource Metadata (RFC 9728), derived from the config
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from oauth.models import ADEError
from oauth.responses import DISCOVERY_HEADERS, base_url, server_error

logger = logging.getLogger(__name__)

router = APIRouter(tags=["discovery"])

AUTHORIZATION_DETAILS_TYPES = ["ticket-reservation"]


@router.get("/.well-known/oauth-authorization-server")
async def oauth_authorization_server(request: Request):
    """OAuth 2.0 Authorization Server Metadata (RFC 8414)."""
    try:
        metadata = await request.app.state.ade.service_configuration()
    except ADEError as e:
        logger.error(f"[DISCOVERY] Authorization server metadata error: {e}")
        return server_error("Unable to generate authorization server metadata")
    return JSONResponse(metadata, headers=DISCOVERY_HEADERS)


def protected_resource_metadata(base: str, resource: str, config) -> dict:
    return {
        "resource": f"{base}/{resource}",
        "authorization_servers": [config.server_url or base],
        "scopes_supported": config.scopes_supported,
        "bearer_methods_supported": ["header"],
        "authorization_details_types_supported": AUTHORIZATION_DETAILS_TYPES,
        "resource_documentation": f"{base}/docs/{resource}",
        "introspection_endpoint": f"{base}/introspect",
    }


@router.get("/.well-known/oauth-protected-resource")
async def oauth_protected_resource(request: Request):
    """OAuth 2.0 Protected Resource Metadata (RFC 9728)."""
    config = request.app.state.config
    metadata = protected_resource_metadata(base_url(request, config), config.resource_path, config)
    return JSONResponse(metadata, headers=DISCOVERY_HEADERS)


@router.get("/.well-known/oauth-protected-resource/{resource:path}")
async def oauth_protected_resource_for(resource: str, request: Request):
    """Resource-specific variant (RFC 9728 section 3.1)."""
    config = request.app.state.config
    metadata = protected_resource_metadata(base_url(request, config), resource.strip("/"), config)
    return JSONResponse(metadata, headers=DISCOVERY_HEADERS)
