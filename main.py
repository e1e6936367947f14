"""Ticket OAuth Gateway.

A FastAPI app that serves:
- the OAuth 2.1 authorization surface (authorize, consent, token, introspect,
  dynamic client registration, discovery) backed by the decision engine
- the bearer-protected MCP ticket tools via Streamable HTTP (/mcp)
- login, registration and session-authenticated REST ticket routes
- server info endpoints
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from supabase import Client, create_client

from config import Config, load_config
import ticket_endpoints
from logging_config import flush_logs, setup_logging
from oauth import login
from oauth.ade import DecisionEngineClient
from oauth.login import Authenticator
from oauth.middleware import anonymous_access, bearer_auth, require_scopes
from oauth.stores import SessionStore
from tickets import TicketService
from tools import mcp, ticket_tools

logger = logging.getLogger(__name__)

SERVICE_NAME = "ticket-oauth-gateway"
VERSION = "1.0.0"


def build_supabase_client(config: Config) -> Optional[Client]:
    if config.supabase_url and config.supabase_anon_key:
        return create_client(config.supabase_url, config.supabase_anon_key)
    return None


def create_app(config: Optional[Config] = None, ade=None, sessions: Optional[SessionStore] = None,
               supabase_client=None, tickets: Optional[TicketService] = None) -> FastAPI:
    """Build the application.

    Args:
        config: Settings; loaded from the environment when omitted.
        ade: Decision engine client; built from the config when omitted.
        sessions: Session store; an in-memory store when omitted.
        supabase_client: Used by the login step when given.
        tickets: Ticket inventory; the one behind the MCP tools when omitted.
    """
    config = config or load_config()
    ade = ade or DecisionEngineClient.from_config(config)
    sessions = sessions or SessionStore(ttl=config.session_ttl)
    tickets = tickets if tickets is not None else ticket_tools.service

    if not config.is_valid():
        logger.warning("[STARTUP] Decision engine credentials missing; OAuth calls will fail")

    # Middleware of the MCP app runs before any MCP transport code
    if config.oauth_enabled:
        mcp_middleware = [
            bearer_auth(ade, config, required_scopes=config.mcp_required_scopes, resource=config.resource_path),
            require_scopes(config.mcp_required_scopes),
        ]
    else:
        mcp_middleware = [anonymous_access(config.scopes_supported)]
    resource_route = f"/{config.resource_path}"
    mcp_http_app = mcp.http_app(path=resource_route, transport="streamable-http", middleware=mcp_middleware)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # FastMCP needs its own lifespan for the streamable HTTP task group
        async with mcp_http_app.lifespan(app):
            try:
                yield
            finally:
                await ade.aclose()
                flush_logs()

    app = FastAPI(
        title="Ticket OAuth Gateway",
        description="OAuth 2.1 authorization server front end and MCP ticket resource",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.ade = ade
    app.state.sessions = sessions
    app.state.authenticator = Authenticator(config, supabase_client)
    app.state.tickets = tickets

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exact route: POST /mcp reaches the transport with no trailing-slash redirect
    app.add_route(resource_route, mcp_http_app)

    app.include_router(login.router)
    app.include_router(ticket_endpoints.router)

    if config.oauth_enabled:
        from oauth import authorization, dcr, metadata, token
        for module in (metadata, authorization, token, dcr):
            app.include_router(module.router)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": SERVICE_NAME, "transport": "streamable-http"}

    @app.get("/")
    async def root():
        """Server info."""
        response = {
            "name": "Ticket OAuth Gateway",
            "version": VERSION,
            "endpoints": {"streamable_http": f"/{config.resource_path}"},
            "tools": ["list_tickets", "get_ticket", "reserve_ticket", "my_reservations", "cancel_reservation"],
            "oauth_enabled": config.oauth_enabled,
        }
        if config.oauth_enabled:
            base = config.server_url or ""
            response["oauth"] = {
                "protected_resource": f"{base}/.well-known/oauth-protected-resource/{config.resource_path}",
                "authorization_server": f"{base}/.well-known/oauth-authorization-server",
            }
        return response

    logger.info(f"[STARTUP] App created - OAuth enabled: {config.oauth_enabled}, "
                f"resource: /{config.resource_path}, scopes: {config.mcp_required_scopes}")
    return app


def main(config: Optional[Config] = None):
    import uvicorn

    config = config or load_config()
    supabase = build_supabase_client(config)
    setup_logging(SERVICE_NAME, supabase_client=supabase, level=config.log_level)
    logger.info(f"[STARTUP] SERVER_URL: {config.server_url or '<derived from request>'}")
    logger.info(f"[STARTUP] Config valid: {config.is_valid()}")

    app = create_app(config, supabase_client=supabase)
    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
