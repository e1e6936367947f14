"""Shared fixtures: the app wired to a scripted decision engine."""
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import Config
from main import create_app
from oauth.models import (
    AuthorizationAction,
    AuthorizationOutcome,
    ClientSummary,
    IntrospectionAction,
    IntrospectionResult,
    ScopeDescriptor,
)
from oauth.stores import SessionStore
from tickets import TicketService

SERVER_URL = "https://gateway.example.com"
RESOURCE_URL = f"{SERVER_URL}/mcp"

ADE_METHODS = [
    "authorize", "issue", "fail", "get_client", "token", "introspect", "standard_introspect",
    "register_client", "get_registered_client", "update_registered_client",
    "delete_registered_client", "service_configuration", "aclose",
]


@pytest.fixture
def config():
    return Config({
        "server_url": SERVER_URL,
        "ade_base_url": "https://ade.example.com",
        "ade_service_id": "svc-1",
        "ade_service_access_token": "service-token",
        "require_https": False,
    })


@pytest.fixture
def ade():
    mock = MagicMock()
    for name in ADE_METHODS:
        setattr(mock, name, AsyncMock())
    mock.get_client.return_value = {}
    return mock


@pytest.fixture
def sessions():
    return SessionStore()


@pytest.fixture
def tickets():
    return TicketService()


@pytest.fixture
def app(config, ade, sessions, tickets):
    return create_app(config, ade=ade, sessions=sessions, tickets=tickets)


@pytest.fixture
def client(app):
    return TestClient(app)


def interaction(ticket="ticket-123", client_name="Demo Client",
                scopes=("mcp:tickets:read",)) -> AuthorizationOutcome:
    return AuthorizationOutcome(
        action=AuthorizationAction.INTERACTION,
        ticket=ticket,
        client=ClientSummary(client_id="5001", client_name=client_name),
        scopes=[ScopeDescriptor(name=s, description=f"Access {s}") for s in scopes],
    )


def introspection_ok(scopes=("mcp:tickets:read",), resources=(RESOURCE_URL,), subject="user-1",
                     authorization_details=()) -> IntrospectionResult:
    return IntrospectionResult(
        action=IntrospectionAction.OK,
        subject=subject,
        client_id="5001",
        scopes=list(scopes),
        resources=list(resources),
        authorization_details=list(authorization_details),
    )


def login(client, return_to="/"):
    return client.post(
        "/auth/login",
        data={"username": "testuser", "password": "testpass", "return_to": return_to},
        follow_redirects=False,
    )
