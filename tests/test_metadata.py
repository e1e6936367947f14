"""Tests for the discovery documents and server info endpoints."""
from fastapi.testclient import TestClient

from config import Config
from conftest import RESOURCE_URL, SERVER_URL
from main import create_app
from oauth.models import ADEError


class TestProtectedResourceMetadata:
    def test_resource_specific_document(self, client):
        response = client.get("/.well-known/oauth-protected-resource/mcp")
        assert response.status_code == 200
        body = response.json()
        assert body["resource"] == RESOURCE_URL
        assert body["authorization_servers"] == [SERVER_URL]
        assert body["scopes_supported"] == ["mcp:tickets:read", "mcp:tickets:write"]
        assert body["bearer_methods_supported"] == ["header"]
        assert body["authorization_details_types_supported"] == ["ticket-reservation"]
        assert body["introspection_endpoint"] == f"{SERVER_URL}/introspect"
        assert response.headers["cache-control"] == "public, max-age=3600"
        assert response.headers["access-control-allow-origin"] == "*"

    def test_default_document(self, client):
        assert client.get("/.well-known/oauth-protected-resource").json()["resource"] == RESOURCE_URL

    def test_base_url_from_forwarded_headers(self, config, ade):
        derived = Config({k: v for k, v in config.data.items() if k != "server_url"})
        client = TestClient(create_app(derived, ade=ade))
        response = client.get("/.well-known/oauth-protected-resource/mcp",
                              headers={"X-Forwarded-Proto": "https", "X-Forwarded-Host": "tickets.example.org"})
        assert response.json()["resource"] == "https://tickets.example.org/mcp"


class TestAuthorizationServerMetadata:
    def test_passthrough(self, client, ade):
        document = {"issuer": SERVER_URL, "authorization_endpoint": f"{SERVER_URL}/authorize",
                    "code_challenge_methods_supported": ["S256"]}
        ade.service_configuration.return_value = document
        response = client.get("/.well-known/oauth-authorization-server")
        assert response.status_code == 200
        assert response.json() == document
        assert response.headers["cache-control"] == "public, max-age=3600"

    def test_ade_failure(self, client, ade):
        ade.service_configuration.side_effect = ADEError("down")
        response = client.get("/.well-known/oauth-authorization-server")
        assert response.status_code == 500
        assert response.json()["error_description"] == "Unable to generate authorization server metadata"


class TestServerInfo:
    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_root(self, client):
        body = client.get("/").json()
        assert body["oauth_enabled"] is True
        assert "reserve_ticket" in body["tools"]
        assert body["oauth"]["protected_resource"] == f"{SERVER_URL}/.well-known/oauth-protected-resource/mcp"

    def test_oauth_disabled_hides_oauth_routes(self, config, ade):
        disabled = Config({**config.data, "oauth_enabled": False})
        client = TestClient(create_app(disabled, ade=ade))
        assert client.get("/.well-known/oauth-authorization-server").status_code == 404
        assert client.get("/").json()["oauth_enabled"] is False
