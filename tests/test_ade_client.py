"""Tests for the decision engine HTTP client."""
import json

import httpx
import pytest

from oauth.ade import DecisionEngineClient, token_hint
from oauth.models import (
    ADEError,
    AuthorizationAction,
    FailReason,
    IntrospectionAction,
    RegistrationAction,
    ResultAction,
    TokenAction,
    UnexpectedActionError,
)


def make_client(handler, service_id="svc-1", token="service-token"):
    return DecisionEngineClient("https://ade.example.com/", service_id, token, timeout=2.0,
                                transport=httpx.MockTransport(handler))


class Recorder:
    """MockTransport handler that records requests and returns a fixed reply."""

    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.payload)

    @property
    def body(self) -> dict:
        return json.loads(self.requests[-1].content)


# ---------------------------------------------------------------------------
# Wire format
# ---------------------------------------------------------------------------

class TestRequests:
    @pytest.mark.asyncio
    async def test_authorize(self):
        recorder = Recorder({
            "action": "INTERACTION",
            "ticket": "ticket-123",
            "client": {"clientId": 5001, "clientIdAlias": "demo", "clientName": "Demo"},
            "scopes": [{"name": "mcp:tickets:read", "description": "Read tickets", "defaultEntry": False}],
        })
        outcome = await make_client(recorder).authorize("response_type=code&client_id=demo")

        request = recorder.requests[0]
        assert request.method == "POST"
        assert str(request.url) == "https://ade.example.com/api/svc-1/auth/authorization"
        assert request.headers["Authorization"] == "Bearer service-token"
        assert recorder.body == {"parameters": "response_type=code&client_id=demo"}

        assert outcome.action == AuthorizationAction.INTERACTION
        assert outcome.ticket == "ticket-123"
        assert outcome.client.client_id == "5001"
        assert outcome.client.display_id == "demo"
        assert [s.name for s in outcome.scopes] == ["mcp:tickets:read"]

    @pytest.mark.asyncio
    async def test_issue_with_authorization_details(self):
        recorder = Recorder({"action": "LOCATION", "responseContent": "https://cb?code=x"})
        details = [{"type": "ticket-reservation"}]
        result = await make_client(recorder).issue("ticket-123", subject="42", authorization_details=details)

        assert recorder.requests[0].url.path == "/api/svc-1/auth/authorization/issue"
        assert recorder.body == {"ticket": "ticket-123", "subject": "42",
                                 "authorizationDetails": {"elements": details}}
        assert result.action == ResultAction.LOCATION
        assert result.response_content == "https://cb?code=x"

    @pytest.mark.asyncio
    async def test_fail(self):
        recorder = Recorder({"action": "LOCATION", "responseContent": "https://cb?error=access_denied"})
        await make_client(recorder).fail("ticket-123", FailReason.DENIED, "User denied")
        assert recorder.body == {"ticket": "ticket-123", "reason": "DENIED", "description": "User denied"}

    @pytest.mark.asyncio
    async def test_token_credentials(self):
        recorder = Recorder({"action": "OK", "responseContent": "{}"})
        result = await make_client(recorder).token("grant_type=authorization_code", "app", "s3cret")
        assert recorder.body == {"parameters": "grant_type=authorization_code",
                                 "clientId": "app", "clientSecret": "s3cret"}
        assert result.action == TokenAction.OK

    @pytest.mark.asyncio
    async def test_introspect(self):
        recorder = Recorder({
            "action": "OK",
            "subject": "42",
            "clientId": 5001,
            "scopes": ["mcp:tickets:read"],
            "expiresAt": 1700000000000,
            "accessTokenResources": ["https://gateway.example.com/mcp"],
            "authorizationDetails": {"elements": [{"type": "ticket-reservation"}]},
        })
        result = await make_client(recorder).introspect("at-1", ["mcp:tickets:read"])

        assert recorder.body == {"token": "at-1", "scopes": ["mcp:tickets:read"]}
        assert result.action == IntrospectionAction.OK
        assert result.subject == "42"
        assert result.client_id == "5001"
        assert result.resources == ["https://gateway.example.com/mcp"]
        assert result.authorization_details == [{"type": "ticket-reservation"}]

    @pytest.mark.asyncio
    async def test_register_sends_metadata_as_json_string(self):
        recorder = Recorder({"action": "CREATED", "responseContent": "{}"})
        result = await make_client(recorder).register_client({"client_name": "Demo"})
        assert json.loads(recorder.body["json"]) == {"client_name": "Demo"}
        assert result.action == RegistrationAction.CREATED

    @pytest.mark.asyncio
    async def test_get_client_uses_get(self):
        recorder = Recorder({"clientId": 5001, "authorizationDetailsTypes": ["ticket-reservation"]})
        data = await make_client(recorder).get_client("5001")
        assert recorder.requests[0].method == "GET"
        assert recorder.requests[0].url.path == "/api/svc-1/client/get/5001"
        assert data["authorizationDetailsTypes"] == ["ticket-reservation"]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestFailures:
    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ADEError, match="timed out"):
            await make_client(handler).authorize("a=b")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ADEError):
            await make_client(handler).token("a=b")

    @pytest.mark.asyncio
    async def test_error_status_carries_result_message(self):
        recorder = Recorder({"resultMessage": "[A001] Invalid service credentials"}, status_code=401)
        with pytest.raises(ADEError) as excinfo:
            await make_client(recorder).authorize("a=b")
        assert excinfo.value.status == 401
        assert excinfo.value.result_message == "[A001] Invalid service credentials"

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        client = make_client(lambda request: httpx.Response(502, text="<html>Bad gateway</html>"))
        with pytest.raises(ADEError):
            await client.introspect("at-1")

    @pytest.mark.asyncio
    async def test_unknown_action(self):
        with pytest.raises(UnexpectedActionError) as excinfo:
            await make_client(Recorder({"action": "DEVICE_CODE"})).token("a=b")
        assert excinfo.value.action == "DEVICE_CODE"

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        recorder = Recorder({"action": "OK"})
        with pytest.raises(ADEError, match="not configured"):
            await make_client(recorder, service_id="").introspect("at-1")
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ADEError):
            await make_client(handler).issue("ticket-123", subject="42")
        assert len(calls) == 1


def test_token_hint():
    assert token_hint("abcdefghijklmnop") == "abcdefgh..."
    assert token_hint(None) == "<none>"
