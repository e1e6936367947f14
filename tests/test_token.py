"""Tests for the token and introspection endpoints."""
import base64

import pytest
from starlette.datastructures import FormData

from oauth.models import ADEError, ActionResult, StandardIntrospectionAction, TokenAction, UnexpectedActionError
from oauth.token import extract_client_credentials

TOKEN_BODY = {"grant_type": "authorization_code", "code": "code-1", "code_verifier": "verifier",
              "redirect_uri": "https://client.example.com/cb"}
TOKEN_JSON = '{"access_token":"at-1","token_type":"Bearer","expires_in":3600,"scope":"mcp:tickets:read"}'
FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}
NOT_UTF8 = b"grant_type=\xff\xfe"


def basic(client_id, secret):
    return "Basic " + base64.b64encode(f"{client_id}:{secret}".encode()).decode()


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

class TestClientCredentials:
    def test_basic_header(self):
        assert extract_client_credentials(basic("app", "s3cret"), FormData()) == ("app", "s3cret", True)

    def test_secret_with_colon(self):
        assert extract_client_credentials(basic("app", "a:b:c"), FormData()) == ("app", "a:b:c", True)

    def test_form_fallback(self):
        form = FormData([("client_id", "app"), ("client_secret", "s3cret")])
        assert extract_client_credentials(None, form) == ("app", "s3cret", False)

    def test_malformed_basic_falls_back_to_form(self):
        form = FormData([("client_id", "app")])
        assert extract_client_credentials("Basic !!!not-base64", form) == ("app", None, False)

    def test_public_client(self):
        assert extract_client_credentials(None, FormData([("client_id", "app")])) == ("app", None, False)


# ---------------------------------------------------------------------------
# /token
# ---------------------------------------------------------------------------

class TestTokenEndpoint:
    def test_success_passes_body_through(self, client, ade):
        ade.token.return_value = ActionResult(action=TokenAction.OK, response_content=TOKEN_JSON)

        response = client.post("/token", data=TOKEN_BODY, headers={"Authorization": basic("app", "s3cret")})

        assert response.status_code == 200
        assert response.text == TOKEN_JSON
        assert response.headers["cache-control"] == "no-store"
        assert response.headers["pragma"] == "no-cache"
        assert response.headers["content-type"].startswith("application/json")

        parameters, client_id, client_secret = ade.token.await_args.args
        assert "grant_type=authorization_code" in parameters
        assert "code_verifier=verifier" in parameters
        assert (client_id, client_secret) == ("app", "s3cret")

    @pytest.mark.parametrize("action", [TokenAction.TOKEN_EXCHANGE, TokenAction.JWT_BEARER])
    def test_other_success_actions(self, client, ade, action):
        ade.token.return_value = ActionResult(action=action, response_content=TOKEN_JSON)
        assert client.post("/token", data=TOKEN_BODY).status_code == 200

    def test_success_without_content(self, client, ade):
        ade.token.return_value = ActionResult(action=TokenAction.OK)
        assert client.post("/token", data=TOKEN_BODY).status_code == 500

    def test_invalid_client_with_basic(self, client, ade):
        ade.token.return_value = ActionResult(action=TokenAction.INVALID_CLIENT, result_message="bad secret")
        response = client.post("/token", data=TOKEN_BODY, headers={"Authorization": basic("app", "wrong")})
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_client"
        assert response.headers["www-authenticate"].startswith("Basic")

    def test_invalid_client_with_form_credentials(self, client, ade):
        ade.token.return_value = ActionResult(action=TokenAction.INVALID_CLIENT)
        response = client.post("/token", data={**TOKEN_BODY, "client_id": "app", "client_secret": "wrong"})
        assert response.status_code == 401
        assert "www-authenticate" not in response.headers

    def test_bad_request(self, client, ade):
        ade.token.return_value = ActionResult(action=TokenAction.BAD_REQUEST, result_message="PKCE failed")
        response = client.post("/token", data=TOKEN_BODY)
        assert response.status_code == 400
        assert response.json() == {"error": "invalid_request", "error_description": "PKCE failed"}

    def test_password_grant_unsupported(self, client, ade):
        ade.token.return_value = ActionResult(action=TokenAction.PASSWORD)
        response = client.post("/token", data={"grant_type": "password", "username": "u", "password": "p"})
        assert response.status_code == 400
        assert response.json()["error"] == "unsupported_grant_type"

    def test_internal_server_error(self, client, ade):
        ade.token.return_value = ActionResult(action=TokenAction.INTERNAL_SERVER_ERROR)
        assert client.post("/token", data=TOKEN_BODY).status_code == 500

    def test_unknown_action(self, client, ade):
        ade.token.side_effect = UnexpectedActionError("token", "DEVICE_CODE")
        response = client.post("/token", data=TOKEN_BODY)
        assert response.status_code == 500
        assert response.json()["error_description"] == "Unsupported action: DEVICE_CODE"

    def test_ade_failure_not_retried(self, client, ade):
        ade.token.side_effect = ADEError("ADE request timed out")
        assert client.post("/token", data=TOKEN_BODY).status_code == 500
        assert ade.token.await_count == 1

    def test_body_not_utf8(self, client, ade):
        response = client.post("/token", content=NOT_UTF8, headers=FORM_HEADERS)
        assert response.status_code == 400
        assert response.json() == {"error": "invalid_request",
                                   "error_description": "Request body must be UTF-8 encoded"}
        ade.token.assert_not_awaited()


# ---------------------------------------------------------------------------
# /introspect
# ---------------------------------------------------------------------------

class TestIntrospectEndpoint:
    def test_missing_token(self, client, ade):
        response = client.post("/introspect", data={"token_type_hint": "access_token"})
        assert response.status_code == 400
        ade.standard_introspect.assert_not_awaited()

    def test_active_token(self, client, ade):
        body = '{"active":true,"scope":"mcp:tickets:read"}'
        ade.standard_introspect.return_value = ActionResult(action=StandardIntrospectionAction.OK,
                                                            response_content=body)
        response = client.post("/introspect", data={"token": "at-1"})
        assert response.status_code == 200
        assert response.text == body
        ade.standard_introspect.assert_awaited_once_with("token=at-1")

    def test_bad_request_passthrough(self, client, ade):
        ade.standard_introspect.return_value = ActionResult(action=StandardIntrospectionAction.BAD_REQUEST,
                                                            response_content='{"error":"invalid_request"}')
        assert client.post("/introspect", data={"token": "at-1"}).status_code == 400

    def test_ade_failure(self, client, ade):
        ade.standard_introspect.side_effect = ADEError("down")
        assert client.post("/introspect", data={"token": "at-1"}).status_code == 500

    def test_body_not_utf8(self, client, ade):
        response = client.post("/introspect", content=b"token=\xff\xfe", headers=FORM_HEADERS)
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"
        ade.standard_introspect.assert_not_awaited()
