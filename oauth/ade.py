"""HTTP client for the Authorization Decision Engine (ADE).

Every call is a single JSON round trip with a bounded timeout. Calls are never
retried: issue/fail, token minting and client deletion are not idempotent
from our side, so a timeout or transport failure surfaces as ``ADEError`` and
the handler answers 500.
"""

import json
import logging
from typing import Optional

import httpx

from oauth.models import (
    ADEError,
    ActionResult,
    AuthorizationOutcome,
    FailReason,
    IntrospectionResult,
    RegistrationAction,
    ResultAction,
    StandardIntrospectionAction,
    TokenAction,
)

logger = logging.getLogger(__name__)


def token_hint(token: Optional[str]) -> str:
    """Shortened token for log lines."""
    if not token:
        return "<none>"
    return token[:8] + "..."


class DecisionEngineClient:
    """Typed bridge to the ADE's REST API."""

    def __init__(
        self,
        base_url: str,
        service_id: str,
        service_access_token: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_id = service_id
        self.service_access_token = service_access_token
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_config(cls, config) -> "DecisionEngineClient":
        return cls(
            base_url=config.ade_base_url,
            service_id=config.ade_service_id or "",
            service_access_token=config.ade_service_access_token or "",
            timeout=config.ade_timeout,
        )

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self.service_access_token}",
                    "Accept": "application/json",
                },
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _call(self, method: str, path: str, body: Optional[dict] = None) -> dict:
        if not self.service_id or not self.service_access_token:
            raise ADEError("ADE credentials are not configured")

        url = f"{self.base_url}/api/{self.service_id}{path}"
        try:
            response = await self._http().request(method, url, json=body)
        except httpx.TimeoutException as e:
            logger.error(f"[ADE] Timeout calling {path}: {e}")
            raise ADEError(f"ADE request timed out: {path}") from e
        except httpx.HTTPError as e:
            logger.error(f"[ADE] Transport error calling {path}: {e}")
            raise ADEError(f"ADE request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise ADEError(f"ADE returned non-JSON body ({response.status_code})", status=response.status_code) from e

        if response.is_error:
            result_message = data.get("resultMessage") if isinstance(data, dict) else None
            logger.error(f"[ADE] {path} returned {response.status_code}: {result_message}")
            raise ADEError(
                f"ADE API error: {response.status_code} {response.reason_phrase}",
                status=response.status_code,
                result_message=result_message,
            )

        if not isinstance(data, dict):
            raise ADEError(f"ADE returned unexpected payload for {path}")
        return data

    # ============== Authorization ==============

    async def authorize(self, parameters: str) -> AuthorizationOutcome:
        data = await self._call("POST", "/auth/authorization", {"parameters": parameters})
        return AuthorizationOutcome.from_payload(data)

    async def issue(self, ticket: str, subject: str, authorization_details: Optional[list] = None) -> ActionResult:
        body = {"ticket": ticket, "subject": subject}
        if authorization_details:
            body["authorizationDetails"] = {"elements": authorization_details}
        data = await self._call("POST", "/auth/authorization/issue", body)
        return ActionResult.from_payload(data, ResultAction, "authorization issue")

    async def fail(self, ticket: str, reason: FailReason = FailReason.DENIED,
                   description: Optional[str] = None) -> ActionResult:
        body = {"ticket": ticket, "reason": reason.value}
        if description:
            body["description"] = description
        data = await self._call("POST", "/auth/authorization/fail", body)
        return ActionResult.from_payload(data, ResultAction, "authorization fail")

    async def get_client(self, client_id: str) -> dict:
        return await self._call("GET", f"/client/get/{client_id}")

    # ============== Token ==============

    async def token(self, parameters: str, client_id: Optional[str] = None,
                    client_secret: Optional[str] = None) -> ActionResult:
        body = {"parameters": parameters}
        if client_id:
            body["clientId"] = client_id
        if client_secret:
            body["clientSecret"] = client_secret
        data = await self._call("POST", "/auth/token", body)
        return ActionResult.from_payload(data, TokenAction, "token")

    async def introspect(self, token: str, scopes: Optional[list] = None) -> IntrospectionResult:
        body = {"token": token}
        if scopes:
            body["scopes"] = list(scopes)
        data = await self._call("POST", "/auth/introspection", body)
        return IntrospectionResult.from_payload(data)

    async def standard_introspect(self, parameters: str) -> ActionResult:
        data = await self._call("POST", "/auth/introspection/standard", {"parameters": parameters})
        return ActionResult.from_payload(data, StandardIntrospectionAction, "standard introspection")

    # ============== Dynamic Client Registration ==============

    async def register_client(self, metadata: dict) -> ActionResult:
        data = await self._call("POST", "/client/registration", {"json": json.dumps(metadata)})
        return ActionResult.from_payload(data, RegistrationAction, "client registration")

    async def get_registered_client(self, client_id: str, token: str) -> ActionResult:
        data = await self._call("POST", "/client/registration/get", {"clientId": client_id, "token": token})
        return ActionResult.from_payload(data, RegistrationAction, "client registration get")

    async def update_registered_client(self, client_id: str, token: str, metadata: dict) -> ActionResult:
        body = {"clientId": client_id, "token": token, "json": json.dumps(metadata)}
        data = await self._call("POST", "/client/registration/update", body)
        return ActionResult.from_payload(data, RegistrationAction, "client registration update")

    async def delete_registered_client(self, client_id: str, token: str) -> ActionResult:
        data = await self._call("POST", "/client/registration/delete", {"clientId": client_id, "token": token})
        return ActionResult.from_payload(data, RegistrationAction, "client registration delete")

    # ============== Discovery ==============

    async def service_configuration(self) -> dict:
        """Authorization server metadata (RFC 8414) as published by the ADE."""
        return await self._call("GET", "/service/configuration")
