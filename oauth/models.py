"""Types exchanged with the Authorization Decision Engine (ADE) and kept in sessions.

The ADE answers every call with an ``action`` string that decides which HTTP
response we produce. Each call family has its own closed set of actions,
modelled here as ``str`` enums. ``parse`` raises ``UnexpectedActionError`` for
anything outside the set so contract drift fails loudly instead of being
mapped onto an ordinary error.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ADEError(Exception):
    """ADE call failed (network error, timeout or non-2xx status)."""

    def __init__(self, message: str, status: Optional[int] = None, result_message: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.result_message = result_message


class UnexpectedActionError(ADEError):
    """ADE returned an action outside the documented set for the call."""

    def __init__(self, operation: str, action: Any):
        super().__init__(f"Unexpected action from {operation}: {action!r}")
        self.operation = operation
        self.action = action


class _Action(str, Enum):
    @classmethod
    def parse(cls, value: Any, operation: str):
        try:
            return cls(value)
        except ValueError:
            raise UnexpectedActionError(operation, value) from None


class AuthorizationAction(_Action):
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    LOCATION = "LOCATION"
    FORM = "FORM"
    NO_INTERACTION = "NO_INTERACTION"
    INTERACTION = "INTERACTION"


class ResultAction(_Action):
    """Actions of authorization issue/fail calls."""
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    LOCATION = "LOCATION"
    FORM = "FORM"


class TokenAction(_Action):
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    INVALID_CLIENT = "INVALID_CLIENT"
    BAD_REQUEST = "BAD_REQUEST"
    PASSWORD = "PASSWORD"
    OK = "OK"
    TOKEN_EXCHANGE = "TOKEN_EXCHANGE"
    JWT_BEARER = "JWT_BEARER"


class IntrospectionAction(_Action):
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    OK = "OK"


class StandardIntrospectionAction(_Action):
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    OK = "OK"


class RegistrationAction(_Action):
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    CREATED = "CREATED"
    OK = "OK"
    UPDATED = "UPDATED"
    DELETED = "DELETED"


class FailReason(str, Enum):
    DENIED = "DENIED"
    NOT_LOGGED_IN = "NOT_LOGGED_IN"
    LOGIN_REQUIRED = "LOGIN_REQUIRED"
    CONSENT_REQUIRED = "CONSENT_REQUIRED"


# ============== Session-side snapshots ==============

@dataclass(frozen=True)
class ClientSummary:
    client_id: str
    client_id_alias: Optional[str] = None
    client_name: Optional[str] = None
    authorization_details_types: tuple = ()

    @property
    def display_id(self) -> str:
        return self.client_id_alias or self.client_id

    @classmethod
    def from_payload(cls, data: dict) -> "ClientSummary":
        return cls(
            client_id=str(data.get("clientId", "")),
            client_id_alias=data.get("clientIdAlias"),
            client_name=data.get("clientName"),
            authorization_details_types=tuple(data.get("authorizationDetailsTypes") or ()),
        )

    def to_record(self) -> dict:
        return {
            "client_id": self.client_id,
            "client_id_alias": self.client_id_alias,
            "client_name": self.client_name,
            "authorization_details_types": list(self.authorization_details_types),
        }

    @classmethod
    def from_record(cls, record: dict) -> "ClientSummary":
        return cls(
            client_id=record["client_id"],
            client_id_alias=record.get("client_id_alias"),
            client_name=record.get("client_name"),
            authorization_details_types=tuple(record.get("authorization_details_types") or ()),
        )


@dataclass(frozen=True)
class ScopeDescriptor:
    name: str
    description: str = ""
    default_entry: bool = False

    @classmethod
    def from_payload(cls, data: dict) -> "ScopeDescriptor":
        return cls(
            name=data.get("name", ""),
            description=data.get("description") or "",
            default_entry=bool(data.get("defaultEntry", False)),
        )


@dataclass(frozen=True)
class UserIdentity:
    id: str
    username: str
    email: Optional[str] = None


@dataclass(frozen=True)
class AuthenticationResult:
    """Outcome of a login attempt: ``user`` on success, ``reason`` on failure."""
    user: Optional[UserIdentity] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.user is not None

    @classmethod
    def success(cls, user: UserIdentity) -> "AuthenticationResult":
        return cls(user=user)

    @classmethod
    def failure(cls, reason: str) -> "AuthenticationResult":
        return cls(reason=reason)


# ============== ADE responses ==============

@dataclass
class AuthorizationOutcome:
    action: AuthorizationAction
    ticket: Optional[str] = None
    client: Optional[ClientSummary] = None
    scopes: list = field(default_factory=list)
    response_content: Optional[str] = None
    result_message: Optional[str] = None

    @classmethod
    def from_payload(cls, data: dict) -> "AuthorizationOutcome":
        client = data.get("client")
        return cls(
            action=AuthorizationAction.parse(data.get("action"), "authorization"),
            ticket=data.get("ticket"),
            client=ClientSummary.from_payload(client) if client else None,
            scopes=[ScopeDescriptor.from_payload(s) for s in data.get("scopes") or []],
            response_content=data.get("responseContent"),
            result_message=data.get("resultMessage"),
        )


@dataclass
class ActionResult:
    """Generic ADE answer: an action plus an opaque body to pass through."""
    action: Enum
    response_content: Optional[str] = None
    result_message: Optional[str] = None

    @classmethod
    def from_payload(cls, data: dict, actions: type, operation: str) -> "ActionResult":
        return cls(
            action=actions.parse(data.get("action"), operation),
            response_content=data.get("responseContent"),
            result_message=data.get("resultMessage"),
        )


@dataclass
class IntrospectionResult:
    action: IntrospectionAction
    subject: Optional[str] = None
    client_id: Optional[str] = None
    scopes: list = field(default_factory=list)
    expires_at: Optional[int] = None
    resources: list = field(default_factory=list)
    authorization_details: list = field(default_factory=list)
    result_message: Optional[str] = None

    @classmethod
    def from_payload(cls, data: dict) -> "IntrospectionResult":
        client_id = data.get("clientIdAlias") if data.get("clientIdAliasUsed") else data.get("clientId")
        details = data.get("authorizationDetails") or {}
        return cls(
            action=IntrospectionAction.parse(data.get("action"), "introspection"),
            subject=data.get("subject"),
            client_id=str(client_id) if client_id is not None else None,
            scopes=list(data.get("scopes") or []),
            expires_at=data.get("expiresAt"),
            resources=list(data.get("accessTokenResources") or data.get("resources") or []),
            authorization_details=list(details.get("elements") or []),
            result_message=data.get("resultMessage"),
        )


@dataclass
class OAuthContext:
    """Validated bearer token attached to ``request.state.oauth``."""
    token: str
    subject: str
    client_id: str
    scopes: list
    expires_at: Optional[int] = None
    resources: list = field(default_factory=list)
    authorization_details: list = field(default_factory=list)

    def missing_scopes(self, required) -> list:
        return [scope for scope in required if scope not in self.scopes]
