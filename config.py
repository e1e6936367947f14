"""Config management for the ticket OAuth gateway.

Values come from the environment (a local .env is loaded first), optionally
overlaid by a JSON file named by OAUTH_GATEWAY_CONFIG.
"""
import json
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "OAUTH_GATEWAY_CONFIG"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str, default: str) -> list:
    return [item for item in os.getenv(name, default).replace(",", " ").split() if item]


class Config:
    """Configuration container."""

    def __init__(self, data: dict = None):
        self.data = data or {}

    # ---- server ----

    @property
    def server_url(self) -> Optional[str]:
        url = self.data.get("server_url")
        return url.rstrip("/") if url else None

    @property
    def host(self) -> str:
        return self.data.get("host", "0.0.0.0")

    @property
    def port(self) -> int:
        return int(self.data.get("port", 3443))

    @property
    def oauth_enabled(self) -> bool:
        return bool(self.data.get("oauth_enabled", True))

    @property
    def require_https(self) -> bool:
        return bool(self.data.get("require_https", False))

    # ---- decision engine ----

    @property
    def ade_base_url(self) -> str:
        return self.data.get("ade_base_url", "https://api.authlete.com")

    @property
    def ade_service_id(self) -> Optional[str]:
        return self.data.get("ade_service_id")

    @property
    def ade_service_access_token(self) -> Optional[str]:
        return self.data.get("ade_service_access_token")

    @property
    def ade_timeout(self) -> float:
        return float(self.data.get("ade_timeout", 10.0))

    @property
    def organization_access_token(self) -> Optional[str]:
        return self.data.get("organization_access_token")

    # ---- sessions ----

    @property
    def session_cookie_name(self) -> str:
        return self.data.get("session_cookie_name", "oauth_session")

    @property
    def session_ttl(self) -> int:
        return int(self.data.get("session_ttl", 24 * 60 * 60))

    @property
    def session_cookie_secure(self) -> bool:
        return bool(self.data.get("session_cookie_secure", self.require_https))

    # ---- protected resource ----

    @property
    def resource_path(self) -> str:
        return self.data.get("resource_path", "mcp").strip("/")

    @property
    def mcp_required_scopes(self) -> list:
        return list(self.data.get("mcp_required_scopes", ["mcp:tickets:read"]))

    @property
    def scopes_supported(self) -> list:
        return list(self.data.get("scopes_supported", ["mcp:tickets:read", "mcp:tickets:write"]))

    @property
    def resource_indicator_required(self) -> bool:
        return bool(self.data.get("resource_indicator_required", True))

    # ---- identity ----

    @property
    def supabase_url(self) -> str:
        return self.data.get("supabase_url", "")

    @property
    def supabase_anon_key(self) -> str:
        return self.data.get("supabase_anon_key", "")

    @property
    def demo_username(self) -> str:
        return self.data.get("demo_username", "testuser")

    @property
    def demo_password(self) -> str:
        return self.data.get("demo_password", "testpass")

    @property
    def log_level(self) -> str:
        return self.data.get("log_level", "INFO").upper()

    def is_valid(self) -> bool:
        """Check if the decision engine credentials are present."""
        return bool(self.ade_service_id and self.ade_service_access_token)


def config_from_env() -> dict:
    """Read settings from environment variables."""
    data = {
        "host": os.getenv("MCP_HOST", "0.0.0.0"),
        "port": int(os.getenv("MCP_PORT", "3443")),
        "oauth_enabled": _env_bool("MCP_OAUTH_ENABLED", "true"),
        "require_https": _env_bool("REQUIRE_HTTPS", "false"),
        "ade_base_url": os.getenv("ADE_BASE_URL", "https://api.authlete.com"),
        "ade_timeout": float(os.getenv("ADE_TIMEOUT", "10")),
        "session_cookie_name": os.getenv("SESSION_COOKIE_NAME", "oauth_session"),
        "session_ttl": int(os.getenv("SESSION_TTL_SECONDS", str(24 * 60 * 60))),
        "resource_path": os.getenv("RESOURCE_PATH", "mcp"),
        "mcp_required_scopes": _env_list("MCP_REQUIRED_SCOPES", "mcp:tickets:read"),
        "resource_indicator_required": _env_bool("RESOURCE_INDICATOR_REQUIRED", "true"),
        "supabase_url": os.getenv("SUPABASE_URL", ""),
        "supabase_anon_key": os.getenv("SUPABASE_ANON_KEY", ""),
        "demo_username": os.getenv("DEMO_USERNAME", "testuser"),
        "demo_password": os.getenv("DEMO_PASSWORD", "testpass"),
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
    }

    optional = {
        "server_url": "SERVER_URL",
        "ade_service_id": "ADE_SERVICE_ID",
        "ade_service_access_token": "ADE_SERVICE_ACCESS_TOKEN",
        "organization_access_token": "ORGANIZATION_ACCESS_TOKEN",
    }
    for key, env_name in optional.items():
        value = os.getenv(env_name)
        if value:
            data[key] = value

    if os.getenv("SESSION_COOKIE_SECURE"):
        data["session_cookie_secure"] = _env_bool("SESSION_COOKIE_SECURE", "false")

    return data


def load_config(path: Optional[str] = None) -> Config:
    """Load config from .env, the environment and an optional JSON file."""
    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)

    data = config_from_env()

    config_path = path or os.getenv(CONFIG_FILE_ENV)
    if config_path and Path(config_path).exists():
        try:
            with open(config_path, "r") as f:
                data.update(json.load(f))
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"[STARTUP] Ignoring unreadable config file {config_path}: {e}")

    return Config(data)
