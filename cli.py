"""CLI entry point for ticket-oauth-gateway.

Commands:
    serve         Run the gateway with uvicorn
    cleanup-dcr   Delete dynamically registered clients from the decision engine
    status        Show the effective configuration
    version       Show version information
"""
import argparse
import sys
import time

import requests

from config import Config, load_config

VERSION = "1.0.0"
ADMIN_TIMEOUT = 10


class AdminError(Exception):
    """Decision engine admin call failed."""


# ============== Decision engine admin calls ==============

def admin_request(config: Config, method: str, path: str, use_org_token: bool = False) -> dict:
    """Call the service admin API and return the JSON body ({} when empty)."""
    token = config.organization_access_token if use_org_token else config.ade_service_access_token
    url = f"{config.ade_base_url.rstrip('/')}/api/{config.ade_service_id}{path}"
    try:
        response = requests.request(
            method,
            url,
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            timeout=ADMIN_TIMEOUT,
        )
    except requests.RequestException as e:
        raise AdminError(f"{method} {path} failed: {e}") from e

    if not response.ok:
        raise AdminError(f"{method} {path} returned {response.status_code}: {response.text}")
    if not response.text.strip():
        return {}
    try:
        return response.json()
    except ValueError as e:
        raise AdminError(f"{method} {path} returned a non-JSON body") from e


def list_clients(config: Config) -> list:
    return admin_request(config, "GET", "/client/get/list").get("clients") or []


def dynamic_clients(clients: list) -> list:
    return [c for c in clients if c.get("dynamicallyRegistered") is True]


def client_identifier(client: dict) -> str:
    return str(client.get("clientIdAlias") or client.get("clientId"))


def delete_client(config: Config, client: dict) -> bool:
    identifier = client_identifier(client)
    try:
        admin_request(config, "DELETE", f"/client/delete/{identifier}", use_org_token=True)
    except AdminError as e:
        print(f"  Failed:  {identifier} - {e}")
        return False
    print(f"  Deleted: {identifier} ({client.get('clientName') or 'N/A'})")
    return True


# ============== Commands ==============

def cmd_serve(config: Config):
    from main import main as run_server
    run_server(config)


def cmd_cleanup_dcr(config: Config, dry_run: bool = False, assume_yes: bool = False) -> int:
    """Delete every dynamically registered client. Returns the exit code."""
    if not config.is_valid():
        print("ADE_SERVICE_ID and ADE_SERVICE_ACCESS_TOKEN must be set.")
        return 1
    if not config.organization_access_token and not dry_run:
        print("ORGANIZATION_ACCESS_TOKEN must be set to delete clients.")
        return 1

    try:
        clients = list_clients(config)
    except AdminError as e:
        print(f"Could not list clients: {e}")
        return 1

    targets = dynamic_clients(clients)
    print(f"Service {config.ade_service_id}: {len(clients)} client(s), {len(targets)} dynamically registered")
    for client in targets:
        print(f"  - {client_identifier(client)}  \"{client.get('clientName') or 'N/A'}\"")

    if not targets or dry_run:
        return 0

    if not assume_yes:
        answer = input(f"Delete {len(targets)} client(s)? [y/N] ").strip().lower()
        if answer not in ("y", "yes"):
            print("Cancelled.")
            return 0

    failures = 0
    for client in targets:
        if not delete_client(config, client):
            failures += 1
        time.sleep(0.1)

    print(f"\nDeleted {len(targets) - failures}, failed {failures}")
    return 1 if failures else 0


def cmd_status(config: Config):
    print("\n" + "=" * 50)
    print("  Ticket OAuth Gateway Status")
    print("=" * 50)

    print("\n[Decision Engine]")
    print(f"  Base URL:   {config.ade_base_url}")
    print(f"  Service ID: {config.ade_service_id or '<not set>'}")
    print(f"  Token:      {'set' if config.ade_service_access_token else '<not set>'}")
    print(f"  Valid:      {config.is_valid()}")

    print("\n[Server]")
    print(f"  Listen:     {config.host}:{config.port}")
    print(f"  SERVER_URL: {config.server_url or '<derived from request>'}")
    print(f"  OAuth:      {'enabled' if config.oauth_enabled else 'disabled'}")
    print(f"  HTTPS only: {config.require_https}")

    print("\n[Resource]")
    print(f"  Path:       /{config.resource_path}")
    print(f"  Scopes:     {' '.join(config.mcp_required_scopes)}")

    print("\n[Login]")
    print(f"  Backend:    {'supabase' if config.supabase_url and config.supabase_anon_key else 'demo user'}")
    print("\n" + "=" * 50 + "\n")


def cmd_version():
    print(f"ticket-oauth-gateway v{VERSION}")


# ============== Main Entry Point ==============

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ticket-oauth-gateway",
        description="Ticket OAuth Gateway - OAuth 2.1 front end and MCP ticket resource",
    )
    parser.add_argument("--config", help="JSON config file overlaid on the environment")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Run the server (default)")

    cleanup = sub.add_parser("cleanup-dcr", help="Delete dynamically registered clients")
    cleanup.add_argument("--dry-run", action="store_true", help="List the clients without deleting them")
    cleanup.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    sub.add_parser("status", help="Show configuration status")
    sub.add_parser("version", help="Show version")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    command = args.command or "serve"

    if command == "version":
        cmd_version()
        return

    config = load_config(args.config)
    if command == "serve":
        cmd_serve(config)
    elif command == "cleanup-dcr":
        sys.exit(cmd_cleanup_dcr(config, dry_run=args.dry_run, assume_yes=args.yes))
    elif command == "status":
        cmd_status(config)


if __name__ == "__main__":
    main()
