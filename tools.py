"""MCP tools for the ticket reservation resource.

The acting user is always the subject of the bearer token that reached /mcp;
tools never take a user id from their arguments.
"""

import logging
from typing import Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.server.dependencies import get_http_request

from oauth.models import OAuthContext
from tickets import TicketError, TicketService, restrictions_from_details

logger = logging.getLogger(__name__)

READ_SCOPE = "mcp:tickets:read"
WRITE_SCOPE = "mcp:tickets:write"


class TicketTools:
    """Tool behaviour, independent of the MCP transport."""

    def __init__(self, service: TicketService):
        self.service = service

    @staticmethod
    def _require(context: OAuthContext, scope: str) -> None:
        if context.missing_scopes([scope]):
            logger.info(f"[TOOL] Denied for {context.subject}: missing {scope}")
            raise ToolError(f"Insufficient scope: {scope} is required")

    def list_tickets(self, context: OAuthContext) -> list:
        self._require(context, READ_SCOPE)
        return [t.to_dict() for t in self.service.list_tickets()]

    def get_ticket(self, context: OAuthContext, ticket_id: int) -> dict:
        self._require(context, READ_SCOPE)
        ticket = self.service.get_ticket(ticket_id)
        if ticket is None:
            raise ToolError(f"Ticket {ticket_id} not found")
        return ticket.to_dict()

    def reserve_ticket(self, context: OAuthContext, ticket_id: int, seats: int) -> dict:
        self._require(context, WRITE_SCOPE)
        # Without a ticket-reservation detail the token carries no amount cap
        restrictions = restrictions_from_details(context.authorization_details)
        try:
            reservation = self.service.reserve(context.subject, ticket_id, seats, restrictions)
        except TicketError as e:
            logger.info(f"[TOOL] reserve_ticket refused for {context.subject}: {e}")
            raise ToolError(str(e)) from e
        return reservation.to_dict()

    def my_reservations(self, context: OAuthContext) -> list:
        self._require(context, READ_SCOPE)
        return [r.to_dict() for r in self.service.user_reservations(context.subject)]

    def cancel_reservation(self, context: OAuthContext, reservation_id: int) -> dict:
        self._require(context, WRITE_SCOPE)
        try:
            reservation = self.service.cancel(reservation_id, context.subject)
        except TicketError as e:
            raise ToolError(str(e)) from e
        return reservation.to_dict()


def current_context() -> OAuthContext:
    """Bearer context attached to the HTTP request by the /mcp middleware."""
    context: Optional[OAuthContext] = getattr(get_http_request().state, "oauth", None)
    if context is None:
        raise ToolError("Authentication required")
    return context


mcp = FastMCP("ticket-oauth-gateway")
ticket_tools = TicketTools(TicketService())


@mcp.tool()
def list_tickets() -> list:
    """List upcoming events with price and remaining seats."""
    logger.info("[TOOL] list_tickets invoked")
    return ticket_tools.list_tickets(current_context())


@mcp.tool()
def get_ticket(ticket_id: int) -> dict:
    """Get a single event.

    Args:
        ticket_id: Event id from list_tickets
    """
    logger.info(f"[TOOL] get_ticket invoked, ticket_id: {ticket_id}")
    return ticket_tools.get_ticket(current_context(), ticket_id)


@mcp.tool()
def reserve_ticket(ticket_id: int, seats: int = 1) -> dict:
    """Reserve seats for the signed-in user.

    The total price must stay within the amount the user approved on the
    consent page, if one was set.

    Args:
        ticket_id: Event id from list_tickets
        seats: Number of seats to reserve
    """
    logger.info(f"[TOOL] reserve_ticket invoked, ticket_id: {ticket_id}, seats: {seats}")
    return ticket_tools.reserve_ticket(current_context(), ticket_id, seats)


@mcp.tool()
def my_reservations() -> list:
    """List the signed-in user's active reservations."""
    logger.info("[TOOL] my_reservations invoked")
    return ticket_tools.my_reservations(current_context())


@mcp.tool()
def cancel_reservation(reservation_id: int) -> dict:
    """Cancel one of the signed-in user's reservations and release its seats.

    Args:
        reservation_id: Id returned by reserve_ticket
    """
    logger.info(f"[TOOL] cancel_reservation invoked, reservation_id: {reservation_id}")
    return ticket_tools.cancel_reservation(current_context(), reservation_id)
