"""REST routes for tickets and reservations, authenticated by the login session.

The same TicketService backs the MCP tools; here the acting user is the one
stored in the session cookie by /auth/login.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from oauth.models import UserIdentity
from oauth.stores import load_session
from tickets import TicketError, TicketService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tickets"])


def _service(request: Request) -> TicketService:
    return request.app.state.tickets


def _positive_int(value) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


async def _session_user(request: Request) -> Optional[UserIdentity]:
    return (await load_session(request)).authenticated_user


def _not_authenticated() -> JSONResponse:
    return JSONResponse({"error": "Not authenticated"}, status_code=401)


@router.get("/tickets")
async def list_tickets(request: Request):
    return [t.to_dict() for t in _service(request).list_tickets()]


@router.get("/tickets/{ticket_id}")
async def get_ticket(request: Request, ticket_id: str):
    number = _positive_int(ticket_id)
    if number is None:
        return JSONResponse({"error": "Invalid ticket ID"}, status_code=400)
    ticket = _service(request).get_ticket(number)
    if ticket is None:
        return JSONResponse({"error": "Ticket not found"}, status_code=404)
    return ticket.to_dict()


@router.post("/tickets/{ticket_id}/reserve")
async def reserve_ticket(request: Request, ticket_id: str):
    user = await _session_user(request)
    if user is None:
        return _not_authenticated()

    try:
        data = await request.json()
    except ValueError:
        data = None
    number = _positive_int(ticket_id)
    seats = _positive_int(data.get("seats")) if isinstance(data, dict) else None
    if number is None or seats is None:
        return JSONResponse({"error": "Invalid ticket ID or seat count"}, status_code=400)

    try:
        reservation = _service(request).reserve(user.id, number, seats)
    except TicketError as e:
        logger.info(f"[TICKETS] Reservation refused for {user.username}: {e}")
        return JSONResponse({"error": str(e)}, status_code=400)
    return JSONResponse({"message": "Reservation successful", "reservation": reservation.to_dict()},
                        status_code=201)


@router.get("/my-reservations")
async def my_reservations(request: Request):
    user = await _session_user(request)
    if user is None:
        return _not_authenticated()
    return [r.to_dict() for r in _service(request).user_reservations(user.id)]


@router.delete("/reservations/{reservation_id}")
async def cancel_reservation(request: Request, reservation_id: str):
    user = await _session_user(request)
    if user is None:
        return _not_authenticated()

    number = _positive_int(reservation_id)
    if number is None:
        return JSONResponse({"error": "Invalid reservation ID"}, status_code=400)
    try:
        _service(request).cancel(number, user.id)
    except TicketError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return {"message": "Reservation cancelled successfully"}
