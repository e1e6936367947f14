"""Ticket reservation domain.

In-memory events with seat counts and reservations. Reservations made
through a token carrying a "ticket-reservation" authorization detail are
capped by the amount the user granted on the consent page.
"""

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

logger = logging.getLogger(__name__)

RESERVATION_DETAIL_TYPE = "ticket-reservation"


class TicketError(ValueError):
    """Reservation request that cannot be satisfied."""


@dataclass
class Ticket:
    id: int
    title: str
    description: str
    price: float
    available_seats: int
    total_seats: int
    event_date: datetime

    def to_dict(self) -> dict:
        data = asdict(self)
        data["event_date"] = self.event_date.isoformat()
        return data


@dataclass
class Reservation:
    id: int
    user_id: str
    ticket_id: int
    seats_reserved: int
    reservation_date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status: str = "active"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["reservation_date"] = self.reservation_date.isoformat()
        return data


@dataclass
class BookingRestrictions:
    max_amount: Optional[float] = None
    currency: str = "JPY"


def restrictions_from_details(details: list) -> BookingRestrictions:
    """Read the amount cap from RFC 9396 authorization details, if granted."""
    for detail in details or []:
        if detail.get("type") != RESERVATION_DETAIL_TYPE:
            continue
        restrictions = BookingRestrictions()
        other = detail.get("otherFields")
        if other:
            try:
                fields = json.loads(other) if isinstance(other, str) else other
            except json.JSONDecodeError as e:
                logger.error(f"[TICKETS] Failed to parse otherFields: {e}")
                return restrictions
            restrictions.max_amount = fields.get("maxAmount")
            restrictions.currency = fields.get("currency") or "JPY"
        return restrictions
    return BookingRestrictions()


def check_booking(restrictions: BookingRestrictions, price: float, seats: int) -> Optional[str]:
    """Reason the booking exceeds the granted limits, or None when allowed."""
    if restrictions.max_amount is None:
        return None
    total = price * seats
    if total > restrictions.max_amount:
        return (f"Reservation amount {total:,.0f} {restrictions.currency} exceeds the authorized limit "
                f"of {restrictions.max_amount:,.0f} {restrictions.currency}")
    return None


def _seed_tickets() -> list:
    now = datetime.now(timezone.utc)
    return [
        Ticket(1, "OAuth Study Session", "OAuth 2.1 and the MCP authorization spec",
               5000.0, 50, 50, now + timedelta(days=30)),
        Ticket(2, "Python Web Workshop", "Building APIs with FastAPI and Starlette",
               8000.0, 30, 30, now + timedelta(days=21)),
        Ticket(3, "Security Fundamentals Seminar", "Basics of authentication and authorization",
               3000.0, 100, 100, now + timedelta(days=14)),
    ]


class TicketService:
    """Seat inventory and reservations."""

    def __init__(self, tickets: Optional[list] = None):
        self._tickets = {t.id: t for t in (tickets if tickets is not None else _seed_tickets())}
        self._reservations: dict[int, Reservation] = {}
        self._next_reservation_id = 1
        self._lock = threading.Lock()

    def list_tickets(self) -> list:
        """Upcoming events, soonest first."""
        now = datetime.now(timezone.utc)
        upcoming = [t for t in self._tickets.values() if t.event_date > now]
        return sorted(upcoming, key=lambda t: t.event_date)

    def get_ticket(self, ticket_id: int) -> Optional[Ticket]:
        return self._tickets.get(ticket_id)

    def reserve(self, user_id: str, ticket_id: int, seats: int,
                restrictions: Optional[BookingRestrictions] = None) -> Reservation:
        if seats <= 0:
            raise TicketError("Seat count must be positive")

        with self._lock:
            ticket = self._tickets.get(ticket_id)
            if ticket is None:
                raise TicketError("Ticket not found")
            if ticket.available_seats < seats:
                raise TicketError(f"Only {ticket.available_seats} seats available")
            if restrictions is not None:
                reason = check_booking(restrictions, ticket.price, seats)
                if reason:
                    raise TicketError(reason)

            ticket.available_seats -= seats
            reservation = Reservation(id=self._next_reservation_id, user_id=user_id,
                                      ticket_id=ticket_id, seats_reserved=seats)
            self._reservations[reservation.id] = reservation
            self._next_reservation_id += 1

        logger.info(f"[TICKETS] Reservation {reservation.id}: user {user_id} reserved {seats} seat(s) of {ticket_id}")
        return reservation

    def user_reservations(self, user_id: str) -> list:
        active = [r for r in self._reservations.values() if r.user_id == user_id and r.status == "active"]
        return sorted(active, key=lambda r: r.reservation_date, reverse=True)

    def cancel(self, reservation_id: int, user_id: str) -> Reservation:
        with self._lock:
            reservation = self._reservations.get(reservation_id)
            if reservation is None or reservation.user_id != user_id or reservation.status != "active":
                raise TicketError("Reservation not found or already cancelled")
            reservation.status = "cancelled"
            self._tickets[reservation.ticket_id].available_seats += reservation.seats_reserved

        logger.info(f"[TICKETS] Reservation {reservation_id} cancelled by user {user_id}")
        return reservation
