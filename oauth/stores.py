"""Server-side session store for the authorization flow.

Sessions are keyed by an opaque id carried in a cookie. Handlers work on a
copy: ``load`` returns a detached ``Session``, mutations stay local until
``persist`` is awaited. Anything that a following request must read (the
pending ticket written on INTERACTION) is persisted before the response is
returned.
"""

import logging
import secrets
import time
from dataclasses import dataclass, field, replace
from typing import Optional

from oauth.models import ClientSummary, ScopeDescriptor, UserIdentity

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = 24 * 60 * 60  # 24 hours


@dataclass
class Session:
    id: str
    pending_ticket: Optional[str] = None
    pending_client: Optional[ClientSummary] = None
    pending_scopes: Optional[list] = None
    authenticated_user: Optional[UserIdentity] = None
    is_new: bool = field(default=False, compare=False)

    @property
    def has_pending(self) -> bool:
        """True only when ticket, client and scopes are all present."""
        present = [self.pending_ticket is not None, self.pending_client is not None, self.pending_scopes is not None]
        if any(present) and not all(present):
            logger.warning(f"[SESSION] Partial pending state in session {self.id[:8]}..., treating as absent")
            return False
        return all(present)

    def begin_pending(self, ticket: str, client: ClientSummary, scopes: list) -> None:
        self.pending_ticket = ticket
        self.pending_client = client
        self.pending_scopes = list(scopes)

    def clear_pending(self) -> None:
        self.pending_ticket = None
        self.pending_client = None
        self.pending_scopes = None

    def matches_ticket(self, ticket: Optional[str]) -> bool:
        return bool(ticket) and self.has_pending and secrets.compare_digest(ticket.encode(), self.pending_ticket.encode())

    def to_record(self) -> dict:
        user = self.authenticated_user
        return {
            "pending_ticket": self.pending_ticket,
            "pending_client": self.pending_client.to_record() if self.pending_client else None,
            "pending_scopes": (
                [{"name": s.name, "description": s.description, "default_entry": s.default_entry}
                 for s in self.pending_scopes]
                if self.pending_scopes is not None else None
            ),
            "authenticated_user": (
                {"id": user.id, "username": user.username, "email": user.email} if user else None
            ),
        }

    @classmethod
    def from_record(cls, session_id: str, record: dict) -> "Session":
        client = record.get("pending_client")
        scopes = record.get("pending_scopes")
        user = record.get("authenticated_user")
        return cls(
            id=session_id,
            pending_ticket=record.get("pending_ticket"),
            pending_client=ClientSummary.from_record(client) if client else None,
            pending_scopes=[ScopeDescriptor(**s) for s in scopes] if scopes is not None else None,
            authenticated_user=UserIdentity(**user) if user else None,
        )


class SessionStore:
    """In-memory session records with a sliding TTL."""

    def __init__(self, ttl: int = DEFAULT_SESSION_TTL):
        self.ttl = ttl
        # session_id -> (record, expires_at)
        self._records: dict[str, tuple[dict, float]] = {}

    async def load(self, session_id: Optional[str]) -> Session:
        """Return the stored session, or a fresh one if unknown or expired."""
        if session_id:
            entry = self._records.get(session_id)
            if entry is not None:
                record, expires_at = entry
                if time.time() <= expires_at:
                    return Session.from_record(session_id, record)
                del self._records[session_id]
                logger.info(f"[SESSION] Session {session_id[:8]}... expired")

        return Session(id=secrets.token_urlsafe(32), is_new=True)

    async def persist(self, session: Session) -> None:
        self._records[session.id] = (session.to_record(), time.time() + self.ttl)
        session.is_new = False

    async def take_pending(self, session_id: Optional[str], ticket: Optional[str]) -> Optional[Session]:
        """Claim the pending request matching ``ticket`` and clear it in storage.

        Returns the session as it was before clearing, or None when the ticket
        is not pending (already claimed by a concurrent decision, or never
        issued). No await between check and write, so one caller wins.
        """
        entry = self._records.get(session_id) if session_id else None
        if entry is None or time.time() > entry[1]:
            return None
        claimed = Session.from_record(session_id, entry[0])
        if not claimed.matches_ticket(ticket):
            return None
        remaining = Session.from_record(session_id, entry[0])
        remaining.clear_pending()
        self._records[session_id] = (remaining.to_record(), time.time() + self.ttl)
        return claimed

    async def regenerate(self, session: Session) -> Session:
        """Move the session's state to a fresh id and drop the old one."""
        renewed = replace(session, id=secrets.token_urlsafe(32), is_new=False)
        await self.persist(renewed)
        await self.discard(session.id)
        logger.info(f"[SESSION] Session {session.id[:8]}... renewed as {renewed.id[:8]}...")
        return renewed

    async def discard(self, session_id: str) -> None:
        self._records.pop(session_id, None)

    async def purge_expired(self) -> int:
        now = time.time()
        expired = [sid for sid, (_, expires_at) in self._records.items() if now > expires_at]
        for sid in expired:
            del self._records[sid]
        return len(expired)


# ============== Request helpers ==============

async def load_session(request) -> Session:
    """Load the session referenced by the request's cookie."""
    config = request.app.state.config
    store: SessionStore = request.app.state.sessions
    return await store.load(request.cookies.get(config.session_cookie_name))


def attach_session_cookie(response, session: Session, config) -> None:
    response.set_cookie(
        key=config.session_cookie_name,
        value=session.id,
        max_age=config.session_ttl,
        httponly=True,
        secure=config.session_cookie_secure,
        samesite="lax",
    )
