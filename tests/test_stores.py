"""Tests for the session store."""
import pytest

from oauth.models import ClientSummary, ScopeDescriptor, UserIdentity
from oauth.stores import Session, SessionStore

CLIENT = ClientSummary(client_id="5001", client_name="Demo")
SCOPES = [ScopeDescriptor(name="mcp:tickets:read"), ScopeDescriptor(name="mcp:tickets:write")]


class TestSessionStore:
    @pytest.mark.asyncio
    async def test_unknown_id_gives_new_session(self):
        store = SessionStore()
        session = await store.load("does-not-exist")
        assert session.is_new
        assert session.id != "does-not-exist"
        assert not session.has_pending

    @pytest.mark.asyncio
    async def test_persist_and_reload(self):
        store = SessionStore()
        session = await store.load(None)
        session.begin_pending("ticket-1", CLIENT, SCOPES)
        session.authenticated_user = UserIdentity(id="1", username="testuser")
        await store.persist(session)

        loaded = await store.load(session.id)
        assert not loaded.is_new
        assert loaded.pending_ticket == "ticket-1"
        assert loaded.pending_client == CLIENT
        assert [s.name for s in loaded.pending_scopes] == ["mcp:tickets:read", "mcp:tickets:write"]
        assert loaded.authenticated_user.username == "testuser"

    @pytest.mark.asyncio
    async def test_unpersisted_changes_are_invisible(self):
        store = SessionStore()
        session = await store.load(None)
        await store.persist(session)

        session.begin_pending("ticket-1", CLIENT, SCOPES)
        assert not (await store.load(session.id)).has_pending

    @pytest.mark.asyncio
    async def test_expired_session(self):
        store = SessionStore(ttl=-1)
        session = await store.load(None)
        await store.persist(session)
        assert (await store.load(session.id)).id != session.id

    @pytest.mark.asyncio
    async def test_purge_expired(self):
        store = SessionStore(ttl=-1)
        for _ in range(3):
            await store.persist(await store.load(None))
        assert await store.purge_expired() == 3

    @pytest.mark.asyncio
    async def test_discard(self):
        store = SessionStore()
        session = await store.load(None)
        await store.persist(session)
        await store.discard(session.id)
        assert (await store.load(session.id)).is_new

    @pytest.mark.asyncio
    async def test_take_pending_claims_once(self):
        store = SessionStore()
        session = await store.load(None)
        session.begin_pending("ticket-1", CLIENT, SCOPES)
        session.authenticated_user = UserIdentity(id="1", username="testuser")
        await store.persist(session)

        claimed = await store.take_pending(session.id, "ticket-1")

        assert claimed.pending_ticket == "ticket-1"
        assert await store.take_pending(session.id, "ticket-1") is None
        remaining = await store.load(session.id)
        assert not remaining.has_pending
        assert remaining.authenticated_user.username == "testuser"

    @pytest.mark.asyncio
    async def test_take_pending_wrong_ticket_leaves_state(self):
        store = SessionStore()
        session = await store.load(None)
        session.begin_pending("ticket-1", CLIENT, SCOPES)
        await store.persist(session)

        assert await store.take_pending(session.id, "ticket-2") is None
        assert await store.take_pending("unknown", "ticket-1") is None
        assert (await store.load(session.id)).pending_ticket == "ticket-1"

    @pytest.mark.asyncio
    async def test_regenerate_moves_state_to_new_id(self):
        store = SessionStore()
        session = await store.load(None)
        session.begin_pending("ticket-1", CLIENT, SCOPES)
        await store.persist(session)

        renewed = await store.regenerate(session)

        assert renewed.id != session.id
        assert session.id not in store._records
        assert (await store.load(renewed.id)).pending_ticket == "ticket-1"


class TestSession:
    def test_partial_pending_state_treated_as_absent(self):
        session = Session(id="s-1", pending_ticket="ticket-1")
        assert not session.has_pending
        assert not session.matches_ticket("ticket-1")

    def test_clear_pending_keeps_user(self):
        session = Session(id="s-1", authenticated_user=UserIdentity(id="1", username="u"))
        session.begin_pending("ticket-1", CLIENT, SCOPES)
        session.clear_pending()
        assert not session.has_pending
        assert session.authenticated_user is not None

    def test_matches_ticket(self):
        session = Session(id="s-1")
        session.begin_pending("ticket-1", CLIENT, SCOPES)
        assert session.matches_ticket("ticket-1")
        assert not session.matches_ticket("ticket-2")
        assert not session.matches_ticket("")
        assert not session.matches_ticket(None)
        assert not session.matches_ticket("チケット")
