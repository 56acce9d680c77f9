"""
Session Store Tests

Token lifecycle, persistence backends and the authenticated-call guard.
"""

import asyncio

import pytest


class TestSessionStore:
    """Tests for SessionStore."""

    @pytest.fixture
    def session(self):
        from unisphere.session import SessionStore
        return SessionStore()

    def test_starts_logged_out(self, session):
        """Test that a new store has no token."""
        assert asyncio.run(session.get_token()) is None
        assert asyncio.run(session.is_authenticated()) is False

    def test_set_and_get(self, session):
        """Test storing a token."""
        asyncio.run(session.set_token("abc"))
        assert asyncio.run(session.get_token()) == "abc"

    def test_empty_token_rejected(self, session):
        """Test that an empty token cannot be stored."""
        with pytest.raises(ValueError):
            asyncio.run(session.set_token(""))

    def test_clear_is_idempotent(self, session):
        """Test clearing twice."""
        asyncio.run(session.set_token("abc"))
        asyncio.run(session.clear())
        asyncio.run(session.clear())
        assert asyncio.run(session.get_token()) is None

    def test_require_token_when_absent(self, session):
        """Test that require_token raises Unauthenticated."""
        from unisphere.errors import Unauthenticated

        with pytest.raises(Unauthenticated):
            asyncio.run(session.require_token())


class TestAuthorized:
    """Tests for SessionStore.authorized."""

    def test_no_token_skips_call(self):
        """Test that the call is never made without a token."""
        from unisphere.errors import Unauthenticated
        from unisphere.session import SessionStore

        calls = []

        async def call(token):
            calls.append(token)

        with pytest.raises(Unauthenticated):
            asyncio.run(SessionStore().authorized(call))
        assert calls == []

    def test_passes_token(self):
        """Test that the stored token is handed to the call."""
        from unisphere.session import MemoryTokenBackend, SessionStore

        session = SessionStore(MemoryTokenBackend("abc"))

        async def call(token):
            return f"got {token}"

        assert asyncio.run(session.authorized(call)) == "got abc"

    def test_rejection_clears_session(self):
        """Test that a server-side auth failure logs the user out."""
        from unisphere.errors import Unauthenticated
        from unisphere.session import MemoryTokenBackend, SessionStore

        session = SessionStore(MemoryTokenBackend("expired"))

        async def call(token):
            raise Unauthenticated("401")

        with pytest.raises(Unauthenticated):
            asyncio.run(session.authorized(call))
        assert asyncio.run(session.get_token()) is None

    def test_rejection_of_replaced_token_keeps_session(self):
        """Test that a late 401 for an old token does not log out the new one."""
        from unisphere.errors import Unauthenticated
        from unisphere.session import MemoryTokenBackend, SessionStore

        session = SessionStore(MemoryTokenBackend("old-token"))

        async def scenario():
            release = asyncio.get_running_loop().create_future()
            sent_with = []

            async def call(token):
                sent_with.append(token)
                await release
                raise Unauthenticated("401")

            held = asyncio.create_task(session.authorized(call))
            while not sent_with:
                await asyncio.sleep(0)
            await session.set_token("new-token")
            release.set_result(None)
            with pytest.raises(Unauthenticated):
                await held
            return sent_with, await session.get_token()

        sent_with, token = asyncio.run(scenario())
        assert sent_with == ["old-token"]
        assert token == "new-token"

    def test_other_errors_keep_session(self):
        """Test that non-auth failures leave the token alone."""
        from unisphere.errors import NetworkFailure
        from unisphere.session import MemoryTokenBackend, SessionStore

        session = SessionStore(MemoryTokenBackend("abc"))

        async def call(token):
            raise NetworkFailure("down")

        with pytest.raises(NetworkFailure):
            asyncio.run(session.authorized(call))
        assert asyncio.run(session.get_token()) == "abc"


class TestSQLiteTokenBackend:
    """Tests for the persisted token backend."""

    def test_survives_new_store(self, tmp_path):
        """Test that a token is visible to a fresh store on the same file."""
        from unisphere.session import SessionStore, SQLiteTokenBackend

        db = tmp_path / "state" / "session.db"
        asyncio.run(SessionStore(SQLiteTokenBackend(db)).set_token("persisted"))

        restarted = SessionStore(SQLiteTokenBackend(db))
        assert asyncio.run(restarted.get_token()) == "persisted"

    def test_overwrite_and_delete(self, tmp_path):
        """Test replacing and removing the stored token."""
        from unisphere.session import SQLiteTokenBackend

        backend = SQLiteTokenBackend(tmp_path / "session.db")
        assert backend.load() is None

        backend.save("one")
        backend.save("two")
        assert backend.load() == "two"

        backend.delete()
        backend.delete()
        assert backend.load() is None
