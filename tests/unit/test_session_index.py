"""Unit tests for the session → user association index."""

from convmem.memory.session_index import SessionUserIndex


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestSessionUserIndex:
    async def test_link_accumulates_users(self):
        index = SessionUserIndex()
        await index.link("s1", "alice")
        users = await index.link("s1", "bob")
        assert users == frozenset({"alice", "bob"})
        assert await index.users("s1") == frozenset({"alice", "bob"})

    async def test_unknown_session_is_empty(self):
        index = SessionUserIndex()
        assert await index.users("missing") == frozenset()

    async def test_entries_expire_after_ttl(self):
        clock = FakeClock()
        index = SessionUserIndex(ttl_seconds=10.0, clock=clock)
        await index.link("s1", "alice")
        clock.now = 5.0
        assert await index.users("s1") == frozenset({"alice"})
        clock.now = 11.0
        assert await index.users("s1") == frozenset()
        assert len(index) == 0

    async def test_link_refreshes_ttl(self):
        clock = FakeClock()
        index = SessionUserIndex(ttl_seconds=10.0, clock=clock)
        await index.link("s1", "alice")
        clock.now = 8.0
        await index.link("s1", "bob")
        clock.now = 15.0
        assert await index.users("s1") == frozenset({"alice", "bob"})

    async def test_expired_entry_does_not_leak_old_users(self):
        clock = FakeClock()
        index = SessionUserIndex(ttl_seconds=10.0, clock=clock)
        await index.link("s1", "alice")
        clock.now = 20.0
        assert await index.link("s1", "bob") == frozenset({"bob"})

    async def test_least_recently_used_session_is_evicted(self):
        index = SessionUserIndex(max_sessions=2)
        await index.link("s1", "alice")
        await index.link("s2", "bob")
        await index.users("s1")
        await index.link("s3", "carol")
        assert len(index) == 2
        assert await index.users("s2") == frozenset()
        assert await index.users("s1") == frozenset({"alice"})

    async def test_forget_session(self):
        index = SessionUserIndex()
        await index.link("s1", "alice")
        assert await index.forget_session("s1") is True
        assert await index.forget_session("s1") is False
        assert await index.users("s1") == frozenset()

    async def test_prune_removes_only_expired(self):
        clock = FakeClock()
        index = SessionUserIndex(ttl_seconds=10.0, clock=clock)
        await index.link("old", "alice")
        clock.now = 6.0
        await index.link("fresh", "bob")
        clock.now = 12.0
        assert await index.prune() == 1
        assert len(index) == 1
        assert await index.users("fresh") == frozenset({"bob"})
