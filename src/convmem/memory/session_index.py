"""Session → user association index.

The context builder needs every user who wrote into a session, but session
items do not always carry a user id. Writers record the link here; entries
expire with the session TTL and the index is capped so a long-running process
does not keep one entry per session forever.
"""

import asyncio
import time
from collections import OrderedDict
from collections.abc import Callable


class SessionUserIndex:
    """Bounded LRU + TTL map of session id → user ids.

    Linking a user refreshes the session's timestamp; reads do not.
    """

    def __init__(
        self,
        max_sessions: int = 10_000,
        ttl_seconds: float = 86_400.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_sessions = max_sessions
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # session_id → (user_ids, last_linked_at)
        self._sessions: OrderedDict[str, tuple[frozenset[str], float]] = OrderedDict()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def _live(self, session_id: str, now: float) -> frozenset[str] | None:
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        users, linked_at = entry
        if now - linked_at > self.ttl_seconds:
            del self._sessions[session_id]
            return None
        return users

    async def link(self, session_id: str, user_id: str) -> frozenset[str]:
        async with self._lock:
            now = self._clock()
            users = (self._live(session_id, now) or frozenset()) | {user_id}
            self._sessions[session_id] = (users, now)
            self._sessions.move_to_end(session_id)
            while len(self._sessions) > self.max_sessions:
                self._sessions.popitem(last=False)
            return users

    async def users(self, session_id: str) -> frozenset[str]:
        async with self._lock:
            users = self._live(session_id, self._clock())
            if users is None:
                return frozenset()
            self._sessions.move_to_end(session_id)
            return users

    async def forget_session(self, session_id: str) -> bool:
        async with self._lock:
            return self._sessions.pop(session_id, None) is not None

    async def prune(self) -> int:
        """Drop expired sessions. Returns the number removed."""
        async with self._lock:
            now = self._clock()
            expired = [
                s for s, (_, linked_at) in self._sessions.items()
                if now - linked_at > self.ttl_seconds
            ]
            for session_id in expired:
                del self._sessions[session_id]
            return len(expired)
