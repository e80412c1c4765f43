"""In-process TTL/LRU cache for built conversation contexts.

Invalidation uses per-key generations: a computation records the generation
of its key when it starts and is only stored if nothing invalidated the key
in the meantime. A context built from pre-write data can therefore never be
cached after the write returned.
"""

import asyncio
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import NamedTuple

from ..core.schemas import ConversationMemoryContext
from ..utils.logging_config import get_logger
from ..utils.metrics import CONTEXT_CACHE_HITS, CONTEXT_CACHE_MISSES

logger = get_logger(__name__)


class CacheKey(NamedTuple):
    conversation_id: str
    session_id: str
    user_id: str | None = None


@dataclass
class _Entry:
    context: ConversationMemoryContext
    expires_at: float


class ContextCache:
    """Caches contexts by (conversation, session, user).

    Degraded contexts are never stored. Hits return the identical object.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[CacheKey, _Entry] = OrderedDict()
        # Only keys with a computation in flight carry a generation.
        self._generations: dict[CacheKey, int] = {}
        self._in_flight: dict[CacheKey, int] = {}
        # Builds that concurrent misses on the same key can join.
        self._pending: dict[
            CacheKey, tuple[int, asyncio.Future[ConversationMemoryContext]]
        ] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: CacheKey) -> ConversationMemoryContext | None:
        async with self._lock:
            return self._lookup(key)

    def _lookup(self, key: CacheKey) -> ConversationMemoryContext | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return entry.context

    async def get_or_compute(
        self,
        key: CacheKey,
        factory: Callable[[], Awaitable[ConversationMemoryContext]],
    ) -> ConversationMemoryContext:
        """Return the cached context or build it once.

        Concurrent misses on one key share a single build, unless the key was
        invalidated after that build started; later callers then start a fresh one.
        """
        async with self._lock:
            cached = self._lookup(key)
            if cached is not None:
                CONTEXT_CACHE_HITS.inc()
                return cached
            CONTEXT_CACHE_MISSES.inc()
            generation = self._generations.setdefault(key, 0)
            pending = self._pending.get(key)
            if pending is not None and pending[0] == generation:
                shared = pending[1]
            else:
                shared = None
                future: asyncio.Future[ConversationMemoryContext] = (
                    asyncio.get_running_loop().create_future()
                )
                self._pending[key] = (generation, future)
                self._in_flight[key] = self._in_flight.get(key, 0) + 1

        if shared is not None:
            return await asyncio.shield(shared)

        try:
            context = await factory()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Marks the exception retrieved when no other caller joined.
            future.exception()
            raise
        else:
            future.set_result(context)
        finally:
            async with self._lock:
                stale = self._generations.get(key, 0) != generation
                self._release(key, future)

        if context.degraded:
            return context
        if stale:
            logger.debug("context_cache_store_skipped", reason="invalidated", key=key)
            return context
        async with self._lock:
            self._store(key, context)
        return context

    def _release(self, key: CacheKey, future: asyncio.Future) -> None:
        pending = self._pending.get(key)
        if pending is not None and pending[1] is future:
            del self._pending[key]
        remaining = self._in_flight[key] - 1
        if remaining:
            self._in_flight[key] = remaining
        else:
            del self._in_flight[key]
            self._generations.pop(key, None)

    def _store(self, key: CacheKey, context: ConversationMemoryContext) -> None:
        self._entries[key] = _Entry(context, self._clock() + self.ttl_seconds)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    async def invalidate(
        self,
        *,
        conversation_id: str | None = None,
        session_id: str | None = None,
        user_id: str | None = None,
    ) -> int:
        """Drop every entry touching the given conversation, session or user.

        Returns the number of stored entries removed.
        """
        if conversation_id is None and session_id is None and user_id is None:
            return 0

        def matches(key: CacheKey, context: ConversationMemoryContext | None) -> bool:
            if conversation_id is not None and key.conversation_id == conversation_id:
                return True
            if session_id is not None and key.session_id == session_id:
                return True
            if user_id is not None:
                if key.user_id == user_id:
                    return True
                # Users linked to the session only become known once the build finishes.
                return context is None or user_id in context.user_ids
            return False

        async with self._lock:
            doomed = [k for k, e in self._entries.items() if matches(k, e.context)]
            for key in doomed:
                del self._entries[key]
            for key in self._in_flight:
                if matches(key, None):
                    self._generations[key] = self._generations.get(key, 0) + 1
        if doomed:
            logger.debug(
                "context_cache_invalidated",
                conversation_id=conversation_id,
                session_id=session_id,
                user_id=user_id,
                removed=len(doomed),
            )
        return len(doomed)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
            for key in self._in_flight:
                self._generations[key] = self._generations.get(key, 0) + 1
