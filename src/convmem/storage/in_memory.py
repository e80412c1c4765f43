"""Process-local memory backend for lite mode and tests."""

import re

from ..core.schemas import MemoryFilter, MemoryItem, ScoredMemory
from .base import MemoryBackend

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def _tokens(text: str) -> set[str]:
    return set(_TOKEN_RE.findall(text.lower()))


class InMemoryBackend(MemoryBackend):
    """Backend that keeps items in a dict; scores by query-token overlap."""

    def __init__(self) -> None:
        self._items: dict[str, MemoryItem] = {}

    async def add(self, items: list[MemoryItem]) -> list[str]:
        for item in items:
            self._items[item.id] = item
        return [item.id for item in items]

    async def search(self, query: str, flt: MemoryFilter, limit: int) -> list[ScoredMemory]:
        query_tokens = _tokens(query)
        scored = []
        for item in self._items.values():
            if not flt.matches(item):
                continue
            score = 0.0
            if query_tokens:
                overlap = query_tokens & _tokens(item.content)
                score = len(overlap) / len(query_tokens)
            scored.append(ScoredMemory(item=item, score=score))
        scored.sort(key=lambda s: (s.score, s.item.created_at), reverse=True)
        return scored[:limit]

    async def delete(self, ids: list[str]) -> int:
        deleted = 0
        for item_id in ids:
            if self._items.pop(item_id, None) is not None:
                deleted += 1
        return deleted

    async def get(self, item_id: str) -> MemoryItem | None:
        return self._items.get(item_id)

    async def update(self, item: MemoryItem) -> bool:
        if item.id not in self._items:
            return False
        self._items[item.id] = item
        return True

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items
