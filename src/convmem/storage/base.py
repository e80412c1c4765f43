"""Abstract interface of the durable memory backend."""

from abc import ABC, abstractmethod

from ..core.schemas import MemoryFilter, MemoryItem, ScoredMemory


class MemoryBackend(ABC):
    """Remote memory store operations the engine relies on.

    Writes are all-or-nothing per item and upsert by ``item.id``, so a retried
    ``add`` never duplicates an item.
    """

    @abstractmethod
    async def add(self, items: list[MemoryItem]) -> list[str]:
        """Persist items, returning their ids in input order."""
        ...

    @abstractmethod
    async def search(self, query: str, flt: MemoryFilter, limit: int) -> list[ScoredMemory]:
        """Return up to *limit* items matching *flt*, scored against *query*.

        An empty query lists matching items (score 0), most recent first.
        """
        ...

    @abstractmethod
    async def delete(self, ids: list[str]) -> int:
        """Delete items by id. Returns how many existed; unknown ids are ignored."""
        ...

    @abstractmethod
    async def get(self, item_id: str) -> MemoryItem | None:
        """Fetch one item by id, or ``None`` when it does not exist."""
        ...

    @abstractmethod
    async def update(self, item: MemoryItem) -> bool:
        """Replace a stored item in place. Returns ``False`` when it does not exist."""
        ...

    async def aclose(self) -> None:
        """Release network resources."""
        return None
