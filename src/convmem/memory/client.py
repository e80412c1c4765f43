"""Memory store client: sanitize, gate, scope and persist conversation turns."""

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from ..core.config import Settings
from ..core.enums import MemoryScope
from ..core.exceptions import ConsentRequiredError, NotFoundError, ValidationError
from ..core.schemas import (
    AddOptions,
    CleanupResult,
    ConversationTurn,
    MemoryFilter,
    MemoryItem,
    ScoredMemory,
    SearchOptions,
    utc_now,
)
from ..privacy.consent import ConsentLedger
from ..privacy.redactor import PIIRedactor
from ..privacy.retention import RetentionPolicyTable, RetentionSweeper
from ..storage.base import MemoryBackend
from ..utils.logging_config import get_logger
from ..utils.metrics import CLEANUP_DELETIONS, MEMORY_ITEMS_WRITTEN, MEMORY_WRITES
from .session_index import SessionUserIndex

logger = get_logger(__name__)

# Upper bound on one widened backend page when expired or consent-gated items
# crowd visible ones out of a search.
_MAX_SEARCH_FETCH = 1000


class MemoryStoreClient:
    """Writes, searches and sweeps memory items in the durable backend.

    ``backend`` is expected to already apply the retry policy
    (see :class:`~convmem.storage.retry.RetryingBackend`).
    """

    def __init__(
        self,
        backend: MemoryBackend,
        redactor: PIIRedactor,
        consent: ConsentLedger,
        retention: RetentionPolicyTable,
        settings: Settings,
    ) -> None:
        self.backend = backend
        self.redactor = redactor
        self.consent = consent
        self.retention = retention
        self.settings = settings
        self.allowed_categories = frozenset(settings.privacy.allowed_categories)
        self.sweeper = RetentionSweeper(
            retention, backend, batch_size=settings.memory.cleanup_batch_size
        )
        self.session_users = SessionUserIndex(
            max_sessions=settings.memory.context_cache_max_size * 10,
            ttl_seconds=settings.memory.session_memory_ttl_ms / 1000,
        )

    # ---- Writes ----

    async def add(
        self,
        turns: Sequence[ConversationTurn],
        options: AddOptions,
        now: datetime | None = None,
    ) -> list[str]:
        """Persist a batch of turns; returns the created item ids.

        The whole batch is validated and sanitized before anything is sent, so a
        rejected turn leaves nothing persisted.
        """
        category = options.category
        if not options.session_id:
            raise ValidationError("session_id is required")
        if not turns:
            raise ValidationError("At least one turn is required")
        if category not in self.allowed_categories:
            raise ValidationError(f"Category '{category.value}' is not allowed")

        sanitized = []
        for turn in turns:
            self.redactor.validate_content(turn.content)
            sanitized.append(self.redactor.sanitize(turn.content))

        scope = self._resolve_scope(options)
        requires_consent = self.retention.requires_consent(category)
        if requires_consent and not self.consent.has_valid_consent(options.user_id, category, now):
            MEMORY_WRITES.labels(category=category.value, status="consent_required").inc()
            logger.info(
                "memory_add_rejected",
                reason="consent_required",
                user_id=options.user_id,
                session_id=options.session_id,
                category=category.value,
            )
            raise ConsentRequiredError(options.user_id, category.value)

        created_at = now or utc_now()
        expires_at = self.retention.compute_expiry(category, created_at)
        items = [
            MemoryItem(
                session_id=options.session_id,
                user_id=options.user_id,
                conversation_id=options.conversation_id,
                agent_id=options.agent_id,
                category=category,
                scope=scope,
                role=turn.role,
                content=result.text,
                metadata={**options.metadata, "scope_ttl_ms": self._scope_ttl_ms(scope)},
                created_at=created_at,
                expires_at=expires_at,
                pii_redacted=result.was_redacted,
                redacted_kinds=result.redacted_kinds,
                requires_consent=requires_consent,
            )
            for turn, result in zip(turns, sanitized)
        ]

        try:
            ids = await self.backend.add(items)
        except Exception:
            MEMORY_WRITES.labels(category=category.value, status="error").inc()
            raise

        if options.user_id:
            await self.session_users.link(options.session_id, options.user_id)
        MEMORY_WRITES.labels(category=category.value, status="success").inc()
        MEMORY_ITEMS_WRITTEN.labels(category=category.value, scope=scope.value).inc(len(ids))
        logger.info(
            "memory_added",
            session_id=options.session_id,
            user_id=options.user_id,
            conversation_id=options.conversation_id,
            category=category.value,
            scope=scope.value,
            count=len(ids),
            pii_redacted=any(i.pii_redacted for i in items),
        )
        return ids

    def _resolve_scope(self, options: AddOptions) -> MemoryScope:
        requested = options.scope or self.settings.memory.default_scope
        if requested == MemoryScope.AGENT:
            if not options.agent_id:
                raise ValidationError("agent scope requires agent_id")
            return MemoryScope.AGENT
        if requested == MemoryScope.USER and options.user_id:
            return MemoryScope.USER
        return MemoryScope.SESSION

    def _scope_ttl_ms(self, scope: MemoryScope) -> int | None:
        # Advisory physical TTL for the backend; visibility still follows expires_at.
        if scope == MemoryScope.SESSION:
            return self.settings.memory.session_memory_ttl_ms
        if scope == MemoryScope.USER:
            return self.settings.memory.user_memory_ttl_ms
        return None

    async def update(
        self,
        item_id: str,
        content: str,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> MemoryItem:
        """Replace an item's content in place.

        The new content goes through the same PII and consent checks as ``add``.
        Scope, owner and ``expires_at`` are kept; metadata is merged.
        """
        if not item_id:
            raise ValidationError("item_id is required")
        self.redactor.validate_content(content)
        result = self.redactor.sanitize(content)

        existing = await self.backend.get(item_id)
        if existing is None or self.retention.is_expired(existing, now):
            raise NotFoundError(item_id, "Memory not found")
        category = existing.category
        gated = existing.requires_consent or self.retention.requires_consent(category)
        if gated and not self.consent.has_valid_consent(existing.user_id, category, now):
            MEMORY_WRITES.labels(category=category.value, status="consent_required").inc()
            raise ConsentRequiredError(existing.user_id, category.value)

        updated = existing.model_copy(
            update={
                "content": result.text,
                "metadata": {**existing.metadata, **(metadata or {})},
                "pii_redacted": result.was_redacted,
                "redacted_kinds": result.redacted_kinds,
                "updated_at": now or utc_now(),
            }
        )
        if not await self.backend.update(updated):
            raise NotFoundError(item_id, "Memory not found")
        MEMORY_WRITES.labels(category=category.value, status="updated").inc()
        logger.info(
            "memory_updated",
            item_id=item_id,
            session_id=existing.session_id,
            user_id=existing.user_id,
            category=category.value,
            pii_redacted=result.was_redacted,
        )
        return updated

    # ---- Reads ----

    def is_visible(self, item: MemoryItem, now: datetime | None = None) -> bool:
        """Local safety net: not expired and not consent-invalid."""
        if self.retention.is_expired(item, now):
            return False
        if item.requires_consent or self.retention.requires_consent(item.category):
            return self.consent.has_valid_consent(item.user_id, item.category, now)
        return True

    async def search(
        self,
        query: str,
        options: SearchOptions,
        now: datetime | None = None,
    ) -> list[ScoredMemory]:
        """Scoped search ranked by score, ties broken by recency."""
        filters: list[MemoryFilter] = []
        if options.session_id:
            filters.append(
                MemoryFilter(
                    session_id=options.session_id,
                    scope=MemoryScope.SESSION,
                    categories=options.categories,
                )
            )
        if options.user_id:
            filters.append(
                MemoryFilter(
                    user_id=options.user_id,
                    scope=MemoryScope.USER,
                    categories=options.categories,
                )
            )
        if options.agent_id:
            filters.append(
                MemoryFilter(
                    agent_id=options.agent_id,
                    scope=MemoryScope.AGENT,
                    categories=options.categories,
                )
            )
        if not filters:
            raise ValidationError("search requires a session_id, user_id or agent_id")

        seen: dict[str, ScoredMemory] = {}
        for flt in filters:
            for scored in await self._search_visible(query, flt, options.limit, now):
                seen.setdefault(scored.item.id, scored)

        ranked = sorted(
            seen.values(),
            key=lambda s: (s.score, s.item.created_at),
            reverse=True,
        )
        return ranked[: options.limit]

    async def _search_visible(
        self, query: str, flt: MemoryFilter, limit: int, now: datetime | None
    ) -> list[ScoredMemory]:
        """Filter before truncating: widen the page until *limit* items survive."""
        fetch = limit
        while True:
            results = await self.backend.search(query, flt, fetch)
            visible = [s for s in results if flt.matches(s.item) and self.is_visible(s.item, now)]
            if len(visible) >= limit or len(results) < fetch or fetch >= _MAX_SEARCH_FETCH:
                return visible[:limit]
            fetch = min(fetch * 4, _MAX_SEARCH_FETCH)

    async def list_session_memories(
        self, session_id: str, now: datetime | None = None
    ) -> list[MemoryItem]:
        limit = min(self.settings.memory.session_fetch_limit, 100)
        results = await self.search("", SearchOptions(session_id=session_id, limit=limit), now)
        return [r.item for r in results]

    async def top_user_memories(
        self, user_id: str, query: str, k: int, now: datetime | None = None
    ) -> list[MemoryItem]:
        results = await self.search(query, SearchOptions(user_id=user_id, limit=k), now)
        return [r.item for r in results]

    async def users_for_session(self, session_id: str) -> frozenset[str]:
        return await self.session_users.users(session_id)

    # ---- Deletes ----

    async def cleanup(
        self, flt: MemoryFilter, now: datetime | None = None, *, dry_run: bool = False
    ) -> CleanupResult:
        """Sweep expired, auto-deletable items matching the filter.

        With ``dry_run`` nothing is deleted and the count is what would be.
        """
        if flt.is_unbounded():
            raise ValidationError("cleanup requires a session_id or user_id")
        deleted = await self.sweeper.cleanup(flt, now, dry_run=dry_run)
        return CleanupResult(deleted_count=deleted, dry_run=dry_run)

    async def forget(self, flt: MemoryFilter) -> CleanupResult:
        """User-initiated erasure of every item matching the filter, expired or not."""
        if flt.is_unbounded():
            raise ValidationError("forget requires a session_id or user_id")
        candidates = await self.backend.search("", flt, self.settings.memory.cleanup_batch_size)
        ids = [c.item.id for c in candidates if flt.matches(c.item)]
        deleted = await self.backend.delete(ids) if ids else 0
        if flt.session_id and not flt.user_id:
            await self.session_users.forget_session(flt.session_id)
        CLEANUP_DELETIONS.labels(reason="user_request").inc(deleted)
        logger.info(
            "memory_forgotten",
            session_id=flt.session_id,
            user_id=flt.user_id,
            deleted=deleted,
        )
        return CleanupResult(deleted_count=deleted)

    async def delete(self, item_id: str) -> None:
        if not item_id:
            raise ValidationError("item_id is required")
        if await self.backend.delete([item_id]) == 0:
            raise NotFoundError(item_id, "Memory not found")

    async def aclose(self) -> None:
        await self.backend.aclose()
