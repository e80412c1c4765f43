"""Conversation memory service: the entry point that wires every component together."""

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from ..core.config import Settings
from ..core.exceptions import (
    BackendError,
    ConsentRequiredError,
    PiiRejectedError,
    ValidationError,
)
from ..core.schemas import (
    AddOptions,
    CleanupResult,
    ConsentRecord,
    ConversationMemoryContext,
    ConversationTurn,
    MemoryFilter,
    MemoryItem,
    ScoredMemory,
    SearchOptions,
)
from ..privacy.consent import ConsentLedger, render_privacy_notice
from ..privacy.redactor import PIIRedactor
from ..privacy.retention import RetentionPolicyTable
from ..storage.base import MemoryBackend
from ..storage.http import HttpMemoryBackend
from ..storage.retry import RetryingBackend, RetryPolicy
from ..utils.logging_config import get_logger
from ..utils.timing import timed
from .cache import CacheKey, ContextCache
from .client import MemoryStoreClient
from .context_builder import ConversationContextBuilder

logger = get_logger(__name__)

# Failures that mean "skip the memory write for this turn" in a chat pipeline.
_SKIPPABLE_WRITE_ERRORS = (ValidationError, PiiRejectedError, ConsentRequiredError, BackendError)


class ConversationMemory:
    """
    Coordinates redaction, consent, retention, storage, context building and caching.
    Build one per process with :meth:`from_settings` and close it with :meth:`aclose`.
    """

    def __init__(
        self,
        client: MemoryStoreClient,
        builder: ConversationContextBuilder,
        cache: ContextCache,
        settings: Settings,
    ) -> None:
        self.client = client
        self.builder = builder
        self.cache = cache
        self.settings = settings

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        backend: MemoryBackend | None = None,
        *,
        retry_policy: RetryPolicy | None = None,
    ) -> "ConversationMemory":
        """Factory method to create the service with all dependencies."""
        privacy = settings.privacy
        retention = RetentionPolicyTable(default_ttl_days=privacy.data_retention_days)
        consent = ConsentLedger(
            retention,
            min_version=privacy.min_consent_version,
            max_age_days=privacy.consent_max_age_days,
        )
        redactor = PIIRedactor(
            enabled=privacy.enable_pii_detection,
            auto_sanitize=privacy.auto_sanitization,
            max_content_length=privacy.max_content_length,
        )
        raw_backend = backend if backend is not None else HttpMemoryBackend(settings.backend)
        wrapped = RetryingBackend(
            raw_backend, retry_policy or RetryPolicy.from_settings(settings.backend)
        )
        client = MemoryStoreClient(wrapped, redactor, consent, retention, settings)
        builder = ConversationContextBuilder(client, settings.memory)
        cache = ContextCache(
            ttl_seconds=settings.memory.context_cache_ttl_seconds,
            max_size=settings.memory.context_cache_max_size,
        )
        logger.info(
            "conversation_memory_initialized",
            backend=type(raw_backend).__name__,
            pii_detection=privacy.enable_pii_detection,
            auto_sanitization=privacy.auto_sanitization,
            default_scope=settings.memory.default_scope.value,
        )
        return cls(client, builder, cache, settings)

    # ---- Context ----

    async def get_conversation_context(
        self,
        conversation_id: str,
        session_id: str,
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> ConversationMemoryContext:
        """Return the (possibly cached) context; never raises for backend trouble."""
        if not conversation_id or not session_id:
            raise ValidationError("conversation_id and session_id are required")
        key = CacheKey(conversation_id, session_id, user_id)
        with timed("get_conversation_context", warn_ms=self.settings.memory.context_deadline_ms):
            return await self.cache.get_or_compute(
                key, lambda: self.builder.build(conversation_id, session_id, user_id, now)
            )

    # ---- Writes ----

    async def add(
        self,
        turns: Sequence[ConversationTurn],
        options: AddOptions,
        now: datetime | None = None,
    ) -> list[str]:
        try:
            return await self.client.add(turns, options, now)
        finally:
            # Also after a failed call: a timed-out write may still have landed.
            await self.cache.invalidate(
                conversation_id=options.conversation_id,
                session_id=options.session_id,
                user_id=options.user_id,
            )

    async def safe_add(
        self,
        turns: Sequence[ConversationTurn],
        options: AddOptions,
        now: datetime | None = None,
    ) -> list[str]:
        """Like :meth:`add` but logs and skips the write instead of raising."""
        try:
            return await self.add(turns, options, now)
        except _SKIPPABLE_WRITE_ERRORS as e:
            logger.warning(
                "memory_write_skipped",
                reason=type(e).__name__,
                error=str(e),
                session_id=options.session_id,
                user_id=options.user_id,
                category=options.category.value,
            )
            return []

    # ---- Reads and deletes ----

    async def search(
        self, query: str, options: SearchOptions, now: datetime | None = None
    ) -> list[ScoredMemory]:
        return await self.client.search(query, options, now)

    async def update(
        self,
        item_id: str,
        content: str,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> MemoryItem:
        try:
            item = await self.client.update(item_id, content, metadata, now)
        except BackendError:
            # A timed-out update may still have landed; its owner is unknown here.
            await self.cache.clear()
            raise
        await self.cache.invalidate(
            conversation_id=item.conversation_id,
            session_id=item.session_id,
            user_id=item.user_id,
        )
        return item

    async def cleanup(
        self, flt: MemoryFilter, now: datetime | None = None, *, dry_run: bool = False
    ) -> CleanupResult:
        result = await self.client.cleanup(flt, now, dry_run=dry_run)
        if result.deleted_count and not dry_run:
            await self._invalidate_filter(flt)
        return result

    async def forget(self, flt: MemoryFilter) -> CleanupResult:
        try:
            return await self.client.forget(flt)
        finally:
            await self._invalidate_filter(flt)

    async def delete(self, item_id: str) -> None:
        await self.client.delete(item_id)
        # The owning conversation is unknown here.
        await self.cache.clear()

    async def _invalidate_filter(self, flt: MemoryFilter) -> None:
        await self.cache.invalidate(
            conversation_id=flt.conversation_id,
            session_id=flt.session_id,
            user_id=flt.user_id,
        )

    # ---- Consent ----

    async def record_consent(self, user_id: str, record: ConsentRecord) -> ConsentRecord:
        stored = self.client.consent.record_consent(user_id, record)
        await self.cache.invalidate(user_id=user_id)
        return stored

    async def revoke_consent(self, user_id: str) -> ConsentRecord:
        revoked = self.client.consent.revoke_consent(user_id)
        await self.cache.invalidate(user_id=user_id)
        return revoked

    def get_consent(self, user_id: str) -> ConsentRecord | None:
        return self.client.consent.get_consent(user_id)

    def privacy_notice(self) -> str:
        return render_privacy_notice(self.client.retention)

    async def aclose(self) -> None:
        await self.cache.clear()
        await self.client.aclose()
        logger.info("conversation_memory_closed")
