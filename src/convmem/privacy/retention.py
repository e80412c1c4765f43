"""Retention policy table and expiry sweep."""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import TYPE_CHECKING

from ..core.enums import MemoryCategory
from ..core.exceptions import ConfigurationError
from ..core.schemas import MemoryFilter, MemoryItem, utc_now
from ..utils.logging_config import get_logger
from ..utils.metrics import CLEANUP_DELETIONS

if TYPE_CHECKING:
    from ..storage.base import MemoryBackend

logger = get_logger(__name__)


@dataclass(frozen=True)
class RetentionPolicy:
    category: MemoryCategory
    ttl_days: int
    auto_delete: bool
    requires_consent: bool

    @property
    def ttl(self) -> timedelta:
        return timedelta(days=self.ttl_days)


DEFAULT_RETENTION_POLICIES: tuple[RetentionPolicy, ...] = (
    RetentionPolicy(MemoryCategory.CONTEXT, ttl_days=7, auto_delete=True, requires_consent=False),
    RetentionPolicy(
        MemoryCategory.PREFERENCE, ttl_days=365, auto_delete=False, requires_consent=True
    ),
    RetentionPolicy(MemoryCategory.ENTITY, ttl_days=30, auto_delete=True, requires_consent=False),
    RetentionPolicy(MemoryCategory.FACT, ttl_days=90, auto_delete=True, requires_consent=False),
    RetentionPolicy(
        MemoryCategory.RELATIONSHIP, ttl_days=180, auto_delete=True, requires_consent=True
    ),
)


class RetentionPolicyTable:
    """Immutable category → retention policy lookup.

    Per-category entries are authoritative; ``default_ttl_days`` only applies to
    categories that have no entry.
    """

    def __init__(
        self,
        policies: tuple[RetentionPolicy, ...] = DEFAULT_RETENTION_POLICIES,
        default_ttl_days: int = 30,
    ) -> None:
        seen: set[MemoryCategory] = set()
        for p in policies:
            if p.category in seen:
                raise ConfigurationError(f"Duplicate retention policy for '{p.category.value}'")
            if p.ttl_days <= 0:
                raise ConfigurationError(f"Retention for '{p.category.value}' must be positive")
            seen.add(p.category)
        self._policies: Mapping[MemoryCategory, RetentionPolicy] = MappingProxyType(
            {p.category: p for p in policies}
        )
        self.default_ttl_days = default_ttl_days

    @property
    def policies(self) -> Mapping[MemoryCategory, RetentionPolicy]:
        return self._policies

    def policy_for(self, category: MemoryCategory) -> RetentionPolicy:
        policy = self._policies.get(category)
        if policy is None:
            return RetentionPolicy(
                category,
                ttl_days=self.default_ttl_days,
                auto_delete=True,
                requires_consent=False,
            )
        return policy

    def requires_consent(self, category: MemoryCategory) -> bool:
        return self.policy_for(category).requires_consent

    def compute_expiry(self, category: MemoryCategory, created_at: datetime) -> datetime:
        return created_at + self.policy_for(category).ttl

    def is_expired(self, item: MemoryItem, now: datetime | None = None) -> bool:
        now = now or utc_now()
        return now > item.expires_at


class RetentionSweeper:
    """Deletes expired, auto-deletable items matching a filter."""

    def __init__(
        self,
        table: RetentionPolicyTable,
        backend: "MemoryBackend",
        batch_size: int = 500,
    ) -> None:
        self.table = table
        self.backend = backend
        self.batch_size = batch_size

    async def cleanup(
        self, flt: MemoryFilter, now: datetime | None = None, *, dry_run: bool = False
    ) -> int:
        """Delete every expired, auto-deletable item matching *flt*.

        Returns the number of items deleted, or with ``dry_run`` the number that
        would be. The backend is read until it runs out of candidates, so a second
        sweep with no intervening writes yields 0.
        """
        now = now or utc_now()
        auto_delete = [c for c, p in self.table.policies.items() if p.auto_delete]
        deletable = flt.model_copy(
            update={
                "categories": [c for c in (flt.categories or auto_delete) if c in auto_delete],
                "expires_before": now,
            }
        )
        if not deletable.categories:
            return 0

        page_size = self.batch_size
        deleted = 0
        while True:
            candidates = await self.backend.search("", deletable, page_size)
            expired_ids = [
                c.item.id
                for c in candidates
                if deletable.matches(c.item)
                and self.table.policy_for(c.item.category).auto_delete
                and self.table.is_expired(c.item, now)
            ]
            exhausted = len(candidates) < page_size
            if dry_run:
                if exhausted:
                    deleted = len(expired_ids)
                    break
                page_size *= 2
                continue

            removed = 0
            for start in range(0, len(expired_ids), self.batch_size):
                removed += await self.backend.delete(expired_ids[start : start + self.batch_size])
            deleted += removed
            if exhausted:
                break
            if removed == 0:
                # A full page with nothing removable: the backend ignored the
                # expiry cutoff, so older candidates sit beyond this page.
                page_size *= 2

        if deleted and not dry_run:
            CLEANUP_DELETIONS.labels(reason="expired").inc(deleted)
        logger.info(
            "retention_sweep_completed",
            session_id=flt.session_id,
            user_id=flt.user_id,
            deleted=deleted,
            dry_run=dry_run,
        )
        return deleted
