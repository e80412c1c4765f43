"""Unit tests for the retention policy table and sweeper."""

from datetime import timedelta

import pytest

from convmem.core.enums import MemoryCategory, MemoryScope
from convmem.core.exceptions import ConfigurationError
from convmem.core.schemas import MemoryFilter, MemoryItem
from convmem.privacy.retention import (
    RetentionPolicy,
    RetentionPolicyTable,
    RetentionSweeper,
)
from convmem.storage.in_memory import InMemoryBackend


def _item(category: MemoryCategory, created_at, table: RetentionPolicyTable, **kw) -> MemoryItem:
    return MemoryItem(
        session_id=kw.pop("session_id", "s1"),
        user_id=kw.pop("user_id", "u1"),
        category=category,
        scope=MemoryScope.SESSION,
        content="something",
        created_at=created_at,
        expires_at=table.compute_expiry(category, created_at),
        **kw,
    )


class TestRetentionPolicyTable:
    @pytest.mark.parametrize(
        "category, days, auto_delete, consent",
        [
            (MemoryCategory.CONTEXT, 7, True, False),
            (MemoryCategory.PREFERENCE, 365, False, True),
            (MemoryCategory.ENTITY, 30, True, False),
            (MemoryCategory.FACT, 90, True, False),
            (MemoryCategory.RELATIONSHIP, 180, True, True),
        ],
    )
    def test_default_policies(self, category, days, auto_delete, consent):
        policy = RetentionPolicyTable().policy_for(category)
        assert policy.ttl_days == days
        assert policy.auto_delete is auto_delete
        assert policy.requires_consent is consent

    def test_category_entry_wins_over_default(self):
        table = RetentionPolicyTable(default_ttl_days=30)
        assert table.policy_for(MemoryCategory.PREFERENCE).ttl_days == 365

    def test_default_applies_to_missing_category(self):
        table = RetentionPolicyTable(
            policies=(RetentionPolicy(MemoryCategory.CONTEXT, 7, True, False),),
            default_ttl_days=30,
        )
        assert table.policy_for(MemoryCategory.FACT).ttl_days == 30

    def test_table_is_immutable(self):
        with pytest.raises(TypeError):
            RetentionPolicyTable().policies[MemoryCategory.CONTEXT] = None  # type: ignore[index]

    def test_duplicate_category_is_rejected(self):
        policy = RetentionPolicy(MemoryCategory.CONTEXT, 7, True, False)
        with pytest.raises(ConfigurationError):
            RetentionPolicyTable(policies=(policy, policy))

    def test_non_positive_ttl_is_rejected(self):
        with pytest.raises(ConfigurationError):
            RetentionPolicyTable(policies=(RetentionPolicy(MemoryCategory.FACT, 0, True, False),))

    def test_compute_expiry(self, now):
        table = RetentionPolicyTable()
        assert table.compute_expiry(MemoryCategory.FACT, now) == now + timedelta(days=90)

    def test_is_expired_is_strict(self, now):
        table = RetentionPolicyTable()
        item = _item(MemoryCategory.CONTEXT, now, table)
        assert not table.is_expired(item, item.expires_at)
        assert table.is_expired(item, item.expires_at + timedelta(seconds=1))


class TestRetentionSweeper:
    async def test_deletes_only_expired_auto_delete_items(self, now):
        table = RetentionPolicyTable()
        backend = InMemoryBackend()
        old = now - timedelta(days=400)
        expired_context = _item(MemoryCategory.CONTEXT, old, table)
        expired_preference = _item(MemoryCategory.PREFERENCE, old, table)
        fresh_context = _item(MemoryCategory.CONTEXT, now, table)
        await backend.add([expired_context, expired_preference, fresh_context])

        sweeper = RetentionSweeper(table, backend)
        deleted = await sweeper.cleanup(MemoryFilter(session_id="s1"), now)

        assert deleted == 1
        assert expired_context.id not in backend
        assert expired_preference.id in backend
        assert fresh_context.id in backend

    async def test_second_sweep_deletes_nothing(self, now):
        table = RetentionPolicyTable()
        backend = InMemoryBackend()
        await backend.add([_item(MemoryCategory.FACT, now - timedelta(days=91), table)])
        sweeper = RetentionSweeper(table, backend)
        flt = MemoryFilter(user_id="u1")
        assert await sweeper.cleanup(flt, now) == 1
        assert await sweeper.cleanup(flt, now) == 0

    async def test_sweeps_more_than_one_batch(self, now):
        table = RetentionPolicyTable()
        backend = InMemoryBackend()
        old = now - timedelta(days=10)
        await backend.add([_item(MemoryCategory.CONTEXT, old, table) for _ in range(5)])
        sweeper = RetentionSweeper(table, backend, batch_size=2)
        flt = MemoryFilter(session_id="s1")
        assert await sweeper.cleanup(flt, now) == 5
        assert await sweeper.cleanup(flt, now) == 0
        assert len(backend) == 0

    async def test_expired_items_behind_live_ones_are_swept(self, now):
        class CutoffBlindBackend(InMemoryBackend):
            async def search(self, query, flt, limit):
                blind = flt.model_copy(update={"expires_before": None})
                return await super().search(query, blind, limit)

        table = RetentionPolicyTable()
        backend = CutoffBlindBackend()
        expired = _item(MemoryCategory.CONTEXT, now - timedelta(days=10), table)
        live = [
            _item(MemoryCategory.CONTEXT, now - timedelta(minutes=i), table) for i in range(2)
        ]
        await backend.add([expired, *live])

        sweeper = RetentionSweeper(table, backend, batch_size=2)
        assert await sweeper.cleanup(MemoryFilter(session_id="s1"), now) == 1
        assert expired.id not in backend
        assert len(backend) == 2

    async def test_dry_run_counts_without_deleting(self, now):
        table = RetentionPolicyTable()
        backend = InMemoryBackend()
        old = now - timedelta(days=10)
        await backend.add([_item(MemoryCategory.CONTEXT, old, table) for _ in range(3)])
        await backend.add([_item(MemoryCategory.CONTEXT, now, table)])
        sweeper = RetentionSweeper(table, backend, batch_size=2)
        flt = MemoryFilter(session_id="s1")
        assert await sweeper.cleanup(flt, now, dry_run=True) == 3
        assert len(backend) == 4
        assert await sweeper.cleanup(flt, now) == 3

    async def test_respects_filter(self, now):
        table = RetentionPolicyTable()
        backend = InMemoryBackend()
        old = now - timedelta(days=30)
        mine = _item(MemoryCategory.CONTEXT, old, table, session_id="s1")
        other = _item(MemoryCategory.CONTEXT, old, table, session_id="s2")
        await backend.add([mine, other])
        deleted = await RetentionSweeper(table, backend).cleanup(MemoryFilter(session_id="s1"), now)
        assert deleted == 1
        assert other.id in backend

    async def test_non_deletable_categories_only(self, now):
        table = RetentionPolicyTable()
        backend = InMemoryBackend()
        await backend.add([_item(MemoryCategory.PREFERENCE, now - timedelta(days=400), table)])
        flt = MemoryFilter(session_id="s1", categories=[MemoryCategory.PREFERENCE])
        assert await RetentionSweeper(table, backend).cleanup(flt, now) == 0
        assert len(backend) == 1
