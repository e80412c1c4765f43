"""Pytest fixtures shared by the unit tests."""

from datetime import UTC, datetime

import pytest

from convmem.core.config import Settings, get_settings
from convmem.memory.service import ConversationMemory
from convmem.storage.in_memory import InMemoryBackend
from convmem.storage.retry import RetryPolicy


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Auto-clear the settings LRU cache after each test to prevent pollution."""
    yield
    get_settings.cache_clear()


@pytest.fixture
def now() -> datetime:
    """Fixed clock for retention and consent checks."""
    return datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retry policy with no backoff and short per-attempt timeouts."""
    return RetryPolicy(attempts=3, base_delay=0.0, max_delay=0.0, timeout=0.05)


@pytest.fixture
async def memory(settings, backend, fast_retry):
    service = ConversationMemory.from_settings(settings, backend, retry_policy=fast_retry)
    yield service
    await service.aclose()
