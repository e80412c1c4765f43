"""Storage layer: backend interface, HTTP and in-memory backends, retry policy."""

from .base import MemoryBackend
from .http import HttpMemoryBackend
from .in_memory import InMemoryBackend
from .retry import RetryingBackend, RetryPolicy, retry_async

__all__ = [
    "HttpMemoryBackend",
    "InMemoryBackend",
    "MemoryBackend",
    "RetryPolicy",
    "RetryingBackend",
    "retry_async",
]
