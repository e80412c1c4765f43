"""Memory layer: store client, context builder, context cache and service facade."""

from .cache import CacheKey, ContextCache
from .client import MemoryStoreClient
from .context_builder import ConversationContextBuilder
from .preferences import extract_preferences, fold_preferences
from .service import ConversationMemory

__all__ = [
    "CacheKey",
    "ContextCache",
    "ConversationContextBuilder",
    "ConversationMemory",
    "MemoryStoreClient",
    "extract_preferences",
    "fold_preferences",
]
