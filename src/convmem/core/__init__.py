"""Core types and configuration for the conversation memory engine."""

from .config import Settings, get_settings
from .enums import ConversationStage, MemoryCategory, MemoryScope, MessageRole, PiiKind
from .schemas import (
    AddOptions,
    ConsentRecord,
    ConversationMemoryContext,
    ConversationTurn,
    MemoryFilter,
    MemoryItem,
    ScoredMemory,
    SearchOptions,
)

__all__ = [
    "get_settings",
    "Settings",
    "ConversationStage",
    "MemoryCategory",
    "MemoryScope",
    "MessageRole",
    "PiiKind",
    "AddOptions",
    "ConsentRecord",
    "ConversationMemoryContext",
    "ConversationTurn",
    "MemoryFilter",
    "MemoryItem",
    "ScoredMemory",
    "SearchOptions",
]
