"""Conversation memory with privacy-compliant retention."""

from .core.config import Settings, get_settings
from .core.enums import ConversationStage, MemoryCategory, MemoryScope, MessageRole
from .core.exceptions import (
    BackendError,
    BackendUnavailableError,
    ConsentRequiredError,
    ConversationMemoryError,
    NotFoundError,
    PiiRejectedError,
    ValidationError,
)
from .core.schemas import (
    AddOptions,
    ConsentRecord,
    ConversationMemoryContext,
    ConversationTurn,
    MemoryFilter,
    SearchOptions,
)
from .memory.service import ConversationMemory

__version__ = "1.0.0"

__all__ = [
    "AddOptions",
    "BackendError",
    "BackendUnavailableError",
    "ConsentRecord",
    "ConsentRequiredError",
    "ConversationMemory",
    "ConversationMemoryContext",
    "ConversationMemoryError",
    "ConversationStage",
    "ConversationTurn",
    "MemoryCategory",
    "MemoryFilter",
    "MemoryScope",
    "MessageRole",
    "NotFoundError",
    "PiiRejectedError",
    "SearchOptions",
    "Settings",
    "ValidationError",
    "get_settings",
]
