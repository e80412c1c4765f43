"""Core Pydantic schemas for memory items, consent, and conversation context."""

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .enums import (
    ConversationStage,
    MemoryCategory,
    MemoryScope,
    MessageRole,
    PiiKind,
    PreferencePolarity,
)

PreferenceScalar = bool | int | float | str


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_memory_id() -> str:
    return uuid4().hex


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps from clients or backends are taken as UTC.
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ConversationTurn(CamelModel):
    """A single chat message offered for persistence."""

    role: MessageRole = MessageRole.USER
    content: str


class MemoryItem(CamelModel):
    """Core memory item persisted in the remote store."""

    # Identity
    id: str = Field(default_factory=new_memory_id)
    session_id: str
    user_id: str | None = None
    conversation_id: str | None = None
    agent_id: str | None = None

    # Classification
    category: MemoryCategory
    scope: MemoryScope
    role: MessageRole = MessageRole.USER

    # Content (post-sanitization)
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    # Retention
    created_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime
    updated_at: datetime | None = None

    # Privacy
    pii_redacted: bool = False
    redacted_kinds: list[PiiKind] = Field(default_factory=list)
    requires_consent: bool = False

    @field_validator("created_at", "expires_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_validator("updated_at")
    @classmethod
    def normalize_updated_at(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value) if value is not None else None


class ScoredMemory(BaseModel):
    """A memory item with the backend-reported relevance score."""

    item: MemoryItem
    score: float = 0.0


class AddOptions(CamelModel):
    """Options for persisting a batch of turns."""

    session_id: str
    user_id: str | None = None
    conversation_id: str | None = None
    agent_id: str | None = None
    scope: MemoryScope | None = None  # None = settings.memory.default_scope
    category: MemoryCategory = MemoryCategory.CONTEXT
    metadata: dict[str, Any] = Field(default_factory=dict)


class SearchOptions(CamelModel):
    """Options for a scoped memory search."""

    session_id: str | None = None
    user_id: str | None = None
    agent_id: str | None = None
    categories: list[MemoryCategory] | None = None
    limit: int = Field(default=10, ge=1, le=100)


class MemoryFilter(CamelModel):
    """Backend filter. Every provided field must match (AND semantics)."""

    session_id: str | None = None
    user_id: str | None = None
    agent_id: str | None = None
    conversation_id: str | None = None
    scope: MemoryScope | None = None
    categories: list[MemoryCategory] | None = None
    # Only items whose expiry lies strictly before this instant.
    expires_before: datetime | None = None

    @field_validator("expires_before")
    @classmethod
    def normalize_cutoff(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value) if value is not None else None

    def is_unbounded(self) -> bool:
        """True when no owner field narrows the filter."""
        return not (self.session_id or self.user_id or self.agent_id or self.conversation_id)

    def matches(self, item: MemoryItem) -> bool:
        if self.session_id is not None and item.session_id != self.session_id:
            return False
        if self.user_id is not None and item.user_id != self.user_id:
            return False
        if self.agent_id is not None and item.agent_id != self.agent_id:
            return False
        if self.conversation_id is not None and item.conversation_id != self.conversation_id:
            return False
        if self.scope is not None and item.scope != self.scope:
            return False
        if self.categories is not None and item.category not in self.categories:
            return False
        if self.expires_before is not None and item.expires_at >= self.expires_before:
            return False
        return True


class CleanupResult(CamelModel):
    """Outcome of a retention sweep or explicit erasure."""

    deleted_count: int = 0
    dry_run: bool = False


class ConsentRecord(CamelModel):
    """Per-user consent, one record per user (last write wins)."""

    user_id: str | None = None
    consent_given: bool
    consent_date: datetime = Field(default_factory=utc_now)
    consent_version: str | None = None
    data_processing_consent: bool = False
    personalized_responses_consent: bool = False
    retention_consent: bool = False

    @field_validator("consent_date")
    @classmethod
    def normalize_consent_date(cls, value: datetime) -> datetime:
        return _as_utc(value)


class Preference(CamelModel):
    """Typed, versioned user preference folded from preference memories."""

    key: str
    value: PreferenceScalar
    polarity: PreferencePolarity = PreferencePolarity.NEUTRAL
    alternative: str | None = None
    source_memory_id: str | None = None
    recorded_at: datetime | None = None
    schema_version: int


class ConversationMemoryContext(CamelModel):
    """Merged memory context for one conversation; transient, never persisted."""

    conversation_id: str
    session_id: str
    user_ids: list[str] = Field(default_factory=list)
    relevant_memories: list[MemoryItem] = Field(default_factory=list)
    entity_mentions: list[str] = Field(default_factory=list)
    topic_continuity: list[str] = Field(default_factory=list)
    user_preferences: dict[str, Preference] = Field(default_factory=dict)
    conversation_stage: ConversationStage = ConversationStage.GREETING
    degraded: bool = False

    @classmethod
    def empty(
        cls, conversation_id: str, session_id: str, *, degraded: bool = False
    ) -> "ConversationMemoryContext":
        return cls(conversation_id=conversation_id, session_id=session_id, degraded=degraded)
