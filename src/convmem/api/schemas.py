"""API request and response schemas."""

from typing import Any

from pydantic import Field

from ..core.schemas import AddOptions, CamelModel, ConversationTurn


class ContextRequest(CamelModel):
    """Request for the memory context of a conversation."""

    conversation_id: str = Field(min_length=1)
    session_id: str = Field(min_length=1)
    user_id: str | None = None


class ClearContextRequest(CamelModel):
    """Sweep expired memories for a session/user, or erase all of them with ``purge``."""

    session_id: str = Field(min_length=1)
    user_id: str | None = None
    purge: bool = False
    dry_run: bool = False


class ClearContextResponse(CamelModel):
    deleted_count: int
    dry_run: bool = False


class ConsentRequest(CamelModel):
    user_id: str = Field(min_length=1)
    consent_given: bool
    consent_version: str = Field(min_length=1)
    data_processing_consent: bool = False
    personalized_responses_consent: bool = False
    retention_consent: bool = False


class AddTurnsRequest(AddOptions):
    """Turns to persist plus the options they are stored under."""

    turns: list[ConversationTurn] = Field(min_length=1)


class AddTurnsResponse(CamelModel):
    ids: list[str]


class UpdateMemoryRequest(CamelModel):
    content: str = Field(min_length=1)
    metadata: dict[str, Any] | None = None
