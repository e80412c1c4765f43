"""Configuration management with pydantic-settings."""

from functools import lru_cache

from pydantic import BaseModel as PydanticBaseModel
from pydantic import Field
from pydantic_settings import BaseSettings

from .enums import MemoryCategory, MemoryScope


class BackendSettings(PydanticBaseModel):
    """Remote memory store connection settings."""

    base_url: str = Field(default="https://api.mem0.ai/v1")
    api_key: str | None = Field(default=None)
    timeout_ms: int = Field(default=10_000, gt=0)  # Per attempt
    retry_attempts: int = Field(default=3, ge=1)  # Total tries, not extra retries
    retry_base_delay_ms: int = Field(default=200, ge=0)
    retry_max_delay_ms: int = Field(default=2_000, ge=0)


class MemorySettings(PydanticBaseModel):
    """Scoping, caching, and context-building settings."""

    default_scope: MemoryScope = Field(
        default=MemoryScope.USER,
        description="Scope requested when a write does not name one; user scope needs a user_id.",
    )
    session_memory_ttl_ms: int = Field(default=24 * 60 * 60 * 1000, gt=0)
    user_memory_ttl_ms: int = Field(default=30 * 24 * 60 * 60 * 1000, gt=0)
    context_cache_ttl_seconds: float = Field(default=300.0, gt=0)
    context_cache_max_size: int = Field(default=1000, gt=0)
    context_deadline_ms: int = Field(
        default=3_000,
        gt=0,
        description="Upper bound for building a conversation context before failing open.",
    )
    user_top_k: int = Field(default=10, gt=0)
    session_fetch_limit: int = Field(default=100, gt=0)
    topic_window: int = Field(default=10, gt=0)
    cleanup_batch_size: int = Field(default=500, gt=0)


class PrivacySettings(PydanticBaseModel):
    """
    PII handling and consent settings.
    Env vars (with env_nested_delimiter='__'): PRIVACY__ENABLE_PII_DETECTION,
    PRIVACY__AUTO_SANITIZATION, PRIVACY__DATA_RETENTION_DAYS, PRIVACY__ALLOWED_CATEGORIES, ...
    """

    enable_pii_detection: bool = Field(default=True)
    auto_sanitization: bool = Field(default=False)
    data_retention_days: int = Field(
        default=30,
        gt=0,
        description="Fallback retention for categories without a policy table entry.",
    )
    allowed_categories: list[MemoryCategory] = Field(
        default_factory=lambda: list(MemoryCategory)
    )
    min_consent_version: str = Field(default="1.0")
    consent_max_age_days: int = Field(default=365, gt=0)
    max_content_length: int = Field(default=10_000, gt=0)


class Settings(BaseSettings):
    """Application settings with nested configuration."""

    app_name: str = Field(default="ConversationMemory")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=True)

    backend: BackendSettings = Field(default_factory=BackendSettings)
    memory: MemorySettings = Field(default_factory=MemorySettings)
    privacy: PrivacySettings = Field(default_factory=PrivacySettings)

    model_config = {
        "env_file": ".env",
        "env_nested_delimiter": "__",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings.

    Only the application entry point (``api.app``) reads settings this way;
    components receive a ``Settings`` instance explicitly. Call
    ``get_settings.cache_clear()`` after changing environment variables in tests.
    """
    return Settings()
