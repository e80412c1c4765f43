"""Core enums for memory categories, scopes, and conversation stages."""

from enum import Enum


class MemoryCategory(str, Enum):
    """Kind of information a memory item holds; drives its retention policy."""

    CONTEXT = "context"  # Recent dialogue
    PREFERENCE = "preference"  # Stated likes/dislikes
    ENTITY = "entity"  # People, files, products mentioned
    FACT = "fact"  # Durable statements about the world or the user
    RELATIONSHIP = "relationship"  # Links between entities


class MemoryScope(str, Enum):
    """Visibility tier of a memory item."""

    SESSION = "session"  # Single conversation session
    USER = "user"  # Cross-session, tied to a person
    AGENT = "agent"  # System-level insight


class MessageRole(str, Enum):
    """Author of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class ConversationStage(str, Enum):
    """Coarse classification of dialogue progress."""

    GREETING = "greeting"
    INQUIRY = "inquiry"
    CLARIFICATION = "clarification"
    RESOLUTION = "resolution"


class PiiKind(str, Enum):
    """Kinds of personally identifiable information the redactor recognises."""

    EMAIL = "email"
    PHONE = "phone"
    SSN = "ssn"
    CREDIT_CARD = "credit_card"
    IP_ADDRESS = "ip_address"
    SENSITIVE_KEYWORD = "sensitive_keyword"


class PreferencePolarity(str, Enum):
    """Direction of a stated preference."""

    PREFER = "prefer"
    AVOID = "avoid"
    NEUTRAL = "neutral"
