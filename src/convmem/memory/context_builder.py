"""Conversation context builder: merge session and user memories into one context.

Derived fields:

* ``entity_mentions`` – capitalized multi-word names ("New York"), inner-capital
  identifiers ("TypeScript"), file paths/names and mid-sentence proper nouns.
* ``topic_continuity`` – keywords and bigrams seen at least twice across the most
  recent memories, ordered by frequency then recency.
* ``user_preferences`` – see :mod:`convmem.memory.preferences`.
* ``conversation_stage`` – rule-based over the session's own turns.
"""

import asyncio
import re
from collections import Counter
from collections.abc import Sequence
from datetime import datetime

from ..core.config import MemorySettings
from ..core.enums import ConversationStage, MemoryCategory, MessageRole
from ..core.exceptions import BackendError
from ..core.schemas import ConversationMemoryContext, MemoryItem
from ..utils.logging_config import get_logger
from ..utils.metrics import CONTEXT_BUILD_LATENCY, CONTEXT_DEGRADED
from ..utils.timing import timed
from .client import MemoryStoreClient
from .preferences import fold_preferences

logger = get_logger(__name__)

MAX_ENTITIES_PER_CONTEXT = 50
MAX_TOPICS = 10

_MULTI_CAP_RE = re.compile(r"\b[A-Z][\w'-]*(?:\s+[A-Z][\w'-]*)+\b")
_INNER_CAP_RE = re.compile(r"\b[A-Za-z]*[a-z][A-Z][A-Za-z0-9]*\b")
_PATH_RE = re.compile(
    r"(?:~|\.{1,2})?(?:/?[\w.-]+/)+[\w.-]+"
    r"|\b[\w-]+\.(?:py|ts|tsx|js|jsx|json|md|txt|ya?ml|toml|csv|html|css|go|rs|java|sql|sh)\b"
)
_WORD_RE = re.compile(r"[A-Za-z][A-Za-z0-9+#'-]*")
_SENTENCE_RE = re.compile(r"[^.!?\n]+")
_TOPIC_TOKEN_RE = re.compile(r"[a-z][a-z0-9+#-]{2,}")

_CLARIFY_RE = re.compile(
    r"\b(?:what do you mean|what did you mean|can you clarify|could you clarify|"
    r"could you explain|can you explain (?:that|again)|i meant|to clarify|"
    r"i don't understand|i do not understand|say that again|repeat that|"
    r"not what i asked|that's not what i)\b",
    re.IGNORECASE,
)
_ACK_RE = re.compile(
    r"\b(?:thanks|thank you|thx|that works|that worked|got it|perfect|solved|"
    r"resolved|fixed it|makes sense|all set)\b",
    re.IGNORECASE,
)

_STOPWORDS = frozenset(
    """
    the and for are but not you your yours with this that these those from have has had
    was were will would could should can cant don't dont what when where which who whom
    why how all any both each few more most other some such only own same than too very
    just also into about over under again then once here there them they their theirs
    our ours out its it's i'm i've we're you're he she him her his hers been being does
    did doing because until while off above below between through during before after
    please thanks thank like want need know think really get got make use using used
    one two yes okay hello redacted prefer
    """.split()
)


def extract_entities(memories: Sequence[MemoryItem]) -> list[str]:
    """Entity mentions in first-seen order, deduplicated case-insensitively."""
    seen: dict[str, str] = {}
    # Words already covered by a multi-word name ("Smith" in "Alice Smith").
    named_words: set[str] = set()

    def add(candidate: str) -> None:
        candidate = candidate.strip(" .,;:'\"()[]")
        if len(candidate) < 2 or candidate.lower() in _STOPWORDS:
            return
        seen.setdefault(candidate.lower(), candidate)

    for memory in memories:
        text = memory.content
        for m in _PATH_RE.finditer(text):
            add(m.group())
        for m in _MULTI_CAP_RE.finditer(text):
            add(m.group())
            named_words.update(m.group().split())
        for m in _INNER_CAP_RE.finditer(text):
            add(m.group())
        for sentence in _SENTENCE_RE.findall(text):
            words = _WORD_RE.findall(sentence)
            # First word of a sentence is capitalized by grammar, not by name.
            for word in words[1:]:
                if (
                    word[0].isupper()
                    and word[1:].islower()
                    and len(word) > 2
                    and word not in named_words
                ):
                    add(word)
        if len(seen) >= MAX_ENTITIES_PER_CONTEXT:
            break
    return list(seen.values())[:MAX_ENTITIES_PER_CONTEXT]


def extract_topics(memories: Sequence[MemoryItem], window: int = 10) -> list[str]:
    """Recurring keywords/bigrams across the *window* most recent memories.

    *memories* must be ordered most recent first.
    """
    counts: Counter[str] = Counter()
    first_seen: dict[str, int] = {}
    for rank, memory in enumerate(memories[:window]):
        tokens = _TOPIC_TOKEN_RE.findall(memory.content.lower())
        terms = [t for t in tokens if t not in _STOPWORDS]
        terms += [
            f"{a} {b}"
            for a, b in zip(tokens, tokens[1:])
            if a not in _STOPWORDS and b not in _STOPWORDS
        ]
        for term in terms:
            counts[term] += 1
            first_seen.setdefault(term, rank)
    recurring = [t for t, n in counts.items() if n >= 2]
    recurring.sort(key=lambda t: (-counts[t], first_seen[t], t))
    return recurring[:MAX_TOPICS]


def classify_stage(session_memories: Sequence[MemoryItem]) -> ConversationStage:
    """Stage from the session's turns, most recent first."""
    if len(session_memories) <= 1:
        return ConversationStage.GREETING
    if _CLARIFY_RE.search(session_memories[0].content):
        return ConversationStage.CLARIFICATION
    if any(_ACK_RE.search(m.content) for m in session_memories):
        return ConversationStage.RESOLUTION
    return ConversationStage.INQUIRY


def _by_recency(items: Sequence[MemoryItem]) -> list[MemoryItem]:
    return sorted(items, key=lambda i: i.created_at, reverse=True)


class ConversationContextBuilder:
    """Builds a :class:`ConversationMemoryContext`, failing open on backend trouble."""

    def __init__(self, client: MemoryStoreClient, settings: MemorySettings) -> None:
        self.client = client
        self.settings = settings

    async def build(
        self,
        conversation_id: str,
        session_id: str,
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> ConversationMemoryContext:
        deadline = self.settings.context_deadline_ms / 1000
        try:
            with timed(
                "context_build",
                histogram=CONTEXT_BUILD_LATENCY,
                conversation_id=conversation_id,
                session_id=session_id,
            ):
                return await asyncio.wait_for(
                    self._build(conversation_id, session_id, user_id, now), timeout=deadline
                )
        except asyncio.TimeoutError:
            CONTEXT_DEGRADED.labels(reason="deadline").inc()
            logger.warning(
                "context_build_degraded",
                reason="deadline_exceeded",
                deadline_ms=self.settings.context_deadline_ms,
                conversation_id=conversation_id,
                session_id=session_id,
            )
        except BackendError as e:
            CONTEXT_DEGRADED.labels(reason=type(e).__name__).inc()
            logger.warning(
                "context_build_degraded",
                reason=type(e).__name__,
                error=str(e),
                conversation_id=conversation_id,
                session_id=session_id,
            )
        return ConversationMemoryContext.empty(conversation_id, session_id, degraded=True)

    async def _build(
        self,
        conversation_id: str,
        session_id: str,
        user_id: str | None,
        now: datetime | None,
    ) -> ConversationMemoryContext:
        session_items = _by_recency(await self.client.list_session_memories(session_id, now))

        user_ids = set(await self.client.users_for_session(session_id))
        if user_id:
            user_ids.add(user_id)
        query = self._relevance_query(session_items)
        user_batches = await asyncio.gather(
            *(
                self.client.top_user_memories(uid, query, self.settings.user_top_k, now)
                for uid in sorted(user_ids)
            )
        )

        merged: dict[str, MemoryItem] = {i.id: i for i in session_items}
        for batch in user_batches:
            for item in batch:
                merged.setdefault(item.id, item)
        relevant = _by_recency(list(merged.values()))

        return ConversationMemoryContext(
            conversation_id=conversation_id,
            session_id=session_id,
            user_ids=sorted(user_ids),
            relevant_memories=relevant,
            entity_mentions=extract_entities(relevant),
            topic_continuity=extract_topics(relevant, self.settings.topic_window),
            user_preferences=fold_preferences(
                i for i in relevant if i.category == MemoryCategory.PREFERENCE
            ),
            conversation_stage=classify_stage(session_items),
        )

    @staticmethod
    def _relevance_query(session_items: Sequence[MemoryItem]) -> str:
        # The latest user turns are the best cue for which long-term memories matter.
        recent = [i.content for i in session_items if i.role == MessageRole.USER][:3]
        return " ".join(recent)
