"""Typed, versioned user preferences.

Preferences are folded from ``preference``-category memories. An item can carry
an explicit preference in its metadata::

    {"preference_key": "language", "preference_value": "TypeScript", "preference_schema": 2}

or state one in plain text ("I prefer TypeScript over JavaScript"), which is
parsed into ``key="typescript", value="TypeScript", alternative="JavaScript"``.

Schema history:

* v1 – ``{"entityType": <key>, "entityValue": <value>}`` (untyped).
* v2 – ``preference_key`` / ``preference_value`` with scalar values only.

Older shapes are upgraded by :func:`migrate_preference_metadata` when read.
"""

import re
from collections.abc import Iterable
from typing import Any

from ..core.enums import MemoryCategory, MessageRole, PreferencePolarity
from ..core.schemas import MemoryItem, Preference, PreferenceScalar

PREFERENCE_SCHEMA_VERSION = 2

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?;])\s+|\n+")
_PREFER_RE = re.compile(
    r"\bI\s+(?:really\s+|much\s+|generally\s+|usually\s+)?"
    r"(?:prefer|like|love|enjoy|favou?r|want)\s+"
    r"(?P<subject>.+?)"
    r"(?:\s+(?:over|instead\s+of|rather\s+than|more\s+than)\s+(?P<alt>.+?))?"
    r"\s*[.!?;]*$",
    re.IGNORECASE,
)
_AVOID_RE = re.compile(
    r"\bI\s+(?:really\s+)?(?:(?:don't|do\s+not|never)\s+(?:like|use|want)|hate|dislike|avoid)\s+"
    r"(?P<subject>.+?)\s*[.!?;]*$",
    re.IGNORECASE,
)
_LEADING_FILLER = re.compile(r"^(?:to\s+(?:use\s+)?|using\s+|the\s+|a\s+|an\s+)+", re.IGNORECASE)
_KEY_RE = re.compile(r"[^a-z0-9]+")


def preference_key(subject: str) -> str:
    """Normalise a free-text subject into a stable preference key."""
    return _KEY_RE.sub("_", subject.lower()).strip("_")[:64]


def migrate_preference_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    """Upgrade preference metadata written under older schema versions."""
    version = metadata.get("preference_schema")
    if version is None and "entityType" in metadata:
        version = 1
    if version == 1:
        migrated = {k: v for k, v in metadata.items() if k not in ("entityType", "entityValue")}
        migrated["preference_key"] = preference_key(str(metadata["entityType"]))
        migrated["preference_value"] = _coerce_scalar(metadata.get("entityValue"))
        migrated["preference_schema"] = PREFERENCE_SCHEMA_VERSION
        return migrated
    return metadata


def _coerce_scalar(value: Any) -> PreferenceScalar:
    if isinstance(value, (bool, int, float, str)):
        return value
    return "" if value is None else str(value)


def _clean_subject(text: str) -> str:
    return _LEADING_FILLER.sub("", text.strip()).strip(" \"'`,")


def parse_preference_statements(text: str) -> list[tuple[str, PreferencePolarity, str | None]]:
    """Find "I prefer X (over Y)" / "I don't like X" statements in *text*."""
    found: list[tuple[str, PreferencePolarity, str | None]] = []
    for sentence in _SENTENCE_SPLIT.split(text):
        sentence = sentence.strip()
        if not sentence:
            continue
        avoid = _AVOID_RE.search(sentence)
        if avoid:
            subject = _clean_subject(avoid.group("subject"))
            if subject:
                found.append((subject, PreferencePolarity.AVOID, None))
            continue
        prefer = _PREFER_RE.search(sentence)
        if prefer:
            subject = _clean_subject(prefer.group("subject"))
            alt = prefer.group("alt")
            if subject:
                found.append(
                    (subject, PreferencePolarity.PREFER, _clean_subject(alt) if alt else None)
                )
    return found


def extract_preferences(item: MemoryItem) -> list[Preference]:
    """Preferences carried by a single memory item (empty for other categories)."""
    if item.category != MemoryCategory.PREFERENCE:
        return []

    metadata = migrate_preference_metadata(item.metadata)
    if metadata.get("preference_key"):
        return [
            Preference(
                key=preference_key(str(metadata["preference_key"])),
                value=_coerce_scalar(metadata.get("preference_value")),
                source_memory_id=item.id,
                recorded_at=item.created_at,
                schema_version=PREFERENCE_SCHEMA_VERSION,
            )
        ]

    if item.role != MessageRole.USER:
        return []
    return [
        Preference(
            key=preference_key(subject),
            value=subject,
            polarity=polarity,
            alternative=alternative,
            source_memory_id=item.id,
            recorded_at=item.created_at,
            schema_version=PREFERENCE_SCHEMA_VERSION,
        )
        for subject, polarity, alternative in parse_preference_statements(item.content)
        if preference_key(subject)
    ]


def fold_preferences(items: Iterable[MemoryItem]) -> dict[str, Preference]:
    """Fold preference items into key → preference; the most recent value per key wins."""
    folded: dict[str, Preference] = {}
    for item in sorted(items, key=lambda i: i.created_at):
        for pref in extract_preferences(item):
            folded[pref.key] = pref
    return folded
