"""Unit tests for preference parsing, migration and folding."""

from datetime import UTC, datetime, timedelta

from convmem.core.enums import MemoryCategory, MemoryScope, MessageRole, PreferencePolarity
from convmem.core.schemas import MemoryItem
from convmem.memory.preferences import (
    PREFERENCE_SCHEMA_VERSION,
    extract_preferences,
    fold_preferences,
    migrate_preference_metadata,
    parse_preference_statements,
    preference_key,
)

T0 = datetime(2025, 1, 1, tzinfo=UTC)


def _pref_item(content: str = "", metadata=None, created_at=T0, role=MessageRole.USER):
    return MemoryItem(
        session_id="s1",
        user_id="u1",
        category=MemoryCategory.PREFERENCE,
        scope=MemoryScope.USER,
        role=role,
        content=content or "preference",
        metadata=metadata or {},
        created_at=created_at,
        expires_at=created_at + timedelta(days=365),
    )


class TestParsing:
    def test_prefer_over(self):
        assert parse_preference_statements("I prefer TypeScript over JavaScript") == [
            ("TypeScript", PreferencePolarity.PREFER, "JavaScript")
        ]

    def test_prefer_without_alternative(self):
        assert parse_preference_statements("I really like tabs.") == [
            ("tabs", PreferencePolarity.PREFER, None)
        ]

    def test_avoid(self):
        assert parse_preference_statements("I don't like semicolons") == [
            ("semicolons", PreferencePolarity.AVOID, None)
        ]

    def test_multiple_sentences(self):
        found = parse_preference_statements("I prefer to use vim. I hate emacs!")
        assert found == [
            ("vim", PreferencePolarity.PREFER, None),
            ("emacs", PreferencePolarity.AVOID, None),
        ]

    def test_no_statement(self):
        assert parse_preference_statements("The build is green") == []


class TestKeysAndMigration:
    def test_preference_key(self):
        assert preference_key("Dark Mode!") == "dark_mode"

    def test_migrates_v1_metadata(self):
        migrated = migrate_preference_metadata(
            {"entityType": "Editor", "entityValue": "vim", "x": 1}
        )
        assert migrated == {
            "x": 1,
            "preference_key": "editor",
            "preference_value": "vim",
            "preference_schema": PREFERENCE_SCHEMA_VERSION,
        }

    def test_current_metadata_untouched(self):
        metadata = {"preference_key": "editor", "preference_value": "vim", "preference_schema": 2}
        assert migrate_preference_metadata(metadata) is metadata

    def test_v1_non_scalar_value_coerced(self):
        migrated = migrate_preference_metadata({"entityType": "langs", "entityValue": ["a", "b"]})
        assert migrated["preference_value"] == "['a', 'b']"


class TestExtraction:
    def test_from_text(self):
        [pref] = extract_preferences(_pref_item("I prefer TypeScript over JavaScript"))
        assert pref.key == "typescript"
        assert pref.value == "TypeScript"
        assert pref.alternative == "JavaScript"
        assert pref.schema_version == PREFERENCE_SCHEMA_VERSION

    def test_from_metadata(self):
        item = _pref_item(metadata={"preference_key": "theme", "preference_value": "dark"})
        [pref] = extract_preferences(item)
        assert (pref.key, pref.value) == ("theme", "dark")
        assert pref.source_memory_id == item.id

    def test_typed_values_survive(self):
        item = _pref_item(metadata={"preference_key": "max_results", "preference_value": 20})
        assert extract_preferences(item)[0].value == 20

    def test_assistant_text_ignored(self):
        item = _pref_item("I prefer short answers", role=MessageRole.ASSISTANT)
        assert extract_preferences(item) == []

    def test_other_categories_ignored(self):
        item = _pref_item("I prefer TypeScript").model_copy(
            update={"category": MemoryCategory.CONTEXT}
        )
        assert extract_preferences(item) == []


class TestFolding:
    def test_most_recent_wins(self):
        old = _pref_item(metadata={"preference_key": "theme", "preference_value": "light"})
        new = _pref_item(
            metadata={"preference_key": "theme", "preference_value": "dark"},
            created_at=T0 + timedelta(hours=1),
        )
        folded = fold_preferences([new, old])
        assert folded["theme"].value == "dark"

    def test_distinct_keys_kept(self):
        folded = fold_preferences(
            [
                _pref_item("I prefer TypeScript over JavaScript"),
                _pref_item(metadata={"entityType": "editor", "entityValue": "vim"}),
            ]
        )
        assert set(folded) == {"typescript", "editor"}
