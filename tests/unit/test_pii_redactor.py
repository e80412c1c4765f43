"""Unit tests for PII detection and sanitization."""

import pytest

from convmem.core.enums import PiiKind
from convmem.core.exceptions import PiiRejectedError, ValidationError
from convmem.privacy.redactor import PIIRedactor


def _kinds(redactor: PIIRedactor, text: str) -> set[PiiKind]:
    return {m.kind for m in redactor.detect(text)}


class TestDetect:
    def test_detects_email(self):
        assert PiiKind.EMAIL in _kinds(PIIRedactor(), "reach me at jane.doe@example.com")

    def test_detects_phone(self):
        assert PiiKind.PHONE in _kinds(PIIRedactor(), "call 555-123-4567 tomorrow")

    def test_detects_ssn(self):
        assert PiiKind.SSN in _kinds(PIIRedactor(), "my number is 123-45-6789")

    def test_detects_credit_card(self):
        assert PiiKind.CREDIT_CARD in _kinds(PIIRedactor(), "card 4111 1111 1111 1111 expires")

    def test_detects_ip_address(self):
        assert PiiKind.IP_ADDRESS in _kinds(PIIRedactor(), "server at 192.168.0.12 is down")

    def test_detects_sensitive_keyword_with_value(self):
        matches = PIIRedactor().detect("the password: hunter2 works")
        keyword = [m for m in matches if m.kind == PiiKind.SENSITIVE_KEYWORD]
        assert keyword
        assert keyword[0].text == "password: hunter2"

    def test_keyword_requires_whole_word(self):
        assert PiiKind.SENSITIVE_KEYWORD not in _kinds(
            PIIRedactor(), "I want personalized answers about TypeScript"
        )

    def test_clean_text_has_no_matches(self):
        assert PIIRedactor().detect("I prefer TypeScript over JavaScript") == []

    def test_disabled_detects_nothing(self):
        assert PIIRedactor(enabled=False).detect("jane@example.com") == []

    def test_matches_sorted_by_position(self):
        matches = PIIRedactor().detect("a@b.io then 10.0.0.1")
        assert [m.start for m in matches] == sorted(m.start for m in matches)

    def test_additional_pattern(self):
        redactor = PIIRedactor(additional_patterns={PiiKind.SENSITIVE_KEYWORD: r"\bzebra\b"})
        assert PiiKind.SENSITIVE_KEYWORD in _kinds(redactor, "the zebra code")


class TestSanitize:
    def test_rejects_when_auto_sanitization_off(self):
        with pytest.raises(PiiRejectedError) as exc_info:
            PIIRedactor(auto_sanitize=False).sanitize("mail jane@example.com")
        assert exc_info.value.kinds == ["email"]

    def test_redacts_when_auto_sanitization_on(self):
        result = PIIRedactor(auto_sanitize=True).sanitize("mail jane@example.com please")
        assert result.text == "mail [REDACTED:EMAIL] please"
        assert result.redacted_kinds == [PiiKind.EMAIL]
        assert result.was_redacted

    def test_redacted_output_has_no_pii(self):
        redactor = PIIRedactor(auto_sanitize=True)
        text = "ssn 123-45-6789, mail jane@example.com, ip 10.1.2.3"
        result = redactor.sanitize(text)
        assert redactor.detect(result.text) == []
        assert "jane@example.com" not in result.text

    def test_sanitize_is_idempotent(self):
        redactor = PIIRedactor(auto_sanitize=True)
        once = redactor.sanitize("my ssn is 123-45-6789")
        twice = redactor.sanitize(once.text)
        assert twice.text == once.text
        assert not twice.was_redacted

    def test_overlapping_matches_are_merged(self):
        result = PIIRedactor(auto_sanitize=True).sanitize("card 4111-1111-1111-1111 end")
        assert result.text.count("[REDACTED:") == 1
        assert result.text.startswith("card [REDACTED:")
        assert result.text.endswith(" end")

    def test_clean_text_passes_through(self):
        result = PIIRedactor(auto_sanitize=False).sanitize("I prefer TypeScript")
        assert result.text == "I prefer TypeScript"
        assert not result.was_redacted


class TestValidateContent:
    def test_empty_content_rejected(self):
        with pytest.raises(ValidationError):
            PIIRedactor().validate_content("   ")

    def test_over_length_rejected(self):
        with pytest.raises(ValidationError):
            PIIRedactor(max_content_length=10).validate_content("x" * 11)

    def test_max_length_accepted(self):
        PIIRedactor(max_content_length=10).validate_content("x" * 10)


class TestPlaceholders:
    @pytest.mark.parametrize(
        "text",
        [
            "my SSN is 123-45-6789",
            "KEY=abc and CREDIT CARD 4111 1111 1111 1111",
            "SECRET token for PRIVATE use",
        ],
    )
    def test_no_matched_substring_survives(self, text):
        redactor = PIIRedactor(auto_sanitize=True)
        matched = [m.text for m in redactor.detect(text)]
        result = redactor.sanitize(text)
        for fragment in matched:
            assert fragment not in result.text
            assert fragment.lower() not in result.text.lower()

    def test_ssn_uses_neutral_tag(self):
        result = PIIRedactor(auto_sanitize=True).sanitize("id 123-45-6789 end")
        assert "[REDACTED:GOV_ID]" in result.text
