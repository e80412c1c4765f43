"""PII detection and redaction before storage."""

import re
from dataclasses import dataclass, field

from ..core.enums import PiiKind
from ..core.exceptions import PiiRejectedError, ValidationError
from ..utils.logging_config import get_logger
from ..utils.metrics import PII_REDACTIONS

logger = get_logger(__name__)

_PLACEHOLDER_RE = re.compile(r"\[REDACTED:[A-Z_]+\]")

SENSITIVE_KEYWORDS = (
    "password",
    "token",
    "key",
    "secret",
    "credential",
    "ssn",
    "social security",
    "credit card",
    "bank account",
    "personal",
    "private",
    "confidential",
)


# Placeholder tags share no text with any pattern or keyword, so a sanitized
# string never contains a substring that was matched in the original.
PLACEHOLDER_TAGS = {
    PiiKind.EMAIL: "EMAIL",
    PiiKind.PHONE: "PHONE",
    PiiKind.SSN: "GOV_ID",
    PiiKind.CREDIT_CARD: "CARD_NUMBER",
    PiiKind.IP_ADDRESS: "IP_ADDRESS",
    PiiKind.SENSITIVE_KEYWORD: "SENSITIVE",
}


def placeholder_for(kind: PiiKind) -> str:
    return f"[REDACTED:{PLACEHOLDER_TAGS.get(kind, 'PII')}]"


def _keyword_pattern(keywords: tuple[str, ...]) -> str:
    # A trailing "= value" / ": value" belongs to the sensitive span.
    alternatives = "|".join(re.escape(k).replace(r"\ ", r"\s+") for k in keywords)
    return rf"\b(?:{alternatives})s?\b(?:\s*[:=]\s*\S+)?"


@dataclass(frozen=True)
class PiiMatch:
    kind: PiiKind
    start: int
    end: int
    text: str


@dataclass
class SanitizationResult:
    text: str
    redacted_kinds: list[PiiKind] = field(default_factory=list)

    @property
    def was_redacted(self) -> bool:
        return bool(self.redacted_kinds)


class PIIRedactor:
    """Detects PII in candidate memory text and redacts or rejects it.

    Numeric patterns lean towards false positives: any 13-19 digit run (with
    optional spaces or dashes) is treated as a card number, and bare 9-digit
    runs as SSNs.
    """

    PATTERNS = {
        PiiKind.EMAIL: r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b",
        PiiKind.PHONE: r"(?<!\w)(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}(?!\w)",
        PiiKind.SSN: r"\b\d{3}[-\s]?\d{2}[-\s]?\d{4}\b",
        PiiKind.CREDIT_CARD: r"\b(?:\d[-\s]?){12,18}\d\b",
        PiiKind.IP_ADDRESS: r"\b(?:\d{1,3}\.){3}\d{1,3}\b",
        PiiKind.SENSITIVE_KEYWORD: _keyword_pattern(SENSITIVE_KEYWORDS),
    }

    def __init__(
        self,
        enabled: bool = True,
        auto_sanitize: bool = False,
        max_content_length: int = 10_000,
        additional_patterns: dict[PiiKind, str] | None = None,
    ) -> None:
        self.enabled = enabled
        self.auto_sanitize = auto_sanitize
        self.max_content_length = max_content_length
        self.patterns = {**self.PATTERNS}
        if additional_patterns:
            self.patterns.update(additional_patterns)
        self._compiled = {
            kind: re.compile(pattern, re.IGNORECASE) for kind, pattern in self.patterns.items()
        }

    def detect(self, text: str) -> list[PiiMatch]:
        """Return every match of every kind; overlapping matches are all reported."""
        if not self.enabled or not text:
            return []
        # Placeholders left by an earlier sanitize pass are not PII.
        placeholders = [(p.start(), p.end()) for p in _PLACEHOLDER_RE.finditer(text)]
        matches = [
            PiiMatch(kind=kind, start=m.start(), end=m.end(), text=m.group())
            for kind, pattern in self._compiled.items()
            for m in pattern.finditer(text)
            if not any(s <= m.start() and m.end() <= e for s, e in placeholders)
        ]
        matches.sort(key=lambda m: (m.start, -m.end))
        return matches

    def validate_content(self, text: str) -> None:
        if not text or not text.strip():
            raise ValidationError("Memory content must not be empty")
        if len(text) > self.max_content_length:
            raise ValidationError(
                f"Memory content exceeds maximum length ({len(text)} > {self.max_content_length})"
            )

    def sanitize(self, text: str) -> SanitizationResult:
        """Redact detected PII, or raise ``PiiRejectedError`` when auto-sanitization is off."""
        matches = self.detect(text)
        if not matches:
            return SanitizationResult(text=text)

        kinds = _unique_kinds(matches)
        if not self.auto_sanitize:
            logger.info("pii_rejected", kinds=[k.value for k in kinds])
            raise PiiRejectedError([k.value for k in kinds])

        # Merge overlapping ranges to avoid garbled output
        merged: list[list] = []  # [start, end, kind]
        for m in matches:
            if merged and m.start < merged[-1][1]:
                merged[-1][1] = max(merged[-1][1], m.end)
            else:
                merged.append([m.start, m.end, m.kind])

        redacted = text
        for start, end, kind in reversed(merged):
            redacted = redacted[:start] + placeholder_for(kind) + redacted[end:]

        for kind in kinds:
            PII_REDACTIONS.labels(kind=kind.value).inc()
        return SanitizationResult(text=redacted, redacted_kinds=kinds)


def _unique_kinds(matches: list[PiiMatch]) -> list[PiiKind]:
    seen: list[PiiKind] = []
    for m in matches:
        if m.kind not in seen:
            seen.append(m.kind)
    return seen
