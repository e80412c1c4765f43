"""Privacy layer: PII redaction, consent ledger, retention policies."""

from .consent import ConsentLedger, compare_versions, render_privacy_notice
from .redactor import PiiMatch, PIIRedactor, SanitizationResult
from .retention import (
    DEFAULT_RETENTION_POLICIES,
    RetentionPolicy,
    RetentionPolicyTable,
    RetentionSweeper,
)

__all__ = [
    "ConsentLedger",
    "DEFAULT_RETENTION_POLICIES",
    "PIIRedactor",
    "PiiMatch",
    "RetentionPolicy",
    "RetentionPolicyTable",
    "RetentionSweeper",
    "SanitizationResult",
    "compare_versions",
    "render_privacy_notice",
]
