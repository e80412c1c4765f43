"""Consent ledger: versioned, per-user consent records."""

import re
from datetime import datetime, timedelta

from ..core.enums import MemoryCategory
from ..core.exceptions import NotFoundError, ValidationError
from ..core.schemas import ConsentRecord, utc_now
from ..utils.logging_config import get_logger
from .retention import RetentionPolicyTable

logger = get_logger(__name__)

_VERSION_RE = re.compile(r"^v?(\d+(?:\.\d+)*)$")


def parse_version(version: str) -> tuple[int, ...]:
    """Parse a dotted numeric version (``"1"``, ``"1.2"``, ``"v2.0.1"``)."""
    m = _VERSION_RE.match(version.strip()) if version else None
    if not m:
        raise ValidationError(f"Invalid consent version: {version!r}")
    parts = [int(p) for p in m.group(1).split(".")]
    while len(parts) > 1 and parts[-1] == 0:
        parts.pop()
    return tuple(parts)


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1 as *a* is older than, equal to, or newer than *b*.

    Components compare numerically, so ``"1.10" > "1.9"`` and ``"1.0" == "1"``.
    """
    pa, pb = parse_version(a), parse_version(b)
    width = max(len(pa), len(pb))
    pa += (0,) * (width - len(pa))
    pb += (0,) * (width - len(pb))
    return (pa > pb) - (pa < pb)


class ConsentLedger:
    """Holds one consent record per user; last write wins."""

    def __init__(
        self,
        retention: RetentionPolicyTable,
        min_version: str = "1.0",
        max_age_days: int | None = 365,
    ) -> None:
        parse_version(min_version)
        self.retention = retention
        self.min_version = min_version
        self.max_age = timedelta(days=max_age_days) if max_age_days else None
        self._records: dict[str, ConsentRecord] = {}

    def record_consent(self, user_id: str, record: ConsentRecord) -> ConsentRecord:
        if not user_id:
            raise ValidationError("user_id is required to record consent")
        if not record.consent_version:
            raise ValidationError("consent_version is required")
        parse_version(record.consent_version)
        if not record.consent_given and (
            record.data_processing_consent
            or record.personalized_responses_consent
            or record.retention_consent
        ):
            raise ValidationError(
                "Inconsistent consent: purpose flags set while consent_given is false"
            )
        stored = record.model_copy(update={"user_id": user_id})
        self._records[user_id] = stored
        logger.info(
            "consent_recorded",
            user_id=user_id,
            consent_given=stored.consent_given,
            consent_version=stored.consent_version,
        )
        return stored

    def get_consent(self, user_id: str) -> ConsentRecord | None:
        return self._records.get(user_id)

    def has_valid_consent(
        self,
        user_id: str | None,
        category: MemoryCategory,
        now: datetime | None = None,
    ) -> bool:
        if not user_id:
            return False
        record = self._records.get(user_id)
        if record is None or not record.consent_given or not record.consent_version:
            return False
        if compare_versions(record.consent_version, self.min_version) < 0:
            return False
        if self.retention.requires_consent(category) and not record.retention_consent:
            return False
        if self.max_age is not None and (now or utc_now()) - record.consent_date > self.max_age:
            return False
        return True

    def revoke_consent(self, user_id: str) -> ConsentRecord:
        """Withdraw consent. Previously stored memories are not deleted here."""
        record = self._records.get(user_id)
        if record is None:
            raise NotFoundError(user_id, "No consent record for user")
        revoked = record.model_copy(
            update={
                "consent_given": False,
                "consent_date": utc_now(),
                "data_processing_consent": False,
                "personalized_responses_consent": False,
                "retention_consent": False,
            }
        )
        self._records[user_id] = revoked
        logger.info("consent_revoked", user_id=user_id)
        return revoked


def render_privacy_notice(
    retention: RetentionPolicyTable,
    *,
    processing_basis: str = "legitimate_interest",
    consent_required: bool = True,
    allow_export: bool = True,
    allow_deletion: bool = True,
) -> str:
    """Human-readable notice describing what is kept and for how long."""
    periods = "\n".join(
        f"- {p.category.value}: {p.ttl_days} days"
        + (" (auto-delete)" if p.auto_delete else "")
        + (" (requires consent)" if p.requires_consent else "")
        for p in retention.policies.values()
    )
    return (
        "Privacy Notice for Conversation Memory:\n\n"
        "We collect and process conversation data to improve your experience through:\n"
        "- Contextual understanding of your questions\n"
        "- Personalized responses based on preferences\n"
        "- Entity and relationship tracking\n\n"
        f"Data Processing Basis: {processing_basis}\n"
        f"Consent Required: {'Yes' if consent_required else 'No'}\n\n"
        f"Retention Periods:\n{periods}\n\n"
        "Your Rights:\n"
        f"- Request data export: {'Available' if allow_export else 'Not available'}\n"
        f"- Request data deletion: {'Available' if allow_deletion else 'Not available'}\n"
        "- Withdraw consent: Available at any time"
    )
