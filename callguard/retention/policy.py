"""
Retention policy for CallGuard
Per-category retention windows; a missing window means permanent
"""

from datetime import timedelta
from typing import Dict, Optional
from pydantic import BaseModel, Field, field_validator

from ..config import ComplianceConfig
from ..constants import RetentionCategories, RetentionDefaults
from ..utils.validators import validate_retention_days


class RetentionPolicy(BaseModel):
    """Retention windows in days per category, plus consent-proof redaction"""
    windows: Dict[str, Optional[int]] = Field(default_factory=lambda: {
        RetentionCategories.CALLS: RetentionDefaults.CALLS_DAYS,
        RetentionCategories.RECORDINGS: RetentionDefaults.RECORDINGS_DAYS,
        RetentionCategories.LOGS: RetentionDefaults.LOGS_DAYS,
        RetentionCategories.CONSENT: None,
    })
    consent_proof_redaction_days: Optional[int] = None

    @field_validator("windows")
    @classmethod
    def _check_windows(cls, windows: Dict[str, Optional[int]]) -> Dict[str, Optional[int]]:
        return {
            category: validate_retention_days(days, field_name=f"retention.{category}")
            for category, days in windows.items()
        }

    @field_validator("consent_proof_redaction_days")
    @classmethod
    def _check_redaction(cls, days: Optional[int]) -> Optional[int]:
        return validate_retention_days(days, field_name="consent_proof_redaction_days")

    @classmethod
    def from_config(cls, config: ComplianceConfig) -> "RetentionPolicy":
        return cls(
            windows={
                RetentionCategories.CALLS: config.retention_calls_days,
                RetentionCategories.RECORDINGS: config.retention_recordings_days,
                RetentionCategories.LOGS: config.retention_logs_days,
                RetentionCategories.CONSENT: config.retention_consent_days,
            },
            consent_proof_redaction_days=config.consent_proof_redaction_days,
        )

    def window_for(self, category: str) -> Optional[timedelta]:
        """Retention window for a category, None when permanent"""
        days = self.windows.get(category)
        return timedelta(days=days) if days is not None else None

    def is_permanent(self, category: str) -> bool:
        return self.windows.get(category) is None

    def redaction_window(self) -> Optional[timedelta]:
        if self.consent_proof_redaction_days is None:
            return None
        return timedelta(days=self.consent_proof_redaction_days)
