"""
Compliance configuration management for CallGuard
Key material, webhook trust, calling hours and retention windows
"""

from datetime import time
from enum import Enum
from functools import lru_cache
from typing import Dict, Optional
from pydantic_settings import BaseSettings
from pydantic import Field

from .constants import CallingHoursDefaults, RetentionDefaults, WebhookDefaults


class CipherSuite(str, Enum):
    """Supported AEAD cipher suites for field encryption"""
    AES_256_GCM = "aes-256-gcm"
    CHACHA20_POLY1305 = "chacha20-poly1305"


class ComplianceConfig(BaseSettings):
    """Compliance and webhook-trust configuration settings"""

    # Persistence
    database_url: str = Field(default="sqlite:///callguard.db")

    # Encryption key ring (version -> hex key); exactly one current version
    encryption_keys: Dict[str, str] = Field(default_factory=dict)
    encryption_key_suites: Dict[str, CipherSuite] = Field(
        default_factory=dict,
        description="Cipher suite per key version, defaults to aes-256-gcm"
    )
    encryption_current_key_version: Optional[str] = Field(default=None)

    # Webhook trust
    telnyx_public_key: Optional[str] = Field(
        default=None,
        description="Base64 Ed25519 public key of the voice provider"
    )
    webhook_max_skew_seconds: int = Field(default=WebhookDefaults.MAX_SKEW_SECONDS)
    hmac_secrets: Dict[str, str] = Field(
        default_factory=dict,
        description="Shared HMAC secrets keyed by integration name"
    )

    # TCPA calling window, recipient local time, [start, end)
    calling_hours_start: time = Field(default=time(CallingHoursDefaults.START_HOUR, 0))
    calling_hours_end: time = Field(default=time(CallingHoursDefaults.END_HOUR, 0))

    # Consent expiry must be set explicitly; "none" means grants never expire
    consent_expiry_days: Optional[int] = Field(...)

    # Retention windows in days; None means permanent
    retention_calls_days: Optional[int] = Field(default=RetentionDefaults.CALLS_DAYS)
    retention_recordings_days: Optional[int] = Field(default=RetentionDefaults.RECORDINGS_DAYS)
    retention_logs_days: Optional[int] = Field(default=RetentionDefaults.LOGS_DAYS)
    retention_consent_days: Optional[int] = Field(default=None)
    consent_proof_redaction_days: Optional[int] = Field(default=None)
    retention_sweep_interval_seconds: int = Field(default=86400)
    recordings_table: str = Field(default="call_recordings", description="Externally owned table of call recordings")
    logs_table: str = Field(default="compliance_logs", description="Externally owned table of compliance logs")

    log_level: str = Field(default="INFO")

    model_config = {
        "env_prefix": "CALLGUARD_",
        "case_sensitive": False,
        "env_parse_none_str": "none",
    }


@lru_cache
def get_config() -> ComplianceConfig:
    """Get the process-wide configuration, loaded once from the environment"""
    return ComplianceConfig()
