"""
Utility functions for CallGuard
ID generation, validation, and helper functions
"""

from .ids import generate_consent_id, generate_call_attempt_id, generate_sweep_id
from .validators import (
    sanitize_phone,
    validate_phone,
    validate_timezone,
    validate_retention_days,
)

__all__ = [
    # ID generation
    "generate_consent_id",
    "generate_call_attempt_id",
    "generate_sweep_id",
    # Validators
    "sanitize_phone",
    "validate_phone",
    "validate_timezone",
    "validate_retention_days",
]
