"""
Input Validators for CallGuard

Validation utilities for subject phone numbers, timezones and retention
windows used at the compliance engine's public entry points.
"""

import re
import logging
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..exceptions import ValidationError

logger = logging.getLogger(__name__)

# =============================================================================
# REGEX PATTERNS
# =============================================================================

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$", re.ASCII)
PHONE_STRIP_PATTERN = re.compile(r"[^\d+]", re.ASCII)

# =============================================================================
# VALIDATION FUNCTIONS
# =============================================================================

def sanitize_phone(phone: str) -> str:
    """Remove formatting characters, keeping digits and a leading plus"""
    return PHONE_STRIP_PATTERN.sub("", phone)


def validate_phone(
    phone: Any,
    field_name: str = "phone",
) -> str:
    """
    Validate and normalize an E.164 phone number.

    Args:
        phone: Phone number to validate; spaces, dashes and parentheses are stripped
        field_name: Field name for error messages

    Returns:
        Normalized E.164 string

    Raises:
        ValidationError: If the number is missing or not E.164
    """
    if phone is None or (isinstance(phone, str) and not phone.strip()):
        raise ValidationError(f"{field_name} is required", field=field_name)

    if not isinstance(phone, str):
        raise ValidationError(f"{field_name} must be a string", field=field_name)

    normalized = sanitize_phone(phone.strip())

    if not E164_PATTERN.match(normalized):
        raise ValidationError(
            f"{field_name} must be in E.164 format",
            field=field_name
        )

    return normalized


def validate_timezone(
    timezone: Any,
    field_name: str = "timezone",
) -> ZoneInfo:
    """
    Resolve an IANA timezone name.

    Raises:
        ValidationError: If the name is missing or unknown
    """
    if not timezone or not isinstance(timezone, str):
        raise ValidationError(f"{field_name} is required", field=field_name)

    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %s", timezone)
        raise ValidationError(
            f"Unknown {field_name}: '{timezone}'",
            field=field_name
        )


def validate_retention_days(
    days: Any,
    field_name: str = "retention_days",
) -> Optional[int]:
    """
    Validate a retention window; None means permanent.

    Raises:
        ValidationError: If the window is not a positive integer
    """
    if days is None:
        return None

    if isinstance(days, bool) or not isinstance(days, int):
        raise ValidationError(f"{field_name} must be an integer", field=field_name)

    if days <= 0:
        raise ValidationError(
            f"{field_name} must be positive",
            field=field_name,
            details={"value": days}
        )

    return days
