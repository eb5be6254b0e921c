"""
ID generation utilities for CallGuard
Prefixed identifiers for consent records, call attempts and sweeps
"""

import uuid


def generate_consent_id() -> str:
    """Generate consent record ID"""
    return f"consent_{uuid.uuid4()}"


def generate_call_attempt_id() -> str:
    """Generate call attempt audit record ID"""
    return f"call_{uuid.uuid4()}"


def generate_sweep_id() -> str:
    """Generate retention sweep run ID"""
    return f"sweep_{uuid.uuid4().hex}"
