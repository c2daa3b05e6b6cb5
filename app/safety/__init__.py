"""
Safety Module

PII redaction for log output.
"""

from app.safety.redaction import (
    PIIRedactingFilter,
    redact_pii,
)

__all__ = [
    "PIIRedactingFilter",
    "redact_pii",
]
