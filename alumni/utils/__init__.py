"""Shared utilities for the alumni office application.

Convenience re-exports so consumers can import directly from
``alumni.utils``; full module paths remain supported.
"""

from alumni.utils.audit import AuditEvent, log_audit_event
from alumni.utils.string_helpers import (
    normalize_keys,
    sanitize_search_term,
    to_snake_case,
)

__all__ = [
    "AuditEvent",
    "log_audit_event",
    "normalize_keys",
    "sanitize_search_term",
    "to_snake_case",
]
