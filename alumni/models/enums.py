"""
Shared Enumerations for Alumni Office Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents, so stored
values like ``'approved'`` round-trip without conversion.
"""

from __future__ import annotations
from enum import StrEnum


class UserRole(StrEnum):
    """Closed set of roles a user may hold.

    A user holds a non-empty *set* of roles.  New accounts start as
    ``GUEST``; ``MEMBER`` is granted only by membership approval.
    """

    SYSTEM_ADMIN = "system_admin"
    ADMIN = "admin"
    ACCOUNTANT = "accountant"
    MEMBER = "member"
    REVIEWER = "reviewer"
    PUBLISHER = "publisher"
    EVENT_MANAGER = "event_manager"
    GUEST = "guest"


class MembershipStatus(StrEnum):
    """Membership request lifecycle states."""

    DRAFT = "draft"
    INFORMATION_VERIFIED = "information_verified"
    PAYMENT_REQUIRED = "payment_required"
    APPROVED = "approved"
    REJECTED = "rejected"


class TransactionType(StrEnum):
    """Direction of a financial transaction."""

    INCOME = "income"
    EXPENSE = "expense"


class TransactionStatus(StrEnum):
    """Financial transaction review lifecycle states."""

    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class IssueStatus(StrEnum):
    """Triage states of a reported issue."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    WONT_RESOLVE = "wont_resolve"
