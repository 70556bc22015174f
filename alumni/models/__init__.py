"""
Data Models Package.

Re-exports the Pydantic models and enums for short imports:
    from alumni.models import User, MembershipRequest, FinancialTransaction
    from alumni.models import UserRole, MembershipStatus, TransactionStatus
"""

from __future__ import annotations

from alumni.models.auth_models import IdentityClaims
from alumni.models.enums import (
    IssueStatus,
    MembershipStatus,
    TransactionStatus,
    TransactionType,
    UserRole,
)
from alumni.models.history import StatusHistoryEntry, append_history
from alumni.models.issue import CreateIssueInput, Issue, IssueStats, UpdateIssueInput
from alumni.models.membership_request import ACTIVE_STATUSES, MembershipRequest
from alumni.models.payment import (
    PaymentInitiateRequest,
    PaymentInitiateResponse,
    PaymentVerificationResponse,
)
from alumni.models.service_models import ServiceResult
from alumni.models.setting import FeatureFlags, MembershipFee, Setting, SettingUpdate
from alumni.models.transaction import (
    CreateTransactionInput,
    DateRange,
    FinancialSummary,
    FinancialTransaction,
    TransactionFilter,
    UpdateTransactionInput,
)
from alumni.models.user import (
    REQUIRED_PROFILE_FIELDS,
    RegisterInput,
    UpdateProfileInput,
    User,
)

__all__ = [
    "ACTIVE_STATUSES",
    "CreateIssueInput",
    "CreateTransactionInput",
    "DateRange",
    "FeatureFlags",
    "FinancialSummary",
    "FinancialTransaction",
    "IdentityClaims",
    "Issue",
    "IssueStats",
    "IssueStatus",
    "MembershipFee",
    "MembershipRequest",
    "MembershipStatus",
    "PaymentInitiateRequest",
    "PaymentInitiateResponse",
    "PaymentVerificationResponse",
    "REQUIRED_PROFILE_FIELDS",
    "RegisterInput",
    "ServiceResult",
    "Setting",
    "SettingUpdate",
    "StatusHistoryEntry",
    "TransactionFilter",
    "TransactionStatus",
    "TransactionType",
    "UpdateIssueInput",
    "UpdateProfileInput",
    "UpdateTransactionInput",
    "User",
    "UserRole",
    "append_history",
]
