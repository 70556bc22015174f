"""
Role/Permission Evaluator.

Pure predicates over a caller's role set.  ``can_*`` functions answer
yes/no; ``assert_*`` functions raise on denial so services can guard an
operation in one line.

A denial is an ``AuthorizationError``.  The one exception is a creator
touching their own transaction after review has closed it: the caller is
allowed in principle, the record is simply no longer editable, and that
is reported as a ``ValidationError``.
"""

from __future__ import annotations

from collections.abc import Iterable

from alumni.exceptions import AuthorizationError, ValidationError
from alumni.models.enums import TransactionStatus, TransactionType, UserRole
from alumni.models.transaction import FinancialTransaction

ADMIN_ROLES: frozenset[UserRole] = frozenset({UserRole.ADMIN, UserRole.SYSTEM_ADMIN})

# Statuses a non-admin creator may no longer edit / may still delete.
_LOCKED_FOR_CREATOR: frozenset[TransactionStatus] = frozenset({
    TransactionStatus.APPROVED,
    TransactionStatus.REJECTED,
})
_DELETABLE_BY_CREATOR: frozenset[TransactionStatus] = frozenset({
    TransactionStatus.DRAFT,
    TransactionStatus.REJECTED,
})


def is_admin(roles: Iterable[UserRole]) -> bool:
    return not ADMIN_ROLES.isdisjoint(roles)


def is_accountant(roles: Iterable[UserRole]) -> bool:
    return UserRole.ACCOUNTANT in set(roles)


def can_create_transaction(roles: Iterable[UserRole], tx_type: TransactionType) -> bool:
    """Income: admins only.  Expense: admins or accountants."""
    roles = set(roles)
    if tx_type == TransactionType.INCOME:
        return is_admin(roles)
    return is_admin(roles) or is_accountant(roles)


def can_review_transaction(roles: Iterable[UserRole], tx_type: TransactionType) -> bool:
    """Income: admins only.  Expense: admins or accountants."""
    return can_create_transaction(roles, tx_type)


def can_update_transaction(
    roles: Iterable[UserRole], actor_id: str, transaction: FinancialTransaction,
) -> bool:
    roles = set(roles)
    if is_admin(roles):
        return True
    return (
        transaction.created_by == actor_id
        and transaction.status not in _LOCKED_FOR_CREATOR
    )


def can_delete_transaction(
    roles: Iterable[UserRole], actor_id: str, transaction: FinancialTransaction,
) -> bool:
    roles = set(roles)
    if is_admin(roles):
        return True
    return (
        transaction.created_by == actor_id
        and transaction.status in _DELETABLE_BY_CREATOR
    )


def can_view_all_transactions(roles: Iterable[UserRole]) -> bool:
    roles = set(roles)
    return is_admin(roles) or is_accountant(roles)


# ---------------------------------------------------------------------------
# Raising variants
# ---------------------------------------------------------------------------


def assert_can_create_transaction(
    roles: Iterable[UserRole], tx_type: TransactionType,
) -> None:
    if not can_create_transaction(roles, tx_type):
        if tx_type == TransactionType.INCOME:
            raise AuthorizationError("Only admins can create income transactions")
        raise AuthorizationError(
            "Only admins or accountants can create expense transactions"
        )


def assert_can_review_transaction(
    roles: Iterable[UserRole], tx_type: TransactionType,
) -> None:
    roles = set(roles)
    if not (is_admin(roles) or is_accountant(roles)):
        raise AuthorizationError("Only admins or accountants can review transactions")
    if not can_review_transaction(roles, tx_type):
        raise AuthorizationError("Only admins can review income transactions")


def assert_can_update_transaction(
    roles: Iterable[UserRole], actor_id: str, transaction: FinancialTransaction,
) -> None:
    roles = set(roles)
    if is_admin(roles):
        return
    if transaction.created_by != actor_id:
        raise AuthorizationError("You do not have permission to update this transaction")
    if transaction.status in _LOCKED_FOR_CREATOR:
        raise ValidationError(
            "Cannot update approved or rejected transactions",
            details={"status": str(transaction.status)},
        )


def assert_can_delete_transaction(
    roles: Iterable[UserRole], actor_id: str, transaction: FinancialTransaction,
) -> None:
    roles = set(roles)
    if is_admin(roles):
        return
    if transaction.created_by != actor_id:
        raise AuthorizationError("You do not have permission to delete this transaction")
    if transaction.status not in _DELETABLE_BY_CREATOR:
        raise ValidationError(
            "Only draft or rejected transactions can be deleted",
            details={"status": str(transaction.status)},
        )


def assert_can_view_pending_review(roles: Iterable[UserRole]) -> None:
    if not can_view_all_transactions(roles):
        raise AuthorizationError(
            "Only admins or accountants can view pending transactions"
        )


def assert_can_manage_members(roles: Iterable[UserRole]) -> None:
    """Membership administration (verification, payment, approval)."""
    if not is_admin(roles):
        raise AuthorizationError("Only admins can manage membership requests")


def assert_can_manage_issues(roles: Iterable[UserRole]) -> None:
    """Reading and triaging the public issue inbox."""
    if not is_admin(roles):
        raise AuthorizationError("Only admins can manage reported issues")
