"""Role policy for financial transactions and membership administration."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from alumni.exceptions import AuthorizationError, ValidationError
from alumni.models.enums import TransactionStatus, TransactionType, UserRole
from alumni.models.transaction import FinancialTransaction
from alumni.services import permissions

ADMIN = {UserRole.ADMIN}
SYSTEM_ADMIN = {UserRole.SYSTEM_ADMIN}
ACCOUNTANT = {UserRole.ACCOUNTANT}
MEMBER = {UserRole.MEMBER}
GUEST = {UserRole.GUEST}


def _transaction(status: TransactionStatus, created_by: str = "creator") -> FinancialTransaction:
    return FinancialTransaction(
        id="t1",
        type=TransactionType.EXPENSE,
        amount=Decimal("10"),
        description="Venue",
        transaction_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        status=status,
        created_by=created_by,
    )


@pytest.mark.parametrize(
    ("roles", "tx_type", "allowed"),
    [
        (ADMIN, TransactionType.INCOME, True),
        (SYSTEM_ADMIN, TransactionType.INCOME, True),
        (ACCOUNTANT, TransactionType.INCOME, False),
        (MEMBER, TransactionType.INCOME, False),
        (ADMIN, TransactionType.EXPENSE, True),
        (ACCOUNTANT, TransactionType.EXPENSE, True),
        (MEMBER, TransactionType.EXPENSE, False),
        (GUEST, TransactionType.EXPENSE, False),
    ],
)
def test_create_and_review_policy(roles, tx_type, allowed):
    assert permissions.can_create_transaction(roles, tx_type) is allowed
    assert permissions.can_review_transaction(roles, tx_type) is allowed


def test_roles_accumulate():
    roles = {UserRole.MEMBER, UserRole.ACCOUNTANT}
    assert permissions.can_create_transaction(roles, TransactionType.EXPENSE)
    assert not permissions.can_create_transaction(roles, TransactionType.INCOME)


def test_income_denial_message():
    with pytest.raises(AuthorizationError, match="Only admins can create income"):
        permissions.assert_can_create_transaction(ACCOUNTANT, TransactionType.INCOME)


def test_expense_denial_message():
    with pytest.raises(AuthorizationError, match="admins or accountants"):
        permissions.assert_can_create_transaction(MEMBER, TransactionType.EXPENSE)


def test_accountant_cannot_review_income():
    with pytest.raises(AuthorizationError, match="Only admins can review income"):
        permissions.assert_can_review_transaction(ACCOUNTANT, TransactionType.INCOME)


def test_member_cannot_review_anything():
    with pytest.raises(AuthorizationError, match="review transactions"):
        permissions.assert_can_review_transaction(MEMBER, TransactionType.EXPENSE)


@pytest.mark.parametrize("status", list(TransactionStatus))
def test_admin_may_update_and_delete_in_any_status(status):
    tx = _transaction(status, created_by="someone-else")
    assert permissions.can_update_transaction(ADMIN, "admin-1", tx)
    assert permissions.can_delete_transaction(ADMIN, "admin-1", tx)
    permissions.assert_can_update_transaction(ADMIN, "admin-1", tx)
    permissions.assert_can_delete_transaction(ADMIN, "admin-1", tx)


@pytest.mark.parametrize(
    ("status", "allowed"),
    [
        (TransactionStatus.DRAFT, True),
        (TransactionStatus.PENDING_REVIEW, True),
        (TransactionStatus.APPROVED, False),
        (TransactionStatus.REJECTED, False),
    ],
)
def test_creator_update_depends_on_status(status, allowed):
    assert permissions.can_update_transaction(ACCOUNTANT, "creator", _transaction(status)) is allowed


def test_creator_updating_reviewed_transaction_is_a_validation_error():
    with pytest.raises(ValidationError, match="Cannot update approved or rejected"):
        permissions.assert_can_update_transaction(
            ACCOUNTANT, "creator", _transaction(TransactionStatus.APPROVED),
        )


def test_non_creator_update_is_an_authorization_error():
    with pytest.raises(AuthorizationError):
        permissions.assert_can_update_transaction(
            ACCOUNTANT, "other", _transaction(TransactionStatus.DRAFT),
        )


@pytest.mark.parametrize(
    ("status", "allowed"),
    [
        (TransactionStatus.DRAFT, True),
        (TransactionStatus.PENDING_REVIEW, False),
        (TransactionStatus.APPROVED, False),
        (TransactionStatus.REJECTED, True),
    ],
)
def test_creator_delete_depends_on_status(status, allowed):
    assert permissions.can_delete_transaction(ACCOUNTANT, "creator", _transaction(status)) is allowed


def test_creator_deleting_pending_transaction_is_a_validation_error():
    with pytest.raises(ValidationError, match="Only draft or rejected"):
        permissions.assert_can_delete_transaction(
            ACCOUNTANT, "creator", _transaction(TransactionStatus.PENDING_REVIEW),
        )


def test_view_all_and_member_management():
    assert permissions.can_view_all_transactions(ACCOUNTANT)
    assert not permissions.can_view_all_transactions(MEMBER)
    permissions.assert_can_manage_members(SYSTEM_ADMIN)
    with pytest.raises(AuthorizationError):
        permissions.assert_can_manage_members(ACCOUNTANT)
    with pytest.raises(AuthorizationError):
        permissions.assert_can_view_pending_review(GUEST)
