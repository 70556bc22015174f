"""
Financial Transaction Service.

Income/expense bookkeeping with a review workflow:

- income can only be recorded by admins and is approved on creation;
- expenses are recorded by admins or accountants and wait for review;
- a rejected transaction may be re-submitted for review, an approved one
  is final.

Every state change appends to the transaction's status history and emits
an audit event.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from decimal import Decimal
from typing import Optional

from alumni.config import AppConfig
from alumni.database import DatabaseManager
from alumni.exceptions import NotFoundError, ValidationError
from alumni.logger import StructuredLogger
from alumni.models.enums import TransactionStatus, TransactionType, UserRole
from alumni.models.history import append_history
from alumni.models.transaction import (
    CreateTransactionInput,
    DateRange,
    FinancialSummary,
    FinancialTransaction,
    TransactionFilter,
    UpdateTransactionInput,
)
from alumni.repositories.transaction_repository import TransactionRepository
from alumni.services import permissions
from alumni.services.base_service import BaseService
from alumni.services.transitions import TRANSACTION_TRANSITIONS, validate_transition
from alumni.utils.audit import SYSTEM_ACTOR

ENTITY: str = "FinancialTransaction"
MEMBERSHIP_FEE_CATEGORY: str = "Membership Fee"


class FinancialTransactionService(BaseService):
    """Create, review, edit, delete and report on financial transactions."""

    def __init__(
        self,
        repo: TransactionRepository,
        config: AppConfig,
        logger: StructuredLogger,
        db: Optional[DatabaseManager] = None,
    ) -> None:
        super().__init__(logger, db)
        self._repo = repo
        self._config = config

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create(
        self,
        data: CreateTransactionInput,
        actor_id: str,
        roles: Iterable[UserRole],
    ) -> FinancialTransaction:
        """Record a new transaction on behalf of *actor_id*.

        Raises:
            AuthorizationError: The roles may not create this type.
        """
        roles = set(roles)
        permissions.assert_can_create_transaction(roles, data.type)

        if data.type == TransactionType.INCOME and permissions.is_admin(roles):
            status = TransactionStatus.APPROVED
        elif data.type == TransactionType.EXPENSE:
            status = TransactionStatus.PENDING_REVIEW
        else:
            status = TransactionStatus.DRAFT

        transaction = self._new_transaction(
            data, status=status, created_by=actor_id, note="Transaction created",
        )
        self._repo.create(transaction)
        self._audit(
            "TRANSACTION_CREATE", ENTITY, transaction.id, actor_id,
            details={
                "type": str(transaction.type),
                "status": str(transaction.status),
                "amount": str(transaction.amount),
            },
        )
        return transaction

    def record_system_income(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        payer: Optional[str],
        reference_number: Optional[str],
        category: str = MEMBERSHIP_FEE_CATEGORY,
        auto_approve: bool = True,
    ) -> FinancialTransaction:
        """Book income that arrived through the system (membership fees).

        Not subject to role policy.  When *reference_number* already has a
        transaction in *category*, that transaction is returned instead of
        booking the same payment twice.
        """
        if reference_number:
            existing = self._repo.find_by_reference(reference_number, category)
            if existing is not None:
                self._logger.info(
                    "Income for reference %s already recorded as %s",
                    reference_number, existing.id,
                )
                return existing

        status = TransactionStatus.APPROVED if auto_approve else TransactionStatus.PENDING_REVIEW
        data = CreateTransactionInput(
            type=TransactionType.INCOME,
            amount=amount,
            description=description,
            currency=currency,
            category=category,
            reference_number=reference_number,
            transaction_date=self._now(),
            payer=payer,
        )
        transaction = self._new_transaction(
            data,
            status=status,
            created_by=SYSTEM_ACTOR,
            note="Membership fee payment received",
        )
        self._repo.create(transaction)
        self._audit(
            "TRANSACTION_CREATE", ENTITY, transaction.id, SYSTEM_ACTOR,
            details={
                "type": str(transaction.type),
                "status": str(transaction.status),
                "amount": str(transaction.amount),
                "reference_number": reference_number,
            },
        )
        return transaction

    def review(
        self,
        transaction_id: str,
        target: TransactionStatus,
        reviewer_id: str,
        roles: Iterable[UserRole],
        note: Optional[str] = None,
        rejection_reason: Optional[str] = None,
    ) -> FinancialTransaction:
        """Move a transaction to *target* as a reviewer.

        Raises:
            NotFoundError: Unknown transaction.
            AuthorizationError: The roles may not review this type.
            ValidationError: Illegal transition, or rejection without reason.
            ConflictError: The transaction changed concurrently.
        """
        transaction = self.get_transaction(transaction_id)
        permissions.assert_can_review_transaction(roles, transaction.type)
        validate_transition(TRANSACTION_TRANSITIONS, transaction.status, target, "transaction")

        if target == TransactionStatus.REJECTED and not rejection_reason:
            raise ValidationError(
                "Rejection reason is required when rejecting a transaction"
            )

        changes: dict[str, object] = {
            "status": target,
            "reviewed_by": reviewer_id,
            "reviewed_at": self._now(),
            "updated_at": self._now(),
            "status_history": append_history(
                transaction.status_history, target, reviewer_id, note or rejection_reason,
            ),
        }
        if note:
            changes["review_note"] = note
        if rejection_reason:
            changes["rejection_reason"] = rejection_reason

        updated = self._repo.update(transaction.model_copy(update=changes))
        self._audit(
            "TRANSACTION_REVIEW", ENTITY, transaction_id, reviewer_id,
            details={"from": str(transaction.status), "to": str(target)},
        )
        return updated

    def update(
        self,
        transaction_id: str,
        patch: UpdateTransactionInput,
        actor_id: str,
        roles: Iterable[UserRole],
    ) -> FinancialTransaction:
        """Merge the fields set on *patch*.  Status is not touched."""
        transaction = self.get_transaction(transaction_id)
        permissions.assert_can_update_transaction(roles, actor_id, transaction)

        changes = {k: v for k, v in patch.changes().items() if v is not None or k not in _REQUIRED_FIELDS}
        if not changes:
            return transaction
        updated = self._repo.update(
            transaction.model_copy(update={**changes, "updated_at": self._now()})
        )
        self._audit(
            "TRANSACTION_UPDATE", ENTITY, transaction_id, actor_id,
            details={"fields": ",".join(sorted(changes))},
        )
        return updated

    def delete(
        self,
        transaction_id: str,
        actor_id: str,
        roles: Iterable[UserRole],
    ) -> None:
        transaction = self.get_transaction(transaction_id)
        permissions.assert_can_delete_transaction(roles, actor_id, transaction)
        self._repo.delete(transaction_id)
        self._audit(
            "TRANSACTION_DELETE", ENTITY, transaction_id, actor_id,
            details={"status": str(transaction.status), "amount": str(transaction.amount)},
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_transaction(self, transaction_id: str) -> FinancialTransaction:
        transaction = self._repo.get_by_id(transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction", transaction_id)
        return transaction

    def list_transactions(
        self,
        criteria: Optional[TransactionFilter],
        actor_id: str,
        roles: Iterable[UserRole],
    ) -> list[FinancialTransaction]:
        """Admins and accountants see everything; others only their own."""
        criteria = criteria or TransactionFilter()
        if not permissions.can_view_all_transactions(roles):
            criteria = criteria.model_copy(update={"created_by": actor_id})
        return self._repo.find(criteria)

    def list_my_transactions(
        self, actor_id: str, criteria: Optional[TransactionFilter] = None,
    ) -> list[FinancialTransaction]:
        criteria = (criteria or TransactionFilter()).model_copy(update={"created_by": actor_id})
        return self._repo.find(criteria)

    def list_pending_review(self, roles: Iterable[UserRole]) -> list[FinancialTransaction]:
        """Review queue, newest first.  Accountants only see expenses."""
        roles = set(roles)
        permissions.assert_can_view_pending_review(roles)
        criteria = TransactionFilter(status=TransactionStatus.PENDING_REVIEW)
        if not permissions.is_admin(roles):
            criteria = criteria.model_copy(update={"type": TransactionType.EXPENSE})
        pending = self._repo.find(criteria)
        pending.sort(key=lambda t: t.created_at or t.transaction_date, reverse=True)
        return pending

    def summary(self, date_range: Optional[DateRange] = None) -> FinancialSummary:
        """Approved totals inside *date_range* plus the pending expense backlog.

        The backlog figures ignore *date_range*.
        """
        date_range = date_range or DateRange()
        approved = self._repo.find(
            TransactionFilter(
                status=TransactionStatus.APPROVED,
                start_date=date_range.start,
                end_date=date_range.end,
            )
        )
        income = [t.amount for t in approved if t.type == TransactionType.INCOME]
        expense = [t.amount for t in approved if t.type == TransactionType.EXPENSE]
        pending = [
            t.amount
            for t in self._repo.find(
                TransactionFilter(
                    status=TransactionStatus.PENDING_REVIEW,
                    type=TransactionType.EXPENSE,
                )
            )
        ]

        total_income = sum(income, Decimal("0"))
        total_expense = sum(expense, Decimal("0"))
        return FinancialSummary(
            total_income=total_income,
            total_expense=total_expense,
            net_balance=total_income - total_expense,
            income_count=len(income),
            expense_count=len(expense),
            pending_expense_count=len(pending),
            pending_expense_amount=sum(pending, Decimal("0")),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _new_transaction(
        self,
        data: CreateTransactionInput,
        status: TransactionStatus,
        created_by: str,
        note: str,
    ) -> FinancialTransaction:
        now = self._now()
        return FinancialTransaction(
            id=str(uuid.uuid4()),
            type=data.type,
            amount=data.amount,
            description=data.description,
            currency=data.currency or self._config.DEFAULT_CURRENCY,
            category=data.category,
            reference_number=data.reference_number,
            transaction_date=data.transaction_date,
            status=status,
            created_by=created_by,
            status_history=append_history((), status, created_by, note),
            attachment_url=data.attachment_url,
            payee=data.payee,
            payer=data.payer,
            created_at=now,
            updated_at=now,
        )


# Fields that cannot be cleared by an explicit ``None`` in a patch.
_REQUIRED_FIELDS: frozenset[str] = frozenset({"amount", "description", "transaction_date"})
