"""
Financial Transaction Model.

Income and expense records of the association, with their review
lifecycle.  Input DTOs for create/update/filter live beside the entity
so the service layer never handles raw dicts.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from alumni.models.enums import TransactionStatus, TransactionType
from alumni.models.history import StatusHistory

DEFAULT_CURRENCY: str = "BDT"


class FinancialTransaction(BaseModel):
    """Represents a financial transaction record."""

    id: str
    type: TransactionType
    amount: Decimal = Field(ge=0)
    description: str
    currency: str = DEFAULT_CURRENCY
    category: Optional[str] = None
    reference_number: Optional[str] = None
    transaction_date: datetime
    status: TransactionStatus = TransactionStatus.DRAFT

    created_by: str
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_note: Optional[str] = None
    rejection_reason: Optional[str] = None
    status_history: StatusHistory = ()

    attachment_url: Optional[str] = None
    payee: Optional[str] = None
    payer: Optional[str] = None

    # Optimistic-concurrency token, bumped by the repository on every write
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CreateTransactionInput(BaseModel):
    """Validated input for recording a new transaction."""

    type: TransactionType
    amount: Decimal = Field(ge=0)
    description: str = Field(min_length=1)
    currency: Optional[str] = None
    category: Optional[str] = None
    reference_number: Optional[str] = None
    transaction_date: datetime
    attachment_url: Optional[str] = None
    payee: Optional[str] = None
    payer: Optional[str] = None

    @field_validator("description", "category", "reference_number", "payee", "payer")
    @classmethod
    def strip_text(cls: type[CreateTransactionInput], v: Optional[str]) -> Optional[str]:
        return v.strip() if isinstance(v, str) else v


class UpdateTransactionInput(BaseModel):
    """Partial update.  Only fields explicitly supplied are merged.

    ``type`` and ``status`` are deliberately absent: the direction of a
    transaction is fixed at creation and status only moves through review.
    """

    amount: Optional[Decimal] = Field(default=None, ge=0)
    description: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = None
    reference_number: Optional[str] = None
    transaction_date: Optional[datetime] = None
    attachment_url: Optional[str] = None
    payee: Optional[str] = None
    payer: Optional[str] = None

    def changes(self) -> dict[str, object]:
        """Return only the fields the caller set, by name."""
        return {name: getattr(self, name) for name in self.model_fields_set}


class TransactionFilter(BaseModel):
    """Listing filters; every criterion is optional and they combine with AND."""

    type: Optional[TransactionType] = None
    status: Optional[TransactionStatus] = None
    category: Optional[str] = None
    reference_number: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_by: Optional[str] = None

    @property
    def date_range(self) -> DateRange:
        return DateRange(start=self.start_date, end=self.end_date)


class DateRange(BaseModel):
    """Inclusive date window; an open bound is unbounded."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def contains(self, moment: datetime) -> bool:
        """Naive datetimes are compared as UTC."""
        moment = as_utc(moment)
        if self.start is not None and moment < as_utc(self.start):
            return False
        if self.end is not None and moment > as_utc(self.end):
            return False
        return True


def as_utc(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=timezone.utc)


class FinancialSummary(BaseModel):
    """Approved totals by type plus the open expense review backlog."""

    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    net_balance: Decimal = Decimal("0")
    income_count: int = 0
    expense_count: int = 0
    pending_expense_count: int = 0
    pending_expense_amount: Decimal = Decimal("0")
