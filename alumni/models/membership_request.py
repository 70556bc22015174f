"""
Membership Request Model.

The workflow instance tracking a user's path from applying to becoming a
dues-paying member.  Mutated exclusively through the membership workflow
service; never deleted.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from alumni.models.enums import MembershipStatus
from alumni.models.history import StatusHistory

# A user may hold at most one request in any of these states.
ACTIVE_STATUSES: frozenset[MembershipStatus] = frozenset({
    MembershipStatus.DRAFT,
    MembershipStatus.INFORMATION_VERIFIED,
    MembershipStatus.PAYMENT_REQUIRED,
    MembershipStatus.APPROVED,
})


class MembershipRequest(BaseModel):
    """Represents a membership application and its payment state."""

    id: str
    user_id: str
    status: MembershipStatus = MembershipStatus.DRAFT

    # Payment session (set when the request enters PAYMENT_REQUIRED)
    payment_url: Optional[str] = None
    payment_transaction_id: Optional[str] = None
    payment_amount: Optional[Decimal] = Field(default=None, ge=0)
    payment_status: Optional[str] = None

    rejection_reason: Optional[str] = None
    status_history: StatusHistory = ()

    # Optimistic-concurrency token, bumped by the repository on every write
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
