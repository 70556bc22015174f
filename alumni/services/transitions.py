"""
Status Transition Tables.

Both workflow machines are plain data: a mapping from each status to the
set of statuses it may move to.  Terminal states map to an empty set, so
"is this a dead end" and "is this move legal" are the same lookup.

Membership requests never leave APPROVED or REJECTED.  Financial
transactions never leave APPROVED, but a REJECTED transaction may be
re-submitted for review.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import TypeVar

from alumni.exceptions import ValidationError
from alumni.models.enums import MembershipStatus, TransactionStatus

S = TypeVar("S", bound=StrEnum)

TransitionTable = Mapping[S, frozenset[S]]

MEMBERSHIP_TRANSITIONS: dict[MembershipStatus, frozenset[MembershipStatus]] = {
    MembershipStatus.DRAFT: frozenset({
        MembershipStatus.INFORMATION_VERIFIED,
        MembershipStatus.REJECTED,
    }),
    MembershipStatus.INFORMATION_VERIFIED: frozenset({
        MembershipStatus.PAYMENT_REQUIRED,
        MembershipStatus.APPROVED,
        MembershipStatus.REJECTED,
    }),
    MembershipStatus.PAYMENT_REQUIRED: frozenset({
        MembershipStatus.APPROVED,
        MembershipStatus.REJECTED,
    }),
    MembershipStatus.APPROVED: frozenset(),
    # A rejected applicant starts over with a new request.
    MembershipStatus.REJECTED: frozenset(),
}

TRANSACTION_TRANSITIONS: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.DRAFT: frozenset({
        TransactionStatus.PENDING_REVIEW,
        TransactionStatus.APPROVED,
        TransactionStatus.REJECTED,
    }),
    TransactionStatus.PENDING_REVIEW: frozenset({
        TransactionStatus.APPROVED,
        TransactionStatus.REJECTED,
    }),
    TransactionStatus.APPROVED: frozenset(),
    TransactionStatus.REJECTED: frozenset({TransactionStatus.PENDING_REVIEW}),
}


def allowed_targets(table: TransitionTable[S], current: S) -> frozenset[S]:
    return table.get(current, frozenset())


def is_terminal(table: TransitionTable[S], status: S) -> bool:
    return not allowed_targets(table, status)


def validate_transition(
    table: TransitionTable[S], current: S, target: S, entity: str,
) -> None:
    """Raise ``ValidationError`` unless *current* → *target* is in *table*.

    A terminal *current* is reported as such before the target is
    considered, so "approved is a dead end" holds for every target,
    including *current* itself.
    """
    if is_terminal(table, current):
        raise ValidationError(
            f"Cannot change status of {current.replace('_', ' ')} {entity}",
            details={"current": str(current), "target": str(target)},
        )
    if target not in table[current]:
        raise ValidationError(
            f"Invalid status transition from {current} to {target}",
            details={"current": str(current), "target": str(target)},
        )
