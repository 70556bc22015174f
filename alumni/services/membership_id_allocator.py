"""
Sequential Membership ID Allocator.

Membership ids are ``M`` followed by a five-digit, zero-padded sequence
number: ``M00001``, ``M00002``, ...  Numbers come from an atomically
incremented counter, so two concurrent approvals can never be handed the
same id.
"""

from __future__ import annotations

import re

from alumni.exceptions import ValidationError
from alumni.logger import StructuredLogger
from alumni.repositories.counter_repository import CounterRepository
from alumni.services.base_service import BaseService

MEMBERSHIP_ID_PREFIX: str = "M"
MEMBERSHIP_ID_DIGITS: int = 5

_MEMBERSHIP_ID_RE: re.Pattern[str] = re.compile(
    rf"^{MEMBERSHIP_ID_PREFIX}(\d{{{MEMBERSHIP_ID_DIGITS}}})$"
)


def format_membership_id(number: int) -> str:
    """``7`` -> ``"M00007"``."""
    if number < 1:
        raise ValidationError(
            "Membership number must be positive", details={"number": number},
        )
    return f"{MEMBERSHIP_ID_PREFIX}{number:0{MEMBERSHIP_ID_DIGITS}d}"


def parse_membership_id(membership_id: str) -> int:
    """``"M00042"`` -> ``42``.

    Raises:
        ValidationError: *membership_id* is not of the form ``M#####``.
    """
    match = _MEMBERSHIP_ID_RE.match(membership_id)
    if match is None:
        raise ValidationError(
            f"Invalid membership ID: {membership_id!r}",
            details={"membership_id": membership_id},
        )
    return int(match.group(1))


class MembershipIdAllocator(BaseService):
    """Hands out the next unused membership id."""

    def __init__(self, counter_repo: CounterRepository, logger: StructuredLogger) -> None:
        super().__init__(logger)
        self._counter_repo = counter_repo

    def next(self) -> str:
        membership_id = format_membership_id(
            self._counter_repo.allocate_membership_number()
        )
        self._logger.info("Allocated membership ID %s", membership_id)
        return membership_id
