"""
Membership Approval Orchestrator.

Turns an approved applicant into a member: grants the ``member`` role and
assigns a membership id.  Safe to call any number of times for the same
user.
"""

from __future__ import annotations

from typing import Optional

from alumni.database import DatabaseManager
from alumni.exceptions import ConflictError, NotFoundError
from alumni.logger import StructuredLogger
from alumni.models.enums import UserRole
from alumni.models.user import User
from alumni.repositories.user_repository import UserRepository
from alumni.services.base_service import BaseService
from alumni.services.membership_id_allocator import MembershipIdAllocator
from alumni.utils.audit import SYSTEM_ACTOR

MAX_ASSIGN_ATTEMPTS: int = 3


class MembershipApprovalService(BaseService):
    """Grants membership to a user."""

    def __init__(
        self,
        user_repo: UserRepository,
        allocator: MembershipIdAllocator,
        logger: StructuredLogger,
        db: Optional[DatabaseManager] = None,
    ) -> None:
        super().__init__(logger, db)
        self._user_repo = user_repo
        self._allocator = allocator

    def approve(self, user_id: str, actor_id: str = SYSTEM_ACTOR) -> User:
        """Grant the member role and a membership id, each only if missing.

        The id is written with a compare-and-set that only succeeds while
        the user has no id.  If a concurrent approval got there first, the
        id it stored is kept and the number allocated here goes unused.

        Raises:
            NotFoundError: No user with *user_id*.
            ConflictError: Every allocated id was already held by someone
                else (after ``MAX_ASSIGN_ATTEMPTS`` tries).
        """
        user = self._user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        granted_role = False
        if not user.has_role(UserRole.MEMBER):
            user = user.model_copy(
                update={"roles": [*user.roles, UserRole.MEMBER], "updated_at": self._now()}
            )
            self._user_repo.save(user)
            granted_role = True

        assigned_id = None
        attempts = 0
        while user.membership_id is None:
            attempts += 1
            candidate = self._allocator.next()
            try:
                won = self._user_repo.assign_membership_id(user_id, candidate)
            except ConflictError:
                # Counter lagged behind an id already in use.
                if attempts >= MAX_ASSIGN_ATTEMPTS:
                    raise
                self._logger.warning(
                    "Membership ID %s already taken, allocating another", candidate,
                )
                continue
            if won:
                assigned_id = candidate
                user = user.model_copy(update={"membership_id": candidate})
            else:
                self._logger.warning(
                    "Membership ID %s skipped: user %s was assigned an ID concurrently",
                    candidate, user_id,
                )
                user = self._user_repo.get_by_id(user_id) or user
                break

        if granted_role or assigned_id is not None:
            self._audit(
                "MEMBERSHIP_APPROVE",
                "User",
                user_id,
                actor_id,
                details={"membership_id": user.membership_id, "role_granted": granted_role},
            )
        return user
