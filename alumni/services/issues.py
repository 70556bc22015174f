"""
Issue Tracker Service.

The public contact form files issues; admins list, triage, annotate and
delete them.  Moving an issue to ``resolved`` or ``wont_resolve`` stamps
who closed it and when.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from typing import Optional

from alumni.database import DatabaseManager
from alumni.exceptions import NotFoundError
from alumni.logger import StructuredLogger
from alumni.models.enums import IssueStatus, UserRole
from alumni.models.issue import (
    CLOSED_ISSUE_STATUSES,
    CreateIssueInput,
    Issue,
    IssueStats,
    UpdateIssueInput,
)
from alumni.repositories.issue_repository import IssueRepository
from alumni.services import permissions
from alumni.services.base_service import BaseService
from alumni.utils.audit import SYSTEM_ACTOR

ENTITY: str = "Issue"


class IssueService(BaseService):
    """Public issue intake and admin triage."""

    def __init__(
        self,
        repo: IssueRepository,
        logger: StructuredLogger,
        db: Optional[DatabaseManager] = None,
    ) -> None:
        super().__init__(logger, db)
        self._repo = repo

    def create(self, data: CreateIssueInput) -> Issue:
        """File a new issue.  No account is needed."""
        now = self._now()
        issue = Issue(
            id=str(uuid.uuid4()),
            name=data.name,
            email=data.email,
            subject=data.subject,
            message=data.message,
            created_at=now,
            updated_at=now,
        )
        self._repo.create(issue)
        self._audit(
            "ISSUE_CREATE", ENTITY, issue.id, SYSTEM_ACTOR,
            details={"subject": issue.subject},
        )
        return issue

    def list_issues(
        self, roles: Iterable[UserRole], status: Optional[IssueStatus] = None,
    ) -> list[Issue]:
        permissions.assert_can_manage_issues(roles)
        return self._repo.find(status)

    def get_issue(self, issue_id: str, roles: Iterable[UserRole]) -> Issue:
        permissions.assert_can_manage_issues(roles)
        return self._get(issue_id)

    def update(
        self,
        issue_id: str,
        patch: UpdateIssueInput,
        actor_id: str,
        roles: Iterable[UserRole],
    ) -> Issue:
        """Change status and/or notes.

        Closing the issue records *actor_id* and the time in
        ``resolved_by`` / ``resolved_at``; reopening clears them.

        Raises:
            AuthorizationError: Caller is not an admin.
            NotFoundError: Unknown issue.
        """
        permissions.assert_can_manage_issues(roles)
        issue = self._get(issue_id)
        changes = patch.changes()
        now = self._now()

        new_status = changes.get("status")
        if new_status is not None and new_status != issue.status:
            if new_status in CLOSED_ISSUE_STATUSES:
                changes.update(resolved_at=now, resolved_by=actor_id)
            else:
                changes.update(resolved_at=None, resolved_by=None)

        updated = self._repo.save(issue.model_copy(update={**changes, "updated_at": now}))
        self._audit(
            "ISSUE_UPDATE", ENTITY, issue_id, actor_id,
            details={"status": str(updated.status), "fields": ",".join(sorted(patch.changes()))},
        )
        return updated

    def delete(self, issue_id: str, actor_id: str, roles: Iterable[UserRole]) -> None:
        permissions.assert_can_manage_issues(roles)
        issue = self._get(issue_id)
        self._repo.delete(issue_id)
        self._audit(
            "ISSUE_DELETE", ENTITY, issue_id, actor_id,
            details={"status": str(issue.status)},
        )

    def get_stats(self, roles: Iterable[UserRole]) -> IssueStats:
        permissions.assert_can_manage_issues(roles)
        counts = self._repo.count_by_status()
        return IssueStats(
            total=sum(counts.values()),
            open=counts[IssueStatus.OPEN],
            in_progress=counts[IssueStatus.IN_PROGRESS],
            resolved=counts[IssueStatus.RESOLVED],
            wont_resolve=counts[IssueStatus.WONT_RESOLVE],
        )

    def _get(self, issue_id: str) -> Issue:
        issue = self._repo.get_by_id(issue_id)
        if issue is None:
            raise NotFoundError(ENTITY, issue_id)
        return issue
