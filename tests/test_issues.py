"""Public issue intake and admin triage."""

from __future__ import annotations

import pydantic
import pytest

from alumni.exceptions import AuthorizationError, NotFoundError
from alumni.models.enums import IssueStatus, UserRole
from alumni.models.issue import CreateIssueInput, UpdateIssueInput

ADMIN = [UserRole.ADMIN]
MEMBER = [UserRole.MEMBER]


def _report(**overrides) -> CreateIssueInput:
    fields = {
        "name": "Rahim Uddin",
        "email": "Rahim@Example.com",
        "subject": "Cannot upload picture",
        "message": "The profile page rejects my photo.",
    }
    fields.update(overrides)
    return CreateIssueInput(**fields)


def test_anyone_can_report(issue_service, audit_actions):
    issue = issue_service.create(_report())

    assert issue.status == IssueStatus.OPEN
    assert issue.email == "rahim@example.com"
    assert (issue.resolved_at, issue.resolved_by) == (None, None)
    assert audit_actions() == ["ISSUE_CREATE"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"name": "x" * 101},
        {"subject": "x" * 201},
        {"message": "x" * 2001},
        {"message": "   "},
        {"email": "not-an-email"},
    ],
)
def test_report_limits(overrides):
    with pytest.raises(pydantic.ValidationError):
        _report(**overrides)


def test_listing_is_newest_first_and_filterable(issue_service):
    first = issue_service.create(_report(subject="First"))
    second = issue_service.create(_report(subject="Second"))
    issue_service.update(
        first.id, UpdateIssueInput(status=IssueStatus.IN_PROGRESS), "admin-1", ADMIN,
    )

    assert [i.id for i in issue_service.list_issues(ADMIN)] == [second.id, first.id]
    in_progress = issue_service.list_issues(ADMIN, IssueStatus.IN_PROGRESS)
    assert [i.id for i in in_progress] == [first.id]


@pytest.mark.parametrize("status", [IssueStatus.RESOLVED, IssueStatus.WONT_RESOLVE])
def test_closing_records_who_and_when(issue_service, status):
    issue = issue_service.create(_report())

    closed = issue_service.update(
        issue.id, UpdateIssueInput(status=status, notes="Handled by email"), "admin-1", ADMIN,
    )

    assert closed.status == status
    assert closed.resolved_by == "admin-1"
    assert closed.resolved_at is not None
    assert closed.notes == "Handled by email"
    assert issue_service.get_issue(issue.id, ADMIN).resolved_by == "admin-1"


def test_reopening_clears_resolution(issue_service):
    issue = issue_service.create(_report())
    issue_service.update(issue.id, UpdateIssueInput(status=IssueStatus.RESOLVED), "admin-1", ADMIN)

    reopened = issue_service.update(
        issue.id, UpdateIssueInput(status=IssueStatus.OPEN), "admin-2", ADMIN,
    )

    assert (reopened.resolved_at, reopened.resolved_by) == (None, None)


def test_notes_only_update_keeps_status(issue_service, audit_actions):
    issue = issue_service.create(_report())

    updated = issue_service.update(issue.id, UpdateIssueInput(notes="Asked for a screenshot"), "admin-1", ADMIN)

    assert updated.status == IssueStatus.OPEN
    assert updated.resolved_by is None
    assert audit_actions() == ["ISSUE_CREATE", "ISSUE_UPDATE"]


def test_delete(issue_service, audit_actions):
    issue = issue_service.create(_report())

    issue_service.delete(issue.id, "admin-1", ADMIN)

    with pytest.raises(NotFoundError):
        issue_service.get_issue(issue.id, ADMIN)
    assert audit_actions()[-1] == "ISSUE_DELETE"


def test_update_unknown_issue(issue_service):
    with pytest.raises(NotFoundError):
        issue_service.update("missing", UpdateIssueInput(notes="x"), "admin-1", ADMIN)


def test_stats(issue_service):
    ids = [issue_service.create(_report(subject=f"Issue {n}")).id for n in range(4)]
    issue_service.update(ids[0], UpdateIssueInput(status=IssueStatus.IN_PROGRESS), "admin-1", ADMIN)
    issue_service.update(ids[1], UpdateIssueInput(status=IssueStatus.RESOLVED), "admin-1", ADMIN)
    issue_service.update(ids[2], UpdateIssueInput(status=IssueStatus.WONT_RESOLVE), "admin-1", ADMIN)

    stats = issue_service.get_stats(ADMIN)

    assert (stats.total, stats.open, stats.in_progress, stats.resolved, stats.wont_resolve) == (4, 1, 1, 1, 1)


def test_stats_empty(issue_service):
    assert issue_service.get_stats(ADMIN).total == 0


def test_members_cannot_triage(issue_service):
    issue = issue_service.create(_report())

    with pytest.raises(AuthorizationError):
        issue_service.list_issues(MEMBER)
    with pytest.raises(AuthorizationError):
        issue_service.get_issue(issue.id, MEMBER)
    with pytest.raises(AuthorizationError):
        issue_service.update(issue.id, UpdateIssueInput(notes="x"), "m-1", MEMBER)
    with pytest.raises(AuthorizationError):
        issue_service.delete(issue.id, "m-1", MEMBER)
    with pytest.raises(AuthorizationError):
        issue_service.get_stats(MEMBER)
