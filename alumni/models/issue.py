"""
Issue Model.

Problems reported through the public contact form.  Anyone may file one;
admins move it through triage and keep internal notes on it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from alumni.models.enums import IssueStatus

# Reaching either status stamps ``resolved_at`` / ``resolved_by``.
CLOSED_ISSUE_STATUSES: frozenset[IssueStatus] = frozenset({
    IssueStatus.RESOLVED,
    IssueStatus.WONT_RESOLVE,
})


class Issue(BaseModel):
    """Represents a reported issue."""

    id: str
    name: str
    email: str
    subject: str
    message: str
    status: IssueStatus = IssueStatus.OPEN
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CreateIssueInput(BaseModel):
    """Validated contact-form submission."""

    name: str = Field(min_length=1, max_length=100)
    email: str
    subject: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=2000)

    @field_validator("name", "subject", "message", mode="before")
    @classmethod
    def strip_text(cls: type[CreateIssueInput], v: object) -> object:
        return v.strip() if isinstance(v, str) else v

    @field_validator("email")
    @classmethod
    def normalize_email(cls: type[CreateIssueInput], v: str) -> str:
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("Please provide a valid email address")
        return v


class UpdateIssueInput(BaseModel):
    """Triage update.  Only fields explicitly supplied are merged."""

    status: Optional[IssueStatus] = None
    notes: Optional[str] = None

    def changes(self) -> dict[str, object]:
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if getattr(self, name) is not None
        }


class IssueStats(BaseModel):
    """Issue counts per triage status."""

    total: int = 0
    open: int = 0
    in_progress: int = 0
    resolved: int = 0
    wont_resolve: int = 0
