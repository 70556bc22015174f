"""
Authentication Models.

Claims delivered by the identity provider after a successful login.  The
engine trusts only the subject, email and display fields; roles and the
membership number are owned by this service and never read from claims.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class IdentityClaims(BaseModel):
    """Subset of the Auth0 ID-token claims used for user provisioning."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    sub: str
    email: str
    name: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    picture: Optional[str] = None
    email_verified: bool = False

    @field_validator("email")
    @classmethod
    def normalize_email(cls: type[IdentityClaims], v: str) -> str:
        return v.strip().lower()

    def split_name(self) -> tuple[Optional[str], Optional[str]]:
        """Return ``(first_name, last_name)``, preferring explicit claims."""
        if self.given_name or self.family_name:
            return self.given_name, self.family_name
        if not self.name:
            return None, None
        first, _, last = self.name.strip().partition(" ")
        return first or None, last.strip() or None
