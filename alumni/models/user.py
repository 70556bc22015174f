"""
User Model.

Identity record for an alumnus.  Created on first authentication (from
identity-provider claims) or by the system-admin bootstrap; mutated on
profile update, role grant and login sync; never hard-deleted.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from alumni.models.enums import UserRole

# Fields that must all be populated before a membership request is accepted.
REQUIRED_PROFILE_FIELDS: tuple[str, ...] = (
    "first_name",
    "last_name",
    "email",
    "picture",
    "phone_number",
    "batch",
    "date_of_birth",
    "company",
    "designation",
    "passing_year",
    "education_level",
)

# Fields a user may change through profile updates.
EDITABLE_PROFILE_FIELDS: frozenset[str] = frozenset({
    "email",
    "first_name",
    "last_name",
    "picture",
    "phone_number",
    "batch",
    "date_of_birth",
    "company",
    "designation",
    "passing_year",
    "education_level",
})


class User(BaseModel):
    """Represents a user account.

    ``membership_id`` is ``None`` until membership approval assigns one;
    once set it is never reassigned or cleared.  ``password_hash`` and
    ``password_salt`` exist only for local-auth accounts (self-registered
    users and the system admin bot).
    """

    id: str
    auth0_id: Optional[str] = None
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    picture: Optional[str] = None
    phone_number: Optional[str] = None
    batch: Optional[str] = None  # e.g. "D-42" (Day) or "E-42" (Evening)
    date_of_birth: Optional[date] = None
    company: Optional[str] = None
    designation: Optional[str] = None
    passing_year: Optional[int] = None
    education_level: Optional[str] = None
    roles: list[UserRole] = Field(default_factory=lambda: [UserRole.GUEST], min_length=1)
    is_active: bool = True
    email_verified: bool = False
    # SHA-256 of the emailed sign-up token; cleared once verified.
    email_verification_token: Optional[str] = None
    email_verification_expires: Optional[datetime] = None
    membership_id: Optional[str] = None
    password_hash: Optional[str] = None
    password_salt: Optional[str] = None
    is_system_bot: bool = False
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("email")
    @classmethod
    def normalize_email(cls: type[User], v: str) -> str:
        return v.strip().lower()

    @field_validator("roles")
    @classmethod
    def dedupe_roles(cls: type[User], v: list[UserRole]) -> list[UserRole]:
        return list(dict.fromkeys(v))

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def has_role(self, role: UserRole) -> bool:
        return role in self.roles

    def missing_profile_fields(self) -> list[str]:
        """Return the required profile fields that are still empty."""
        return [
            name for name in REQUIRED_PROFILE_FIELDS
            if getattr(self, name) in (None, "")
        ]

    @property
    def is_profile_complete(self) -> bool:
        return not self.missing_profile_fields()


class UpdateProfileInput(BaseModel):
    """Partial profile update.  Only fields explicitly supplied are merged.

    Identity, roles and the membership id are not part of this model, so
    they cannot be changed through a profile update.
    """

    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    picture: Optional[str] = None
    phone_number: Optional[str] = None
    batch: Optional[str] = None
    date_of_birth: Optional[date] = None
    company: Optional[str] = None
    designation: Optional[str] = None
    passing_year: Optional[int] = None
    education_level: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls: type[UpdateProfileInput], v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if isinstance(v, str) else v

    def changes(self) -> dict[str, object]:
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if name in EDITABLE_PROFILE_FIELDS
        }


class RegisterInput(BaseModel):
    """Self-service sign-up with email and password."""

    email: str
    password: str = Field(min_length=8)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls: type[RegisterInput], v: str) -> str:
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("Please provide a valid email address")
        return v

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def strip_names(cls: type[RegisterInput], v: object) -> object:
        return v.strip() if isinstance(v, str) else v
