"""
Settings Models.

Key-value configuration records plus the typed views the workflow
engine reads from them.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, JsonValue

MEMBERSHIP_FEE_KEY: str = "membership_fee"
FEATURE_FLAGS_KEY: str = "feature_flags"


class Setting(BaseModel):
    """Represents one configuration record (``key`` is unique)."""

    key: str = Field(min_length=1)
    value: dict[str, JsonValue] = Field(default_factory=dict)
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SettingUpdate(BaseModel):
    """Partial update of a setting; unset fields are left untouched."""

    value: Optional[dict[str, JsonValue]] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class MembershipFee(BaseModel):
    """Current membership fee used for payment sessions and fee income."""

    amount: Decimal = Field(ge=0)
    currency: str


class FeatureFlags(BaseModel):
    """System feature switches; stored camelCase, read snake_case."""

    enable_membership_payment: bool = True
    enable_email_notifications: bool = True
    enable_auto_approve_income: bool = True
