"""
Payment Gateway Contract Models.

Provider-neutral request/response shapes exchanged between the membership
workflow and a payment gateway adapter.  Adapters report failure through
``success=False``; they never raise to the workflow.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class PaymentInitiateRequest(BaseModel):
    """Everything a gateway needs to open a hosted payment session."""

    amount: Decimal = Field(ge=0)
    currency: str
    order_id: str
    customer_name: str
    customer_email: str
    customer_phone: str = "N/A"
    description: Optional[str] = None


class PaymentInitiateResponse(BaseModel):
    success: bool
    payment_url: Optional[str] = None
    transaction_id: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None


class PaymentVerificationResponse(BaseModel):
    success: bool
    transaction_id: Optional[str] = None
    amount: Optional[Decimal] = None
    status: Optional[str] = None
    payment_date: Optional[datetime] = None
    message: Optional[str] = None
    error: Optional[str] = None
