"""
Payment Gateway Contract.

Any provider adapter the membership workflow can talk to.  Both calls
report failure through the ``success`` flag of their result; neither may
raise.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from alumni.models.payment import (
    PaymentInitiateRequest,
    PaymentInitiateResponse,
    PaymentVerificationResponse,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Hosted-checkout payment provider."""

    name: str

    def initiate_payment(self, request: PaymentInitiateRequest) -> PaymentInitiateResponse:
        """Open a payment session and return the URL the payer is sent to."""
        ...

    def verify_payment(self, transaction_id: str) -> PaymentVerificationResponse:
        """Ask the provider whether *transaction_id* was paid."""
        ...
