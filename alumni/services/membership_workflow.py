"""
Membership Workflow Service.

Drives a membership request through its lifecycle::

    draft -> information_verified -> payment_required -> approved
      \\__________________\\___________________\\______-> rejected

State changes are validated against ``MEMBERSHIP_TRANSITIONS``, appended
to the request's status history and persisted with an optimistic version
check.  Talking to the outside world (payment gateway, email, fee
bookkeeping) goes through the ``SideEffectRunner``: a gateway or mail
failure is logged and audited but never blocks the transition.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from decimal import Decimal
from typing import Optional

from alumni.database import DatabaseManager
from alumni.exceptions import ConflictError, NotFoundError, ValidationError
from alumni.logger import StructuredLogger
from alumni.models.enums import MembershipStatus, UserRole
from alumni.models.history import append_history
from alumni.models.membership_request import MembershipRequest
from alumni.models.payment import (
    PaymentInitiateRequest,
    PaymentInitiateResponse,
    PaymentVerificationResponse,
)
from alumni.models.user import User
from alumni.repositories.membership_request_repository import MembershipRequestRepository
from alumni.repositories.user_repository import UserRepository
from alumni.services import permissions
from alumni.services.base_service import BaseService
from alumni.services.email_service import EmailService
from alumni.services.financial_transactions import (
    MEMBERSHIP_FEE_CATEGORY,
    FinancialTransactionService,
)
from alumni.services.membership_approval import MembershipApprovalService
from alumni.services.payment.payment_service import PaymentService
from alumni.services.settings_service import SettingsService
from alumni.services.side_effects import SideEffectRunner
from alumni.services.transitions import MEMBERSHIP_TRANSITIONS, validate_transition

ENTITY: str = "MembershipRequest"
PAYMENT_DESCRIPTION: str = "CSE DIU Alumni Membership Fee"

# Gateway statuses that mean the money arrived.
VERIFIED_PAYMENT_STATUSES: frozenset[str] = frozenset({"VALID", "VALIDATED"})


def payment_order_id(request_id: str) -> str:
    """Merchant order id sent to the gateway for *request_id*."""
    return f"MBR-{request_id}"


class MembershipWorkflowService(BaseService):
    """Creates membership requests and moves them between statuses."""

    def __init__(
        self,
        request_repo: MembershipRequestRepository,
        user_repo: UserRepository,
        approval: MembershipApprovalService,
        payments: PaymentService,
        settings: SettingsService,
        transactions: FinancialTransactionService,
        email: EmailService,
        runner: SideEffectRunner,
        logger: StructuredLogger,
        db: Optional[DatabaseManager] = None,
    ) -> None:
        super().__init__(logger, db)
        self._requests = request_repo
        self._users = user_repo
        self._approval = approval
        self._payments = payments
        self._settings = settings
        self._transactions = transactions
        self._email = email
        self._runner = runner

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_request(self, request_id: str) -> MembershipRequest:
        request = self._requests.get_by_id(request_id)
        if request is None:
            raise NotFoundError("MembershipRequest", request_id)
        return request

    def get_request_for_user(self, user_id: str) -> Optional[MembershipRequest]:
        """The user's most recent request, whatever its status."""
        return self._requests.get_latest_for_user(user_id)

    def list_requests(
        self, status: Optional[MembershipStatus] = None,
    ) -> list[MembershipRequest]:
        return self._requests.list_all(status)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_request(self, user_id: str) -> MembershipRequest:
        """Open a new draft request for *user_id*.

        Raises:
            NotFoundError: Unknown user.
            ValidationError: The user's profile is incomplete.
            ConflictError: The user already has an active (or approved) request.
        """
        user = self._get_user(user_id)

        missing = user.missing_profile_fields()
        if missing:
            raise ValidationError(
                "Profile must be 100% complete to submit membership request. "
                "Please complete all required fields.",
                details={"missing_profile_fields": ",".join(missing)},
            )

        if self._requests.get_active_for_user(user_id) is not None:
            raise ConflictError("You already have an active membership request")

        now = self._now()
        request = MembershipRequest(
            id=str(uuid.uuid4()),
            user_id=user_id,
            status=MembershipStatus.DRAFT,
            status_history=append_history(
                (), MembershipStatus.DRAFT, user_id, "Membership request submitted",
            ),
            created_at=now,
            updated_at=now,
        )
        try:
            self._requests.create(request)
        except ConflictError as exc:
            # Lost a race with a concurrent submission for the same user.
            raise ConflictError("You already have an active membership request") from exc
        self._audit("MEMBERSHIP_REQUEST_CREATE", ENTITY, request.id, user_id)

        self._notify(user, request)
        return request

    def transition(
        self,
        request_id: str,
        target: MembershipStatus,
        actor_id: str,
        roles: Iterable[UserRole],
        note: Optional[str] = None,
        rejection_reason: Optional[str] = None,
        payment_amount: Optional[Decimal] = None,
    ) -> MembershipRequest:
        """Move a request to *target*.

        Entering ``payment_required`` with a *payment_amount* opens a
        gateway session; entering ``approved`` grants membership to the
        applicant before the new status is stored.

        Raises:
            AuthorizationError: *roles* do not include an admin role.
            NotFoundError: Unknown request or applicant.
            ValidationError: The move is not allowed from the current status.
            ConflictError: The request changed concurrently.
        """
        permissions.assert_can_manage_members(roles)
        request = self.get_request(request_id)
        validate_transition(MEMBERSHIP_TRANSITIONS, request.status, target, "membership request")
        user = self._get_user(request.user_id)

        changes: dict[str, object] = {"status": target}
        if rejection_reason:
            changes["rejection_reason"] = rejection_reason

        if target == MembershipStatus.PAYMENT_REQUIRED and payment_amount is not None:
            changes.update(self._open_payment(request, user, payment_amount, actor_id))

        if target == MembershipStatus.APPROVED:
            self._approval.approve(user.id, actor_id)

        changes["status_history"] = append_history(
            request.status_history, target, actor_id, note,
        )
        changes["updated_at"] = self._now()
        updated = self._requests.update(request.model_copy(update=changes))

        self._audit(
            "MEMBERSHIP_STATUS_CHANGE", ENTITY, request_id, actor_id,
            details={"from": str(request.status), "to": str(target)},
        )
        self._notify(user, updated)
        return updated

    def record_payment(self, request_id: str, transaction_id: str) -> MembershipRequest:
        """Verify a gateway payment and attach it to the request.

        Re-recording the same verified *transaction_id* is a no-op.  The
        fee is booked as approved income on a best-effort basis.

        Raises:
            NotFoundError: Unknown request.
            ValidationError: The gateway did not confirm the payment.
            ConflictError: The request changed concurrently.
        """
        request = self.get_request(request_id)
        if (
            request.payment_transaction_id == transaction_id
            and request.payment_status in VERIFIED_PAYMENT_STATUSES
        ):
            self._logger.info(
                "Payment %s already recorded on request %s", transaction_id, request_id,
            )
            return request

        gateway = self._payments.get_gateway()
        verification: Optional[PaymentVerificationResponse] = self._runner.run(
            "payment verification", lambda: gateway.verify_payment(transaction_id),
        )
        if verification is None or not verification.success:
            raise ValidationError(
                "Payment verification failed",
                details={
                    "transaction_id": transaction_id,
                    "status": verification.status if verification else "TIMEOUT",
                },
            )

        updated = self._requests.update(
            request.model_copy(update={
                "payment_status": verification.status,
                "payment_transaction_id": transaction_id,
                "updated_at": self._now(),
            })
        )
        self._audit(
            "MEMBERSHIP_PAYMENT_VERIFIED", ENTITY, request_id, updated.user_id,
            details={
                "transaction_id": transaction_id,
                "amount": str(verification.amount),
                "status": verification.status,
            },
        )
        self._book_fee_income(updated, transaction_id)
        return updated

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def _open_payment(
        self,
        request: MembershipRequest,
        user: User,
        amount: Decimal,
        actor_id: str,
    ) -> dict[str, object]:
        """Start a gateway session; returns the request fields to store.

        Skipped when payments are switched off.  A failed or timed-out
        initiation still lets the request advance, without a payment URL.
        """
        if not self._settings.is_feature_enabled("enable_membership_payment"):
            self._logger.info(
                "Membership payment disabled; no payment session for request %s", request.id,
            )
            return {}

        fee = self._settings.get_membership_fee()
        gateway = self._payments.get_gateway()
        payment_request = PaymentInitiateRequest(
            amount=amount,
            currency=fee.currency,
            order_id=payment_order_id(request.id),
            customer_name=user.full_name or user.email,
            customer_email=user.email,
            customer_phone=user.phone_number or "N/A",
            description=PAYMENT_DESCRIPTION,
        )
        response: Optional[PaymentInitiateResponse] = self._runner.run(
            "payment initiation", lambda: gateway.initiate_payment(payment_request),
        )

        fields: dict[str, object] = {"payment_amount": amount}
        if response is not None and response.success:
            fields["payment_url"] = response.payment_url
            fields["payment_transaction_id"] = response.transaction_id
            return fields

        error = response.error if response is not None else "timed out"
        self._logger.warning(
            "Payment initiation failed for request %s: %s", request.id, error,
        )
        self._audit(
            "PAYMENT_INITIATION_FAILED", ENTITY, request.id, actor_id,
            details={"order_id": payment_request.order_id, "error": error},
        )
        return fields

    def _book_fee_income(self, request: MembershipRequest, transaction_id: str) -> None:
        """Book the configured fee as income under the applicant's name."""
        user = self._users.get_by_id(request.user_id)
        payer = (user.full_name or user.email) if user is not None else request.user_id
        fee = self._settings.get_membership_fee()
        auto_approve = self._settings.is_feature_enabled("enable_auto_approve_income")

        self._runner.run(
            "membership fee income",
            lambda: self._transactions.record_system_income(
                amount=fee.amount,
                currency=fee.currency,
                description=f"Membership fee for request {request.id}",
                payer=payer,
                reference_number=transaction_id,
                category=MEMBERSHIP_FEE_CATEGORY,
                auto_approve=auto_approve,
            ),
        )

    def _notify(self, user: User, request: MembershipRequest) -> None:
        if not self._settings.is_feature_enabled("enable_email_notifications"):
            return
        result = self._runner.run(
            "membership status email",
            lambda: self._email.send_membership_status_email(
                user.email,
                user.first_name,
                request.status,
                rejection_reason=request.rejection_reason,
                payment_url=request.payment_url,
            ),
        )
        if result is not None and not result.success:
            self._logger.warning(
                "Status email for request %s not delivered: %s", request.id, result.error,
            )

    def _get_user(self, user_id: str) -> User:
        user = self._users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user
