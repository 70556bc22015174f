"""
Business Logic Services Package.

The workflow engine (membership and transaction status machines, the
approval orchestrator and the id allocator) plus its collaborators
(settings, payments, email, users, the issue inbox).

The ``create_services()`` factory wires every repository and service together,
returning a typed dict that callers can consume without knowing the
internal dependency graph.
"""

from __future__ import annotations

from typing import Optional, TypedDict

import requests

from alumni.config import AppConfig
from alumni.database import DatabaseManager
from alumni.logger import get_logger
from alumni.repositories.counter_repository import CounterRepository
from alumni.repositories.issue_repository import IssueRepository
from alumni.repositories.membership_request_repository import MembershipRequestRepository
from alumni.repositories.settings_repository import SettingsRepository
from alumni.repositories.transaction_repository import TransactionRepository
from alumni.repositories.user_repository import UserRepository
from alumni.services.email_service import EmailService, Transport
from alumni.services.financial_transactions import FinancialTransactionService
from alumni.services.issues import IssueService
from alumni.services.membership_approval import MembershipApprovalService
from alumni.services.membership_id_allocator import MembershipIdAllocator
from alumni.services.membership_workflow import MembershipWorkflowService
from alumni.services.payment.payment_service import PaymentService
from alumni.services.settings_service import SettingsService
from alumni.services.side_effects import SideEffectRunner
from alumni.services.users import UserService


class ServiceContainer(TypedDict):
    """Typed container for all application services."""

    # --- Leaf services ---
    settings_service: SettingsService
    user_service: UserService
    email_service: EmailService
    issue_service: IssueService
    payment_service: PaymentService
    membership_id_allocator: MembershipIdAllocator
    side_effect_runner: SideEffectRunner

    # --- Workflow engine ---
    financial_transaction_service: FinancialTransactionService
    membership_approval_service: MembershipApprovalService
    membership_workflow_service: MembershipWorkflowService


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    transport: Optional[Transport] = None,
    session: Optional[requests.Session] = None,
) -> ServiceContainer:
    """
    Wire all repositories and services together.

    This is the single composition root for the service layer.  The
    entry-point calls this once at startup.

    Args:
        db: Initialised DatabaseManager with Supabase + SQLite ready.
        config: Application configuration (injected into services that need it).
        transport: Replaces SMTP delivery in the email service.
        session: HTTP session handed to the payment gateway.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("services")

    # ------------------------------------------------------------------
    # 1. Repositories (data-access layer)
    # ------------------------------------------------------------------
    user_repo = UserRepository(db=db, logger=logger)
    counter_repo = CounterRepository(db=db, logger=logger)
    request_repo = MembershipRequestRepository(db=db, logger=logger)
    transaction_repo = TransactionRepository(db=db, logger=logger)
    settings_repo = SettingsRepository(db=db, logger=logger)
    issue_repo = IssueRepository(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 2. Leaf services (no service dependencies)
    # ------------------------------------------------------------------
    settings_service = SettingsService(
        repo=settings_repo, config=config, logger=logger, db=db,
    )
    email_service = EmailService(config=config, logger=logger, transport=transport, db=db)
    user_service = UserService(
        repo=user_repo, config=config, logger=logger, db=db, email=email_service,
    )
    issue_service = IssueService(repo=issue_repo, logger=logger, db=db)
    payment_service = PaymentService(config=config, logger=logger, session=session)
    allocator = MembershipIdAllocator(counter_repo=counter_repo, logger=logger)
    runner = SideEffectRunner(logger=logger, timeout_s=config.SIDE_EFFECT_TIMEOUT_S)

    # ------------------------------------------------------------------
    # 3. Orchestration services (depend on other services)
    # ------------------------------------------------------------------
    financial_transaction_service = FinancialTransactionService(
        repo=transaction_repo, config=config, logger=logger, db=db,
    )
    membership_approval_service = MembershipApprovalService(
        user_repo=user_repo, allocator=allocator, logger=logger, db=db,
    )
    membership_workflow_service = MembershipWorkflowService(
        request_repo=request_repo,
        user_repo=user_repo,
        approval=membership_approval_service,
        payments=payment_service,
        settings=settings_service,
        transactions=financial_transaction_service,
        email=email_service,
        runner=runner,
        logger=logger,
        db=db,
    )

    return ServiceContainer(
        settings_service=settings_service,
        user_service=user_service,
        email_service=email_service,
        issue_service=issue_service,
        payment_service=payment_service,
        membership_id_allocator=allocator,
        side_effect_runner=runner,
        financial_transaction_service=financial_transaction_service,
        membership_approval_service=membership_approval_service,
        membership_workflow_service=membership_workflow_service,
    )
