"""Shared fixtures: an offline in-memory store and fake collaborators."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from email.message import EmailMessage
from pathlib import Path
from typing import Callable, Optional

import pytest

from alumni.config import AppConfig
from alumni.database import DatabaseManager
from alumni.logger import StructuredLogger
from alumni.models.enums import UserRole
from alumni.models.payment import (
    PaymentInitiateRequest,
    PaymentInitiateResponse,
    PaymentVerificationResponse,
)
from alumni.models.user import User
from alumni.repositories.counter_repository import CounterRepository
from alumni.repositories.issue_repository import IssueRepository
from alumni.repositories.membership_request_repository import MembershipRequestRepository
from alumni.repositories.settings_repository import SettingsRepository
from alumni.repositories.transaction_repository import TransactionRepository
from alumni.repositories.user_repository import UserRepository
from alumni.schema import initialize_schema
from alumni.services.email_service import EmailService
from alumni.services.financial_transactions import FinancialTransactionService
from alumni.services.issues import IssueService
from alumni.services.membership_approval import MembershipApprovalService
from alumni.services.membership_id_allocator import MembershipIdAllocator
from alumni.services.membership_workflow import MembershipWorkflowService
from alumni.services.settings_service import SettingsService
from alumni.services.side_effects import SideEffectRunner
from alumni.services.users import UserService


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class RecordingTransport:
    """Email transport that keeps every message instead of sending it."""

    def __init__(self, fail_with: Optional[Exception] = None) -> None:
        self.sent: list[EmailMessage] = []
        self.fail_with = fail_with

    def __call__(self, message: EmailMessage) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(message)

    @property
    def subjects(self) -> list[str]:
        return [str(m["Subject"]) for m in self.sent]


class ScriptedGateway:
    """Payment gateway whose answers are set by the test."""

    name = "scripted"

    def __init__(self) -> None:
        self.initiate_response = PaymentInitiateResponse(
            success=True,
            payment_url="https://pay.example/session/abc",
            transaction_id="SESSION-1",
        )
        self.verify_response = PaymentVerificationResponse(
            success=True,
            transaction_id="MBR-x",
            amount=Decimal("1000"),
            status="VALID",
        )
        self.initiate_error: Optional[Exception] = None
        self.initiated: list[PaymentInitiateRequest] = []
        self.verified: list[str] = []

    def initiate_payment(self, request: PaymentInitiateRequest) -> PaymentInitiateResponse:
        self.initiated.append(request)
        if self.initiate_error is not None:
            raise self.initiate_error
        return self.initiate_response

    def verify_payment(self, transaction_id: str) -> PaymentVerificationResponse:
        self.verified.append(transaction_id)
        return self.verify_response


class FakePaymentService:
    def __init__(self, gateway: ScriptedGateway) -> None:
        self._gateway = gateway

    def get_gateway(self) -> ScriptedGateway:
        return self._gateway


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(
        LOG_FILE="",
        SIDE_EFFECT_TIMEOUT_S=2.0,
        MAIL_USERNAME="mailer@example.com",
        SSLCOMMERZ_STORE_ID="teststore",
        OFFICIAL_ADMIN_EMAIL="official@example.com",
    )


@pytest.fixture
def logger(config: AppConfig) -> StructuredLogger:
    return StructuredLogger(name="alumni.tests", log_file="")


@pytest.fixture
def db(logger: StructuredLogger):
    manager = DatabaseManager(
        supabase_url="",
        supabase_key="",
        sqlite_path=Path(":memory:"),
        logger=logger,
    )
    initialize_schema(manager.sqlite, logger)
    yield manager
    manager.close()


@pytest.fixture
def audit_actions(db: DatabaseManager) -> Callable[[], list[str]]:
    def _actions() -> list[str]:
        rows = db.sqlite.execute("SELECT action FROM audit_log ORDER BY id").fetchall()
        return [row["action"] for row in rows]
    return _actions


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


@pytest.fixture
def user_repo(db: DatabaseManager, logger: StructuredLogger) -> UserRepository:
    return UserRepository(db=db, logger=logger)


@pytest.fixture
def counter_repo(db: DatabaseManager, logger: StructuredLogger) -> CounterRepository:
    return CounterRepository(db=db, logger=logger)


@pytest.fixture
def request_repo(db: DatabaseManager, logger: StructuredLogger) -> MembershipRequestRepository:
    return MembershipRequestRepository(db=db, logger=logger)


@pytest.fixture
def transaction_repo(db: DatabaseManager, logger: StructuredLogger) -> TransactionRepository:
    return TransactionRepository(db=db, logger=logger)


@pytest.fixture
def settings_repo(db: DatabaseManager, logger: StructuredLogger) -> SettingsRepository:
    return SettingsRepository(db=db, logger=logger)


@pytest.fixture
def issue_repo(db: DatabaseManager, logger: StructuredLogger) -> IssueRepository:
    return IssueRepository(db=db, logger=logger)


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def runner(logger: StructuredLogger):
    side_effects = SideEffectRunner(logger=logger, timeout_s=2.0)
    yield side_effects
    side_effects.shutdown()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def gateway() -> ScriptedGateway:
    return ScriptedGateway()


@pytest.fixture
def settings_service(settings_repo, config, logger, db) -> SettingsService:
    return SettingsService(repo=settings_repo, config=config, logger=logger, db=db)


@pytest.fixture
def email_service(config, logger, transport, db) -> EmailService:
    return EmailService(config=config, logger=logger, transport=transport, db=db)


@pytest.fixture
def allocator(counter_repo, logger) -> MembershipIdAllocator:
    return MembershipIdAllocator(counter_repo=counter_repo, logger=logger)


@pytest.fixture
def approval_service(user_repo, allocator, logger, db) -> MembershipApprovalService:
    return MembershipApprovalService(
        user_repo=user_repo, allocator=allocator, logger=logger, db=db,
    )


@pytest.fixture
def transaction_service(transaction_repo, config, logger, db) -> FinancialTransactionService:
    return FinancialTransactionService(
        repo=transaction_repo, config=config, logger=logger, db=db,
    )


@pytest.fixture
def user_service(user_repo, config, logger, db, email_service) -> UserService:
    return UserService(
        repo=user_repo, config=config, logger=logger, db=db, email=email_service,
    )


@pytest.fixture
def issue_service(issue_repo, logger, db) -> IssueService:
    return IssueService(repo=issue_repo, logger=logger, db=db)


@pytest.fixture
def workflow(
    request_repo,
    user_repo,
    approval_service,
    gateway,
    settings_service,
    transaction_service,
    email_service,
    runner,
    logger,
    db,
) -> MembershipWorkflowService:
    return MembershipWorkflowService(
        request_repo=request_repo,
        user_repo=user_repo,
        approval=approval_service,
        payments=FakePaymentService(gateway),
        settings=settings_service,
        transactions=transaction_service,
        email=email_service,
        runner=runner,
        logger=logger,
        db=db,
    )


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def make_user(user_repo: UserRepository) -> Callable[..., User]:
    """Insert a user with a complete profile; keyword overrides win."""
    counter = iter(range(1, 10_000))

    def _make(**overrides: object) -> User:
        n = next(counter)
        now = datetime.now(timezone.utc)
        fields: dict[str, object] = {
            "id": str(uuid.uuid4()),
            "auth0_id": f"auth0|{n}",
            "email": f"alum{n}@example.com",
            "first_name": "Rahim",
            "last_name": f"Uddin{n}",
            "picture": "https://img.example/p.png",
            "phone_number": "+8801700000000",
            "batch": "D-42",
            "date_of_birth": date(1995, 5, 17),
            "company": "Acme Ltd",
            "designation": "Engineer",
            "passing_year": 2018,
            "education_level": "BSc",
            "roles": [UserRole.GUEST],
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        return user_repo.create(User(**fields))

    return _make
