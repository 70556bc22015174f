"""Membership request lifecycle, payments and notifications."""

from __future__ import annotations

import threading
import time
from decimal import Decimal

import pytest

from alumni.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from alumni.models.enums import MembershipStatus, TransactionStatus, TransactionType, UserRole
from alumni.models.payment import PaymentInitiateResponse, PaymentVerificationResponse
from alumni.models.setting import FEATURE_FLAGS_KEY, SettingUpdate
from alumni.models.transaction import TransactionFilter
from alumni.services.transitions import MEMBERSHIP_TRANSITIONS

M = MembershipStatus
ADMIN = [UserRole.ADMIN]


def _to_status(workflow, request, *path, **kwargs):
    for target in path:
        request = workflow.transition(request.id, target, "admin-1", ADMIN, **kwargs)
    return request


# ---------------------------------------------------------------------------
# create_request
# ---------------------------------------------------------------------------


def test_create_request_starts_as_draft(workflow, make_user, transport, audit_actions):
    user = make_user()

    request = workflow.create_request(user.id)

    assert request.status == M.DRAFT
    assert len(request.status_history) == 1
    entry = request.status_history[0]
    assert (entry.status, entry.changed_by, entry.note) == ("draft", user.id, "Membership request submitted")
    assert "MEMBERSHIP_REQUEST_CREATE" in audit_actions()
    assert transport.subjects == ["Membership Request Received - CSE DIU Alumni"]


def test_incomplete_profile_is_rejected(workflow, make_user):
    user = make_user(company=None, batch="")

    with pytest.raises(ValidationError, match="Profile must be 100% complete") as exc_info:
        workflow.create_request(user.id)

    assert exc_info.value.details["missing_profile_fields"] == "batch,company"


def test_second_active_request_conflicts(workflow, make_user):
    user = make_user()
    workflow.create_request(user.id)

    with pytest.raises(ConflictError, match="already have an active membership request"):
        workflow.create_request(user.id)


def test_approved_request_blocks_a_new_one(workflow, make_user):
    user = make_user()
    request = workflow.create_request(user.id)
    _to_status(workflow, request, M.INFORMATION_VERIFIED, M.APPROVED)

    with pytest.raises(ConflictError):
        workflow.create_request(user.id)


def test_rejected_request_allows_a_new_one(workflow, make_user):
    user = make_user()
    request = workflow.create_request(user.id)
    workflow.transition(request.id, M.REJECTED, "admin-1", ADMIN, rejection_reason="Unknown batch")

    second = workflow.create_request(user.id)

    assert second.id != request.id
    assert workflow.get_request_for_user(user.id).id == second.id


def test_unknown_user_cannot_apply(workflow):
    with pytest.raises(NotFoundError):
        workflow.create_request("missing")


def test_concurrent_submissions_leave_one_active_request(workflow, make_user, request_repo, monkeypatch):
    user = make_user()
    original = request_repo.get_active_for_user

    def _slow_lookup(user_id):
        found = original(user_id)
        time.sleep(0.2)
        return found

    monkeypatch.setattr(request_repo, "get_active_for_user", _slow_lookup)
    errors: list[Exception] = []

    def _submit() -> None:
        try:
            workflow.create_request(user.id)
        except ConflictError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=_submit) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(request_repo.list_for_user(user.id)) == 1
    assert [str(e) for e in errors] == ["You already have an active membership request"]


# ---------------------------------------------------------------------------
# transition
# ---------------------------------------------------------------------------


def test_history_grows_by_one_per_transition(workflow, make_user):
    request = workflow.create_request(make_user().id)

    verified = workflow.transition(request.id, M.INFORMATION_VERIFIED, "admin-1", ADMIN, note="Docs ok")

    assert verified.status == M.INFORMATION_VERIFIED
    assert verified.status_history[:1] == request.status_history
    last = verified.status_history[-1]
    assert (last.status, last.changed_by, last.note) == ("information_verified", "admin-1", "Docs ok")
    assert workflow.get_request(request.id).status_history == verified.status_history


def test_illegal_transition_leaves_request_untouched(workflow, make_user):
    request = workflow.create_request(make_user().id)

    with pytest.raises(ValidationError, match="Invalid status transition"):
        workflow.transition(request.id, M.APPROVED, "admin-1", ADMIN)

    assert workflow.get_request(request.id).model_dump() == request.model_dump()


def test_approved_is_terminal(workflow, make_user):
    request = workflow.create_request(make_user().id)
    approved = _to_status(workflow, request, M.INFORMATION_VERIFIED, M.APPROVED)

    with pytest.raises(ValidationError, match="Cannot change status of approved"):
        workflow.transition(approved.id, M.REJECTED, "admin-1", ADMIN)


def test_approval_grants_membership(workflow, make_user, user_repo, transport):
    user = make_user()
    request = workflow.create_request(user.id)

    _to_status(workflow, request, M.INFORMATION_VERIFIED, M.APPROVED)

    member = user_repo.get_by_id(user.id)
    assert member.membership_id == "M00001"
    assert member.has_role(UserRole.MEMBER)
    assert transport.subjects[-1] == "Membership Approved - CSE DIU Alumni"


def test_failed_approval_persists_nothing(workflow, make_user, approval_service, monkeypatch):
    request = workflow.create_request(make_user().id)
    verified = workflow.transition(request.id, M.INFORMATION_VERIFIED, "admin-1", ADMIN)

    def _boom(user_id, actor_id):
        raise NotFoundError("User", user_id)

    monkeypatch.setattr(approval_service, "approve", _boom)

    with pytest.raises(NotFoundError):
        workflow.transition(request.id, M.APPROVED, "admin-1", ADMIN)
    assert workflow.get_request(request.id).model_dump() == verified.model_dump()


def test_rejection_stores_reason_and_mails_it(workflow, make_user, transport):
    request = workflow.create_request(make_user().id)

    rejected = workflow.transition(
        request.id, M.REJECTED, "admin-1", ADMIN, rejection_reason="Not a CSE graduate",
    )

    assert rejected.rejection_reason == "Not a CSE graduate"
    assert "Not a CSE graduate" in transport.sent[-1].get_content()


def test_rejection_without_reason_is_allowed(workflow, make_user):
    request = workflow.create_request(make_user().id)
    rejected = workflow.transition(request.id, M.REJECTED, "admin-1", ADMIN)
    assert rejected.status == M.REJECTED
    assert rejected.rejection_reason is None


def test_stale_write_conflicts(workflow, make_user, request_repo):
    request = workflow.create_request(make_user().id)
    stale = request_repo.get_by_id(request.id)
    workflow.transition(request.id, M.INFORMATION_VERIFIED, "admin-1", ADMIN)

    with pytest.raises(ConflictError):
        request_repo.update(stale.model_copy(update={"status": M.REJECTED}))


# ---------------------------------------------------------------------------
# payment initiation
# ---------------------------------------------------------------------------


def test_payment_required_opens_a_session(workflow, make_user, gateway, transport):
    user = make_user()
    request = workflow.create_request(user.id)
    verified = workflow.transition(request.id, M.INFORMATION_VERIFIED, "admin-1", ADMIN)

    pending = workflow.transition(
        verified.id, M.PAYMENT_REQUIRED, "admin-1", ADMIN, payment_amount=Decimal("1000"),
    )

    assert pending.payment_url == "https://pay.example/session/abc"
    assert pending.payment_transaction_id == "SESSION-1"
    assert pending.payment_amount == Decimal("1000")
    sent = gateway.initiated[0]
    assert sent.order_id == f"MBR-{request.id}"
    assert sent.currency == "BDT"
    assert sent.customer_name == user.full_name
    assert sent.description == "CSE DIU Alumni Membership Fee"
    assert "https://pay.example/session/abc" in transport.sent[-1].get_content()


def test_missing_phone_is_sent_as_na(workflow, make_user, gateway, user_repo):
    user = make_user()
    request = workflow.create_request(user.id)
    user_repo.save(user_repo.get_by_id(user.id).model_copy(update={"phone_number": None}))

    _to_status(workflow, request, M.INFORMATION_VERIFIED)
    workflow.transition(request.id, M.PAYMENT_REQUIRED, "admin-1", ADMIN, payment_amount=Decimal("500"))

    assert gateway.initiated[0].customer_phone == "N/A"


def test_failed_initiation_still_advances(workflow, make_user, gateway, audit_actions):
    gateway.initiate_response = PaymentInitiateResponse(success=False, error="Store inactive")
    request = workflow.create_request(make_user().id)
    _to_status(workflow, request, M.INFORMATION_VERIFIED)

    pending = workflow.transition(
        request.id, M.PAYMENT_REQUIRED, "admin-1", ADMIN, payment_amount=Decimal("1000"),
    )

    assert pending.status == M.PAYMENT_REQUIRED
    assert pending.payment_url is None
    assert "PAYMENT_INITIATION_FAILED" in audit_actions()


def test_raising_gateway_still_advances(workflow, make_user, gateway):
    gateway.initiate_error = RuntimeError("connection reset")
    request = workflow.create_request(make_user().id)
    _to_status(workflow, request, M.INFORMATION_VERIFIED)

    pending = workflow.transition(
        request.id, M.PAYMENT_REQUIRED, "admin-1", ADMIN, payment_amount=Decimal("1000"),
    )

    assert pending.status == M.PAYMENT_REQUIRED
    assert pending.payment_url is None


def test_no_amount_means_no_session(workflow, make_user, gateway):
    request = workflow.create_request(make_user().id)
    _to_status(workflow, request, M.INFORMATION_VERIFIED, M.PAYMENT_REQUIRED)
    assert gateway.initiated == []


def test_payment_flag_off_skips_session(workflow, make_user, gateway, settings_service):
    settings_service.initialize_defaults()
    settings_service.update_setting(
        FEATURE_FLAGS_KEY,
        SettingUpdate(value={"enableMembershipPayment": False, "enableEmailNotifications": True}),
    )
    request = workflow.create_request(make_user().id)
    _to_status(workflow, request, M.INFORMATION_VERIFIED)

    pending = workflow.transition(
        request.id, M.PAYMENT_REQUIRED, "admin-1", ADMIN, payment_amount=Decimal("1000"),
    )

    assert pending.status == M.PAYMENT_REQUIRED
    assert gateway.initiated == []


# ---------------------------------------------------------------------------
# record_payment
# ---------------------------------------------------------------------------


def test_record_payment_books_fee_income(workflow, make_user, transaction_service, audit_actions):
    user = make_user()
    request = workflow.create_request(user.id)
    _to_status(workflow, request, M.INFORMATION_VERIFIED, M.PAYMENT_REQUIRED)

    paid = workflow.record_payment(request.id, "VAL-123")

    assert paid.payment_status == "VALID"
    assert paid.payment_transaction_id == "VAL-123"
    assert "MEMBERSHIP_PAYMENT_VERIFIED" in audit_actions()

    income = transaction_service.list_transactions(
        TransactionFilter(category="Membership Fee"), "admin-1", [UserRole.ADMIN],
    )
    assert len(income) == 1
    booked = income[0]
    assert booked.type == TransactionType.INCOME
    assert booked.status == TransactionStatus.APPROVED
    assert booked.amount == Decimal("1000")
    assert booked.payer == user.full_name
    assert booked.reference_number == "VAL-123"


def test_record_payment_twice_books_once(workflow, make_user, gateway, transaction_service):
    request = workflow.create_request(make_user().id)

    workflow.record_payment(request.id, "VAL-123")
    again = workflow.record_payment(request.id, "VAL-123")

    assert again.payment_transaction_id == "VAL-123"
    assert gateway.verified == ["VAL-123"]
    income = transaction_service.list_transactions(
        TransactionFilter(category="Membership Fee"), "admin-1", [UserRole.ADMIN],
    )
    assert len(income) == 1


def test_failed_verification_raises(workflow, make_user, gateway):
    gateway.verify_response = PaymentVerificationResponse(
        success=False, transaction_id="VAL-9", amount=Decimal("0"), status="INVALID",
    )
    request = workflow.create_request(make_user().id)

    with pytest.raises(ValidationError, match="Payment verification failed"):
        workflow.record_payment(request.id, "VAL-9")
    assert workflow.get_request(request.id).payment_status is None


def test_income_auto_approval_can_be_switched_off(
    workflow, make_user, settings_service, transaction_service,
):
    settings_service.initialize_defaults()
    settings_service.update_setting(
        FEATURE_FLAGS_KEY,
        SettingUpdate(value={
            "enableMembershipPayment": True,
            "enableEmailNotifications": True,
            "enableAutoApproveIncome": False,
        }),
    )
    request = workflow.create_request(make_user().id)

    workflow.record_payment(request.id, "VAL-1")

    [booked] = transaction_service.list_transactions(
        TransactionFilter(category="Membership Fee"), "admin-1", [UserRole.ADMIN],
    )
    assert booked.status == TransactionStatus.PENDING_REVIEW


# ---------------------------------------------------------------------------
# notifications
# ---------------------------------------------------------------------------


def test_email_flag_off_sends_nothing(workflow, make_user, settings_service, transport):
    settings_service.initialize_defaults()
    settings_service.update_setting(
        FEATURE_FLAGS_KEY,
        SettingUpdate(value={"enableMembershipPayment": True, "enableEmailNotifications": False}),
    )

    workflow.create_request(make_user().id)

    assert transport.sent == []


def test_mail_failure_does_not_fail_the_transition(workflow, make_user, transport):
    transport.fail_with = OSError("smtp down")
    request = workflow.create_request(make_user().id)

    verified = workflow.transition(request.id, M.INFORMATION_VERIFIED, "admin-1", ADMIN)

    assert verified.status == M.INFORMATION_VERIFIED


def test_list_requests_by_status(workflow, make_user):
    first = workflow.create_request(make_user().id)
    second = workflow.create_request(make_user().id)
    workflow.transition(first.id, M.INFORMATION_VERIFIED, "admin-1", ADMIN)

    assert [r.id for r in workflow.list_requests(M.DRAFT)] == [second.id]
    assert {r.id for r in workflow.list_requests()} == {first.id, second.id}


# ---------------------------------------------------------------------------
# transition table, exercised through the service
# ---------------------------------------------------------------------------

_PATH_TO = {
    M.DRAFT: (),
    M.INFORMATION_VERIFIED: (M.INFORMATION_VERIFIED,),
    M.PAYMENT_REQUIRED: (M.INFORMATION_VERIFIED, M.PAYMENT_REQUIRED),
    M.APPROVED: (M.INFORMATION_VERIFIED, M.APPROVED),
    M.REJECTED: (M.REJECTED,),
}

_ALLOWED_MOVES = sorted(
    (source, target)
    for source, targets in MEMBERSHIP_TRANSITIONS.items()
    for target in targets
)


@pytest.mark.parametrize(("source", "target"), _ALLOWED_MOVES)
def test_every_allowed_move_appends_one_entry(workflow, make_user, source, target):
    request = _to_status(workflow, workflow.create_request(make_user().id), *_PATH_TO[source])

    moved = workflow.transition(request.id, target, "admin-1", ADMIN, note="step")

    assert moved.status == target
    assert len(moved.status_history) == len(request.status_history) + 1
    assert moved.status_history[:-1] == request.status_history
    assert (moved.status_history[-1].status, moved.status_history[-1].note) == (str(target), "step")


@pytest.mark.parametrize("terminal", [M.APPROVED, M.REJECTED])
@pytest.mark.parametrize("target", list(M))
def test_terminal_requests_never_move(workflow, make_user, terminal, target):
    request = _to_status(workflow, workflow.create_request(make_user().id), *_PATH_TO[terminal])

    with pytest.raises(ValidationError, match=f"Cannot change status of {terminal} membership request"):
        workflow.transition(request.id, target, "admin-1", ADMIN)

    assert workflow.get_request(request.id).model_dump() == request.model_dump()


@pytest.mark.parametrize("roles", [[], [UserRole.GUEST], [UserRole.MEMBER], [UserRole.ACCOUNTANT]])
def test_only_admins_move_requests(workflow, make_user, roles):
    request = workflow.create_request(make_user().id)

    with pytest.raises(AuthorizationError):
        workflow.transition(request.id, M.INFORMATION_VERIFIED, "user-1", roles)

    assert workflow.get_request(request.id).status == M.DRAFT


def test_system_admin_moves_requests(workflow, make_user):
    request = workflow.create_request(make_user().id)
    moved = workflow.transition(request.id, M.INFORMATION_VERIFIED, "root", [UserRole.SYSTEM_ADMIN])
    assert moved.status == M.INFORMATION_VERIFIED
