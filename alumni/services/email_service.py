"""
Email Notification Service.

Outbound membership notifications.  Sends synchronously via SMTP and
audit-logs every attempt.  Every public method returns a
``ServiceResult`` so callers never handle raw SMTP exceptions.
"""

from __future__ import annotations

import smtplib
from email.message import EmailMessage
from typing import Callable, Optional, Union

from alumni.config import AppConfig
from alumni.database import DatabaseManager
from alumni.logger import StructuredLogger
from alumni.models.enums import MembershipStatus
from alumni.models.service_models import ServiceResult
from alumni.services.base_service import BaseService
from alumni.utils.audit import SYSTEM_ACTOR

SUBJECT_SUFFIX: str = " - CSE DIU Alumni"

# status -> (subject, opening paragraph)
_STATUS_TEMPLATES: dict[MembershipStatus, tuple[str, str]] = {
    MembershipStatus.DRAFT: (
        "Membership Request Received",
        "We have received your membership request. Our team will review "
        "your profile information shortly.",
    ),
    MembershipStatus.INFORMATION_VERIFIED: (
        "Membership Information Verified",
        "Your profile information has been verified. You will be notified "
        "about the next step of your membership application.",
    ),
    MembershipStatus.PAYMENT_REQUIRED: (
        "Membership Payment Required",
        "Your membership application has been accepted pending payment of "
        "the membership fee.",
    ),
    MembershipStatus.APPROVED: (
        "Membership Approved",
        "Congratulations! Your membership has been approved. Welcome to the "
        "CSE DIU Alumni community.",
    ),
    MembershipStatus.REJECTED: (
        "Membership Request Rejected",
        "We regret to inform you that your membership request was not "
        "approved.",
    ),
}

Transport = Callable[[EmailMessage], None]


class EmailService(BaseService):
    """Composes and sends email notifications.

    ``transport`` replaces the SMTP dispatch (tests pass a recorder).
    """

    def __init__(
        self,
        config: AppConfig,
        logger: StructuredLogger,
        transport: Optional[Transport] = None,
        db: Optional[DatabaseManager] = None,
    ) -> None:
        super().__init__(logger, db)
        self._config = config
        self._transport = transport
        self._validated: bool = transport is not None

    # ------------------------------------------------------------------
    # Core send method
    # ------------------------------------------------------------------

    def send_email(
        self,
        to_addresses: Union[str, list[str]],
        subject: str,
        body_text: str,
    ) -> ServiceResult[str]:
        """Compose and send one plain-text email.

        Email configuration is validated lazily on the first send.
        """
        if not self._validated:
            try:
                self._config.validate_email_config()
                self._validated = True
            except ValueError as exc:
                self._logger.error("Email configuration error: %s", exc)
                return ServiceResult(
                    success=False,
                    error=f"Email configuration error: {exc}",
                    status_code=500,
                )

        recipients = ", ".join(to_addresses) if isinstance(to_addresses, list) else to_addresses
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._config.MAIL_FROM or self._config.MAIL_USERNAME
        msg["To"] = recipients
        msg.set_content(body_text)

        self._audit(
            "EMAIL_SEND_ATTEMPT", "Email", subject, SYSTEM_ACTOR,
            details={"to": recipients, "subject": subject},
        )

        if self._transport is not None:
            try:
                self._transport(msg)
            except (smtplib.SMTPException, OSError) as exc:
                self._logger.error("Email transport failed for %s: %s", recipients, exc)
                return ServiceResult(success=False, error=str(exc), status_code=500)
            return self._sent(msg)
        return self._dispatch_smtp(msg)

    # ------------------------------------------------------------------
    # Domain-specific notification helpers
    # ------------------------------------------------------------------

    def send_membership_status_email(
        self,
        email: str,
        first_name: Optional[str],
        status: MembershipStatus,
        rejection_reason: Optional[str] = None,
        payment_url: Optional[str] = None,
    ) -> ServiceResult[str]:
        """Tell an applicant their membership request moved to *status*."""
        subject, opening = _STATUS_TEMPLATES[status]
        lines = [f"Hi {first_name or 'there'},", "", opening]

        if status == MembershipStatus.PAYMENT_REQUIRED:
            if payment_url:
                lines += ["", "Complete your payment here:", payment_url]
            else:
                lines += [
                    "",
                    "A payment link will be shared with you shortly.",
                ]
        if status == MembershipStatus.REJECTED and rejection_reason:
            lines += ["", "Reason:", rejection_reason]
        if status == MembershipStatus.APPROVED:
            lines += ["", f"Visit {self._config.FRONTEND_URL} to view your membership."]

        lines += ["", "CSE DIU Alumni Team"]
        return self.send_email(email, subject + SUBJECT_SUFFIX, "\n".join(lines))

    def send_verification_email(
        self, email: str, first_name: Optional[str], token: str,
    ) -> ServiceResult[str]:
        """Send the sign-up confirmation link carrying *token*."""
        url = f"{self._config.FRONTEND_URL}/verify-email?token={token}"
        body = "\n".join([
            f"Welcome to CSE DIU Alumni, {first_name or 'there'}!",
            "",
            "Thank you for registering. Please verify your email address by "
            "opening the link below:",
            url,
            "",
            "This link will expire in 24 hours. If you didn't create an "
            "account, please ignore this email.",
        ])
        return self.send_email(email, "Verify Your Email" + SUBJECT_SUFFIX, body)

    def send_welcome_email(self, email: str, first_name: Optional[str]) -> ServiceResult[str]:
        body = "\n".join([
            f"Welcome, {first_name or 'there'}!",
            "",
            "Your email has been verified successfully. You can now access all "
            "features of the CSE DIU Alumni platform.",
            "",
            "Thank you for joining our community!",
            "",
            "CSE DIU Alumni Team",
        ])
        return self.send_email(email, "Welcome to CSE DIU Alumni!", body)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _sent(self, msg: EmailMessage) -> ServiceResult[str]:
        self._logger.info("Email sent successfully to %s", msg["To"])
        self._audit(
            "EMAIL_SENT", "Email", msg["Subject"] or "", SYSTEM_ACTOR,
            details={"to": msg["To"], "subject": msg["Subject"]},
        )
        return ServiceResult(success=True, data=msg["To"])

    def _dispatch_smtp(self, msg: EmailMessage) -> ServiceResult[str]:
        """Open an SMTP connection, authenticate, send, and close."""
        config = self._config
        smtp: Optional[smtplib.SMTP] = None
        try:
            smtp = smtplib.SMTP(config.MAIL_SERVER, config.MAIL_PORT, timeout=30)
            smtp.starttls()
            smtp.login(config.MAIL_USERNAME, config.MAIL_PASSWORD.get_secret_value())
            smtp.send_message(msg)
            return self._sent(msg)

        except smtplib.SMTPAuthenticationError as exc:
            self._logger.error(
                "SMTP authentication failed for '%s': %s", config.MAIL_USERNAME, exc,
            )
            return ServiceResult(
                success=False,
                error=f"SMTP authentication failed: {exc}",
                status_code=500,
            )

        except smtplib.SMTPException as exc:
            self._logger.error("SMTP error sending to %s: %s", msg["To"], exc)
            return ServiceResult(success=False, error=f"SMTP error: {exc}", status_code=500)

        except OSError as exc:
            self._logger.error(
                "Network error connecting to %s:%d: %s",
                config.MAIL_SERVER,
                config.MAIL_PORT,
                exc,
            )
            return ServiceResult(success=False, error=f"Network error: {exc}", status_code=500)

        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except smtplib.SMTPException:
                    self._logger.debug("SMTP quit failed; connection already closed.")
