"""
SSLCommerz Gateway Adapter.

Hosted checkout through the SSLCommerz v4 session API and its validation
API.  Both endpoints take a form-encoded POST and answer with JSON.

Tests inject a fake ``requests.Session``; production lets the adapter
create a real one lazily.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

import requests

from alumni.config import AppConfig
from alumni.exceptions import ExternalServiceError
from alumni.logger import StructuredLogger
from alumni.models.payment import (
    PaymentInitiateRequest,
    PaymentInitiateResponse,
    PaymentVerificationResponse,
)

SANDBOX_HOST: str = "https://sandbox.sslcommerz.com"
LIVE_HOST: str = "https://securepay.sslcommerz.com"
SESSION_PATH: str = "/gwprocess/v4/api.php"
VALIDATION_PATH: str = "/validator/api/validationserverAPI.php"

_VALID_STATUSES: frozenset[str] = frozenset({"VALID", "VALIDATED"})


class SSLCommerzGateway:
    """``PaymentGateway`` implementation for SSLCommerz."""

    name: str = "sslcommerz"

    def __init__(
        self,
        config: AppConfig,
        logger: StructuredLogger,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._logger = logger
        self._store_id: str = config.SSLCOMMERZ_STORE_ID
        self._store_password: str = config.SSLCOMMERZ_STORE_PASSWORD.get_secret_value()
        self._timeout: float = config.PAYMENT_HTTP_TIMEOUT_S
        self._frontend_url: str = config.FRONTEND_URL.rstrip("/")
        self._api_url: str = config.API_URL.rstrip("/")
        host = SANDBOX_HOST if config.SSLCOMMERZ_SANDBOX else LIVE_HOST
        self.session_url: str = host + SESSION_PATH
        self.validation_url: str = host + VALIDATION_PATH
        self._session: Optional[requests.Session] = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ------------------------------------------------------------------
    # PaymentGateway
    # ------------------------------------------------------------------

    def initiate_payment(self, request: PaymentInitiateRequest) -> PaymentInitiateResponse:
        form = {
            "store_id": self._store_id,
            "store_passwd": self._store_password,
            "total_amount": str(request.amount),
            "currency": request.currency or "BDT",
            "tran_id": request.order_id,
            "success_url": f"{self._frontend_url}/payment/success",
            "fail_url": f"{self._frontend_url}/payment/fail",
            "cancel_url": f"{self._frontend_url}/payment/cancel",
            "ipn_url": f"{self._api_url}/api/payment/ipn",
            "cus_name": request.customer_name,
            "cus_email": request.customer_email,
            "cus_phone": request.customer_phone,
            "cus_add1": "N/A",
            "cus_city": "N/A",
            "cus_country": "Bangladesh",
            "product_name": request.description or "Membership Fee",
            "product_category": "Membership",
            "product_profile": "general",
            "shipping_method": "NO",
        }
        self._logger.info("Initiating payment for order: %s", request.order_id)
        try:
            result = self._post(self.session_url, form)
        except ExternalServiceError as exc:
            self._logger.error("Payment initiation error: %s", exc.message)
            return PaymentInitiateResponse(success=False, error=exc.message)

        payment_url = result.get("GatewayPageURL")
        if result.get("status") == "SUCCESS" and payment_url:
            self._logger.info("Payment initiated successfully for order: %s", request.order_id)
            return PaymentInitiateResponse(
                success=True,
                payment_url=str(payment_url),
                transaction_id=_opt_str(result.get("sessionkey")),
                message="Payment session created successfully",
            )

        reason = _opt_str(result.get("failedreason")) or "Payment initiation failed"
        self._logger.error("Payment initiation failed: %s", reason)
        return PaymentInitiateResponse(success=False, error=reason)

    def verify_payment(self, transaction_id: str) -> PaymentVerificationResponse:
        form = {
            "val_id": transaction_id,
            "store_id": self._store_id,
            "store_passwd": self._store_password,
        }
        self._logger.info("Verifying payment: %s", transaction_id)
        try:
            result = self._post(self.validation_url, form)
        except ExternalServiceError as exc:
            self._logger.error("Payment verification error: %s", exc.message)
            return PaymentVerificationResponse(
                success=False,
                transaction_id=transaction_id,
                amount=Decimal("0"),
                status="ERROR",
                error=exc.message,
            )

        status = _opt_str(result.get("status"))
        if status in _VALID_STATUSES:
            self._logger.info("Payment verified successfully: %s", transaction_id)
            return PaymentVerificationResponse(
                success=True,
                transaction_id=_opt_str(result.get("tran_id")) or transaction_id,
                amount=_parse_amount(result.get("amount")),
                status=status,
                payment_date=_parse_date(result.get("tran_date")),
                message="Payment verified successfully",
            )

        self._logger.warning("Payment verification failed: %s", status or "INVALID")
        return PaymentVerificationResponse(
            success=False,
            transaction_id=transaction_id,
            amount=Decimal("0"),
            status=status or "INVALID",
            error="Payment verification failed",
        )

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _post(self, url: str, form: dict[str, str]) -> dict[str, object]:
        """POST *form* and return the decoded JSON object.

        Raises:
            ExternalServiceError: Transport failure, timeout, or a body that
                is not a JSON object.
        """
        try:
            response = self.session.post(url, data=form, timeout=self._timeout)
        except requests.Timeout as exc:
            raise ExternalServiceError(
                self.name, f"Request timed out after {self._timeout}s", original_error=exc,
            ) from exc
        except requests.RequestException as exc:
            raise ExternalServiceError(self.name, str(exc)[:500], original_error=exc) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise ExternalServiceError(
                self.name,
                f"Invalid JSON response (HTTP {response.status_code})",
                original_error=exc,
            ) from exc
        if not isinstance(body, dict):
            raise ExternalServiceError(self.name, "Unexpected response shape")
        return body


def _opt_str(value: object) -> Optional[str]:
    return str(value) if value not in (None, "") else None


def _parse_amount(raw: object) -> Decimal:
    try:
        return Decimal(str(raw)) if raw not in (None, "") else Decimal("0")
    except InvalidOperation:
        return Decimal("0")


def _parse_date(raw: object) -> Optional[datetime]:
    """SSLCommerz sends ``YYYY-MM-DD HH:MM:SS``."""
    if not raw:
        return None
    try:
        return datetime.fromisoformat(str(raw))
    except ValueError:
        return None
