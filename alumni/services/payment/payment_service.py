"""
Payment Service.

Selects the configured payment gateway.  Only SSLCommerz exists today;
an unknown ``PAYMENT_GATEWAY`` value falls back to it with a warning.
"""

from __future__ import annotations

from typing import Optional

import requests

from alumni.config import AppConfig
from alumni.logger import StructuredLogger
from alumni.services.base_service import BaseService
from alumni.services.payment.gateway import PaymentGateway
from alumni.services.payment.sslcommerz import SSLCommerzGateway


class PaymentService(BaseService):
    """Owns the active ``PaymentGateway`` instance."""

    def __init__(
        self,
        config: AppConfig,
        logger: StructuredLogger,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(logger)
        selected = (config.PAYMENT_GATEWAY or SSLCommerzGateway.name).lower()
        if selected != SSLCommerzGateway.name:
            self._logger.warning(
                "Unknown payment gateway %r, falling back to %s",
                selected, SSLCommerzGateway.name,
            )
        self._gateway: PaymentGateway = SSLCommerzGateway(config, logger, session=session)
        self._logger.info("Payment gateway initialized: %s", self._gateway.name)

    def get_gateway(self) -> PaymentGateway:
        return self._gateway
