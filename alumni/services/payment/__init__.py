"""Payment gateway abstraction and the SSLCommerz adapter."""

from alumni.services.payment.gateway import PaymentGateway
from alumni.services.payment.payment_service import PaymentService
from alumni.services.payment.sslcommerz import SSLCommerzGateway

__all__ = ["PaymentGateway", "PaymentService", "SSLCommerzGateway"]
