"""Adapters for integrating external payment processors."""

from .base import PaymentAdapter
from .exceptions import (
    PaymentError,
    ConfigurationError,
    ValidationError,
    NotFoundError,
    GatewayConnectionError,
    GatewayError,
    WebhookError,
    InvalidPayloadError,
    DuplicateNotificationError,
    MissingInvoiceIdError,
    PaymentNotCompletedError,
)

__all__ = [
    "PaymentAdapter",
    "PaymentError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "GatewayConnectionError",
    "GatewayError",
    "WebhookError",
    "InvalidPayloadError",
    "DuplicateNotificationError",
    "MissingInvoiceIdError",
    "PaymentNotCompletedError",
]
