"""Exceptions raised by payment adapters."""


class PaymentError(Exception):
    """Base exception for payment-related errors."""
    pass


class ConfigurationError(PaymentError):
    """Raised when an adapter is constructed without required settings."""
    pass


class ValidationError(PaymentError):
    """Raised when input validation fails."""
    pass


class NotFoundError(PaymentError):
    """Raised when an invoice, transaction or client cannot be found."""
    pass


class GatewayConnectionError(PaymentError):
    """Raised when the payment gateway cannot be reached."""
    pass


class GatewayError(PaymentError):
    """Raised when the gateway answers with an error or a malformed response."""
    pass


class WebhookError(PaymentError):
    """Raised when webhook processing fails."""
    pass


class InvalidPayloadError(WebhookError):
    """Raised when a notification lacks required fields."""
    pass


class DuplicateNotificationError(WebhookError):
    """Raised when a notification was already applied."""
    pass


class MissingInvoiceIdError(WebhookError):
    """Raised when the verified payment carries no invoice id."""
    pass


class PaymentNotCompletedError(WebhookError):
    """Raised when the gateway does not report the payment as completed."""
    pass
