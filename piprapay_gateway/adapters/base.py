"""Base adapter contract and money helpers shared by payment adapters."""

from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict

from .exceptions import ValidationError


CENTS = Decimal("0.01")


# ==================== Money helpers ====================

def parse_amount(value: Any) -> Decimal:
    """Convert a gateway or invoice amount to a two-place ``Decimal``.

    Strings and integers are converted exactly; floats go through ``str`` so
    ``10.1`` becomes ``Decimal("10.10")`` rather than its binary expansion.

    Raises:
        ValidationError: If the value is empty or not a finite number
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def format_amount(value: Any) -> str:
    """Render an amount the way the gateway expects it, e.g. ``"10.00"``."""
    return f"{parse_amount(value):.2f}"


def is_completed_status(status: Any) -> bool:
    """Gateway statuses are compared case-insensitively."""
    return isinstance(status, str) and status.lower() == "completed"


# ==================== Base Adapter ====================

class PaymentAdapter(ABC):
    """Abstract base class for hosted-checkout payment adapters.

    A host registers an adapter and calls exactly two operations on it: one
    to render the checkout page for an invoice and one to apply an inbound
    payment notification to a transaction it has already recorded.
    """

    @classmethod
    def get_config(cls) -> Dict[str, Any]:
        """Describe the adapter for a host's gateway registry.

        Returns:
            Capability flags, a description and the admin form fields
        """
        return {
            "supports_one_time_payments": False,
            "supports_subscriptions": False,
            "description": cls.__name__,
            "form": {},
        }

    @abstractmethod
    async def get_html(self, invoice_id: int) -> str:
        """Render the checkout form for an invoice.

        Args:
            invoice_id: Billing platform invoice identifier

        Returns:
            HTML fragment that sends the payer to the gateway
        """
        pass

    @abstractmethod
    async def process_transaction(
        self,
        transaction_id: int,
        data: Dict[str, Any],
    ) -> bool:
        """Apply a payment notification to a recorded transaction.

        Args:
            transaction_id: Transaction registered by the host for this call
            data: Request map with ``post`` and ``http_raw_post_data`` keys

        Returns:
            True when the payment was applied

        Raises:
            PaymentError: On any failure; nothing is retried locally
        """
        pass
