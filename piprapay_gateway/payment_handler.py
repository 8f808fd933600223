import json
import logging
import re
from typing import Any, Dict, Mapping, Optional

from .adapters.base import PaymentAdapter
from .adapters.exceptions import PaymentError
from .billing import BillingService

logger = logging.getLogger(__name__)

_BRACKET_KEY = re.compile(r"^([^\[\]]+)((?:\[[^\[\]]*\])+)$")


def nest_form_fields(form: Mapping[str, Any]) -> Dict[str, Any]:
    """Turn ``metadata[invoiceid]=42`` style keys into nested dicts."""
    nested: Dict[str, Any] = {}
    for key, value in form.items():
        match = _BRACKET_KEY.match(key)
        if not match:
            nested[key] = value
            continue

        parts = [match.group(1)] + re.findall(r"\[([^\[\]]*)\]", match.group(2))
        target = nested
        for part in parts[:-1]:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        target[parts[-1]] = value
    return nested


def _invoice_hint(data: Mapping[str, Any]) -> Optional[int]:
    post = data.get("post") or {}
    if not post and data.get("http_raw_post_data"):
        try:
            post = json.loads(data["http_raw_post_data"])
        except (TypeError, ValueError):
            return None
    metadata = post.get("metadata") if isinstance(post, dict) else None
    if not isinstance(metadata, dict):
        return None
    invoice_id = metadata.get("invoiceid")
    if isinstance(invoice_id, int) and not isinstance(invoice_id, bool):
        return invoice_id
    if isinstance(invoice_id, str) and invoice_id.isascii() and invoice_id.isdigit():
        return int(invoice_id)
    return None


class PaymentServiceHandler:
    """Host-side dispatch between the HTTP layer and a payment adapter."""

    def __init__(
        self,
        billing: BillingService,
        payment_adapter: PaymentAdapter,
        gateway_id: str = "piprapay",
    ):
        self._billing = billing
        self._payment_adapter = payment_adapter
        self._gateway_id = gateway_id
        logger.info(f"PaymentServiceHandler initialized with {payment_adapter.__class__.__name__}")

    async def render_checkout(self, invoice_id: int) -> str:
        """Render the gateway checkout form for an invoice."""
        try:
            return await self._payment_adapter.get_html(invoice_id)
        except PaymentError as e:
            logger.error(f"Checkout for invoice {invoice_id} failed: {e}")
            raise

    async def receive_notification(self, data: Dict[str, Any]) -> bool:
        """Record an inbound notification and hand it to the adapter.

        The transaction row is created before the adapter runs so that every
        delivery leaves a trace; failures are stored on it and re-raised.
        """
        transaction = await self._billing.create_transaction(
            self._gateway_id, dict(data), invoice_id=_invoice_hint(data)
        )
        logger.info("Registered %s notification as transaction %s", self._gateway_id, transaction.id)

        try:
            result = await self._payment_adapter.process_transaction(transaction.id, data)
        except PaymentError as e:
            logger.warning("Transaction %s failed: %s", transaction.id, e)
            await self._billing.mark_transaction_error(transaction.id, str(e))
            raise
        except Exception as e:
            logger.exception("Unexpected error processing transaction %s", transaction.id)
            await self._billing.mark_transaction_error(transaction.id, f"Unexpected error: {e!r}")
            raise

        logger.info("Processed transaction %s", transaction.id)
        return result
