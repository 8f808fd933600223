"""PipraPay hosted-checkout adapter."""

import html
import json
import logging
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError as SchemaValidationError

from ...audit import AuditLog
from ...billing import BillingService
from ...config import PipraPayConfig
from ..base import PaymentAdapter, format_amount, is_completed_status, parse_amount
from ..exceptions import (
    ConfigurationError,
    DuplicateNotificationError,
    GatewayError,
    InvalidPayloadError,
    MissingInvoiceIdError,
    NotFoundError,
    PaymentError,
    PaymentNotCompletedError,
    ValidationError,
)
from .client import PipraPayClient
from .schemas import ChargeMetadata, ChargeRequest, IpnPayload

logger = logging.getLogger(__name__)


class PipraPayAdapter(PaymentAdapter):
    """Creates PipraPay charges for invoices and applies verified payments.

    The inbound notification is only checked for shape; amounts and statuses
    are always taken from the gateway's verification response.
    """

    def __init__(
        self,
        config: Union[PipraPayConfig, Mapping[str, Any]],
        billing: BillingService,
        client: Optional[PipraPayClient] = None,
        audit: Optional[AuditLog] = None,
    ) -> None:
        if not isinstance(config, PipraPayConfig):
            config = PipraPayConfig.model_validate(dict(config))
        if not (config.api_key and config.api_url and config.currency):
            raise ConfigurationError(
                "PipraPay module is misconfigured. "
                "Please provide API Key, API URL, and currency."
            )
        self.config = config
        self._billing = billing
        self._client = client or PipraPayClient(config.api_url, config.api_key)
        self._audit = audit or AuditLog()

    @classmethod
    def get_config(cls) -> Dict[str, Any]:
        return {
            "supports_one_time_payments": True,
            "supports_subscriptions": False,
            "description": "Accept PipraPay payments",
            "form": {
                "api_key": ["text", {"label": "API Key:"}],
                "api_url": ["text", {"label": "API Base URL:"}],
                "currency": ["text", {"label": "Currency Code (BDT / USD):"}],
                "auto_redirect": ["checkbox", {"label": "Auto submit payment form"}],
            },
        }

    async def aclose(self) -> None:
        await self._client.aclose()

    # ==================== Checkout ====================

    def build_charge_data(self, invoice: Any) -> ChargeRequest:
        """Map an invoice and its client onto a create-charge request."""
        client = invoice.client
        first_name = (client.first_name or "") if client else ""
        last_name = (client.last_name or "") if client else ""
        return ChargeRequest(
            full_name=f"{first_name} {last_name}".strip(),
            email_mobile=client.email if client else None,
            amount=format_amount(invoice.total),
            currency=self.config.currency,
            metadata=ChargeMetadata(invoiceid=invoice.id),
            redirect_url=self.config.return_url,
            cancel_url=self.config.cancel_url,
            webhook_url=self.config.notify_url,
            return_type="POST",
        )

    async def get_html(self, invoice_id: int) -> str:
        invoice = await self._billing.get_invoice(invoice_id)
        charge = self.build_charge_data(invoice)
        checkout_url = await self._client.create_charge(charge)
        logger.info("Created PipraPay charge for invoice %s", invoice_id)

        form = f'<form action="{html.escape(checkout_url, quote=True)}" method="GET">'
        form += (
            '<input type="submit" value="Pay via PipraPay" '
            'class="bb-button bb-button-submit">'
        )
        form += "</form>"
        if self.config.auto_redirect:
            form += "<script>document.forms[0].submit();</script>"
        return form

    # ==================== Notifications ====================

    def _decode(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        ipn = data.get("post") or {}
        raw = data.get("http_raw_post_data")
        if not ipn and raw:
            try:
                ipn = json.loads(raw)
            except (TypeError, ValueError):
                ipn = None
            self._audit.record("Decoded raw_post_data", ipn)
        return ipn if isinstance(ipn, dict) else {}

    def _fail(self, exc: PaymentError, reason: str) -> PaymentError:
        self._audit.failure(reason)
        logger.warning("PipraPay IPN rejected: %s", exc)
        return exc

    async def process_transaction(
        self,
        transaction_id: int,
        data: Dict[str, Any],
    ) -> bool:
        try:
            return await self._handle_notification(transaction_id, data)
        except PaymentError:
            raise
        except Exception as exc:
            self._audit.failure(f"Unexpected error while processing IPN: {exc!r}")
            logger.exception("Unexpected error processing transaction %s", transaction_id)
            raise

    async def _handle_notification(
        self,
        transaction_id: int,
        data: Dict[str, Any],
    ) -> bool:
        self._audit.record("IPN Received", data)

        ipn = self._decode(data)
        try:
            payload = IpnPayload.model_validate(ipn)
        except SchemaValidationError as exc:
            raise self._fail(
                InvalidPayloadError("Invalid IPN"), "Missing required fields in IPN."
            ) from exc

        if await self._billing.find_transaction_by_txn_id(payload.pp_id) is not None:
            raise self._fail(
                DuplicateNotificationError("Duplicate IPN"), "Duplicate IPN Detected."
            )

        try:
            verification = await self._client.verify_payment(payload.pp_id)
        except PaymentError as exc:
            raise self._fail(exc, f"Verification request failed: {exc}")
        self._audit.record("Verification Result", verification)

        if not is_completed_status(verification.status):
            raise self._fail(
                PaymentNotCompletedError("Payment verification failed."),
                "Payment verification failed.",
            )

        if not verification.invoice_id:
            raise self._fail(
                MissingInvoiceIdError("Missing invoice ID"),
                "Invoice ID missing in verification metadata.",
            )

        try:
            amount = parse_amount(verification.amount)
        except ValidationError as exc:
            raise self._fail(
                GatewayError(f"Invalid verified amount: {verification.amount!r}"),
                f"Invalid verified amount: {verification.amount!r}",
            ) from exc

        try:
            invoice = await self._billing.get_invoice(_as_id(verification.invoice_id))
            transaction = await self._billing.get_transaction(transaction_id)

            tx_data = {
                "txn_id": verification.transaction_id,
                "amount": amount,
                "currency": self.config.currency,
                "txn_status": verification.status,
                "type": verification.payment_method,
                "status": "complete",
            }
            await self._billing.update_transaction(transaction.id, tx_data)
            self._audit.record("Transaction Updated", tx_data)

            client = await self._billing.get_client(invoice.client_id)
            await self._billing.add_funds(client.id, amount, "PipraPay payment")
            await self._billing.pay_invoice_with_credits(invoice.id)
        except PaymentError as exc:
            raise self._fail(exc, f"Payment could not be applied: {exc}")

        self._audit.event("Payment completed successfully.")
        logger.info(
            "Applied PipraPay payment %s to invoice %s", payload.pp_id, invoice.id
        )
        return True


def _as_id(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.isascii() and value.isdigit():
        return int(value)
    raise NotFoundError("Invoice not found")


__all__ = ["PipraPayAdapter", "PipraPayClient"]
