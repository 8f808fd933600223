"""Billing-platform service layer used by payment adapters."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from .adapters.base import parse_amount
from .adapters.exceptions import NotFoundError, ValidationError
from .models import Client, ClientBalance, Invoice, Transaction

logger = logging.getLogger(__name__)

TRANSACTION_FIELDS = ("txn_id", "amount", "currency", "txn_status", "type", "status")


class BillingService(ABC):
    """Invoice, transaction and client operations an adapter depends on."""

    @abstractmethod
    async def get_invoice(self, invoice_id: int) -> Invoice:
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: int) -> Transaction:
        pass

    @abstractmethod
    async def get_client(self, client_id: int) -> Client:
        pass

    @abstractmethod
    async def find_transaction_by_txn_id(self, txn_id: Any) -> Optional[int]:
        """Return the newest transaction id carrying ``txn_id``, if any."""
        pass

    @abstractmethod
    async def update_transaction(
        self, transaction_id: int, data: Dict[str, Any]
    ) -> Transaction:
        pass

    @abstractmethod
    async def add_funds(
        self, client_id: int, amount: Any, description: str
    ) -> ClientBalance:
        pass

    @abstractmethod
    async def pay_invoice_with_credits(self, invoice_id: int) -> bool:
        """Settle an invoice from the client's balance when it covers the total."""
        pass

    @abstractmethod
    async def create_transaction(
        self,
        gateway_id: str,
        ipn: Dict[str, Any],
        invoice_id: Optional[int] = None,
    ) -> Transaction:
        pass

    @abstractmethod
    async def mark_transaction_error(
        self, transaction_id: int, message: str
    ) -> None:
        pass


class SqlBillingService(BillingService):
    """SQLAlchemy implementation; one session per operation."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    async def get_invoice(self, invoice_id: int) -> Invoice:
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(Invoice)
                .options(selectinload(Invoice.client))
                .where(Invoice.id == invoice_id)
            )
            invoice = result.scalar_one_or_none()
        if invoice is None:
            raise NotFoundError("Invoice not found")
        return invoice

    async def get_transaction(self, transaction_id: int) -> Transaction:
        async with self._sessionmaker() as session:
            transaction = await session.get(Transaction, transaction_id)
        if transaction is None:
            raise NotFoundError("Transaction not found")
        return transaction

    async def get_client(self, client_id: int) -> Client:
        async with self._sessionmaker() as session:
            client = await session.get(Client, client_id)
        if client is None:
            raise NotFoundError("Client not found")
        return client

    async def get_client_balance(self, client_id: int) -> Decimal:
        async with self._sessionmaker() as session:
            return await self._balance(session, client_id)

    async def find_transaction_by_txn_id(self, txn_id: Any) -> Optional[int]:
        async with self._sessionmaker() as session:
            result = await session.execute(
                select(Transaction.id)
                .where(Transaction.txn_id == str(txn_id))
                .order_by(Transaction.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def update_transaction(
        self, transaction_id: int, data: Dict[str, Any]
    ) -> Transaction:
        async with self._sessionmaker() as session:
            transaction = await session.get(Transaction, transaction_id)
            if transaction is None:
                raise NotFoundError("Transaction not found")

            for field in TRANSACTION_FIELDS:
                if field not in data:
                    continue
                value = data[field]
                if field == "amount" and value is not None:
                    value = parse_amount(value)
                elif field == "txn_id" and value is not None:
                    value = str(value)
                setattr(transaction, field, value)
            transaction.updated_at = datetime.now(timezone.utc)

            await session.commit()

        logger.info("Updated transaction %s: %s", transaction_id, transaction.status)
        return transaction

    async def add_funds(
        self, client_id: int, amount: Any, description: str
    ) -> ClientBalance:
        value = parse_amount(amount)
        if value <= 0:
            raise ValidationError(f"Invalid amount: {amount}")

        async with self._sessionmaker() as session:
            if await session.get(Client, client_id) is None:
                raise NotFoundError("Client not found")
            entry = ClientBalance(
                client_id=client_id,
                amount=value,
                description=description,
                type="gateway",
            )
            session.add(entry)
            await session.commit()

        logger.info("Added %s to client %s balance", value, client_id)
        return entry

    async def pay_invoice_with_credits(self, invoice_id: int) -> bool:
        async with self._sessionmaker() as session:
            invoice = await session.get(Invoice, invoice_id)
            if invoice is None:
                raise NotFoundError("Invoice not found")
            if invoice.status == "paid":
                logger.info("Invoice %s is already paid", invoice_id)
                return False

            balance = await self._balance(session, invoice.client_id)
            total = parse_amount(invoice.total)
            if balance < total:
                logger.info(
                    "Client %s balance %s does not cover invoice %s total %s",
                    invoice.client_id,
                    balance,
                    invoice_id,
                    total,
                )
                return False

            session.add(
                ClientBalance(
                    client_id=invoice.client_id,
                    amount=-total,
                    description=f"Invoice #{invoice.id} payment",
                    type="invoice",
                    rel_id=invoice.id,
                )
            )
            invoice.status = "paid"
            invoice.paid_at = datetime.now(timezone.utc)
            await session.commit()

        logger.info("Invoice %s paid with credits", invoice_id)
        return True

    async def create_transaction(
        self,
        gateway_id: str,
        ipn: Dict[str, Any],
        invoice_id: Optional[int] = None,
    ) -> Transaction:
        transaction = Transaction(
            gateway_id=gateway_id,
            invoice_id=invoice_id,
            ipn=ipn,
            status="received",
        )
        async with self._sessionmaker() as session:
            session.add(transaction)
            await session.commit()
        return transaction

    async def mark_transaction_error(
        self, transaction_id: int, message: str
    ) -> None:
        async with self._sessionmaker() as session:
            transaction = await session.get(Transaction, transaction_id)
            if transaction is None:
                raise NotFoundError("Transaction not found")
            transaction.status = "error"
            transaction.error = message
            transaction.updated_at = datetime.now(timezone.utc)
            await session.commit()

    @staticmethod
    async def _balance(session: AsyncSession, client_id: int) -> Decimal:
        result = await session.execute(
            select(func.coalesce(func.sum(ClientBalance.amount), 0)).where(
                ClientBalance.client_id == client_id
            )
        )
        return parse_amount(result.scalar_one())
