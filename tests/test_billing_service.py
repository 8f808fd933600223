"""
Tests for the SQLAlchemy billing service.
"""

from decimal import Decimal

import pytest

from piprapay_gateway.adapters.exceptions import NotFoundError, ValidationError
from piprapay_gateway.models import ClientBalance, Invoice, Transaction


class TestLookups:

    @pytest.mark.asyncio
    async def test_get_invoice_loads_client(self, billing, seeded_invoice):
        invoice = await billing.get_invoice(seeded_invoice)

        assert invoice.total == Decimal("10.00")
        assert invoice.client.first_name == "A"
        assert invoice.client.email == "e@x.com"

    @pytest.mark.asyncio
    async def test_missing_records(self, billing):
        with pytest.raises(NotFoundError, match="Invoice not found"):
            await billing.get_invoice(1)
        with pytest.raises(NotFoundError, match="Transaction not found"):
            await billing.get_transaction(1)
        with pytest.raises(NotFoundError, match="Client not found"):
            await billing.get_client(1)


class TestTransactions:

    @pytest.mark.asyncio
    async def test_create_and_update(self, billing, sessionmaker):
        created = await billing.create_transaction("piprapay", {"post": {"pp_id": "x"}}, invoice_id=42)
        assert created.id is not None
        assert created.status == "received"

        await billing.update_transaction(
            created.id,
            {
                "txn_id": "TX1",
                "amount": "10.5",
                "currency": "BDT",
                "txn_status": "completed",
                "type": "bkash",
                "status": "complete",
            },
        )

        async with sessionmaker() as session:
            stored = await session.get(Transaction, created.id)
        assert stored.txn_id == "TX1"
        assert stored.amount == Decimal("10.50")
        assert stored.status == "complete"
        assert stored.type == "bkash"
        assert stored.invoice_id == 42
        assert stored.ipn == {"post": {"pp_id": "x"}}
        assert stored.updated_at is not None

    @pytest.mark.asyncio
    async def test_find_by_txn_id_returns_newest(self, billing):
        assert await billing.find_transaction_by_txn_id("pp_1") is None

        first = await billing.create_transaction("piprapay", {})
        second = await billing.create_transaction("piprapay", {})
        await billing.update_transaction(first.id, {"txn_id": "pp_1"})
        await billing.update_transaction(second.id, {"txn_id": "pp_1"})

        assert await billing.find_transaction_by_txn_id("pp_1") == second.id

    @pytest.mark.asyncio
    async def test_mark_error(self, billing, sessionmaker):
        created = await billing.create_transaction("piprapay", {})

        await billing.mark_transaction_error(created.id, "Duplicate IPN")

        async with sessionmaker() as session:
            stored = await session.get(Transaction, created.id)
        assert stored.status == "error"
        assert stored.error == "Duplicate IPN"


class TestCredits:

    @pytest.mark.asyncio
    async def test_add_funds_then_pay_invoice(self, billing, sessionmaker, seeded_invoice):
        await billing.add_funds(7, Decimal("10.00"), "PipraPay payment")
        assert await billing.get_client_balance(7) == Decimal("10.00")

        assert await billing.pay_invoice_with_credits(seeded_invoice) is True

        assert await billing.get_client_balance(7) == Decimal("0.00")
        async with sessionmaker() as session:
            invoice = await session.get(Invoice, seeded_invoice)
            entries = (await session.execute(
                ClientBalance.__table__.select().order_by(ClientBalance.id)
            )).all()
        assert invoice.status == "paid"
        assert invoice.paid_at is not None
        assert [e.description for e in entries] == ["PipraPay payment", "Invoice #42 payment"]

    @pytest.mark.asyncio
    async def test_insufficient_balance_leaves_invoice_unpaid(self, billing, sessionmaker, seeded_invoice):
        await billing.add_funds(7, "4.00", "PipraPay payment")

        assert await billing.pay_invoice_with_credits(seeded_invoice) is False

        assert await billing.get_client_balance(7) == Decimal("4.00")
        async with sessionmaker() as session:
            invoice = await session.get(Invoice, seeded_invoice)
        assert invoice.status == "unpaid"

    @pytest.mark.asyncio
    async def test_paid_invoice_is_not_charged_twice(self, billing, seeded_invoice):
        await billing.add_funds(7, "25.00", "PipraPay payment")
        assert await billing.pay_invoice_with_credits(seeded_invoice) is True

        assert await billing.pay_invoice_with_credits(seeded_invoice) is False
        assert await billing.get_client_balance(7) == Decimal("15.00")

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    @pytest.mark.asyncio
    async def test_add_funds_rejects_non_positive(self, billing, seeded_invoice, amount):
        with pytest.raises(ValidationError):
            await billing.add_funds(7, amount, "PipraPay payment")

    @pytest.mark.asyncio
    async def test_add_funds_unknown_client(self, billing):
        with pytest.raises(NotFoundError, match="Client not found"):
            await billing.add_funds(99, "5.00", "PipraPay payment")
