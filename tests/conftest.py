"""
Pytest configuration and fixtures for PipraPay gateway tests.
"""

import logging
import os
import sys
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from unittest.mock import AsyncMock

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.append(ROOT_DIR)

from piprapay_gateway.adapters.piprapay import PipraPayAdapter, PipraPayClient  # noqa: E402
from piprapay_gateway.audit import AuditLog  # noqa: E402
from piprapay_gateway.billing import BillingService, SqlBillingService  # noqa: E402
from piprapay_gateway.config import PipraPayConfig  # noqa: E402
from piprapay_gateway.models import Base, Client, Invoice  # noqa: E402

API_URL = "https://pay.example.com"
API_KEY = "test-api-key"


@pytest.fixture
def piprapay_config():
    """Adapter configuration with every field filled in."""
    return PipraPayConfig(
        api_key=API_KEY,
        api_url=API_URL,
        currency="BDT",
        auto_redirect=False,
        return_url="https://billing.example.com/return",
        cancel_url="https://billing.example.com/cancel",
        notify_url="https://billing.example.com/ipn/piprapay",
    )


class GatewayStub:
    """Scripted PipraPay API behind ``httpx.MockTransport``."""

    def __init__(self):
        self.requests = []
        self.responses = {}

    def reply(self, path, response):
        self.responses[path] = response

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.get(request.url.path)
        if response is None:
            return httpx.Response(404, json={"status": False, "message": "Not found"})
        if isinstance(response, Exception):
            raise response
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)

    def calls_to(self, path):
        return [r for r in self.requests if r.url.path == path]


@pytest.fixture
def gateway():
    return GatewayStub()


@pytest.fixture
def gateway_client(gateway):
    http = httpx.AsyncClient(transport=httpx.MockTransport(gateway))
    return PipraPayClient(API_URL, API_KEY, http_client=http)


@pytest.fixture
def mock_billing():
    """Billing service double with a completed-payment happy path."""
    billing = AsyncMock(spec=BillingService)
    billing.find_transaction_by_txn_id.return_value = None
    return billing


@pytest.fixture
def audit_log():
    return AuditLog(logging.getLogger("piprapay.ipn.test"))


@pytest.fixture
def adapter(piprapay_config, mock_billing, gateway_client, audit_log):
    return PipraPayAdapter(
        piprapay_config, mock_billing, client=gateway_client, audit=audit_log
    )


@pytest_asyncio.fixture
async def sessionmaker():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", poolclass=StaticPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def billing(sessionmaker):
    return SqlBillingService(sessionmaker)


@pytest_asyncio.fixture
async def seeded_invoice(sessionmaker):
    """Client 7 with unpaid invoice 42 for 10.00."""
    async with sessionmaker() as session:
        session.add(
            Client(id=7, first_name="A", last_name="B", email="e@x.com", currency="BDT")
        )
        session.add(
            Invoice(id=42, client_id=7, total=Decimal("10.00"), currency="BDT")
        )
        await session.commit()
    return 42


# Configure pytest-asyncio
def pytest_configure(config):
    """Configure pytest with asyncio support."""
    config.addinivalue_line("markers", "asyncio: mark test as async")
