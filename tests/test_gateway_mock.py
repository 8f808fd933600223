import os
import sys

import pytest
from fastapi.testclient import TestClient

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.append(ROOT_DIR)

from sandbox.gateway_mock.main import API_KEY, app, charges  # noqa: E402


@pytest.fixture
def client():
    charges.clear()
    return TestClient(app)


def create(client, **overrides):
    body = {
        "full_name": "A B",
        "email_mobile": "e@x.com",
        "amount": "10.00",
        "currency": "BDT",
        "metadata": {"invoiceid": 42},
        "webhook_url": None,
    }
    body.update(overrides)
    return client.post(
        "/api/create-charge", json=body, headers={"mh-piprapay-api-key": API_KEY}
    )


def verify(client, pp_id):
    return client.post(
        "/api/verify-payments",
        json={"pp_id": pp_id},
        headers={"mh-piprapay-api-key": API_KEY},
    ).json()


def test_create_charge_requires_api_key(client):
    response = client.post("/api/create-charge", json={"full_name": "A", "amount": "1", "currency": "BDT"})
    assert response.status_code == 401


def test_charge_lifecycle(client):
    created = create(client).json()
    assert created["pp_url"].endswith(created["pp_id"])

    pending = verify(client, created["pp_id"])
    assert pending["status"] == "pending"
    assert pending["metadata"] == {"invoiceid": 42}

    completed = client.post(f"/checkout/{created['pp_id']}/complete").json()
    assert completed["webhook_status"] is None

    verified = verify(client, created["pp_id"])
    assert verified["status"] == "completed"
    assert verified["transaction_id"].startswith("TX")
    assert verified["payment_method"] == "bkash"
    assert verified["amount"] == "10.00"


def test_verify_unknown_charge_has_no_status(client):
    assert verify(client, "missing") == {"status": False, "message": "Charge not found"}
