import os
import logging
import uuid
from typing import Any

import httpx
import uvicorn
from fastapi import FastAPI, Header, HTTPException, status
from pydantic import BaseModel, Field

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("gateway-mock")


class EndpointFilter(logging.Filter):
    """Filter out noisy health check access logs."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - logging filter
        return "GET /health" not in record.getMessage()


logging.getLogger("uvicorn.access").addFilter(EndpointFilter())

API_KEY = os.getenv("PIPRAPAY_API_KEY", "sandbox-key")
PUBLIC_URL = os.getenv("GATEWAY_MOCK_URL", "http://localhost:8001")


class ChargeIn(BaseModel):
    full_name: str
    email_mobile: str | None = None
    amount: str
    currency: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    redirect_url: str | None = None
    cancel_url: str | None = None
    webhook_url: str | None = None
    return_type: str = "POST"


class VerifyIn(BaseModel):
    pp_id: str


class CompleteIn(BaseModel):
    payment_method: str = "bkash"
    status: str = "completed"


# In-memory charge store keyed by pp_id
charges: dict[str, dict[str, Any]] = {}


def require_api_key(api_key: str | None) -> None:
    if api_key != API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"status": False, "message": "Invalid API key"},
        )


app = FastAPI(
    title="PipraPay Gateway Mock",
    version="1.0.0",
)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "gateway-mock"}


@app.post("/api/create-charge")
async def create_charge(
    charge: ChargeIn,
    mh_piprapay_api_key: str | None = Header(default=None),
):
    require_api_key(mh_piprapay_api_key)
    pp_id = uuid.uuid4().hex[:12]
    charges[pp_id] = {
        "pp_id": pp_id,
        "status": "pending",
        "amount": charge.amount,
        "currency": charge.currency,
        "metadata": charge.metadata,
        "webhook_url": charge.webhook_url,
        "transaction_id": None,
        "payment_method": None,
    }
    logger.info("Created charge %s for %s %s", pp_id, charge.amount, charge.currency)
    return {"status": True, "pp_id": pp_id, "pp_url": f"{PUBLIC_URL}/checkout/{pp_id}"}


@app.post("/api/verify-payments")
async def verify_payments(
    payload: VerifyIn,
    mh_piprapay_api_key: str | None = Header(default=None),
):
    require_api_key(mh_piprapay_api_key)
    charge = charges.get(payload.pp_id)
    if charge is None:
        return {"status": False, "message": "Charge not found"}
    return {key: value for key, value in charge.items() if key != "webhook_url"}


@app.post("/checkout/{pp_id}/complete")
async def complete_checkout(pp_id: str, payment: CompleteIn | None = None):
    """Simulate the payer finishing checkout and deliver the IPN."""
    payment = payment or CompleteIn()
    charge = charges.get(pp_id)
    if charge is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Charge not found")

    charge["status"] = payment.status
    charge["payment_method"] = payment.payment_method
    charge["transaction_id"] = charge["transaction_id"] or f"TX{uuid.uuid4().hex[:10].upper()}"

    ipn = {key: value for key, value in charge.items() if key != "webhook_url"}
    delivered = None
    if charge["webhook_url"]:
        try:
            async with httpx.AsyncClient(timeout=30) as client:
                resp = await client.post(charge["webhook_url"], json=ipn)
            delivered = resp.status_code
            logger.info("Delivered IPN for %s: HTTP %s", pp_id, resp.status_code)
        except httpx.HTTPError as e:
            logger.warning("IPN delivery for %s failed: %r", pp_id, e)

    return {"success": True, "data": ipn, "webhook_status": delivered}


@app.get("/")
async def root():
    return {
        "message": "PipraPay Gateway Mock",
        "endpoints": {
            "create_charge": "/api/create-charge",
            "verify": "/api/verify-payments",
        }
    }


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8001,
        reload=True,
        log_level="info"
    )
