import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from .adapters.exceptions import (
    ConfigurationError,
    DuplicateNotificationError,
    GatewayConnectionError,
    GatewayError,
    InvalidPayloadError,
    MissingInvoiceIdError,
    NotFoundError,
    PaymentError,
    PaymentNotCompletedError,
)
from .adapters.piprapay import PipraPayAdapter
from .audit import AuditLog, configure_audit_log
from .billing import SqlBillingService
from .config import get_settings
from .models import Base
from .payment_handler import PaymentServiceHandler, nest_form_fields

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("piprapay-gateway")


class EndpointFilter(logging.Filter):
    """Filter out noisy health check access logs."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - logging filter
        return "GET /health" not in record.getMessage()


logging.getLogger("uvicorn.access").addFilter(EndpointFilter())


settings = get_settings()

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")

# Most specific classes first.
ERROR_STATUS = (
    (InvalidPayloadError, 400),
    (DuplicateNotificationError, 409),
    (MissingInvoiceIdError, 422),
    (NotFoundError, 404),
    (PaymentNotCompletedError, 402),
    (GatewayConnectionError, 503),
    (GatewayError, 502),
    (ConfigurationError, 500),
)


def payment_error_status(exc: PaymentError) -> int:
    for exc_class, status_code in ERROR_STATUS:
        if isinstance(exc, exc_class):
            return status_code
    return 400


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine: AsyncEngine = create_async_engine(settings.database_url)
    sessionmaker = async_sessionmaker(engine, expire_on_commit=False)

    # Ensure database is reachable before starting services
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        if settings.AUTO_CREATE_TABLES:
            await conn.run_sync(Base.metadata.create_all)

    configure_audit_log(settings.IPN_LOG_FILE)

    billing = SqlBillingService(sessionmaker)
    adapter = PipraPayAdapter(settings.piprapay_config(), billing, audit=AuditLog())
    app.state.handler = PaymentServiceHandler(billing, adapter)
    logger.info("PipraPay gateway ready, notifications at %s", adapter.config.notify_url)
    try:
        yield
    finally:
        await adapter.aclose()
        await engine.dispose()


app = FastAPI(
    title="PipraPay Gateway",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_handler(request: Request) -> PaymentServiceHandler:
    return request.app.state.handler


@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError):
    return JSONResponse(
        status_code=payment_error_status(exc), content={"detail": str(exc)}
    )


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "piprapay-gateway"}


@app.get("/invoices/{invoice_id}/pay", response_class=HTMLResponse)
async def invoice_checkout(
    invoice_id: int, handler: PaymentServiceHandler = Depends(get_handler)
):
    """Render the PipraPay checkout form for an invoice."""
    return HTMLResponse(await handler.render_checkout(invoice_id))


@app.post("/ipn/piprapay")
async def piprapay_ipn(
    request: Request, handler: PaymentServiceHandler = Depends(get_handler)
):
    """Receive a PipraPay payment notification."""
    raw = await request.body()
    post = {}
    if request.headers.get("content-type", "").startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        post = nest_form_fields(dict(form))

    data = {
        "post": post,
        "http_raw_post_data": raw.decode("utf-8", errors="replace"),
    }
    logger.info("Received PipraPay notification (%d bytes)", len(raw))
    await handler.receive_notification(data)
    return {"success": True}


@app.get("/")
async def root():
    return {"message": "PipraPay Gateway", "ipn": "/ipn/piprapay"}


if __name__ == "__main__":
    uvicorn.run(
        "piprapay_gateway.main:app",
        host="0.0.0.0",
        port=settings.HTTP_PORT,
        reload=True,
        log_level="info"
    )
