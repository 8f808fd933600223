"""Wire models exchanged with the PipraPay API."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChargeMetadata(BaseModel):
    invoiceid: int | str


class ChargeRequest(BaseModel):
    """Body of ``POST /api/create-charge``."""

    full_name: str
    email_mobile: str | None = None
    amount: str
    currency: str
    metadata: ChargeMetadata
    redirect_url: str | None = None
    cancel_url: str | None = None
    webhook_url: str | None = None
    return_type: str = "POST"


class IpnMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    invoiceid: Any

    @field_validator("invoiceid")
    @classmethod
    def _present(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("invoiceid is required")
        return value


class IpnPayload(BaseModel):
    """Inbound notification; only used to check that required fields exist."""

    model_config = ConfigDict(extra="allow")

    pp_id: Any
    status: Any
    metadata: IpnMetadata
    transaction_id: Any = None
    amount: Any = None
    payment_method: Any = None

    @field_validator("pp_id", "status")
    @classmethod
    def _present(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("field is required")
        return value


class VerificationResponse(BaseModel):
    """The gateway's own view of a charge, returned by ``verify-payments``."""

    model_config = ConfigDict(extra="allow")

    status: str
    transaction_id: Any = None
    amount: Any = None
    payment_method: Any = None
    metadata: Optional[Dict[str, Any]] = Field(default=None)

    @field_validator("status", mode="before")
    @classmethod
    def _stringify_status(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_object(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None

    @property
    def invoice_id(self) -> Any:
        if not self.metadata:
            return None
        return self.metadata.get("invoiceid") or None
