"""HTTP client for the PipraPay REST API."""

import json
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError as SchemaValidationError

from ..exceptions import GatewayConnectionError, GatewayError
from .schemas import ChargeRequest, VerificationResponse

logger = logging.getLogger(__name__)

API_KEY_HEADER = "mh-piprapay-api-key"


class PipraPayClient:
    """Performs the two gateway calls the adapter needs.

    Every call is a single JSON ``POST``; there is no retry or backoff and
    the transport's default timeout applies. The HTTP status code is not
    inspected: the gateway reports failures in the JSON body.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self._api_key = api_key
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient()

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            API_KEY_HEADER: self._api_key,
        }

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def create_charge(self, charge: ChargeRequest) -> str:
        """Create a hosted-checkout charge and return its checkout URL."""
        response = await self._post("/api/create-charge", charge.model_dump())
        checkout_url = response.get("pp_url")
        if not (isinstance(checkout_url, str) and checkout_url):
            message = response.get("message") or "Unknown"
            logger.warning("PipraPay refused charge: %s", message)
            raise GatewayError(f"Failed to create charge: {message}")
        return checkout_url

    async def verify_payment(self, pp_id: Any) -> VerificationResponse:
        """Ask the gateway for the authoritative state of a charge."""
        response = await self._post("/api/verify-payments", {"pp_id": pp_id})
        if not response or "status" not in response or response["status"] is None:
            raise GatewayError("Invalid verification response")
        try:
            return VerificationResponse.model_validate(response)
        except SchemaValidationError as exc:
            raise GatewayError("Invalid verification response") from exc

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.api_url}{path}"
        try:
            resp = await self._http.post(url, json=body, headers=self.headers)
        except httpx.HTTPError as exc:
            logger.error(f"PipraPay request to {url} failed: {exc}")
            raise GatewayConnectionError(f"Connection error: {exc}") from exc

        try:
            data = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.error(
                "PipraPay returned a non-JSON body from %s (HTTP %s)",
                url,
                resp.status_code,
            )
            raise GatewayConnectionError(f"Connection error: {exc}") from exc

        if not isinstance(data, dict):
            return {}
        return data
