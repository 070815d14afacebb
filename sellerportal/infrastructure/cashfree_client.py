"""Cashfree payment gateway client.

Only the calls the refund paths need: looking up what the customer
actually paid, issuing a refund and reading back an existing one. Refunds settle asynchronously, so a
successful call means the gateway accepted the refund, not that money moved.
"""

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from sellerportal.infrastructure.config import settings

logger = structlog.get_logger()


class PaymentGatewayError(Exception):
    """Error from a payment gateway call."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


@dataclass
class GatewayOrder:
    """Gateway view of a paid order."""

    order_id: str
    order_amount: float
    order_status: str | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "GatewayOrder":
        """Create from API response data."""
        return cls(
            order_id=str(data.get("order_id", "")),
            order_amount=float(data.get("order_amount") or 0),
            order_status=data.get("order_status"),
        )


@dataclass
class RefundResult:
    """Refund accepted by the gateway."""

    refund_id: str
    status: str
    gateway_refund_id: str | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any], refund_id: str) -> "RefundResult":
        """Create from API response data."""
        gateway_refund_id = data.get("cf_refund_id")
        return cls(
            refund_id=str(data.get("refund_id") or refund_id),
            status=data.get("refund_status") or "PENDING",
            gateway_refund_id=str(gateway_refund_id) if gateway_refund_id else None,
        )


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.text or f"HTTP {response.status_code}"


def _json_body(response: httpx.Response, action: str) -> dict[str, Any]:
    """Decode a successful response, which must be a JSON object.

    Raises:
        PaymentGatewayError: If the body is anything else.
    """
    try:
        body = response.json()
    except ValueError as e:
        raise PaymentGatewayError(
            f"{action} failed: unexpected response from Cashfree", response.status_code
        ) from e
    if not isinstance(body, dict):
        raise PaymentGatewayError(
            f"{action} failed: unexpected response from Cashfree", response.status_code
        )
    return body


def _is_duplicate_refund(response: httpx.Response, message: str) -> bool:
    return response.status_code == 409 or "already exists" in message.lower()


class CashfreeClient:
    """HTTP client for the Cashfree PG API."""

    def __init__(
        self,
        base_url: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Cashfree client.

        Args:
            base_url: PG API base URL.
            client_id: App client id.
            client_secret: App client secret.
            api_version: Value for the ``x-api-version`` header.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self.base_url = base_url or settings.cashfree_base_url
        self.client_id = client_id if client_id is not None else settings.cashfree_client_id
        self.client_secret = (
            client_secret if client_secret is not None else settings.cashfree_client_secret
        )
        self.api_version = api_version or settings.cashfree_api_version
        self.timeout = timeout or settings.payment_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "x-client-id": self.client_id,
                    "x-client-secret": self.client_secret,
                    "x-api-version": self.api_version,
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_order(self, gateway_order_id: str) -> GatewayOrder:
        """Look up a gateway order.

        Raises:
            PaymentGatewayError: On API error.
        """
        try:
            client = await self._get_client()
            response = await client.get(f"/orders/{gateway_order_id}")
        except httpx.RequestError as e:
            logger.error(
                "Cashfree order lookup failed",
                gateway_order_id=gateway_order_id,
                error=str(e),
            )
            raise PaymentGatewayError(f"Order lookup failed: {e}") from e

        if response.status_code != 200:
            raise PaymentGatewayError(
                f"Order lookup failed: {_error_message(response)}",
                response.status_code,
            )
        return GatewayOrder.from_api_response(_json_body(response, "Order lookup"))

    async def create_refund(
        self,
        gateway_order_id: str,
        amount: float,
        refund_id: str,
        note: str | None = None,
    ) -> RefundResult:
        """Issue a refund against a paid order.

        The refund id is chosen by the caller, so retrying with the same id
        cannot refund twice.

        Raises:
            PaymentGatewayError: On API error.
        """
        payload: dict[str, Any] = {
            "refund_amount": round(amount, 2),
            "refund_id": refund_id,
        }
        if note:
            payload["refund_note"] = note

        try:
            client = await self._get_client()
            response = await client.post(f"/orders/{gateway_order_id}/refunds", json=payload)
        except httpx.RequestError as e:
            logger.error(
                "Cashfree refund request failed",
                gateway_order_id=gateway_order_id,
                refund_id=refund_id,
                error=str(e),
            )
            raise PaymentGatewayError(f"Refund request failed: {e}") from e

        if response.status_code not in (200, 201):
            message = _error_message(response)
            if _is_duplicate_refund(response, message):
                # An earlier attempt with this id was accepted
                logger.info(
                    "Cashfree refund already exists",
                    gateway_order_id=gateway_order_id,
                    refund_id=refund_id,
                )
                return await self.get_refund(gateway_order_id, refund_id)
            logger.warning(
                "Cashfree refund rejected",
                gateway_order_id=gateway_order_id,
                refund_id=refund_id,
                status_code=response.status_code,
                error=message,
            )
            raise PaymentGatewayError(f"Refund failed: {message}", response.status_code)

        return RefundResult.from_api_response(_json_body(response, "Refund"), refund_id)

    async def get_refund(self, gateway_order_id: str, refund_id: str) -> RefundResult:
        """Read back a refund issued earlier.

        Raises:
            PaymentGatewayError: On API error.
        """
        try:
            client = await self._get_client()
            response = await client.get(f"/orders/{gateway_order_id}/refunds/{refund_id}")
        except httpx.RequestError as e:
            logger.error(
                "Cashfree refund lookup failed",
                gateway_order_id=gateway_order_id,
                refund_id=refund_id,
                error=str(e),
            )
            raise PaymentGatewayError(f"Refund lookup failed: {e}") from e

        if response.status_code != 200:
            raise PaymentGatewayError(
                f"Refund lookup failed: {_error_message(response)}",
                response.status_code,
            )
        return RefundResult.from_api_response(_json_body(response, "Refund lookup"), refund_id)


# Global client instance
_cashfree_client: CashfreeClient | None = None


def get_cashfree_client() -> CashfreeClient:
    """Get the Cashfree client singleton."""
    global _cashfree_client
    if _cashfree_client is None:
        _cashfree_client = CashfreeClient()
    return _cashfree_client


def reset_cashfree_client(client: CashfreeClient | None = None) -> None:
    """Replace the Cashfree client (for testing)."""
    global _cashfree_client
    _cashfree_client = client
