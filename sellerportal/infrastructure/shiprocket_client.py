"""Shiprocket HTTP client.

Wraps the courier aggregator's REST API and owns every quirk of it:
token login and caching, the several response shapes the same identifier
can arrive in, and classification of errors the API only reports as text.
Callers receive normalized dataclasses and ``ShippingProviderError``.
"""

import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any

import httpx
import structlog

from sellerportal.domain.entities import Order
from sellerportal.domain.state_machines import ShipmentStatus
from sellerportal.domain.value_objects import ParcelSpec
from sellerportal.infrastructure.config import settings

logger = structlog.get_logger()


class ShippingProviderError(Exception):
    """Error from a shipping provider call."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


# ============================================================================
# Normalized Results
# ============================================================================


@dataclass
class CourierOption:
    """A courier quoted by the serviceability check."""

    courier_id: int
    courier_name: str
    rate: float
    estimated_days: str | None = None
    etd: str | None = None
    rating: float | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "CourierOption":
        """Create from API response data."""
        days = data.get("estimated_delivery_days")
        rating = data.get("rating")
        return cls(
            courier_id=int(data["courier_company_id"]),
            courier_name=data.get("courier_name", ""),
            rate=float(data.get("rate") or 0),
            estimated_days=str(days) if days is not None else None,
            etd=data.get("etd"),
            rating=float(rating) if rating is not None else None,
        )


@dataclass
class CreatedProviderOrder:
    """Identifiers returned when an order is created on the provider."""

    order_id: str
    shipment_id: str | None = None


@dataclass
class ProviderOrderDetails:
    """Provider-side view of an order."""

    order_id: str
    shipment_ids: list[str] = field(default_factory=list)

    @property
    def first_shipment_id(self) -> str | None:
        return self.shipment_ids[0] if self.shipment_ids else None


@dataclass
class CourierAssignment:
    """Result of booking a courier."""

    awb_code: str
    courier_name: str


@dataclass
class PickupResult:
    """Result of a pickup request."""

    already_scheduled: bool = False
    pickup_token: str | None = None
    message: str | None = None


@dataclass
class TrackingEvent:
    """One scan event reported by the courier."""

    date: str
    status: str
    activity: str
    location: str | None = None


@dataclass
class TrackingSnapshot:
    """Courier tracking normalized to the shipment lifecycle."""

    awb_code: str
    raw_status: str | None
    current_status: ShipmentStatus | None
    estimated_delivery: str | None = None
    events: list[TrackingEvent] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "awb_code": self.awb_code,
            "raw_status": self.raw_status,
            "current_status": self.current_status.value if self.current_status else None,
            "estimated_delivery": self.estimated_delivery,
            "events": [
                {
                    "date": event.date,
                    "status": event.status,
                    "activity": event.activity,
                    "location": event.location,
                }
                for event in self.events
            ],
        }


@dataclass
class PickupLocation:
    """A pickup address registered with the provider."""

    name: str
    active: bool
    phone_verified: bool
    pincode: str | None = None
    id: int | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "PickupLocation":
        """Create from API response data.

        Status 2 marks an active location; ``phone_verified`` is 1 once
        the contact number passed OTP verification.
        """
        pincode = data.get("pin_code")
        return cls(
            name=data.get("pickup_location", ""),
            active=data.get("status") == 2,
            phone_verified=bool(data.get("phone_verified")),
            pincode=str(pincode) if pincode is not None else None,
            id=data.get("id"),
        )


@dataclass
class PickupLocationInput:
    """Address details submitted when registering a pickup location."""

    name: str
    contact_name: str
    email: str
    phone: str
    address: str
    city: str
    state: str
    pincode: str
    address_2: str = ""
    country: str = "India"

    def to_payload(self) -> dict[str, Any]:
        return {
            "pickup_location": self.name,
            "name": self.contact_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "address_2": self.address_2,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "pin_code": self.pincode,
        }


# ============================================================================
# Response Normalization
# ============================================================================


_TRACKING_STATUS_MAP: dict[str, ShipmentStatus] = {
    "PICKUP SCHEDULED": ShipmentStatus.PICKUP_SCHEDULED,
    "PICKUP GENERATED": ShipmentStatus.PICKUP_SCHEDULED,
    "PICKUP QUEUED": ShipmentStatus.PICKUP_SCHEDULED,
    "PICKED UP": ShipmentStatus.PICKED_UP,
    "SHIPPED": ShipmentStatus.IN_TRANSIT,
    "IN TRANSIT": ShipmentStatus.IN_TRANSIT,
    "REACHED AT DESTINATION HUB": ShipmentStatus.IN_TRANSIT,
    "OUT FOR DELIVERY": ShipmentStatus.OUT_FOR_DELIVERY,
    "DELIVERED": ShipmentStatus.DELIVERED,
}

_ALREADY_SCHEDULED_KEYWORDS = (
    "already scheduled",
    "already generated",
    "already in pickup queue",
    "pickup is already",
    "already been scheduled",
)


def normalize_tracking_status(raw_status: str | None) -> ShipmentStatus | None:
    """Map a courier status label onto the shipment lifecycle."""
    if not raw_status:
        return None
    return _TRACKING_STATUS_MAP.get(raw_status.strip().upper().replace("_", " "))


def is_already_scheduled_message(message: str | None) -> bool:
    """Detect the provider's textual "pickup already scheduled" error."""
    if not message:
        return False
    lowered = message.lower()
    return any(keyword in lowered for keyword in _ALREADY_SCHEDULED_KEYWORDS)


def _stringify_id(value: Any) -> str | None:
    if value is None or value == "" or value == 0:
        return None
    return str(value)


def _extract_shipment_ids(data: dict[str, Any]) -> list[str]:
    """Collect shipment ids from an order-details response.

    ``shipments`` may be a single object or a list, and may sit at the top
    level or under ``data``.
    """
    body = data.get("data") if isinstance(data.get("data"), dict) else data
    shipments = body.get("shipments")
    if isinstance(shipments, dict):
        shipments = [shipments]
    ids = []
    for shipment in shipments or []:
        shipment_id = _stringify_id(shipment.get("id") or shipment.get("shipment_id"))
        if shipment_id:
            ids.append(shipment_id)
    return ids


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        message = body.get("message")
        if message:
            return str(message)
        errors = body.get("errors")
        if errors:
            return str(errors)
    return response.text or f"HTTP {response.status_code}"


def _json_body(response: httpx.Response, action: str) -> dict[str, Any]:
    """Decode a successful response, which must be a JSON object or list.

    Raises:
        ShippingProviderError: If the body is anything else.
    """
    try:
        body = response.json()
    except ValueError as e:
        logger.warning(
            "Shiprocket returned a non-JSON body",
            action=action,
            status_code=response.status_code,
            body=response.text[:200],
        )
        raise ShippingProviderError(
            f"{action} failed: unexpected response from Shiprocket", response.status_code
        ) from e
    if isinstance(body, list):
        return {"data": body}
    if not isinstance(body, dict):
        raise ShippingProviderError(
            f"{action} failed: unexpected response from Shiprocket", response.status_code
        )
    return body


# ============================================================================
# Shiprocket Client
# ============================================================================


class ShiprocketClient:
    """HTTP client for the Shiprocket external API.

    Logs in with account credentials and caches the bearer token until it
    expires or the API answers 401, in which case it logs in again once.
    """

    def __init__(
        self,
        base_url: str | None = None,
        email: str | None = None,
        password: str | None = None,
        timeout: float | None = None,
        token_ttl_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Shiprocket client.

        Args:
            base_url: API base URL.
            email: API user email.
            password: API user password.
            timeout: Request timeout in seconds.
            token_ttl_seconds: How long a login token is reused.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self.base_url = base_url or settings.shiprocket_base_url
        self.email = email if email is not None else settings.shiprocket_email
        self.password = password if password is not None else settings.shiprocket_password
        self.timeout = timeout or settings.shiprocket_timeout_seconds
        self.token_ttl_seconds = token_ttl_seconds or settings.shiprocket_token_ttl_hours * 3600
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._token: str | None = None
        self._token_expires_at: float = 0.0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    async def _login(self) -> str:
        client = await self._get_client()
        try:
            response = await client.post(
                "/auth/login",
                json={"email": self.email, "password": self.password},
            )
        except httpx.RequestError as e:
            logger.error("Shiprocket login request failed", error=str(e))
            raise ShippingProviderError(f"Shiprocket login failed: {e}") from e

        if response.status_code != 200:
            raise ShippingProviderError(
                f"Shiprocket login failed: {_error_message(response)}",
                response.status_code,
            )
        token = _json_body(response, "Shiprocket login").get("token")
        if not token:
            raise ShippingProviderError("Shiprocket login returned no token")

        self._token = token
        self._token_expires_at = time.monotonic() + self.token_ttl_seconds
        logger.info("Shiprocket token refreshed")
        return token

    async def _get_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        return await self._login()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send an authenticated request, logging in again once on 401."""
        client = await self._get_client()
        for attempt in range(2):
            token = await self._get_token()
            try:
                response = await client.request(
                    method,
                    path,
                    json=json,
                    params=params,
                    headers={"Authorization": f"Bearer {token}"},
                )
            except httpx.RequestError as e:
                logger.error(
                    "Shiprocket request failed",
                    method=method,
                    path=path,
                    error=str(e),
                )
                raise ShippingProviderError(f"Shiprocket request failed: {e}") from e

            if response.status_code == 401 and attempt == 0:
                self._token = None
                continue
            return response
        return response

    async def _call(
        self,
        method: str,
        path: str,
        action: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        response = await self._request(method, path, json=json, params=params)
        if response.status_code not in (200, 201, 202):
            message = _error_message(response)
            logger.warning(
                "Shiprocket call rejected",
                action=action,
                status_code=response.status_code,
                error=message,
            )
            raise ShippingProviderError(f"{action} failed: {message}", response.status_code)
        return _json_body(response, action)

    # -------------------------------------------------------------------------
    # Couriers
    # -------------------------------------------------------------------------

    async def check_serviceability(
        self,
        pickup_pincode: str,
        delivery_pincode: str,
        weight_grams: int,
        cod: bool = False,
    ) -> list[CourierOption]:
        """List couriers serving the lane with their rates.

        Raises:
            ShippingProviderError: On API error.
        """
        data = await self._call(
            "GET",
            "/courier/serviceability/",
            "Serviceability check",
            params={
                "pickup_postcode": pickup_pincode,
                "delivery_postcode": delivery_pincode,
                "weight": weight_grams / 1000,
                "cod": 1 if cod else 0,
            },
        )
        body = data.get("data") if isinstance(data.get("data"), dict) else data
        companies = body.get("available_courier_companies") or []
        return [
            CourierOption.from_api_response(company)
            for company in companies
            if company.get("courier_company_id") is not None
        ]

    async def assign_courier(self, shipment_id: str, courier_id: int) -> CourierAssignment:
        """Book a courier and obtain the waybill number.

        Raises:
            ShippingProviderError: On API error or when no AWB was assigned.
        """
        data = await self._call(
            "POST",
            "/courier/assign/awb",
            "Courier assignment",
            json={"shipment_id": shipment_id, "courier_id": courier_id},
        )
        nested = (data.get("response") or {}).get("data") or {}
        awb_code = nested.get("awb_code") or data.get("awb_code")
        courier_name = nested.get("courier_name") or data.get("courier_name") or ""
        if not awb_code:
            message = (
                nested.get("awb_assign_error") or data.get("message") or "no AWB assigned"
            )
            raise ShippingProviderError(f"Courier assignment failed: {message}")
        return CourierAssignment(awb_code=str(awb_code), courier_name=courier_name)

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    async def create_order(self, payload: dict[str, Any]) -> CreatedProviderOrder:
        """Create an ad-hoc order.

        The shipment id is frequently absent right after creation.

        Raises:
            ShippingProviderError: On API error or when no order id came back.
        """
        data = await self._call("POST", "/orders/create/adhoc", "Order creation", json=payload)
        nested = data.get("payload") if isinstance(data.get("payload"), dict) else {}
        order_id = _stringify_id(data.get("order_id") or nested.get("order_id"))
        shipment_id = _stringify_id(data.get("shipment_id") or nested.get("shipment_id"))
        if not order_id:
            logger.error("Shiprocket returned no order id", response=data)
            raise ShippingProviderError("Shiprocket did not return an order ID")
        return CreatedProviderOrder(order_id=order_id, shipment_id=shipment_id)

    async def get_order_details(self, order_id: str) -> ProviderOrderDetails:
        """Fetch an order with its nested shipments.

        Raises:
            ShippingProviderError: On API error.
        """
        data = await self._call("GET", f"/orders/show/{order_id}", "Order lookup")
        return ProviderOrderDetails(order_id=order_id, shipment_ids=_extract_shipment_ids(data))

    async def cancel_order(self, order_id: str) -> None:
        """Cancel an order on the provider.

        Raises:
            ShippingProviderError: On API error.
        """
        await self._call("POST", "/orders/cancel", "Order cancellation", json={"ids": [order_id]})

    # -------------------------------------------------------------------------
    # Pickup, tracking and labels
    # -------------------------------------------------------------------------

    async def schedule_pickup(self, shipment_id: str) -> PickupResult:
        """Request a courier pickup.

        A pickup the provider already scheduled on its own is reported as
        success with ``already_scheduled`` set.

        Raises:
            ShippingProviderError: On any other API error.
        """
        response = await self._request(
            "POST",
            "/courier/generate/pickup",
            json={"shipment_id": [shipment_id]},
        )
        if response.status_code in (200, 201, 202):
            data = _json_body(response, "Pickup scheduling")
            nested = data.get("response")
            if not isinstance(nested, dict):
                nested = {}
            return PickupResult(
                pickup_token=_stringify_id(nested.get("pickup_token_number")),
                message=nested.get("data") if isinstance(nested.get("data"), str) else None,
            )

        message = _error_message(response)
        if is_already_scheduled_message(message):
            logger.info("Pickup already scheduled on provider", shipment_id=shipment_id)
            return PickupResult(already_scheduled=True, message=message)
        logger.warning(
            "Shiprocket pickup rejected",
            shipment_id=shipment_id,
            status_code=response.status_code,
            error=message,
        )
        raise ShippingProviderError(f"Pickup scheduling failed: {message}", response.status_code)

    async def track_by_awb(self, awb_code: str) -> TrackingSnapshot:
        """Fetch courier tracking for a waybill.

        Raises:
            ShippingProviderError: On API error.
        """
        data = await self._call("GET", f"/courier/track/awb/{awb_code}", "Tracking")
        tracking = data.get("tracking_data") or {}
        tracks = tracking.get("shipment_track") or []
        current = tracks[0] if tracks else {}
        raw_status = current.get("current_status")
        events = [
            TrackingEvent(
                date=str(activity.get("date", "")),
                status=str(activity.get("sr-status-label") or activity.get("status") or ""),
                activity=activity.get("activity", ""),
                location=activity.get("location"),
            )
            for activity in tracking.get("shipment_track_activities") or []
        ]
        return TrackingSnapshot(
            awb_code=awb_code,
            raw_status=raw_status,
            current_status=normalize_tracking_status(raw_status),
            estimated_delivery=tracking.get("etd") or current.get("edd"),
            events=events,
        )

    async def generate_label(self, shipment_id: str) -> str:
        """Generate the shipping label and return its URL.

        Raises:
            ShippingProviderError: On API error or when no label was produced.
        """
        data = await self._call(
            "POST",
            "/courier/generate/label",
            "Label generation",
            json={"shipment_id": [shipment_id]},
        )
        label_url = data.get("label_url")
        if not label_url:
            raise ShippingProviderError(
                f"Label generation failed: {data.get('response') or 'no label URL returned'}"
            )
        return label_url

    # -------------------------------------------------------------------------
    # Pickup locations
    # -------------------------------------------------------------------------

    async def get_pickup_locations(self) -> list[PickupLocation]:
        """List pickup locations registered on the account.

        Raises:
            ShippingProviderError: On API error.
        """
        data = await self._call("GET", "/settings/company/pickup", "Pickup location lookup")
        body = data.get("data") if isinstance(data.get("data"), dict) else data
        return [
            PickupLocation.from_api_response(location)
            for location in body.get("shipping_address") or []
        ]

    async def add_pickup_location(self, location: PickupLocationInput) -> PickupLocation:
        """Register a new pickup location.

        Raises:
            ShippingProviderError: On API error.
        """
        data = await self._call(
            "POST",
            "/settings/company/addpickup",
            "Pickup location registration",
            json=location.to_payload(),
        )
        address = data.get("address") or {}
        return PickupLocation(
            name=address.get("pickup_code") or location.name,
            active=False,
            phone_verified=False,
            pincode=location.pincode,
            id=address.get("id"),
        )

    async def update_pickup_location(self, location: PickupLocationInput) -> PickupLocation:
        """Update an existing pickup location's address.

        Raises:
            ShippingProviderError: On API error.
        """
        await self._call(
            "POST",
            "/settings/company/updatepickup",
            "Pickup location update",
            json=location.to_payload(),
        )
        return PickupLocation(
            name=location.name,
            active=False,
            phone_verified=False,
            pincode=location.pincode,
        )


def build_order_payload(
    order: Order,
    pickup_location: str,
    parcel: ParcelSpec,
    order_date: date | None = None,
) -> dict[str, Any]:
    """Build the ad-hoc order payload the provider expects.

    The order number doubles as the provider order reference and the
    shipping address is sent as the billing address.
    """
    address = order.shipping_address
    return {
        "order_id": order.order_number,
        "order_date": (order_date or date.today()).isoformat(),
        "pickup_location": pickup_location,
        "billing_customer_name": address.name or order.customer_name or "Customer",
        "billing_last_name": "",
        "billing_address": address.street,
        "billing_city": address.city,
        "billing_pincode": address.pincode,
        "billing_state": address.state,
        "billing_country": address.country or "India",
        "billing_email": order.customer_email or "",
        "billing_phone": address.phone or order.customer_phone or "",
        "shipping_is_billing": True,
        "order_items": [
            {
                "name": item.title,
                "sku": item.effective_sku,
                "units": item.quantity,
                "selling_price": item.price,
                "discount": 0,
                "tax": 0,
                "hsn": "",
            }
            for item in order.items
        ],
        "payment_method": "Prepaid",
        "sub_total": order.total_amount,
        "length": parcel.dimensions.length,
        "breadth": parcel.dimensions.width,
        "height": parcel.dimensions.height,
        "weight": parcel.weight_kg,
    }


# Global client instance
_shiprocket_client: ShiprocketClient | None = None


def get_shiprocket_client() -> ShiprocketClient:
    """Get the Shiprocket client singleton."""
    global _shiprocket_client
    if _shiprocket_client is None:
        _shiprocket_client = ShiprocketClient()
    return _shiprocket_client


def reset_shiprocket_client(client: ShiprocketClient | None = None) -> None:
    """Replace the Shiprocket client (for testing)."""
    global _shiprocket_client
    _shiprocket_client = client
