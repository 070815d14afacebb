"""API schemas for the Seller Portal API.

Pydantic models for request/response validation and serialization.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sellerportal.domain.state_machines import (
    OrderStatus,
    PaymentStatus,
    ReturnStatus,
    ShipmentStatus,
)
from sellerportal.domain.value_objects import (
    OrderReturnStatus,
    OrderType,
    ReturnType,
    ShippingPayer,
)


# ============================================================================
# Common Schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] = Field(
        default_factory=dict, description="Additional error context"
    )
    request_id: str | None = Field(
        default=None, description="Request ID for correlation"
    )


class StatusHistorySchema(BaseModel):
    """Status history entry of an order or return request."""

    status: str
    changed_by: str
    changed_by_role: str
    timestamp: datetime
    note: str | None = None


# ============================================================================
# Order Schemas
# ============================================================================


class AddressSchema(BaseModel):
    """Postal address."""

    name: str
    street: str
    city: str
    state: str
    pincode: str
    phone: str | None = None
    country: str = "India"


class OrderItemSchema(BaseModel):
    """Order line item."""

    product_id: str
    title: str
    quantity: int
    price: float
    sku: str | None = None


class TrackingInfoSchema(BaseModel):
    """Courier tracking details."""

    courier_name: str
    tracking_number: str
    shipped_at: datetime
    estimated_delivery: datetime | None = None


class OrderSchema(BaseModel):
    """Order as seen by its seller."""

    id: str = Field(..., description="Order identifier")
    order_number: str = Field(..., description="Human-readable order number")
    seller_id: str
    customer_id: str
    customer_name: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    order_type: OrderType
    status: OrderStatus = Field(..., description="Lifecycle status")
    payment_status: PaymentStatus = Field(..., description="Payment sub-state")
    gateway_order_id: str | None = None
    total_amount: float
    seller_amount: float
    commission_amount: float
    shipping_paid_by: ShippingPayer
    shipping_cost: float
    actual_shipping_cost: float = Field(
        ..., description="Courier cost borne by the seller, deducted from payout"
    )
    items: list[OrderItemSchema]
    shipping_address: AddressSchema
    tracking_info: TrackingInfoSchema | None = None
    status_history: list[StatusHistorySchema]
    return_status: OrderReturnStatus
    refund_id: str | None = None
    refund_error: str | None = Field(
        default=None, description="Last refund failure, pending manual reconciliation"
    )
    cancelled_at: datetime | None = None
    delivered_at: datetime | None = None
    version: int
    created_at: datetime
    updated_at: datetime


class OrderResponse(BaseModel):
    """Single order response."""

    order: OrderSchema


class OrderUpdateResponse(BaseModel):
    """Order after a status change."""

    order: OrderSchema
    message: str


class OrderStatusUpdateRequest(BaseModel):
    """Request to change an order's status."""

    status: str = Field(..., description="Target status", examples=["confirmed"])
    note: str | None = Field(default=None, max_length=500, description="Note for the history")


class ShipOrderRequest(BaseModel):
    """Manual shipping details."""

    courier_name: str = Field(..., min_length=1, max_length=100)
    tracking_number: str = Field(..., min_length=1, max_length=100)
    estimated_delivery: datetime | None = None


# ============================================================================
# Shipping Schemas
# ============================================================================


class DimensionsSchema(BaseModel):
    """Parcel dimensions in centimetres."""

    length: float
    width: float
    height: float


class ShipmentHistorySchema(BaseModel):
    """Shipment history entry."""

    status: str
    description: str
    changed_by: str
    timestamp: datetime


class ShipmentSchema(BaseModel):
    """Shipment of an order."""

    id: str
    order_id: str
    seller_id: str
    shiprocket_order_id: str | None = None
    shiprocket_shipment_id: str | None = None
    awb_code: str | None = Field(default=None, description="Courier waybill number")
    courier_id: int | None = None
    courier_name: str | None = None
    weight: int = Field(..., description="Parcel weight in grams")
    dimensions: DimensionsSchema | None = None
    shipping_charge: float | None = None
    pickup_location: str | None = None
    status: ShipmentStatus
    status_history: list[ShipmentHistorySchema]
    label_url: str | None = None
    pickup_scheduled_at: datetime | None = None
    version: int
    created_at: datetime
    updated_at: datetime


class ShipmentResponse(BaseModel):
    """Shipment operation response."""

    shipment: ShipmentSchema
    message: str | None = None
    warning: str | None = Field(
        default=None, description="Non-fatal problem the seller should know about"
    )


class CreateShipmentRequest(BaseModel):
    """Parcel details for a new shipment. Values are clamped to safe bounds."""

    weight: float | None = Field(default=None, description="Weight in grams")
    length: float | None = Field(default=None, description="Length in cm")
    width: float | None = Field(default=None, description="Width in cm")
    height: float | None = Field(default=None, description="Height in cm")


class AssignCourierRequest(BaseModel):
    """Courier booking request."""

    courier_id: int = Field(..., description="Provider courier company id")
    courier_rate: float | None = Field(
        default=None, ge=0, description="Rate quoted by the serviceability check"
    )


class ServiceabilityRequest(BaseModel):
    """Serviceability check request."""

    order_id: str
    weight: float | None = Field(default=None, description="Weight in grams")


class CourierOptionSchema(BaseModel):
    """A courier serving the lane."""

    model_config = ConfigDict(from_attributes=True)

    courier_id: int
    courier_name: str
    rate: float
    estimated_days: str | None = None
    etd: str | None = None
    rating: float | None = None


class ServiceabilityResponse(BaseModel):
    """Couriers available for an order."""

    couriers: list[CourierOptionSchema]
    pickup_pincode: str
    delivery_pincode: str


class TrackingEventSchema(BaseModel):
    """Courier scan event."""

    date: str
    status: str
    activity: str
    location: str | None = None


class TrackingSchema(BaseModel):
    """Live courier tracking."""

    awb_code: str
    raw_status: str | None = None
    current_status: ShipmentStatus | None = None
    estimated_delivery: str | None = None
    events: list[TrackingEventSchema] = Field(default_factory=list)


class TrackingResponse(BaseModel):
    """Shipment with live tracking, when available."""

    shipment: ShipmentSchema
    tracking: TrackingSchema | None = None


class LabelResponse(BaseModel):
    """Shipping label location."""

    label_url: str


class PickupLocationRequest(BaseModel):
    """Pickup address to register with the shipping provider."""

    name: str = Field(..., min_length=1, max_length=36, description="Location nickname")
    contact_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone: str = Field(..., min_length=10, max_length=15)
    address: str = Field(..., min_length=10, description="Street address")
    address_2: str = ""
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str = Field(..., pattern=r"^\d{6}$")
    country: str = "India"


class PickupLocationSchema(BaseModel):
    """Pickup location registered with the provider."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    active: bool
    phone_verified: bool
    pincode: str | None = None
    id: int | None = None


class PickupLocationResponse(BaseModel):
    """Registered pickup location."""

    pickup_location: PickupLocationSchema


# ============================================================================
# Return Schemas
# ============================================================================


class ReturnRequestSchema(BaseModel):
    """Return or exchange request."""

    id: str
    order_id: str
    customer_id: str
    seller_id: str
    type: ReturnType
    status: ReturnStatus
    reason: str | None = None
    refund_amount: float
    refund_id: str | None = None
    rejection_reason: str | None = None
    status_history: list[StatusHistorySchema]
    resolved_at: datetime | None = None
    version: int
    created_at: datetime
    updated_at: datetime


class ReturnResponse(BaseModel):
    """Return request response."""

    return_request: ReturnRequestSchema
    message: str | None = None
    warning: str | None = Field(
        default=None, description="Set when a refund needs manual follow-up"
    )


class ReturnNoteRequest(BaseModel):
    """Optional note attached to a seller action."""

    note: str | None = Field(default=None, max_length=500)


class RejectReturnRequest(BaseModel):
    """Rejection with the reason shown to the customer."""

    reason: str = Field(..., min_length=1, max_length=500)
