"""Domain events for the seller portal.

Domain events represent significant occurrences in the order lifecycle.
They are published after the emitting aggregate is stored and drive:
- Customer notifications
- Shipped / delivered / corporate status emails
- Audit logging
"""

from dataclasses import dataclass
from typing import Any, ClassVar

from sellerportal.domain.base import DomainEvent


# ============================================================================
# Order Events
# ============================================================================


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Event raised on every order status transition."""

    event_type: ClassVar[str] = "order.status_changed"

    order_id: str = ""
    order_number: str = ""
    seller_id: str = ""
    customer_id: str = ""
    customer_email: str | None = None
    order_type: str = "b2c"
    from_status: str = ""
    to_status: str = ""
    actor_id: str = ""
    actor_role: str = ""
    note: str | None = None

    def _payload(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "seller_id": self.seller_id,
            "customer_id": self.customer_id,
            "order_type": self.order_type,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "note": self.note,
        }


@dataclass(frozen=True)
class OrderShipped(DomainEvent):
    """Event raised when an order is handed to a courier."""

    event_type: ClassVar[str] = "order.shipped"

    order_id: str = ""
    order_number: str = ""
    customer_id: str = ""
    customer_email: str | None = None
    courier_name: str = ""
    tracking_number: str = ""

    def _payload(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "courier_name": self.courier_name,
            "tracking_number": self.tracking_number,
        }


@dataclass(frozen=True)
class OrderDelivered(DomainEvent):
    """Event raised when an order is delivered."""

    event_type: ClassVar[str] = "order.delivered"

    order_id: str = ""
    order_number: str = ""
    customer_id: str = ""
    customer_email: str | None = None

    def _payload(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
        }


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Event raised when an order is cancelled."""

    event_type: ClassVar[str] = "order.cancelled"

    order_id: str = ""
    order_number: str = ""
    customer_id: str = ""
    customer_email: str | None = None
    cancelled_by: str = ""
    refund_due: bool = False

    def _payload(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "cancelled_by": self.cancelled_by,
            "refund_due": self.refund_due,
        }


@dataclass(frozen=True)
class RefundIssued(DomainEvent):
    """Event raised when the gateway accepted a refund."""

    event_type: ClassVar[str] = "payment.refund_issued"

    order_id: str = ""
    order_number: str = ""
    customer_id: str = ""
    refund_id: str = ""
    amount: float = 0.0

    def _payload(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "customer_id": self.customer_id,
            "refund_id": self.refund_id,
            "amount": self.amount,
        }


@dataclass(frozen=True)
class RefundFailed(DomainEvent):
    """Event raised when a refund needs manual reconciliation."""

    event_type: ClassVar[str] = "payment.refund_failed"

    order_id: str = ""
    order_number: str = ""
    seller_id: str = ""
    amount: float = 0.0
    error: str = ""

    def _payload(self) -> dict[str, Any]:
        return {
            "order_id": self.order_id,
            "order_number": self.order_number,
            "seller_id": self.seller_id,
            "amount": self.amount,
            "error": self.error,
        }


# ============================================================================
# Shipment Events
# ============================================================================


@dataclass(frozen=True)
class ShipmentCreated(DomainEvent):
    """Event raised when the provider accepted a shipment."""

    event_type: ClassVar[str] = "shipment.created"

    shipment_id: str = ""
    order_id: str = ""
    seller_id: str = ""
    shiprocket_order_id: str = ""
    has_shipment_id: bool = False

    def _payload(self) -> dict[str, Any]:
        return {
            "shipment_id": self.shipment_id,
            "order_id": self.order_id,
            "seller_id": self.seller_id,
            "shiprocket_order_id": self.shiprocket_order_id,
            "has_shipment_id": self.has_shipment_id,
        }


@dataclass(frozen=True)
class CourierAssigned(DomainEvent):
    """Event raised when a courier was booked for a shipment."""

    event_type: ClassVar[str] = "shipment.courier_assigned"

    shipment_id: str = ""
    order_id: str = ""
    seller_id: str = ""
    courier_id: int = 0
    courier_name: str = ""
    awb_code: str = ""

    def _payload(self) -> dict[str, Any]:
        return {
            "shipment_id": self.shipment_id,
            "order_id": self.order_id,
            "seller_id": self.seller_id,
            "courier_id": self.courier_id,
            "courier_name": self.courier_name,
            "awb_code": self.awb_code,
        }


@dataclass(frozen=True)
class ShipmentStatusChanged(DomainEvent):
    """Event raised when a shipment moves to a new status."""

    event_type: ClassVar[str] = "shipment.status_changed"

    shipment_id: str = ""
    order_id: str = ""
    seller_id: str = ""
    from_status: str = ""
    to_status: str = ""
    description: str = ""

    def _payload(self) -> dict[str, Any]:
        return {
            "shipment_id": self.shipment_id,
            "order_id": self.order_id,
            "seller_id": self.seller_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "description": self.description,
        }


# ============================================================================
# Return Events
# ============================================================================


@dataclass(frozen=True)
class ReturnStatusChanged(DomainEvent):
    """Event raised on every return request transition."""

    event_type: ClassVar[str] = "return.status_changed"

    return_id: str = ""
    order_id: str = ""
    seller_id: str = ""
    customer_id: str = ""
    return_type: str = "return"
    from_status: str = ""
    to_status: str = ""
    actor_id: str = ""
    actor_role: str = ""
    note: str | None = None

    def _payload(self) -> dict[str, Any]:
        return {
            "return_id": self.return_id,
            "order_id": self.order_id,
            "seller_id": self.seller_id,
            "customer_id": self.customer_id,
            "return_type": self.return_type,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "note": self.note,
        }

