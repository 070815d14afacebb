"""Domain entities for the seller portal.

Entities are domain objects with identity that persists across state changes.
This module contains the core aggregates: Order, Shipment and ReturnRequest,
plus the ProductStock and SellerProfile records the workflows read and adjust.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Self
from uuid import uuid4

from sellerportal.domain.base import AggregateRoot, utcnow
from sellerportal.domain.events import (
    CourierAssigned,
    OrderCancelled,
    OrderDelivered,
    OrderShipped,
    OrderStatusChanged,
    RefundFailed,
    RefundIssued,
    ReturnStatusChanged,
    ShipmentCreated,
    ShipmentStatusChanged,
)
from sellerportal.domain.exceptions import ValidationError
from sellerportal.domain.state_machines import (
    OrderStatus,
    PaymentStatus,
    ReturnStatus,
    ShipmentStatus,
    validate_order_transition,
    validate_payment_transition,
    validate_return_transition,
    validate_shipment_transition,
)
from sellerportal.domain.value_objects import (
    Actor,
    ActorRole,
    Address,
    Dimensions,
    OrderItem,
    OrderReturnStatus,
    OrderType,
    ParcelSpec,
    ReturnType,
    ShipmentHistoryEntry,
    ShippingPayer,
    StatusHistoryEntry,
    TrackingInfo,
    format_datetime,
    parse_datetime,
)


def new_id() -> str:
    """Generate an opaque record identifier."""
    return str(uuid4())


def _restore_base(entity: AggregateRoot, data: dict[str, Any]) -> None:
    entity.version = data.get("version", 1)
    if data.get("created_at"):
        entity.created_at = parse_datetime(data["created_at"])
    if data.get("updated_at"):
        entity.updated_at = parse_datetime(data["updated_at"])


# ============================================================================
# Order Aggregate Root
# ============================================================================


@dataclass(kw_only=True, eq=False)
class Order(AggregateRoot[str]):
    """Order aggregate root.

    Orders are created upstream by checkout and arrive here already placed.
    The aggregate owns the status and payment sub-state machines and the
    append-only status history. Every status transition appends exactly one
    history entry in the same mutation that changes the status.

    Attributes:
        id: Opaque order identifier.
        order_number: Human-readable number, used as the provider order reference.
        seller_id: Owning seller.
        status: Lifecycle status.
        payment_status: Payment sub-state.
        gateway_order_id: Payment gateway reference, if paid online.
        shipping_paid_by: Who bears the courier cost.
        shipping_cost: Shipping amount charged to the customer.
        actual_shipping_cost: Courier cost borne by the seller, deducted from payout.
        status_history: Append-only log of status transitions.
        return_status: Return progress mirrored from the active return request.
        refund_error: Last refund failure, kept for manual reconciliation.
    """

    id: str
    order_number: str
    seller_id: str
    customer_id: str
    shipping_address: Address
    customer_name: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    order_type: OrderType = OrderType.B2C
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    gateway_order_id: str | None = None
    total_amount: float = 0.0
    seller_amount: float = 0.0
    commission_amount: float = 0.0
    shipping_paid_by: ShippingPayer = ShippingPayer.SELLER
    shipping_cost: float = 0.0
    actual_shipping_cost: float = 0.0
    items: list[OrderItem] = field(default_factory=list)
    tracking_info: TrackingInfo | None = None
    status_history: list[StatusHistoryEntry] = field(default_factory=list)
    return_status: OrderReturnStatus = OrderReturnStatus.NONE
    refund_id: str | None = None
    refund_error: str | None = None
    cancelled_at: datetime | None = None
    delivered_at: datetime | None = None

    @classmethod
    def create(
        cls,
        order_number: str,
        seller_id: str,
        customer_id: str,
        shipping_address: Address,
        items: list[OrderItem],
        total_amount: float,
        actor: Actor | None = None,
        order_id: str | None = None,
        **attrs: Any,
    ) -> "Order":
        """Create an order as placed by checkout.

        The initial status gets its own history entry.

        Raises:
            ValidationError: If the order has no items.
        """
        if not items:
            raise ValidationError("Order must contain at least one item", "items")
        order = cls(
            id=order_id or new_id(),
            order_number=order_number,
            seller_id=seller_id,
            customer_id=customer_id,
            shipping_address=shipping_address,
            items=list(items),
            total_amount=total_amount,
            **attrs,
        )
        order.status_history.append(
            StatusHistoryEntry.record(
                order.status.value, actor or Actor.system(), "Order placed"
            )
        )
        return order

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID

    @property
    def refund_due(self) -> bool:
        """Whether cancelling this order must return money to the customer."""
        return self.is_paid and bool(self.gateway_order_id)

    @property
    def seller_pays_shipping(self) -> bool:
        return self.shipping_paid_by == ShippingPayer.SELLER

    @property
    def is_b2b(self) -> bool:
        return self.order_type == OrderType.B2B_DIRECT

    # -------------------------------------------------------------------------
    # State Transitions
    # -------------------------------------------------------------------------

    def transition_to(
        self,
        target: OrderStatus,
        actor: Actor,
        note: str | None = None,
    ) -> None:
        """Move the order along one edge of the lifecycle graph.

        Args:
            target: Requested status.
            actor: Who performs the change.
            note: Optional note stored with the history entry.

        Raises:
            InvalidStateTransitionError: If the edge does not exist.
        """
        validate_order_transition(self.id, self.status, target)
        previous = self.status
        self.status = target
        if target == OrderStatus.CANCELLED:
            self.cancelled_at = utcnow()
        elif target == OrderStatus.DELIVERED:
            self.delivered_at = utcnow()
        self.status_history.append(StatusHistoryEntry.record(target.value, actor, note))
        self._touch()

        self._record_event(
            OrderStatusChanged(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                order_number=self.order_number,
                seller_id=self.seller_id,
                customer_id=self.customer_id,
                customer_email=self.customer_email,
                order_type=self.order_type.value,
                from_status=previous.value,
                to_status=target.value,
                actor_id=actor.id,
                actor_role=actor.role.value,
                note=note,
            )
        )
        if target == OrderStatus.SHIPPED:
            self._record_event(
                OrderShipped(
                    aggregate_id=self.id,
                    aggregate_type="Order",
                    order_id=self.id,
                    order_number=self.order_number,
                    customer_id=self.customer_id,
                    customer_email=self.customer_email,
                    courier_name=self.tracking_info.courier_name if self.tracking_info else "",
                    tracking_number=(
                        self.tracking_info.tracking_number if self.tracking_info else ""
                    ),
                )
            )
        elif target == OrderStatus.DELIVERED:
            self._record_event(
                OrderDelivered(
                    aggregate_id=self.id,
                    aggregate_type="Order",
                    order_id=self.id,
                    order_number=self.order_number,
                    customer_id=self.customer_id,
                    customer_email=self.customer_email,
                )
            )
        elif target == OrderStatus.CANCELLED:
            self._record_event(
                OrderCancelled(
                    aggregate_id=self.id,
                    aggregate_type="Order",
                    order_id=self.id,
                    order_number=self.order_number,
                    customer_id=self.customer_id,
                    customer_email=self.customer_email,
                    cancelled_by=actor.id,
                    refund_due=self.refund_due,
                )
            )

    def ship(self, tracking_info: TrackingInfo, actor: Actor, note: str | None = None) -> None:
        """Record tracking details and move the order to shipped.

        Raises:
            InvalidStateTransitionError: If the order cannot be shipped.
        """
        validate_order_transition(self.id, self.status, OrderStatus.SHIPPED)
        self.tracking_info = tracking_info
        self.transition_to(OrderStatus.SHIPPED, actor, note)

    def record_tracking(self, tracking_info: TrackingInfo) -> None:
        self.tracking_info = tracking_info
        self._touch()

    def record_actual_shipping_cost(self, rate: float) -> None:
        """Record the courier cost later deducted from the seller payout."""
        if rate < 0:
            raise ValidationError(f"Invalid courier rate {rate}", "courier_rate")
        self.actual_shipping_cost = rate
        self._touch()

    def set_return_status(self, return_status: OrderReturnStatus) -> None:
        self.return_status = return_status
        self._touch()

    # -------------------------------------------------------------------------
    # Payment Sub-State
    # -------------------------------------------------------------------------

    def start_refund(self) -> None:
        """Mark a refund as in flight.

        Raises:
            InvalidStateTransitionError: If the payment cannot move to refund_pending.
        """
        validate_payment_transition(self.id, self.payment_status, PaymentStatus.REFUND_PENDING)
        self.payment_status = PaymentStatus.REFUND_PENDING
        self._touch()

    def mark_refunded(self, refund_id: str, amount: float) -> None:
        """Record a refund the gateway accepted."""
        validate_payment_transition(self.id, self.payment_status, PaymentStatus.REFUNDED)
        self.payment_status = PaymentStatus.REFUNDED
        self.refund_id = refund_id
        self.refund_error = None
        self._touch()
        self._record_event(
            RefundIssued(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                order_number=self.order_number,
                customer_id=self.customer_id,
                refund_id=refund_id,
                amount=amount,
            )
        )

    def record_refund_failure(self, error: str, amount: float) -> None:
        """Keep a failed refund visible as refund_pending with its error."""
        if self.payment_status == PaymentStatus.PAID:
            self.start_refund()
        self.refund_error = error
        self._touch()
        self._record_event(
            RefundFailed(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                order_number=self.order_number,
                seller_id=self.seller_id,
                amount=amount,
                error=error,
            )
        )

    def record_return_refund(self, refund_id: str, amount: float) -> None:
        """Record a refund issued for a received return.

        Gateway refunds settle asynchronously, so the payment stays
        refund_pending until the gateway confirms.
        """
        if self.payment_status == PaymentStatus.PAID:
            self.start_refund()
        self.refund_id = refund_id
        self.refund_error = None
        self._touch()
        self._record_event(
            RefundIssued(
                aggregate_id=self.id,
                aggregate_type="Order",
                order_id=self.id,
                order_number=self.order_number,
                customer_id=self.customer_id,
                refund_id=refund_id,
                amount=amount,
            )
        )

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "seller_id": self.seller_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "order_type": self.order_type.value,
            "status": self.status.value,
            "payment_status": self.payment_status.value,
            "gateway_order_id": self.gateway_order_id,
            "total_amount": self.total_amount,
            "seller_amount": self.seller_amount,
            "commission_amount": self.commission_amount,
            "shipping_paid_by": self.shipping_paid_by.value,
            "shipping_cost": self.shipping_cost,
            "actual_shipping_cost": self.actual_shipping_cost,
            "items": [item.to_dict() for item in self.items],
            "shipping_address": self.shipping_address.to_dict(),
            "tracking_info": self.tracking_info.to_dict() if self.tracking_info else None,
            "status_history": [entry.to_dict() for entry in self.status_history],
            "return_status": self.return_status.value,
            "refund_id": self.refund_id,
            "refund_error": self.refund_error,
            "cancelled_at": format_datetime(self.cancelled_at),
            "delivered_at": format_datetime(self.delivered_at),
            "version": self.version,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        tracking = data.get("tracking_info")
        order = cls(
            id=data["id"],
            order_number=data["order_number"],
            seller_id=data["seller_id"],
            customer_id=data["customer_id"],
            customer_name=data.get("customer_name"),
            customer_email=data.get("customer_email"),
            customer_phone=data.get("customer_phone"),
            order_type=OrderType(data.get("order_type", OrderType.B2C.value)),
            status=OrderStatus(data["status"]),
            payment_status=PaymentStatus(data["payment_status"]),
            gateway_order_id=data.get("gateway_order_id"),
            total_amount=data.get("total_amount", 0.0),
            seller_amount=data.get("seller_amount", 0.0),
            commission_amount=data.get("commission_amount", 0.0),
            shipping_paid_by=ShippingPayer(data.get("shipping_paid_by", "seller")),
            shipping_cost=data.get("shipping_cost", 0.0),
            actual_shipping_cost=data.get("actual_shipping_cost", 0.0),
            items=[OrderItem.from_dict(item) for item in data.get("items", [])],
            shipping_address=Address.from_dict(data.get("shipping_address") or {}),
            tracking_info=TrackingInfo.from_dict(tracking) if tracking else None,
            status_history=[
                StatusHistoryEntry.from_dict(entry) for entry in data.get("status_history", [])
            ],
            return_status=OrderReturnStatus(data.get("return_status", "none")),
            refund_id=data.get("refund_id"),
            refund_error=data.get("refund_error"),
            cancelled_at=parse_datetime(data.get("cancelled_at")),
            delivered_at=parse_datetime(data.get("delivered_at")),
        )
        _restore_base(order, data)
        return order


# ============================================================================
# Shipment Aggregate Root
# ============================================================================


@dataclass(kw_only=True, eq=False)
class Shipment(AggregateRoot[str]):
    """Shipment aggregate root.

    One shipment per order, created on the first successful provider call.
    The provider shipment id may be missing right after creation; it is
    recovered later by re-querying the provider's order details.

    Attributes:
        shiprocket_order_id: Provider order reference.
        shiprocket_shipment_id: Provider package reference, required to book a courier.
        awb_code: Courier waybill number.
        weight: Parcel weight in grams.
        shipping_charge: Courier rate quoted at assignment.
        pickup_location: Provider pickup location name.
    """

    id: str
    order_id: str
    seller_id: str
    shiprocket_order_id: str | None = None
    shiprocket_shipment_id: str | None = None
    awb_code: str | None = None
    courier_id: int | None = None
    courier_name: str | None = None
    weight: int = 0
    dimensions: Dimensions | None = None
    shipping_charge: float | None = None
    pickup_location: str | None = None
    status: ShipmentStatus = ShipmentStatus.CREATED
    status_history: list[ShipmentHistoryEntry] = field(default_factory=list)
    label_url: str | None = None
    pickup_scheduled_at: datetime | None = None

    @classmethod
    def create(
        cls,
        order_id: str,
        seller_id: str,
        shiprocket_order_id: str,
        shiprocket_shipment_id: str | None,
        parcel: ParcelSpec,
        pickup_location: str,
        actor: Actor,
        shipment_id: str | None = None,
    ) -> "Shipment":
        shipment = cls(
            id=shipment_id or new_id(),
            order_id=order_id,
            seller_id=seller_id,
            shiprocket_order_id=shiprocket_order_id,
            shiprocket_shipment_id=shiprocket_shipment_id,
            weight=parcel.weight_grams,
            dimensions=parcel.dimensions,
            pickup_location=pickup_location,
        )
        shipment.status_history.append(
            ShipmentHistoryEntry.record(
                ShipmentStatus.CREATED.value, "Shipment created with shipping provider", actor
            )
        )
        shipment._record_event(
            ShipmentCreated(
                aggregate_id=shipment.id,
                aggregate_type="Shipment",
                shipment_id=shipment.id,
                order_id=order_id,
                seller_id=seller_id,
                shiprocket_order_id=shiprocket_order_id,
                has_shipment_id=bool(shiprocket_shipment_id),
            )
        )
        return shipment

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def has_remote_order(self) -> bool:
        return bool(self.shiprocket_order_id)

    @property
    def has_shipment_id(self) -> bool:
        return bool(self.shiprocket_shipment_id)

    @property
    def has_courier(self) -> bool:
        return bool(self.awb_code)

    @property
    def is_cancelled(self) -> bool:
        return self.status == ShipmentStatus.CANCELLED

    # -------------------------------------------------------------------------
    # State Transitions
    # -------------------------------------------------------------------------

    def _change_status(self, target: ShipmentStatus, description: str, actor: Actor) -> None:
        validate_shipment_transition(self.id, self.status, target)
        previous = self.status
        self.status = target
        self.status_history.append(ShipmentHistoryEntry.record(target.value, description, actor))
        self._touch()
        self._record_event(
            ShipmentStatusChanged(
                aggregate_id=self.id,
                aggregate_type="Shipment",
                shipment_id=self.id,
                order_id=self.order_id,
                seller_id=self.seller_id,
                from_status=previous.value,
                to_status=target.value,
                description=description,
            )
        )

    def record_shipment_id(self, shiprocket_shipment_id: str) -> None:
        """Store a provider shipment id recovered after creation."""
        self.shiprocket_shipment_id = shiprocket_shipment_id
        self._touch()

    def assign_courier(
        self,
        courier_id: int,
        courier_name: str,
        awb_code: str,
        actor: Actor,
        shipping_charge: float | None = None,
    ) -> None:
        """Record a courier booking. Reassignment is allowed until pickup."""
        self.courier_id = courier_id
        self.courier_name = courier_name
        self.awb_code = awb_code
        if shipping_charge is not None:
            self.shipping_charge = shipping_charge
        self._change_status(
            ShipmentStatus.COURIER_ASSIGNED,
            f"Courier assigned: {courier_name} (AWB: {awb_code})",
            actor,
        )
        self._record_event(
            CourierAssigned(
                aggregate_id=self.id,
                aggregate_type="Shipment",
                shipment_id=self.id,
                order_id=self.order_id,
                seller_id=self.seller_id,
                courier_id=courier_id,
                courier_name=courier_name,
                awb_code=awb_code,
            )
        )

    def schedule_pickup(self, actor: Actor, description: str = "Pickup scheduled") -> None:
        self._change_status(ShipmentStatus.PICKUP_SCHEDULED, description, actor)
        if self.pickup_scheduled_at is None:
            self.pickup_scheduled_at = utcnow()

    def cancel(self, actor: Actor, description: str = "Shipment cancelled with order") -> None:
        self._change_status(ShipmentStatus.CANCELLED, description, actor)

    def sync_status(self, target: ShipmentStatus, description: str, actor: Actor) -> bool:
        """Apply a status reported by the provider when it moves forward.

        Returns:
            True if the status changed.
        """
        if target == self.status or not self.status.can_transition_to(target):
            return False
        self._change_status(target, description, actor)
        return True

    def attach_label(self, label_url: str) -> None:
        self.label_url = label_url
        self._touch()

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "seller_id": self.seller_id,
            "shiprocket_order_id": self.shiprocket_order_id,
            "shiprocket_shipment_id": self.shiprocket_shipment_id,
            "awb_code": self.awb_code,
            "courier_id": self.courier_id,
            "courier_name": self.courier_name,
            "weight": self.weight,
            "dimensions": self.dimensions.to_dict() if self.dimensions else None,
            "shipping_charge": self.shipping_charge,
            "pickup_location": self.pickup_location,
            "status": self.status.value,
            "status_history": [entry.to_dict() for entry in self.status_history],
            "label_url": self.label_url,
            "pickup_scheduled_at": format_datetime(self.pickup_scheduled_at),
            "version": self.version,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        dims = data.get("dimensions")
        shipment = cls(
            id=data["id"],
            order_id=data["order_id"],
            seller_id=data["seller_id"],
            shiprocket_order_id=data.get("shiprocket_order_id"),
            shiprocket_shipment_id=data.get("shiprocket_shipment_id"),
            awb_code=data.get("awb_code"),
            courier_id=data.get("courier_id"),
            courier_name=data.get("courier_name"),
            weight=data.get("weight", 0),
            dimensions=Dimensions.from_dict(dims) if dims else None,
            shipping_charge=data.get("shipping_charge"),
            pickup_location=data.get("pickup_location"),
            status=ShipmentStatus(data["status"]),
            status_history=[
                ShipmentHistoryEntry.from_dict(entry) for entry in data.get("status_history", [])
            ],
            label_url=data.get("label_url"),
            pickup_scheduled_at=parse_datetime(data.get("pickup_scheduled_at")),
        )
        _restore_base(shipment, data)
        return shipment


# ============================================================================
# Return Request Aggregate Root
# ============================================================================


@dataclass(kw_only=True, eq=False)
class ReturnRequest(AggregateRoot[str]):
    """Return or exchange request raised by a customer after delivery.

    Attributes:
        type: Return (money back) or exchange (replacement).
        reason: Customer's stated reason.
        refund_amount: Amount to refund once the item is received.
        rejection_reason: Seller's reason when rejected.
        resolved_at: Set when the request reaches a terminal state.
    """

    id: str
    order_id: str
    customer_id: str
    seller_id: str
    type: ReturnType = ReturnType.RETURN
    status: ReturnStatus = ReturnStatus.REQUESTED
    reason: str | None = None
    refund_amount: float = 0.0
    refund_id: str | None = None
    rejection_reason: str | None = None
    status_history: list[StatusHistoryEntry] = field(default_factory=list)
    resolved_at: datetime | None = None

    @classmethod
    def create(
        cls,
        order_id: str,
        customer_id: str,
        seller_id: str,
        type: ReturnType = ReturnType.RETURN,
        reason: str | None = None,
        refund_amount: float = 0.0,
        actor: Actor | None = None,
        return_id: str | None = None,
    ) -> "ReturnRequest":
        request = cls(
            id=return_id or new_id(),
            order_id=order_id,
            customer_id=customer_id,
            seller_id=seller_id,
            type=type,
            reason=reason,
            refund_amount=refund_amount,
        )
        request.status_history.append(
            StatusHistoryEntry.record(
                ReturnStatus.REQUESTED.value,
                actor or Actor(id=customer_id, role=ActorRole.CUSTOMER),
                reason,
            )
        )
        return request

    @property
    def is_active(self) -> bool:
        return self.status.is_active()

    @property
    def is_exchange(self) -> bool:
        return self.type == ReturnType.EXCHANGE

    def _transition(self, target: ReturnStatus, actor: Actor, note: str | None = None) -> None:
        validate_return_transition(self.id, self.status, target)
        previous = self.status
        self.status = target
        self.status_history.append(StatusHistoryEntry.record(target.value, actor, note))
        if target.is_terminal():
            self.resolved_at = utcnow()
        self._touch()
        self._record_event(
            ReturnStatusChanged(
                aggregate_id=self.id,
                aggregate_type="ReturnRequest",
                return_id=self.id,
                order_id=self.order_id,
                seller_id=self.seller_id,
                customer_id=self.customer_id,
                return_type=self.type.value,
                from_status=previous.value,
                to_status=target.value,
                actor_id=actor.id,
                actor_role=actor.role.value,
                note=note,
            )
        )

    def approve(self, actor: Actor, note: str | None = None) -> None:
        self._transition(ReturnStatus.APPROVED, actor, note)

    def reject(self, reason: str, actor: Actor) -> None:
        """Reject the request.

        Raises:
            ValidationError: If the reason is blank.
            InvalidStateTransitionError: If not in requested state.
        """
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required", "reason")
        validate_return_transition(self.id, self.status, ReturnStatus.REJECTED)
        self.rejection_reason = reason.strip()
        self._transition(ReturnStatus.REJECTED, actor, self.rejection_reason)

    def mark_received(self, actor: Actor, note: str | None = None) -> None:
        self._transition(ReturnStatus.RECEIVED, actor, note)

    def mark_refunded(self, refund_id: str, actor: Actor) -> None:
        self.refund_id = refund_id
        self._transition(ReturnStatus.REFUNDED, actor, f"Refund initiated: {refund_id}")

    def mark_exchanged(self, actor: Actor, note: str | None = None) -> None:
        self._transition(ReturnStatus.EXCHANGED, actor, note or "Replacement dispatched")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "customer_id": self.customer_id,
            "seller_id": self.seller_id,
            "type": self.type.value,
            "status": self.status.value,
            "reason": self.reason,
            "refund_amount": self.refund_amount,
            "refund_id": self.refund_id,
            "rejection_reason": self.rejection_reason,
            "status_history": [entry.to_dict() for entry in self.status_history],
            "resolved_at": format_datetime(self.resolved_at),
            "version": self.version,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        request = cls(
            id=data["id"],
            order_id=data["order_id"],
            customer_id=data["customer_id"],
            seller_id=data["seller_id"],
            type=ReturnType(data.get("type", "return")),
            status=ReturnStatus(data["status"]),
            reason=data.get("reason"),
            refund_amount=data.get("refund_amount", 0.0),
            refund_id=data.get("refund_id"),
            rejection_reason=data.get("rejection_reason"),
            status_history=[
                StatusHistoryEntry.from_dict(entry) for entry in data.get("status_history", [])
            ],
            resolved_at=parse_datetime(data.get("resolved_at")),
        )
        _restore_base(request, data)
        return request


# ============================================================================
# Inventory and Seller Records
# ============================================================================


@dataclass
class ProductStock:
    """Stock counters of a product listing."""

    product_id: str
    seller_id: str
    title: str = ""
    stock: int = 0
    order_count: int = 0

    def restore(self, quantity: int, decrement_order_count: bool) -> None:
        """Put units of a cancelled order back on the shelf."""
        self.stock += quantity
        if decrement_order_count:
            self.order_count = max(0, self.order_count - quantity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "seller_id": self.seller_id,
            "title": self.title,
            "stock": self.stock,
            "order_count": self.order_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            product_id=data["product_id"],
            seller_id=data["seller_id"],
            title=data.get("title", ""),
            stock=data.get("stock", 0),
            order_count=data.get("order_count", 0),
        )


@dataclass
class SellerProfile:
    """Seller details the shipping workflows look up."""

    seller_id: str
    email: str | None = None
    business_name: str | None = None
    pickup_location_name: str | None = None
    pickup_pincode: str | None = None
    business_pincode: str | None = None

    @property
    def origin_pincode(self) -> str | None:
        return self.pickup_pincode or self.business_pincode

    def to_dict(self) -> dict[str, Any]:
        return {
            "seller_id": self.seller_id,
            "email": self.email,
            "business_name": self.business_name,
            "pickup_location_name": self.pickup_location_name,
            "pickup_pincode": self.pickup_pincode,
            "business_pincode": self.business_pincode,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            seller_id=data["seller_id"],
            email=data.get("email"),
            business_name=data.get("business_name"),
            pickup_location_name=data.get("pickup_location_name"),
            pickup_pincode=data.get("pickup_pincode"),
            business_pincode=data.get("business_pincode"),
        )
