"""Domain layer - Entities, value objects, state machines, domain events.

This module exports the core domain building blocks:

- **Entities**: Objects with identity (Order, Shipment, ReturnRequest)
- **Value Objects**: Immutable objects compared by value (Address, OrderItem, ParcelSpec)
- **State Machines**: Deterministic state transitions (OrderStatus, PaymentStatus,
  ShipmentStatus, ReturnStatus)
- **Domain Events**: Represent significant domain occurrences
- **Exceptions**: Domain-specific errors and invariant violations

Example usage:
    from sellerportal.domain import Actor, Order, OrderStatus

    order.transition_to(OrderStatus.CONFIRMED, Actor.seller("seller-1"))
    order.status_history[-1].status  # "confirmed"
"""

# Base classes
from sellerportal.domain.base import AggregateRoot, DomainEvent, Entity, ValueObject

# Entities
from sellerportal.domain.entities import (
    Order,
    ProductStock,
    ReturnRequest,
    SellerProfile,
    Shipment,
    new_id,
)

# Domain Events
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

# Exceptions
from sellerportal.domain.exceptions import (
    ActiveReturnExistsError,
    AlreadyShippedError,
    CancellationBlockedError,
    ConcurrentModificationError,
    DomainError,
    InvalidStateTransitionError,
    MissingShipmentIdError,
    NoPickupLocationError,
    NotFoundError,
    OrderNotPaidError,
    ValidationError,
)

# State Machines
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

# Value Objects
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
)

__all__ = [
    # Base
    "AggregateRoot",
    "DomainEvent",
    "Entity",
    "ValueObject",
    # Entities
    "Order",
    "ProductStock",
    "ReturnRequest",
    "SellerProfile",
    "Shipment",
    "new_id",
    # Events
    "CourierAssigned",
    "OrderCancelled",
    "OrderDelivered",
    "OrderShipped",
    "OrderStatusChanged",
    "RefundFailed",
    "RefundIssued",
    "ReturnStatusChanged",
    "ShipmentCreated",
    "ShipmentStatusChanged",
    # Exceptions
    "ActiveReturnExistsError",
    "AlreadyShippedError",
    "CancellationBlockedError",
    "ConcurrentModificationError",
    "DomainError",
    "InvalidStateTransitionError",
    "MissingShipmentIdError",
    "NoPickupLocationError",
    "NotFoundError",
    "OrderNotPaidError",
    "ValidationError",
    # State Machines
    "OrderStatus",
    "PaymentStatus",
    "ReturnStatus",
    "ShipmentStatus",
    "validate_order_transition",
    "validate_payment_transition",
    "validate_return_transition",
    "validate_shipment_transition",
    # Value Objects
    "Actor",
    "ActorRole",
    "Address",
    "Dimensions",
    "OrderItem",
    "OrderReturnStatus",
    "OrderType",
    "ParcelSpec",
    "ReturnType",
    "ShipmentHistoryEntry",
    "ShippingPayer",
    "StatusHistoryEntry",
    "TrackingInfo",
]
