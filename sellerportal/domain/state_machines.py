"""State machines for domain entities.

Deterministic state machines that define valid state transitions for
orders, payments, shipments and return requests. Transition tables are
defined outside the enums to avoid Enum member restrictions.
"""

from enum import Enum

from sellerportal.domain.exceptions import InvalidStateTransitionError


# ============================================================================
# Order State Machine
# ============================================================================


class OrderStatus(str, Enum):
    """Order lifecycle states.

    State diagram:
        PENDING ───────────────────────────────────────► CANCELLED
          │                                                ▲
          │ confirm                                        │
          ▼                                                │
        CONFIRMED ──────────────┬────────────────────────►─┤
          │                     │ ship (manual)            │
          │ create shipment     │                          │
          ▼                     │                          │
        PROCESSING ─────────────┼────────────────────────►─┘
          │                     │
          │ pickup scheduled    │
          ▼                     ▼
        SHIPPED ◄───────────────┘
          │
          │ deliver
          ▼
        DELIVERED

    Returns and exchanges after delivery run on ReturnStatus instead.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Check if transition to target state is valid."""
        return target in _ORDER_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["OrderStatus"]:
        """Get list of valid target states."""
        return list(_ORDER_TRANSITIONS.get(self, set()))

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state."""
        return len(_ORDER_TRANSITIONS.get(self, set())) == 0

    def is_shippable(self) -> bool:
        """Check if a shipment may be booked for an order in this state."""
        return self in {OrderStatus.CONFIRMED, OrderStatus.PROCESSING}


_ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),  # Terminal state
    OrderStatus.CANCELLED: set(),  # Terminal state
}


# ============================================================================
# Payment State Machine
# ============================================================================


class PaymentStatus(str, Enum):
    """Payment sub-state of an order.

    State diagram:
        PENDING ──► PAID ──────────────────────► REFUNDED
                     │                              ▲
                     │ refund initiated / failed    │ refund confirmed
                     ▼                              │
                   REFUND_PENDING ──────────────────┘

    Payment status never regresses.
    """

    PENDING = "pending"
    PAID = "paid"
    REFUND_PENDING = "refund_pending"
    REFUNDED = "refunded"

    def can_transition_to(self, target: "PaymentStatus") -> bool:
        """Check if transition to target state is valid."""
        return target in _PAYMENT_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["PaymentStatus"]:
        """Get list of valid target states."""
        return list(_PAYMENT_TRANSITIONS.get(self, set()))


_PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {PaymentStatus.PAID},
    PaymentStatus.PAID: {PaymentStatus.REFUND_PENDING, PaymentStatus.REFUNDED},
    PaymentStatus.REFUND_PENDING: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}


# ============================================================================
# Shipment State Machine
# ============================================================================


class ShipmentStatus(str, Enum):
    """Shipment lifecycle states.

    State diagram:
        CREATED ──────────────────────────────────────► CANCELLED
          │                                                ▲
          │ assign courier (repeatable)                    │
          ▼                                                │
        COURIER_ASSIGNED ─────────────────────────────►────┤
          │                                                │
          │ schedule pickup                                │
          ▼                                                │
        PICKUP_SCHEDULED ─────────────────────────────►────┘
          │
          │ courier collects ── from here on the courier has custody
          ▼
        PICKED_UP ──► IN_TRANSIT ──► OUT_FOR_DELIVERY ──► DELIVERED
    """

    CREATED = "created"
    COURIER_ASSIGNED = "courier_assigned"
    PICKUP_SCHEDULED = "pickup_scheduled"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "ShipmentStatus") -> bool:
        """Check if transition to target state is valid."""
        return target in _SHIPMENT_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["ShipmentStatus"]:
        """Get list of valid target states."""
        return list(_SHIPMENT_TRANSITIONS.get(self, set()))

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state."""
        return len(_SHIPMENT_TRANSITIONS.get(self, set())) == 0

    def is_in_courier_custody(self) -> bool:
        """Check if the courier has physically taken the package."""
        return self in _COURIER_CUSTODY


_COURIER_CUSTODY = frozenset(
    {
        ShipmentStatus.PICKED_UP,
        ShipmentStatus.IN_TRANSIT,
        ShipmentStatus.OUT_FOR_DELIVERY,
        ShipmentStatus.DELIVERED,
    }
)

_SHIPMENT_TRANSITIONS: dict[ShipmentStatus, set[ShipmentStatus]] = {
    ShipmentStatus.CREATED: {ShipmentStatus.COURIER_ASSIGNED, ShipmentStatus.CANCELLED},
    ShipmentStatus.COURIER_ASSIGNED: {
        ShipmentStatus.COURIER_ASSIGNED,  # reassignment
        ShipmentStatus.PICKUP_SCHEDULED,
        ShipmentStatus.CANCELLED,
    },
    ShipmentStatus.PICKUP_SCHEDULED: {
        ShipmentStatus.PICKED_UP,
        ShipmentStatus.IN_TRANSIT,
        ShipmentStatus.CANCELLED,
    },
    ShipmentStatus.PICKED_UP: {
        ShipmentStatus.IN_TRANSIT,
        ShipmentStatus.OUT_FOR_DELIVERY,
        ShipmentStatus.DELIVERED,
    },
    ShipmentStatus.IN_TRANSIT: {ShipmentStatus.OUT_FOR_DELIVERY, ShipmentStatus.DELIVERED},
    ShipmentStatus.OUT_FOR_DELIVERY: {ShipmentStatus.DELIVERED},
    ShipmentStatus.DELIVERED: set(),  # Terminal state
    ShipmentStatus.CANCELLED: set(),  # Terminal state
}


# ============================================================================
# Return Request State Machine
# ============================================================================


class ReturnStatus(str, Enum):
    """Return/exchange request lifecycle states.

    State diagram:
        REQUESTED ──────────────────────► REJECTED
          │
          │ approve
          ▼
        APPROVED ──► SHIPPED_BACK
          │              │
          │ received     │ received
          ▼              ▼
        RECEIVED ◄───────┘
          │         │
          │ refund  │ exchange
          ▼         ▼
        REFUNDED  EXCHANGED
    """

    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    SHIPPED_BACK = "shipped_back"
    RECEIVED = "received"
    REFUNDED = "refunded"
    EXCHANGED = "exchanged"

    def can_transition_to(self, target: "ReturnStatus") -> bool:
        """Check if transition to target state is valid."""
        return target in _RETURN_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["ReturnStatus"]:
        """Get list of valid target states."""
        return list(_RETURN_TRANSITIONS.get(self, set()))

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state."""
        return len(_RETURN_TRANSITIONS.get(self, set())) == 0

    def is_active(self) -> bool:
        """Check if the request is still open."""
        return not self.is_terminal()


_RETURN_TRANSITIONS: dict[ReturnStatus, set[ReturnStatus]] = {
    ReturnStatus.REQUESTED: {ReturnStatus.APPROVED, ReturnStatus.REJECTED},
    ReturnStatus.APPROVED: {ReturnStatus.RECEIVED, ReturnStatus.SHIPPED_BACK},
    ReturnStatus.SHIPPED_BACK: {ReturnStatus.RECEIVED},
    ReturnStatus.RECEIVED: {ReturnStatus.REFUNDED, ReturnStatus.EXCHANGED},
    ReturnStatus.REJECTED: set(),  # Terminal state
    ReturnStatus.REFUNDED: set(),  # Terminal state
    ReturnStatus.EXCHANGED: set(),  # Terminal state
}


# ============================================================================
# State Machine Helpers
# ============================================================================


def validate_order_transition(
    order_id: str,
    current_status: OrderStatus,
    target_status: OrderStatus,
) -> None:
    """Validate and raise if order state transition is invalid.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="Order",
            entity_id=order_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )


def validate_payment_transition(
    order_id: str,
    current_status: PaymentStatus,
    target_status: PaymentStatus,
) -> None:
    """Validate and raise if payment state transition is invalid.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="Payment",
            entity_id=order_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )


def validate_shipment_transition(
    shipment_id: str,
    current_status: ShipmentStatus,
    target_status: ShipmentStatus,
) -> None:
    """Validate and raise if shipment state transition is invalid.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="Shipment",
            entity_id=shipment_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )


def validate_return_transition(
    return_id: str,
    current_status: ReturnStatus,
    target_status: ReturnStatus,
) -> None:
    """Validate and raise if return request state transition is invalid.

    Raises:
        InvalidStateTransitionError: If transition is not valid.
    """
    if not current_status.can_transition_to(target_status):
        raise InvalidStateTransitionError(
            entity_type="ReturnRequest",
            entity_id=return_id,
            current_state=current_status.value,
            target_state=target_status.value,
            allowed_transitions=[s.value for s in current_status.allowed_transitions()],
        )
