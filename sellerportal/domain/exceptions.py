"""Domain exceptions.

All domain-level errors that represent business rule violations.
Each error carries a stable machine-readable ``error_code`` which the
application layer passes through to API clients unchanged.
"""

from typing import Any


class DomainError(Exception):
    """Base class for all domain exceptions."""

    error_code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(DomainError):
    """Raised when input has a bad shape or value."""

    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


class NotFoundError(DomainError):
    """Raised when a record is absent or owned by another seller.

    Both cases are reported identically so that one seller cannot discover
    whether another seller's records exist.
    """

    error_code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str) -> None:
        super().__init__(
            f"{entity_type} not found: {entity_id}",
            details={"entity_type": entity_type, "entity_id": entity_id},
        )
        self.error_code = f"{entity_type.upper().replace(' ', '_')}_NOT_FOUND"


class ConcurrentModificationError(DomainError):
    """Raised when a record changed between read and conditional write."""

    error_code = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str, expected_version: int) -> None:
        super().__init__(
            f"{entity_type} {entity_id} was modified concurrently, retry the request",
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "expected_version": expected_version,
            },
        )


# ============================================================================
# State Machine Errors
# ============================================================================


class InvalidStateTransitionError(DomainError):
    """Raised when an invalid state transition is attempted."""

    error_code = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize invalid state transition error.

        Args:
            entity_type: Type of entity (e.g., "Order", "Shipment").
            entity_id: ID of the entity.
            current_state: Current state of the entity.
            target_state: Attempted target state.
            allowed_transitions: List of allowed target states from current state.
        """
        allowed = sorted(allowed_transitions or [])
        message = (
            f"Cannot change {entity_type} from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )
        self.current_state = current_state
        self.target_state = target_state


# ============================================================================
# Order Errors
# ============================================================================


class CancellationBlockedError(DomainError):
    """Raised when cancelling an order whose package is with the courier."""

    error_code = "CANCELLATION_BLOCKED"

    def __init__(self, order_id: str, shipment_status: str) -> None:
        super().__init__(
            f"Order {order_id} cannot be cancelled: shipment is already "
            f"'{shipment_status}' and in the courier's custody",
            details={"order_id": order_id, "shipment_status": shipment_status},
        )


class OrderNotPaidError(DomainError):
    """Raised when shipping an order whose payment has not cleared."""

    error_code = "ORDER_NOT_PAID"

    def __init__(self, order_id: str, payment_status: str) -> None:
        super().__init__(
            f"Order {order_id} is not paid (payment status '{payment_status}')",
            details={"order_id": order_id, "payment_status": payment_status},
        )


# ============================================================================
# Shipment Errors
# ============================================================================


class AlreadyShippedError(DomainError):
    """Raised when a remote shipment already exists for the order."""

    error_code = "ALREADY_SHIPPED"

    def __init__(self, order_id: str, shipment_id: str | None = None) -> None:
        super().__init__(
            f"Shipment already created for order {order_id}",
            details={"order_id": order_id, "shipment_id": shipment_id},
        )
        self.shipment_id = shipment_id


class MissingShipmentIdError(DomainError):
    """Raised when the provider's shipment id is still unknown."""

    error_code = "MISSING_SHIPMENT_ID"

    def __init__(self, shipment_id: str) -> None:
        super().__init__(
            f"Shipment {shipment_id} has no provider shipment id yet; "
            "retry shortly or recreate the shipment",
            details={"shipment_id": shipment_id},
        )


class NoPickupLocationError(DomainError):
    """Raised when no usable pickup location can be resolved."""

    error_code = "NO_PICKUP_LOCATION"

    def __init__(self, seller_id: str, unverified: bool = False) -> None:
        if unverified:
            message = (
                "Your pickup location's phone number is not verified "
                "with the shipping provider"
            )
        else:
            message = "No pickup location registered. Add a pickup address in Seller Settings first"
        super().__init__(message, details={"seller_id": seller_id})
        if unverified:
            self.error_code = "PICKUP_UNVERIFIED"


# ============================================================================
# Return Errors
# ============================================================================


class ActiveReturnExistsError(DomainError):
    """Raised when opening a second active return for an order."""

    error_code = "RETURN_ALREADY_ACTIVE"

    def __init__(self, order_id: str, return_id: str) -> None:
        super().__init__(
            f"Order {order_id} already has an active return request {return_id}",
            details={"order_id": order_id, "return_id": return_id},
        )
