"""Order application service.

Orchestrates the seller-side order lifecycle:
- Status transitions along the order graph with history and actor
- Cancellation: shipment cancel, stock restore and refund
- Manual shipping with courier tracking details
"""

from dataclasses import dataclass
from datetime import datetime

import structlog

from sellerportal.application.events import EventDispatcher, get_dispatcher
from sellerportal.application.refunds import RefundOutcome, issue_refund
from sellerportal.application.results import ServiceResult
from sellerportal.application.shipment_service import ShipmentService
from sellerportal.domain.base import DomainEvent, utcnow
from sellerportal.domain.entities import Order
from sellerportal.domain.exceptions import (
    CancellationBlockedError,
    ConcurrentModificationError,
    DomainError,
    ValidationError,
)
from sellerportal.domain.state_machines import (
    OrderStatus,
    PaymentStatus,
    validate_order_transition,
)
from sellerportal.domain.value_objects import Actor, TrackingInfo
from sellerportal.infrastructure.cashfree_client import CashfreeClient, get_cashfree_client
from sellerportal.infrastructure.store import MarketplaceStore, get_store

logger = structlog.get_logger()

# Attempts at recording a refund outcome when the order keeps changing underneath
REFUND_SAVE_ATTEMPTS = 3


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass(kw_only=True)
class OrderResult(ServiceResult):
    """Result of an order operation."""

    order: Order | None = None
    message: str | None = None


# ============================================================================
# Order Service
# ============================================================================


class OrderService:
    """Application service for the seller side of orders.

    Every load is scoped to the acting seller. Status changes are written
    conditionally on the version read; refunds and remote shipment
    cancellation run after the cancellation is committed and never undo it.
    """

    def __init__(
        self,
        store: MarketplaceStore | None = None,
        shipments: ShipmentService | None = None,
        payments: CashfreeClient | None = None,
        dispatcher: EventDispatcher | None = None,
        request_id: str | None = None,
    ) -> None:
        """Initialize service.

        Args:
            store: Marketplace store.
            shipments: Shipment service used for remote cancellation.
            payments: Payment gateway client.
            dispatcher: Domain event dispatcher.
            request_id: Request ID for correlation.
        """
        self.store = store or get_store()
        self.dispatcher = dispatcher or get_dispatcher()
        self.shipments = shipments or ShipmentService(
            store=self.store, dispatcher=self.dispatcher, request_id=request_id
        )
        self.payments = payments or get_cashfree_client()
        self.request_id = request_id

    async def get_order(self, seller_id: str, order_id: str) -> OrderResult:
        """Get an order owned by the seller.

        Args:
            seller_id: Acting seller.
            order_id: Order identifier.

        Returns:
            OrderResult with the order if found.
        """
        try:
            order = await self.store.get_order(seller_id, order_id)
        except DomainError as e:
            return OrderResult.failure(e)
        return OrderResult(order=order)

    async def update_status(
        self,
        seller_id: str,
        order_id: str,
        status: str,
        actor: Actor | None = None,
        note: str | None = None,
    ) -> OrderResult:
        """Move an order to a new status.

        Args:
            seller_id: Acting seller.
            order_id: Order identifier.
            status: Requested status value.
            actor: Who performs the change, defaults to the seller.
            note: Optional note stored in the status history.

        Returns:
            OrderResult with the updated order.
        """
        actor = actor or Actor.seller(seller_id)
        try:
            try:
                target = OrderStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown order status '{status}'", "status") from None

            order = await self.store.get_order(seller_id, order_id)
            if target == OrderStatus.CANCELLED:
                return await self._cancel(order, actor, note)

            previous = order.status
            order.transition_to(target, actor, note)
            await self.store.save_order(order)

            logger.info(
                "Order status updated",
                order_id=order.id,
                from_status=previous.value,
                to_status=target.value,
                actor_id=actor.id,
                request_id=self.request_id,
            )
            await self.dispatcher.publish(order.collect_events())
            return OrderResult(order=order, message=f"Order status updated to {target.value}")

        except DomainError as e:
            logger.warning(
                "Order status update rejected",
                order_id=order_id,
                status=status,
                error_code=e.error_code,
                error=e.message,
                request_id=self.request_id,
            )
            return OrderResult.failure(e)

    async def _cancel(self, order: Order, actor: Actor, note: str | None) -> OrderResult:
        """Cancel an order.

        The status change, local shipment cancel, stock restore and
        refund-in-flight marker commit together. Remote shipment
        cancellation and the refund follow and are best-effort.

        Raises:
            InvalidStateTransitionError: If the order cannot be cancelled.
            CancellationBlockedError: If the courier already has the package.
            ConcurrentModificationError: If the order changed meanwhile.
        """
        validate_order_transition(order.id, order.status, OrderStatus.CANCELLED)

        shipment = await self.store.get_shipment_for_order(order.seller_id, order.id)
        if shipment and shipment.status.is_in_courier_custody():
            raise CancellationBlockedError(order.id, shipment.status.value)
        active_shipment = shipment if shipment and not shipment.is_cancelled else None

        was_paid = order.is_paid
        refund_due = order.refund_due

        async with self.store.transaction():
            order.transition_to(OrderStatus.CANCELLED, actor, note)
            if active_shipment:
                active_shipment.cancel(actor)
                await self.store.save_shipment(active_shipment)
            restored = await self.store.restore_stock(
                order.id, order.items, decrement_order_count=was_paid
            )
            if refund_due:
                order.start_refund()
            await self.store.save_order(order)

        logger.info(
            "Order cancelled",
            order_id=order.id,
            actor_id=actor.id,
            stock_restored=restored,
            refund_due=refund_due,
            request_id=self.request_id,
        )
        events: list[DomainEvent] = order.collect_events()
        if active_shipment:
            events.extend(active_shipment.collect_events())
            await self.shipments.cancel_remote_order(active_shipment)

        message = "Order cancelled"
        if refund_due:
            outcome = await issue_refund(
                self.payments,
                order.gateway_order_id,
                order.total_amount,
                refund_id=f"RF-{order.order_number}",
                note=f"Refund for cancelled order {order.order_number}",
                request_id=self.request_id,
            )
            order, refund_events = await self._record_refund_outcome(order, outcome)
            events.extend(refund_events)
            message = (
                "Order cancelled and refund initiated"
                if outcome.success
                else "Order cancelled; refund failed and needs manual follow-up"
            )

        await self.dispatcher.publish(events)
        return OrderResult(order=order, message=message)

    async def _record_refund_outcome(
        self,
        order: Order,
        outcome: RefundOutcome,
    ) -> tuple[Order, list[DomainEvent]]:
        """Persist a refund result, reloading the order on conflicting writes."""
        for attempt in range(1, REFUND_SAVE_ATTEMPTS + 1):
            if order.payment_status != PaymentStatus.REFUND_PENDING:
                logger.info(
                    "Refund already settled",
                    order_id=order.id,
                    payment_status=order.payment_status.value,
                    request_id=self.request_id,
                )
                return order, []
            if outcome.success:
                order.mark_refunded(outcome.refund_id, outcome.amount)
            else:
                order.record_refund_failure(outcome.error or "Refund failed", outcome.amount)
            try:
                await self.store.save_order(order)
            except ConcurrentModificationError:
                logger.warning(
                    "Refund outcome save conflicted, reloading order",
                    order_id=order.id,
                    attempt=attempt,
                    request_id=self.request_id,
                )
                order = await self.store.get_order(order.seller_id, order.id)
                continue
            return order, order.collect_events()

        logger.error(
            "Refund outcome could not be recorded",
            order_id=order.id,
            refund_succeeded=outcome.success,
            refund_id=outcome.refund_id,
            request_id=self.request_id,
        )
        return order, []

    async def ship_order(
        self,
        seller_id: str,
        order_id: str,
        courier_name: str,
        tracking_number: str,
        estimated_delivery: datetime | None = None,
        actor: Actor | None = None,
    ) -> OrderResult:
        """Mark an order shipped with tracking details entered by the seller.

        Args:
            seller_id: Acting seller.
            order_id: Order identifier.
            courier_name: Courier carrying the package.
            tracking_number: Courier tracking number.
            estimated_delivery: Expected delivery date.
            actor: Who performs the change, defaults to the seller.

        Returns:
            OrderResult with the shipped order.
        """
        actor = actor or Actor.seller(seller_id)
        try:
            if not courier_name or not courier_name.strip():
                raise ValidationError("Courier name is required", "courier_name")
            if not tracking_number or not tracking_number.strip():
                raise ValidationError("Tracking number is required", "tracking_number")

            order = await self.store.get_order(seller_id, order_id)
            tracking = TrackingInfo(
                courier_name=courier_name.strip(),
                tracking_number=tracking_number.strip(),
                shipped_at=utcnow(),
                estimated_delivery=estimated_delivery,
            )
            order.ship(
                tracking,
                actor,
                note=f"Shipped via {tracking.courier_name} ({tracking.tracking_number})",
            )
            await self.store.save_order(order)

            logger.info(
                "Order shipped",
                order_id=order.id,
                courier_name=tracking.courier_name,
                tracking_number=tracking.tracking_number,
                request_id=self.request_id,
            )
            await self.dispatcher.publish(order.collect_events())
            return OrderResult(order=order, message="Order marked as shipped")

        except DomainError as e:
            logger.warning(
                "Order shipping rejected",
                order_id=order_id,
                error_code=e.error_code,
                error=e.message,
                request_id=self.request_id,
            )
            return OrderResult.failure(e)


def get_order_service(request_id: str | None = None) -> OrderService:
    """Get order service instance."""
    return OrderService(request_id=request_id)
