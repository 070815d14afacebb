"""Domain event dispatch.

Services publish the events their aggregates recorded once the change is
stored. Handlers turn them into customer notifications, emails and audit
records. A failing or slow handler is logged and skipped: side effects
never fail or roll back the operation that emitted the event.
"""

import asyncio
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable

import structlog

from sellerportal.domain.base import DomainEvent
from sellerportal.domain.events import (
    CourierAssigned,
    OrderDelivered,
    OrderShipped,
    OrderStatusChanged,
    RefundFailed,
    RefundIssued,
    ReturnStatusChanged,
    ShipmentCreated,
    ShipmentStatusChanged,
)
from sellerportal.domain.value_objects import OrderType
from sellerportal.infrastructure.config import settings
from sellerportal.infrastructure.notifications import SideEffectSinks, get_sinks

logger = structlog.get_logger()

EventHandler = Callable[[DomainEvent], Awaitable[None]]

# Order statuses that trigger the corporate status email on B2B orders
CORPORATE_EMAIL_STATUSES = frozenset({"shipped", "delivered", "cancelled"})


class EventDispatcher:
    """Routes domain events to subscribed handlers."""

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout or settings.side_effect_timeout_seconds
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)

    async def publish(self, events: Iterable[DomainEvent]) -> None:
        """Deliver events in order; handler failures are logged only."""
        for event in events:
            for handler in self._handlers.get(event.event_type, []):
                try:
                    await asyncio.wait_for(handler(event), self.timeout)
                except Exception as e:
                    logger.warning(
                        "Event handler failed",
                        event_type=event.event_type,
                        event_id=str(event.event_id),
                        aggregate_id=event.aggregate_id,
                        handler=getattr(handler, "__qualname__", repr(handler)),
                        error=str(e) or type(e).__name__,
                    )


# ============================================================================
# Handlers
# ============================================================================


class CustomerNotificationHandler:
    """In-app notifications to the customer."""

    def __init__(self, sinks: SideEffectSinks) -> None:
        self.sinks = sinks

    async def on_order_status_changed(self, event: OrderStatusChanged) -> None:
        await self.sinks.notifications.notify(
            user_id=event.customer_id,
            type="order_update",
            title=f"Order {event.order_number} {event.to_status}",
            message=f"Your order {event.order_number} is now {event.to_status}.",
            link=f"/orders/{event.order_id}",
        )

    async def on_refund_issued(self, event: RefundIssued) -> None:
        await self.sinks.notifications.notify(
            user_id=event.customer_id,
            type="refund",
            title=f"Refund initiated for order {event.order_number}",
            message=f"A refund of {event.amount:.2f} has been initiated ({event.refund_id}).",
            link=f"/orders/{event.order_id}",
        )

    async def on_return_status_changed(self, event: ReturnStatusChanged) -> None:
        kind = "Exchange" if event.return_type == "exchange" else "Return"
        message = f"Your {kind.lower()} request is now {event.to_status.replace('_', ' ')}."
        if event.to_status == "rejected" and event.note:
            message = f"Your {kind.lower()} request was rejected: {event.note}"
        await self.sinks.notifications.notify(
            user_id=event.customer_id,
            type="return_update",
            title=f"{kind} request {event.to_status.replace('_', ' ')}",
            message=message,
            link=f"/orders/{event.order_id}",
        )


class OrderEmailHandler:
    """Shipped, delivered and corporate status emails."""

    def __init__(self, sinks: SideEffectSinks) -> None:
        self.sinks = sinks

    async def on_order_shipped(self, event: OrderShipped) -> None:
        if not event.customer_email:
            return
        await self.sinks.emails.send_shipped_email(
            event.customer_email,
            event.order_number,
            event.courier_name,
            event.tracking_number,
        )

    async def on_order_delivered(self, event: OrderDelivered) -> None:
        if not event.customer_email:
            return
        await self.sinks.emails.send_delivered_email(event.customer_email, event.order_number)

    async def on_order_status_changed(self, event: OrderStatusChanged) -> None:
        if event.order_type != OrderType.B2B_DIRECT.value:
            return
        if event.to_status not in CORPORATE_EMAIL_STATUSES or not event.customer_email:
            return
        await self.sinks.emails.send_corporate_status_email(
            event.customer_email, event.order_number, event.to_status
        )


class AuditLogHandler:
    """Activity log entries for seller-visible changes."""

    def __init__(self, sinks: SideEffectSinks) -> None:
        self.sinks = sinks

    async def on_order_status_changed(self, event: OrderStatusChanged) -> None:
        await self.sinks.audit.log_activity(
            domain="seller",
            action=f"order_{event.to_status}",
            actor_id=event.actor_id,
            actor_role=event.actor_role,
            target_type="Order",
            target_id=event.order_id,
            message=f"Order {event.order_number} marked as {event.to_status}",
            metadata={"from_status": event.from_status, "note": event.note},
        )

    async def on_refund_failed(self, event: RefundFailed) -> None:
        await self.sinks.audit.log_activity(
            domain="payments",
            action="refund_failed",
            actor_id="system",
            actor_role="system",
            target_type="Order",
            target_id=event.order_id,
            message=f"Refund of {event.amount:.2f} for order {event.order_number} failed",
            metadata={"error": event.error, "seller_id": event.seller_id},
        )

    async def on_shipment_created(self, event: ShipmentCreated) -> None:
        await self.sinks.audit.log_activity(
            domain="shipping",
            action="shipment_created",
            actor_id=event.seller_id,
            actor_role="seller",
            target_type="Shipment",
            target_id=event.shipment_id,
            message=f"Shipment created for order {event.order_id}",
            metadata={
                "shiprocket_order_id": event.shiprocket_order_id,
                "has_shipment_id": event.has_shipment_id,
            },
        )

    async def on_courier_assigned(self, event: CourierAssigned) -> None:
        await self.sinks.audit.log_activity(
            domain="shipping",
            action="courier_assigned",
            actor_id=event.seller_id,
            actor_role="seller",
            target_type="Shipment",
            target_id=event.shipment_id,
            message=f"Courier {event.courier_name} assigned (AWB {event.awb_code})",
            metadata={"courier_id": event.courier_id},
        )

    async def on_shipment_status_changed(self, event: ShipmentStatusChanged) -> None:
        await self.sinks.audit.log_activity(
            domain="shipping",
            action=f"shipment_{event.to_status}",
            actor_id=event.seller_id,
            actor_role="seller",
            target_type="Shipment",
            target_id=event.shipment_id,
            message=event.description,
            metadata={"from_status": event.from_status, "order_id": event.order_id},
        )

    async def on_return_status_changed(self, event: ReturnStatusChanged) -> None:
        await self.sinks.audit.log_activity(
            domain="seller",
            action=f"return_{event.to_status}",
            actor_id=event.actor_id,
            actor_role=event.actor_role,
            target_type="ReturnRequest",
            target_id=event.return_id,
            message=f"Return request {event.return_id} marked as {event.to_status}",
            metadata={"order_id": event.order_id, "note": event.note},
        )


def build_dispatcher(sinks: SideEffectSinks | None = None) -> EventDispatcher:
    """Create a dispatcher wired to the default handlers."""
    sinks = sinks or get_sinks()
    dispatcher = EventDispatcher()
    notifications = CustomerNotificationHandler(sinks)
    emails = OrderEmailHandler(sinks)
    audit = AuditLogHandler(sinks)

    dispatcher.subscribe(OrderStatusChanged.event_type, audit.on_order_status_changed)
    dispatcher.subscribe(OrderStatusChanged.event_type, notifications.on_order_status_changed)
    dispatcher.subscribe(OrderStatusChanged.event_type, emails.on_order_status_changed)
    dispatcher.subscribe(OrderShipped.event_type, emails.on_order_shipped)
    dispatcher.subscribe(OrderDelivered.event_type, emails.on_order_delivered)
    dispatcher.subscribe(RefundIssued.event_type, notifications.on_refund_issued)
    dispatcher.subscribe(RefundFailed.event_type, audit.on_refund_failed)
    dispatcher.subscribe(ShipmentCreated.event_type, audit.on_shipment_created)
    dispatcher.subscribe(CourierAssigned.event_type, audit.on_courier_assigned)
    dispatcher.subscribe(ShipmentStatusChanged.event_type, audit.on_shipment_status_changed)
    dispatcher.subscribe(ReturnStatusChanged.event_type, audit.on_return_status_changed)
    dispatcher.subscribe(ReturnStatusChanged.event_type, notifications.on_return_status_changed)
    return dispatcher


# Global dispatcher instance
_dispatcher: EventDispatcher | None = None


def get_dispatcher() -> EventDispatcher:
    """Get event dispatcher singleton."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = build_dispatcher()
    return _dispatcher


def reset_dispatcher(dispatcher: EventDispatcher | None = None) -> None:
    """Reset event dispatcher (for testing)."""
    global _dispatcher
    _dispatcher = dispatcher
