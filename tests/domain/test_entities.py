"""Tests for the Order, Shipment and ReturnRequest aggregates."""

import pytest

from sellerportal.domain.base import utcnow
from sellerportal.domain.entities import Order, ProductStock, ReturnRequest, Shipment
from sellerportal.domain.exceptions import InvalidStateTransitionError, ValidationError
from sellerportal.domain.state_machines import (
    OrderStatus,
    PaymentStatus,
    ReturnStatus,
    ShipmentStatus,
)
from sellerportal.domain.value_objects import (
    Actor,
    ActorRole,
    ParcelSpec,
    ReturnType,
    TrackingInfo,
)


def _tracking() -> TrackingInfo:
    return TrackingInfo(courier_name="Delhivery", tracking_number="AWB123", shipped_at=utcnow())


def _shipment(status: ShipmentStatus = ShipmentStatus.CREATED) -> Shipment:
    shipment = Shipment.create(
        order_id="order-1",
        seller_id="seller-1",
        shiprocket_order_id="SR-1",
        shiprocket_shipment_id="SH-1",
        parcel=ParcelSpec.clamped(800),
        pickup_location="Primary Warehouse",
        actor=Actor.seller("seller-1"),
    )
    shipment.status = status
    shipment.collect_events()
    return shipment


class TestOrder:
    """Tests for the Order aggregate."""

    def test_create_records_initial_history(self, order_factory) -> None:
        """Test a new order has exactly one history entry for its status."""
        order = order_factory(OrderStatus.PENDING)

        assert order.status == OrderStatus.PENDING
        assert len(order.status_history) == 1
        assert order.status_history[0].status == "pending"
        assert order.status_history[0].changed_by_role == "system"

    def test_create_requires_items(self, address) -> None:
        """Test an order without items is rejected."""
        with pytest.raises(ValidationError):
            Order.create(
                order_number="ORD-1",
                seller_id="seller-1",
                customer_id="cust-1",
                shipping_address=address,
                items=[],
                total_amount=0,
            )

    def test_history_tracks_transitions(self, order_factory, seller) -> None:
        """Test every transition appends one entry with the actor."""
        order = order_factory(OrderStatus.PENDING)
        assert len(order.status_history) == 1

        order.transition_to(OrderStatus.CONFIRMED, seller)
        order.transition_to(OrderStatus.PROCESSING, seller, "Packing")

        assert order.status == OrderStatus.PROCESSING
        assert len(order.status_history) == 3
        last = order.status_history[-1]
        assert last.status == "processing"
        assert last.changed_by == seller.id
        assert last.changed_by_role == ActorRole.SELLER.value
        assert last.note == "Packing"

    def test_invalid_transition_leaves_order_untouched(self, order_factory, seller) -> None:
        """Test a rejected transition changes neither status nor history."""
        order = order_factory(OrderStatus.SHIPPED)
        history_before = list(order.status_history)

        with pytest.raises(InvalidStateTransitionError):
            order.transition_to(OrderStatus.CANCELLED, seller)

        assert order.status == OrderStatus.SHIPPED
        assert order.status_history == history_before
        assert order.collect_events() == []

    def test_cancel_sets_timestamp_and_event(self, order_factory, seller) -> None:
        """Test cancelling records when and whether a refund is owed."""
        order = order_factory(OrderStatus.CONFIRMED)
        order.transition_to(OrderStatus.CANCELLED, seller)

        assert order.cancelled_at is not None
        events = order.collect_events()
        assert [e.event_type for e in events] == ["order.status_changed", "order.cancelled"]
        assert events[1].refund_due is True

    def test_ship_records_tracking(self, order_factory, seller) -> None:
        """Test manual shipping stores tracking before the shipped event."""
        order = order_factory(OrderStatus.CONFIRMED)
        order.ship(_tracking(), seller)

        assert order.status == OrderStatus.SHIPPED
        assert order.tracking_info.tracking_number == "AWB123"
        shipped = [e for e in order.collect_events() if e.event_type == "order.shipped"]
        assert shipped[0].courier_name == "Delhivery"

    def test_ship_rejected_keeps_tracking_empty(self, order_factory, seller) -> None:
        """Test a pending order cannot be shipped."""
        order = order_factory(OrderStatus.PENDING)
        with pytest.raises(InvalidStateTransitionError):
            order.ship(_tracking(), seller)
        assert order.tracking_info is None

    def test_refund_due_requires_gateway(self, order_factory) -> None:
        """Test only paid gateway orders owe a refund."""
        assert order_factory().refund_due
        assert not order_factory(gateway_order_id=None).refund_due
        assert not order_factory(payment_status=PaymentStatus.PENDING).refund_due

    def test_refund_lifecycle(self, order_factory) -> None:
        """Test refund_pending then refunded with the issued event."""
        order = order_factory()
        order.start_refund()
        order.mark_refunded("RF-ORD-1001", 1000.0)

        assert order.payment_status == PaymentStatus.REFUNDED
        assert order.refund_id == "RF-ORD-1001"
        events = order.collect_events()
        assert events[-1].event_type == "payment.refund_issued"

    def test_refund_failure_stays_pending(self, order_factory) -> None:
        """Test a failed refund is visible as refund_pending with its error."""
        order = order_factory()
        order.record_refund_failure("gateway down", 1000.0)

        assert order.payment_status == PaymentStatus.REFUND_PENDING
        assert order.refund_error == "gateway down"
        assert order.collect_events()[-1].event_type == "payment.refund_failed"

    def test_payment_never_regresses(self, order_factory) -> None:
        """Test a refunded order cannot start another refund."""
        order = order_factory()
        order.mark_refunded("RF-1", 10.0)
        with pytest.raises(InvalidStateTransitionError):
            order.start_refund()

    def test_return_refund_keeps_pending(self, order_factory) -> None:
        """Test a return refund leaves payment in refund_pending."""
        order = order_factory(OrderStatus.DELIVERED)
        order.record_return_refund("RR-return-1", 450.0)

        assert order.payment_status == PaymentStatus.REFUND_PENDING
        assert order.refund_id == "RR-return-1"

    def test_negative_shipping_cost_rejected(self, order_factory) -> None:
        """Test actual shipping cost must not be negative."""
        order = order_factory()
        with pytest.raises(ValidationError):
            order.record_actual_shipping_cost(-1)
        order.record_actual_shipping_cost(65.5)
        assert order.actual_shipping_cost == 65.5

    def test_document_round_trip(self, order_factory, seller) -> None:
        """Test an order survives serialization with history and tracking."""
        order = order_factory(OrderStatus.CONFIRMED)
        order.ship(_tracking(), seller)
        order.version = 4

        restored = Order.from_dict(order.to_dict())

        assert restored.to_dict() == order.to_dict()
        assert restored.version == 4


class TestShipment:
    """Tests for the Shipment aggregate."""

    def test_create(self) -> None:
        """Test a new shipment starts created with one history entry."""
        shipment = Shipment.create(
            order_id="order-1",
            seller_id="seller-1",
            shiprocket_order_id="SR-1",
            shiprocket_shipment_id=None,
            parcel=ParcelSpec.clamped(10),
            pickup_location="Primary Warehouse",
            actor=Actor.seller("seller-1"),
        )

        assert shipment.status == ShipmentStatus.CREATED
        assert shipment.weight == 50
        assert not shipment.has_shipment_id
        assert len(shipment.status_history) == 1
        event = shipment.collect_events()[0]
        assert event.event_type == "shipment.created"
        assert event.has_shipment_id is False

    def test_courier_reassignment(self) -> None:
        """Test a courier can be reassigned before pickup."""
        shipment = _shipment()
        actor = Actor.seller("seller-1")
        shipment.assign_courier(10, "Delhivery", "AWB1", actor, shipping_charge=70.0)
        shipment.assign_courier(12, "Bluedart", "AWB2", actor)

        assert shipment.awb_code == "AWB2"
        assert shipment.courier_name == "Bluedart"
        assert shipment.shipping_charge == 70.0
        assert len(shipment.status_history) == 3

    def test_pickup_requires_courier_assigned(self) -> None:
        """Test pickup cannot be scheduled on a bare shipment."""
        shipment = _shipment()
        with pytest.raises(InvalidStateTransitionError):
            shipment.schedule_pickup(Actor.seller("seller-1"))

    def test_sync_status_moves_forward_only(self) -> None:
        """Test courier statuses only advance the shipment."""
        shipment = _shipment(ShipmentStatus.PICKUP_SCHEDULED)
        system = Actor.system()

        assert shipment.sync_status(ShipmentStatus.IN_TRANSIT, "In transit", system)
        assert not shipment.sync_status(ShipmentStatus.IN_TRANSIT, "In transit", system)
        assert not shipment.sync_status(ShipmentStatus.PICKUP_SCHEDULED, "Back", system)
        assert shipment.status == ShipmentStatus.IN_TRANSIT

    def test_cancel_in_custody_rejected(self) -> None:
        """Test a picked up shipment cannot be cancelled."""
        shipment = _shipment(ShipmentStatus.PICKED_UP)
        with pytest.raises(InvalidStateTransitionError):
            shipment.cancel(Actor.seller("seller-1"))

    def test_document_round_trip(self) -> None:
        """Test a shipment survives serialization."""
        shipment = _shipment()
        shipment.assign_courier(10, "Delhivery", "AWB1", Actor.seller("seller-1"))
        shipment.attach_label("https://labels.example.com/1.pdf")

        assert Shipment.from_dict(shipment.to_dict()).to_dict() == shipment.to_dict()


class TestReturnRequest:
    """Tests for the ReturnRequest aggregate."""

    def test_create_records_customer(self, order_factory, return_factory) -> None:
        """Test the opening history entry belongs to the customer."""
        request = return_factory(order_factory(OrderStatus.DELIVERED))

        assert request.status == ReturnStatus.REQUESTED
        assert request.status_history[0].changed_by == "cust-1"
        assert request.status_history[0].changed_by_role == "customer"

    def test_reject_requires_reason(self, order_factory, return_factory, seller) -> None:
        """Test a blank reason is rejected without changing state."""
        request = return_factory(order_factory(OrderStatus.DELIVERED))
        with pytest.raises(ValidationError):
            request.reject("   ", seller)
        assert request.status == ReturnStatus.REQUESTED

        request.reject(" Item used ", seller)
        assert request.rejection_reason == "Item used"
        assert request.resolved_at is not None
        assert not request.is_active

    def test_exchange_flow(self, order_factory, return_factory, seller) -> None:
        """Test an exchange resolves as exchanged after receipt."""
        request = return_factory(order_factory(OrderStatus.DELIVERED), type=ReturnType.EXCHANGE)
        request.approve(seller)
        request.mark_received(seller)
        request.mark_exchanged(seller)

        assert request.status == ReturnStatus.EXCHANGED
        assert [entry.status for entry in request.status_history] == [
            "requested",
            "approved",
            "received",
            "exchanged",
        ]

    def test_refund_before_receipt_rejected(self, order_factory, return_factory, seller) -> None:
        """Test a return cannot be refunded before it is received."""
        request = return_factory(order_factory(OrderStatus.DELIVERED))
        request.approve(seller)
        with pytest.raises(InvalidStateTransitionError):
            request.mark_refunded("RR-1", seller)

    def test_document_round_trip(self, order_factory, return_factory, seller) -> None:
        """Test a return request survives serialization."""
        request = return_factory(order_factory(OrderStatus.DELIVERED))
        request.approve(seller, "Send it back")

        restored = ReturnRequest.from_dict(request.to_dict())
        assert restored.to_dict() == request.to_dict()


class TestProductStock:
    """Tests for stock counters."""

    def test_restore(self) -> None:
        """Test stock comes back and order count drops for paid orders."""
        product = ProductStock(product_id="prod-1", seller_id="seller-1", stock=3, order_count=1)
        product.restore(2, decrement_order_count=True)
        assert product.stock == 5
        assert product.order_count == 0

    def test_restore_without_order_count(self) -> None:
        """Test unpaid cancellations leave the order count alone."""
        product = ProductStock(product_id="prod-1", seller_id="seller-1", stock=0, order_count=4)
        product.restore(1, decrement_order_count=False)
        assert product.stock == 1
        assert product.order_count == 4
