"""Tests for the order application service."""

import asyncio
from unittest.mock import ANY

import pytest

from sellerportal.application.order_service import OrderService
from sellerportal.application.shipment_service import ShipmentService
from sellerportal.domain.entities import Shipment
from sellerportal.domain.exceptions import ConcurrentModificationError
from sellerportal.domain.state_machines import OrderStatus, PaymentStatus, ShipmentStatus
from sellerportal.domain.value_objects import Actor, ParcelSpec
from sellerportal.infrastructure.cashfree_client import (
    GatewayOrder,
    PaymentGatewayError,
    RefundResult,
)
from sellerportal.infrastructure.shiprocket_client import PickupResult, ShippingProviderError


@pytest.fixture
def payments(payments):
    payments.get_order.return_value = GatewayOrder(
        order_id="cf_order_1001", order_amount=1000.0, order_status="PAID"
    )
    payments.create_refund.return_value = RefundResult(refund_id="RF-ORD-1001", status="PENDING")
    return payments


@pytest.fixture
def service(stocked_store, shipping, payments, dispatcher) -> OrderService:
    shipments = ShipmentService(
        store=stocked_store, shipping=shipping, dispatcher=dispatcher, propagation_delay=0
    )
    return OrderService(
        store=stocked_store,
        shipments=shipments,
        payments=payments,
        dispatcher=dispatcher,
    )


async def _add_shipment(store, order, status: ShipmentStatus) -> Shipment:
    shipment = Shipment.create(
        order_id=order.id,
        seller_id=order.seller_id,
        shiprocket_order_id="SR-1",
        shiprocket_shipment_id="SH-1",
        parcel=ParcelSpec.clamped(),
        pickup_location="Primary Warehouse",
        actor=Actor.seller(order.seller_id),
    )
    shipment.status = status
    await store.add_shipment(shipment)
    return shipment


class TestUpdateStatus:
    """Tests for plain status transitions."""

    @pytest.mark.asyncio
    async def test_transition_saves_history(
        self, service, stocked_store, order_factory, published
    ) -> None:
        """Test a valid transition is stored with one new history entry."""
        await stocked_store.add_order(order_factory(OrderStatus.CONFIRMED))

        result = await service.update_status("seller-1", "order-1", "processing", note="Packing")

        assert result.success
        assert result.message == "Order status updated to processing"
        stored = await stocked_store.get_order("seller-1", "order-1")
        assert stored.status == OrderStatus.PROCESSING
        assert len(stored.status_history) == 3
        assert stored.status_history[-1].note == "Packing"
        assert stored.version == 2
        assert published(service.dispatcher) == ["order.status_changed"]

    @pytest.mark.asyncio
    async def test_unknown_status(self, service, stocked_store, order_factory) -> None:
        """Test an unknown status value is a validation error."""
        await stocked_store.add_order(order_factory())

        result = await service.update_status("seller-1", "order-1", "teleported")

        assert not result.success
        assert result.error_code == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_invalid_transition(self, service, stocked_store, order_factory) -> None:
        """Test edges outside the graph are rejected and nothing is stored."""
        await stocked_store.add_order(order_factory(OrderStatus.SHIPPED))

        result = await service.update_status("seller-1", "order-1", "processing")

        assert result.error_code == "INVALID_TRANSITION"
        assert result.details["allowed_transitions"] == ["delivered"]
        stored = await stocked_store.get_order("seller-1", "order-1")
        assert stored.status == OrderStatus.SHIPPED
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_other_sellers_order_not_found(
        self, service, stocked_store, order_factory
    ) -> None:
        """Test another seller's order looks exactly like a missing one."""
        await stocked_store.add_order(order_factory(seller_id="seller-2"))

        foreign = await service.update_status("seller-1", "order-1", "processing")
        missing = await service.update_status("seller-1", "order-404", "processing")

        assert foreign.error_code == missing.error_code == "ORDER_NOT_FOUND"


class TestCancelOrder:
    """Tests for order cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_paid_order_refunds(
        self, service, stocked_store, order_factory, payments, published
    ) -> None:
        """Test cancelling a paid order restores stock and refunds once."""
        await stocked_store.add_order(order_factory(OrderStatus.CONFIRMED))

        result = await service.update_status(
            "seller-1", "order-1", "cancelled", note="Out of stock"
        )

        assert result.success
        assert result.message == "Order cancelled and refund initiated"
        stored = await stocked_store.get_order("seller-1", "order-1")
        assert stored.status == OrderStatus.CANCELLED
        assert stored.payment_status == PaymentStatus.REFUNDED
        assert stored.refund_id == "RF-ORD-1001"
        assert len(stored.status_history) == 3
        payments.create_refund.assert_awaited_once_with(
            "cf_order_1001", 1000.0, "RF-ORD-1001", ANY
        )

        kurta = await stocked_store.get_product("prod-1")
        dupatta = await stocked_store.get_product("prod-2")
        assert (kurta.stock, kurta.order_count) == (7, 5)
        assert (dupatta.stock, dupatta.order_count) == (1, 2)

        assert "order.cancelled" in published(service.dispatcher)
        assert "payment.refund_issued" in published(service.dispatcher)

    @pytest.mark.asyncio
    async def test_second_cancel_rejected(
        self, service, stocked_store, order_factory, payments
    ) -> None:
        """Test stock is restored and refunded exactly once."""
        await stocked_store.add_order(order_factory(OrderStatus.CONFIRMED))

        await service.update_status("seller-1", "order-1", "cancelled")
        second = await service.update_status("seller-1", "order-1", "cancelled")

        assert second.error_code == "INVALID_TRANSITION"
        kurta = await stocked_store.get_product("prod-1")
        assert kurta.stock == 7
        payments.create_refund.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancel_unpaid_order(
        self, service, stocked_store, order_factory, payments
    ) -> None:
        """Test an unpaid order gets stock back without touching order counts."""
        await stocked_store.add_order(
            order_factory(OrderStatus.PENDING, payment_status=PaymentStatus.PENDING)
        )

        result = await service.update_status("seller-1", "order-1", "cancelled")

        assert result.message == "Order cancelled"
        assert result.order.payment_status == PaymentStatus.PENDING
        kurta = await stocked_store.get_product("prod-1")
        assert (kurta.stock, kurta.order_count) == (7, 7)
        payments.create_refund.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refund_capped_by_gateway_amount(
        self, service, stocked_store, order_factory, payments
    ) -> None:
        """Test the refund never exceeds what the gateway collected."""
        payments.get_order.return_value = GatewayOrder(order_id="cf_order_1001", order_amount=600.0)
        await stocked_store.add_order(order_factory())

        await service.update_status("seller-1", "order-1", "cancelled")

        assert payments.create_refund.await_args.args[1] == 600.0

    @pytest.mark.asyncio
    async def test_gateway_lookup_failure_refunds_total(
        self, service, stocked_store, order_factory, payments
    ) -> None:
        """Test a failed amount lookup falls back to the order total."""
        payments.get_order.side_effect = PaymentGatewayError("timeout")
        await stocked_store.add_order(order_factory())

        result = await service.update_status("seller-1", "order-1", "cancelled")

        assert result.order.payment_status == PaymentStatus.REFUNDED
        assert payments.create_refund.await_args.args[1] == 1000.0

    @pytest.mark.asyncio
    async def test_refund_failure_keeps_cancellation(
        self, service, stocked_store, order_factory, payments, published
    ) -> None:
        """Test a failed refund is recorded but the order stays cancelled."""
        payments.create_refund.side_effect = PaymentGatewayError("Insufficient balance", 400)
        await stocked_store.add_order(order_factory())

        result = await service.update_status("seller-1", "order-1", "cancelled")

        assert result.success
        assert result.message == "Order cancelled; refund failed and needs manual follow-up"
        stored = await stocked_store.get_order("seller-1", "order-1")
        assert stored.status == OrderStatus.CANCELLED
        assert stored.payment_status == PaymentStatus.REFUND_PENDING
        assert "Insufficient balance" in stored.refund_error
        assert "payment.refund_failed" in published(service.dispatcher)

    @pytest.mark.asyncio
    async def test_refund_outcome_retried_on_conflict(
        self, service, stocked_store, order_factory, monkeypatch
    ) -> None:
        """Test a conflicting refund write reloads the order and retries."""
        await stocked_store.add_order(order_factory())
        original_save = stocked_store.save_order
        calls = 0

        async def flaky_save(order):
            nonlocal calls
            calls += 1
            if calls == 2:
                raise ConcurrentModificationError("Order", order.id, order.version)
            await original_save(order)

        monkeypatch.setattr(stocked_store, "save_order", flaky_save)

        result = await service.update_status("seller-1", "order-1", "cancelled")

        assert calls == 3
        assert result.order.payment_status == PaymentStatus.REFUNDED
        stored = await stocked_store.get_order("seller-1", "order-1")
        assert stored.payment_status == PaymentStatus.REFUNDED

    @pytest.mark.asyncio
    async def test_custody_blocks_cancellation(
        self, service, stocked_store, order_factory, shipping, payments
    ) -> None:
        """Test a package with the courier cannot be cancelled."""
        order = order_factory(OrderStatus.PROCESSING)
        await stocked_store.add_order(order)
        await _add_shipment(stocked_store, order, ShipmentStatus.PICKED_UP)

        result = await service.update_status("seller-1", "order-1", "cancelled")

        assert result.error_code == "CANCELLATION_BLOCKED"
        stored = await stocked_store.get_order("seller-1", "order-1")
        assert stored.status == OrderStatus.PROCESSING
        assert (await stocked_store.get_product("prod-1")).stock == 5
        shipping.cancel_order.assert_not_awaited()
        payments.create_refund.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_cancels_shipment(
        self, service, stocked_store, order_factory, shipping
    ) -> None:
        """Test the shipment is cancelled locally and on the provider."""
        order = order_factory(OrderStatus.PROCESSING)
        await stocked_store.add_order(order)
        await _add_shipment(stocked_store, order, ShipmentStatus.COURIER_ASSIGNED)

        result = await service.update_status("seller-1", "order-1", "cancelled")

        assert result.success
        shipment = await stocked_store.get_shipment_for_order("seller-1", "order-1")
        assert shipment.status == ShipmentStatus.CANCELLED
        shipping.cancel_order.assert_awaited_once_with("SR-1")

    @pytest.mark.asyncio
    async def test_remote_cancel_failure_ignored(
        self, service, stocked_store, order_factory, shipping
    ) -> None:
        """Test a provider failure does not undo the cancellation."""
        shipping.cancel_order.side_effect = ShippingProviderError("Order already picked", 400)
        order = order_factory(OrderStatus.PROCESSING)
        await stocked_store.add_order(order)
        await _add_shipment(stocked_store, order, ShipmentStatus.CREATED)

        result = await service.update_status("seller-1", "order-1", "cancelled")

        assert result.success
        assert result.order.status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_unreadable_remote_cancel_response_ignored(
        self, service, stocked_store, order_factory, shipping, payments
    ) -> None:
        """Test an unexpected error from the provider cancel still refunds the order."""
        shipping.cancel_order.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
        order = order_factory(OrderStatus.PROCESSING)
        await stocked_store.add_order(order)
        await _add_shipment(stocked_store, order, ShipmentStatus.CREATED)

        result = await service.update_status("seller-1", "order-1", "cancelled")

        assert result.success
        assert result.message == "Order cancelled and refund initiated"
        shipping.cancel_order.assert_awaited_once_with("SR-1")
        payments.create_refund.assert_awaited_once()
        stored = await stocked_store.get_order("seller-1", "order-1")
        assert stored.status == OrderStatus.CANCELLED
        shipment = await stocked_store.get_shipment_for_order("seller-1", "order-1")
        assert shipment.status == ShipmentStatus.CANCELLED


class TestConcurrentRequests:
    """Tests for racing requests that cannot both apply to one order."""

    @pytest.fixture
    def stocked_store(self, stocked_store, monkeypatch):
        """Yield after every order read so racing requests load the same version."""
        read_order = stocked_store.get_order

        async def get_order(seller_id, order_id):
            order = await read_order(seller_id, order_id)
            await asyncio.sleep(0)
            return order

        monkeypatch.setattr(stocked_store, "get_order", get_order)
        return stocked_store

    @pytest.mark.asyncio
    async def test_ship_and_cancel_race(
        self, service, stocked_store, order_factory, payments
    ) -> None:
        """Test only one of ship and cancel applies and the loser changes nothing."""
        await stocked_store.add_order(order_factory(OrderStatus.PROCESSING))

        shipped, cancelled = await asyncio.gather(
            service.ship_order("seller-1", "order-1", "Delhivery", "AWB777"),
            service.update_status("seller-1", "order-1", "cancelled"),
        )

        assert [shipped.success, cancelled.success].count(True) == 1
        assert shipped.success
        assert cancelled.error_code in {"CONCURRENT_MODIFICATION", "INVALID_TRANSITION"}

        stored = await stocked_store.get_order("seller-1", "order-1")
        assert stored.status == OrderStatus.SHIPPED
        assert stored.payment_status == PaymentStatus.PAID
        assert stored.version == 2
        assert (await stocked_store.get_product("prod-1")).stock == 5
        payments.create_refund.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pickup_and_cancel_race(
        self, service, stocked_store, order_factory, shipping, payments
    ) -> None:
        """Test a cancel racing a pickup is rejected and rolled back whole."""
        shipping.schedule_pickup.return_value = PickupResult(pickup_token="PT-1")
        order = order_factory(OrderStatus.PROCESSING)
        await stocked_store.add_order(order)
        shipment = Shipment.create(
            order_id=order.id,
            seller_id=order.seller_id,
            shiprocket_order_id="SR-1",
            shiprocket_shipment_id="SH-1",
            parcel=ParcelSpec.clamped(),
            pickup_location="Primary Warehouse",
            actor=Actor.seller(order.seller_id),
        )
        shipment.status = ShipmentStatus.COURIER_ASSIGNED
        shipment.awb_code = "AWB123"
        shipment.courier_name = "Delhivery"
        await stocked_store.add_shipment(shipment)

        picked, cancelled = await asyncio.gather(
            service.shipments.schedule_pickup("seller-1", "order-1"),
            service.update_status("seller-1", "order-1", "cancelled"),
        )

        assert [picked.success, cancelled.success].count(True) == 1
        assert picked.success
        assert cancelled.error_code in {"CONCURRENT_MODIFICATION", "INVALID_TRANSITION"}

        stored = await stocked_store.get_order("seller-1", "order-1")
        assert stored.status == OrderStatus.SHIPPED
        stored_shipment = await stocked_store.get_shipment_for_order("seller-1", "order-1")
        assert stored_shipment.status == ShipmentStatus.PICKUP_SCHEDULED
        assert (await stocked_store.get_product("prod-1")).stock == 5
        shipping.cancel_order.assert_not_awaited()
        payments.create_refund.assert_not_awaited()


class TestShipOrder:
    """Tests for manual shipping."""

    @pytest.mark.asyncio
    async def test_ship_order(self, service, stocked_store, order_factory, published) -> None:
        """Test tracking is stored and the shipped event emitted."""
        await stocked_store.add_order(order_factory(OrderStatus.CONFIRMED))

        result = await service.ship_order("seller-1", "order-1", " Delhivery ", "AWB777")

        assert result.success
        assert result.message == "Order marked as shipped"
        stored = await stocked_store.get_order("seller-1", "order-1")
        assert stored.status == OrderStatus.SHIPPED
        assert stored.tracking_info.courier_name == "Delhivery"
        assert stored.tracking_info.tracking_number == "AWB777"
        assert "order.shipped" in published(service.dispatcher)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("courier,tracking", [("", "AWB1"), ("Delhivery", "  ")])
    async def test_requires_tracking_details(
        self, service, stocked_store, order_factory, courier, tracking
    ) -> None:
        """Test blank courier or tracking number is rejected."""
        await stocked_store.add_order(order_factory())

        result = await service.ship_order("seller-1", "order-1", courier, tracking)

        assert result.error_code == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_cannot_ship_pending(self, service, stocked_store, order_factory) -> None:
        """Test a pending order cannot be shipped."""
        await stocked_store.add_order(order_factory(OrderStatus.PENDING))

        result = await service.ship_order("seller-1", "order-1", "Delhivery", "AWB1")

        assert result.error_code == "INVALID_TRANSITION"
