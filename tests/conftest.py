"""Shared fixtures for seller portal tests."""

from unittest.mock import AsyncMock

import pytest

from sellerportal.application.events import EventDispatcher
from sellerportal.domain.entities import Order, ProductStock, ReturnRequest, SellerProfile
from sellerportal.domain.state_machines import OrderStatus, PaymentStatus
from sellerportal.domain.value_objects import (
    Actor,
    Address,
    OrderItem,
    ReturnType,
)
from sellerportal.infrastructure.cashfree_client import CashfreeClient
from sellerportal.infrastructure.shiprocket_client import ShiprocketClient
from sellerportal.infrastructure.store import InMemoryMarketplaceStore

SELLER_ID = "seller-1"
OTHER_SELLER_ID = "seller-2"

# Lifecycle path from pending to each status
_STATUS_PATHS: dict[OrderStatus, list[OrderStatus]] = {
    OrderStatus.PENDING: [],
    OrderStatus.CONFIRMED: [OrderStatus.CONFIRMED],
    OrderStatus.PROCESSING: [OrderStatus.CONFIRMED, OrderStatus.PROCESSING],
    OrderStatus.SHIPPED: [OrderStatus.CONFIRMED, OrderStatus.SHIPPED],
    OrderStatus.DELIVERED: [OrderStatus.CONFIRMED, OrderStatus.SHIPPED, OrderStatus.DELIVERED],
    OrderStatus.CANCELLED: [OrderStatus.CANCELLED],
}


@pytest.fixture
def seller_id() -> str:
    return SELLER_ID


@pytest.fixture
def seller() -> Actor:
    return Actor.seller(SELLER_ID)


@pytest.fixture
def address() -> Address:
    return Address(
        name="Asha Rao",
        street="12 MG Road",
        city="Bengaluru",
        state="Karnataka",
        pincode="560001",
        phone="9876543210",
    )


@pytest.fixture
def order_factory(address):
    """Build orders walked to a given status through real transitions."""

    def _make(status: OrderStatus = OrderStatus.CONFIRMED, **overrides) -> Order:
        attrs = {
            "order_number": "ORD-1001",
            "seller_id": SELLER_ID,
            "customer_id": "cust-1",
            "shipping_address": address,
            "items": [
                OrderItem(product_id="prod-1", title="Cotton Kurta", quantity=2, price=450.0),
                OrderItem(product_id="prod-2", title="Silk Dupatta", quantity=1, price=100.0),
            ],
            "total_amount": 1000.0,
            "order_id": "order-1",
            "customer_email": "asha@example.com",
            "payment_status": PaymentStatus.PAID,
            "gateway_order_id": "cf_order_1001",
        }
        attrs.update(overrides)
        order = Order.create(**attrs)
        actor = Actor.seller(order.seller_id)
        for step in _STATUS_PATHS[status]:
            order.transition_to(step, actor)
        order.collect_events()
        return order

    return _make


@pytest.fixture
def return_factory():
    """Build return requests for an order."""

    def _make(
        order: Order,
        type: ReturnType = ReturnType.RETURN,
        refund_amount: float = 450.0,
        return_id: str = "return-1",
    ) -> ReturnRequest:
        return ReturnRequest.create(
            order_id=order.id,
            customer_id=order.customer_id,
            seller_id=order.seller_id,
            type=type,
            reason="Size does not fit",
            refund_amount=refund_amount,
            return_id=return_id,
        )

    return _make


@pytest.fixture
def store() -> InMemoryMarketplaceStore:
    return InMemoryMarketplaceStore()


@pytest.fixture
async def stocked_store(store) -> InMemoryMarketplaceStore:
    """Store with the default products and seller profile."""
    await store.add_product(
        ProductStock(
            product_id="prod-1", seller_id=SELLER_ID, title="Cotton Kurta", stock=5, order_count=7
        )
    )
    await store.add_product(
        ProductStock(
            product_id="prod-2", seller_id=SELLER_ID, title="Silk Dupatta", stock=0, order_count=3
        )
    )
    await store.save_seller(
        SellerProfile(
            seller_id=SELLER_ID,
            email="seller@example.com",
            pickup_location_name="Primary Warehouse",
            pickup_pincode="400001",
        )
    )
    return store


@pytest.fixture
def shipping() -> AsyncMock:
    """Shipping provider client double."""
    return AsyncMock(spec=ShiprocketClient)


@pytest.fixture
def payments() -> AsyncMock:
    """Payment gateway client double."""
    return AsyncMock(spec=CashfreeClient)


@pytest.fixture
def dispatcher() -> AsyncMock:
    """Event dispatcher double recording published events."""
    return AsyncMock(spec=EventDispatcher)


def published_event_types(dispatcher: AsyncMock) -> list[str]:
    """Event types passed to a dispatcher double, in publish order."""
    return [
        event.event_type
        for call in dispatcher.publish.await_args_list
        for event in call.args[0]
    ]


@pytest.fixture
def published():
    return published_event_types
