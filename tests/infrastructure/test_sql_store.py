"""Tests for the SQLAlchemy marketplace store on SQLite."""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

import sellerportal.infrastructure.models  # noqa: F401  (registers tables)
from sellerportal.domain.entities import ProductStock, SellerProfile, Shipment
from sellerportal.domain.exceptions import (
    ActiveReturnExistsError,
    AlreadyShippedError,
    ConcurrentModificationError,
    NotFoundError,
)
from sellerportal.domain.state_machines import OrderStatus, ReturnStatus, ShipmentStatus
from sellerportal.domain.value_objects import Actor, ParcelSpec
from sellerportal.infrastructure.database import Base, get_session_factory
from sellerportal.infrastructure.sql_store import SqlAlchemyMarketplaceStore


@pytest_asyncio.fixture
async def sql_store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield SqlAlchemyMarketplaceStore(get_session_factory(engine))
    await engine.dispose()


class TestOrders:
    """Tests for order rows and conditional writes."""

    @pytest.mark.asyncio
    async def test_round_trip(self, sql_store, order_factory, seller) -> None:
        """Test an order is stored, loaded and saved with a new version."""
        await sql_store.add_order(order_factory())

        order = await sql_store.get_order("seller-1", "order-1")
        assert order.status == OrderStatus.CONFIRMED
        assert order.items[0].title == "Cotton Kurta"

        order.transition_to(OrderStatus.PROCESSING, seller, "Packing")
        await sql_store.save_order(order)

        stored = await sql_store.get_order("seller-1", "order-1")
        assert stored.status == OrderStatus.PROCESSING
        assert stored.version == order.version
        assert stored.status_history[-1].note == "Packing"

    @pytest.mark.asyncio
    async def test_stale_write_rejected(self, sql_store, order_factory, seller) -> None:
        """Test the UPDATE guarded by version rejects a stale copy."""
        await sql_store.add_order(order_factory())
        first = await sql_store.get_order("seller-1", "order-1")
        second = await sql_store.get_order("seller-1", "order-1")

        first.transition_to(OrderStatus.PROCESSING, seller)
        await sql_store.save_order(first)
        second.transition_to(OrderStatus.CANCELLED, seller)

        with pytest.raises(ConcurrentModificationError):
            await sql_store.save_order(second)

        assert (await sql_store.get_order("seller-1", "order-1")).status == OrderStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_seller_scoping(self, sql_store, order_factory) -> None:
        """Test other sellers cannot read the order."""
        await sql_store.add_order(order_factory())

        with pytest.raises(NotFoundError):
            await sql_store.get_order("seller-2", "order-1")


class TestTransactions:
    """Tests for rollback across several writes."""

    @pytest.mark.asyncio
    async def test_rollback(self, sql_store, order_factory, seller) -> None:
        """Test an error inside a transaction undoes status and stock."""
        await sql_store.add_order(order_factory())
        await sql_store.add_product(
            ProductStock(product_id="prod-1", seller_id="seller-1", stock=5, order_count=7)
        )
        order = await sql_store.get_order("seller-1", "order-1")

        with pytest.raises(RuntimeError):
            async with sql_store.transaction():
                order.transition_to(OrderStatus.CANCELLED, seller)
                await sql_store.save_order(order)
                await sql_store.restore_stock("order-1", order.items, True)
                raise RuntimeError("provider call failed")

        stored = await sql_store.get_order("seller-1", "order-1")
        assert stored.status == OrderStatus.CONFIRMED
        assert (await sql_store.get_product("prod-1")).stock == 5

    @pytest.mark.asyncio
    async def test_commit(self, sql_store, order_factory, seller) -> None:
        """Test writes inside a successful transaction are visible afterwards."""
        await sql_store.add_order(order_factory())

        async with sql_store.transaction():
            order = await sql_store.get_order("seller-1", "order-1")
            order.transition_to(OrderStatus.PROCESSING, seller)
            await sql_store.save_order(order)

        assert (await sql_store.get_order("seller-1", "order-1")).status == OrderStatus.PROCESSING


class TestStockAndSellers:
    """Tests for stock counters and seller profiles."""

    @pytest.mark.asyncio
    async def test_restore_once(self, sql_store, order_factory) -> None:
        """Test the ledger row blocks a second restore."""
        await sql_store.add_product(
            ProductStock(product_id="prod-1", seller_id="seller-1", stock=5, order_count=7)
        )
        items = order_factory().items

        assert await sql_store.restore_stock("order-1", items, True)
        assert not await sql_store.restore_stock("order-1", items, True)

        product = await sql_store.get_product("prod-1")
        assert (product.stock, product.order_count) == (7, 5)

    @pytest.mark.asyncio
    async def test_restores_accumulate_across_orders(self, sql_store, order_factory) -> None:
        """Test restores for different orders add up and the order count stops at zero."""
        await sql_store.add_product(
            ProductStock(product_id="prod-1", seller_id="seller-1", stock=5, order_count=3)
        )
        items = order_factory().items

        assert await sql_store.restore_stock("order-1", items, True)
        assert await sql_store.restore_stock("order-2", items, True)

        product = await sql_store.get_product("prod-1")
        assert (product.stock, product.order_count) == (9, 0)

    @pytest.mark.asyncio
    async def test_seller_profile_upsert(self, sql_store) -> None:
        """Test saving a profile twice keeps the latest values."""
        await sql_store.save_seller(SellerProfile(seller_id="seller-1", email="a@example.com"))
        await sql_store.save_seller(
            SellerProfile(
                seller_id="seller-1",
                email="a@example.com",
                pickup_location_name="Primary Warehouse",
                pickup_pincode="400001",
            )
        )

        profile = await sql_store.get_seller("seller-1")
        assert profile.pickup_location_name == "Primary Warehouse"
        assert await sql_store.get_seller("seller-9") is None


class TestReturnsAndShipments:
    """Tests for return and shipment rows."""

    @pytest.mark.asyncio
    async def test_one_active_return(
        self, sql_store, order_factory, return_factory, seller
    ) -> None:
        """Test the active flag column enforces one open return per order."""
        order = order_factory(OrderStatus.DELIVERED)
        await sql_store.add_order(order)
        first = return_factory(order)
        await sql_store.add_return(first)

        with pytest.raises(ActiveReturnExistsError):
            await sql_store.add_return(return_factory(order, return_id="return-2"))

        first.approve(seller)
        first.mark_received(seller)
        first.mark_refunded("RR-return-1", seller)
        await sql_store.save_return(first)
        await sql_store.add_return(return_factory(order, return_id="return-2"))

        stored = await sql_store.get_return("seller-1", "return-1")
        assert stored.status == ReturnStatus.REFUNDED
        assert stored.refund_id == "RR-return-1"

    @pytest.mark.asyncio
    async def test_shipment_for_order(self, sql_store, order_factory) -> None:
        """Test the shipment is found by order and saved with its courier."""
        await sql_store.add_order(order_factory())
        shipment = Shipment.create(
            order_id="order-1",
            seller_id="seller-1",
            shiprocket_order_id="SR-1",
            shiprocket_shipment_id="SH-1",
            parcel=ParcelSpec.clamped(800),
            pickup_location="Primary Warehouse",
            actor=Actor.seller("seller-1"),
        )
        await sql_store.add_shipment(shipment)

        loaded = await sql_store.get_shipment_for_order("seller-1", "order-1")
        loaded.assign_courier(10, "Delhivery", "AWB123", Actor.seller("seller-1"))
        await sql_store.save_shipment(loaded)

        stored = await sql_store.get_shipment_for_order("seller-1", "order-1")
        assert stored.awb_code == "AWB123"
        assert stored.version == loaded.version
        assert await sql_store.get_shipment_for_order("seller-2", "order-1") is None

    @pytest.mark.asyncio
    async def test_one_live_shipment_per_order(self, sql_store, order_factory) -> None:
        """Test a second live shipment is refused until the first is cancelled."""
        await sql_store.add_order(order_factory())

        def _new(shipment_id: str) -> Shipment:
            return Shipment.create(
                order_id="order-1",
                seller_id="seller-1",
                shiprocket_order_id=f"SR-{shipment_id}",
                shiprocket_shipment_id=None,
                parcel=ParcelSpec.clamped(800),
                pickup_location="Primary Warehouse",
                actor=Actor.seller("seller-1"),
                shipment_id=shipment_id,
            )

        first = _new("ship-1")
        await sql_store.add_shipment(first)

        with pytest.raises(AlreadyShippedError):
            await sql_store.add_shipment(_new("ship-2"))

        first.cancel(Actor.seller("seller-1"))
        await sql_store.save_shipment(first)
        await sql_store.add_shipment(_new("ship-3"))

        live = await sql_store.get_shipment_for_order("seller-1", "order-1")
        assert live.id == "ship-3"
        assert live.status == ShipmentStatus.CREATED
