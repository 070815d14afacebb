"""SQLAlchemy implementation of the marketplace store.

Each write of an aggregate is an ``UPDATE ... WHERE id = :id AND
version = :expected``; zero affected rows means another request got there
first. ``transaction()`` binds one session to the current task so every
store call inside it joins the same database transaction.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sellerportal.domain.entities import (
    Order,
    ProductStock,
    ReturnRequest,
    SellerProfile,
    Shipment,
)
from sellerportal.domain.exceptions import (
    ActiveReturnExistsError,
    AlreadyShippedError,
    ConcurrentModificationError,
    NotFoundError,
)
from sellerportal.domain.state_machines import ShipmentStatus
from sellerportal.domain.value_objects import OrderItem
from sellerportal.infrastructure.database import get_session_factory
from sellerportal.infrastructure.models import (
    OrderModel,
    ProductModel,
    ReturnRequestModel,
    SellerProfileModel,
    ShipmentModel,
    StockAdjustmentModel,
)
from sellerportal.infrastructure.store import MarketplaceStore

logger = structlog.get_logger()

_current_session: ContextVar[AsyncSession | None] = ContextVar(
    "sql_store_session", default=None
)


def _document(row: Any) -> dict[str, Any]:
    data = dict(row.data)
    data["version"] = row.version
    return data


class SqlAlchemyMarketplaceStore(MarketplaceStore):
    """Store backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or get_session_factory()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if _current_session.get() is not None:
            yield
            return
        async with self._session_factory() as session:
            async with session.begin():
                token = _current_session.set(session)
                try:
                    yield
                finally:
                    _current_session.reset(token)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        session = _current_session.get()
        if session is not None:
            yield session
            return
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    async def _conditional_update(
        self,
        session: AsyncSession,
        model: type,
        entity_type: str,
        entity: Order | Shipment | ReturnRequest,
        **columns: Any,
    ) -> None:
        expected = entity.version
        document = entity.to_dict()
        document["version"] = expected + 1
        result = await session.execute(
            update(model)
            .where(model.id == entity.id, model.version == expected)
            .values(
                version=expected + 1,
                data=document,
                updated_at=datetime.now(timezone.utc),
                **columns,
            )
        )
        if result.rowcount != 1:
            logger.warning(
                "Conditional write rejected",
                entity_type=entity_type,
                entity_id=entity.id,
                expected_version=expected,
            )
            raise ConcurrentModificationError(entity_type, entity.id, expected)
        entity.version = expected + 1

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    async def get_order(self, seller_id: str, order_id: str) -> Order:
        async with self._session() as session:
            row = (
                await session.execute(
                    select(OrderModel).where(
                        OrderModel.id == order_id,
                        OrderModel.seller_id == seller_id,
                    )
                )
            ).scalar_one_or_none()
            if row is None:
                raise NotFoundError("Order", order_id)
            return Order.from_dict(_document(row))

    async def add_order(self, order: Order) -> None:
        async with self._session() as session:
            session.add(
                OrderModel(
                    id=order.id,
                    order_number=order.order_number,
                    seller_id=order.seller_id,
                    customer_id=order.customer_id,
                    status=order.status.value,
                    payment_status=order.payment_status.value,
                    version=order.version,
                    data=order.to_dict(),
                    created_at=order.created_at,
                    updated_at=order.updated_at,
                )
            )
            await session.flush()

    async def save_order(self, order: Order) -> None:
        async with self._session() as session:
            await self._conditional_update(
                session,
                OrderModel,
                "Order",
                order,
                status=order.status.value,
                payment_status=order.payment_status.value,
            )

    # -------------------------------------------------------------------------
    # Shipments
    # -------------------------------------------------------------------------

    async def get_shipment_for_order(self, seller_id: str, order_id: str) -> Shipment | None:
        async with self._session() as session:
            rows = (
                await session.execute(
                    select(ShipmentModel)
                    .where(
                        ShipmentModel.order_id == order_id,
                        ShipmentModel.seller_id == seller_id,
                    )
                    .order_by(ShipmentModel.created_at)
                )
            ).scalars().all()
            if not rows:
                return None
            active = [row for row in rows if row.status != ShipmentStatus.CANCELLED.value]
            row = (active or rows)[-1]
            return Shipment.from_dict(_document(row))

    async def add_shipment(self, shipment: Shipment) -> None:
        async with self._session() as session:
            if not shipment.is_cancelled:
                live = (
                    await session.execute(
                        select(ShipmentModel.id).where(
                            ShipmentModel.order_id == shipment.order_id,
                            ShipmentModel.status != ShipmentStatus.CANCELLED.value,
                        )
                    )
                ).scalars().first()
                if live is not None:
                    raise AlreadyShippedError(shipment.order_id, live)
            session.add(
                ShipmentModel(
                    id=shipment.id,
                    order_id=shipment.order_id,
                    seller_id=shipment.seller_id,
                    status=shipment.status.value,
                    shiprocket_order_id=shipment.shiprocket_order_id,
                    version=shipment.version,
                    data=shipment.to_dict(),
                    created_at=shipment.created_at,
                    updated_at=shipment.updated_at,
                )
            )
            try:
                await session.flush()
            except IntegrityError as e:
                # A concurrent insert won the live-shipment index
                raise AlreadyShippedError(shipment.order_id) from e

    async def save_shipment(self, shipment: Shipment) -> None:
        async with self._session() as session:
            await self._conditional_update(
                session,
                ShipmentModel,
                "Shipment",
                shipment,
                status=shipment.status.value,
                shiprocket_order_id=shipment.shiprocket_order_id,
            )

    # -------------------------------------------------------------------------
    # Returns
    # -------------------------------------------------------------------------

    async def get_return(self, seller_id: str, return_id: str) -> ReturnRequest:
        async with self._session() as session:
            row = (
                await session.execute(
                    select(ReturnRequestModel).where(
                        ReturnRequestModel.id == return_id,
                        ReturnRequestModel.seller_id == seller_id,
                    )
                )
            ).scalar_one_or_none()
            if row is None:
                raise NotFoundError("Return request", return_id)
            return ReturnRequest.from_dict(_document(row))

    async def add_return(self, request: ReturnRequest) -> None:
        async with self._session() as session:
            active = (
                await session.execute(
                    select(ReturnRequestModel.id).where(
                        ReturnRequestModel.order_id == request.order_id,
                        ReturnRequestModel.is_active.is_(True),
                    )
                )
            ).scalar_one_or_none()
            if active is not None:
                raise ActiveReturnExistsError(request.order_id, active)
            session.add(
                ReturnRequestModel(
                    id=request.id,
                    order_id=request.order_id,
                    seller_id=request.seller_id,
                    status=request.status.value,
                    is_active=request.is_active,
                    version=request.version,
                    data=request.to_dict(),
                    created_at=request.created_at,
                    updated_at=request.updated_at,
                )
            )
            await session.flush()

    async def save_return(self, request: ReturnRequest) -> None:
        async with self._session() as session:
            await self._conditional_update(
                session,
                ReturnRequestModel,
                "Return request",
                request,
                status=request.status.value,
                is_active=request.is_active,
            )

    # -------------------------------------------------------------------------
    # Sellers and stock
    # -------------------------------------------------------------------------

    async def get_seller(self, seller_id: str) -> SellerProfile | None:
        async with self._session() as session:
            row = await session.get(SellerProfileModel, seller_id)
            if row is None:
                return None
            return SellerProfile(
                seller_id=row.seller_id,
                email=row.email,
                business_name=row.business_name,
                pickup_location_name=row.pickup_location_name,
                pickup_pincode=row.pickup_pincode,
                business_pincode=row.business_pincode,
            )

    async def save_seller(self, profile: SellerProfile) -> None:
        async with self._session() as session:
            await session.merge(SellerProfileModel(**profile.to_dict()))
            await session.flush()

    async def get_product(self, product_id: str) -> ProductStock | None:
        async with self._session() as session:
            row = await session.get(ProductModel, product_id)
            if row is None:
                return None
            return ProductStock(
                product_id=row.product_id,
                seller_id=row.seller_id,
                title=row.title,
                stock=row.stock,
                order_count=row.order_count,
            )

    async def add_product(self, product: ProductStock) -> None:
        async with self._session() as session:
            session.add(ProductModel(**product.to_dict()))
            await session.flush()

    async def restore_stock(
        self,
        order_id: str,
        items: list[OrderItem],
        decrement_order_count: bool,
    ) -> bool:
        async with self._session() as session:
            if await session.get(StockAdjustmentModel, order_id) is not None:
                logger.info("Stock already restored", order_id=order_id)
                return False
            # Primary key on order_id rejects a concurrent second restore at flush.
            session.add(StockAdjustmentModel(order_id=order_id))
            await session.flush()
            for item in items:
                values: dict[str, Any] = {"stock": ProductModel.stock + item.quantity}
                if decrement_order_count:
                    values["order_count"] = case(
                        (
                            ProductModel.order_count > item.quantity,
                            ProductModel.order_count - item.quantity,
                        ),
                        else_=0,
                    )
                # Increment in the database so concurrent restores do not overwrite each other
                result = await session.execute(
                    update(ProductModel)
                    .where(ProductModel.product_id == item.product_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    logger.warning(
                        "Product missing during stock restore",
                        order_id=order_id,
                        product_id=item.product_id,
                    )
            return True
