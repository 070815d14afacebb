"""Marketplace persistence.

``MarketplaceStore`` is the storage port used by the application services.
Every write of an aggregate is conditional on the version that was read:
a mismatch raises ``ConcurrentModificationError`` and a successful write
bumps the version. Multi-record changes run inside ``transaction()``.

Two implementations exist:
- ``InMemoryMarketplaceStore`` (default, used by tests)
- ``SqlAlchemyMarketplaceStore`` in ``sql_store`` (PostgreSQL in production)
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from contextvars import ContextVar
from typing import Any

import structlog

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
from sellerportal.infrastructure.config import settings

logger = structlog.get_logger()


# ============================================================================
# Store Port
# ============================================================================


class MarketplaceStore(ABC):
    """Storage port for orders, shipments, returns, stock and sellers.

    Loads of tenant-owned records always filter by seller id. A record
    owned by another seller is reported exactly like a missing one.
    """

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Group writes so that they all apply or none do."""

    # Orders

    @abstractmethod
    async def get_order(self, seller_id: str, order_id: str) -> Order:
        """Load an order owned by the seller.

        Raises:
            NotFoundError: If absent or owned by another seller.
        """

    @abstractmethod
    async def add_order(self, order: Order) -> None: ...

    @abstractmethod
    async def save_order(self, order: Order) -> None:
        """Conditionally write the order.

        Raises:
            ConcurrentModificationError: If the stored version moved on.
        """

    # Shipments

    @abstractmethod
    async def get_shipment_for_order(self, seller_id: str, order_id: str) -> Shipment | None:
        """Load the order's shipment, preferring a non-cancelled one."""

    @abstractmethod
    async def add_shipment(self, shipment: Shipment) -> None:
        """Store a new shipment.

        Raises:
            AlreadyShippedError: If the order already has a non-cancelled shipment.
        """

    @abstractmethod
    async def save_shipment(self, shipment: Shipment) -> None: ...

    # Returns

    @abstractmethod
    async def get_return(self, seller_id: str, return_id: str) -> ReturnRequest:
        """Load a return request owned by the seller.

        Raises:
            NotFoundError: If absent or owned by another seller.
        """

    @abstractmethod
    async def add_return(self, request: ReturnRequest) -> None:
        """Store a new return request.

        Raises:
            ActiveReturnExistsError: If the order already has an active request.
        """

    @abstractmethod
    async def save_return(self, request: ReturnRequest) -> None: ...

    # Sellers and stock

    @abstractmethod
    async def get_seller(self, seller_id: str) -> SellerProfile | None: ...

    @abstractmethod
    async def save_seller(self, profile: SellerProfile) -> None: ...

    @abstractmethod
    async def get_product(self, product_id: str) -> ProductStock | None: ...

    @abstractmethod
    async def add_product(self, product: ProductStock) -> None: ...

    @abstractmethod
    async def restore_stock(
        self,
        order_id: str,
        items: list[OrderItem],
        decrement_order_count: bool,
    ) -> bool:
        """Return an order's units to stock, at most once per order id.

        Returns:
            True if stock was restored, False if already restored earlier.
        """


# ============================================================================
# In-Memory Store
# ============================================================================


class InMemoryMarketplaceStore(MarketplaceStore):
    """Process-local store holding plain documents.

    Aggregates are stored as dictionaries, so callers never share objects
    with the store. Transactions snapshot all tables and restore them on
    error; writes outside a transaction take the same lock.
    """

    def __init__(self) -> None:
        self._orders: dict[str, dict[str, Any]] = {}
        self._shipments: dict[str, dict[str, Any]] = {}
        self._returns: dict[str, dict[str, Any]] = {}
        self._products: dict[str, dict[str, Any]] = {}
        self._sellers: dict[str, dict[str, Any]] = {}
        self._stock_ledger: set[str] = set()
        self._lock = asyncio.Lock()
        self._in_transaction: ContextVar[bool] = ContextVar(
            f"in_memory_store_tx_{id(self)}", default=False
        )

    def _tables(self) -> tuple[Any, ...]:
        return (
            self._orders,
            self._shipments,
            self._returns,
            self._products,
            self._sellers,
            self._stock_ledger,
        )

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._in_transaction.get():
            yield
            return
        async with self._lock:
            snapshot = copy.deepcopy(self._tables())
            token = self._in_transaction.set(True)
            try:
                yield
            except BaseException:
                (
                    self._orders,
                    self._shipments,
                    self._returns,
                    self._products,
                    self._sellers,
                    self._stock_ledger,
                ) = snapshot
                raise
            finally:
                self._in_transaction.reset(token)

    @asynccontextmanager
    async def _write(self) -> AsyncIterator[None]:
        if self._in_transaction.get():
            yield
            return
        async with self._lock:
            yield

    @staticmethod
    def _check_version(
        table: dict[str, dict[str, Any]],
        entity_type: str,
        entity: Order | Shipment | ReturnRequest,
    ) -> None:
        stored = table.get(entity.id)
        if stored is None:
            raise NotFoundError(entity_type, entity.id)
        if stored["version"] != entity.version:
            raise ConcurrentModificationError(entity_type, entity.id, entity.version)

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    async def get_order(self, seller_id: str, order_id: str) -> Order:
        data = self._orders.get(order_id)
        if data is None or data["seller_id"] != seller_id:
            raise NotFoundError("Order", order_id)
        return Order.from_dict(copy.deepcopy(data))

    async def add_order(self, order: Order) -> None:
        async with self._write():
            self._orders[order.id] = order.to_dict()

    async def save_order(self, order: Order) -> None:
        async with self._write():
            self._check_version(self._orders, "Order", order)
            order.version += 1
            self._orders[order.id] = order.to_dict()

    # -------------------------------------------------------------------------
    # Shipments
    # -------------------------------------------------------------------------

    async def get_shipment_for_order(self, seller_id: str, order_id: str) -> Shipment | None:
        candidates = [
            data
            for data in self._shipments.values()
            if data["order_id"] == order_id and data["seller_id"] == seller_id
        ]
        if not candidates:
            return None
        candidates.sort(key=lambda d: (d["status"] != "cancelled", d["created_at"]))
        return Shipment.from_dict(copy.deepcopy(candidates[-1]))

    async def add_shipment(self, shipment: Shipment) -> None:
        async with self._write():
            for data in self._shipments.values():
                if (
                    not shipment.is_cancelled
                    and data["order_id"] == shipment.order_id
                    and data["status"] != ShipmentStatus.CANCELLED.value
                ):
                    raise AlreadyShippedError(shipment.order_id, data["id"])
            self._shipments[shipment.id] = shipment.to_dict()

    async def save_shipment(self, shipment: Shipment) -> None:
        async with self._write():
            self._check_version(self._shipments, "Shipment", shipment)
            shipment.version += 1
            self._shipments[shipment.id] = shipment.to_dict()

    # -------------------------------------------------------------------------
    # Returns
    # -------------------------------------------------------------------------

    async def get_return(self, seller_id: str, return_id: str) -> ReturnRequest:
        data = self._returns.get(return_id)
        if data is None or data["seller_id"] != seller_id:
            raise NotFoundError("Return request", return_id)
        return ReturnRequest.from_dict(copy.deepcopy(data))

    async def add_return(self, request: ReturnRequest) -> None:
        async with self._write():
            for data in self._returns.values():
                if (
                    data["order_id"] == request.order_id
                    and ReturnRequest.from_dict(data).is_active
                ):
                    raise ActiveReturnExistsError(request.order_id, data["id"])
            self._returns[request.id] = request.to_dict()

    async def save_return(self, request: ReturnRequest) -> None:
        async with self._write():
            self._check_version(self._returns, "Return request", request)
            request.version += 1
            self._returns[request.id] = request.to_dict()

    # -------------------------------------------------------------------------
    # Sellers and stock
    # -------------------------------------------------------------------------

    async def get_seller(self, seller_id: str) -> SellerProfile | None:
        data = self._sellers.get(seller_id)
        return SellerProfile.from_dict(data) if data else None

    async def save_seller(self, profile: SellerProfile) -> None:
        async with self._write():
            self._sellers[profile.seller_id] = profile.to_dict()

    async def get_product(self, product_id: str) -> ProductStock | None:
        data = self._products.get(product_id)
        return ProductStock.from_dict(data) if data else None

    async def add_product(self, product: ProductStock) -> None:
        async with self._write():
            self._products[product.product_id] = product.to_dict()

    async def restore_stock(
        self,
        order_id: str,
        items: list[OrderItem],
        decrement_order_count: bool,
    ) -> bool:
        async with self._write():
            if order_id in self._stock_ledger:
                logger.info("Stock already restored", order_id=order_id)
                return False
            for item in items:
                data = self._products.get(item.product_id)
                if data is None:
                    logger.warning(
                        "Product missing during stock restore",
                        order_id=order_id,
                        product_id=item.product_id,
                    )
                    continue
                product = ProductStock.from_dict(data)
                product.restore(item.quantity, decrement_order_count)
                self._products[item.product_id] = product.to_dict()
            self._stock_ledger.add(order_id)
            return True


# ============================================================================
# Store Accessors
# ============================================================================


_store: MarketplaceStore | None = None


def build_store(backend: str | None = None) -> MarketplaceStore:
    """Build the store for the configured backend."""
    backend = backend or settings.storage_backend
    if backend == "sql":
        from sellerportal.infrastructure.sql_store import SqlAlchemyMarketplaceStore

        return SqlAlchemyMarketplaceStore()
    if backend != "memory":
        raise ValueError(f"Unknown storage backend: {backend}")
    return InMemoryMarketplaceStore()


def get_store() -> MarketplaceStore:
    """Get store singleton."""
    global _store
    if _store is None:
        _store = build_store()
    return _store


def reset_store(store: MarketplaceStore | None = None) -> MarketplaceStore:
    """Reset store (for testing)."""
    global _store
    _store = store or InMemoryMarketplaceStore()
    return _store
