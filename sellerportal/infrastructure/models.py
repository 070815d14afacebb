"""SQLAlchemy models for database tables.

Each aggregate is stored as one row: the columns queries filter on
(tenant, status, foreign keys) plus the full document in ``data``.
``version`` drives the conditional writes in the SQL store.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB

from sellerportal.infrastructure.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere
Document = JSON().with_variant(JSONB(), "postgresql")


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Order Models
# ============================================================================


class OrderModel(Base):
    """Order document with its lifecycle status."""

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True)
    order_number = Column(String(50), nullable=False, unique=True)
    seller_id = Column(String(100), nullable=False, index=True)
    customer_id = Column(String(100), nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)
    payment_status = Column(String(20), nullable=False)
    version = Column(Integer, nullable=False, default=1)
    data = Column(Document, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)


class ShipmentModel(Base):
    """Shipment document, one per order."""

    __tablename__ = "shipments"

    id = Column(String(36), primary_key=True)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    seller_id = Column(String(100), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    shiprocket_order_id = Column(String(50), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    data = Column(Document, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    # At most one live shipment per order
    __table_args__ = (
        Index(
            "uq_shipments_one_live",
            "order_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
    )


# ============================================================================
# Return Models
# ============================================================================


class ReturnRequestModel(Base):
    """Return/exchange request document."""

    __tablename__ = "return_requests"

    id = Column(String(36), primary_key=True)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    seller_id = Column(String(100), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)
    data = Column(Document, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    __table_args__ = (Index("ix_return_requests_order_active", "order_id", "is_active"),)


# ============================================================================
# Inventory and Seller Models
# ============================================================================


class ProductModel(Base):
    """Stock counters of a product listing."""

    __tablename__ = "products"

    product_id = Column(String(100), primary_key=True)
    seller_id = Column(String(100), nullable=False, index=True)
    title = Column(String(500), nullable=False, default="")
    stock = Column(Integer, nullable=False, default=0)
    order_count = Column(Integer, nullable=False, default=0)


class StockAdjustmentModel(Base):
    """Ledger of stock restorations, one row per order.

    The primary key makes a second restoration for the same order fail.
    """

    __tablename__ = "stock_adjustments"

    order_id = Column(String(36), primary_key=True)
    reason = Column(String(50), nullable=False, default="order_cancelled")
    applied_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class SellerProfileModel(Base):
    """Seller details used for pickup resolution."""

    __tablename__ = "seller_profiles"

    seller_id = Column(String(100), primary_key=True)
    email = Column(String(255), nullable=True)
    business_name = Column(String(255), nullable=True)
    pickup_location_name = Column(String(100), nullable=True)
    pickup_pincode = Column(String(10), nullable=True)
    business_pincode = Column(String(10), nullable=True)
