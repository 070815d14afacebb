"""Create orders, shipments, return requests, stock and seller tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    """Create seller portal tables."""
    op.create_table(
        "orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("order_number", sa.String(50), nullable=False, unique=True),
        sa.Column("seller_id", sa.String(100), nullable=False, index=True),
        sa.Column("customer_id", sa.String(100), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False, index=True),
        sa.Column("payment_status", sa.String(20), nullable=False),
        # Conditional writes compare against this column
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("data", postgresql.JSONB, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "shipments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "order_id",
            sa.String(36),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("seller_id", sa.String(100), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("shiprocket_order_id", sa.String(50), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("data", postgresql.JSONB, nullable=False),
        *_timestamps(),
    )
    # At most one live shipment per order
    op.create_index(
        "uq_shipments_one_live",
        "shipments",
        ["order_id"],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'"),
    )

    op.create_table(
        "return_requests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "order_id",
            sa.String(36),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("seller_id", sa.String(100), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("data", postgresql.JSONB, nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "ix_return_requests_order_active",
        "return_requests",
        ["order_id", "is_active"],
    )
    # At most one active return request per order
    op.create_index(
        "uq_return_requests_one_active",
        "return_requests",
        ["order_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "products",
        sa.Column("product_id", sa.String(100), primary_key=True),
        sa.Column("seller_id", sa.String(100), nullable=False, index=True),
        sa.Column("title", sa.String(500), nullable=False, server_default=""),
        sa.Column("stock", sa.Integer, nullable=False, server_default="0"),
        sa.Column("order_count", sa.Integer, nullable=False, server_default="0"),
    )

    op.create_table(
        "stock_adjustments",
        sa.Column("order_id", sa.String(36), primary_key=True),
        sa.Column("reason", sa.String(50), nullable=False, server_default="order_cancelled"),
        sa.Column(
            "applied_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "seller_profiles",
        sa.Column("seller_id", sa.String(100), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("business_name", sa.String(255), nullable=True),
        sa.Column("pickup_location_name", sa.String(100), nullable=True),
        sa.Column("pickup_pincode", sa.String(10), nullable=True),
        sa.Column("business_pincode", sa.String(10), nullable=True),
    )


def downgrade() -> None:
    """Drop seller portal tables."""
    op.drop_table("seller_profiles")
    op.drop_table("stock_adjustments")
    op.drop_table("products")
    op.drop_index("uq_return_requests_one_active", table_name="return_requests")
    op.drop_index("ix_return_requests_order_active", table_name="return_requests")
    op.drop_table("return_requests")
    op.drop_index("uq_shipments_one_live", table_name="shipments")
    op.drop_table("shipments")
    op.drop_table("orders")
