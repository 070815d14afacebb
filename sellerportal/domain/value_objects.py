"""Value Objects for the domain layer.

Value objects are immutable objects that are defined by their attributes
rather than identity. Each one knows how to turn itself into a plain
dictionary and back, which is the shape the store persists.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Self

from sellerportal.domain.base import ValueObject, utcnow
from sellerportal.domain.exceptions import ValidationError


def parse_datetime(value: str | datetime | None) -> datetime | None:
    """Parse an ISO timestamp as stored in documents."""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def format_datetime(value: datetime | None) -> str | None:
    """Format a timestamp for document storage."""
    return value.isoformat() if value else None


# ============================================================================
# Enumerations
# ============================================================================


class ShippingPayer(str, Enum):
    """Who bears the courier cost of an order."""

    SELLER = "seller"
    CUSTOMER = "customer"


class OrderType(str, Enum):
    """Order channel."""

    B2C = "b2c"
    B2B_DIRECT = "b2b_direct"


class ReturnType(str, Enum):
    """Kind of post-delivery request."""

    RETURN = "return"
    EXCHANGE = "exchange"


class OrderReturnStatus(str, Enum):
    """Return progress as mirrored on the order."""

    NONE = "none"
    REQUESTED = "requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    RECEIVED = "received"
    COMPLETED = "completed"


class ActorRole(str, Enum):
    """Role of whoever triggered a change."""

    SELLER = "seller"
    CUSTOMER = "customer"
    ADMIN = "admin"
    SYSTEM = "system"


# ============================================================================
# Actor
# ============================================================================


@dataclass(frozen=True)
class Actor(ValueObject):
    """Identity of whoever performs an operation.

    Passed explicitly into every operation and recorded in status history.
    """

    id: str
    role: ActorRole = ActorRole.SELLER

    @classmethod
    def seller(cls, seller_id: str) -> Self:
        return cls(id=seller_id, role=ActorRole.SELLER)

    @classmethod
    def system(cls) -> Self:
        return cls(id="system", role=ActorRole.SYSTEM)


# ============================================================================
# Addresses and line items
# ============================================================================


@dataclass(frozen=True)
class Address(ValueObject):
    """Postal address used for delivery and billing."""

    name: str
    street: str
    city: str
    state: str
    pincode: str
    phone: str | None = None
    country: str = "India"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
            "phone": self.phone,
            "country": self.country,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            name=data.get("name", ""),
            street=data.get("street", ""),
            city=data.get("city", ""),
            state=data.get("state", ""),
            pincode=data.get("pincode", ""),
            phone=data.get("phone"),
            country=data.get("country", "India"),
        )


@dataclass(frozen=True)
class OrderItem(ValueObject):
    """A line item snapshot taken when the order was placed."""

    product_id: str
    title: str
    quantity: int
    price: float
    sku: str | None = None

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValidationError(f"Invalid quantity {self.quantity}: must be positive", "quantity")

    @property
    def line_total(self) -> float:
        return round(self.price * self.quantity, 2)

    @property
    def effective_sku(self) -> str:
        """SKU sent to the shipping provider."""
        return self.sku or f"SKU-{self.product_id}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "title": self.title,
            "quantity": self.quantity,
            "price": self.price,
            "sku": self.sku,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            product_id=data["product_id"],
            title=data.get("title", ""),
            quantity=data["quantity"],
            price=data.get("price", 0.0),
            sku=data.get("sku"),
        )


@dataclass(frozen=True)
class TrackingInfo(ValueObject):
    """Courier tracking details shown to the customer."""

    courier_name: str
    tracking_number: str
    shipped_at: datetime
    estimated_delivery: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "courier_name": self.courier_name,
            "tracking_number": self.tracking_number,
            "shipped_at": format_datetime(self.shipped_at),
            "estimated_delivery": format_datetime(self.estimated_delivery),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            courier_name=data.get("courier_name", ""),
            tracking_number=data.get("tracking_number", ""),
            shipped_at=parse_datetime(data["shipped_at"]),
            estimated_delivery=parse_datetime(data.get("estimated_delivery")),
        )


# ============================================================================
# Parcel
# ============================================================================


MIN_WEIGHT_GRAMS = 50
MAX_WEIGHT_GRAMS = 50_000
MIN_DIMENSION_CM = 1.0
MAX_DIMENSION_CM = 200.0

DEFAULT_WEIGHT_GRAMS = 500
DEFAULT_DIMENSION_CM = 10.0


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class Dimensions(ValueObject):
    """Package dimensions in centimetres."""

    length: float
    width: float
    height: float

    def to_dict(self) -> dict[str, Any]:
        return {"length": self.length, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(length=data["length"], width=data["width"], height=data["height"])


@dataclass(frozen=True)
class ParcelSpec(ValueObject):
    """Physical parameters submitted to the shipping provider.

    Always built through ``clamped`` so courier rate calculation never sees
    a zero, negative or absurd value.
    """

    weight_grams: int
    dimensions: Dimensions

    @classmethod
    def clamped(
        cls,
        weight_grams: float | None = None,
        length: float | None = None,
        width: float | None = None,
        height: float | None = None,
    ) -> Self:
        weight = DEFAULT_WEIGHT_GRAMS if weight_grams is None else weight_grams
        dims = [
            DEFAULT_DIMENSION_CM if value is None else value
            for value in (length, width, height)
        ]
        return cls(
            weight_grams=int(round(_clamp(weight, MIN_WEIGHT_GRAMS, MAX_WEIGHT_GRAMS))),
            dimensions=Dimensions(*(_clamp(d, MIN_DIMENSION_CM, MAX_DIMENSION_CM) for d in dims)),
        )

    @property
    def weight_kg(self) -> float:
        return self.weight_grams / 1000


# ============================================================================
# Status History
# ============================================================================


@dataclass(frozen=True)
class StatusHistoryEntry(ValueObject):
    """One entry of an order's or return request's append-only history."""

    status: str
    changed_by: str
    changed_by_role: str
    timestamp: datetime
    note: str | None = None

    @classmethod
    def record(cls, status: str, actor: Actor, note: str | None = None) -> Self:
        return cls(
            status=status,
            changed_by=actor.id,
            changed_by_role=actor.role.value,
            timestamp=utcnow(),
            note=note,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "changed_by": self.changed_by,
            "changed_by_role": self.changed_by_role,
            "timestamp": format_datetime(self.timestamp),
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            status=data["status"],
            changed_by=data.get("changed_by", ""),
            changed_by_role=data.get("changed_by_role", ""),
            timestamp=parse_datetime(data["timestamp"]),
            note=data.get("note"),
        )


@dataclass(frozen=True)
class ShipmentHistoryEntry(ValueObject):
    """One entry of a shipment's append-only history."""

    status: str
    description: str
    changed_by: str
    timestamp: datetime

    @classmethod
    def record(cls, status: str, description: str, actor: Actor) -> Self:
        return cls(status=status, description=description, changed_by=actor.id, timestamp=utcnow())

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "description": self.description,
            "changed_by": self.changed_by,
            "timestamp": format_datetime(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(
            status=data["status"],
            description=data.get("description", ""),
            changed_by=data.get("changed_by", ""),
            timestamp=parse_datetime(data["timestamp"]),
        )
