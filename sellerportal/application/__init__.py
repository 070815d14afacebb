"""Application layer module.

Contains application services (use cases) that orchestrate
domain logic and infrastructure.
"""

from sellerportal.application.events import (
    EventDispatcher,
    get_dispatcher,
)
from sellerportal.application.order_service import (
    OrderService,
    get_order_service,
)
from sellerportal.application.return_service import (
    ReturnService,
    get_return_service,
)
from sellerportal.application.shipment_service import (
    ShipmentService,
    get_shipment_service,
)

__all__ = [
    "EventDispatcher",
    "get_dispatcher",
    "OrderService",
    "get_order_service",
    "ReturnService",
    "get_return_service",
    "ShipmentService",
    "get_shipment_service",
]
