"""API layer module.

Contains FastAPI routers and request/response schemas.
"""

from sellerportal.api.health import router as health_router
from sellerportal.api.orders import router as orders_router
from sellerportal.api.returns import router as returns_router
from sellerportal.api.shipping import router as shipping_router

__all__ = [
    "health_router",
    "orders_router",
    "returns_router",
    "shipping_router",
]
