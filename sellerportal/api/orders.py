"""Order API endpoints.

Provides endpoints for the seller side of the order lifecycle:
- GET /orders/{id} - order details and status history
- PUT /orders/{id}/status - move the order along its lifecycle
- PUT /orders/{id}/ship - mark shipped with manual tracking details
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from sellerportal.api.dependencies import SellerActor
from sellerportal.api.errors import raise_for_result
from sellerportal.api.schemas import (
    ErrorResponse,
    OrderResponse,
    OrderSchema,
    OrderStatusUpdateRequest,
    OrderUpdateResponse,
    ShipOrderRequest,
)
from sellerportal.application.order_service import OrderService, get_order_service
from sellerportal.domain.entities import Order

router = APIRouter(prefix="/orders", tags=["Orders"])


# ============================================================================
# Dependencies
# ============================================================================


def get_service(request: Request) -> OrderService:
    """Get order service with request ID."""
    request_id = getattr(request.state, "request_id", None)
    return get_order_service(request_id=request_id)


# ============================================================================
# Converters
# ============================================================================


def order_to_schema(order: Order) -> OrderSchema:
    """Convert an Order aggregate to its API schema."""
    return OrderSchema.model_validate(order.to_dict())


# ============================================================================
# Endpoints
# ============================================================================


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Get order details",
    description="Get an order owned by the calling seller, including its status history.",
)
async def get_order(
    order_id: str,
    actor: SellerActor,
    service: Annotated[OrderService, Depends(get_service)],
) -> OrderResponse:
    """Get an order by ID.

    Args:
        order_id: Order identifier.
        actor: Calling seller.
        service: Order service.

    Returns:
        Order details.

    Raises:
        HTTPException: If the order is not found for this seller.
    """
    result = await service.get_order(actor.id, order_id)
    raise_for_result(result)
    return OrderResponse(order=order_to_schema(result.order))


@router.put(
    "/{order_id}/status",
    response_model=OrderUpdateResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Update order status",
    description="Move an order along its lifecycle. Cancelling restores stock, "
    "cancels the shipment and refunds a paid order.",
)
async def update_order_status(
    order_id: str,
    body: OrderStatusUpdateRequest,
    actor: SellerActor,
    service: Annotated[OrderService, Depends(get_service)],
) -> OrderUpdateResponse:
    """Update an order's status.

    Args:
        order_id: Order identifier.
        body: Target status and optional note.
        actor: Calling seller.
        service: Order service.

    Returns:
        Updated order with a summary message.

    Raises:
        HTTPException: If the transition is not allowed, blocked or conflicting.
    """
    result = await service.update_status(
        actor.id,
        order_id,
        body.status,
        actor=actor,
        note=body.note,
    )
    raise_for_result(result)
    return OrderUpdateResponse(order=order_to_schema(result.order), message=result.message)


@router.put(
    "/{order_id}/ship",
    response_model=OrderUpdateResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Ship order manually",
    description="Mark an order shipped with courier and tracking number entered by the seller.",
)
async def ship_order(
    order_id: str,
    body: ShipOrderRequest,
    actor: SellerActor,
    service: Annotated[OrderService, Depends(get_service)],
) -> OrderUpdateResponse:
    """Ship an order with manual tracking details.

    Args:
        order_id: Order identifier.
        body: Courier, tracking number and expected delivery.
        actor: Calling seller.
        service: Order service.

    Returns:
        Shipped order.

    Raises:
        HTTPException: If the order cannot be shipped.
    """
    result = await service.ship_order(
        actor.id,
        order_id,
        courier_name=body.courier_name,
        tracking_number=body.tracking_number,
        estimated_delivery=body.estimated_delivery,
        actor=actor,
    )
    raise_for_result(result)
    return OrderUpdateResponse(order=order_to_schema(result.order), message=result.message)
