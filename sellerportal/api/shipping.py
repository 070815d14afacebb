"""Shipping API endpoints.

Provides endpoints for shipments booked through the shipping provider:
- POST /shipping/serviceability - couriers and rates for an order
- POST /shipping/{order_id}/create - create the provider shipment
- POST /shipping/{order_id}/assign-courier - book a courier
- POST /shipping/{order_id}/pickup - schedule pickup
- GET /shipping/{order_id}/track - live tracking
- GET /shipping/{order_id}/label - shipping label
- POST /shipping/pickup-location - register the seller's pickup address
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from sellerportal.api.dependencies import SellerActor
from sellerportal.api.errors import raise_for_result
from sellerportal.api.schemas import (
    AssignCourierRequest,
    CourierOptionSchema,
    CreateShipmentRequest,
    ErrorResponse,
    LabelResponse,
    PickupLocationRequest,
    PickupLocationResponse,
    PickupLocationSchema,
    ServiceabilityRequest,
    ServiceabilityResponse,
    ShipmentResponse,
    ShipmentSchema,
    TrackingResponse,
    TrackingSchema,
)
from sellerportal.application.shipment_service import ShipmentService, get_shipment_service
from sellerportal.domain.entities import Shipment
from sellerportal.infrastructure.shiprocket_client import PickupLocationInput

router = APIRouter(prefix="/shipping", tags=["Shipping"])

PROVIDER_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


# ============================================================================
# Dependencies
# ============================================================================


def get_service(request: Request) -> ShipmentService:
    """Get shipment service with request ID."""
    request_id = getattr(request.state, "request_id", None)
    return get_shipment_service(request_id=request_id)


# ============================================================================
# Converters
# ============================================================================


def shipment_to_schema(shipment: Shipment) -> ShipmentSchema:
    """Convert a Shipment aggregate to its API schema."""
    return ShipmentSchema.model_validate(shipment.to_dict())


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "/serviceability",
    response_model=ServiceabilityResponse,
    responses=PROVIDER_ERROR_RESPONSES,
    summary="Check serviceability",
    description="List couriers serving the order's lane with rates. When the customer "
    "pays shipping, couriers costing more than the customer paid are excluded.",
)
async def check_serviceability(
    body: ServiceabilityRequest,
    actor: SellerActor,
    service: Annotated[ShipmentService, Depends(get_service)],
) -> ServiceabilityResponse:
    """Check courier serviceability for an order.

    Args:
        body: Order and optional parcel weight.
        actor: Calling seller.
        service: Shipment service.

    Returns:
        Couriers with pickup and delivery pincodes.
    """
    result = await service.check_serviceability(actor.id, body.order_id, weight=body.weight)
    raise_for_result(result)
    return ServiceabilityResponse(
        couriers=[CourierOptionSchema.model_validate(c) for c in result.couriers],
        pickup_pincode=result.pickup_pincode,
        delivery_pincode=result.delivery_pincode,
    )


@router.post(
    "/pickup-location",
    response_model=PickupLocationResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Register pickup location",
    description="Register the seller's pickup address with the shipping provider, "
    "or update it when one is already registered.",
)
async def register_pickup_location(
    body: PickupLocationRequest,
    actor: SellerActor,
    service: Annotated[ShipmentService, Depends(get_service)],
) -> PickupLocationResponse:
    """Register or update the seller's pickup location.

    Args:
        body: Pickup address.
        actor: Calling seller.
        service: Shipment service.

    Returns:
        The registered location.
    """
    result = await service.register_pickup_location(
        actor.id, PickupLocationInput(**body.model_dump())
    )
    raise_for_result(result)
    return PickupLocationResponse(
        pickup_location=PickupLocationSchema.model_validate(result.pickup_location)
    )


@router.post(
    "/{order_id}/create",
    response_model=ShipmentResponse,
    responses=PROVIDER_ERROR_RESPONSES,
    summary="Create shipment",
    description="Create the provider order for a paid order and record the shipment. "
    "Calling again for the same order returns ALREADY_SHIPPED.",
)
async def create_shipment(
    order_id: str,
    body: CreateShipmentRequest,
    actor: SellerActor,
    service: Annotated[ShipmentService, Depends(get_service)],
) -> ShipmentResponse:
    """Create a shipment for an order.

    Args:
        order_id: Order identifier.
        body: Parcel weight and dimensions.
        actor: Calling seller.
        service: Shipment service.

    Returns:
        The shipment, with a warning when the provider shipment id is pending.

    Raises:
        HTTPException: If the order is unpaid, already shipped or the provider fails.
    """
    result = await service.create_shipment(
        actor.id,
        order_id,
        weight=body.weight,
        length=body.length,
        width=body.width,
        height=body.height,
        actor=actor,
    )
    raise_for_result(result)
    return ShipmentResponse(
        shipment=shipment_to_schema(result.shipment),
        message="Shipment created",
        warning=result.warning,
    )


@router.post(
    "/{order_id}/assign-courier",
    response_model=ShipmentResponse,
    responses=PROVIDER_ERROR_RESPONSES,
    summary="Assign courier",
    description="Book a courier for the order's shipment and obtain the AWB.",
)
async def assign_courier(
    order_id: str,
    body: AssignCourierRequest,
    actor: SellerActor,
    service: Annotated[ShipmentService, Depends(get_service)],
) -> ShipmentResponse:
    """Assign a courier to an order's shipment.

    Args:
        order_id: Order identifier.
        body: Courier and quoted rate.
        actor: Calling seller.
        service: Shipment service.

    Returns:
        The shipment with its AWB.
    """
    result = await service.assign_courier(
        actor.id,
        order_id,
        body.courier_id,
        courier_rate=body.courier_rate,
        actor=actor,
    )
    raise_for_result(result)
    return ShipmentResponse(
        shipment=shipment_to_schema(result.shipment),
        message=f"Courier assigned (AWB: {result.shipment.awb_code})",
    )


@router.post(
    "/{order_id}/pickup",
    response_model=ShipmentResponse,
    responses=PROVIDER_ERROR_RESPONSES,
    summary="Schedule pickup",
    description="Request courier pickup and mark the order shipped.",
)
async def schedule_pickup(
    order_id: str,
    actor: SellerActor,
    service: Annotated[ShipmentService, Depends(get_service)],
) -> ShipmentResponse:
    """Schedule pickup for an order's shipment.

    Args:
        order_id: Order identifier.
        actor: Calling seller.
        service: Shipment service.

    Returns:
        The shipment in pickup_scheduled.
    """
    result = await service.schedule_pickup(actor.id, order_id, actor=actor)
    raise_for_result(result)
    return ShipmentResponse(
        shipment=shipment_to_schema(result.shipment),
        message=result.message,
    )


@router.get(
    "/{order_id}/track",
    response_model=TrackingResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Track shipment",
    description="Get the shipment with live courier tracking. Tracking is omitted "
    "when the courier lookup fails.",
)
async def track_shipment(
    order_id: str,
    actor: SellerActor,
    service: Annotated[ShipmentService, Depends(get_service)],
) -> TrackingResponse:
    """Track an order's shipment.

    Args:
        order_id: Order identifier.
        actor: Calling seller.
        service: Shipment service.

    Returns:
        Shipment and tracking snapshot.
    """
    result = await service.track_shipment(actor.id, order_id)
    raise_for_result(result)
    tracking = (
        TrackingSchema.model_validate(result.tracking.to_dict()) if result.tracking else None
    )
    return TrackingResponse(shipment=shipment_to_schema(result.shipment), tracking=tracking)


@router.get(
    "/{order_id}/label",
    response_model=LabelResponse,
    responses=PROVIDER_ERROR_RESPONSES,
    summary="Get shipping label",
    description="Generate the shipping label and return its URL.",
)
async def get_label(
    order_id: str,
    actor: SellerActor,
    service: Annotated[ShipmentService, Depends(get_service)],
) -> LabelResponse:
    """Generate a shipping label.

    Args:
        order_id: Order identifier.
        actor: Calling seller.
        service: Shipment service.

    Returns:
        Label URL.
    """
    result = await service.generate_label(actor.id, order_id)
    raise_for_result(result)
    return LabelResponse(label_url=result.label_url)
