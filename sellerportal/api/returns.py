"""Return API endpoints.

Provides endpoints for seller actions on return and exchange requests:
- GET /returns/{id} - request details
- PUT /returns/{id}/approve - approve a requested return
- PUT /returns/{id}/reject - reject with a reason
- PUT /returns/{id}/received - record the item arriving back
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from sellerportal.api.dependencies import SellerActor
from sellerportal.api.errors import raise_for_result
from sellerportal.api.schemas import (
    ErrorResponse,
    RejectReturnRequest,
    ReturnNoteRequest,
    ReturnRequestSchema,
    ReturnResponse,
)
from sellerportal.application.return_service import (
    ReturnResult,
    ReturnService,
    get_return_service,
)

router = APIRouter(prefix="/returns", tags=["Returns"])

ACTION_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def get_service(request: Request) -> ReturnService:
    """Get return service with request ID."""
    request_id = getattr(request.state, "request_id", None)
    return get_return_service(request_id=request_id)


def to_response(result: ReturnResult) -> ReturnResponse:
    """Convert a successful service result to the API response."""
    return ReturnResponse(
        return_request=ReturnRequestSchema.model_validate(result.return_request.to_dict()),
        message=result.message,
        warning=result.warning,
    )


@router.get(
    "/{return_id}",
    response_model=ReturnResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Get return request",
)
async def get_return(
    return_id: str,
    actor: SellerActor,
    service: Annotated[ReturnService, Depends(get_service)],
) -> ReturnResponse:
    """Get a return request owned by the calling seller."""
    result = await service.get_return(actor.id, return_id)
    raise_for_result(result)
    return to_response(result)


@router.put(
    "/{return_id}/approve",
    response_model=ReturnResponse,
    responses=ACTION_RESPONSES,
    summary="Approve return",
    description="Approve a requested return or exchange.",
)
async def approve_return(
    return_id: str,
    actor: SellerActor,
    service: Annotated[ReturnService, Depends(get_service)],
    body: ReturnNoteRequest | None = None,
) -> ReturnResponse:
    """Approve a return request.

    Args:
        return_id: Return request identifier.
        actor: Calling seller.
        service: Return service.
        body: Optional note.

    Returns:
        The approved request.
    """
    result = await service.approve(
        actor.id, return_id, actor=actor, note=body.note if body else None
    )
    raise_for_result(result)
    return to_response(result)


@router.put(
    "/{return_id}/reject",
    response_model=ReturnResponse,
    responses=ACTION_RESPONSES,
    summary="Reject return",
    description="Reject a requested return or exchange. A reason is required.",
)
async def reject_return(
    return_id: str,
    body: RejectReturnRequest,
    actor: SellerActor,
    service: Annotated[ReturnService, Depends(get_service)],
) -> ReturnResponse:
    """Reject a return request.

    Args:
        return_id: Return request identifier.
        body: Rejection reason.
        actor: Calling seller.
        service: Return service.

    Returns:
        The rejected request.
    """
    result = await service.reject(actor.id, return_id, body.reason, actor=actor)
    raise_for_result(result)
    return to_response(result)


@router.put(
    "/{return_id}/received",
    response_model=ReturnResponse,
    responses=ACTION_RESPONSES,
    summary="Mark return received",
    description="Record that the item arrived back. Returns paid online are refunded; "
    "exchanges complete immediately.",
)
async def mark_return_received(
    return_id: str,
    actor: SellerActor,
    service: Annotated[ReturnService, Depends(get_service)],
    body: ReturnNoteRequest | None = None,
) -> ReturnResponse:
    """Mark a return request received.

    Args:
        return_id: Return request identifier.
        actor: Calling seller.
        service: Return service.
        body: Optional note.

    Returns:
        The request, refunded or exchanged when that completed.
    """
    result = await service.mark_received(
        actor.id, return_id, actor=actor, note=body.note if body else None
    )
    raise_for_result(result)
    return to_response(result)
