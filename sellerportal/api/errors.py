"""Mapping of service error codes to HTTP responses."""

from fastapi import HTTPException, status

from sellerportal.application.results import ServiceResult

# Error codes the client can fix by changing the request or waiting on the record
BAD_REQUEST_CODES = frozenset(
    {
        "VALIDATION_ERROR",
        "INVALID_TRANSITION",
        "CANCELLATION_BLOCKED",
        "ALREADY_SHIPPED",
        "ORDER_NOT_PAID",
        "MISSING_SHIPMENT_ID",
        "NO_PICKUP_LOCATION",
        "PICKUP_UNVERIFIED",
        "RETURN_ALREADY_ACTIVE",
    }
)

UPSTREAM_CODES = frozenset({"PROVIDER_ERROR", "GATEWAY_ERROR"})


def status_for_error(error_code: str | None) -> int:
    """HTTP status for a service error code."""
    if error_code in BAD_REQUEST_CODES:
        return status.HTTP_400_BAD_REQUEST
    if error_code and error_code.endswith("_NOT_FOUND"):
        return status.HTTP_404_NOT_FOUND
    if error_code == "CONCURRENT_MODIFICATION":
        return status.HTTP_409_CONFLICT
    if error_code in UPSTREAM_CODES:
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def raise_for_result(result: ServiceResult) -> None:
    """Raise the HTTPException matching a failed service result.

    Raises:
        HTTPException: If the result is not successful.
    """
    if result.success:
        return
    status_code = status_for_error(result.error_code)
    if status_code == status.HTTP_500_INTERNAL_SERVER_ERROR:
        raise HTTPException(
            status_code=status_code,
            detail={
                "error_code": "INTERNAL_ERROR",
                "message": "An internal error occurred",
            },
        )
    raise HTTPException(
        status_code=status_code,
        detail={
            "error_code": result.error_code,
            "message": result.error,
            "details": result.details,
        },
    )
