"""Shared FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from sellerportal.domain.value_objects import Actor


def get_seller_actor(request: Request) -> Actor:
    """Resolve the acting seller that ``SellerAuthMiddleware`` identified.

    Raises:
        HTTPException: If the request was not authenticated as a seller.
    """
    seller_id = getattr(request.state, "seller_id", None)
    if not seller_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "SELLER_REQUIRED",
                "message": "X-Seller-ID header is required",
            },
        )
    return Actor.seller(seller_id)


SellerActor = Annotated[Actor, Depends(get_seller_actor)]
