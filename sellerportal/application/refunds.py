"""Refund issuing shared by cancellations and returns.

Both paths refund through the payment gateway with a refund id derived
from the record being refunded, so a retried call cannot pay out twice.
"""

from dataclasses import dataclass

import structlog

from sellerportal.infrastructure.cashfree_client import CashfreeClient, PaymentGatewayError

logger = structlog.get_logger()


@dataclass
class RefundOutcome:
    """Result of a refund attempt."""

    success: bool
    amount: float
    refund_id: str | None = None
    error: str | None = None


async def resolve_refund_amount(
    gateway: CashfreeClient,
    gateway_order_id: str,
    cap: float,
) -> float:
    """Refund what the customer actually paid, never more than ``cap``.

    The gateway lookup is best-effort; when it fails the cap is used.
    """
    try:
        gateway_order = await gateway.get_order(gateway_order_id)
    except PaymentGatewayError as e:
        logger.warning(
            "Gateway amount lookup failed, refunding order total",
            gateway_order_id=gateway_order_id,
            error=e.message,
        )
        return cap
    if gateway_order.order_amount <= 0:
        return cap
    return min(cap, gateway_order.order_amount)


async def issue_refund(
    gateway: CashfreeClient,
    gateway_order_id: str,
    amount_cap: float,
    refund_id: str,
    note: str | None = None,
    request_id: str | None = None,
) -> RefundOutcome:
    """Refund a paid gateway order.

    Args:
        gateway: Payment gateway client.
        gateway_order_id: Gateway reference of the original payment.
        amount_cap: Upper bound for the refunded amount.
        refund_id: Deterministic refund id.
        note: Refund note shown by the gateway.
        request_id: Request ID for correlation.

    Returns:
        RefundOutcome; gateway failures are reported, never raised.
    """
    amount = await resolve_refund_amount(gateway, gateway_order_id, amount_cap)
    try:
        result = await gateway.create_refund(gateway_order_id, amount, refund_id, note)
    except PaymentGatewayError as e:
        logger.error(
            "Refund failed",
            gateway_order_id=gateway_order_id,
            refund_id=refund_id,
            amount=amount,
            error=e.message,
            request_id=request_id,
        )
        return RefundOutcome(success=False, amount=amount, error=e.message)

    logger.info(
        "Refund issued",
        gateway_order_id=gateway_order_id,
        refund_id=result.refund_id,
        amount=amount,
        refund_status=result.status,
        request_id=request_id,
    )
    return RefundOutcome(success=True, amount=amount, refund_id=result.refund_id)
