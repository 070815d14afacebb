"""Return and exchange application service.

Seller actions on return requests raised by customers after delivery:
approve, reject and mark received. Receiving a return refunds the
customer through the payment gateway when the order was paid online;
receiving an exchange completes it without touching payments.
"""

from dataclasses import dataclass

import structlog

from sellerportal.application.events import EventDispatcher, get_dispatcher
from sellerportal.application.refunds import issue_refund
from sellerportal.application.results import ServiceResult
from sellerportal.domain.entities import Order, ReturnRequest
from sellerportal.domain.exceptions import ConcurrentModificationError, DomainError
from sellerportal.domain.state_machines import ReturnStatus, validate_return_transition
from sellerportal.domain.value_objects import Actor, OrderReturnStatus
from sellerportal.infrastructure.cashfree_client import CashfreeClient, get_cashfree_client
from sellerportal.infrastructure.store import MarketplaceStore, get_store

logger = structlog.get_logger()


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass(kw_only=True)
class ReturnResult(ServiceResult):
    """Result of a return request operation."""

    return_request: ReturnRequest | None = None
    order: Order | None = None
    message: str | None = None
    warning: str | None = None


# ============================================================================
# Return Service
# ============================================================================


class ReturnService:
    """Application service for return and exchange requests."""

    def __init__(
        self,
        store: MarketplaceStore | None = None,
        payments: CashfreeClient | None = None,
        dispatcher: EventDispatcher | None = None,
        request_id: str | None = None,
    ) -> None:
        """Initialize service.

        Args:
            store: Marketplace store.
            payments: Payment gateway client.
            dispatcher: Domain event dispatcher.
            request_id: Request ID for correlation.
        """
        self.store = store or get_store()
        self.payments = payments or get_cashfree_client()
        self.dispatcher = dispatcher or get_dispatcher()
        self.request_id = request_id

    async def _load(self, seller_id: str, return_id: str) -> tuple[ReturnRequest, Order]:
        request = await self.store.get_return(seller_id, return_id)
        order = await self.store.get_order(seller_id, request.order_id)
        return request, order

    async def _save(self, request: ReturnRequest, order: Order) -> None:
        async with self.store.transaction():
            await self.store.save_return(request)
            await self.store.save_order(order)
        await self.dispatcher.publish(request.collect_events() + order.collect_events())

    async def get_return(self, seller_id: str, return_id: str) -> ReturnResult:
        """Get a return request owned by the seller."""
        try:
            request = await self.store.get_return(seller_id, return_id)
        except DomainError as e:
            return ReturnResult.failure(e)
        return ReturnResult(return_request=request)

    async def approve(
        self,
        seller_id: str,
        return_id: str,
        actor: Actor | None = None,
        note: str | None = None,
    ) -> ReturnResult:
        """Approve a requested return.

        Args:
            seller_id: Acting seller.
            return_id: Return request identifier.
            actor: Who performs the change, defaults to the seller.
            note: Optional note for the customer.

        Returns:
            ReturnResult with the approved request.
        """
        actor = actor or Actor.seller(seller_id)
        try:
            request, order = await self._load(seller_id, return_id)
            request.approve(actor, note)
            order.set_return_status(OrderReturnStatus.APPROVED)
            await self._save(request, order)

            logger.info(
                "Return request approved",
                return_id=request.id,
                order_id=order.id,
                request_id=self.request_id,
            )
            return ReturnResult(return_request=request, order=order, message="Return approved")

        except DomainError as e:
            logger.warning(
                "Return approval rejected",
                return_id=return_id,
                error_code=e.error_code,
                error=e.message,
                request_id=self.request_id,
            )
            return ReturnResult.failure(e)

    async def reject(
        self,
        seller_id: str,
        return_id: str,
        reason: str,
        actor: Actor | None = None,
    ) -> ReturnResult:
        """Reject a requested return with a reason shown to the customer."""
        actor = actor or Actor.seller(seller_id)
        try:
            request, order = await self._load(seller_id, return_id)
            request.reject(reason, actor)
            order.set_return_status(OrderReturnStatus.REJECTED)
            await self._save(request, order)

            logger.info(
                "Return request rejected",
                return_id=request.id,
                order_id=order.id,
                reason=request.rejection_reason,
                request_id=self.request_id,
            )
            return ReturnResult(return_request=request, order=order, message="Return rejected")

        except DomainError as e:
            logger.warning(
                "Return rejection rejected",
                return_id=return_id,
                error_code=e.error_code,
                error=e.message,
                request_id=self.request_id,
            )
            return ReturnResult.failure(e)

    async def mark_received(
        self,
        seller_id: str,
        return_id: str,
        actor: Actor | None = None,
        note: str | None = None,
    ) -> ReturnResult:
        """Record that the returned item arrived back with the seller.

        Exchanges complete immediately. Returns on orders paid through the
        gateway are refunded; a failed refund leaves the request at
        ``received`` with the failure in its history for manual follow-up.

        Args:
            seller_id: Acting seller.
            return_id: Return request identifier.
            actor: Who performs the change, defaults to the seller.
            note: Optional note stored in the history.

        Returns:
            ReturnResult with the request, and a warning when the refund
            needs manual follow-up.
        """
        actor = actor or Actor.seller(seller_id)
        try:
            request, order = await self._load(seller_id, return_id)
            validate_return_transition(request.id, request.status, ReturnStatus.RECEIVED)

            warning = None
            if request.is_exchange:
                request.mark_received(actor, note)
                request.mark_exchanged(actor)
                order.set_return_status(OrderReturnStatus.COMPLETED)
                message = "Exchange completed"

            elif order.gateway_order_id and request.refund_amount > 0:
                outcome = await issue_refund(
                    self.payments,
                    order.gateway_order_id,
                    request.refund_amount,
                    refund_id=f"RR-{request.id}",
                    note=f"Refund for return of order {order.order_number}",
                    request_id=self.request_id,
                )
                if outcome.success:
                    request.mark_received(actor, note)
                    request.mark_refunded(outcome.refund_id, actor)
                    order.record_return_refund(outcome.refund_id, outcome.amount)
                    order.set_return_status(OrderReturnStatus.COMPLETED)
                    message = "Return received and refund initiated"
                else:
                    warning = f"Refund failed: {outcome.error}. Manual refund required"
                    request.mark_received(actor, warning)
                    order.set_return_status(OrderReturnStatus.RECEIVED)
                    message = "Return received"

            else:
                request.mark_received(actor, note or "Item received. Manual refund required")
                order.set_return_status(OrderReturnStatus.RECEIVED)
                message = "Return received"

            try:
                await self._save(request, order)
            except ConcurrentModificationError:
                logger.error(
                    "Return receipt could not be saved",
                    return_id=request.id,
                    order_id=order.id,
                    refund_id=request.refund_id,
                    request_id=self.request_id,
                )
                raise

            logger.info(
                "Return request received",
                return_id=request.id,
                order_id=order.id,
                status=request.status.value,
                refund_id=request.refund_id,
                request_id=self.request_id,
            )
            return ReturnResult(
                return_request=request,
                order=order,
                message=message,
                warning=warning,
            )

        except DomainError as e:
            logger.warning(
                "Return receipt rejected",
                return_id=return_id,
                error_code=e.error_code,
                error=e.message,
                request_id=self.request_id,
            )
            return ReturnResult.failure(e)


def get_return_service(request_id: str | None = None) -> ReturnService:
    """Get return service instance."""
    return ReturnService(request_id=request_id)
