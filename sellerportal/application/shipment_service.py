"""Shipment application service.

Reconciles the local shipment record of an order with the shipping
provider:
- Creating the provider order and the local shipment
- Recovering provider shipment ids the creation response left out
- Booking a courier and capturing its cost for payout deduction
- Scheduling pickup and moving the order to shipped
- Serviceability, tracking sync, labels and pickup locations
"""

import asyncio
import dataclasses
from dataclasses import dataclass, field

import structlog

from sellerportal.application.events import EventDispatcher, get_dispatcher
from sellerportal.application.results import ServiceResult
from sellerportal.domain.base import utcnow
from sellerportal.domain.entities import Order, SellerProfile, Shipment
from sellerportal.domain.exceptions import (
    AlreadyShippedError,
    ConcurrentModificationError,
    DomainError,
    MissingShipmentIdError,
    NoPickupLocationError,
    NotFoundError,
    OrderNotPaidError,
    ValidationError,
)
from sellerportal.domain.state_machines import (
    OrderStatus,
    ShipmentStatus,
    validate_order_transition,
    validate_shipment_transition,
)
from sellerportal.domain.value_objects import Actor, ParcelSpec, TrackingInfo
from sellerportal.infrastructure.config import settings
from sellerportal.infrastructure.shiprocket_client import (
    CourierOption,
    PickupLocation,
    PickupLocationInput,
    ShippingProviderError,
    ShiprocketClient,
    TrackingSnapshot,
    build_order_payload,
    get_shiprocket_client,
)
from sellerportal.infrastructure.store import MarketplaceStore, get_store

logger = structlog.get_logger()

MISSING_SHIPMENT_ID_WARNING = (
    "Shipment created, but the shipping provider has not assigned a shipment id yet. "
    "Courier assignment will retry the lookup."
)


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass(kw_only=True)
class ShipmentResult(ServiceResult):
    """Result of a shipment operation."""

    shipment: Shipment | None = None
    order: Order | None = None
    message: str | None = None
    warning: str | None = None


@dataclass(kw_only=True)
class ServiceabilityResult(ServiceResult):
    """Couriers available for an order's lane."""

    couriers: list[CourierOption] = field(default_factory=list)
    pickup_pincode: str | None = None
    delivery_pincode: str | None = None


@dataclass(kw_only=True)
class TrackingResult(ServiceResult):
    """Shipment with live courier tracking, when available."""

    shipment: Shipment | None = None
    tracking: TrackingSnapshot | None = None


@dataclass(kw_only=True)
class LabelResult(ServiceResult):
    """Generated shipping label."""

    label_url: str | None = None
    shipment: Shipment | None = None


@dataclass(kw_only=True)
class PickupLocationResult(ServiceResult):
    """Pickup location registered with the provider."""

    pickup_location: PickupLocation | None = None


# ============================================================================
# Shipment Service
# ============================================================================


class ShipmentService:
    """Application service for order shipments.

    Provider calls happen before local writes. A provider failure on the
    primary path is reported as ``PROVIDER_ERROR``; local writes are
    conditional on the versions read, so a concurrent change surfaces as
    ``CONCURRENT_MODIFICATION`` instead of being overwritten.
    """

    def __init__(
        self,
        store: MarketplaceStore | None = None,
        shipping: ShiprocketClient | None = None,
        dispatcher: EventDispatcher | None = None,
        request_id: str | None = None,
        propagation_delay: float | None = None,
    ) -> None:
        """Initialize service.

        Args:
            store: Marketplace store.
            shipping: Shipping provider client.
            dispatcher: Domain event dispatcher.
            request_id: Request ID for correlation.
            propagation_delay: Seconds to wait before re-querying a freshly
                created provider order for its shipment id.
        """
        self.store = store or get_store()
        self.shipping = shipping or get_shiprocket_client()
        self.dispatcher = dispatcher or get_dispatcher()
        self.request_id = request_id
        self.propagation_delay = (
            settings.shipment_id_propagation_delay_seconds
            if propagation_delay is None
            else propagation_delay
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _get_active_shipment(self, seller_id: str, order_id: str) -> Shipment:
        shipment = await self.store.get_shipment_for_order(seller_id, order_id)
        if shipment is None or shipment.is_cancelled:
            raise NotFoundError("Shipment", order_id)
        return shipment

    async def _resolve_pickup_location(self, seller_id: str) -> str:
        """Pick the pickup location for a new provider order.

        The seller's registered location wins. Without one, the first
        active and phone-verified location on the provider account is used.

        Raises:
            NoPickupLocationError: If nothing usable is registered.
            ShippingProviderError: If the provider lookup fails.
        """
        seller = await self.store.get_seller(seller_id)
        if seller and seller.pickup_location_name:
            return seller.pickup_location_name

        locations = await self.shipping.get_pickup_locations()
        for location in locations:
            if location.active and location.phone_verified:
                logger.info(
                    "Using provider pickup location",
                    seller_id=seller_id,
                    pickup_location=location.name,
                    request_id=self.request_id,
                )
                return location.name
        raise NoPickupLocationError(seller_id, unverified=bool(locations))

    async def _recover_shipment_id(self, remote_order_id: str, delay: float) -> str | None:
        """Look up the shipment id of a provider order.

        Provider errors are logged and reported as not found.
        """
        if delay > 0:
            await asyncio.sleep(delay)
        try:
            details = await self.shipping.get_order_details(remote_order_id)
        except ShippingProviderError as e:
            logger.warning(
                "Shipment id lookup failed",
                shiprocket_order_id=remote_order_id,
                error=e.message,
                request_id=self.request_id,
            )
            return None
        return details.first_shipment_id

    async def _ensure_shipment_id(self, shipment: Shipment) -> Shipment:
        """Self-heal a missing provider shipment id once, then fail.

        Raises:
            MissingShipmentIdError: If the id is still unknown.
        """
        if shipment.has_shipment_id:
            return shipment
        if not shipment.has_remote_order:
            raise MissingShipmentIdError(shipment.id)

        recovered = await self._recover_shipment_id(shipment.shiprocket_order_id, 0)
        if not recovered:
            logger.warning(
                "Shipment id still missing",
                shipment_id=shipment.id,
                shiprocket_order_id=shipment.shiprocket_order_id,
                request_id=self.request_id,
            )
            raise MissingShipmentIdError(shipment.id)

        shipment.record_shipment_id(recovered)
        await self.store.save_shipment(shipment)
        logger.info(
            "Shipment id recovered",
            shipment_id=shipment.id,
            shiprocket_shipment_id=recovered,
            request_id=self.request_id,
        )
        return shipment

    async def _publish(self, *aggregates: Order | Shipment | None) -> None:
        events = []
        for aggregate in aggregates:
            if aggregate is not None:
                events.extend(aggregate.collect_events())
        await self.dispatcher.publish(events)

    # -------------------------------------------------------------------------
    # Shipment Lifecycle
    # -------------------------------------------------------------------------

    async def create_shipment(
        self,
        seller_id: str,
        order_id: str,
        weight: float | None = None,
        length: float | None = None,
        width: float | None = None,
        height: float | None = None,
        actor: Actor | None = None,
    ) -> ShipmentResult:
        """Create the provider order and the local shipment record.

        Args:
            seller_id: Acting seller.
            order_id: Order to ship.
            weight: Parcel weight in grams (clamped).
            length: Parcel length in cm (clamped).
            width: Parcel width in cm (clamped).
            height: Parcel height in cm (clamped).
            actor: Who performs the change, defaults to the seller.

        Returns:
            ShipmentResult with the shipment and, when the provider shipment
            id could not be recovered, a warning.
        """
        actor = actor or Actor.seller(seller_id)
        try:
            order = await self.store.get_order(seller_id, order_id)
            if not order.is_paid:
                raise OrderNotPaidError(order.id, order.payment_status.value)

            existing = await self.store.get_shipment_for_order(seller_id, order_id)
            if existing and not existing.is_cancelled and existing.has_remote_order:
                logger.info(
                    "Shipment already exists",
                    order_id=order_id,
                    shipment_id=existing.id,
                    request_id=self.request_id,
                )
                return ShipmentResult.failure(
                    AlreadyShippedError(order.id, existing.id),
                    shipment=existing,
                    order=order,
                )

            if not order.status.is_shippable():
                validate_order_transition(order.id, order.status, OrderStatus.PROCESSING)

            pickup_location = await self._resolve_pickup_location(seller_id)
            parcel = ParcelSpec.clamped(weight, length, width, height)
            created = await self.shipping.create_order(
                build_order_payload(order, pickup_location, parcel)
            )

            shipment_id = created.shipment_id
            warning = None
            if not shipment_id:
                shipment_id = await self._recover_shipment_id(
                    created.order_id, self.propagation_delay
                )
                if not shipment_id:
                    warning = MISSING_SHIPMENT_ID_WARNING

            shipment = Shipment.create(
                order_id=order.id,
                seller_id=seller_id,
                shiprocket_order_id=created.order_id,
                shiprocket_shipment_id=shipment_id,
                parcel=parcel,
                pickup_location=pickup_location,
                actor=actor,
            )
            try:
                async with self.store.transaction():
                    await self.store.add_shipment(shipment)
                    if order.status == OrderStatus.CONFIRMED:
                        order.transition_to(OrderStatus.PROCESSING, actor, "Shipment created")
                    # Saved even when unchanged so a concurrent create fails the version check
                    await self.store.save_order(order)
            except (AlreadyShippedError, ConcurrentModificationError) as e:
                logger.error(
                    "Provider order created but local save conflicted",
                    order_id=order_id,
                    shiprocket_order_id=created.order_id,
                    error_code=e.error_code,
                    request_id=self.request_id,
                )
                await self.cancel_remote_order(shipment)
                raise

            logger.info(
                "Shipment created",
                order_id=order_id,
                shipment_id=shipment.id,
                shiprocket_order_id=created.order_id,
                shiprocket_shipment_id=shipment_id,
                weight=parcel.weight_grams,
                request_id=self.request_id,
            )
            await self._publish(shipment, order)
            return ShipmentResult(shipment=shipment, order=order, warning=warning)

        except DomainError as e:
            logger.warning(
                "Shipment creation rejected",
                order_id=order_id,
                error_code=e.error_code,
                error=e.message,
                request_id=self.request_id,
            )
            return ShipmentResult.failure(e)
        except ShippingProviderError as e:
            logger.error(
                "Shipment creation failed at provider",
                order_id=order_id,
                error=e.message,
                request_id=self.request_id,
            )
            return ShipmentResult.provider_failure(e)

    async def assign_courier(
        self,
        seller_id: str,
        order_id: str,
        courier_id: int,
        courier_rate: float | None = None,
        actor: Actor | None = None,
    ) -> ShipmentResult:
        """Book a courier for the order's shipment.

        When a rate is supplied and the seller bears shipping, it becomes
        the order's actual shipping cost, later deducted from the payout.

        Args:
            seller_id: Acting seller.
            order_id: Order whose shipment gets the courier.
            courier_id: Provider courier company id.
            courier_rate: Rate quoted by the serviceability check.
            actor: Who performs the change, defaults to the seller.

        Returns:
            ShipmentResult with the updated shipment.
        """
        actor = actor or Actor.seller(seller_id)
        try:
            if courier_rate is not None and courier_rate < 0:
                raise ValidationError(f"Invalid courier rate {courier_rate}", "courier_rate")
            order = await self.store.get_order(seller_id, order_id)
            shipment = await self._get_active_shipment(seller_id, order_id)
            shipment = await self._ensure_shipment_id(shipment)
            validate_shipment_transition(
                shipment.id, shipment.status, ShipmentStatus.COURIER_ASSIGNED
            )

            assignment = await self.shipping.assign_courier(
                shipment.shiprocket_shipment_id, courier_id
            )

            async with self.store.transaction():
                shipment.assign_courier(
                    courier_id,
                    assignment.courier_name or f"Courier {courier_id}",
                    assignment.awb_code,
                    actor,
                    shipping_charge=courier_rate,
                )
                await self.store.save_shipment(shipment)
                if courier_rate is not None and order.seller_pays_shipping:
                    order.record_actual_shipping_cost(courier_rate)
                    await self.store.save_order(order)

            logger.info(
                "Courier assigned",
                order_id=order_id,
                shipment_id=shipment.id,
                courier_id=courier_id,
                awb_code=assignment.awb_code,
                courier_rate=courier_rate,
                request_id=self.request_id,
            )
            await self._publish(shipment, order)
            return ShipmentResult(shipment=shipment, order=order)

        except DomainError as e:
            logger.warning(
                "Courier assignment rejected",
                order_id=order_id,
                error_code=e.error_code,
                error=e.message,
                request_id=self.request_id,
            )
            return ShipmentResult.failure(e)
        except ShippingProviderError as e:
            logger.error(
                "Courier assignment failed at provider",
                order_id=order_id,
                courier_id=courier_id,
                error=e.message,
                request_id=self.request_id,
            )
            return ShipmentResult.provider_failure(e)

    async def schedule_pickup(
        self,
        seller_id: str,
        order_id: str,
        actor: Actor | None = None,
    ) -> ShipmentResult:
        """Schedule the courier pickup and mark the order shipped.

        A pickup the provider already scheduled on its own counts as
        success. Calling again after success returns the shipment unchanged.

        Args:
            seller_id: Acting seller.
            order_id: Order whose shipment gets picked up.
            actor: Who performs the change, defaults to the seller.

        Returns:
            ShipmentResult with the shipment and order.
        """
        actor = actor or Actor.seller(seller_id)
        try:
            shipment = await self._get_active_shipment(seller_id, order_id)
            if shipment.status == ShipmentStatus.PICKUP_SCHEDULED:
                return ShipmentResult(shipment=shipment, message="Pickup already scheduled")

            shipment = await self._ensure_shipment_id(shipment)
            if not shipment.has_courier:
                raise ValidationError("Assign a courier before scheduling pickup", "awb_code")
            validate_shipment_transition(
                shipment.id, shipment.status, ShipmentStatus.PICKUP_SCHEDULED
            )
            order = await self.store.get_order(seller_id, order_id)

            pickup = await self.shipping.schedule_pickup(shipment.shiprocket_shipment_id)
            description = (
                "Pickup already scheduled with courier"
                if pickup.already_scheduled
                else "Pickup scheduled"
            )

            async with self.store.transaction():
                shipment.schedule_pickup(actor, description)
                await self.store.save_shipment(shipment)
                order.record_tracking(
                    TrackingInfo(
                        courier_name=shipment.courier_name or "",
                        tracking_number=shipment.awb_code,
                        shipped_at=utcnow(),
                    )
                )
                if order.status.can_transition_to(OrderStatus.SHIPPED):
                    order.transition_to(
                        OrderStatus.SHIPPED,
                        actor,
                        f"Shipped via {shipment.courier_name} (AWB: {shipment.awb_code})",
                    )
                await self.store.save_order(order)

            logger.info(
                "Pickup scheduled",
                order_id=order_id,
                shipment_id=shipment.id,
                already_scheduled=pickup.already_scheduled,
                order_status=order.status.value,
                request_id=self.request_id,
            )
            await self._publish(shipment, order)
            return ShipmentResult(shipment=shipment, order=order, message=description)

        except DomainError as e:
            logger.warning(
                "Pickup scheduling rejected",
                order_id=order_id,
                error_code=e.error_code,
                error=e.message,
                request_id=self.request_id,
            )
            return ShipmentResult.failure(e)
        except ShippingProviderError as e:
            logger.error(
                "Pickup scheduling failed at provider",
                order_id=order_id,
                error=e.message,
                request_id=self.request_id,
            )
            return ShipmentResult.provider_failure(e)

    async def cancel_remote_order(self, shipment: Shipment) -> bool:
        """Cancel the provider order of a shipment, best-effort.

        Returns:
            True if the provider accepted the cancellation.
        """
        if not shipment.has_remote_order:
            return False
        try:
            await self.shipping.cancel_order(shipment.shiprocket_order_id)
        except Exception as e:
            logger.warning(
                "Remote shipment cancellation failed",
                shipment_id=shipment.id,
                shiprocket_order_id=shipment.shiprocket_order_id,
                error=str(e),
                request_id=self.request_id,
            )
            return False
        logger.info(
            "Remote shipment cancelled",
            shipment_id=shipment.id,
            shiprocket_order_id=shipment.shiprocket_order_id,
            request_id=self.request_id,
        )
        return True

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def check_serviceability(
        self,
        seller_id: str,
        order_id: str,
        weight: float | None = None,
    ) -> ServiceabilityResult:
        """List couriers for the order's lane.

        When the customer pays shipping, couriers costing more than the
        customer paid are left out.
        """
        try:
            order = await self.store.get_order(seller_id, order_id)
            seller = await self.store.get_seller(seller_id)
            pickup_pincode = seller.origin_pincode if seller else None
            if not pickup_pincode:
                raise ValidationError(
                    "Seller pickup pincode is not configured", "pickup_pincode"
                )
            delivery_pincode = order.shipping_address.pincode
            if not delivery_pincode:
                raise ValidationError("Order has no delivery pincode", "delivery_pincode")

            parcel = ParcelSpec.clamped(weight)
            couriers = await self.shipping.check_serviceability(
                pickup_pincode, delivery_pincode, parcel.weight_grams
            )
            if not order.seller_pays_shipping:
                couriers = [c for c in couriers if c.rate <= order.shipping_cost]

            return ServiceabilityResult(
                couriers=couriers,
                pickup_pincode=pickup_pincode,
                delivery_pincode=delivery_pincode,
            )

        except DomainError as e:
            return ServiceabilityResult.failure(e)
        except ShippingProviderError as e:
            logger.error(
                "Serviceability check failed",
                order_id=order_id,
                error=e.message,
                request_id=self.request_id,
            )
            return ServiceabilityResult.provider_failure(e)

    async def track_shipment(self, seller_id: str, order_id: str) -> TrackingResult:
        """Fetch live tracking and sync forward status changes.

        Tracking is best-effort: when the courier lookup fails the stored
        shipment is returned without tracking.
        """
        try:
            shipment = await self.store.get_shipment_for_order(seller_id, order_id)
            if shipment is None:
                raise NotFoundError("Shipment", order_id)

            tracking = None
            if shipment.has_courier and not shipment.is_cancelled:
                try:
                    tracking = await self.shipping.track_by_awb(shipment.awb_code)
                except ShippingProviderError as e:
                    logger.warning(
                        "Tracking lookup failed",
                        order_id=order_id,
                        awb_code=shipment.awb_code,
                        error=e.message,
                        request_id=self.request_id,
                    )

            if tracking and tracking.current_status:
                shipment = await self._sync_tracking(shipment, tracking)

            return TrackingResult(shipment=shipment, tracking=tracking)

        except DomainError as e:
            return TrackingResult.failure(e)

    async def _sync_tracking(self, shipment: Shipment, tracking: TrackingSnapshot) -> Shipment:
        """Apply a forward courier status to the shipment and its order."""
        system = Actor.system()
        order: Order | None = None
        try:
            async with self.store.transaction():
                changed = shipment.sync_status(
                    tracking.current_status,
                    f"Courier status: {tracking.raw_status}",
                    system,
                )
                if not changed:
                    return shipment
                await self.store.save_shipment(shipment)
                if tracking.current_status == ShipmentStatus.DELIVERED:
                    order = await self.store.get_order(shipment.seller_id, shipment.order_id)
                    if order.status == OrderStatus.SHIPPED:
                        order.transition_to(
                            OrderStatus.DELIVERED, system, "Delivered per courier tracking"
                        )
                        await self.store.save_order(order)
        except DomainError as e:
            logger.warning(
                "Tracking sync skipped",
                shipment_id=shipment.id,
                error_code=e.error_code,
                error=e.message,
                request_id=self.request_id,
            )
            reloaded = await self.store.get_shipment_for_order(
                shipment.seller_id, shipment.order_id
            )
            return reloaded or shipment

        logger.info(
            "Shipment status synced from tracking",
            shipment_id=shipment.id,
            status=shipment.status.value,
            request_id=self.request_id,
        )
        await self._publish(shipment, order)
        return shipment

    async def generate_label(self, seller_id: str, order_id: str) -> LabelResult:
        """Generate and store the shipping label."""
        try:
            shipment = await self._get_active_shipment(seller_id, order_id)
            shipment = await self._ensure_shipment_id(shipment)
            label_url = await self.shipping.generate_label(shipment.shiprocket_shipment_id)
            shipment.attach_label(label_url)
            await self.store.save_shipment(shipment)
            logger.info(
                "Label generated",
                order_id=order_id,
                shipment_id=shipment.id,
                request_id=self.request_id,
            )
            return LabelResult(label_url=label_url, shipment=shipment)

        except DomainError as e:
            return LabelResult.failure(e)
        except ShippingProviderError as e:
            logger.error(
                "Label generation failed",
                order_id=order_id,
                error=e.message,
                request_id=self.request_id,
            )
            return LabelResult.provider_failure(e)

    # -------------------------------------------------------------------------
    # Pickup Locations
    # -------------------------------------------------------------------------

    async def register_pickup_location(
        self,
        seller_id: str,
        location: PickupLocationInput,
    ) -> PickupLocationResult:
        """Register or update the seller's pickup location on the provider.

        A seller with a location already registered has it updated under
        its existing name. The name and pincode are stored on the seller
        profile so later shipments use them.
        """
        try:
            profile = await self.store.get_seller(seller_id) or SellerProfile(
                seller_id=seller_id
            )
            if profile.pickup_location_name:
                registered = await self.shipping.update_pickup_location(
                    dataclasses.replace(location, name=profile.pickup_location_name)
                )
            else:
                registered = await self.shipping.add_pickup_location(location)

            profile.pickup_location_name = registered.name
            profile.pickup_pincode = location.pincode
            await self.store.save_seller(profile)

            logger.info(
                "Pickup location registered",
                seller_id=seller_id,
                pickup_location=registered.name,
                request_id=self.request_id,
            )
            return PickupLocationResult(pickup_location=registered)

        except DomainError as e:
            return PickupLocationResult.failure(e)
        except ShippingProviderError as e:
            logger.error(
                "Pickup location registration failed",
                seller_id=seller_id,
                error=e.message,
                request_id=self.request_id,
            )
            return PickupLocationResult.provider_failure(e)


def get_shipment_service(request_id: str | None = None) -> ShipmentService:
    """Get shipment service instance."""
    return ShipmentService(request_id=request_id)
