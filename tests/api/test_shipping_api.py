"""Tests for shipping API endpoints.

Tests the provider-backed shipment flow including:
- Creating the shipment and its idempotent repeat
- Courier assignment and pickup scheduling
- Serviceability, tracking and labels
- Pickup location registration
- Provider failures surfacing as 502
"""

import pytest
from fastapi import status

from sellerportal.domain.entities import SellerProfile
from sellerportal.domain.state_machines import OrderStatus, PaymentStatus, ShipmentStatus
from sellerportal.domain.value_objects import ShippingPayer
from sellerportal.infrastructure.shiprocket_client import (
    CourierAssignment,
    CourierOption,
    CreatedProviderOrder,
    PickupLocation,
    PickupResult,
    ShippingProviderError,
    TrackingSnapshot,
)


@pytest.fixture
def provider(fake_shiprocket):
    fake_shiprocket.create_order.return_value = CreatedProviderOrder(
        order_id="SR-1", shipment_id="SH-1"
    )
    fake_shiprocket.assign_courier.return_value = CourierAssignment(
        awb_code="AWB123", courier_name="Delhivery"
    )
    fake_shiprocket.schedule_pickup.return_value = PickupResult(pickup_token="PT-1")
    return fake_shiprocket


@pytest.fixture
def profile() -> SellerProfile:
    return SellerProfile(
        seller_id="seller-1",
        email="seller@example.com",
        pickup_location_name="Primary Warehouse",
        pickup_pincode="400001",
    )


@pytest.fixture
def created(client, seed, order_factory, profile, provider):
    """A confirmed order with its provider shipment created."""
    seed(order_factory(OrderStatus.CONFIRMED), profile)
    response = client.post("/shipping/order-1/create", json={"weight": 800})
    assert response.status_code == status.HTTP_200_OK
    return response.json()["shipment"]


# ============================================================================
# Test: Create Shipment
# ============================================================================


class TestCreateShipment:
    """Tests for POST /shipping/{order_id}/create."""

    def test_create_shipment(self, client, created, provider, api_store, stored) -> None:
        """Test the shipment is recorded and the order moves to processing."""
        assert created["status"] == "created"
        assert created["shiprocket_order_id"] == "SR-1"
        assert created["shiprocket_shipment_id"] == "SH-1"
        assert created["weight"] == 800
        assert created["pickup_location"] == "Primary Warehouse"

        order = stored(api_store.get_order, "seller-1", "order-1")
        assert order.status == OrderStatus.PROCESSING

    def test_create_twice(self, client, created, provider) -> None:
        """Test a repeated create is refused without a second provider order."""
        response = client.post("/shipping/order-1/create", json={})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "ALREADY_SHIPPED"
        provider.create_order.assert_awaited_once()

    def test_unpaid_order(self, client, seed, order_factory, profile, provider) -> None:
        """Test unpaid orders cannot be shipped."""
        seed(order_factory(payment_status=PaymentStatus.PENDING), profile)

        response = client.post("/shipping/order-1/create", json={})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "ORDER_NOT_PAID"

    def test_provider_failure(self, client, seed, order_factory, profile, provider) -> None:
        """Test provider rejections surface as a bad gateway."""
        seed(order_factory(), profile)
        provider.create_order.side_effect = ShippingProviderError(
            "Order creation failed: Invalid pincode", 422
        )

        response = client.post("/shipping/order-1/create", json={})

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        data = response.json()
        assert data["error_code"] == "PROVIDER_ERROR"
        assert data["details"] == {"status_code": 422}

    def test_missing_shipment_id_warns(
        self, client, seed, order_factory, profile, provider
    ) -> None:
        """Test an unrecovered provider shipment id is a warning, not a failure."""
        seed(order_factory(), profile)
        provider.create_order.return_value = CreatedProviderOrder(order_id="SR-1")
        provider.get_order_details.side_effect = ShippingProviderError("timeout")

        response = client.post("/shipping/order-1/create", json={})

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["shipment"]["shiprocket_shipment_id"] is None
        assert data["warning"]

    def test_no_pickup_location(self, client, seed, order_factory, provider) -> None:
        """Test a seller without any usable pickup location is told so."""
        seed(order_factory())
        provider.get_pickup_locations.return_value = [
            PickupLocation(name="Unverified", active=True, phone_verified=False)
        ]

        response = client.post("/shipping/order-1/create", json={})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "PICKUP_UNVERIFIED"
        provider.create_order.assert_not_awaited()


# ============================================================================
# Test: Courier and Pickup
# ============================================================================


class TestCourierAndPickup:
    """Tests for courier assignment and pickup scheduling."""

    def test_assign_courier(self, client, created, provider, api_store, stored) -> None:
        """Test the AWB is stored and the seller's shipping cost recorded."""
        response = client.post(
            "/shipping/order-1/assign-courier", json={"courier_id": 10, "courier_rate": 72.5}
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["message"] == "Courier assigned (AWB: AWB123)"
        assert data["shipment"]["status"] == "courier_assigned"
        assert data["shipment"]["awb_code"] == "AWB123"
        provider.assign_courier.assert_awaited_once_with("SH-1", 10)
        order = stored(api_store.get_order, "seller-1", "order-1")
        assert order.actual_shipping_cost == 72.5

    def test_assign_without_shipment(self, client, seed, order_factory, provider) -> None:
        """Test courier assignment needs a shipment."""
        seed(order_factory())

        response = client.post("/shipping/order-1/assign-courier", json={"courier_id": 10})

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error_code"] == "SHIPMENT_NOT_FOUND"

    def test_pickup_ships_order(self, client, created, provider, api_store, stored) -> None:
        """Test scheduling pickup marks the order shipped with the AWB."""
        client.post("/shipping/order-1/assign-courier", json={"courier_id": 10})

        response = client.post("/shipping/order-1/pickup")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["shipment"]["status"] == "pickup_scheduled"
        order = stored(api_store.get_order, "seller-1", "order-1")
        assert order.status == OrderStatus.SHIPPED
        assert order.tracking_info.tracking_number == "AWB123"

    def test_pickup_before_courier(self, client, created, provider) -> None:
        """Test pickup requires an assigned courier."""
        response = client.post("/shipping/order-1/pickup")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "VALIDATION_ERROR"
        provider.schedule_pickup.assert_not_awaited()

    def test_pickup_already_scheduled(self, client, created, provider) -> None:
        """Test the provider's already-scheduled answer is accepted."""
        provider.schedule_pickup.return_value = PickupResult(already_scheduled=True)
        client.post("/shipping/order-1/assign-courier", json={"courier_id": 10})

        response = client.post("/shipping/order-1/pickup")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["message"] == "Pickup already scheduled with courier"


# ============================================================================
# Test: Serviceability, Tracking and Labels
# ============================================================================


class TestServiceability:
    """Tests for POST /shipping/serviceability."""

    def test_customer_paid_shipping_filters_rates(
        self, client, seed, order_factory, profile, provider
    ) -> None:
        """Test couriers above what the customer paid are dropped."""
        seed(
            order_factory(shipping_paid_by=ShippingPayer.CUSTOMER, shipping_cost=80.0),
            profile,
        )
        provider.check_serviceability.return_value = [
            CourierOption(courier_id=10, courier_name="Delhivery", rate=60.0),
            CourierOption(courier_id=12, courier_name="Bluedart", rate=95.0),
        ]

        response = client.post(
            "/shipping/serviceability", json={"order_id": "order-1", "weight": 1200}
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert [c["courier_id"] for c in data["couriers"]] == [10]
        assert data["pickup_pincode"] == "400001"
        assert data["delivery_pincode"] == "560001"
        provider.check_serviceability.assert_awaited_once_with("400001", "560001", 1200)

    def test_missing_pickup_pincode(self, client, seed, order_factory, provider) -> None:
        """Test a seller without an origin pincode gets a validation error."""
        seed(order_factory())

        response = client.post("/shipping/serviceability", json={"order_id": "order-1"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "VALIDATION_ERROR"


class TestTrackingAndLabel:
    """Tests for tracking and label endpoints."""

    def test_track_syncs_forward(self, client, created, provider, api_store, stored) -> None:
        """Test a courier status ahead of ours is applied."""
        client.post("/shipping/order-1/assign-courier", json={"courier_id": 10})
        client.post("/shipping/order-1/pickup")
        provider.track_by_awb.return_value = TrackingSnapshot(
            awb_code="AWB123",
            raw_status="IN TRANSIT",
            current_status=ShipmentStatus.IN_TRANSIT,
        )

        response = client.get("/shipping/order-1/track")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["shipment"]["status"] == "in_transit"
        assert data["tracking"]["raw_status"] == "IN TRANSIT"

    def test_track_provider_down(self, client, created, provider) -> None:
        """Test tracking failures still return the stored shipment."""
        client.post("/shipping/order-1/assign-courier", json={"courier_id": 10})
        provider.track_by_awb.side_effect = ShippingProviderError("timeout")

        response = client.get("/shipping/order-1/track")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["shipment"]["status"] == "courier_assigned"
        assert data["tracking"] is None

    def test_label(self, client, created, provider) -> None:
        """Test the label URL is returned."""
        provider.generate_label.return_value = "https://labels.test/SH-1.pdf"

        response = client.get("/shipping/order-1/label")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["label_url"] == "https://labels.test/SH-1.pdf"


class TestPickupLocation:
    """Tests for POST /shipping/pickup-location."""

    def _body(self) -> dict:
        return {
            "name": "Seller One",
            "contact_name": "Asha Rao",
            "email": "seller@example.com",
            "phone": "9876543210",
            "address": "Unit 4, Andheri Industrial Estate",
            "city": "Mumbai",
            "state": "Maharashtra",
            "pincode": "400053",
        }

    def test_register(self, client, provider, api_store, stored) -> None:
        """Test a first registration adds the location and stores it on the profile."""
        provider.add_pickup_location.return_value = PickupLocation(
            name="Seller One", active=False, phone_verified=False, pincode="400053", id=9
        )

        response = client.post("/shipping/pickup-location", json=self._body())

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["pickup_location"]["name"] == "Seller One"
        profile = stored(api_store.get_seller, "seller-1")
        assert profile.pickup_location_name == "Seller One"
        assert profile.pickup_pincode == "400053"

    def test_invalid_pincode(self, client, provider) -> None:
        """Test the pincode must have six digits."""
        body = self._body() | {"pincode": "4000"}

        response = client.post("/shipping/pickup-location", json=body)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error_code"] == "VALIDATION_ERROR"
        provider.add_pickup_location.assert_not_awaited()
