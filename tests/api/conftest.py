"""Fixtures for API tests.

Each test gets a fresh in-memory store and fake provider clients installed
behind the module-level accessors the routers resolve services from.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from sellerportal.application.events import reset_dispatcher
from sellerportal.domain.entities import Order, ReturnRequest, SellerProfile, Shipment
from sellerportal.infrastructure.cashfree_client import CashfreeClient, reset_cashfree_client
from sellerportal.infrastructure.config import settings
from sellerportal.infrastructure.shiprocket_client import (
    ShiprocketClient,
    reset_shiprocket_client,
)
from sellerportal.infrastructure.store import reset_store
from sellerportal.main import app


@pytest.fixture
def api_store(monkeypatch):
    monkeypatch.setattr(settings, "shipment_id_propagation_delay_seconds", 0)
    store = reset_store()
    reset_dispatcher()
    yield store
    reset_store()
    reset_dispatcher()


@pytest.fixture
def fake_shiprocket():
    client = AsyncMock(spec=ShiprocketClient)
    reset_shiprocket_client(client)
    yield client
    reset_shiprocket_client()


@pytest.fixture
def fake_cashfree():
    client = AsyncMock(spec=CashfreeClient)
    reset_cashfree_client(client)
    yield client
    reset_cashfree_client()


@pytest.fixture
def client(api_store, fake_shiprocket, fake_cashfree) -> TestClient:
    """Authenticated client acting as seller-1."""
    return TestClient(
        app,
        headers={
            "Authorization": f"Bearer {settings.seller_portal_api_key}",
            "X-Seller-ID": "seller-1",
        },
    )


@pytest.fixture
def seed(api_store):
    """Put aggregates into the store before a request."""

    def _seed(*records: Order | Shipment | ReturnRequest | SellerProfile) -> None:
        async def _add() -> None:
            for record in records:
                if isinstance(record, Order):
                    await api_store.add_order(record)
                elif isinstance(record, Shipment):
                    await api_store.add_shipment(record)
                elif isinstance(record, ReturnRequest):
                    await api_store.add_return(record)
                else:
                    await api_store.save_seller(record)

        asyncio.run(_add())

    return _seed


@pytest.fixture
def stored(api_store):
    """Read back what a request persisted."""

    def _stored(coro_fn, *args):
        return asyncio.run(coro_fn(*args))

    return _stored
