"""Tests for pending order cleanup and the missing-orders report."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import update

from app.db.models import Order, PendingOrder
from app.services.maintenance_service import MaintenanceService

pytestmark = pytest.mark.integration


async def test_purge_removes_only_stale_pending_orders(gateway, settings, session_factory, make_pending_order):
    stale = await make_pending_order(billing_order_id="order_old")
    await make_pending_order(billing_order_id="order_new")
    async with session_factory() as session:
        await session.execute(
            update(PendingOrder)
            .where(PendingOrder.id == stale.id)
            .values(created_at=datetime.now(UTC) - timedelta(hours=30))
        )
        await session.commit()

    deleted, cutoff = await MaintenanceService(gateway, settings=settings).purge_stale_pending_orders()

    assert deleted == 1
    assert cutoff < datetime.now(UTC)
    assert await gateway.get_pending_order_by_billing_id("order_old") is None
    assert await gateway.get_pending_order_by_billing_id("order_new") is not None


async def test_missing_orders_report(gateway, settings, provider, provider_stub, catalog):
    await gateway.insert_order(
        Order(
            user_id="user_1",
            order_number="ORD-1-aaaaaaa",
            total_amount=90000,
            subtotal=90000,
            shipping_address={},
            billing_order_id="order_done",
            billing_payment_id="pay_done",
        )
    )
    provider_stub.payments = [
        {"id": "pay_done", "order_id": "order_done", "status": "captured", "amount": 90000},
        {"id": "pay_lost", "order_id": "order_lost", "status": "captured", "amount": 185000, "email": "a@b.in"},
        {"id": "pay_failed", "order_id": "order_x", "status": "failed", "amount": 1000},
    ]

    checked, missing = await MaintenanceService(gateway, provider, settings).missing_orders_report(days=7)

    assert checked == 2
    assert [p["id"] for p in missing] == ["pay_lost"]
    [request] = provider_stub.calls("GET", "/payments")
    assert request.url.params["count"] == "100"
