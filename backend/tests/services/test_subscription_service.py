"""Tests for subscription creation and lifecycle management."""

import json
import uuid
from datetime import UTC, date, datetime

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from app.core.exceptions import (
    BillingProviderError,
    PartialWriteError,
    PlanNotFoundError,
    ResourceNotFoundError,
    ValidationRejection,
)
from app.db.gateway import PersistenceGateway
from app.db.models import PendingSubscription, SubscriptionDelivery
from app.services.subscription_service import SubscriptionLifecycleService

pytestmark = pytest.mark.integration

TODAY = date(2026, 10, 10)


@pytest.fixture
def service(gateway, provider, settings):
    return SubscriptionLifecycleService(gateway, provider, settings)


async def _create(service, catalog, variant=None, product=None, **overrides):
    product = product or catalog.powder
    variant = variant or catalog.powder_1kg
    kwargs = {
        "user_id": "user_1",
        "product_id": product.id,
        "variant_id": variant.id,
        "quantity": 1,
        "preferred_day": 15,
        "total_deliveries": 6,
        "shipping_address": {"city": "Bengaluru"},
        "today": TODAY,
    }
    kwargs.update(overrides)
    return await service.create(**kwargs)


async def _all(session_factory, model):
    async with session_factory() as session:
        return list((await session.execute(select(model))).scalars().all())


# ── Creation ────────────────────────────────────────────────────────


class TestCreate:
    async def test_creates_subscription_with_first_delivery(
        self, service, catalog, provider_stub, session_factory
    ):
        created = await _create(service, catalog)

        assert created.billing_subscription_id == "sub_0001"
        assert created.short_url == "https://rzp.io/i/sub_0001"
        assert created.first_delivery_date == date(2026, 10, 11)

        sent = json.loads(provider_stub.calls("POST", "/subscriptions")[0].content)
        assert sent["plan_id"] == "plan_house_1kg"
        assert sent["total_count"] == 6
        assert sent["quantity"] == 1
        assert sent["customer_notify"] == 1
        assert sent["notes"]["user_id"] == "user_1"
        assert sent["notes"]["delivery_date"] == 15

        [subscription] = await _all(session_factory, PendingSubscription)
        assert subscription.id == created.subscription_id
        assert subscription.status == "pending"
        assert subscription.next_billing_date == date(2026, 10, 15)

        [delivery] = await _all(session_factory, SubscriptionDelivery)
        assert delivery.cycle_number == 1
        assert delivery.status == "scheduled"
        assert delivery.delivery_date == date(2026, 10, 11)

    async def test_plan_is_checked_before_subscribing(self, service, catalog, provider_stub):
        await _create(service, catalog)

        methods = [(r.method, r.url.path) for r in provider_stub.requests]
        assert methods == [("GET", "/v1/plans/plan_house_1kg"), ("POST", "/v1/subscriptions")]

    @pytest.mark.parametrize(
        ("product_attr", "variant_attr", "code"),
        [
            ("powder", "powder_250g", "ineligible_variant"),
            ("beans", "beans_1kg", "ineligible_category"),
            ("unplanned", "unplanned_1kg", "plan_not_configured"),
            ("powder", "beans_1kg", "variant_mismatch"),
            ("retired", "retired_1kg", "not_subscription_eligible"),
        ],
    )
    async def test_ineligible_products_never_reach_provider(
        self, service, catalog, provider_stub, session_factory, product_attr, variant_attr, code
    ):
        with pytest.raises(ValidationRejection) as exc_info:
            await _create(
                service,
                catalog,
                product=getattr(catalog, product_attr),
                variant=getattr(catalog, variant_attr),
            )

        assert exc_info.value.code == code
        assert provider_stub.requests == []
        assert await _all(session_factory, PendingSubscription) == []

    @pytest.mark.parametrize("day", [0, 29])
    async def test_invalid_preferred_day(self, service, catalog, provider_stub, day):
        with pytest.raises(ValidationRejection):
            await _create(service, catalog, preferred_day=day)
        assert provider_stub.requests == []

    async def test_unknown_product(self, service, catalog):
        with pytest.raises(ResourceNotFoundError):
            await _create(service, catalog, product_id=uuid.uuid4())

    async def test_inactive_plan_is_rejected(self, service, catalog, provider_stub):
        provider_stub.plans["plan_house_1kg"] = "inactive"

        with pytest.raises(PlanNotFoundError):
            await _create(service, catalog)
        assert provider_stub.calls("POST", "/subscriptions") == []

    async def test_deleted_plan_is_rejected(self, service, catalog, provider_stub):
        provider_stub.plans.clear()

        with pytest.raises(PlanNotFoundError):
            await _create(service, catalog)

    async def test_provider_refusal_writes_nothing(self, service, catalog, provider_stub, session_factory):
        provider_stub.fail["/subscriptions"] = (400, '{"error":{"description":"total_count too large"}}')

        with pytest.raises(BillingProviderError) as exc_info:
            await _create(service, catalog)

        assert exc_info.value.status_code == 400
        assert "total_count too large" in exc_info.value.body
        assert await _all(session_factory, PendingSubscription) == []

    async def test_local_write_failure_cancels_provider_subscription(
        self, session_factory, provider, provider_stub, settings, catalog
    ):
        class BrokenGateway(PersistenceGateway):
            async def create_subscription_with_first_delivery(self, subscription, delivery_date):
                raise OperationalError("INSERT INTO pending_subscriptions", {}, Exception("database is locked"))

        service = SubscriptionLifecycleService(BrokenGateway(session_factory), provider, settings)

        with pytest.raises(PartialWriteError):
            await _create(service, catalog)

        assert len(provider_stub.calls("POST", "/sub_0001/cancel")) == 1

    async def test_orphan_is_left_when_cancel_disabled(self, session_factory, provider, provider_stub, catalog):
        from app.core.config import Settings

        class BrokenGateway(PersistenceGateway):
            async def create_subscription_with_first_delivery(self, subscription, delivery_date):
                raise OperationalError("INSERT INTO pending_subscriptions", {}, Exception("database is locked"))

        settings = Settings(_env_file=None, cancel_orphaned_provider_subscriptions=False)
        service = SubscriptionLifecycleService(BrokenGateway(session_factory), provider, settings)

        with pytest.raises(PartialWriteError):
            await _create(service, catalog)

        assert provider_stub.calls("POST", "/cancel") == []


# ── Lifecycle ───────────────────────────────────────────────────────


class TestLifecycle:
    async def test_pause_defaults_to_thirty_days(self, service, make_subscription, provider_stub):
        subscription = await make_subscription(status="active")

        updated = await service.pause("user_1", subscription.id, today=TODAY)

        assert updated.status == "paused"
        assert updated.next_billing_date == date(2026, 11, 9)
        sent = json.loads(provider_stub.calls("POST", "/sub_0001/pause")[0].content)
        assert sent["pause_at"] == "now"
        assert sent["resume_at"] == int(datetime(2026, 11, 9, tzinfo=UTC).timestamp())

    async def test_pause_until_explicit_date(self, service, make_subscription):
        subscription = await make_subscription(status="active")

        updated = await service.pause("user_1", subscription.id, pause_until=date(2026, 12, 1), today=TODAY)

        assert updated.next_billing_date == date(2026, 12, 1)

    async def test_pause_until_past_date_is_rejected(self, service, make_subscription, provider_stub):
        subscription = await make_subscription(status="active")

        with pytest.raises(ValidationRejection):
            await service.pause("user_1", subscription.id, pause_until=TODAY, today=TODAY)
        assert provider_stub.requests == []

    async def test_cannot_pause_cancelled_subscription(self, service, make_subscription):
        subscription = await make_subscription(status="cancelled")

        with pytest.raises(ValidationRejection):
            await service.pause("user_1", subscription.id, today=TODAY)

    async def test_other_users_subscription_is_not_found(self, service, make_subscription):
        subscription = await make_subscription(status="active")

        with pytest.raises(ResourceNotFoundError):
            await service.pause("user_2", subscription.id, today=TODAY)

    async def test_provider_failure_leaves_record_unchanged(
        self, service, make_subscription, provider_stub, gateway
    ):
        subscription = await make_subscription(status="active")
        provider_stub.fail["/pause"] = (500, "upstream unavailable")

        with pytest.raises(BillingProviderError):
            await service.pause("user_1", subscription.id, today=TODAY)

        assert (await gateway.get_subscription(subscription.id)).status == "active"

    async def test_resume_sets_next_preferred_day(self, service, make_subscription, provider_stub):
        subscription = await make_subscription(status="paused", preferred_day=15)

        updated = await service.resume("user_1", subscription.id, today=TODAY)

        assert updated.status == "active"
        assert updated.next_billing_date == date(2026, 10, 15)
        assert json.loads(provider_stub.calls("POST", "/resume")[0].content) == {"resume_at": "now"}

    async def test_resume_requires_paused(self, service, make_subscription):
        subscription = await make_subscription(status="active")

        with pytest.raises(ValidationRejection):
            await service.resume("user_1", subscription.id, today=TODAY)

    async def test_cancel_is_immediate(self, service, make_subscription, provider_stub):
        subscription = await make_subscription(status="active")

        updated = await service.cancel("user_1", subscription.id)

        assert updated.status == "cancelled"
        assert updated.next_billing_date is None
        sent = json.loads(provider_stub.calls("POST", "/cancel")[0].content)
        assert sent == {"cancel_at_cycle_end": False}

    async def test_cancel_twice_calls_provider_once(self, service, make_subscription, provider_stub):
        subscription = await make_subscription(status="active")

        await service.cancel("user_1", subscription.id)
        again = await service.cancel("user_1", subscription.id)

        assert again.status == "cancelled"
        assert len(provider_stub.calls("POST", "/cancel")) == 1

    async def test_list_for_user(self, service, make_subscription):
        await make_subscription(user_id="user_1", billing_subscription_id="sub_a")
        await make_subscription(user_id="user_2", billing_subscription_id="sub_b")

        subscriptions = await service.list_for_user("user_1")

        assert [s.billing_subscription_id for s in subscriptions] == ["sub_a"]
