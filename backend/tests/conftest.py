"""Shared test fixtures for all test groups."""

import json
import os
from dataclasses import dataclass, field
from types import SimpleNamespace

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("METRICS_ENABLED", "false")
os.environ.setdefault("BILLING_KEY_ID", "rzp_test_key")
os.environ.setdefault("BILLING_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("BILLING_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("WEBHOOK_QUEUE_SECRET", "queue_test_secret")
os.environ.setdefault("AUTH_JWKS_URL", "https://auth.test/.well-known/jwks.json")

import httpx
import pytest
from fakeredis import FakeAsyncRedis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import Settings
from app.core.locking import RunLock
from app.db.base import Base
from app.db.gateway import PersistenceGateway
from app.db.models import Product, ProductVariant
from app.integrations.billing_provider import BillingProviderClient

ADDRESS = {
    "full_name": "Asha Rao",
    "phone": "+91 98765 43210",
    "address_line1": "12 Brigade Road",
    "address_line2": None,
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
}


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        billing_key_id="rzp_test_key",
        billing_key_secret="rzp_test_secret",
        billing_webhook_secret="whsec_test",
        webhook_queue_secret="queue_test_secret",
        metrics_enabled=False,
    )


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite engine, installed as the process-wide engine."""
    import app.db.base as db_mod
    import app.db.models  # noqa: F401

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    db_mod._engine = engine
    db_mod._session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    yield engine

    db_mod._engine = None
    db_mod._session_factory = None
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def gateway(session_factory) -> PersistenceGateway:
    return PersistenceGateway(session_factory)


@pytest.fixture
async def catalog(session_factory):
    """Coffee powder product with 1kg and 250g variants, plus ineligible products.

    ``retired`` is a planned 1kg coffee powder switched off for subscriptions.
    """
    powder = Product(
        name="House Blend Coffee Powder",
        category_slug="coffee-powders",
        category_name="Coffee Powders",
        subscription_eligible=True,
        billing_plan_id="plan_house_1kg",
    )
    beans = Product(
        name="Estate Whole Beans",
        category_slug="whole-beans",
        category_name="Whole Beans",
        subscription_eligible=True,
        billing_plan_id="plan_beans",
    )
    unplanned = Product(
        name="Filter Coffee Powder",
        category_slug="coffee-powders",
        category_name="Coffee Powders",
        subscription_eligible=True,
    )
    retired = Product(
        name="Monsoon Malabar Coffee Powder",
        category_slug="coffee-powders",
        category_name="Coffee Powders",
        subscription_eligible=False,
        billing_plan_id="plan_house_1kg",
    )
    async with session_factory() as session:
        session.add_all([powder, beans, unplanned, retired])
        await session.flush()
        powder_1kg = ProductVariant(product_id=powder.id, weight_grams=1000, price_paise=90000)
        powder_250g = ProductVariant(product_id=powder.id, weight_grams=250, price_paise=25000)
        beans_1kg = ProductVariant(product_id=beans.id, weight_grams=1000, price_paise=110000)
        unplanned_1kg = ProductVariant(product_id=unplanned.id, weight_grams=1000, price_paise=80000)
        retired_1kg = ProductVariant(product_id=retired.id, weight_grams=1000, price_paise=95000)
        session.add_all([powder_1kg, powder_250g, beans_1kg, unplanned_1kg, retired_1kg])
        await session.commit()

    return SimpleNamespace(
        powder=powder,
        powder_1kg=powder_1kg,
        powder_250g=powder_250g,
        beans=beans,
        beans_1kg=beans_1kg,
        unplanned=unplanned,
        unplanned_1kg=unplanned_1kg,
        retired=retired,
        retired_1kg=retired_1kg,
    )


# ── Billing provider stub ───────────────────────────────────────────


@dataclass
class ProviderStub:
    """In-memory billing provider served through httpx.MockTransport.

    ``fail`` maps a path suffix (e.g. "/subscriptions") to a (status, body)
    pair returned instead of the happy response.
    """

    plans: dict = field(default_factory=lambda: {"plan_house_1kg": "active", "plan_beans": "active"})
    payments: list = field(default_factory=list)
    fail: dict = field(default_factory=dict)
    requests: list = field(default_factory=list)
    _counter: int = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_{self._counter:04d}"

    def calls(self, method: str, path_suffix: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path.endswith(path_suffix)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/v1")

        for suffix, (status, body) in self.fail.items():
            if path.endswith(suffix):
                return httpx.Response(status, text=body)

        if request.method == "GET" and path.startswith("/plans/"):
            plan_id = path.rsplit("/", 1)[-1]
            if plan_id not in self.plans:
                return httpx.Response(400, json={"error": {"description": "The id provided does not exist"}})
            return httpx.Response(
                200,
                json={"id": plan_id, "status": self.plans[plan_id], "item": {"amount": 90000}},
            )

        if request.method == "GET" and path == "/payments":
            return httpx.Response(200, json={"count": len(self.payments), "items": self.payments})

        payload = json.loads(request.content or b"{}")
        if request.method == "POST" and path == "/subscriptions":
            sub_id = self._next_id("sub")
            return httpx.Response(
                200,
                json={"id": sub_id, "status": "created", "short_url": f"https://rzp.io/i/{sub_id}", **payload},
            )
        if request.method == "POST" and path.startswith("/subscriptions/"):
            sub_id = path.split("/")[2]
            action = path.rsplit("/", 1)[-1]
            status = {"pause": "paused", "resume": "active", "cancel": "cancelled"}[action]
            return httpx.Response(200, json={"id": sub_id, "status": status})
        if request.method == "POST" and path == "/orders":
            return httpx.Response(
                200,
                json={"id": self._next_id("order"), "status": "created", **payload},
            )
        return httpx.Response(404, json={"error": {"description": "not found"}})


@pytest.fixture
def provider_stub() -> ProviderStub:
    return ProviderStub()


@pytest.fixture
def provider(provider_stub) -> BillingProviderClient:
    return BillingProviderClient(
        key_id="rzp_test_key",
        key_secret="rzp_test_secret",
        transport=httpx.MockTransport(provider_stub.handler),
    )


# ── Redis ───────────────────────────────────────────────────────────


@pytest.fixture
async def redis():
    """Provide fakeredis async client."""
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def run_lock(redis) -> RunLock:
    return RunLock(redis)


# ── Record factories ────────────────────────────────────────────────


@pytest.fixture
def make_subscription(gateway, catalog):
    """Create a subscription record with its cycle-1 delivery."""
    from app.db.models import PendingSubscription

    async def _make(
        user_id: str = "user_1",
        billing_subscription_id: str = "sub_0001",
        status: str = "pending",
        first_delivery_date=None,
        preferred_day: int = 15,
    ):
        from datetime import date

        record = PendingSubscription(
            user_id=user_id,
            billing_subscription_id=billing_subscription_id,
            billing_plan_id="plan_house_1kg",
            product_id=catalog.powder.id,
            variant_id=catalog.powder_1kg.id,
            quantity=1,
            preferred_delivery_day=preferred_day,
            total_deliveries=6,
            shipping_address=ADDRESS,
            status=status,
        )
        subscription, _ = await gateway.create_subscription_with_first_delivery(
            record, first_delivery_date or date(2026, 10, 11)
        )
        return subscription

    return _make


@pytest.fixture
def make_pending_order(gateway, catalog):
    """Stage a two-bag cart for the 1kg powder variant."""
    from app.db.models import PendingOrder

    async def _make(billing_order_id: str = "order_0001", cart_data: list | None = None, user_id: str = "user_1"):
        lines = cart_data
        if lines is None:
            lines = [
                {
                    "product_id": str(catalog.powder.id),
                    "variant_id": str(catalog.powder_1kg.id),
                    "quantity": 2,
                    "price": 90000,
                }
            ]
        return await gateway.insert_pending_order(
            PendingOrder(
                user_id=user_id,
                billing_order_id=billing_order_id,
                cart_data=lines,
                shipping_address=ADDRESS,
                total_amount=sum(line["price"] * line["quantity"] for line in lines) + 5000,
                shipping_charge=5000,
                payment_type="prepaid",
            )
        )

    return _make
