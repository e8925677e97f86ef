"""Billing provider integration: plans, subscriptions, orders and payments.

Thin async wrapper over the recurring-payments REST API (Basic-Auth keyed).
It keeps no local state. Non-2xx answers raise ``BillingProviderError`` with
the provider's response text attached verbatim.

Reads (plan lookup, payment listing) are retried on transport errors. Writes
are never retried here since the provider does not deduplicate them.
"""

from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import get_settings
from app.core.exceptions import BillingNotConfiguredError, BillingProviderError, PlanNotFoundError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BillingPlan:
    id: str
    amount: int  # paise
    status: str | None = None


@dataclass(frozen=True)
class ProviderSubscription:
    id: str
    short_url: str | None
    status: str | None = None
    raw: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ProviderOrder:
    id: str
    amount: int
    currency: str
    receipt: str | None = None


class BillingProviderClient:
    """Client for the billing provider REST API."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
        logger=None,
    ):
        if not key_id or not key_secret:
            raise BillingNotConfiguredError("Payment gateway not configured")
        self.key_id = key_id
        self._auth = httpx.BasicAuth(key_id, key_secret)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self.logger = logger or structlog.get_logger(__name__)

    @classmethod
    def from_settings(cls, transport: httpx.AsyncBaseTransport | None = None) -> "BillingProviderClient":
        settings = get_settings()
        return cls(
            key_id=settings.billing_key_id,
            key_secret=settings.billing_key_secret,
            base_url=settings.billing_api_base_url,
            timeout=settings.billing_http_timeout_seconds,
            transport=transport,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=self._auth,
            timeout=self.timeout,
            transport=self._transport,
        )

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
        before_sleep=lambda rs: logger.warning(
            "billing_provider_get_retrying",
            attempt=rs.attempt_number,
            sleep_seconds=rs.next_action.sleep,
        ),
    )
    async def _get(self, path: str, params: dict | None = None) -> httpx.Response:
        async with self._client() as client:
            return await client.get(path, params=params)

    async def _post(self, operation: str, path: str, payload: dict) -> dict[str, Any]:
        async with self._client() as client:
            response = await client.post(path, json=payload)
        if not response.is_success:
            self.logger.warning(
                "billing_provider_error",
                operation=operation,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise BillingProviderError(operation, response.status_code, response.text)
        return response.json()

    # ── Plans ───────────────────────────────────────────────────────

    async def get_plan(self, plan_id: str) -> BillingPlan:
        """Fetch a plan. Raises PlanNotFoundError if missing or inactive."""
        response = await self._get(f"/plans/{plan_id}")
        if not response.is_success:
            self.logger.warning("billing_plan_lookup_failed", plan_id=plan_id, status_code=response.status_code)
            raise PlanNotFoundError(plan_id, response.text)

        data = response.json()
        status = data.get("status")
        if status is not None and status != "active":
            raise PlanNotFoundError(plan_id, f"plan is {status}")

        item = data.get("item") or {}
        amount = item.get("amount", data.get("amount", 0))
        return BillingPlan(id=data.get("id", plan_id), amount=int(amount), status=status)

    # ── Subscriptions ───────────────────────────────────────────────

    async def create_subscription(
        self,
        plan_id: str,
        total_count: int,
        quantity: int,
        notes: dict[str, Any],
        customer_notify: bool = True,
    ) -> ProviderSubscription:
        data = await self._post(
            "create_subscription",
            "/subscriptions",
            {
                "plan_id": plan_id,
                "customer_notify": 1 if customer_notify else 0,
                "total_count": total_count,
                "quantity": quantity,
                "notes": notes,
            },
        )
        self.logger.info("billing_subscription_created", billing_subscription_id=data.get("id"))
        return ProviderSubscription(
            id=data["id"],
            short_url=data.get("short_url"),
            status=data.get("status"),
            raw=data,
        )

    async def pause_subscription(self, subscription_id: str, resume_at: int) -> dict[str, Any]:
        """Pause now and schedule the automatic resume at ``resume_at`` (unix seconds)."""
        return await self._post(
            "pause_subscription",
            f"/subscriptions/{subscription_id}/pause",
            {"pause_at": "now", "resume_at": resume_at},
        )

    async def resume_subscription(self, subscription_id: str) -> dict[str, Any]:
        return await self._post(
            "resume_subscription",
            f"/subscriptions/{subscription_id}/resume",
            {"resume_at": "now"},
        )

    async def cancel_subscription(self, subscription_id: str) -> dict[str, Any]:
        return await self._post(
            "cancel_subscription",
            f"/subscriptions/{subscription_id}/cancel",
            {"cancel_at_cycle_end": False},
        )

    # ── Orders & payments ───────────────────────────────────────────

    async def create_order(self, amount: int, currency: str, receipt: str, notes: dict | None = None) -> ProviderOrder:
        data = await self._post(
            "create_order",
            "/orders",
            {"amount": amount, "currency": currency, "receipt": receipt, "notes": notes or {}},
        )
        return ProviderOrder(
            id=data["id"],
            amount=int(data.get("amount", amount)),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
        )

    async def list_payments(self, from_ts: int, count: int = 100) -> list[dict[str, Any]]:
        response = await self._get("/payments", params={"from": from_ts, "count": count})
        if not response.is_success:
            raise BillingProviderError("list_payments", response.status_code, response.text)
        return response.json().get("items", [])
