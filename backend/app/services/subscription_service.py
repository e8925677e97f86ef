"""SubscriptionLifecycleService: create, pause, resume, cancel and list subscriptions.

Every state change is mirrored to the billing provider first. Local rows are
written only after the provider accepted the change.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta

import httpx
import structlog
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import Settings, get_settings
from app.core.exceptions import (
    BillingProviderError,
    PartialWriteError,
    ResourceNotFoundError,
    ValidationRejection,
)
from app.db.gateway import PersistenceGateway
from app.db.models import PendingSubscription
from app.domain.deliveries import next_delivery_date, next_occurrence_of_day
from app.domain.eligibility import EligibilityRules, check_preferred_day, check_product_eligible
from app.integrations.billing_provider import BillingProviderClient
from app.metrics.cloudwatch import emit_business_event

DEFAULT_PAUSE_DAYS = 30


@dataclass(frozen=True)
class CreatedSubscription:
    subscription_id: uuid.UUID
    billing_subscription_id: str
    short_url: str | None
    first_delivery_date: date


class SubscriptionLifecycleService:
    def __init__(
        self,
        gateway: PersistenceGateway,
        provider: BillingProviderClient,
        settings: Settings | None = None,
        logger=None,
    ):
        self.gateway = gateway
        self.provider = provider
        self.settings = settings or get_settings()
        self.logger = logger or structlog.get_logger(__name__)
        self.rules = EligibilityRules(
            category_slug=self.settings.subscription_category_slug,
            variant_weight_grams=self.settings.subscription_variant_weight_grams,
        )

    async def create(
        self,
        user_id: str,
        product_id: uuid.UUID,
        variant_id: uuid.UUID,
        quantity: int,
        preferred_day: int,
        total_deliveries: int,
        shipping_address: dict,
        today: date | None = None,
    ) -> CreatedSubscription:
        """Create a provider subscription and the local record with its first delivery.

        Raises:
            ValidationRejection: bad delivery day or ineligible product/variant
            ResourceNotFoundError: product or variant does not exist
            PlanNotFoundError: linked plan missing or inactive at the provider
            BillingProviderError: provider refused the subscription
            PartialWriteError: provider subscription created but local writes failed
        """
        today = today or datetime.now(UTC).date()
        check_preferred_day(preferred_day)
        if quantity < 1:
            raise ValidationRejection("Quantity must be at least 1", code="invalid_quantity")
        if total_deliveries < 1:
            raise ValidationRejection("Total deliveries must be at least 1", code="invalid_total_deliveries")

        product = await self.gateway.get_product(product_id)
        if product is None:
            raise ResourceNotFoundError("Product not found")
        variant = await self.gateway.get_variant(variant_id)
        plan_id = check_product_eligible(product, variant, self.rules)

        # Stale or deleted plans must fail here, before anything is created
        await self.provider.get_plan(plan_id)

        provider_sub = await self.provider.create_subscription(
            plan_id=plan_id,
            total_count=total_deliveries,
            quantity=quantity,
            notes={
                "user_id": user_id,
                "product_id": str(product_id),
                "variant_id": str(variant_id),
                "delivery_date": preferred_day,
            },
        )

        record = PendingSubscription(
            user_id=user_id,
            billing_subscription_id=provider_sub.id,
            billing_plan_id=plan_id,
            product_id=product_id,
            variant_id=variant_id,
            quantity=quantity,
            preferred_delivery_day=preferred_day,
            total_deliveries=total_deliveries,
            shipping_address=shipping_address,
            status="pending",
            next_billing_date=next_occurrence_of_day(today, preferred_day),
        )
        first_date = next_delivery_date(today)
        try:
            record, _ = await self.gateway.create_subscription_with_first_delivery(record, first_date)
        except SQLAlchemyError as exc:
            self.logger.error(
                "subscription_persist_failed",
                billing_subscription_id=provider_sub.id,
                user_id=user_id,
                error=str(exc),
            )
            await self._cancel_orphan(provider_sub.id)
            raise PartialWriteError("Failed to save subscription") from exc

        self.logger.info(
            "subscription_created",
            subscription_id=str(record.id),
            billing_subscription_id=provider_sub.id,
            user_id=user_id,
            first_delivery_date=first_date.isoformat(),
        )
        await emit_business_event("subscription_created")
        return CreatedSubscription(
            subscription_id=record.id,
            billing_subscription_id=provider_sub.id,
            short_url=provider_sub.short_url,
            first_delivery_date=first_date,
        )

    async def _cancel_orphan(self, billing_subscription_id: str) -> None:
        if not self.settings.cancel_orphaned_provider_subscriptions:
            self.logger.warning("orphaned_provider_subscription_left", billing_subscription_id=billing_subscription_id)
            return
        try:
            await self.provider.cancel_subscription(billing_subscription_id)
        except (BillingProviderError, httpx.HTTPError) as exc:
            self.logger.error(
                "orphaned_provider_subscription_cancel_failed",
                billing_subscription_id=billing_subscription_id,
                error=str(exc),
            )
            return
        self.logger.warning("orphaned_provider_subscription_cancelled", billing_subscription_id=billing_subscription_id)

    # ── Management ──────────────────────────────────────────────────

    async def list_for_user(self, user_id: str) -> list[PendingSubscription]:
        return await self.gateway.list_subscriptions_for_user(user_id)

    async def _owned(self, user_id: str, subscription_id: uuid.UUID) -> PendingSubscription:
        subscription = await self.gateway.get_subscription(subscription_id)
        if subscription is None or subscription.user_id != user_id:
            raise ResourceNotFoundError("Subscription not found")
        if not subscription.billing_subscription_id:
            raise ValidationRejection("Subscription not linked to billing provider", code="not_linked")
        return subscription

    async def pause(
        self,
        user_id: str,
        subscription_id: uuid.UUID,
        pause_until: date | None = None,
        today: date | None = None,
    ) -> PendingSubscription:
        today = today or datetime.now(UTC).date()
        subscription = await self._owned(user_id, subscription_id)
        if subscription.status in ("cancelled", "completed"):
            raise ValidationRejection(f"Cannot pause a {subscription.status} subscription", code="invalid_state")

        resume_on = pause_until or today + timedelta(days=DEFAULT_PAUSE_DAYS)
        if resume_on <= today:
            raise ValidationRejection("Pause end date must be in the future", code="invalid_pause_until")
        resume_at = int(datetime.combine(resume_on, time.min, tzinfo=UTC).timestamp())

        await self.provider.pause_subscription(subscription.billing_subscription_id, resume_at)
        updated = await self.gateway.update_subscription(
            subscription.id, status="paused", next_billing_date=resume_on
        )
        self.logger.info("subscription_paused", subscription_id=str(subscription.id), resume_on=resume_on.isoformat())
        return updated

    async def resume(self, user_id: str, subscription_id: uuid.UUID, today: date | None = None) -> PendingSubscription:
        today = today or datetime.now(UTC).date()
        subscription = await self._owned(user_id, subscription_id)
        if subscription.status != "paused":
            raise ValidationRejection("Only paused subscriptions can be resumed", code="invalid_state")

        await self.provider.resume_subscription(subscription.billing_subscription_id)
        next_billing = next_occurrence_of_day(today, subscription.preferred_delivery_day)
        updated = await self.gateway.update_subscription(
            subscription.id, status="active", next_billing_date=next_billing
        )
        self.logger.info("subscription_resumed", subscription_id=str(subscription.id))
        return updated

    async def cancel(self, user_id: str, subscription_id: uuid.UUID) -> PendingSubscription:
        subscription = await self._owned(user_id, subscription_id)
        if subscription.status == "cancelled":
            return subscription

        await self.provider.cancel_subscription(subscription.billing_subscription_id)
        updated = await self.gateway.update_subscription(subscription.id, status="cancelled", next_billing_date=None)
        self.logger.info("subscription_cancelled", subscription_id=str(subscription.id))
        return updated
