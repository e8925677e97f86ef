"""DeliveryService: list and edit subscription deliveries.

Edits are pure data changes. They never call the billing provider, and a
skipped delivery is never replaced: the next paid invoice schedules its own
cycle as usual.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime

import structlog

from app.core.config import Settings, get_settings
from app.core.exceptions import PermissionDeniedError, ResourceNotFoundError, ValidationRejection
from app.db.gateway import PersistenceGateway
from app.db.models import PendingSubscription, SubscriptionDelivery
from app.domain.deliveries import (
    DeliveryStatus,
    check_new_date,
    check_user_editable,
    parse_status,
)


@dataclass(frozen=True)
class DeliveryView:
    id: uuid.UUID
    subscription_id: uuid.UUID
    cycle_number: int
    delivery_date: date
    status: str
    product_name: str | None
    quantity: int
    weight_grams: int | None
    editable: bool


class DeliveryService:
    def __init__(self, gateway: PersistenceGateway, settings: Settings | None = None, logger=None):
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.logger = logger or structlog.get_logger(__name__)

    @property
    def cutoff_days(self) -> int:
        return self.settings.delivery_cutoff_days

    def _is_editable(self, delivery: SubscriptionDelivery, today: date) -> bool:
        try:
            check_user_editable(delivery.cycle_number, delivery.status, delivery.delivery_date, today, self.cutoff_days)
        except ValidationRejection:
            return False
        return True

    async def list_for_user(self, user_id: str, today: date | None = None) -> list[DeliveryView]:
        today = today or datetime.now(UTC).date()
        rows = await self.gateway.list_deliveries_for_user(user_id)
        return [
            DeliveryView(
                id=delivery.id,
                subscription_id=delivery.subscription_id,
                cycle_number=delivery.cycle_number,
                delivery_date=delivery.delivery_date,
                status=delivery.status,
                product_name=product.name if product else None,
                quantity=subscription.quantity,
                weight_grams=variant.weight_grams if variant else None,
                editable=self._is_editable(delivery, today),
            )
            for delivery, subscription, product, variant in rows
        ]

    async def _load(
        self, delivery_id: uuid.UUID, user_id: str, is_admin: bool, admin_action: bool
    ) -> tuple[SubscriptionDelivery, PendingSubscription]:
        found = await self.gateway.get_delivery_with_subscription(delivery_id)
        if found is None:
            raise ResourceNotFoundError("Delivery not found")
        delivery, subscription = found

        is_owner = subscription.user_id == user_id
        if not is_owner and not (admin_action and is_admin):
            raise PermissionDeniedError("Forbidden")
        return delivery, subscription

    async def update_date(
        self,
        delivery_id: uuid.UUID,
        new_date: date,
        user_id: str,
        today: date | None = None,
    ) -> SubscriptionDelivery:
        """Move a future delivery. Only ``delivery_date`` changes."""
        today = today or datetime.now(UTC).date()
        delivery, _ = await self._load(delivery_id, user_id, is_admin=False, admin_action=False)

        check_user_editable(delivery.cycle_number, delivery.status, delivery.delivery_date, today, self.cutoff_days)
        check_new_date(new_date, today, self.cutoff_days)

        updated = await self.gateway.update_delivery(delivery.id, delivery_date=new_date)
        self.logger.info(
            "delivery_date_updated",
            delivery_id=str(delivery.id),
            cycle_number=delivery.cycle_number,
            old_date=delivery.delivery_date.isoformat(),
            new_date=new_date.isoformat(),
        )
        return updated

    async def skip(self, delivery_id: uuid.UUID, user_id: str, today: date | None = None) -> SubscriptionDelivery:
        today = today or datetime.now(UTC).date()
        delivery, _ = await self._load(delivery_id, user_id, is_admin=False, admin_action=False)

        check_user_editable(delivery.cycle_number, delivery.status, delivery.delivery_date, today, self.cutoff_days)

        updated = await self.gateway.update_delivery(delivery.id, status=DeliveryStatus.SKIPPED.value)
        self.logger.info("delivery_skipped", delivery_id=str(delivery.id), cycle_number=delivery.cycle_number)
        return updated

    async def admin_update_status(
        self,
        delivery_id: uuid.UUID,
        new_status: str | None,
        user_id: str,
        is_admin: bool,
    ) -> SubscriptionDelivery:
        """Set any status, bypassing cycle and cutoff rules. Admins only."""
        delivery, _ = await self._load(delivery_id, user_id, is_admin=is_admin, admin_action=True)
        if not is_admin:
            raise PermissionDeniedError("Admin privileges required")
        if not new_status:
            raise ValidationRejection("new_status is required for admin_update_status", code="missing_status")
        status = parse_status(new_status)

        updated = await self.gateway.update_delivery(delivery.id, status=status.value)
        self.logger.info(
            "delivery_status_overridden",
            delivery_id=str(delivery.id),
            old_status=delivery.status,
            new_status=status.value,
            admin_id=user_id,
        )
        return updated

