"""SubscriptionStatusSync: mirrors provider subscription status onto local records.

Handles ``subscription.*`` events only. It never creates or removes
deliveries; scheduling belongs to invoice.paid in the reconciler.
"""

from datetime import UTC, date, datetime

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import Settings
from app.db.gateway import PersistenceGateway
from app.schemas.webhooks import SubscriptionEvent
from app.services.webhook_ingress import ReconcileResult, WebhookIngress

STATUS_BY_EVENT = {
    "subscription.authenticated": "active",
    "subscription.activated": "active",
    "subscription.resumed": "active",
    "subscription.paused": "paused",
    "subscription.cancelled": "cancelled",
    "subscription.completed": "completed",
}

PAYMENT_STATUS_BY_EVENT = {
    "subscription.pending": "pending",
    "subscription.halted": "failed",
    "subscription.payment_failed": "failed",
    "subscription.charged": "success",
}


class SubscriptionStatusSync(WebhookIngress):
    def __init__(self, gateway: PersistenceGateway, settings: Settings | None = None, logger=None):
        super().__init__(gateway, settings, logger or structlog.get_logger(__name__))

    async def process(self, body: dict, today: date) -> ReconcileResult:
        event_type = body.get("event")
        if not isinstance(event_type, str) or not event_type.startswith("subscription."):
            self.logger.info("subscription_sync_event_ignored", event_type=event_type)
            return ReconcileResult.ok("ignored")

        try:
            event = SubscriptionEvent.model_validate(body)
        except ValidationError as exc:
            self.logger.warning("subscription_payload_invalid", event_type=event_type, errors=exc.error_count())
            return ReconcileResult.failed("Invalid payload: missing subscription entity")

        try:
            return await self._apply(event)
        except SQLAlchemyError as exc:
            self.logger.error("subscription_sync_persistence_error", event_type=event_type, error=str(exc), exc_info=True)
            return ReconcileResult.failed(f"Database error: {exc.__class__.__name__}")

    async def _apply(self, event: SubscriptionEvent) -> ReconcileResult:
        entity = event.payload.subscription.entity
        log = self.logger.bind(event_type=event.event, billing_subscription_id=entity.id)

        subscription = await self.gateway.get_subscription_by_billing_id(entity.id)
        if subscription is None:
            log.warning("subscription_not_found_for_status_event")
            return ReconcileResult.ok("unknown_subscription")

        updates: dict = {}
        if event.event in STATUS_BY_EVENT:
            updates["status"] = STATUS_BY_EVENT[event.event]
        if event.event in PAYMENT_STATUS_BY_EVENT:
            updates["last_payment_status"] = PAYMENT_STATUS_BY_EVENT[event.event]
        if entity.charge_at:
            updates["next_billing_date"] = datetime.fromtimestamp(entity.charge_at, UTC).date()
        if updates.get("status") in ("cancelled", "completed"):
            updates["next_billing_date"] = None

        if not updates:
            log.info("subscription_event_without_mapping")
            return ReconcileResult.ok("ignored")

        await self.gateway.update_subscription(subscription.id, **updates)
        log.info(
            "subscription_status_synced",
            subscription_id=str(subscription.id),
            old_status=subscription.status,
            **{k: (v.isoformat() if isinstance(v, date) else v) for k, v in updates.items()},
        )
        return ReconcileResult.ok()
