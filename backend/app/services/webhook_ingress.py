"""Shared bookkeeping for signed billing webhook endpoints.

Each event is written to webhook_logs before processing and flagged processed
only on success. A failed live event gets a webhook_queue entry so the retry
processor can replay it later.
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime

import structlog

from app.core.config import Settings, get_settings
from app.db.gateway import PersistenceGateway
from app.domain.webhooks import next_retry_at, truncate_error
from app.metrics.cloudwatch import emit_business_event
from app.schemas.webhooks import provider_entity_id


@dataclass(frozen=True)
class ReconcileResult:
    success: bool
    error: str | None = None
    note: str | None = None

    @classmethod
    def ok(cls, note: str | None = None) -> "ReconcileResult":
        return cls(success=True, note=note)

    @classmethod
    def failed(cls, error: str) -> "ReconcileResult":
        return cls(success=False, error=error)


class WebhookIngress:
    """Base class: subclasses implement ``process``, which must not raise."""

    def __init__(self, gateway: PersistenceGateway, settings: Settings | None = None, logger=None):
        self.gateway = gateway
        self.settings = settings or get_settings()
        self.logger = logger or structlog.get_logger(__name__)

    async def process(self, body: dict, today: date) -> ReconcileResult:
        raise NotImplementedError

    async def handle(
        self,
        body: dict,
        from_queue: bool = False,
        now: datetime | None = None,
        today: date | None = None,
    ) -> ReconcileResult:
        """Log, process and book-keep one event.

        Events replayed from the retry queue are not queued again on failure;
        the queue processor owns their retry state.
        """
        now = now or datetime.now(UTC)
        today = today or now.date()
        event_type = str(body.get("event") or "unknown")
        log = self.logger.bind(event_type=event_type, from_queue=from_queue)

        log_id = await self.gateway.insert_webhook_log(event_type, provider_entity_id(body), body)
        result = await self.process(body, today)

        if result.success:
            await self.gateway.mark_webhook_processed(log_id)
            log.info("webhook_processed", note=result.note)
            return result

        if from_queue:
            log.warning("webhook_replay_failed", error=result.error)
            return result

        retry_at = next_retry_at(now, 0, self.settings.webhook_retry_base_seconds)
        await self.gateway.enqueue_webhook(
            event_type=event_type,
            payload=body,
            last_error=truncate_error(result.error or "unknown error"),
            next_retry_at=retry_at,
            max_retries=self.settings.webhook_max_retries,
        )
        log.error("webhook_queued_for_retry", error=result.error, next_retry_at=retry_at.isoformat())
        await emit_business_event("webhook_queued", event_type=event_type)
        return result
