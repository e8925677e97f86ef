"""RetryQueueProcessor: replays failed webhook events with exponential backoff.

Due entries are re-posted to the matching webhook endpoint with the internal
replay header. Success stamps ``processed_at``. Each failure bumps
``retry_count`` and pushes ``next_retry_at`` out by base * 2^retry_count;
once the budget is spent ``failed_at`` is stamped and the row is kept for
manual inspection.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

import httpx
import structlog

from app.core.config import Settings, get_settings
from app.core.locking import RunLock, get_run_lock
from app.db.gateway import PersistenceGateway
from app.db.models import WebhookQueueEntry
from app.domain.webhooks import next_retry_at, truncate_error
from app.middleware.correlation import correlation_headers

INTERNAL_RETRY_HEADER = "X-Internal-Queue-Retry"
LOCK_NAME = "webhook-queue"
# Refreshed before every replay, so it only has to outlive one request
LOCK_TTL_SECONDS = 120
REPLAY_TIMEOUT_SECONDS = 30.0

MAIN_WEBHOOK_PATH = "/api/webhooks/billing"
SUBSCRIPTION_WEBHOOK_PATH = "/api/webhooks/billing/subscriptions"


@dataclass
class QueueRunSummary:
    processed: int = 0
    succeeded: int = 0
    retried: int = 0
    failed: int = 0
    skipped: bool = False


def webhook_path_for(event_type: str) -> str:
    if event_type.startswith("subscription."):
        return SUBSCRIPTION_WEBHOOK_PATH
    return MAIN_WEBHOOK_PATH


class RetryQueueProcessor:
    def __init__(
        self,
        gateway: PersistenceGateway,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        run_lock: RunLock | None = None,
        logger=None,
    ):
        self.gateway = gateway
        self.settings = settings or get_settings()
        self._transport = transport
        self._run_lock = run_lock
        self.logger = logger or structlog.get_logger(__name__)

    @property
    def run_lock(self) -> RunLock:
        return self._run_lock or get_run_lock()

    async def run(self, now: datetime | None = None, batch_size: int = 50) -> QueueRunSummary:
        """Process every due entry once. Only one run is active across workers."""
        if not self.settings.webhook_queue_secret:
            self.logger.error("webhook_queue_secret_missing")
            return QueueRunSummary(skipped=True)

        owner = uuid.uuid4().hex
        async with self.run_lock.hold(LOCK_NAME, owner, ttl=LOCK_TTL_SECONDS) as acquired:
            if not acquired:
                self.logger.info("webhook_queue_run_already_active")
                return QueueRunSummary(skipped=True)
            return await self._run_locked(now or datetime.now(UTC), batch_size, owner)

    async def _run_locked(self, now: datetime, batch_size: int, owner: str) -> QueueRunSummary:
        summary = QueueRunSummary()
        entries = await self.gateway.due_queue_entries(now, limit=batch_size)
        if not entries:
            return summary

        headers = {
            "Content-Type": "application/json",
            INTERNAL_RETRY_HEADER: self.settings.webhook_queue_secret,
            **correlation_headers(),
        }
        async with httpx.AsyncClient(
            base_url=self.settings.backend_url,
            transport=self._transport,
            timeout=REPLAY_TIMEOUT_SECONDS,
        ) as client:
            for entry in entries:
                if not await self.run_lock.acquire(LOCK_NAME, owner, ttl=LOCK_TTL_SECONDS):
                    self.logger.warning("webhook_queue_lock_lost", remaining=len(entries) - summary.processed)
                    break
                summary.processed += 1
                error = await self._replay(client, entry, headers)
                if error is None:
                    await self.gateway.update_queue_entry(entry.id, processed_at=now)
                    summary.succeeded += 1
                    self.logger.info("webhook_replay_succeeded", queue_id=str(entry.id), event_type=entry.event_type)
                    continue

                if await self._record_failure(entry, error, now):
                    summary.failed += 1
                else:
                    summary.retried += 1

        self.logger.info(
            "webhook_queue_run_finished",
            processed=summary.processed,
            succeeded=summary.succeeded,
            retried=summary.retried,
            failed=summary.failed,
        )
        return summary

    async def _replay(self, client: httpx.AsyncClient, entry: WebhookQueueEntry, headers: dict) -> str | None:
        """Post the stored event. Returns an error message, or None on success."""
        try:
            response = await client.post(webhook_path_for(entry.event_type), json=entry.payload, headers=headers)
        except httpx.HTTPError as exc:
            return f"{exc.__class__.__name__}: {exc}"
        if response.is_success:
            return None
        return f"HTTP {response.status_code}: {response.text[:500]}"

    async def _record_failure(self, entry: WebhookQueueEntry, error: str, now: datetime) -> bool:
        """Bump the retry state. Returns True when the entry is now exhausted."""
        new_retry_count = entry.retry_count + 1
        if new_retry_count >= entry.max_retries:
            await self.gateway.update_queue_entry(
                entry.id,
                retry_count=new_retry_count,
                failed_at=now,
                last_error=truncate_error(error),
            )
            self.logger.error(
                "webhook_replay_exhausted",
                queue_id=str(entry.id),
                event_type=entry.event_type,
                retries=new_retry_count,
                error=error,
            )
            return True

        retry_at = next_retry_at(now, new_retry_count, self.settings.webhook_retry_base_seconds)
        await self.gateway.update_queue_entry(
            entry.id,
            retry_count=new_retry_count,
            next_retry_at=retry_at,
            last_error=truncate_error(error),
        )
        self.logger.warning(
            "webhook_replay_rescheduled",
            queue_id=str(entry.id),
            event_type=entry.event_type,
            retry_count=new_retry_count,
            next_retry_at=retry_at.isoformat(),
        )
        return False
