"""MaintenanceService: admin housekeeping over staged and finalized orders."""

from datetime import UTC, datetime, timedelta

import structlog

from app.core.config import Settings, get_settings
from app.db.gateway import PersistenceGateway
from app.integrations.billing_provider import BillingProviderClient


class MaintenanceService:
    def __init__(
        self,
        gateway: PersistenceGateway,
        provider: BillingProviderClient | None = None,
        settings: Settings | None = None,
        logger=None,
    ):
        self.gateway = gateway
        self.provider = provider
        self.settings = settings or get_settings()
        self.logger = logger or structlog.get_logger(__name__)

    async def purge_stale_pending_orders(self, now: datetime | None = None) -> tuple[int, datetime]:
        """Delete pending orders older than the TTL (abandoned checkouts)."""
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(hours=self.settings.pending_order_ttl_hours)
        deleted = await self.gateway.delete_pending_orders_created_before(cutoff)
        self.logger.info("stale_pending_orders_purged", deleted=deleted, cutoff=cutoff.isoformat())
        return deleted, cutoff

    async def missing_orders_report(self, days: int = 7, now: datetime | None = None) -> tuple[int, list[dict]]:
        """Captured provider payments with no Order row. Report only; nothing is created.

        Returns (captured payments checked, missing payments).
        """
        if self.provider is None:
            raise RuntimeError("missing_orders_report needs a billing provider client")
        now = now or datetime.now(UTC)
        from_ts = int((now - timedelta(days=days)).timestamp())

        payments = await self.provider.list_payments(from_ts, count=100)
        captured = [p for p in payments if p.get("status") == "captured"]

        order_ids = {p["order_id"] for p in captured if p.get("order_id")}
        payment_ids = {p["id"] for p in captured if p.get("id")}
        found_orders, found_payments = await self.gateway.existing_order_references(order_ids, payment_ids)

        missing = [
            p
            for p in captured
            if p.get("id") not in found_payments and (not p.get("order_id") or p["order_id"] not in found_orders)
        ]
        self.logger.info("missing_orders_checked", days=days, captured=len(captured), missing=len(missing))
        return len(captured), missing
