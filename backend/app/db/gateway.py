"""PersistenceGateway: typed reads and writes over the storefront tables.

No business rules live here. Every method opens one short session and commits
before returning, so callers see exactly the state that was persisted.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import DuplicateDeliveryError
from app.db.models import (
    Order,
    OrderItem,
    PendingOrder,
    PendingSubscription,
    Product,
    ProductVariant,
    SubscriptionDelivery,
    WebhookLog,
    WebhookQueueEntry,
)


class PersistenceGateway:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # ── Catalog ─────────────────────────────────────────────────────

    async def get_product(self, product_id: uuid.UUID) -> Product | None:
        async with self.session_factory() as session:
            return await session.get(Product, product_id)

    async def get_variant(self, variant_id: uuid.UUID) -> ProductVariant | None:
        async with self.session_factory() as session:
            return await session.get(ProductVariant, variant_id)

    async def get_products(self, product_ids: set[uuid.UUID]) -> dict[uuid.UUID, Product]:
        if not product_ids:
            return {}
        async with self.session_factory() as session:
            result = await session.execute(select(Product).where(Product.id.in_(product_ids)))
            return {p.id: p for p in result.scalars().all()}

    async def get_variants(self, variant_ids: set[uuid.UUID]) -> dict[uuid.UUID, ProductVariant]:
        if not variant_ids:
            return {}
        async with self.session_factory() as session:
            result = await session.execute(select(ProductVariant).where(ProductVariant.id.in_(variant_ids)))
            return {v.id: v for v in result.scalars().all()}

    # ── Subscriptions ───────────────────────────────────────────────

    async def create_subscription_with_first_delivery(
        self,
        subscription: PendingSubscription,
        delivery_date: date,
    ) -> tuple[PendingSubscription, SubscriptionDelivery]:
        """Insert the subscription record and its cycle-1 delivery in one transaction."""
        async with self.session_factory() as session:
            async with session.begin():
                session.add(subscription)
                await session.flush()
                delivery = SubscriptionDelivery(
                    subscription_id=subscription.id,
                    cycle_number=1,
                    delivery_date=delivery_date,
                    status="scheduled",
                )
                session.add(delivery)
            return subscription, delivery

    async def get_subscription(self, subscription_id: uuid.UUID) -> PendingSubscription | None:
        async with self.session_factory() as session:
            return await session.get(PendingSubscription, subscription_id)

    async def get_subscription_by_billing_id(self, billing_subscription_id: str) -> PendingSubscription | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PendingSubscription).where(
                    PendingSubscription.billing_subscription_id == billing_subscription_id
                )
            )
            return result.scalar_one_or_none()

    async def list_subscriptions_for_user(self, user_id: str) -> list[PendingSubscription]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PendingSubscription)
                .where(PendingSubscription.user_id == user_id)
                .order_by(PendingSubscription.created_at.desc())
            )
            return list(result.scalars().all())

    async def update_subscription(self, subscription_id: uuid.UUID, **fields) -> PendingSubscription | None:
        async with self.session_factory() as session:
            subscription = await session.get(PendingSubscription, subscription_id)
            if subscription is None:
                return None
            for key, value in fields.items():
                setattr(subscription, key, value)
            await session.commit()
            return subscription

    # ── Deliveries ──────────────────────────────────────────────────

    async def get_delivery_with_subscription(
        self, delivery_id: uuid.UUID
    ) -> tuple[SubscriptionDelivery, PendingSubscription] | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(SubscriptionDelivery, PendingSubscription)
                .join(PendingSubscription, SubscriptionDelivery.subscription_id == PendingSubscription.id)
                .where(SubscriptionDelivery.id == delivery_id)
            )
            row = result.first()
            return (row[0], row[1]) if row else None

    async def list_deliveries_for_user(
        self, user_id: str
    ) -> list[tuple[SubscriptionDelivery, PendingSubscription, Product | None, ProductVariant | None]]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(SubscriptionDelivery, PendingSubscription, Product, ProductVariant)
                .join(PendingSubscription, SubscriptionDelivery.subscription_id == PendingSubscription.id)
                .outerjoin(Product, PendingSubscription.product_id == Product.id)
                .outerjoin(ProductVariant, PendingSubscription.variant_id == ProductVariant.id)
                .where(PendingSubscription.user_id == user_id)
                .order_by(SubscriptionDelivery.delivery_date, SubscriptionDelivery.cycle_number)
            )
            return [tuple(row) for row in result.all()]

    async def find_delivery(self, subscription_id: uuid.UUID, cycle_number: int) -> SubscriptionDelivery | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(SubscriptionDelivery).where(
                    SubscriptionDelivery.subscription_id == subscription_id,
                    SubscriptionDelivery.cycle_number == cycle_number,
                )
            )
            return result.scalar_one_or_none()

    async def count_deliveries(self, subscription_id: uuid.UUID) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(SubscriptionDelivery)
                .where(SubscriptionDelivery.subscription_id == subscription_id)
            )
            return result.scalar_one()

    async def insert_delivery(
        self,
        subscription_id: uuid.UUID,
        cycle_number: int,
        delivery_date: date,
        status: str = "scheduled",
    ) -> SubscriptionDelivery:
        """Insert a delivery row.

        Raises DuplicateDeliveryError when the (subscription_id, cycle_number)
        pair already exists.
        """
        async with self.session_factory() as session:
            delivery = SubscriptionDelivery(
                subscription_id=subscription_id,
                cycle_number=cycle_number,
                delivery_date=delivery_date,
                status=status,
            )
            session.add(delivery)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateDeliveryError(subscription_id, cycle_number) from exc
            return delivery

    async def update_delivery(self, delivery_id: uuid.UUID, **fields) -> SubscriptionDelivery | None:
        async with self.session_factory() as session:
            delivery = await session.get(SubscriptionDelivery, delivery_id)
            if delivery is None:
                return None
            for key, value in fields.items():
                setattr(delivery, key, value)
            await session.commit()
            return delivery

    # ── Orders ──────────────────────────────────────────────────────

    async def insert_pending_order(self, pending_order: PendingOrder) -> PendingOrder:
        async with self.session_factory() as session:
            session.add(pending_order)
            await session.commit()
            return pending_order

    async def get_pending_order_by_billing_id(self, billing_order_id: str) -> PendingOrder | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PendingOrder).where(PendingOrder.billing_order_id == billing_order_id)
            )
            return result.scalar_one_or_none()

    async def delete_pending_order(self, pending_order_id: uuid.UUID) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(delete(PendingOrder).where(PendingOrder.id == pending_order_id))
            await session.commit()
            return result.rowcount > 0

    async def delete_pending_orders_created_before(self, cutoff: datetime) -> int:
        async with self.session_factory() as session:
            result = await session.execute(delete(PendingOrder).where(PendingOrder.created_at < cutoff))
            await session.commit()
            return result.rowcount

    async def insert_order(self, order: Order) -> Order:
        async with self.session_factory() as session:
            session.add(order)
            await session.commit()
            return order

    async def insert_order_item(self, item: OrderItem) -> OrderItem:
        async with self.session_factory() as session:
            session.add(item)
            await session.commit()
            return item

    async def delete_order(self, order_id: uuid.UUID) -> None:
        """Delete an order and any items already written for it."""
        async with self.session_factory() as session:
            await session.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
            await session.execute(delete(Order).where(Order.id == order_id))
            await session.commit()

    async def count_orders(self, billing_order_id: str | None = None) -> int:
        async with self.session_factory() as session:
            stmt = select(func.count()).select_from(Order)
            if billing_order_id is not None:
                stmt = stmt.where(Order.billing_order_id == billing_order_id)
            result = await session.execute(stmt)
            return result.scalar_one()

    async def list_order_items(self, order_id: uuid.UUID) -> list[OrderItem]:
        async with self.session_factory() as session:
            result = await session.execute(select(OrderItem).where(OrderItem.order_id == order_id))
            return list(result.scalars().all())

    async def existing_order_references(
        self, billing_order_ids: set[str], billing_payment_ids: set[str]
    ) -> tuple[set[str], set[str]]:
        """Return which provider order ids and payment ids already have an Order row."""
        if not billing_order_ids and not billing_payment_ids:
            return set(), set()
        async with self.session_factory() as session:
            result = await session.execute(
                select(Order.billing_order_id, Order.billing_payment_id).where(
                    Order.billing_order_id.in_(billing_order_ids) | Order.billing_payment_id.in_(billing_payment_ids)
                )
            )
            found_orders: set[str] = set()
            found_payments: set[str] = set()
            for order_ref, payment_ref in result.all():
                if order_ref:
                    found_orders.add(order_ref)
                if payment_ref:
                    found_payments.add(payment_ref)
            return found_orders, found_payments

    # ── Webhooks ────────────────────────────────────────────────────

    async def insert_webhook_log(self, event_type: str, provider_entity_id: str | None, payload: dict) -> uuid.UUID:
        async with self.session_factory() as session:
            log = WebhookLog(
                event_type=event_type,
                provider_entity_id=provider_entity_id,
                payload=payload,
                processed=False,
            )
            session.add(log)
            await session.commit()
            return log.id

    async def mark_webhook_processed(self, log_id: uuid.UUID) -> None:
        async with self.session_factory() as session:
            await session.execute(update(WebhookLog).where(WebhookLog.id == log_id).values(processed=True))
            await session.commit()

    async def get_webhook_log(self, log_id: uuid.UUID) -> WebhookLog | None:
        async with self.session_factory() as session:
            return await session.get(WebhookLog, log_id)

    async def enqueue_webhook(
        self,
        event_type: str,
        payload: dict,
        last_error: str,
        next_retry_at: datetime,
        max_retries: int,
    ) -> WebhookQueueEntry:
        async with self.session_factory() as session:
            entry = WebhookQueueEntry(
                event_type=event_type,
                payload=payload,
                retry_count=0,
                max_retries=max_retries,
                next_retry_at=next_retry_at,
                last_error=last_error,
            )
            session.add(entry)
            await session.commit()
            return entry

    async def due_queue_entries(self, now: datetime, limit: int = 50) -> list[WebhookQueueEntry]:
        """Entries not yet resolved, due for retry and with budget remaining."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(WebhookQueueEntry)
                .where(
                    WebhookQueueEntry.processed_at.is_(None),
                    WebhookQueueEntry.failed_at.is_(None),
                    WebhookQueueEntry.next_retry_at <= now,
                    WebhookQueueEntry.retry_count < WebhookQueueEntry.max_retries,
                )
                .order_by(WebhookQueueEntry.next_retry_at)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def update_queue_entry(self, entry_id: uuid.UUID, **fields) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(WebhookQueueEntry).where(WebhookQueueEntry.id == entry_id).values(**fields)
            )
            await session.commit()

    async def get_queue_entry(self, entry_id: uuid.UUID) -> WebhookQueueEntry | None:
        async with self.session_factory() as session:
            return await session.get(WebhookQueueEntry, entry_id)

    async def list_queue_entries(self) -> list[WebhookQueueEntry]:
        async with self.session_factory() as session:
            result = await session.execute(select(WebhookQueueEntry).order_by(WebhookQueueEntry.created_at))
            return list(result.scalars().all())
