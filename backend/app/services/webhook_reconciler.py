"""WebhookReconciler: turns billing provider events into orders and deliveries.

Delivery is at-least-once, so every handler is idempotent. An absent pending
record or an existing (subscription, cycle) delivery means the work was
already done and the event is acknowledged as a success.

Logging and retry bookkeeping live in WebhookIngress.
"""

import secrets
import string
import time
import uuid
from datetime import date

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.config import Settings
from app.core.exceptions import DuplicateDeliveryError, PartialWriteError
from app.db.gateway import PersistenceGateway
from app.db.models import Order, OrderItem, PendingOrder
from app.domain.deliveries import next_delivery_date
from app.domain.webhooks import normalize_shipping_address
from app.metrics.cloudwatch import emit_business_event
from app.schemas.webhooks import (
    InvoiceFailedEvent,
    InvoicePaidEvent,
    PaymentCapturedEvent,
    PaymentFailedEvent,
    parse_webhook_event,
)
from app.services.webhook_ingress import ReconcileResult, WebhookIngress

_ORDER_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def generate_order_number(now_ms: int | None = None) -> str:
    """ORD-<epoch ms>-<7 random chars>."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(secrets.choice(_ORDER_SUFFIX_ALPHABET) for _ in range(7))
    return f"ORD-{now_ms}-{suffix}"


def _as_uuid(value) -> uuid.UUID | None:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


class WebhookReconciler(WebhookIngress):
    def __init__(self, gateway: PersistenceGateway, settings: Settings | None = None, logger=None):
        super().__init__(gateway, settings, logger or structlog.get_logger(__name__))

    async def process(self, body: dict, today: date) -> ReconcileResult:
        """Validate and dispatch one event. Never raises."""
        try:
            event = parse_webhook_event(body)
        except ValidationError as exc:
            self.logger.warning("webhook_payload_invalid", event_type=body.get("event"), errors=exc.error_count())
            return ReconcileResult.failed(f"Invalid payload for {body.get('event')}: {exc.errors()[0]['msg']}")

        try:
            if isinstance(event, PaymentCapturedEvent):
                return await self._payment_captured(event)
            if isinstance(event, InvoicePaidEvent):
                return await self._invoice_paid(event, today)
            if isinstance(event, InvoiceFailedEvent):
                return self._invoice_failed(event)
            if isinstance(event, PaymentFailedEvent):
                return await self._payment_failed(event)
        except PartialWriteError as exc:
            return ReconcileResult.failed(str(exc))
        except SQLAlchemyError as exc:
            self.logger.error("webhook_persistence_error", event_type=event.event, error=str(exc), exc_info=True)
            return ReconcileResult.failed(f"Database error: {exc.__class__.__name__}")
        except Exception as exc:
            self.logger.error("webhook_handler_error", event_type=event.event, error=str(exc), exc_info=True)
            return ReconcileResult.failed(str(exc) or exc.__class__.__name__)

        if event.event.startswith("subscription."):
            self.logger.info("subscription_event_ignored", event_type=event.event)
        else:
            self.logger.info("webhook_event_unhandled", event_type=event.event)
        return ReconcileResult.ok("ignored")

    # ── payment.captured ────────────────────────────────────────────

    async def _payment_captured(self, event: PaymentCapturedEvent) -> ReconcileResult:
        payment = event.payload.payment.entity
        billing_order_id = event.billing_order_id
        if not billing_order_id:
            return ReconcileResult.failed("Missing order ID in payment entity")

        log = self.logger.bind(billing_order_id=billing_order_id, billing_payment_id=payment.id)
        pending = await self.gateway.get_pending_order_by_billing_id(billing_order_id)
        if pending is None:
            log.info("pending_order_already_processed")
            return ReconcileResult.ok("already_processed")

        order = Order(
            user_id=pending.user_id,
            order_number=generate_order_number(),
            status="confirmed",
            total_amount=pending.total_amount,
            subtotal=pending.total_amount - (pending.shipping_charge or 0),
            shipping_address=normalize_shipping_address(pending.shipping_address),
            payment_method="razorpay",
            payment_status="paid",
            payment_type=pending.payment_type,
            billing_order_id=billing_order_id,
            billing_payment_id=payment.id,
        )
        try:
            order = await self.gateway.insert_order(order)
        except IntegrityError:
            if await self.gateway.count_orders(billing_order_id) > 0:
                log.info("order_already_exists")
                return ReconcileResult.ok("already_processed")
            raise

        errors = await self._insert_order_items(order, pending)
        if errors:
            await self.gateway.delete_order(order.id)
            log.error("order_items_failed_order_rolled_back", order_id=str(order.id), errors=errors)
            raise PartialWriteError(f"Failed to create order items: {', '.join(errors)}. Order was rolled back.")

        await self.gateway.delete_pending_order(pending.id)
        log.info(
            "order_finalized",
            order_id=str(order.id),
            order_number=order.order_number,
            items=len(pending.cart_data or []),
        )
        await emit_business_event("order_finalized")
        return ReconcileResult.ok()

    async def _insert_order_items(self, order: Order, pending: PendingOrder) -> list[str]:
        """Insert one item per cart line with current product names. Returns error messages."""
        lines = pending.cart_data or []
        if not lines:
            return ["Pending order has no cart items"]

        product_ids = {pid for pid in (_as_uuid(line.get("product_id")) for line in lines) if pid}
        variant_ids = {vid for vid in (_as_uuid(line.get("variant_id")) for line in lines) if vid}
        products = await self.gateway.get_products(product_ids)
        variants = await self.gateway.get_variants(variant_ids)

        errors: list[str] = []
        for line in lines:
            product_id = _as_uuid(line.get("product_id"))
            product = products.get(product_id) if product_id else None
            if product is None:
                errors.append(f"Product not found: {line.get('product_id')}")
                continue

            variant_id = _as_uuid(line.get("variant_id"))
            variant = variants.get(variant_id) if variant_id else None
            quantity = int(line.get("quantity", 1))
            unit_price = int(line.get("price", 0))
            item = OrderItem(
                order_id=order.id,
                product_id=product.id,
                variant_id=variant_id,
                product_name=product.name,
                weight_grams=variant.weight_grams if variant else 0,
                quantity=quantity,
                unit_price=unit_price,
                total_price=unit_price * quantity,
            )
            try:
                await self.gateway.insert_order_item(item)
            except SQLAlchemyError as exc:
                self.logger.error("order_item_insert_failed", order_id=str(order.id), product_id=str(product.id))
                errors.append(str(exc.__class__.__name__))
        return errors

    # ── invoice.paid ────────────────────────────────────────────────

    async def _invoice_paid(self, event: InvoicePaidEvent, today: date) -> ReconcileResult:
        invoice = event.payload.invoice.entity
        if not invoice.subscription_id:
            return ReconcileResult.failed("Missing invoice or subscription_id")

        log = self.logger.bind(invoice_id=invoice.id, billing_subscription_id=invoice.subscription_id)
        subscription = await self.gateway.get_subscription_by_billing_id(invoice.subscription_id)
        if subscription is None:
            log.warning("subscription_not_found_for_invoice")
            return ReconcileResult.ok("already_processed")

        cycle_number = invoice.billing_cycle
        cycle_source = "provider"
        if not cycle_number:
            # Best effort: out-of-order invoices can skip or repeat a cycle on this path
            cycle_number = await self.gateway.count_deliveries(subscription.id) + 1
            cycle_source = "count"
        log = log.bind(subscription_id=str(subscription.id), cycle_number=cycle_number, cycle_source=cycle_source)

        # Cycle 1 was scheduled at creation, so its invoice only activates the record
        await self._mark_paid(subscription)

        if await self.gateway.find_delivery(subscription.id, cycle_number) is not None:
            log.info("delivery_already_exists")
            return ReconcileResult.ok("already_processed")

        delivery_date = next_delivery_date(today)
        try:
            await self.gateway.insert_delivery(subscription.id, cycle_number, delivery_date)
        except DuplicateDeliveryError:
            log.info("delivery_already_exists", race=True)
            return ReconcileResult.ok("already_processed")

        log.info("delivery_scheduled", delivery_date=delivery_date.isoformat())
        await emit_business_event("delivery_scheduled")
        return ReconcileResult.ok()

    async def _mark_paid(self, subscription) -> None:
        updates = {"last_payment_status": "success"}
        if subscription.status == "pending":
            updates["status"] = "active"
        await self.gateway.update_subscription(subscription.id, **updates)

    # ── failures ────────────────────────────────────────────────────

    def _invoice_failed(self, event: InvoiceFailedEvent) -> ReconcileResult:
        # A failed charge must neither remove a scheduled delivery nor create one
        invoice = event.payload.invoice.entity if event.payload.invoice else None
        self.logger.warning(
            "invoice_failed_received",
            invoice_id=invoice.id if invoice else None,
            billing_subscription_id=invoice.subscription_id if invoice else None,
            status=invoice.status if invoice else None,
        )
        return ReconcileResult.ok("logged")

    async def _payment_failed(self, event: PaymentFailedEvent) -> ReconcileResult:
        payment = event.payload.payment.entity
        billing_order_id = payment.order_id or (event.payload.order.entity.id if event.payload.order else None)
        if not billing_order_id:
            return ReconcileResult.ok("no_order")

        pending = await self.gateway.get_pending_order_by_billing_id(billing_order_id)
        if pending is None:
            return ReconcileResult.ok("already_processed")

        await self.gateway.delete_pending_order(pending.id)
        self.logger.info("pending_order_deleted_after_payment_failure", billing_order_id=billing_order_id)
        return ReconcileResult.ok()
