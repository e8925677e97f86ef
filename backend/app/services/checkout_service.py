"""CheckoutService: stages one-time cart purchases before payment.

Prices come from the catalog, never from the client. The provider order id
links the staged PendingOrder to the payment.captured event that finalizes it.
"""

import secrets
import string
import time
import uuid
from dataclasses import dataclass

import structlog

from app.core.config import Settings, get_settings
from app.core.exceptions import ValidationRejection
from app.db.gateway import PersistenceGateway
from app.db.models import PendingOrder
from app.integrations.billing_provider import BillingProviderClient

_RECEIPT_ALPHABET = string.ascii_lowercase + string.digits


def generate_receipt_id(now_ms: int | None = None) -> str:
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(secrets.choice(_RECEIPT_ALPHABET) for _ in range(7))
    return f"rcpt_{now_ms}_{suffix}"


@dataclass(frozen=True)
class CheckoutLine:
    product_id: uuid.UUID
    variant_id: uuid.UUID
    quantity: int


@dataclass(frozen=True)
class StagedOrder:
    pending_order_id: uuid.UUID
    billing_order_id: str
    amount: int
    currency: str


class CheckoutService:
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

    async def create_checkout_order(
        self,
        user_id: str,
        lines: list[CheckoutLine],
        shipping_address: dict,
        shipping_charge: int = 0,
        payment_type: str = "prepaid",
    ) -> StagedOrder:
        """Price the cart, open a provider order and stage the PendingOrder."""
        if not lines:
            raise ValidationRejection("Cart is empty", code="empty_cart")
        if shipping_charge < 0:
            raise ValidationRejection("Shipping charge cannot be negative", code="invalid_shipping")

        products = await self.gateway.get_products({line.product_id for line in lines})
        variants = await self.gateway.get_variants({line.variant_id for line in lines})

        cart_data: list[dict] = []
        subtotal = 0
        for line in lines:
            product = products.get(line.product_id)
            variant = variants.get(line.variant_id)
            if product is None or not product.is_active:
                raise ValidationRejection(f"Product not available: {line.product_id}", code="product_unavailable")
            if variant is None or variant.product_id != product.id:
                raise ValidationRejection(f"Variant not available: {line.variant_id}", code="variant_unavailable")
            if line.quantity < 1:
                raise ValidationRejection("Quantity must be at least 1", code="invalid_quantity")

            subtotal += variant.price_paise * line.quantity
            cart_data.append(
                {
                    "product_id": str(product.id),
                    "variant_id": str(variant.id),
                    "quantity": line.quantity,
                    "price": variant.price_paise,
                }
            )

        total = subtotal + shipping_charge
        receipt = generate_receipt_id()
        provider_order = await self.provider.create_order(
            amount=total,
            currency=self.settings.billing_currency,
            receipt=receipt,
            notes={"user_id": user_id},
        )

        pending = await self.gateway.insert_pending_order(
            PendingOrder(
                user_id=user_id,
                billing_order_id=provider_order.id,
                cart_data=cart_data,
                shipping_address=shipping_address,
                total_amount=total,
                shipping_charge=shipping_charge,
                payment_type=payment_type,
            )
        )
        self.logger.info(
            "checkout_order_staged",
            pending_order_id=str(pending.id),
            billing_order_id=provider_order.id,
            amount=total,
            lines=len(cart_data),
        )
        return StagedOrder(
            pending_order_id=pending.id,
            billing_order_id=provider_order.id,
            amount=total,
            currency=provider_order.currency,
        )
