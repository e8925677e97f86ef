"""Re-export all models so Base.metadata sees them."""

from app.db.models.order import Order, OrderItem
from app.db.models.pending_order import PendingOrder
from app.db.models.pending_subscription import PendingSubscription
from app.db.models.product import Product, ProductVariant
from app.db.models.subscription_delivery import SubscriptionDelivery
from app.db.models.webhook import WebhookLog, WebhookQueueEntry

__all__ = [
    "Order",
    "OrderItem",
    "PendingOrder",
    "PendingSubscription",
    "Product",
    "ProductVariant",
    "SubscriptionDelivery",
    "WebhookLog",
    "WebhookQueueEntry",
]
