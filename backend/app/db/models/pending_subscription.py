"""PendingSubscription model: the internal record of a recurring purchase."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, String, Uuid

from app.db.base import Base


class PendingSubscription(Base):
    __tablename__ = "pending_subscriptions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False, index=True)
    billing_subscription_id = Column(String(100), nullable=False, unique=True)
    billing_plan_id = Column(String(100), nullable=False)

    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Uuid, ForeignKey("product_variants.id"), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    preferred_delivery_day = Column(Integer, nullable=False)  # 1-28
    total_deliveries = Column(Integer, nullable=False)
    shipping_address = Column(JSON, nullable=False, default=dict)

    # pending, active, paused, cancelled, completed
    status = Column(String(20), nullable=False, default="pending")
    last_payment_status = Column(String(20), nullable=True)  # pending, failed, success
    next_billing_date = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
