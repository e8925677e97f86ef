"""SubscriptionDelivery model: one physical shipment per billing cycle."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid

from app.db.base import Base


class SubscriptionDelivery(Base):
    __tablename__ = "subscription_deliveries"
    __table_args__ = (
        UniqueConstraint("subscription_id", "cycle_number", name="uq_subscription_deliveries_cycle"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    subscription_id = Column(
        Uuid,
        ForeignKey("pending_subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    cycle_number = Column(Integer, nullable=False)
    delivery_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="scheduled")  # scheduled, delivered, skipped
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
