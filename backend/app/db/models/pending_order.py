"""PendingOrder model: cart intent staged before payment capture."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String, Uuid

from app.db.base import Base


class PendingOrder(Base):
    __tablename__ = "pending_orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False, index=True)
    billing_order_id = Column(String(100), nullable=False, unique=True)

    # [{"product_id", "variant_id", "quantity", "unit_price"}]
    cart_data = Column(JSON, nullable=False, default=list)
    shipping_address = Column(JSON, nullable=False, default=dict)
    total_amount = Column(Integer, nullable=False)  # paise
    shipping_charge = Column(Integer, nullable=False, default=0)  # paise
    payment_type = Column(String(20), nullable=False, default="prepaid")

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)
