"""Order and OrderItem models: finalized, immutable purchase records."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Uuid

from app.db.base import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(255), nullable=False, index=True)
    order_number = Column(String(50), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="confirmed")

    total_amount = Column(Integer, nullable=False)  # paise
    subtotal = Column(Integer, nullable=False)  # paise
    shipping_address = Column(JSON, nullable=False, default=dict)

    payment_method = Column(String(50), nullable=False, default="razorpay")
    payment_status = Column(String(20), nullable=False, default="paid")
    payment_type = Column(String(20), nullable=False, default="prepaid")
    billing_order_id = Column(String(100), nullable=True, unique=True)
    billing_payment_id = Column(String(100), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid, nullable=False)
    variant_id = Column(Uuid, nullable=True)
    product_name = Column(String(255), nullable=False)
    weight_grams = Column(Integer, nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Integer, nullable=False)  # paise
    total_price = Column(Integer, nullable=False)  # paise
