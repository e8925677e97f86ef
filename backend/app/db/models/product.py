"""Catalog models. Read-only for the billing core, maintained by the admin back-office."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Uuid

from app.db.base import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    category_slug = Column(String(100), nullable=True, index=True)
    category_name = Column(String(255), nullable=True)
    subscription_eligible = Column(Boolean, nullable=False, default=False)
    billing_plan_id = Column(String(100), nullable=True)  # provider plan, e.g. plan_NxY...
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id = Column(Uuid, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    weight_grams = Column(Integer, nullable=False)
    price_paise = Column(Integer, nullable=False)
    billing_plan_id = Column(String(100), nullable=True)  # overrides the product-level plan
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
