"""Pydantic schemas for storefront API requests and responses."""

import uuid
from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field

from app.domain.deliveries import DeliveryAction


class ShippingAddress(BaseModel):
    full_name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=10)
    address_line1: str = Field(..., min_length=1)
    address_line2: str | None = None
    city: str
    state: str
    pincode: str = Field(..., min_length=6, max_length=6)


# ── Subscriptions ───────────────────────────────────────────────────


class CreateSubscriptionRequest(BaseModel):
    product_id: uuid.UUID
    variant_id: uuid.UUID
    quantity: int = Field(1, ge=1, le=10)
    preferred_delivery_day: int
    total_deliveries: int = Field(..., ge=1, le=120)
    shipping_address: ShippingAddress


class CreateSubscriptionResponse(BaseModel):
    subscription_id: uuid.UUID
    billing_subscription_id: str
    short_url: str | None
    key_id: str | None = None


class PauseSubscriptionRequest(BaseModel):
    pause_until: date | None = None  # defaults to 30 days from today


class SubscriptionResponse(BaseModel):
    id: uuid.UUID
    billing_subscription_id: str
    product_id: uuid.UUID
    variant_id: uuid.UUID | None
    quantity: int
    preferred_delivery_day: int
    total_deliveries: int
    status: str
    last_payment_status: str | None = None
    next_billing_date: date | None = None
    created_at: datetime


class SubscriptionActionResponse(BaseModel):
    success: bool = True
    status: str
    next_billing_date: date | None = None


# ── Deliveries ──────────────────────────────────────────────────────


class ManageDeliveriesRequest(BaseModel):
    action: DeliveryAction
    delivery_id: uuid.UUID | None = None
    new_date: date | None = None
    new_status: str | None = None


class DeliveryResponse(BaseModel):
    id: uuid.UUID
    subscription_id: uuid.UUID
    cycle_number: int
    delivery_date: date
    status: str
    product_name: str | None = None
    quantity: int
    weight_grams: int | None = None
    editable: bool = False


class DeliveryListResponse(BaseModel):
    deliveries: list[DeliveryResponse]


class DeliveryActionResponse(BaseModel):
    success: bool = True
    delivery_id: uuid.UUID
    delivery_date: date
    status: str


# ── Checkout ────────────────────────────────────────────────────────


class CartLine(BaseModel):
    product_id: uuid.UUID
    variant_id: uuid.UUID
    quantity: int = Field(..., ge=1, le=50)


class CreateCheckoutOrderRequest(BaseModel):
    items: list[CartLine] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    shipping_charge: int = Field(0, ge=0)  # paise
    payment_type: Literal["prepaid"] = "prepaid"


class CreateCheckoutOrderResponse(BaseModel):
    billing_order_id: str
    amount: int
    currency: str
    key_id: str | None = None
    pending_order_id: uuid.UUID


# ── Admin ───────────────────────────────────────────────────────────


class PurgeResponse(BaseModel):
    deleted: int
    cutoff: datetime


class MissingOrder(BaseModel):
    payment_id: str
    order_id: str | None
    amount: int | None
    email: str | None = None
    contact: str | None = None
    created_at: int | None = None


class MissingOrdersResponse(BaseModel):
    checked: int
    missing: list[MissingOrder]


class QueueRunResponse(BaseModel):
    processed: int
    succeeded: int
    retried: int
    failed: int
    skipped: bool = False
