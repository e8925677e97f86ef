"""Billing provider webhook envelopes.

Events are parsed into a union tagged on ``event``. Known events get a strict
payload shape; anything else falls through to ``GenericEvent`` so it can be
acknowledged without side effects.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Tag, TypeAdapter


class ProviderEntity(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str


class PaymentEntity(ProviderEntity):
    order_id: str | None = None
    amount: int | None = None
    status: str | None = None
    method: str | None = None
    email: str | None = None
    contact: str | None = None
    invoice_id: str | None = None
    subscription_id: str | None = None


class OrderEntity(ProviderEntity):
    amount: int | None = None
    status: str | None = None
    receipt: str | None = None


class InvoiceEntity(ProviderEntity):
    status: str | None = None
    subscription_id: str | None = None
    amount_paid: int | None = None
    billing_cycle: int | None = None


class SubscriptionEntity(ProviderEntity):
    status: str | None = None
    plan_id: str | None = None
    paid_count: int | None = None
    total_count: int | None = None
    charge_at: int | None = None
    notes: dict[str, Any] | list | None = None


class PaymentRef(BaseModel):
    entity: PaymentEntity


class OrderRef(BaseModel):
    entity: OrderEntity


class InvoiceRef(BaseModel):
    entity: InvoiceEntity


class SubscriptionRef(BaseModel):
    entity: SubscriptionEntity


class PaymentPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    payment: PaymentRef
    order: OrderRef | None = None


class InvoicePayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    invoice: InvoiceRef
    subscription: SubscriptionRef | None = None
    payment: PaymentRef | None = None


class OptionalInvoicePayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    invoice: InvoiceRef | None = None


class SubscriptionPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    subscription: SubscriptionRef
    payment: PaymentRef | None = None


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="allow")


class PaymentCapturedEvent(_Envelope):
    event: Literal["payment.captured"]
    payload: PaymentPayload

    @property
    def billing_order_id(self) -> str | None:
        """Order id comes from the payment entity; the order entity is often absent."""
        order_id = self.payload.payment.entity.order_id
        if not order_id and self.payload.order is not None:
            order_id = self.payload.order.entity.id
        return order_id


class PaymentFailedEvent(_Envelope):
    event: Literal["payment.failed"]
    payload: PaymentPayload


class InvoicePaidEvent(_Envelope):
    event: Literal["invoice.paid"]
    payload: InvoicePayload


class InvoiceFailedEvent(_Envelope):
    event: Literal["invoice.failed"]
    payload: OptionalInvoicePayload


class SubscriptionEvent(_Envelope):
    event: str
    payload: SubscriptionPayload


class GenericEvent(_Envelope):
    event: str
    payload: dict[str, Any] = {}


_TAGGED_EVENTS = {"payment.captured", "payment.failed", "invoice.paid", "invoice.failed"}


def _event_tag(value: Any) -> str:
    event = value.get("event") if isinstance(value, dict) else getattr(value, "event", None)
    if event in _TAGGED_EVENTS:
        return event
    return "other"


WebhookEvent = Annotated[
    Union[
        Annotated[PaymentCapturedEvent, Tag("payment.captured")],
        Annotated[PaymentFailedEvent, Tag("payment.failed")],
        Annotated[InvoicePaidEvent, Tag("invoice.paid")],
        Annotated[InvoiceFailedEvent, Tag("invoice.failed")],
        Annotated[GenericEvent, Tag("other")],
    ],
    Discriminator(_event_tag),
]

webhook_event_adapter: TypeAdapter[WebhookEvent] = TypeAdapter(WebhookEvent)


def parse_webhook_event(body: dict[str, Any]):
    """Validate a decoded webhook body. Raises pydantic.ValidationError."""
    return webhook_event_adapter.validate_python(body)


def provider_entity_id(body: dict[str, Any]) -> str | None:
    """Best-effort id of the main entity in a raw event body, for audit logs."""
    payload = body.get("payload") or {}
    if not isinstance(payload, dict):
        return None
    for key in ("subscription", "order", "payment", "invoice"):
        ref = payload.get(key)
        if isinstance(ref, dict) and isinstance(ref.get("entity"), dict):
            entity_id = ref["entity"].get("id")
            if entity_id:
                return str(entity_id)
    return None
