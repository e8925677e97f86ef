"""Subscription routes: create, list, pause, resume, cancel."""

import uuid

from fastapi import APIRouter, Depends

from app.api.dependencies import get_billing_provider, get_gateway
from app.core.auth import AuthUser, require_auth
from app.db.gateway import PersistenceGateway
from app.db.models import PendingSubscription
from app.integrations.billing_provider import BillingProviderClient
from app.schemas.storefront import (
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    PauseSubscriptionRequest,
    SubscriptionActionResponse,
    SubscriptionResponse,
)
from app.services.subscription_service import SubscriptionLifecycleService

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


def get_subscription_service(
    gateway: PersistenceGateway = Depends(get_gateway),
    provider: BillingProviderClient = Depends(get_billing_provider),
) -> SubscriptionLifecycleService:
    return SubscriptionLifecycleService(gateway, provider)


def _to_response(subscription: PendingSubscription) -> SubscriptionResponse:
    return SubscriptionResponse(
        id=subscription.id,
        billing_subscription_id=subscription.billing_subscription_id,
        product_id=subscription.product_id,
        variant_id=subscription.variant_id,
        quantity=subscription.quantity,
        preferred_delivery_day=subscription.preferred_delivery_day,
        total_deliveries=subscription.total_deliveries,
        status=subscription.status,
        last_payment_status=subscription.last_payment_status,
        next_billing_date=subscription.next_billing_date,
        created_at=subscription.created_at,
    )


@router.post("", response_model=CreateSubscriptionResponse)
async def create_subscription(
    body: CreateSubscriptionRequest,
    user: AuthUser = Depends(require_auth),
    service: SubscriptionLifecycleService = Depends(get_subscription_service),
):
    """Create a recurring subscription and schedule its first delivery."""
    created = await service.create(
        user_id=user.user_id,
        product_id=body.product_id,
        variant_id=body.variant_id,
        quantity=body.quantity,
        preferred_day=body.preferred_delivery_day,
        total_deliveries=body.total_deliveries,
        shipping_address=body.shipping_address.model_dump(),
    )
    return CreateSubscriptionResponse(
        subscription_id=created.subscription_id,
        billing_subscription_id=created.billing_subscription_id,
        short_url=created.short_url,
        key_id=service.provider.key_id,
    )


@router.get("", response_model=list[SubscriptionResponse])
async def list_subscriptions(
    user: AuthUser = Depends(require_auth),
    gateway: PersistenceGateway = Depends(get_gateway),
):
    subscriptions = await gateway.list_subscriptions_for_user(user.user_id)
    return [_to_response(s) for s in subscriptions]


@router.post("/{subscription_id}/pause", response_model=SubscriptionActionResponse)
async def pause_subscription(
    subscription_id: uuid.UUID,
    body: PauseSubscriptionRequest | None = None,
    user: AuthUser = Depends(require_auth),
    service: SubscriptionLifecycleService = Depends(get_subscription_service),
):
    pause_until = body.pause_until if body else None
    updated = await service.pause(user.user_id, subscription_id, pause_until=pause_until)
    return SubscriptionActionResponse(status=updated.status, next_billing_date=updated.next_billing_date)


@router.post("/{subscription_id}/resume", response_model=SubscriptionActionResponse)
async def resume_subscription(
    subscription_id: uuid.UUID,
    user: AuthUser = Depends(require_auth),
    service: SubscriptionLifecycleService = Depends(get_subscription_service),
):
    updated = await service.resume(user.user_id, subscription_id)
    return SubscriptionActionResponse(status=updated.status, next_billing_date=updated.next_billing_date)


@router.post("/{subscription_id}/cancel", response_model=SubscriptionActionResponse)
async def cancel_subscription(
    subscription_id: uuid.UUID,
    user: AuthUser = Depends(require_auth),
    service: SubscriptionLifecycleService = Depends(get_subscription_service),
):
    updated = await service.cancel(user.user_id, subscription_id)
    return SubscriptionActionResponse(status=updated.status, next_billing_date=updated.next_billing_date)
