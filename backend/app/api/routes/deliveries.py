"""Delivery management RPC: list, update_date, skip, admin_update_status."""

from fastapi import APIRouter, Depends, HTTPException

from app.api.dependencies import get_gateway
from app.core.auth import AuthUser, is_admin_user, require_auth
from app.db.gateway import PersistenceGateway
from app.db.models import SubscriptionDelivery
from app.domain.deliveries import DeliveryAction
from app.schemas.storefront import (
    DeliveryActionResponse,
    DeliveryListResponse,
    DeliveryResponse,
    ManageDeliveriesRequest,
)
from app.services.delivery_service import DeliveryService

router = APIRouter(prefix="/deliveries", tags=["deliveries"])


def get_delivery_service(gateway: PersistenceGateway = Depends(get_gateway)) -> DeliveryService:
    return DeliveryService(gateway)


def _action_response(delivery: SubscriptionDelivery) -> DeliveryActionResponse:
    return DeliveryActionResponse(
        delivery_id=delivery.id,
        delivery_date=delivery.delivery_date,
        status=delivery.status,
    )


@router.post("/manage")
async def manage_deliveries(
    body: ManageDeliveriesRequest,
    user: AuthUser = Depends(require_auth),
    service: DeliveryService = Depends(get_delivery_service),
) -> DeliveryListResponse | DeliveryActionResponse:
    if body.action == DeliveryAction.LIST:
        views = await service.list_for_user(user.user_id)
        return DeliveryListResponse(deliveries=[DeliveryResponse(**vars(v)) for v in views])

    if body.delivery_id is None:
        raise HTTPException(status_code=400, detail="delivery_id is required for this action")

    if body.action == DeliveryAction.UPDATE_DATE:
        if body.new_date is None:
            raise HTTPException(status_code=400, detail="new_date is required for update_date")
        delivery = await service.update_date(body.delivery_id, body.new_date, user.user_id)
    elif body.action == DeliveryAction.SKIP:
        delivery = await service.skip(body.delivery_id, user.user_id)
    else:
        delivery = await service.admin_update_status(
            body.delivery_id,
            body.new_status,
            user.user_id,
            is_admin=is_admin_user(user),
        )
    return _action_response(delivery)
