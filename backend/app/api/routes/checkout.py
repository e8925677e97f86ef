from fastapi import APIRouter, Depends

from app.api.dependencies import get_billing_provider, get_gateway
from app.core.auth import AuthUser, require_auth
from app.db.gateway import PersistenceGateway
from app.integrations.billing_provider import BillingProviderClient
from app.schemas.storefront import CreateCheckoutOrderRequest, CreateCheckoutOrderResponse
from app.services.checkout_service import CheckoutLine, CheckoutService

router = APIRouter(prefix="/checkout", tags=["checkout"])


def get_checkout_service(
    gateway: PersistenceGateway = Depends(get_gateway),
    provider: BillingProviderClient = Depends(get_billing_provider),
) -> CheckoutService:
    return CheckoutService(gateway, provider)


@router.post("/orders", response_model=CreateCheckoutOrderResponse)
async def create_checkout_order(
    body: CreateCheckoutOrderRequest,
    user: AuthUser = Depends(require_auth),
    service: CheckoutService = Depends(get_checkout_service),
):
    """Open a provider order for the cart and stage it until payment is captured."""
    staged = await service.create_checkout_order(
        user_id=user.user_id,
        lines=[CheckoutLine(i.product_id, i.variant_id, i.quantity) for i in body.items],
        shipping_address=body.shipping_address.model_dump(),
        shipping_charge=body.shipping_charge,
        payment_type=body.payment_type,
    )
    return CreateCheckoutOrderResponse(
        billing_order_id=staged.billing_order_id,
        amount=staged.amount,
        currency=staged.currency,
        key_id=service.provider.key_id,
        pending_order_id=staged.pending_order_id,
    )
