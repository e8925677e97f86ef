"""Admin API routes: order housekeeping and reconciliation reports."""

from fastapi import APIRouter, Depends, Query

from app.api.dependencies import get_billing_provider, get_gateway
from app.core.auth import AuthUser, require_admin
from app.db.gateway import PersistenceGateway
from app.integrations.billing_provider import BillingProviderClient
from app.schemas.storefront import MissingOrder, MissingOrdersResponse, PurgeResponse
from app.services.maintenance_service import MaintenanceService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/pending-orders/purge", response_model=PurgeResponse)
async def purge_pending_orders(
    _: AuthUser = Depends(require_admin),
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """Delete abandoned checkouts older than the pending order TTL."""
    deleted, cutoff = await MaintenanceService(gateway).purge_stale_pending_orders()
    return PurgeResponse(deleted=deleted, cutoff=cutoff)


@router.get("/orders/missing", response_model=MissingOrdersResponse)
async def missing_orders(
    days: int = Query(7, ge=1, le=30),
    _: AuthUser = Depends(require_admin),
    gateway: PersistenceGateway = Depends(get_gateway),
    provider: BillingProviderClient = Depends(get_billing_provider),
):
    """Captured payments with no matching order, for manual review."""
    checked, missing = await MaintenanceService(gateway, provider).missing_orders_report(days)
    return MissingOrdersResponse(
        checked=checked,
        missing=[
            MissingOrder(
                payment_id=p["id"],
                order_id=p.get("order_id"),
                amount=p.get("amount"),
                email=p.get("email"),
                contact=p.get("contact"),
                created_at=p.get("created_at"),
            )
            for p in missing
        ],
    )
