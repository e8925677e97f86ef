"""Billing provider webhook ingress.

Requests must carry either a valid X-Razorpay-Signature (HMAC-SHA256 of the
raw body) or the internal queue replay header. Unsigned traffic is rejected.
"""

import json

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from app.api.dependencies import get_gateway
from app.core.config import get_settings
from app.db.gateway import PersistenceGateway
from app.domain.webhooks import verify_internal_token, verify_signature
from app.services.retry_queue import INTERNAL_RETRY_HEADER
from app.services.subscription_status_sync import SubscriptionStatusSync
from app.services.webhook_ingress import WebhookIngress
from app.services.webhook_reconciler import WebhookReconciler

SIGNATURE_HEADER = "X-Razorpay-Signature"

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def _read_verified_body(request: Request) -> tuple[dict, bool]:
    """Authenticate the request and decode its body.

    Returns (body, from_queue).
    """
    settings = get_settings()
    if not settings.billing_webhook_secret:
        logger.error("webhook_secret_missing")
        raise HTTPException(status_code=503, detail="Webhook not configured")

    raw = await request.body()
    from_queue = verify_internal_token(request.headers.get(INTERNAL_RETRY_HEADER), settings.webhook_queue_secret)
    if not from_queue and not verify_signature(raw, request.headers.get(SIGNATURE_HEADER), settings.billing_webhook_secret):
        logger.warning("webhook_signature_invalid", path=request.url.path)
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        body = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    return body, from_queue


async def _dispatch(ingress: WebhookIngress, request: Request):
    body, from_queue = await _read_verified_body(request)
    result = await ingress.handle(body, from_queue=from_queue)
    if result.success:
        return {"received": True}

    # Non-2xx tells the provider to retry on its own schedule as well
    message = "Processing failed" if from_queue else "Processing failed, queued for retry"
    return JSONResponse(status_code=500, content={"error": message, "detail": result.error})


@router.post("/billing")
async def billing_webhook(request: Request, gateway: PersistenceGateway = Depends(get_gateway)):
    """Reconcile payment and invoice events into orders and deliveries."""
    return await _dispatch(WebhookReconciler(gateway), request)


@router.post("/billing/subscriptions")
async def billing_subscription_webhook(request: Request, gateway: PersistenceGateway = Depends(get_gateway)):
    """Mirror subscription.* status changes onto local subscription records."""
    return await _dispatch(SubscriptionStatusSync(gateway), request)
