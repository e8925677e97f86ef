from fastapi import APIRouter

from app.api.routes import admin, checkout, deliveries, health, internal, subscriptions, webhooks

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(subscriptions.router)
api_router.include_router(deliveries.router)
api_router.include_router(checkout.router)
api_router.include_router(webhooks.router)
api_router.include_router(internal.router)
api_router.include_router(admin.router)
