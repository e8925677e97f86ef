"""Shared FastAPI dependencies for building services per request."""

from app.db.base import get_session_factory
from app.db.gateway import PersistenceGateway
from app.integrations.billing_provider import BillingProviderClient


def get_gateway() -> PersistenceGateway:
    return PersistenceGateway(get_session_factory())


def get_billing_provider() -> BillingProviderClient:
    """Raises BillingNotConfiguredError (503) when credentials are missing."""
    return BillingProviderClient.from_settings()
