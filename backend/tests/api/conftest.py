"""API-specific test fixtures.

Requests go through httpx.ASGITransport, so route handlers share the
pytest-asyncio loop and the engine installed by the ``engine`` fixture.
The application lifespan does not run.
"""

import httpx
import pytest

from app.api.dependencies import get_billing_provider
from app.core.auth import AuthUser, require_auth


@pytest.fixture
def app(engine, provider):
    from app.main import create_app

    application = create_app()
    application.dependency_overrides[get_billing_provider] = lambda: provider
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c


@pytest.fixture
def login(app):
    """Authenticate every request as the given user."""

    def _login(user_id: str = "user_1", admin: bool = False) -> AuthUser:
        claims = {"sub": user_id}
        if admin:
            claims["app_metadata"] = {"role": "admin"}
        user = AuthUser(user_id=user_id, claims=claims)

        async def _override():
            return user

        app.dependency_overrides[require_auth] = _override
        return user

    return _login
