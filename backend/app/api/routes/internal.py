"""Internal job triggers, called by the scheduler or an admin."""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.api.dependencies import get_gateway
from app.core.auth import decode_access_token, is_admin_user
from app.core.config import get_settings
from app.db.gateway import PersistenceGateway
from app.domain.webhooks import verify_internal_token
from app.schemas.storefront import QueueRunResponse
from app.services.retry_queue import INTERNAL_RETRY_HEADER, RetryQueueProcessor

router = APIRouter(prefix="/internal", tags=["internal"])

_bearer_scheme = HTTPBearer(auto_error=False)


async def require_internal_or_admin(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> str:
    """Accept the internal queue header, or fall back to an admin bearer token."""
    if verify_internal_token(request.headers.get(INTERNAL_RETRY_HEADER), get_settings().webhook_queue_secret):
        return "internal"
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")
    user = decode_access_token(credentials.credentials)
    if not is_admin_user(user):
        raise HTTPException(status_code=403, detail="Admin privileges required")
    request.state.user_id = user.user_id
    return user.user_id


def get_retry_processor(gateway: PersistenceGateway = Depends(get_gateway)) -> RetryQueueProcessor:
    return RetryQueueProcessor(gateway)


@router.post("/webhook-queue/process", response_model=QueueRunResponse)
async def process_webhook_queue(
    _: str = Depends(require_internal_or_admin),
    processor: RetryQueueProcessor = Depends(get_retry_processor),
):
    """Replay due webhook queue entries once."""
    summary = await processor.run()
    return QueueRunResponse(
        processed=summary.processed,
        succeeded=summary.succeeded,
        retried=summary.retried,
        failed=summary.failed,
        skipped=summary.skipped,
    )
