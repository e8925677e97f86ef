"""CloudWatch custom metric emission for storefront business events.

Emission is fire-and-forget: failures are logged as warnings and never raised
to the caller. Nothing is sent unless ``metrics_enabled`` is set.

boto3 is synchronous, so calls are dispatched to a ThreadPoolExecutor to keep
the event loop free.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import boto3
import structlog

from app.core.config import get_settings

logger = structlog.get_logger(__name__)

NAMESPACE = "Roastery/Business"

_cw_client = None
_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="cw-metrics")


def _get_client():
    global _cw_client
    if _cw_client is None:
        _cw_client = boto3.client("cloudwatch", region_name="ap-south-1")
    return _cw_client


def _put_business_event(event_name: str, value: float, dimensions: dict[str, str]) -> None:
    """Synchronous put_metric_data for business events. Runs in thread pool."""
    metric_dimensions = [{"Name": "Event", "Value": event_name}]
    metric_dimensions.extend({"Name": k, "Value": v} for k, v in dimensions.items())
    try:
        _get_client().put_metric_data(
            Namespace=NAMESPACE,
            MetricData=[{
                "MetricName": "EventCount",
                "Dimensions": metric_dimensions,
                "Value": value,
                "Unit": "Count",
                "Timestamp": datetime.now(timezone.utc),
            }],
        )
    except Exception as e:
        logger.warning("business_event_emit_failed", error=str(e), event=event_name)


async def emit_business_event(event_name: str, value: float = 1.0, **dimensions: str) -> None:
    """Emit a business event metric. Non-blocking, fire-and-forget."""
    if not get_settings().metrics_enabled:
        return
    loop = asyncio.get_running_loop()
    loop.run_in_executor(_executor, _put_business_event, event_name, value, dimensions)
