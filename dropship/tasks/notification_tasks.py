"""
Notification Tasks

Worker-side delivery of queued fulfillment notifications. A failed send
is retried by arq with a growing delay; once retries run out the failure
is logged and dropped.
"""
from typing import Any, Dict

import structlog
from arq import Retry

from dropship.container import Container
from dropship.errors import NotificationError
from dropship.models import OrderNotice
from dropship.services.fulfillment.notifications import dispatch_notification

logger = structlog.get_logger(__name__)

RETRY_DELAY_SECONDS = 30


async def send_notification_task(
    ctx: Dict[str, Any],
    kind: str,
    order: Dict[str, Any],
    extra: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Deliver one notification through the configured sink.

    Raises:
        Retry: Transient delivery failure with attempts left
    """
    container: Container = ctx["container"]
    job_try = ctx.get("job_try", 1)
    notice = OrderNotice.model_validate(order)
    log = logger.bind(kind=kind, dropship_order_id=notice.dropship_order_id, job_try=job_try)

    try:
        await dispatch_notification(container.delivery_sink, kind, notice, extra)
    except NotificationError as e:
        if job_try < container.settings.job_max_tries:
            log.warning("notification_retry_scheduled", error=e.message)
            raise Retry(defer=RETRY_DELAY_SECONDS * job_try) from e
        log.error("notification_dropped", error=e.message, details=e.details)
        return {"status": "error", "message": e.message}

    log.info("notification_sent")
    return {"status": "success", "message": f"{kind} notification sent"}
