"""arq worker configuration.

Run with: ``arq dropship.worker.WorkerSettings``

Registered tasks:
    - import_product_task: Asynchronous product import
    - send_notification_task: Queued fulfillment notifications
    - recover_stale_import_jobs: Cron, fails jobs abandoned by a dead worker
"""
from typing import Any, Dict

import structlog
from arq import cron
from arq.connections import RedisSettings

from dropship.config import configure_logging, get_settings
from dropship.container import Container
from dropship.tasks import (
    import_product_task,
    recover_stale_import_jobs,
    send_notification_task,
)
from dropship.tasks.import_tasks import MSG_WORKER_GAVE_UP, fail_if_unfinished, tracker_job_id

settings = get_settings()
configure_logging(settings.log_level, json_logs=settings.is_production)
logger = structlog.get_logger(__name__)


async def startup(ctx: Dict[str, Any]) -> None:
    """Build the process container on top of the worker's Redis pool."""
    ctx["container"] = await Container.create(settings, redis=ctx["redis"])
    logger.info("worker_started", queue_name=settings.queue_name)


async def shutdown(ctx: Dict[str, Any]) -> None:
    container: Container = ctx.get("container")
    if container is not None:
        # arq owns and closes its own pool
        await container.close(close_redis=False)
    logger.info("worker_stopped")


async def on_job_end(ctx: Dict[str, Any]) -> None:
    """Hook called after each job ends (success or failure).

    An import whose last attempt ended without a terminal job state (timeout,
    cancellation) is failed here so pollers see the outcome.
    """
    job_id = tracker_job_id(ctx.get("job_id", ""))
    container = ctx.get("container")
    if job_id is None or container is None:
        return

    job_try = ctx.get("job_try", 1)
    if job_try < WorkerSettings.max_tries:
        logger.debug("on_job_end_skipped", job_id=job_id, job_try=job_try)
        return

    try:
        if await fail_if_unfinished(container, job_id, MSG_WORKER_GAVE_UP):
            logger.warning("import_job_abandoned", job_id=job_id, job_try=job_try)
    except Exception as e:
        logger.error("on_job_end_error", job_id=job_id, error=str(e))


class WorkerSettings:
    """arq worker configuration settings.

    Cron Jobs:
        - recover_stale_import_jobs: Every 5 minutes
    """

    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.queue_name
    max_jobs = settings.max_jobs
    job_timeout = settings.job_timeout
    keep_result = 3600
    max_tries = settings.job_max_tries

    functions = [
        import_product_task,
        send_notification_task,
    ]

    on_startup = startup
    on_shutdown = shutdown
    on_job_end = on_job_end

    cron_jobs = [
        cron(
            recover_stale_import_jobs,
            minute=set(range(0, 60, 5)),
            unique=True,
        ),
    ]
