"""
Import Tasks

arq task functions for asynchronous product import and for recovering
jobs a dead worker left in processing.
"""
from datetime import timedelta
from typing import Any, Dict, Optional

import structlog

from dropship.container import Container
from dropship.errors import JobStateError
from dropship.models import ImportOverrides

logger = structlog.get_logger(__name__)

ARQ_JOB_PREFIX = "import:"
MSG_WORKER_ERROR = "Import failed due to an internal error"
MSG_WORKER_GAVE_UP = "Import worker stopped before completion"


def tracker_job_id(arq_job_id: str) -> Optional[str]:
    """Import job id behind an arq job id, or None for other tasks."""
    if arq_job_id and arq_job_id.startswith(ARQ_JOB_PREFIX):
        return arq_job_id[len(ARQ_JOB_PREFIX):]
    return None


async def fail_if_unfinished(container: Container, job_id: str, error: str) -> bool:
    """Fail the import job unless it already reached a terminal state."""
    job = await container.tracker.get(job_id)
    if job is None or job.status.is_terminal:
        return False
    try:
        await container.tracker.mark_failed(job_id, error)
    except JobStateError:
        return False
    return True


async def import_product_task(
    ctx: Dict[str, Any],
    job_id: str,
    url: str,
    category_id: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Run one queued import and record its outcome on the job.

    Args:
        ctx: Worker context holding the container
        job_id: Import job created by start_async_import
        url: Supplier listing URL
        category_id: Target catalog category
        overrides: Serialized ImportOverrides

    Returns:
        Dict with job_id, status and message
    """
    container: Container = ctx["container"]
    log = logger.bind(job_id=job_id, job_try=ctx.get("job_try", 1))
    log.info("import_task_started", url=url)

    try:
        job = await container.import_service.run_import_job(
            job_id,
            url,
            category_id,
            ImportOverrides.model_validate(overrides or {}),
        )
    except Exception as e:
        log.error("import_task_crashed", error=str(e), exc_info=True)
        await fail_if_unfinished(container, job_id, MSG_WORKER_ERROR)
        raise
    if job is None:
        log.warning("import_task_job_expired")
        return {"job_id": job_id, "status": "error", "message": "Job not found"}

    return {
        "job_id": job_id,
        "status": job.status.value,
        "message": job.error or job.step,
    }


async def recover_stale_import_jobs(ctx: Dict[str, Any]) -> Dict[str, Any]:
    """Cron: fail processing jobs that stopped reporting progress."""
    container: Container = ctx["container"]
    max_age = timedelta(minutes=container.settings.imports.stale_job_minutes)
    failed = await container.tracker.fail_stale(max_age)
    return {"status": "success", "failed": failed}
