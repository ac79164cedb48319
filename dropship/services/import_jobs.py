"""
Import Job Tracker

Redis-backed, pollable state for asynchronous product imports.

Jobs move forward only (pending -> processing -> completed|failed). Writes
are optimistic Redis transactions (WATCH/MULTI/EXEC) so a worker update
racing a cancel can never overwrite a terminal state.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

import structlog
from redis.asyncio import Redis
from redis.exceptions import WatchError

from dropship.errors import JobNotFoundError, JobStateError
from dropship.models import ImportJob, ImportJobStatus

logger = structlog.get_logger(__name__)

# =============================================================================
# Redis Key Constants
# =============================================================================

JOB_KEY_PREFIX = "import_job:"
JOB_INDEX_KEY = "import_jobs:index"
DEFAULT_JOB_TTL_SECONDS = 24 * 60 * 60

MSG_JOB_NOT_FOUND = "Job not found"
MSG_ALREADY_FINISHED = "Cannot cancel a finished job"
MSG_CANCELLED = "Cancelled by user"
MSG_INTERRUPTED = "Import interrupted before completion"


class ImportJobTracker:
    """
    Records progress and outcome of long-running imports.

    Usage:
        tracker = ImportJobTracker(redis)
        job = await tracker.create(owner_id="user-1", url=url)
        await tracker.update(job.job_id, status=ImportJobStatus.PROCESSING, progress=20)
        job = await tracker.get(job.job_id)
    """

    def __init__(self, redis: Redis, ttl_seconds: int = DEFAULT_JOB_TTL_SECONDS) -> None:
        self._redis = redis
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _job_key(job_id: str) -> str:
        return f"{JOB_KEY_PREFIX}{job_id}"

    async def create(
        self,
        job_id: Optional[str] = None,
        owner_id: str = "",
        url: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> ImportJob:
        """Create a pending job; an existing id is never overwritten."""
        job = ImportJob(
            job_id=job_id or str(uuid4()),
            owner_id=owner_id,
            url=url,
            category_id=category_id,
        )
        created = await self._redis.set(
            self._job_key(job.job_id), job.to_json(), ex=self.ttl_seconds, nx=True
        )
        if not created:
            raise JobStateError("Job already exists", details={"job_id": job.job_id})
        await self._redis.zadd(JOB_INDEX_KEY, {job.job_id: job.created_at.timestamp()})

        logger.info("import_job_created", job_id=job.job_id, owner_id=owner_id)
        return job

    async def get(self, job_id: str) -> Optional[ImportJob]:
        data = await self._redis.get(self._job_key(job_id))
        if not data:
            return None
        return ImportJob.from_json(data)

    async def _mutate(self, job_id: str, change: Callable[[ImportJob], ImportJob]) -> ImportJob:
        """Apply ``change`` to the stored job inside a WATCH transaction."""
        key = self._job_key(job_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    data = await pipe.get(key)
                    if not data:
                        raise JobNotFoundError(MSG_JOB_NOT_FOUND, details={"job_id": job_id})
                    job = change(ImportJob.from_json(data))
                    pipe.multi()
                    pipe.set(key, job.to_json(), ex=self.ttl_seconds)
                    await pipe.execute()
                    return job
                except WatchError:
                    logger.debug("import_job_write_conflict", job_id=job_id)
                    continue

    async def update(
        self,
        job_id: str,
        status: Optional[ImportJobStatus] = None,
        progress: Optional[int] = None,
        step: Optional[str] = None,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> ImportJob:
        """Apply a partial update.

        Raises:
            JobNotFoundError: Unknown or expired job
            JobStateError: Job is terminal, or status would move backwards
        """

        def change(job: ImportJob) -> ImportJob:
            if job.status.is_terminal:
                raise JobStateError(
                    f"Job is already {job.status.value}",
                    details={"job_id": job_id},
                )
            fields: Dict[str, Any] = {"updated_at": datetime.now(timezone.utc)}
            if status is not None:
                if not job.status.can_move_to(status):
                    raise JobStateError(
                        f"Cannot move job from {job.status.value} to {status.value}",
                        details={"job_id": job_id},
                    )
                fields["status"] = status
                if status.is_terminal:
                    fields["completed_at"] = fields["updated_at"]
                if status == ImportJobStatus.COMPLETED:
                    fields["progress"] = 100
            if progress is not None and "progress" not in fields:
                fields["progress"] = max(0, min(progress, 100))
            if step is not None:
                fields["step"] = step
            if result is not None:
                fields["result"] = result
            if error is not None:
                fields["error"] = error
            return job.model_copy(update=fields)

        job = await self._mutate(job_id, change)
        logger.debug(
            "import_job_updated",
            job_id=job_id,
            status=job.status.value,
            progress=job.progress,
            step=job.step,
        )
        return job

    async def mark_processing(self, job_id: str, progress: int, step: str) -> ImportJob:
        return await self.update(job_id, status=ImportJobStatus.PROCESSING, progress=progress, step=step)

    async def mark_completed(self, job_id: str, result: Dict[str, Any]) -> ImportJob:
        return await self.update(
            job_id, status=ImportJobStatus.COMPLETED, step="Import completed", result=result
        )

    async def mark_failed(self, job_id: str, error: str) -> ImportJob:
        return await self.update(job_id, status=ImportJobStatus.FAILED, step="Import failed", error=error)

    async def cancel(self, job_id: str) -> ImportJob:
        """Fail a non-terminal job with a cancellation error.

        In-flight network calls are not aborted; the worker notices the
        terminal state at its next progress update.

        Raises:
            JobNotFoundError: Unknown or expired job
            JobStateError: Job already finished
        """

        def change(job: ImportJob) -> ImportJob:
            if job.status.is_terminal:
                raise JobStateError(MSG_ALREADY_FINISHED, details={"job_id": job_id})
            now = datetime.now(timezone.utc)
            return job.model_copy(update={
                "status": ImportJobStatus.FAILED,
                "step": "Cancelled",
                "error": MSG_CANCELLED,
                "updated_at": now,
                "completed_at": now,
            })

        job = await self._mutate(job_id, change)
        logger.info("import_job_cancelled", job_id=job_id)
        return job

    async def delete(self, job_id: str) -> bool:
        deleted = await self._redis.delete(self._job_key(job_id))
        await self._redis.zrem(JOB_INDEX_KEY, job_id)
        return bool(deleted)

    async def _recent_ids(self, limit: int) -> List[str]:
        # Drop index entries whose job record has expired
        cutoff = datetime.now(timezone.utc).timestamp() - self.ttl_seconds
        await self._redis.zremrangebyscore(JOB_INDEX_KEY, "-inf", cutoff)
        ids = await self._redis.zrevrange(JOB_INDEX_KEY, 0, limit - 1)
        return [i.decode() if isinstance(i, bytes) else i for i in ids]

    async def list_for_owner(self, owner_id: str, limit: int = 20) -> List[ImportJob]:
        """Most recent jobs belonging to ``owner_id``."""
        jobs: List[ImportJob] = []
        for job_id in await self._recent_ids(limit * 10):
            job = await self.get(job_id)
            if job is not None and job.owner_id == owner_id:
                jobs.append(job)
                if len(jobs) >= limit:
                    break
        return jobs

    async def fail_stale(self, max_age: timedelta, scan_limit: int = 1000) -> int:
        """Fail processing jobs with no update for ``max_age``.

        Makes a crashed or killed worker visible to polling clients.

        Returns:
            Number of jobs failed
        """
        cutoff = datetime.now(timezone.utc) - max_age
        failed = 0
        for job_id in await self._recent_ids(scan_limit):
            job = await self.get(job_id)
            if job is None or job.status != ImportJobStatus.PROCESSING or job.updated_at > cutoff:
                continue
            try:
                await self.mark_failed(job_id, MSG_INTERRUPTED)
                failed += 1
            except JobStateError:
                # Finished concurrently
                continue
        if failed:
            logger.warning("stale_import_jobs_failed", count=failed)
        return failed
