"""Unit tests for ImportJobTracker (backed by fakeredis)."""
from datetime import datetime, timedelta, timezone

import fakeredis.aioredis
import pytest

from dropship.errors import JobNotFoundError, JobStateError
from dropship.models import ImportJob, ImportJobStatus
from dropship.services.import_jobs import (
    JOB_INDEX_KEY,
    MSG_CANCELLED,
    MSG_INTERRUPTED,
    ImportJobTracker,
)


@pytest.fixture
def redis():
    return fakeredis.aioredis.FakeRedis()


@pytest.fixture
def tracker(redis):
    return ImportJobTracker(redis, ttl_seconds=3600)


class TestCreateAndGet:
    @pytest.mark.asyncio
    async def test_create_pending_job(self, tracker, redis):
        job = await tracker.create(owner_id="op-1", url="https://www.aliexpress.com/item/1.html")

        stored = await tracker.get(job.job_id)
        assert stored.status == ImportJobStatus.PENDING
        assert stored.owner_id == "op-1"
        assert stored.progress == 0
        assert 0 < await redis.ttl(f"import_job:{job.job_id}") <= 3600
        assert await redis.zscore(JOB_INDEX_KEY, job.job_id) is not None

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, tracker):
        await tracker.create(job_id="fixed", owner_id="op-1")
        with pytest.raises(JobStateError):
            await tracker.create(job_id="fixed", owner_id="op-2")
        assert (await tracker.get("fixed")).owner_id == "op-1"

    @pytest.mark.asyncio
    async def test_unknown_job(self, tracker):
        assert await tracker.get("missing") is None
        with pytest.raises(JobNotFoundError):
            await tracker.update("missing", progress=10)


class TestTransitions:
    @pytest.mark.asyncio
    async def test_happy_path(self, tracker):
        job = await tracker.create(owner_id="op-1")

        processing = await tracker.mark_processing(job.job_id, 20, "Fetching product data")
        assert processing.status == ImportJobStatus.PROCESSING
        assert (processing.progress, processing.step) == (20, "Fetching product data")

        done = await tracker.mark_completed(job.job_id, {"product_id": "p-1"})
        assert done.status == ImportJobStatus.COMPLETED
        assert done.progress == 100
        assert done.result == {"product_id": "p-1"}
        assert done.completed_at is not None

    @pytest.mark.asyncio
    async def test_progress_is_clamped(self, tracker):
        job = await tracker.create(owner_id="op-1")
        updated = await tracker.update(job.job_id, progress=250)
        assert updated.progress == 100

    @pytest.mark.asyncio
    async def test_terminal_jobs_are_frozen(self, tracker):
        job = await tracker.create(owner_id="op-1")
        await tracker.mark_failed(job.job_id, "boom")

        with pytest.raises(JobStateError):
            await tracker.mark_processing(job.job_id, 60, "Saving product")
        with pytest.raises(JobStateError):
            await tracker.mark_completed(job.job_id, {})

        stored = await tracker.get(job.job_id)
        assert stored.status == ImportJobStatus.FAILED
        assert stored.error == "boom"

    @pytest.mark.asyncio
    async def test_cannot_complete_from_pending(self, tracker):
        job = await tracker.create(owner_id="op-1")
        with pytest.raises(JobStateError):
            await tracker.mark_completed(job.job_id, {})
        assert (await tracker.get(job.job_id)).status == ImportJobStatus.PENDING


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_running_job(self, tracker):
        job = await tracker.create(owner_id="op-1")
        await tracker.mark_processing(job.job_id, 20, "Fetching product data")

        cancelled = await tracker.cancel(job.job_id)

        assert cancelled.status == ImportJobStatus.FAILED
        assert cancelled.error == MSG_CANCELLED
        # Worker progress after cancellation is refused
        with pytest.raises(JobStateError):
            await tracker.mark_processing(job.job_id, 60, "Saving product")

    @pytest.mark.asyncio
    async def test_cancel_finished_job(self, tracker):
        job = await tracker.create(owner_id="op-1")
        await tracker.mark_processing(job.job_id, 20, "Fetching product data")
        await tracker.mark_completed(job.job_id, {"product_id": "p-1"})

        with pytest.raises(JobStateError):
            await tracker.cancel(job.job_id)
        assert (await tracker.get(job.job_id)).status == ImportJobStatus.COMPLETED


class TestListing:
    @pytest.mark.asyncio
    async def test_list_for_owner(self, tracker):
        mine = [await tracker.create(owner_id="op-1") for _ in range(3)]
        await tracker.create(owner_id="op-2")

        jobs = await tracker.list_for_owner("op-1")

        assert {job.job_id for job in jobs} == {job.job_id for job in mine}
        assert len(await tracker.list_for_owner("op-1", limit=2)) == 2

    @pytest.mark.asyncio
    async def test_delete(self, tracker, redis):
        job = await tracker.create(owner_id="op-1")
        assert await tracker.delete(job.job_id)
        assert await tracker.get(job.job_id) is None
        assert await redis.zscore(JOB_INDEX_KEY, job.job_id) is None


class TestFailStale:
    @pytest.mark.asyncio
    async def test_only_old_processing_jobs_fail(self, tracker, redis):
        fresh = await tracker.create(owner_id="op-1")
        await tracker.mark_processing(fresh.job_id, 20, "Fetching product data")
        pending = await tracker.create(owner_id="op-1")

        old_time = datetime.now(timezone.utc) - timedelta(minutes=45)
        stale = ImportJob(
            job_id="stale",
            owner_id="op-1",
            status=ImportJobStatus.PROCESSING,
            progress=20,
            created_at=old_time,
            updated_at=old_time,
        )
        await redis.set("import_job:stale", stale.to_json())
        await redis.zadd(JOB_INDEX_KEY, {"stale": datetime.now(timezone.utc).timestamp()})

        failed = await tracker.fail_stale(timedelta(minutes=30))

        assert failed == 1
        stale_job = await tracker.get("stale")
        assert stale_job.status == ImportJobStatus.FAILED
        assert stale_job.error == MSG_INTERRUPTED
        assert (await tracker.get(fresh.job_id)).status == ImportJobStatus.PROCESSING
        assert (await tracker.get(pending.job_id)).status == ImportJobStatus.PENDING
