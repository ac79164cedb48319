"""
Import Routes
=============

Endpoints:
- POST /admin/import/preview - Scrape and validate without saving
- POST /admin/import - Synchronous import
- POST /admin/import/jobs - Start an asynchronous import
- GET /admin/import/jobs - Caller's recent import jobs
- GET /admin/import/jobs/{job_id} - Poll an import job
- DELETE /admin/import/jobs/{job_id} - Cancel an import job
"""
from typing import List

from fastapi import APIRouter, Response, status

from dropship.api.deps import Imports, Operator
from dropship.api.schemas import ImportJobAccepted, ImportRequest
from dropship.errors import JobNotFoundError
from dropship.models import ActionResult, ImportJob, ImportPreview, ImportResult

router = APIRouter()


@router.post("/preview", response_model=ImportPreview, summary="Preview a supplier listing")
async def preview_import(body: ImportRequest, principal: Operator, service: Imports) -> ImportPreview:
    return await service.preview_import(body.url, body.category_id)


@router.post("", response_model=ImportResult, summary="Import a supplier listing")
async def import_product(
    body: ImportRequest, principal: Operator, service: Imports, response: Response
) -> ImportResult:
    result = await service.import_product(body.url, body.category_id, body.overrides)
    if not result.success:
        response.status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return result


@router.post(
    "/jobs",
    response_model=ImportJobAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start an asynchronous import",
)
async def start_import_job(body: ImportRequest, principal: Operator, service: Imports) -> ImportJobAccepted:
    job_id = await service.start_async_import(
        body.url,
        owner_id=principal.user_id,
        category_id=body.category_id,
        overrides=body.overrides,
    )
    return ImportJobAccepted(job_id=job_id)


@router.get("/jobs", response_model=List[ImportJob], summary="List your import jobs")
async def list_import_jobs(principal: Operator, service: Imports, limit: int = 20) -> List[ImportJob]:
    return await service.tracker.list_for_owner(principal.user_id, limit=min(max(limit, 1), 100))


@router.get("/jobs/{job_id}", response_model=ImportJob, summary="Import job status")
async def get_import_job(job_id: str, principal: Operator, service: Imports) -> ImportJob:
    job = await service.get_import_status(job_id)
    if job is None:
        raise JobNotFoundError("Job not found", details={"job_id": job_id})
    return job


@router.delete("/jobs/{job_id}", response_model=ActionResult, summary="Cancel an import job")
async def cancel_import_job(job_id: str, principal: Operator, service: Imports, response: Response) -> ActionResult:
    result = await service.cancel_import_job(job_id)
    if not result.success:
        response.status_code = status.HTTP_409_CONFLICT
    return result
