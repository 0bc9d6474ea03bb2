"""Routes for critical CSS extraction."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, status

from foldcss.api.dependencies import check_stylesheet_path, get_auth_dependency, get_extractor
from foldcss.models.critical_css import (
    CriticalCSSJobStatusResponse,
    CriticalCSSRequest,
    CriticalCSSResult,
)
from foldcss.models.job import JobStatus
from foldcss.services import job_store
from foldcss.services.critical_css import CriticalCSSExtractor
from foldcss.tasks.css_tasks import generate_critical_css

router = APIRouter(prefix="/critical-css", tags=["critical-css"], dependencies=[Depends(get_auth_dependency)])


@router.post(
    "/generate",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Enqueue a critical CSS generation job",
)
def enqueue_critical_css(payload: CriticalCSSRequest) -> dict:
    """Create a job to generate critical CSS for the provided page and stylesheet."""

    payload = check_stylesheet_path(payload)
    job_id = f"css_{uuid.uuid4().hex}"
    serialized_payload = payload.model_dump(mode="json")
    job_store.create_job(
        job_id=job_id,
        job_type="critical_css",
        payload=serialized_payload,
    )
    generate_critical_css.delay(job_id=job_id, payload=serialized_payload)
    return {"job_id": job_id, "status": JobStatus.queued}


@router.get(
    "/{job_id}",
    response_model=CriticalCSSJobStatusResponse,
    summary="Retrieve critical CSS job status",
)
def get_critical_css_job(job_id: str) -> CriticalCSSJobStatusResponse:
    """Return job status and resulting CSS if available."""

    job = job_store.job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

    result = None
    if job.result:
        result = CriticalCSSResult.model_validate(job.result)

    return CriticalCSSJobStatusResponse(
        job_id=job.job_id,
        status=job.status,
        url=job.payload.get("url", ""),
        created_at=job.created_at,
        updated_at=job.updated_at,
        result=result,
        error=job.error,
        error_kind=job.error_kind,
    )


@router.post(
    "/extract",
    response_model=CriticalCSSResult,
    summary="Generate critical CSS within the request",
)
async def extract_critical_css(
    payload: CriticalCSSRequest,
    extractor: CriticalCSSExtractor = Depends(get_extractor),
) -> CriticalCSSResult:
    """Run the extraction inline; failures surface through the error handler."""

    return await extractor.extract(check_stylesheet_path(payload))
