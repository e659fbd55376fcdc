"""Job management API endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from mediajobs.dependencies import get_job_queue
from mediajobs.models.job import Job, JobStatus
from mediajobs.models.schemas import (
    JobBatchCreate,
    JobCreate,
    JobCreateResponse,
    JobListResponse,
)
from mediajobs.services.job_queue import JobQueue

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=Job, status_code=201)
async def create_job(job_data: JobCreate, job_queue: JobQueue = Depends(get_job_queue)):
    """
    Enqueue a single media job.

    Args:
        job_data: Job creation data
        job_queue: Job queue

    Returns:
        Snapshot of the queued job
    """
    try:
        job = await job_queue.enqueue(job_data.to_job())
        logger.info(f"Created {job.job_type.value} job {job.id}")
        return job

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating job: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/batch", response_model=JobCreateResponse, status_code=201)
async def create_batch_jobs(batch_data: JobBatchCreate, job_queue: JobQueue = Depends(get_job_queue)):
    """
    Enqueue several jobs in the given order.

    Args:
        batch_data: Batch job creation data
        job_queue: Job queue

    Returns:
        Created job IDs
    """
    try:
        job_ids = []
        for job_data in batch_data.jobs:
            job = await job_queue.enqueue(job_data.to_job())
            job_ids.append(job.id)

        if job_ids:
            logger.info(f"Created {len(job_ids)} batch jobs")

        return JobCreateResponse(job_ids=job_ids)

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating batch jobs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@router.get("", response_model=JobListResponse)
async def list_jobs(
    status: Optional[JobStatus] = Query(None, description="Filter by status"),
    job_queue: JobQueue = Depends(get_job_queue),
):
    """
    List jobs in admission order with optional filtering.

    Args:
        status: Optional status filter
        job_queue: Job queue

    Returns:
        List of jobs and total count
    """
    jobs = job_queue.get_all()
    if status:
        jobs = [job for job in jobs if job.status == status]
    return JobListResponse(jobs=jobs, total=len(jobs))


@router.delete("/completed")
async def clear_completed_jobs(job_queue: JobQueue = Depends(get_job_queue)):
    """
    Forget all succeeded, failed, and canceled jobs.

    Returns:
        Number of jobs removed
    """
    deleted_count = job_queue.clear_finished()
    return {"deleted_count": deleted_count}


@router.get("/{job_id}", response_model=Job)
async def get_job(job_id: str, job_queue: JobQueue = Depends(get_job_queue)):
    """
    Get job details by ID.

    Args:
        job_id: Job ID
        job_queue: Job queue

    Returns:
        Job details
    """
    job = job_queue.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@router.delete("/{job_id}")
async def cancel_job(job_id: str, job_queue: JobQueue = Depends(get_job_queue)):
    """
    Cancel a queued or running job.
    """
    job = job_queue.get(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    if not await job_queue.cancel(job_id):
        raise HTTPException(
            status_code=400, detail=f"Cannot cancel job with status '{job.status.value}'"
        )

    logger.info(f"Cancelled job {job_id}")
    return {"success": True, "message": f"Job {job_id} cancelled"}
