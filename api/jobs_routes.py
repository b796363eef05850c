"""
Job tracking API routes for the Simulix backend.

Background tradeoff sweeps and training runs are listed, inspected and
cancelled here; live updates go through the ``/ws/job/{id}`` websocket.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from .jobs import JobStatus, JobType, job_manager

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("")
def list_jobs(
    type: Optional[JobType] = Query(None, description="Filter by job type"),
    status: Optional[JobStatus] = Query(None, description="Filter by job status"),
    limit: int = Query(50, ge=1, le=500),
):
    """List jobs, newest first."""
    jobs = job_manager.list_jobs(job_type=type, status=status, limit=limit)
    return {"jobs": [job.to_dict() for job in jobs], "total": len(jobs)}


@router.get("/{job_id}")
def get_job(job_id: str, include_history: bool = Query(True)):
    """Status, progress, metrics and (once finished) result of one job."""
    job = job_manager.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found")
    return job.to_dict(include_history=include_history)


@router.post("/{job_id}/cancel")
def cancel_job(job_id: str):
    """Request cancellation; running jobs stop at their next progress report."""
    job = job_manager.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job '{job_id}' not found")

    if not job_manager.cancel_job(job_id):
        raise HTTPException(
            status_code=409,
            detail=f"Job '{job_id}' cannot be cancelled (status: {job.status.value})",
        )
    return {"success": True, "job_id": job_id, "status": job.status.value}
