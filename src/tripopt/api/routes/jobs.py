"""Stored optimization job endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import PlainTextResponse

from ...persistence.jobs import JobStore
from ...schemas.optimization import OptimizationResultModel
from ...services.optimizer.service import get_job_store
from ...services.outputs.result_formatter import segments_to_csv

router = APIRouter(prefix="/jobs", tags=["jobs"])


def _load_job(job_id: str, store: JobStore) -> dict:
    job = store.find_by_id(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job {job_id} not found")
    return job


@router.get("", status_code=status.HTTP_200_OK)
def list_jobs(
    user_id: str = Query(..., alias="userId", min_length=1),
    limit: int = Query(20, ge=1, le=100),
    store: JobStore = Depends(get_job_store),
) -> dict:
    jobs = store.find_by_user_id(user_id, limit=limit)
    return {
        "success": True,
        "data": [OptimizationResultModel.model_validate(job).model_dump(by_alias=True) for job in jobs],
        "count": len(jobs),
    }


@router.get("/{job_id}", status_code=status.HTTP_200_OK)
def get_job(job_id: str, store: JobStore = Depends(get_job_store)) -> dict:
    job = _load_job(job_id, store)
    return {"success": True, "data": OptimizationResultModel.model_validate(job).model_dump(by_alias=True)}


@router.get("/{job_id}/segments.csv", response_class=PlainTextResponse)
def export_job_segments(job_id: str, store: JobStore = Depends(get_job_store)) -> PlainTextResponse:
    """Legs of a stored job as CSV."""
    job = _load_job(job_id, store)
    return PlainTextResponse(segments_to_csv(job), media_type="text/csv")


@router.delete("/{job_id}", status_code=status.HTTP_200_OK)
def delete_job(
    job_id: str,
    user_id: Optional[str] = Query(None, alias="userId"),
    store: JobStore = Depends(get_job_store),
) -> dict:
    if not store.delete_by_id(job_id, user_id=user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job {job_id} not found")
    return {"success": True, "message": f"Job {job_id} deleted"}
