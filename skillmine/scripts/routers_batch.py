from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import Optional
from .auth import require_tenant
from .batch_jobs import BatchJobController
from .errors import ConflictError, InvalidArgumentError, NotFoundError
from .store import SkillStore, get_store


router = APIRouter(prefix="/batch", tags=["batch"])


def get_controller(store: SkillStore = Depends(get_store)) -> BatchJobController:
    return BatchJobController(store)


class StartReq(BaseModel):
    mode: str = "ai"
    source_url: Optional[str] = None
    limit: Optional[int] = Field(default=None, gt=0)


def _raise_http(e: Exception):
    if isinstance(e, ConflictError):
        raise HTTPException(status_code=409, detail={"error": str(e), "job_id": e.job_id})
    if isinstance(e, NotFoundError):
        raise HTTPException(status_code=404, detail="not_found")
    if isinstance(e, InvalidArgumentError):
        raise HTTPException(status_code=400, detail=str(e))
    raise e


@router.post("/start")
def start_job(req: StartReq, tenant_id: str = Depends(require_tenant), controller: BatchJobController = Depends(get_controller)):
    try:
        job_id = controller.start(tenant_id, mode=req.mode, source_url=req.source_url, limit=req.limit)
    except (ConflictError, InvalidArgumentError) as e:
        _raise_http(e)
    return {"job_id": job_id, "status": "started"}


@router.post("/{job_id}/pause")
def pause_job(job_id: str, tenant_id: str = Depends(require_tenant), controller: BatchJobController = Depends(get_controller)):
    try:
        controller.pause(job_id, tenant_id=tenant_id)
    except (ConflictError, NotFoundError) as e:
        _raise_http(e)
    return {"success": True}


@router.post("/{job_id}/resume")
def resume_job(job_id: str, tenant_id: str = Depends(require_tenant), controller: BatchJobController = Depends(get_controller)):
    try:
        controller.resume(job_id, tenant_id=tenant_id)
    except (ConflictError, NotFoundError) as e:
        _raise_http(e)
    return {"success": True}


@router.post("/{job_id}/cancel")
def cancel_job(job_id: str, tenant_id: str = Depends(require_tenant), controller: BatchJobController = Depends(get_controller)):
    try:
        controller.cancel(job_id, tenant_id=tenant_id)
    except (ConflictError, NotFoundError) as e:
        _raise_http(e)
    return {"success": True}


@router.get("/status")
def job_status(tenant_id: str = Depends(require_tenant), controller: BatchJobController = Depends(get_controller)):
    job = controller.status(tenant_id)
    return {"job": job.model_dump(mode="json") if job else None}
