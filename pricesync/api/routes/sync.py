"""Download/upload run endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from pricesync.api.deps import get_store, get_task_runner, require_sync_role
from pricesync.auth import RequestContext
from pricesync.db.models import AutomationSettings
from pricesync.db.store import RecordStore
from pricesync.pricing.review import requires_manual_review
from pricesync.worker.tasks import SyncTaskRunner

router = APIRouter(prefix="/api/sync", tags=["sync"])


class DownloadRequest(BaseModel):
    """Omitted ids mean every active supplier; an empty list is rejected."""

    supplier_ids: Optional[List[str]] = Field(default=None, min_length=1)


class UploadRequest(BaseModel):
    """Omitted ids mean every active marketplace and every repriced match; empty lists are rejected."""

    marketplace_ids: Optional[List[str]] = Field(default=None, min_length=1)
    product_ids: Optional[List[str]] = Field(default=None, min_length=1)


class RunStarted(BaseModel):
    run_id: str
    kind: str
    total_steps: int


@router.post("/download", response_model=RunStarted, status_code=202)
async def start_download(
    data: DownloadRequest,
    runner: SyncTaskRunner = Depends(get_task_runner),
    ctx: RequestContext = Depends(require_sync_role),
):
    run = await runner.start_download(data.supplier_ids, user_id=ctx.user_id)
    return RunStarted(run_id=run.run_id, kind=run.kind.value, total_steps=len(run.steps))


@router.post("/upload", response_model=RunStarted, status_code=202)
async def start_upload(
    data: UploadRequest,
    runner: SyncTaskRunner = Depends(get_task_runner),
    ctx: RequestContext = Depends(require_sync_role),
):
    run = await runner.start_upload(data.marketplace_ids, data.product_ids, user_id=ctx.user_id)
    return RunStarted(run_id=run.run_id, kind=run.kind.value, total_steps=len(run.steps))


@router.get("/runs")
async def list_runs(
    limit: int = 50,
    runner: SyncTaskRunner = Depends(get_task_runner),
    ctx: RequestContext = Depends(require_sync_role),
):
    """Active runs and the most recent finished ones."""
    return {"active": runner.list_active(), "recent": await runner.recent_runs(limit)}


@router.get("/runs/{run_id}")
async def get_run(
    run_id: str,
    runner: SyncTaskRunner = Depends(get_task_runner),
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_sync_role),
):
    """
    Run snapshot.

    A finished download carries ``needs_review`` when auto mode is off and
    the downloaded prices must be reviewed before any upload.
    """
    run = await runner.get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    if run["state"] == "completed":
        automation = await store.first(AutomationSettings)
        run["needs_review"] = requires_manual_review(run["kind"], automation)
    return run


@router.post("/runs/{run_id}/cancel")
async def cancel_run(
    run_id: str,
    runner: SyncTaskRunner = Depends(get_task_runner),
    ctx: RequestContext = Depends(require_sync_role),
):
    if not runner.cancel_run(run_id):
        raise HTTPException(status_code=409, detail="Run is not active")
    return {"run_id": run_id, "cancel_requested": True}
