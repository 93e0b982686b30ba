"""Sandbox test run endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from pricesync.api.deps import get_sandbox_service, require_sync_role
from pricesync.auth import RequestContext
from pricesync.sync.orchestrator import RunKind
from pricesync.sync.sandbox import SandboxService

router = APIRouter(prefix="/api/sandbox", tags=["sandbox"])


class SandboxUpdate(BaseModel):
    is_sandbox_mode: Optional[bool] = None
    test_supplier_id: Optional[str] = None
    test_marketplace_id: Optional[str] = None


@router.get("")
async def sandbox_status(
    service: SandboxService = Depends(get_sandbox_service),
    ctx: RequestContext = Depends(require_sync_role),
):
    return await service.status(ctx)


@router.patch("")
async def update_sandbox(
    data: SandboxUpdate,
    service: SandboxService = Depends(get_sandbox_service),
    ctx: RequestContext = Depends(require_sync_role),
):
    await service.update_settings(ctx, data.model_dump(exclude_unset=True))
    return await service.status(ctx)


@router.post("/runs/{kind}", status_code=202)
async def start_sandbox_run(
    kind: RunKind,
    service: SandboxService = Depends(get_sandbox_service),
    ctx: RequestContext = Depends(require_sync_role),
):
    """Start a test run; 429 once the caller's test requests are used up."""
    run = await service.start_run(ctx, kind)
    return {"run_id": run.run_id, "kind": run.kind.value, "total_steps": len(run.steps)}


@router.post("/reset")
async def reset_sandbox(
    service: SandboxService = Depends(get_sandbox_service),
    ctx: RequestContext = Depends(require_sync_role),
):
    await service.reset(ctx)
    return await service.status(ctx)
