"""Automation and storage settings routes."""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from pricesync.api.deps import get_request_context, get_store, require_admin
from pricesync.auth import RequestContext
from pricesync.db.models import AutomationSettings, StorageSettings
from pricesync.db.store import RecordStore
from pricesync.worker.scheduler import reschedule_auto_sync

router = APIRouter(prefix="/api/settings", tags=["settings"])


class AutomationUpdate(BaseModel):
    auto_mode_enabled: Optional[bool] = None
    sync_interval_minutes: Optional[int] = Field(default=None, ge=1)
    sync_period: Optional[Literal["always", "business_hours", "custom"]] = None
    max_requests_per_day: Optional[int] = Field(default=None, ge=1)


class StorageUpdate(BaseModel):
    storage_type: Optional[str] = None
    storage_login: Optional[str] = None
    storage_password: Optional[str] = None
    file_format: Optional[Literal["xlsx", "csv"]] = None
    storage_path: Optional[str] = None
    is_active: Optional[bool] = None


def automation_to_dict(row: AutomationSettings) -> dict:
    return {
        "id": row.id,
        "auto_mode_enabled": row.auto_mode_enabled,
        "sync_interval_minutes": row.sync_interval_minutes,
        "sync_period": row.sync_period,
        "max_requests_per_day": row.max_requests_per_day,
    }


def storage_to_dict(row: StorageSettings) -> dict:
    return {
        "id": row.id,
        "storage_type": row.storage_type,
        "storage_login": row.storage_login,
        "has_storage_password": bool(row.storage_password),
        "file_format": row.file_format,
        "storage_path": row.storage_path,
        "is_active": row.is_active,
    }


async def _singleton(store: RecordStore, model):
    row = await store.first(model)
    if row is None:
        row = await store.insert(model, {})
    return row


@router.get("/automation")
async def get_automation(
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(get_request_context),
):
    return automation_to_dict(await _singleton(store, AutomationSettings))


@router.patch("/automation")
async def update_automation(
    data: AutomationUpdate,
    request: Request,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_admin),
):
    """Update automation settings; a new interval applies to the running scheduler."""
    row = await _singleton(store, AutomationSettings)
    patch = data.model_dump(exclude_unset=True)
    row = await store.update(AutomationSettings, row.id, patch)
    if "sync_interval_minutes" in patch:
        reschedule_auto_sync(getattr(request.app.state, "scheduler", None), row.sync_interval_minutes)
    return automation_to_dict(row)


@router.get("/storage")
async def get_storage(
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_admin),
):
    return storage_to_dict(await _singleton(store, StorageSettings))


@router.patch("/storage")
async def update_storage(
    data: StorageUpdate,
    store: RecordStore = Depends(get_store),
    ctx: RequestContext = Depends(require_admin),
):
    row = await _singleton(store, StorageSettings)
    row = await store.update(StorageSettings, row.id, data.model_dump(exclude_unset=True))
    return storage_to_dict(row)
