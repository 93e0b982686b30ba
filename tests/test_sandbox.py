"""Tests for quota-limited sandbox runs."""

import pytest

from pricesync.auth import RequestContext
from pricesync.db.models import Product, SandboxSettings
from pricesync.errors import QuotaExceededError
from pricesync.sync.orchestrator import RunKind, RunState, StepStatus
from pricesync.sync.sandbox import SANDBOX_MARKETPLACE, SANDBOX_SUPPLIER, SandboxService
from pricesync.worker.tasks import SyncTaskRunner


@pytest.fixture
def ctx():
    return RequestContext.from_values("tester", ["manager"])


@pytest.fixture
def service(store):
    return SandboxService(SyncTaskRunner(store))


@pytest.mark.asyncio
async def test_synthetic_runs_complete_without_external_calls(service, ctx):
    download = await service.start_run(ctx, RunKind.DOWNLOAD)
    upload = await service.start_run(ctx, "upload")

    download_result = await download.wait()
    upload_result = await upload.wait()
    await service.runner.close()

    assert download_result.steps[0].id == SANDBOX_SUPPLIER.id
    assert upload_result.steps[0].id == SANDBOX_MARKETPLACE.id
    assert download_result.trigger == "sandbox"
    assert [s.status for s in download_result.steps + upload_result.steps] == [
        StepStatus.COMPLETED,
        StepStatus.COMPLETED,
    ]
    status = await service.status(ctx)
    assert status["test_requests_used"] == 2
    assert status["remaining"] == status["max_test_requests"] - 2


@pytest.mark.asyncio
async def test_quota_blocks_run_creation(store, service, ctx):
    sandbox = await service.settings_for(ctx)
    await store.update(SandboxSettings, sandbox.id, {"max_test_requests": 1})

    run = await service.start_run(ctx, RunKind.DOWNLOAD)
    await run.wait()

    with pytest.raises(QuotaExceededError):
        await service.start_run(ctx, RunKind.DOWNLOAD)
    assert service.runner.list_active() == []

    await service.reset(ctx)
    again = await service.start_run(ctx, RunKind.DOWNLOAD)
    assert (await again.wait()).state == RunState.COMPLETED
    await service.runner.close()


@pytest.mark.asyncio
async def test_test_supplier_receives_sandbox_items(store, service, ctx, make_supplier):
    supplier = await make_supplier("Test supplier")
    await service.update_settings(ctx, {"test_supplier_id": supplier.id, "is_sandbox_mode": True})

    run = await service.start_run(ctx, RunKind.DOWNLOAD)
    result = await run.wait()
    await service.runner.close()

    assert result.steps[0].status == StepStatus.COMPLETED
    products = await store.select(Product, Product.supplier_id == supplier.id)
    assert sorted(p.supplier_article for p in products) == ["SANDBOX-001", "SANDBOX-002"]


@pytest.mark.asyncio
async def test_settings_are_created_per_user(service):
    first = await service.settings_for(RequestContext.from_values("a", []))
    again = await service.settings_for(RequestContext.from_values("a", []))
    other = await service.settings_for(RequestContext.from_values("b", []))

    assert first.id == again.id
    assert other.id != first.id
    assert first.max_test_requests == 100
