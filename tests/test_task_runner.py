"""Tests for the sync task runner and scheduled sync."""

from datetime import datetime
from decimal import Decimal

import pytest

from pricesync.db.models import AutomationSettings, Product
from pricesync.marketplace.kaspi import DryRunCatalog
from pricesync.sync.orchestrator import StepStatus
from pricesync.sync.steps import UploadStepExecutor
from pricesync.worker.scheduler import (
    AUTO_SYNC_JOB_ID,
    is_within_sync_period,
    reschedule_auto_sync,
    setup_scheduler,
)
from pricesync.worker.tasks import SyncTaskRunner

CARD = {
    "brand": "Acme",
    "category_code": "phones",
    "description": "A phone",
    "image_urls": ["https://img.test/phone.jpg"],
}


def recording_executor(seen, fail_on=()):
    async def executor(target, report):
        seen.append(target.id)
        if target.id in fail_on:
            raise RuntimeError(f"{target.name} failed")
        report(1, 1)

    return executor


@pytest.mark.asyncio
async def test_finished_run_is_recorded(store, make_supplier):
    first = await make_supplier("A supplier")
    second = await make_supplier("B supplier")
    seen = []
    runner = SyncTaskRunner(store, download_executor=recording_executor(seen, fail_on={second.id}))

    run = await runner.start_download(user_id="u1")
    assert runner.get_active(run.run_id) is run
    await run.wait()
    await runner.close()

    assert seen == [first.id, second.id]
    record = await runner.get_run(run.run_id)
    assert record["state"] == "completed"
    assert record["total_steps"] == 2
    assert record["error_count"] == 1
    assert record["progress_percent"] == 100
    assert record["steps"][1]["error"] == "B supplier failed"
    assert runner.list_active() == []


@pytest.mark.asyncio
async def test_inactive_suppliers_are_skipped(store, make_supplier):
    active = await make_supplier("Active")
    await make_supplier("Paused", is_active=False)
    runner = SyncTaskRunner(store)

    targets = await runner.download_targets()
    assert [t.id for t in targets] == [active.id]


@pytest.mark.asyncio
async def test_cancel_unknown_run(store):
    runner = SyncTaskRunner(store)
    assert runner.cancel_run("missing") is False
    assert await runner.get_run("missing") is None


@pytest.mark.asyncio
async def test_auto_sync_waits_for_review_when_auto_mode_off(
    store, make_supplier, make_marketplace
):
    supplier = await make_supplier()
    await make_marketplace()
    await store.insert(AutomationSettings, {"auto_mode_enabled": False})
    downloads, uploads = [], []
    runner = SyncTaskRunner(
        store,
        download_executor=recording_executor(downloads),
        upload_executor=recording_executor(uploads),
    )

    await runner.auto_sync()
    await runner.close()

    assert downloads == [supplier.id]
    assert uploads == []


@pytest.mark.asyncio
async def test_auto_sync_reprices_and_uploads_in_auto_mode(
    store, make_supplier, make_marketplace, make_product
):
    supplier = await make_supplier()
    marketplace = await make_marketplace(pricing_action="multiply", pricing_value=Decimal("1.5"))
    product = await make_product("A1", price=200, supplier_id=supplier.id)
    await make_product("A1", marketplace_id=marketplace.id, marketplace_article="A1")
    await store.insert(AutomationSettings, {"auto_mode_enabled": True})
    downloads, uploads = [], []
    runner = SyncTaskRunner(
        store,
        download_executor=recording_executor(downloads),
        upload_executor=recording_executor(uploads),
    )

    await runner.auto_sync()
    await runner.close()

    assert downloads == [supplier.id]
    assert uploads == [marketplace.id]
    repriced = await store.get(Product, product.id)
    assert repriced.new_price == Decimal("300.00")
    assert repriced.price_status == "increased"
    recent = await runner.recent_runs()
    assert {r["trigger"] for r in recent} == {"scheduled"}


@pytest.mark.asyncio
async def test_empty_upload_selection_submits_nothing(
    store, make_supplier, make_marketplace, make_product
):
    supplier = await make_supplier()
    marketplace = await make_marketplace()
    for article in ("A1", "A2"):
        await make_product(article, supplier_id=supplier.id, new_price=Decimal("10"), **CARD)
        await make_product(article, marketplace_id=marketplace.id, marketplace_article=article)
    catalog = DryRunCatalog()
    runner = SyncTaskRunner(store, upload_executor=UploadStepExecutor(store, lambda m: catalog))

    run = await runner.start_upload([marketplace.id], product_ids=[])
    result = await run.wait()
    await runner.close()

    assert result.steps[0].status == StepStatus.COMPLETED
    assert catalog.submitted == []

def test_sync_period_windows():
    monday_morning = datetime(2026, 10, 12, 10, 0)
    monday_night = datetime(2026, 10, 12, 22, 0)
    saturday = datetime(2026, 10, 17, 10, 0)

    assert is_within_sync_period("business_hours", monday_morning) is True
    assert is_within_sync_period("business_hours", monday_night) is False
    assert is_within_sync_period("business_hours", saturday) is False
    assert is_within_sync_period("always", saturday) is True
    assert is_within_sync_period("custom", monday_night) is True


def test_scheduler_job_configuration():
    scheduler = setup_scheduler(interval_minutes=15)
    job = scheduler.get_job(AUTO_SYNC_JOB_ID)

    assert job is not None
    assert job.max_instances == 1
    assert job.coalesce is True
    assert job.trigger.interval.total_seconds() == 15 * 60

    reschedule_auto_sync(None, 5)
