"""Sandbox runs against test entities, bounded by a per-user request quota."""

import logging
from typing import Optional

from pricesync.auth import RequestContext
from pricesync.config import settings
from pricesync.db.models import Marketplace, SandboxSettings, Supplier
from pricesync.marketplace.kaspi import DryRunCatalog, client_for_marketplace
from pricesync.sync.orchestrator import ProgressReporter, RunKind, SyncRun, SyncTarget
from pricesync.sync.quota import SandboxQuotaGuard
from pricesync.sync.sources import StaticSupplierSource, source_for_supplier
from pricesync.sync.steps import DownloadStepExecutor, UploadStepExecutor

logger = logging.getLogger(__name__)

SANDBOX_SUPPLIER = SyncTarget("sandbox-supplier", "Sandbox supplier")
SANDBOX_MARKETPLACE = SyncTarget("sandbox-marketplace", "Sandbox marketplace")

SANDBOX_ITEMS = [
    {
        "article": "SANDBOX-001",
        "name": "Sandbox test phone",
        "price": "49990",
        "brand": "Sandbox",
        "category": "sandbox-phones",
        "description": "Test item for sandbox runs",
        "images": ["https://example.com/sandbox/phone.jpg"],
    },
    {
        "article": "SANDBOX-002",
        "name": "Sandbox test charger",
        "price": "4990",
        "brand": "Sandbox",
        "category": "sandbox-accessories",
        "description": "Test item for sandbox runs",
        "images": ["https://example.com/sandbox/charger.jpg"],
    },
]


def sandbox_source(_supplier=None) -> StaticSupplierSource:
    return StaticSupplierSource(SANDBOX_ITEMS)


async def dry_download(target: SyncTarget, report: ProgressReporter) -> None:
    """Fetch the sandbox items without persisting anything."""
    items = await sandbox_source().fetch_items()
    report(len(items), len(items))


async def dry_upload(target: SyncTarget, report: ProgressReporter) -> None:
    """Validate the sandbox items as catalog cards without contacting a marketplace."""
    catalog = DryRunCatalog()
    items = await sandbox_source().fetch_items()
    report(0, len(items))
    for done, item in enumerate(items, start=1):
        await catalog.add_product(
            {
                "sku": item.article,
                "title": item.name,
                "brand": item.brand or "",
                "category": item.category or "",
                "description": item.description or "",
                "images": [{"url": url} for url in item.images],
            }
        )
        report(done, len(items))


class SandboxService:
    """Starts quota-limited test runs for a user."""

    def __init__(self, runner, guard: Optional[SandboxQuotaGuard] = None):
        self.runner = runner
        self.store = runner.store
        self.guard = guard or SandboxQuotaGuard(self.store)

    async def settings_for(self, ctx: RequestContext) -> SandboxSettings:
        """The caller's sandbox settings, created with defaults on first use."""
        row = await self.store.first(SandboxSettings, SandboxSettings.user_id == ctx.user_id)
        if row is None:
            row = await self.store.insert(
                SandboxSettings,
                {"user_id": ctx.user_id, "max_test_requests": settings.sandbox_max_test_requests},
            )
            logger.info(f"Created sandbox settings for user {ctx.user_id}")
        return row

    async def status(self, ctx: RequestContext) -> dict:
        sandbox = await self.settings_for(ctx)
        used, limit = self.guard.usage(ctx.user_id, sandbox)
        return {
            "user_id": ctx.user_id,
            "is_sandbox_mode": sandbox.is_sandbox_mode,
            "test_supplier_id": sandbox.test_supplier_id,
            "test_marketplace_id": sandbox.test_marketplace_id,
            "test_requests_used": used,
            "max_test_requests": limit,
            "remaining": max(0, limit - used),
        }

    async def update_settings(self, ctx: RequestContext, patch: dict) -> SandboxSettings:
        sandbox = await self.settings_for(ctx)
        return await self.store.update(SandboxSettings, sandbox.id, patch)

    async def start_run(self, ctx: RequestContext, kind: RunKind) -> SyncRun:
        """
        Start a sandbox run of ``kind`` for the caller.

        Raises:
            QuotaExceededError: If the caller has no test requests left
            NotFoundError: If a configured test entity no longer exists
        """
        kind = RunKind(kind)
        sandbox = await self.settings_for(ctx)
        if kind == RunKind.DOWNLOAD:
            target, executor = await self._download_plan(sandbox)
        else:
            target, executor = await self._upload_plan(sandbox)

        await self.guard.acquire(ctx.user_id, sandbox)

        run = self.runner.launch(kind, [target], trigger="sandbox", user_id=ctx.user_id, executor=executor)
        logger.info(
            f"Sandbox {kind.value} run {run.run_id[:16]} started for user {ctx.user_id} "
            f"({sandbox.test_requests_used}/{sandbox.max_test_requests})"
        )
        return run

    async def _download_plan(self, sandbox: SandboxSettings):
        if not sandbox.test_supplier_id:
            return SANDBOX_SUPPLIER, dry_download
        supplier = await self.store.get(Supplier, sandbox.test_supplier_id)
        factory = sandbox_source if sandbox.is_sandbox_mode else source_for_supplier
        return SyncTarget(supplier.id, supplier.name), DownloadStepExecutor(self.store, factory)

    async def _upload_plan(self, sandbox: SandboxSettings):
        if not sandbox.test_marketplace_id:
            return SANDBOX_MARKETPLACE, dry_upload
        marketplace = await self.store.get(Marketplace, sandbox.test_marketplace_id)

        def catalog_factory(m):
            if sandbox.is_sandbox_mode:
                return DryRunCatalog()
            return client_for_marketplace(m)

        return SyncTarget(marketplace.id, marketplace.name), UploadStepExecutor(self.store, catalog_factory)

    async def reset(self, ctx: RequestContext) -> None:
        """Zero the caller's test request counter."""
        sandbox = await self.settings_for(ctx)
        await self.guard.reset(ctx.user_id, sandbox)
