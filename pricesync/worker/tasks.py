"""Background sync runs: start, track, cancel and record them."""

import asyncio
import logging
from typing import Optional, Sequence

from pricesync.db.models import AutomationSettings, Marketplace, Supplier, SyncRunRecord
from pricesync.db.store import RecordStore
from pricesync.errors import PriceSyncError
from pricesync.pricing.review import PriceReviewService, requires_manual_review
from pricesync.sync.orchestrator import (
    RunKind,
    RunState,
    StepExecutor,
    SyncOrchestrator,
    SyncRun,
    SyncRunResult,
    SyncTarget,
)
from pricesync.sync.steps import DownloadStepExecutor, UploadStepExecutor

logger = logging.getLogger(__name__)


class SyncTaskRunner:
    """
    Runner for sync runs.

    Runs execute as asyncio tasks on the application loop. Active runs are
    kept in memory by ``run_id``; once a run finishes its result is written
    to ``sync_runs`` and the in-memory entry is dropped.
    """

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        download_executor: Optional[StepExecutor] = None,
        upload_executor: Optional[UploadStepExecutor] = None,
    ):
        self.store = store or RecordStore()
        self.upload_executor = upload_executor or UploadStepExecutor(self.store)
        self.orchestrator = SyncOrchestrator(
            download_executor or DownloadStepExecutor(self.store),
            self.upload_executor,
        )
        self._runs: dict[str, SyncRun] = {}
        self._pending_writes: set[asyncio.Task] = set()

    async def initialize(self):
        logger.info("Sync task runner initialized")

    async def close(self):
        """Cancel active runs and flush pending run records."""
        for run in list(self._runs.values()):
            run.cancel()
        if self._pending_writes:
            await asyncio.gather(*self._pending_writes, return_exceptions=True)
        logger.info("Sync task runner closed")

    # ------------------------------------------------------------------
    # Starting runs
    # ------------------------------------------------------------------

    async def download_targets(self, supplier_ids: Optional[Sequence[str]] = None) -> list[SyncTarget]:
        """Targets for the given suppliers, or every active supplier."""
        if supplier_ids:
            suppliers = [await self.store.get(Supplier, sid) for sid in supplier_ids]
        else:
            suppliers = await self.store.select(
                Supplier, Supplier.is_active.is_(True), order_by=[Supplier.name]
            )
        return [SyncTarget(s.id, s.name) for s in suppliers]

    async def upload_targets(self, marketplace_ids: Optional[Sequence[str]] = None) -> list[SyncTarget]:
        """Targets for the given marketplaces, or every active marketplace."""
        if marketplace_ids:
            marketplaces = [await self.store.get(Marketplace, mid) for mid in marketplace_ids]
        else:
            marketplaces = await self.store.select(
                Marketplace, Marketplace.is_active.is_(True), order_by=[Marketplace.name]
            )
        return [SyncTarget(m.id, m.name) for m in marketplaces]

    async def start_download(
        self,
        supplier_ids: Optional[Sequence[str]] = None,
        trigger: str = "manual",
        user_id: Optional[str] = None,
    ) -> SyncRun:
        targets = await self.download_targets(supplier_ids)
        return self.launch(RunKind.DOWNLOAD, targets, trigger=trigger, user_id=user_id)

    async def start_upload(
        self,
        marketplace_ids: Optional[Sequence[str]] = None,
        product_ids: Optional[Sequence[str]] = None,
        trigger: str = "manual",
        user_id: Optional[str] = None,
    ) -> SyncRun:
        """
        Upload to marketplaces.

        ``product_ids`` restricts the submitted products; an empty selection
        submits nothing.
        """
        targets = await self.upload_targets(marketplace_ids)
        executor = self.upload_executor.for_selection(product_ids) if product_ids is not None else None
        return self.launch(RunKind.UPLOAD, targets, trigger=trigger, user_id=user_id, executor=executor)

    def launch(
        self,
        kind: RunKind,
        targets: Sequence[SyncTarget],
        trigger: str = "manual",
        user_id: Optional[str] = None,
        executor: Optional[StepExecutor] = None,
    ) -> SyncRun:
        """Create a run, track it and schedule it on the running loop."""
        run = self.orchestrator.create_run(
            kind, targets, trigger=trigger, user_id=user_id, executor=executor
        )
        self._runs[run.run_id] = run
        run.on_complete(self._on_run_complete)
        run.start()
        return run

    def _on_run_complete(self, result: SyncRunResult) -> None:
        task = asyncio.create_task(self._record(result))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _record(self, result: SyncRunResult) -> None:
        try:
            await self.store.insert(
                SyncRunRecord,
                {
                    "run_id": result.run_id,
                    "kind": result.kind.value,
                    "trigger": result.trigger,
                    "status": result.state.value,
                    "user_id": result.user_id,
                    "total_steps": len(result.steps),
                    "completed_steps": result.completed_steps,
                    "error_count": result.error_count,
                    "progress_percent": result.progress_percent,
                    "steps": [s.to_dict() for s in result.steps],
                    "started_at": result.started_at,
                    "finished_at": result.finished_at,
                },
            )
        except PriceSyncError as e:
            logger.error(f"Failed to record run {result.run_id[:16]}: {e}")
        finally:
            self._runs.pop(result.run_id, None)

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def get_active(self, run_id: str) -> Optional[SyncRun]:
        return self._runs.get(run_id)

    async def get_run(self, run_id: str) -> Optional[dict]:
        """Live snapshot of an active run, else its stored record."""
        run = self._runs.get(run_id)
        if run is not None:
            return run.snapshot().to_dict()
        record = await self.store.first(SyncRunRecord, SyncRunRecord.run_id == run_id)
        if record is None:
            return None
        return record_to_dict(record)

    def cancel_run(self, run_id: str) -> bool:
        """Request cancellation of an active run. False if unknown or finished."""
        run = self._runs.get(run_id)
        if run is None:
            return False
        return run.cancel()

    def list_active(self) -> list[dict]:
        return [run.snapshot().to_dict() for run in self._runs.values() if not run.is_finished]

    async def recent_runs(self, limit: int = 50) -> list[dict]:
        records = await self.store.select(
            SyncRunRecord, order_by=[SyncRunRecord.created_at.desc()], limit=limit
        )
        return [record_to_dict(r) for r in records]

    # ------------------------------------------------------------------
    # Scheduled work
    # ------------------------------------------------------------------

    async def auto_sync(self):
        """
        Scheduled sync (APScheduler trigger).

        Downloads from every active supplier. Repricing and upload follow only
        when auto mode is enabled; otherwise the downloaded prices wait for
        manual review.
        """
        automation = await self.store.first(AutomationSettings)

        download = await self.start_download(trigger="scheduled")
        result = await download.wait()
        if result.state != RunState.COMPLETED:
            logger.info(f"Scheduled download {result.run_id[:16]} ended {result.state.value}; skipping upload")
            return

        if requires_manual_review(RunKind.DOWNLOAD.value, automation):
            logger.info("Auto mode is off: downloaded prices are waiting for manual review")
            return

        review = PriceReviewService(self.store)
        marketplaces = await self.store.select(Marketplace, Marketplace.is_active.is_(True))
        for marketplace in marketplaces:
            repriced = await review.reprice_with_resolved_rules(marketplace)
            logger.info(f"Repriced {repriced.updated} product(s) for '{marketplace.name}'")

        upload = await self.start_upload(trigger="scheduled")
        await upload.wait()


def record_to_dict(record: SyncRunRecord) -> dict:
    return {
        "run_id": record.run_id,
        "kind": record.kind,
        "state": record.status,
        "trigger": record.trigger,
        "progress_percent": record.progress_percent,
        "completed_steps": record.completed_steps,
        "total_steps": record.total_steps,
        "error_count": record.error_count,
        "steps": record.steps,
        "started_at": record.started_at.isoformat() if record.started_at else None,
        "finished_at": record.finished_at.isoformat() if record.finished_at else None,
    }


# Global task runner instance
task_runner = SyncTaskRunner()
