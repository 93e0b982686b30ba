"""Sequential, failure-isolating batch sync runs with progress tracking.

A run owns one step per target entity (a supplier for downloads, a
marketplace for uploads). Steps execute strictly one after another; an
exception inside a step marks only that step as failed and the run moves
on. Cancellation is checked between steps and never interrupts a step in
flight. Every run resolves exactly once to a ``SyncRunResult``.
"""

import asyncio
import time
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence
from uuid import uuid4

from pricesync import metrics
from pricesync.db.models import utcnow
from pricesync.errors import PriceSyncError
from pricesync.logging_config import get_logger


class RunKind(str, Enum):
    DOWNLOAD = "download"
    UPLOAD = "upload"


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class StepStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STEP_STATUSES = (StepStatus.COMPLETED, StepStatus.ERROR)


@dataclass(frozen=True)
class SyncTarget:
    """An entity a step works on."""

    id: str
    name: str


@dataclass
class SyncStep:
    """Progress and outcome of one target within a run."""

    id: str
    display_name: str
    status: StepStatus = StepStatus.PENDING
    progress: int = 0
    error: Optional[str] = None
    items_total: int = 0
    items_done: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STEP_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "status": self.status.value,
            "progress": self.progress,
            "error": self.error,
            "items_total": self.items_total,
            "items_done": self.items_done,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class SyncRunResult:
    """Snapshot of a run. Terminal once ``state`` is completed or cancelled."""

    run_id: str
    kind: RunKind
    state: RunState
    trigger: str
    steps: list[SyncStep]
    progress_percent: float
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    user_id: Optional[str] = None

    @property
    def completed_steps(self) -> int:
        return sum(1 for s in self.steps if s.is_terminal)

    @property
    def error_count(self) -> int:
        return sum(1 for s in self.steps if s.status == StepStatus.ERROR)

    @property
    def is_finished(self) -> bool:
        return self.state in (RunState.COMPLETED, RunState.CANCELLED)

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "kind": self.kind.value,
            "state": self.state.value,
            "trigger": self.trigger,
            "progress_percent": self.progress_percent,
            "completed_steps": self.completed_steps,
            "total_steps": len(self.steps),
            "error_count": self.error_count,
            "steps": [s.to_dict() for s in self.steps],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


# report(done, total) updates intra-step progress
ProgressReporter = Callable[[int, int], None]
StepExecutor = Callable[[SyncTarget, ProgressReporter], Awaitable[None]]
RunListener = Callable[[SyncRunResult], None]

STEP_TITLES = {
    RunKind.DOWNLOAD: "Download prices from supplier {name}",
    RunKind.UPLOAD: "Upload prices to marketplace {name}",
}


class SyncRun:
    """
    One download or upload run.

    Lifecycle: idle -> running -> completed, or cancelled when a cancel
    request stopped it before every step finished. Data committed by
    finished steps stays committed.
    """

    def __init__(
        self,
        kind: RunKind,
        targets: Sequence[SyncTarget],
        executor: StepExecutor,
        trigger: str = "manual",
        user_id: Optional[str] = None,
        run_id: Optional[str] = None,
    ):
        self.run_id = run_id or uuid4().hex
        self.kind = RunKind(kind)
        self.trigger = trigger
        self.user_id = user_id
        self.log = get_logger(__name__, run_id=self.run_id, run_kind=self.kind.value)
        self.state = RunState.IDLE
        self.started_at: Optional[datetime] = None
        self.finished_at: Optional[datetime] = None

        self._targets = list(targets)
        self._executor = executor
        self.steps = [
            SyncStep(id=t.id, display_name=STEP_TITLES[self.kind].format(name=t.name))
            for t in self._targets
        ]
        self._cancel_requested = False
        self._task: Optional[asyncio.Task] = None
        self._result: Optional[asyncio.Future] = None
        self._progress_listeners: list[RunListener] = []
        self._completion_listeners: list[RunListener] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def progress_percent(self) -> float:
        """Finished steps over all steps; failed steps count as finished."""
        if not self.steps:
            return 100.0 if self.state == RunState.COMPLETED else 0.0
        done = sum(1 for s in self.steps if s.is_terminal)
        return (done / len(self.steps)) * 100

    @property
    def is_finished(self) -> bool:
        return self.state in (RunState.COMPLETED, RunState.CANCELLED)

    def snapshot(self) -> SyncRunResult:
        return SyncRunResult(
            run_id=self.run_id,
            kind=self.kind,
            state=self.state,
            trigger=self.trigger,
            steps=[replace(s) for s in self.steps],
            progress_percent=self.progress_percent,
            started_at=self.started_at,
            finished_at=self.finished_at,
            user_id=self.user_id,
        )

    def subscribe(self, listener: RunListener) -> None:
        """Call ``listener`` with a snapshot on every progress change."""
        self._progress_listeners.append(listener)

    def on_complete(self, listener: RunListener) -> None:
        """Call ``listener`` once with the terminal result."""
        if self.is_finished:
            self._call(listener, self.snapshot())
            return
        self._completion_listeners.append(listener)

    def _call(self, listener: RunListener, result: SyncRunResult) -> None:
        try:
            listener(result)
        except Exception:
            self.log.exception(f"Run listener failed (run_id: {self.run_id[:16]})")

    def _notify_progress(self) -> None:
        if not self._progress_listeners:
            return
        snapshot = self.snapshot()
        for listener in self._progress_listeners:
            self._call(listener, snapshot)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self) -> asyncio.Task:
        """Schedule the run on the running event loop."""
        if self._task is not None or self.state != RunState.IDLE:
            raise RuntimeError(f"run {self.run_id} already started")
        self._ensure_future()
        self._task = asyncio.create_task(self.execute(), name=f"sync-{self.kind.value}-{self.run_id[:8]}")
        return self._task

    def cancel(self) -> bool:
        """
        Request cancellation.

        Returns False when the run already finished. A step in flight runs to
        completion; no further steps are started.
        """
        if self.is_finished:
            return False
        self._cancel_requested = True
        self.log.info(f"Cancel requested for {self.kind.value} run {self.run_id[:16]}")
        if self.state == RunState.IDLE and self._task is None:
            self._finish(RunState.CANCELLED)
        return True

    async def wait(self) -> SyncRunResult:
        """Wait for the terminal result."""
        return await asyncio.shield(self._ensure_future())

    def _ensure_future(self) -> asyncio.Future:
        if self._result is None:
            self._result = asyncio.get_running_loop().create_future()
            if self.is_finished:
                self._result.set_result(self.snapshot())
        return self._result

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self) -> SyncRunResult:
        """Run every step in order and return the terminal result."""
        if self.is_finished:
            return self.snapshot()
        self._ensure_future()

        self.state = RunState.RUNNING
        self.started_at = utcnow()
        metrics.record_run_started(self.kind.value)
        self.log.info(
            f"Starting {self.kind.value} run {self.run_id[:16]} "
            f"({len(self.steps)} step(s), trigger: {self.trigger})"
        )
        self._notify_progress()

        try:
            for target, step in zip(self._targets, self.steps):
                if self._cancel_requested:
                    break
                await self._run_step(target, step)
                self._notify_progress()
        except asyncio.CancelledError:
            self._finish(RunState.CANCELLED)
            raise

        if self._cancel_requested and not all(s.is_terminal for s in self.steps):
            self._finish(RunState.CANCELLED)
        else:
            self._finish(RunState.COMPLETED)
        return self.snapshot()

    async def _run_step(self, target: SyncTarget, step: SyncStep) -> None:
        step.status = StepStatus.PROCESSING
        step.started_at = utcnow()
        self._notify_progress()
        started = time.monotonic()

        def report(done: int, total: int) -> None:
            step.items_done = done
            step.items_total = total
            step.progress = min(100, int(done * 100 / total)) if total > 0 else 0
            self._notify_progress()

        try:
            await self._executor(target, report)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            step.status = StepStatus.ERROR
            step.error = str(e) or type(e).__name__
            self.log.warning(
                f"{self.kind.value} step '{target.name}' failed (run_id: {self.run_id[:16]}): {step.error}"
            )
            if not isinstance(e, PriceSyncError):
                self.log.debug("Unexpected step failure", exc_info=True)
        else:
            step.status = StepStatus.COMPLETED
            self.log.info(
                f"{self.kind.value} step '{target.name}' completed "
                f"({step.items_done}/{step.items_total} items)"
            )
        finally:
            step.finished_at = utcnow()
            if step.is_terminal:
                step.progress = 100
                metrics.record_step(self.kind.value, step.status.value, time.monotonic() - started)

    def _finish(self, state: RunState) -> None:
        if self.is_finished:
            return
        was_running = self.state == RunState.RUNNING
        self.state = state
        self.finished_at = utcnow()
        if was_running:
            metrics.record_run_finished(self.kind.value, state.value)

        result = self.snapshot()
        self.log.info(
            f"{self.kind.value} run {self.run_id[:16]} {state.value}: "
            f"{result.completed_steps}/{len(self.steps)} steps, {result.error_count} error(s)"
        )
        if self._result is not None and not self._result.done():
            self._result.set_result(result)
        listeners, self._completion_listeners = self._completion_listeners, []
        for listener in listeners:
            self._call(listener, result)


class SyncOrchestrator:
    """Creates runs wired to the step executor for their kind."""

    def __init__(self, download_executor: StepExecutor, upload_executor: StepExecutor):
        self._executors = {
            RunKind.DOWNLOAD: download_executor,
            RunKind.UPLOAD: upload_executor,
        }

    def create_run(
        self,
        kind: RunKind,
        targets: Sequence[SyncTarget],
        trigger: str = "manual",
        user_id: Optional[str] = None,
        executor: Optional[StepExecutor] = None,
    ) -> SyncRun:
        kind = RunKind(kind)
        return SyncRun(
            kind,
            targets,
            executor or self._executors[kind],
            trigger=trigger,
            user_id=user_id,
        )
