"""Tests for sequential sync runs."""

import asyncio

import httpx
import pytest

from pricesync.sync.orchestrator import (
    RunKind,
    RunState,
    StepStatus,
    SyncOrchestrator,
    SyncRun,
    SyncTarget,
)


def targets(*names):
    return [SyncTarget(id=name, name=name) for name in names]


@pytest.mark.asyncio
async def test_failed_step_does_not_stop_the_run():
    executed = []

    async def executor(target, report):
        executed.append(target.id)
        if target.id == "t2":
            raise RuntimeError("boom")
        report(1, 1)

    run = SyncRun(RunKind.DOWNLOAD, targets("t1", "t2", "t3"), executor)
    result = await run.execute()

    assert executed == ["t1", "t2", "t3"]
    assert result.state == RunState.COMPLETED
    assert result.progress_percent == 100
    assert [s.status for s in result.steps] == [
        StepStatus.COMPLETED,
        StepStatus.ERROR,
        StepStatus.COMPLETED,
    ]
    assert result.steps[1].error == "boom"
    assert result.error_count == 1


@pytest.mark.asyncio
async def test_network_failure_scenario_fires_completion_once():
    """Suppliers S1 and S2; S2's fetch fails with a network error."""

    async def executor(target, report):
        if target.id == "S2":
            raise httpx.ConnectError("connection refused")
        report(0, 3)
        for i in range(1, 4):
            report(i, 3)

    completions = []
    run = SyncRun(RunKind.DOWNLOAD, targets("S1", "S2"), executor)
    run.on_complete(completions.append)
    run.start()
    result = await run.wait()

    s1, s2 = result.steps
    assert s1.status == StepStatus.COMPLETED
    assert s1.progress == 100
    assert s2.status == StepStatus.ERROR
    assert "connection refused" in s2.error
    assert result.progress_percent == 100
    assert len(completions) == 1
    assert completions[0].run_id == run.run_id


@pytest.mark.asyncio
async def test_steps_never_overlap():
    active = 0
    peak = 0

    async def executor(target, report):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1

    await SyncRun(RunKind.UPLOAD, targets("a", "b", "c"), executor).execute()
    assert peak == 1


@pytest.mark.asyncio
async def test_progress_is_reported_per_step():
    snapshots = []

    async def executor(target, report):
        report(1, 4)
        report(4, 4)

    run = SyncRun(RunKind.DOWNLOAD, targets("a", "b"), executor)
    run.subscribe(lambda snap: snapshots.append((snap.steps[0].progress, snap.progress_percent)))
    await run.execute()

    assert (25, 0) in snapshots
    assert (100, 50) in snapshots
    assert snapshots[-1][1] == 100


@pytest.mark.asyncio
async def test_empty_error_message_uses_exception_name():
    async def executor(target, report):
        raise ValueError()

    result = await SyncRun(RunKind.DOWNLOAD, targets("a"), executor).execute()
    assert result.steps[0].error == "ValueError"


@pytest.mark.asyncio
async def test_cancel_stops_scheduling_further_steps():
    started = []
    release = asyncio.Event()

    async def executor(target, report):
        started.append(target.id)
        await release.wait()

    completions = []
    run = SyncRun(RunKind.DOWNLOAD, targets("a", "b", "c"), executor)
    run.on_complete(completions.append)
    run.start()
    await asyncio.sleep(0)
    while not started:
        await asyncio.sleep(0)

    assert run.cancel() is True
    release.set()
    result = await run.wait()

    assert started == ["a"]
    assert result.state == RunState.CANCELLED
    assert result.steps[0].status == StepStatus.COMPLETED
    assert [s.status for s in result.steps[1:]] == [StepStatus.PENDING, StepStatus.PENDING]
    assert len(completions) == 1
    assert run.cancel() is False


@pytest.mark.asyncio
async def test_cancel_before_start_finishes_immediately():
    async def executor(target, report):
        raise AssertionError("should not run")

    run = SyncRun(RunKind.UPLOAD, targets("a"), executor)
    assert run.cancel() is True
    assert run.state == RunState.CANCELLED
    result = await run.execute()
    assert result.state == RunState.CANCELLED


@pytest.mark.asyncio
async def test_run_without_targets_completes():
    async def executor(target, report):
        raise AssertionError("no steps")

    completions = []
    run = SyncRun(RunKind.DOWNLOAD, [], executor)
    run.on_complete(completions.append)
    result = await run.execute()

    assert result.state == RunState.COMPLETED
    assert result.progress_percent == 100
    assert len(completions) == 1


@pytest.mark.asyncio
async def test_listener_errors_are_contained():
    async def executor(target, report):
        report(1, 1)

    def broken(_):
        raise RuntimeError("listener bug")

    run = SyncRun(RunKind.DOWNLOAD, targets("a"), executor)
    run.subscribe(broken)
    run.on_complete(broken)
    result = await run.execute()
    assert result.state == RunState.COMPLETED


@pytest.mark.asyncio
async def test_late_completion_listener_is_called_immediately():
    async def executor(target, report):
        pass

    run = SyncRun(RunKind.DOWNLOAD, targets("a"), executor)
    await run.execute()

    calls = []
    run.on_complete(calls.append)
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_orchestrator_picks_executor_by_kind():
    seen = []

    async def download(target, report):
        seen.append(("download", target.id))

    async def upload(target, report):
        seen.append(("upload", target.id))

    orchestrator = SyncOrchestrator(download, upload)
    await orchestrator.create_run(RunKind.UPLOAD, targets("m1")).execute()
    await orchestrator.create_run("download", targets("s1")).execute()

    assert seen == [("upload", "m1"), ("download", "s1")]


@pytest.mark.asyncio
async def test_run_cannot_start_twice():
    async def executor(target, report):
        pass

    run = SyncRun(RunKind.DOWNLOAD, targets("a"), executor)
    run.start()
    with pytest.raises(RuntimeError):
        run.start()
    await run.wait()
