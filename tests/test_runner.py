"""Tests for the supervision loop and its single-flight patch runs."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from healer.core.orchestrator import AbortReason, PatchResult
from healer.core.runner import RESULT_HISTORY, HealingRunner, patch_once
from healer.log_tailer import LogTailer

ERROR_CHUNK = "TypeError: boom\n    at handler (/app/server.js:12:5)\n"


class GatedPatcher:
    """Patcher whose runs block until released, recording every call."""

    def __init__(self, applied=True):
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.gate = asyncio.Event()
        self.applied = applied

    async def run(self, text):
        self.calls.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await self.gate.wait()
        finally:
            self.in_flight -= 1
        if self.applied:
            return PatchResult(applied=True, file_path="/app/server.js")
        return PatchResult(applied=False, reason=AbortReason.NO_VALID_PATCH)


def _supervisor():
    sup = MagicMock()
    sup.start_child = AsyncMock()
    sup.restart_child = AsyncMock()
    sup.stop = AsyncMock()
    return sup


def _runner(tmp_path, patcher, **kwargs):
    return HealingRunner(
        supervisor=_supervisor(),
        tailer=LogTailer(str(tmp_path / "app.log")),
        patcher=patcher,
        trigger_errors=("TypeError",),
        poll_interval=0.01,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_chunk_without_trigger_is_ignored(tmp_path):
    patcher = GatedPatcher()
    runner = _runner(tmp_path, patcher)

    runner.on_log_chunk("RangeError: not ours\n    at x (/app/a.js:1:1)\n")
    await asyncio.sleep(0)

    assert runner.busy is False
    assert patcher.calls == []


@pytest.mark.asyncio
async def test_applied_patch_restarts_worker(tmp_path):
    patcher = GatedPatcher()
    patcher.gate.set()
    runner = _runner(tmp_path, patcher)

    runner.on_log_chunk(ERROR_CHUNK)
    await runner.wait_idle()

    runner.supervisor.restart_child.assert_awaited_once_with("patch applied")
    assert runner.results[0].applied is True


@pytest.mark.asyncio
async def test_failed_patch_keeps_worker(tmp_path):
    patcher = GatedPatcher(applied=False)
    patcher.gate.set()
    runner = _runner(tmp_path, patcher)

    runner.on_log_chunk(ERROR_CHUNK)
    await runner.wait_idle()

    runner.supervisor.restart_child.assert_not_called()
    assert runner.results[0].reason is AbortReason.NO_VALID_PATCH


@pytest.mark.asyncio
async def test_runs_are_single_flight(tmp_path):
    """Errors arriving mid-run are queued into one follow-up run."""
    patcher = GatedPatcher(applied=False)
    runner = _runner(tmp_path, patcher)

    runner.on_log_chunk(ERROR_CHUNK)
    await asyncio.sleep(0)
    assert runner.busy is True

    runner.on_log_chunk("TypeError: second\n")
    runner.on_log_chunk("TypeError: third\n")
    await asyncio.sleep(0)
    assert len(patcher.calls) == 1

    patcher.gate.set()
    await runner.wait_idle()

    assert patcher.calls == [ERROR_CHUNK, "TypeError: second\nTypeError: third\n"]
    assert patcher.max_in_flight == 1
    assert runner.busy is False


@pytest.mark.asyncio
async def test_crashing_patcher_does_not_stop_runner(tmp_path):
    patcher = MagicMock()
    patcher.run = AsyncMock(side_effect=[RuntimeError("bug"), PatchResult(applied=False)])
    runner = _runner(tmp_path, patcher)

    runner.on_log_chunk(ERROR_CHUNK)
    await runner.wait_idle()
    runner.on_log_chunk(ERROR_CHUNK)
    await runner.wait_idle()

    assert patcher.run.await_count == 2
    assert [r.applied for r in runner.results] == [False, False]


@pytest.mark.asyncio
async def test_end_to_end_log_growth_triggers_patch(tmp_path):
    patcher = GatedPatcher()
    patcher.gate.set()
    runner = _runner(tmp_path, patcher)

    await runner.start()
    try:
        runner.supervisor.start_child.assert_awaited_once()
        with open(runner.tailer.log_path, "a", encoding="utf-8") as f:
            f.write(ERROR_CHUNK)
        for _ in range(200):
            if runner.results:
                break
            await asyncio.sleep(0.01)
        await runner.wait_idle()
    finally:
        await runner.shutdown()

    assert patcher.calls == [ERROR_CHUNK]
    runner.supervisor.restart_child.assert_awaited_once_with("patch applied")
    runner.supervisor.stop.assert_awaited_once()


@pytest.mark.asyncio
async def test_poll_continues_while_run_is_in_flight(tmp_path):
    patcher = GatedPatcher(applied=False)
    runner = _runner(tmp_path, patcher)

    await runner.start()
    try:
        with open(runner.tailer.log_path, "a", encoding="utf-8") as f:
            f.write(ERROR_CHUNK)
        for _ in range(200):
            if patcher.calls:
                break
            await asyncio.sleep(0.01)

        with open(runner.tailer.log_path, "a", encoding="utf-8") as f:
            f.write("TypeError: later\n")
        size = len((ERROR_CHUNK + "TypeError: later\n").encode())
        for _ in range(200):
            if runner.tailer.read_pointer() == size:
                break
            await asyncio.sleep(0.01)

        assert runner.tailer.read_pointer() == size
        assert len(patcher.calls) == 1

        patcher.gate.set()
        await runner.wait_idle()
    finally:
        await runner.shutdown()

    assert patcher.calls == [ERROR_CHUNK, "TypeError: later\n"]


@pytest.mark.asyncio
async def test_patch_once_nothing_new(tmp_path):
    patcher = MagicMock()
    patcher.run = AsyncMock()
    tailer = LogTailer(str(tmp_path / "app.log"))

    assert await patch_once(tailer, patcher) is None
    patcher.run.assert_not_called()


@pytest.mark.asyncio
async def test_patch_once_runs_over_new_text(tmp_path):
    patcher = MagicMock()
    patcher.run = AsyncMock(return_value=PatchResult(applied=False, reason=AbortReason.NO_ERROR_FOUND))
    tailer = LogTailer(str(tmp_path / "app.log"))
    tailer.ensure_files_exist()
    with open(tailer.log_path, "a") as f:
        f.write(ERROR_CHUNK)

    result = await patch_once(tailer, patcher)

    patcher.run.assert_awaited_once_with(ERROR_CHUNK)
    assert result.reason is AbortReason.NO_ERROR_FOUND
    assert await patch_once(tailer, patcher) is None


@pytest.mark.asyncio
async def test_result_history_is_bounded(tmp_path):
    patcher = MagicMock()
    patcher.run = AsyncMock(return_value=PatchResult(applied=False))
    runner = _runner(tmp_path, patcher)

    for _ in range(RESULT_HISTORY + 5):
        runner.on_log_chunk(ERROR_CHUNK)
        await runner.wait_idle()

    assert patcher.run.await_count == RESULT_HISTORY + 5
    assert len(runner.results) == RESULT_HISTORY
