'''Supervision loop: worker process + log watch + surgical patch runs.

The log poll keeps running while a patch run waits on the network. Runs are
single-flight: a chunk that arrives mid-run goes into one pending slot
(concatenated with anything already waiting) and is handled by one more run
once the current run finishes, so a source file is never read or rewritten by
two overlapping runs.
'''

from __future__ import annotations

import asyncio
import logging
from collections import deque

from healer.config import POLL_INTERVAL, TRIGGER_ERRORS
from healer.core.orchestrator import PatchResult, SurgicalPatcher
from healer.core.supervisor import Supervisor
from healer.healing.locator import contains_trigger
from healer.log_tailer import LogSubscription, LogTailer

logger = logging.getLogger(__name__)

RESULT_HISTORY = 100


class HealingRunner:
    """Owns the Supervisor, LogTailer and SurgicalPatcher for one worker."""

    def __init__(
        self,
        supervisor: Supervisor | None = None,
        tailer: LogTailer | None = None,
        patcher: SurgicalPatcher | None = None,
        trigger_errors: tuple[str, ...] | None = None,
        poll_interval: float | None = None,
    ):
        self.supervisor = supervisor or Supervisor()
        self.tailer = tailer or LogTailer()
        self.patcher = patcher or SurgicalPatcher()
        self.trigger_errors = tuple(trigger_errors or TRIGGER_ERRORS)
        self.poll_interval = POLL_INTERVAL if poll_interval is None else poll_interval

        self.results: deque[PatchResult] = deque(maxlen=RESULT_HISTORY)
        self._subscription: LogSubscription | None = None
        self._run_task: asyncio.Task | None = None
        self._pending: str | None = None

    @property
    def busy(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    async def start(self) -> None:
        await self.supervisor.start_child()
        self._subscription = self.tailer.watch(self.on_log_chunk, self.poll_interval)

    def on_log_chunk(self, chunk: str) -> None:
        """Log-watch callback. Schedules a patch run without blocking the poll loop."""
        if not contains_trigger(chunk, self.trigger_errors):
            logger.debug("New log text without trigger error (%d chars)", len(chunk))
            return

        if self.busy:
            self._pending = (self._pending or "") + chunk
            logger.info("Patch run in progress; queued new error for the next run")
            return

        logger.info("Detected runtime error, triggering patch...")
        self._run_task = asyncio.create_task(self._drain(chunk))

    async def _drain(self, chunk: str) -> None:
        text: str | None = chunk
        while text is not None:
            self._pending = None
            await self._run_once(text)
            text = self._pending

    async def _run_once(self, text: str) -> PatchResult:
        try:
            result = await self.patcher.run(text)
        except Exception as e:
            logger.exception("Patch flow crashed")
            result = PatchResult(applied=False, detail=str(e))
        self.results.append(result)

        if not result.applied:
            logger.info("Patch not applied")
            return result

        logger.info("Patch applied to %s", result.file_path)
        try:
            await self.supervisor.restart_child("patch applied")
        except OSError:
            logger.exception("Could not restart worker after patch")
        return result

    async def wait_idle(self) -> None:
        """Wait for the in-flight patch run (and its queued follow-up) to finish."""
        if self._run_task is not None:
            await self._run_task

    async def shutdown(self) -> None:
        if self._subscription is not None:
            await self._subscription.stop()
            self._subscription = None
        if self.busy:
            self._run_task.cancel()
            try:
                await self._run_task
            except asyncio.CancelledError:
                pass
        await self.supervisor.stop()

    async def serve(self) -> None:
        """Start supervising and run until cancelled."""
        await self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.shutdown()


async def patch_once(tailer: LogTailer | None = None, patcher: SurgicalPatcher | None = None) -> PatchResult | None:
    """Run the pipeline once over log text not seen yet. None if the log has nothing new."""
    tailer = tailer or LogTailer()
    tailer.ensure_files_exist()
    chunk = tailer.read_new_entries()
    if chunk is None:
        return None
    patcher = patcher or SurgicalPatcher()
    return await patcher.run(chunk)
