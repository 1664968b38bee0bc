"""Worker process lifecycle: start, graceful restart, stop.

The Supervisor exclusively owns at most one current WorkerProcess. A restart
replaces the handle; old handles are only ever moved forward to STOPPED.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum, auto

from healer.activity_log import log_worker_restart, log_worker_started
from healer.config import RESTART_GRACE, WORKER_CMD

logger = logging.getLogger(__name__)

STOP_TIMEOUT = 5.0


class WorkerState(Enum):
    STARTING = auto()
    RUNNING = auto()
    STOPPING = auto()
    STOPPED = auto()


@dataclass
class WorkerProcess:
    process: asyncio.subprocess.Process | None
    state: WorkerState = WorkerState.STARTING

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process is not None else None

    @property
    def exited(self) -> bool:
        return self.process is None or self.process.returncode is not None


class Supervisor:
    """Spawns the worker and replaces it on request.

    restart_child does not wait for the old process to exit: after SIGTERM it
    sleeps a fixed grace delay and starts the replacement. A worker that holds
    a fixed port may still own it when the new one binds.
    """

    def __init__(self, command: list[str] | None = None, grace_delay: float | None = None, cwd: str | None = None):
        self.command = list(WORKER_CMD if command is None else command)
        if not self.command:
            raise ValueError("Worker command is empty")
        self.grace_delay = RESTART_GRACE if grace_delay is None else grace_delay
        self.cwd = cwd
        self._current: WorkerProcess | None = None

    @property
    def current(self) -> WorkerProcess | None:
        return self._current

    @property
    def state(self) -> WorkerState | None:
        return self._current.state if self._current else None

    @property
    def pid(self) -> int | None:
        return self._current.pid if self._current else None

    async def start_child(self) -> WorkerProcess:
        """Spawn a new worker with inherited stdio and environment."""
        process = await asyncio.create_subprocess_exec(
            *self.command,
            cwd=self.cwd,
            env=os.environ.copy(),
        )
        worker = WorkerProcess(process=process, state=WorkerState.RUNNING)
        self._current = worker
        logger.info("Worker started (pid=%s): %s", worker.pid, " ".join(self.command))
        log_worker_started(worker.pid, self.command)
        return worker

    async def restart_child(self, reason: str = "unknown") -> WorkerProcess:
        old = self._current
        if old is None:
            return await self.start_child()

        logger.info("Restarting worker (%s)...", reason)
        log_worker_restart(old.pid, reason)
        old.state = WorkerState.STOPPING
        self._terminate(old)

        await asyncio.sleep(self.grace_delay)
        if not old.exited:
            logger.warning("Worker pid=%s still running after %.2fs grace; starting replacement anyway", old.pid, self.grace_delay)
        old.state = WorkerState.STOPPED
        return await self.start_child()

    async def stop(self, timeout: float = STOP_TIMEOUT) -> None:
        """Terminate the current worker and wait for it, killing it after timeout."""
        worker = self._current
        if worker is None or worker.process is None:
            return
        worker.state = WorkerState.STOPPING
        self._terminate(worker)
        try:
            await asyncio.wait_for(worker.process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Worker pid=%s did not exit after %.1fs; killing", worker.pid, timeout)
            try:
                worker.process.kill()
            except ProcessLookupError:
                pass
            await worker.process.wait()
        worker.state = WorkerState.STOPPED
        logger.info("Worker stopped (pid=%s, exit=%s)", worker.pid, worker.process.returncode)

    @staticmethod
    def _terminate(worker: WorkerProcess) -> None:
        if worker.exited:
            return
        try:
            worker.process.terminate()
        except ProcessLookupError:
            logger.debug("Worker pid=%s already gone", worker.pid)
