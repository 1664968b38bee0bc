"""Incremental reader over an append-only log file.

The byte offset already consumed is persisted next to the log, so a restarted
supervisor does not re-process errors it has already seen.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
from typing import Awaitable, Callable

from healer.config import APP_LOG, POINTER_FILE, POLL_INTERVAL

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], "Awaitable[None] | None"]


class LogSubscription:
    """Handle for a running watch loop. Cancel it to stop watching."""

    def __init__(self, task: asyncio.Task):
        self._task = task

    @property
    def active(self) -> bool:
        return not self._task.done()

    def cancel(self) -> None:
        self._task.cancel()

    async def stop(self) -> None:
        """Cancel the loop and wait until it has finished."""
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class LogTailer:
    """Reads the bytes appended to a log since the last read."""

    def __init__(self, log_path: str | None = None, pointer_path: str | None = None):
        self.log_path = log_path or APP_LOG
        self.pointer_path = pointer_path or (
            POINTER_FILE if log_path is None else log_path + ".pointer"
        )

    def ensure_files_exist(self) -> None:
        """Create an empty log and a zero pointer if either is missing."""
        for path, initial in ((self.log_path, ""), (self.pointer_path, "0")):
            if os.path.exists(path):
                continue
            parent = os.path.dirname(path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(initial)

    def read_pointer(self) -> int:
        self.ensure_files_exist()
        try:
            with open(self.pointer_path, encoding="utf-8") as f:
                value = int(f.read().strip() or 0)
        except (OSError, ValueError):
            return 0
        return max(value, 0)

    def write_pointer(self, position: int) -> None:
        with open(self.pointer_path, "w", encoding="utf-8") as f:
            f.write(str(position))

    def read_new_entries(self) -> str | None:
        """Return text appended since the last call, or None if nothing new.

        The pointer is advanced to the file size observed at read time.
        """
        start = self.read_pointer()
        end = os.path.getsize(self.log_path)

        if start > end:
            # Log was truncated or replaced; resume from its current end.
            logger.warning(
                "Log %s shrank below pointer (%d > %d); resetting pointer", self.log_path, start, end
            )
            self.write_pointer(end)
            return None
        if start == end:
            return None

        with open(self.log_path, "rb") as f:
            f.seek(start)
            data = f.read(end - start)

        self.write_pointer(start + len(data))
        return data.decode("utf-8", errors="replace")

    def reset(self) -> list[str]:
        """Remove the log and pointer files. Returns the paths removed."""
        removed = []
        for path in (self.log_path, self.pointer_path):
            if os.path.exists(path):
                os.remove(path)
                removed.append(path)
        return removed

    def watch(self, callback: ChunkCallback, interval: float | None = None) -> LogSubscription:
        """Poll the log on a fixed interval and pass each new chunk to callback.

        Must be called from a running event loop.
        """
        self.ensure_files_exist()
        interval = POLL_INTERVAL if interval is None else interval
        task = asyncio.create_task(self._poll(callback, interval))
        return LogSubscription(task)

    async def _poll(self, callback: ChunkCallback, interval: float) -> None:
        logger.info("Watching %s every %.2fs", self.log_path, interval)
        while True:
            try:
                chunk = self.read_new_entries()
            except OSError as e:
                logger.warning("Could not read %s: %s", self.log_path, e)
                chunk = None

            if chunk:
                try:
                    result = callback(chunk)
                    if inspect.isawaitable(result):
                        await result
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("Log chunk callback failed")

            await asyncio.sleep(interval)
