"""Human-readable activity logging for supervisor and patch pipeline actions.

This module provides a separate log that shows what the healer is doing
in a format that's easy to follow while the worker is running.

Format example:
  2026-02-27 20:09:00 | 🚀 WORKER START pid=4121: node server.js
  2026-02-27 20:09:04 | 🔍 ERROR DETECTED: TypeError: Cannot read properties of undefined
  2026-02-27 20:09:04 | 🔧 request_patch | server.js:12
  2026-02-27 20:09:07 | ✅ request_patch → 1 code block (2.91s)
  2026-02-27 20:09:07 | 🩹 PATCH APPLIED server.js [10-14] backup=server.js.bak.2026-...
  2026-02-27 20:09:07 | 🔄 WORKER RESTART pid=4121 (patch applied)
"""

import os
import time
from datetime import datetime

from healer.config import PROJECT_ROOT

ACTIVITY_LOG_FILE = os.path.join(PROJECT_ROOT, "logs", "activity.log")

# Ensure log directory exists
os.makedirs(os.path.dirname(ACTIVITY_LOG_FILE), exist_ok=True)


def _timestamp() -> str:
    """Return current timestamp in readable format."""
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def _truncate(text: str, max_len: int = 500) -> str:
    """Truncate text with ellipsis if too long."""
    if len(text) > max_len:
        return text[:max_len] + "…"
    return text


def _append(line: str) -> None:
    with open(ACTIVITY_LOG_FILE, "a", encoding="utf-8") as f:
        f.write(f"{_timestamp()} | {line}\n")


def log_worker_started(pid: int | None, command: list[str]) -> None:
    """Log worker spawn."""
    _append(f"🚀 WORKER START pid={pid}: {_truncate(' '.join(command), 200)}")


def log_worker_restart(pid: int | None, reason: str) -> None:
    """Log worker restart request."""
    _append(f"🔄 WORKER RESTART pid={pid} ({_truncate(reason, 200)})")


def log_error_detected(message: str) -> None:
    _append(f"🔍 ERROR DETECTED: {_truncate(message, 300)}")


def log_patch_applied(file_path: str, start_line: int, end_line: int, backup_path: str) -> None:
    """Log a patch that was written to disk."""
    _append(f"🩹 PATCH APPLIED {file_path} [{start_line}-{end_line}] backup={backup_path}")


def log_patch_aborted(reason: str, detail: str | None = None) -> None:
    """Log a pipeline run that ended without touching any file."""
    msg = f"❌ PATCH ABORTED: {reason}"
    if detail:
        msg += f" ({_truncate(detail, 300)})"
    _append(msg)


class StepLogger:
    """Context manager for logging pipeline steps with timing."""

    def __init__(self, step_name: str, context: str | None = None):
        self.step_name = step_name
        self.context = context
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        context_str = f" | {_truncate(self.context, 2000)}" if self.context else ""
        _append(f"🔧 {self.step_name}{context_str}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        if exc_type:
            _append(
                f"❌ {self.step_name} → ERROR: "
                f"{_truncate(str(exc_val), 2000)} ({duration:.2f}s)"
            )
        return False  # Don't suppress exceptions

    def log_result(self, result: str) -> None:
        """Log successful result."""
        duration = time.time() - self.start_time
        _append(f"✅ {self.step_name} → {_truncate(result, 3000)} ({duration:.2f}s)")


def log_step(step_name: str, context: str | None = None) -> StepLogger:
    """Context manager for one timed pipeline step.

    with log_step("request_patch", "server.js:12") as step:
        ...
        step.log_result("1 code block")
    """
    return StepLogger(step_name, context)


def get_activity_log_tail(n: int = 50) -> str:
    """Get last n lines of activity log."""
    try:
        with open(ACTIVITY_LOG_FILE, encoding="utf-8") as f:
            lines = f.readlines()
    except FileNotFoundError:
        return "📝 Activity log is empty (no actions yet)"

    tail = lines[-n:] if len(lines) > n else lines
    header = f"📝 Last {len(tail)} of {len(lines)} entries:\n\n"
    return header + "".join(tail)
