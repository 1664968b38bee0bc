"""Command-line interface: supervise a worker, run one patch pass, housekeeping."""

import argparse
import asyncio
import logging

from healer.activity_log import get_activity_log_tail
from healer.config import (
    APP_LOG,
    LOG_FILE,
    PATCH_PROVIDER,
    POLL_INTERVAL,
    RESTART_GRACE,
    TRIGGER_ERRORS,
    VERSION,
    WORKER_CMD,
    setup_logging,
)
from healer.log_tailer import LogTailer

logger = logging.getLogger(__name__)


def _builtin_status() -> str:
    """Return a concise status string (no network, no worker spawn)."""
    return (
        f"Healer status: v{VERSION}\n"
        f"Worker command: {' '.join(WORKER_CMD)}\n"
        f"Watched log: {APP_LOG} (poll {POLL_INTERVAL:.2f}s)\n"
        f"Trigger errors: {', '.join(TRIGGER_ERRORS)}\n"
        f"Patch provider: {PATCH_PROVIDER}\n"
        f"Restart grace: {RESTART_GRACE:.2f}s\n\n"
        "Usage: python -m healer run [-- worker command...]"
    )


def _make_tailer(log_path: str | None) -> LogTailer:
    return LogTailer(log_path) if log_path else LogTailer()


async def _supervise(command: list[str], log_path: str | None, provider: str | None) -> None:
    from healer.core.orchestrator import SurgicalPatcher
    from healer.core.patch_client import PatchClient
    from healer.core.runner import HealingRunner
    from healer.core.supervisor import Supervisor

    runner = HealingRunner(
        supervisor=Supervisor(command or None),
        tailer=_make_tailer(log_path),
        patcher=SurgicalPatcher(client=PatchClient(provider=provider)),
    )
    await runner.serve()


async def _patch_once(log_path: str | None, provider: str | None) -> int:
    from healer.core.orchestrator import SurgicalPatcher
    from healer.core.patch_client import PatchClient
    from healer.core.runner import patch_once

    result = await patch_once(
        _make_tailer(log_path),
        SurgicalPatcher(client=PatchClient(provider=provider)),
    )
    if result is None:
        print("No new log entries.")
        return 0
    if result.applied:
        print(f"✅ Patch applied to {result.file_path} (backup: {result.backup_path})")
        return 0
    reason = result.reason.value if result.reason else "patch flow crashed"
    print(f"❌ Patch not applied: {reason}")
    return 1


def _reset(log_path: str | None) -> None:
    removed = _make_tailer(log_path).reset()
    if removed:
        print(f"Reset: {' + '.join(removed)} removed.")
    else:
        print("Reset: nothing to remove.")


def _show_backups(file_path: str) -> None:
    from healer.healing.applier import list_backups

    try:
        backups = list_backups(file_path)
    except FileNotFoundError:
        print(f"Directory not found for {file_path}")
        return
    if not backups:
        print(f"No backups for {file_path}.")
        return
    print("Backups (oldest first):")
    for path in backups:
        print(f"  {path}")


def _show_logs(n: int) -> None:
    try:
        with open(LOG_FILE) as f:
            lines = f.readlines()
    except FileNotFoundError:
        print(f"Log file not found: {LOG_FILE}")
        return
    tail = lines[-n:] if len(lines) > n else lines
    print(f"--- last {len(tail)} of {len(lines)} log entries ---")
    print("".join(tail), end="")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="python -m healer",
        description=f"Healer v{VERSION}: self-healing runtime supervisor",
    )
    sub = parser.add_subparsers(dest="command")

    run_parser = sub.add_parser("run", help="Supervise a worker and patch it on runtime errors")
    run_parser.add_argument("--log", help="Runtime-error log written by the worker")
    run_parser.add_argument("--provider", choices=["vllm", "openrouter", "http"], help="Patch service provider")
    run_parser.add_argument("worker", nargs=argparse.REMAINDER, help="Worker command (default: HEALER_WORKER_CMD)")

    patch_parser = sub.add_parser("patch", help="Run one patch pass over new log entries")
    patch_parser.add_argument("--log", help="Runtime-error log")
    patch_parser.add_argument("--provider", choices=["vllm", "openrouter", "http"], help="Patch service provider")

    reset_parser = sub.add_parser("reset", help="Remove the runtime-error log and its pointer")
    reset_parser.add_argument("--log", help="Runtime-error log")

    backups_parser = sub.add_parser("backups", help="List backups of a patched file")
    backups_parser.add_argument("file", help="Source file")

    sub.add_parser("status", help="Show healer configuration")

    logs_parser = sub.add_parser("logs", help="Show log tail")
    logs_parser.add_argument("n", type=int, nargs="?", default=30, help="Number of lines")

    activity_parser = sub.add_parser("activity", help="Show activity log tail")
    activity_parser.add_argument("n", type=int, nargs="?", default=30, help="Number of lines")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "run":
        setup_logging()
        worker = args.worker[1:] if args.worker[:1] == ["--"] else args.worker
        try:
            asyncio.run(_supervise(worker, args.log, args.provider))
        except KeyboardInterrupt:
            logger.info("Supervisor interrupted, exiting")
        return 0
    if args.command == "patch":
        setup_logging()
        return asyncio.run(_patch_once(args.log, args.provider))
    if args.command == "reset":
        _reset(args.log)
    elif args.command == "backups":
        _show_backups(args.file)
    elif args.command == "status":
        print(_builtin_status())
    elif args.command == "logs":
        _show_logs(args.n)
    elif args.command == "activity":
        print(get_activity_log_tail(args.n))
    else:
        parser.print_help()
    return 0
