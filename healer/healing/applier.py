"""Back up a source file, splice a replacement function into it, render previews."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone

from healer.config import PREVIEW_MAX_LINES
from healer.healing.extractor import FunctionSpan

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".bak."


def _utc_stamp(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    stamp = now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
    return stamp.replace(":", "-").replace(".", "-")


def backup_path_for(file_path: str, now: datetime | None = None) -> str:
    """<file_path>.bak.<UTC timestamp with ':' and '.' replaced by '-'>"""
    return f"{file_path}{BACKUP_SUFFIX}{_utc_stamp(now)}"


def write_backup(file_path: str, now: datetime | None = None) -> str:
    """Copy file_path byte-for-byte to a sibling backup file. Returns its path.

    Raises FileExistsError rather than overwrite an existing backup.
    """
    dest = backup_path_for(file_path, now)
    with open(file_path, "rb") as src, open(dest, "xb") as dst:
        shutil.copyfileobj(src, dst)
    logger.info("Backup written: %s", dest)
    return dest


def list_backups(file_path: str) -> list[str]:
    """Backups of file_path, oldest first."""
    directory = os.path.dirname(file_path) or "."
    prefix = os.path.basename(file_path) + BACKUP_SUFFIX
    names = sorted(n for n in os.listdir(directory) if n.startswith(prefix))
    return [os.path.join(directory, n) if os.path.dirname(file_path) else n for n in names]


def replace_function_in_file(
    file_path: str,
    original_lines: list[str],
    start_line: int,
    end_line: int,
    new_code: str,
) -> list[str]:
    """Write original_lines with [start_line, end_line] replaced by new_code.

    The file is swapped in with os.replace, so readers see either the old or
    the new content. Returns the new lines.
    """
    new_lines = original_lines[:start_line] + new_code.split("\n") + original_lines[end_line + 1:]

    directory = os.path.dirname(os.path.abspath(file_path))
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".healer-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write("\n".join(new_lines))
        shutil.copymode(file_path, tmp_path)
        os.replace(tmp_path, file_path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise

    logger.info("Function in %s successfully patched (lines %d-%d)", os.path.basename(file_path), start_line, end_line)
    return new_lines


def apply_patch(file_path: str, original_lines: list[str], span: FunctionSpan, new_code: str) -> str:
    """Back up file_path, then replace span with new_code. Returns the backup path."""
    backup = write_backup(file_path)
    replace_function_in_file(file_path, original_lines, span.start_line, span.end_line, new_code)
    return backup


def _clip(rendered: list[str], max_lines: int) -> list[str]:
    if len(rendered) <= max_lines:
        return rendered
    return rendered[:max_lines] + [f"… ({len(rendered) - max_lines} more lines)"]


def render_patch_preview(
    old_code: str,
    new_code: str,
    start_line: int = 0,
    max_lines: int = PREVIEW_MAX_LINES,
) -> str:
    """Numbered before/after listing of the patched function."""
    old_lines = old_code.split("\n")
    new_lines = new_code.split("\n")
    width = len(str(start_line + max(len(old_lines), len(new_lines))))

    out = [f"--- original ({len(old_lines)} lines)"]
    out += _clip([f"{start_line + i + 1:>{width}} | {line}" for i, line in enumerate(old_lines)], max_lines)
    out.append(f"+++ patched ({len(new_lines)} lines)")
    out += _clip([f"{start_line + i + 1:>{width}} | {line}" for i, line in enumerate(new_lines)], max_lines)
    return "\n".join(out)


def render_mini_diff(old_code: str, new_code: str, max_lines: int = PREVIEW_MAX_LINES) -> str:
    """Compare lines at the same index; not a longest-common-subsequence diff."""
    old_lines = old_code.split("\n")
    new_lines = new_code.split("\n")

    rendered: list[str] = []
    for i in range(max(len(old_lines), len(new_lines))):
        old = old_lines[i] if i < len(old_lines) else None
        new = new_lines[i] if i < len(new_lines) else None
        if old == new:
            continue
        if old is not None:
            rendered.append(f"- {old}")
        if new is not None:
            rendered.append(f"+ {new}")

    if not rendered:
        return "(no changes)"
    return "\n".join(_clip(rendered, max_lines))
