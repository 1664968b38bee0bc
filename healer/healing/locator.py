"""Locate the most recent runtime error and its call site in new log text.

Two independent scans run over the same chunk:
- the error *message* is the last error-looking line (reverse scan)
- the error *frame* is the first "at ..." line after the first error line (forward scan)

When several errors are interleaved in one chunk the two scans can refer to
different occurrences. This is a known limitation of the heuristic.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# Lines starting with one of these are treated as error messages
KNOWN_ERROR_KINDS = ("TypeError", "Error")

ERROR_LINE_RE = re.compile(r"^\w+Error:")
ERROR_KIND_RE = re.compile(r"^(\w*Error)\b")
FRAME_LINE_RE = re.compile(r"^\s+at\s")
FRAME_LOCATION_RE = re.compile(r"at\s+(?:.*\s)?\(?([^\s()]+):(\d+):(\d+)")


@dataclass
class ErrorLocation:
    """Source location of a stack frame (line_number is 1-based)."""

    file_path: str
    line_number: int
    column: int = 0


@dataclass
class ErrorRecord:
    """Error kind, message and the frames that follow it in the log."""

    kind: str
    message: str
    frames: list[ErrorLocation] = field(default_factory=list)


def _split_lines(text: str) -> list[str]:
    return text.strip().split("\n") if text else []


def is_error_line(line: str) -> bool:
    return line.startswith(KNOWN_ERROR_KINDS) or bool(ERROR_LINE_RE.match(line))


def read_error_message(text: str) -> str | None:
    """Return the most recent error message line, or None."""
    for line in reversed(_split_lines(text)):
        if is_error_line(line):
            return line
    return None


def read_last_error_frame(text: str) -> str | None:
    """Return the first stack-frame line following an error line, or None."""
    lines = _split_lines(text)
    for i, line in enumerate(lines):
        if "Error" not in line:
            continue
        for candidate in lines[i + 1:]:
            if FRAME_LINE_RE.match(candidate):
                return candidate
    return None


def parse_error_details(frame_line: str | None) -> ErrorLocation | None:
    """Extract the trailing <path>:<line>:<column> from a frame line."""
    if not frame_line:
        return None
    match = FRAME_LOCATION_RE.search(frame_line)
    if not match:
        return None
    return ErrorLocation(
        file_path=match.group(1),
        line_number=int(match.group(2)),
        column=int(match.group(3)),
    )


def error_kind(message: str) -> str:
    match = ERROR_KIND_RE.match(message)
    return match.group(1) if match else "Error"


def locate_error(text: str) -> ErrorRecord | None:
    """Bundle the most recent message with the frames after the first error line."""
    message = read_error_message(text)
    if message is None:
        return None

    frames: list[ErrorLocation] = []
    lines = _split_lines(text)
    for i, line in enumerate(lines):
        if "Error" in line:
            for candidate in lines[i + 1:]:
                if not FRAME_LINE_RE.match(candidate):
                    if frames:
                        break
                    continue
                location = parse_error_details(candidate)
                if location:
                    frames.append(location)
            break

    return ErrorRecord(kind=error_kind(message), message=message, frames=frames)


def contains_trigger(text: str, kinds: tuple[str, ...] | list[str]) -> bool:
    """True if the text mentions any of the trigger error kinds."""
    return any(kind in text for kind in kinds)
