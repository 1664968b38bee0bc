"""One end-to-end detect → patch attempt.

Every step is a short-circuit point: when its precondition fails the run
stops with a specific reason and no file is touched. Nothing raised inside a
run escapes it; failures are logged and reported as a failed PatchResult.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from healer.activity_log import log_error_detected, log_patch_aborted, log_patch_applied, log_step
from healer.config import PREVIEW_MAX_LINES
from healer.core.patch_client import PatchClient
from healer.healing.applier import apply_patch, render_mini_diff, render_patch_preview
from healer.healing.extractor import FunctionSpan, SpanStrategy, extract_function_code
from healer.healing.locator import parse_error_details, read_error_message, read_last_error_frame
from healer.healing.safety import find_violations

logger = logging.getLogger(__name__)

# Marks a candidate as containing at least one code block
BLOCK_MARKER = "{"


class AbortReason(Enum):
    """Why a run stopped without patching, grouped by failure class."""

    # local preconditions
    NO_ERROR_FOUND = "no error found"
    UNPARSABLE_LOCATION = "could not parse error location"
    SOURCE_UNREADABLE = "could not read source file"
    APPLY_FAILED = "could not write patched file"
    # remote / response shape
    SERVICE_UNAVAILABLE = "patch service unavailable"
    NO_VALID_PATCH = "no valid patch"
    # policy
    REJECTED_BY_SAFETY_GATE = "patch rejected by safety gate"


@dataclass
class PatchResult:
    applied: bool
    reason: AbortReason | None = None
    detail: str | None = None
    file_path: str | None = None
    span: FunctionSpan | None = None
    backup_path: str | None = None

    def __bool__(self) -> bool:
        return self.applied


class SurgicalPatcher:
    """Runs ErrorLocator → FunctionExtractor → PatchClient → SafetyGate → PatchApplier."""

    def __init__(
        self,
        client: PatchClient | None = None,
        strategy: SpanStrategy | None = None,
        reporter: Callable[[str], None] | None = print,
        preview_lines: int = PREVIEW_MAX_LINES,
    ):
        self.client = client or PatchClient()
        self.strategy = strategy
        self.reporter = reporter
        self.preview_lines = preview_lines

    def _report(self, text: str) -> None:
        if self.reporter is not None:
            self.reporter(text)

    def _abort(self, reason: AbortReason, detail: str | None = None, **kwargs) -> PatchResult:
        if detail:
            logger.info("Patch not applied: %s (%s)", reason.value, detail)
        else:
            logger.info("Patch not applied: %s", reason.value)
        log_patch_aborted(reason.value, detail)
        return PatchResult(applied=False, reason=reason, detail=detail, **kwargs)

    async def run(self, log_text: str | None) -> PatchResult:
        text = log_text or ""
        frame_line = read_last_error_frame(text)
        error_message = read_error_message(text)
        if not frame_line:
            return self._abort(AbortReason.NO_ERROR_FOUND)
        log_error_detected(error_message or frame_line.strip())

        location = parse_error_details(frame_line)
        if location is None:
            return self._abort(AbortReason.UNPARSABLE_LOCATION, frame_line.strip())

        file_path = location.file_path
        try:
            with open(file_path, encoding="utf-8", newline="") as f:
                lines = f.read().split("\n")
        except (OSError, UnicodeDecodeError) as e:
            return self._abort(AbortReason.SOURCE_UNREADABLE, str(e), file_path=file_path)

        span = extract_function_code(lines, location.line_number - 1, self.strategy, file_path=file_path)
        logger.info(
            "Error at %s:%d, function span lines %d-%d",
            file_path, location.line_number, span.start_line + 1, span.end_line + 1,
        )

        try:
            with log_step("request_patch", f"{file_path}:{location.line_number}") as step:
                candidate = await self.client.get_patch_candidate(error_message, span.source)
                step.log_result("1 code block" if candidate else "no code block")
        except Exception as e:
            logger.exception("Patch request failed")
            return self._abort(AbortReason.SERVICE_UNAVAILABLE, str(e), file_path=file_path, span=span)

        if candidate is None or not candidate.code or BLOCK_MARKER not in candidate.code:
            return self._abort(AbortReason.NO_VALID_PATCH, file_path=file_path, span=span)

        violations = find_violations(candidate.code)
        if violations:
            return self._abort(
                AbortReason.REJECTED_BY_SAFETY_GATE, ", ".join(violations), file_path=file_path, span=span
            )

        self._report(render_patch_preview(span.source, candidate.code, span.start_line, self.preview_lines))
        self._report(render_mini_diff(span.source, candidate.code, self.preview_lines))

        try:
            backup = apply_patch(file_path, lines, span, candidate.code)
        except OSError as e:
            logger.exception("Could not apply patch to %s", file_path)
            return self._abort(AbortReason.APPLY_FAILED, str(e), file_path=file_path, span=span)

        log_patch_applied(file_path, span.start_line, span.end_line, backup)
        return PatchResult(applied=True, file_path=file_path, span=span, backup_path=backup)


async def run_surgical_patch(log_text: str | None, patcher: SurgicalPatcher | None = None) -> bool:
    """Run one detect → patch attempt over log_text; True if a patch was applied."""
    patcher = patcher or SurgicalPatcher()
    try:
        result = await patcher.run(log_text)
    except Exception:
        logger.exception("Patch flow crashed")
        return False
    return result.applied
