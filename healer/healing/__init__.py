"""Detection-to-patch building blocks.

This module provides the pieces one surgical patch run is made of:
- Error location (most recent message + call-site frame from log text)
- Function span extraction (line/brace heuristic, pluggable)
- Safety gate (deny-list filter over generated code)
- Patch application (backup, splice, preview, mini diff)

Architecture:
    ErrorLocator → finds file/line of the crash
    FunctionExtractor → cuts the enclosing function out of current source
    SafetyGate → rejects candidates touching sensitive capabilities
    PatchApplier → backs up and rewrites the file
"""

from healer.healing.applier import (
    apply_patch,
    render_mini_diff,
    render_patch_preview,
    replace_function_in_file,
    write_backup,
)
from healer.healing.extractor import BraceSpanStrategy, FunctionSpan, SpanStrategy, extract_function_code
from healer.healing.locator import (
    ErrorLocation,
    ErrorRecord,
    locate_error,
    parse_error_details,
    read_error_message,
    read_last_error_frame,
)
from healer.healing.safety import DENY_LIST, find_violations, is_patch_safe

__all__ = [
    "ErrorLocation",
    "ErrorRecord",
    "locate_error",
    "parse_error_details",
    "read_error_message",
    "read_last_error_frame",
    "BraceSpanStrategy",
    "FunctionSpan",
    "SpanStrategy",
    "extract_function_code",
    "DENY_LIST",
    "find_violations",
    "is_patch_safe",
    "apply_patch",
    "render_mini_diff",
    "render_patch_preview",
    "replace_function_in_file",
    "write_backup",
]
