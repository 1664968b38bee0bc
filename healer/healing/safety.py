"""Textual deny-list filter for generated patches.

An exact, case-sensitive substring check over the raw patch text. It is a
best-effort guard and not a sandbox: aliasing or indirection gets past it.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

PROCESS_SPAWNING = (
    "child_process",
    "spawn(",
    "execSync",
    "execFile",
    "fork(",
)

FILESYSTEM_ACCESS = (
    "require('fs')",
    'require("fs")',
    "fs/promises",
    "readFileSync",
    "writeFileSync",
    "unlinkSync",
)

NETWORK_ACCESS = (
    "require('http",
    'require("http',
    "fetch(",
    "XMLHttpRequest",
    "net.connect",
    "WebSocket(",
)

ENVIRONMENT_ACCESS = ("process.env",)

DENY_LIST = PROCESS_SPAWNING + FILESYSTEM_ACCESS + NETWORK_ACCESS + ENVIRONMENT_ACCESS


def find_violations(code: str, deny_list: tuple[str, ...] = DENY_LIST) -> list[str]:
    """Return every deny-listed substring present in code."""
    return [entry for entry in deny_list if entry in code]


def is_patch_safe(code: str, deny_list: tuple[str, ...] = DENY_LIST) -> bool:
    violations = find_violations(code, deny_list)
    if violations:
        logger.warning("Patch rejected, contains: %s", ", ".join(violations))
        return False
    return True
