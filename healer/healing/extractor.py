"""Heuristic function-span detection around a target source line.

This is a line/brace heuristic for JavaScript-style sources, not a parser.
Braces inside string literals or comments are counted like any other brace,
so spans can come out too short or too long in those cases.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol

# function foo(   |   function (   |   async function foo(
NAMED_FUNCTION_RE = re.compile(r"function\s*\w*\s*\(")
# const foo = (a, b) => {   |   foo = async x => {
ARROW_ASSIGNMENT_RE = re.compile(r"=\s*\(?.*\)?\s*=>\s*\{")
# app.post('/parse', (req, res) => {
ARROW_CALLBACK_RE = re.compile(r"\w+\.\w+\(.*,\s*\(?.*\)?\s*=>\s*\{")

FUNCTION_START_PATTERNS = (NAMED_FUNCTION_RE, ARROW_ASSIGNMENT_RE, ARROW_CALLBACK_RE)


@dataclass
class FunctionSpan:
    """Inclusive 0-based line range believed to hold one function."""

    file_path: str
    start_line: int
    end_line: int
    source: str

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1


class SpanStrategy(Protocol):
    def find_start(self, lines: list[str], index: int) -> int: ...

    def find_end(self, lines: list[str], start: int) -> int: ...


class BraceSpanStrategy:
    """Start at the nearest function-looking line above, end where braces balance."""

    def __init__(self, start_patterns=FUNCTION_START_PATTERNS, open_marker: str = "{", close_marker: str = "}"):
        self.start_patterns = start_patterns
        self.open_marker = open_marker
        self.close_marker = close_marker

    def find_start(self, lines: list[str], index: int) -> int:
        for i in range(index, -1, -1):
            line = lines[i].strip()
            if any(pattern.search(line) for pattern in self.start_patterns):
                return i
        return 0

    def find_end(self, lines: list[str], start: int) -> int:
        depth = 0
        for i in range(start, len(lines)):
            line = lines[i]
            depth += line.count(self.open_marker)
            depth -= line.count(self.close_marker)
            if depth == 0:
                return i
        return len(lines) - 1


DEFAULT_STRATEGY = BraceSpanStrategy()


def extract_function_code(
    lines: list[str],
    target_index: int,
    strategy: SpanStrategy | None = None,
    file_path: str = "",
) -> FunctionSpan:
    """Return the span of the function enclosing lines[target_index].

    Never fails: with no recognizable start the span begins at line 0, and
    with unbalanced braces it runs to the last line.
    """
    strategy = strategy or DEFAULT_STRATEGY
    if not lines:
        return FunctionSpan(file_path=file_path, start_line=0, end_line=0, source="")

    index = min(max(target_index, 0), len(lines) - 1)
    start = strategy.find_start(lines, index)
    end = max(strategy.find_end(lines, start), start)
    return FunctionSpan(
        file_path=file_path,
        start_line=start,
        end_line=end,
        source="\n".join(lines[start:end + 1]),
    )
