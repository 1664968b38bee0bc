"""Tests for heuristic function-span extraction."""

import pytest

from healer.healing.extractor import BraceSpanStrategy, FunctionSpan, extract_function_code

from conftest import SERVER_JS


def _lines(text: str) -> list[str]:
    return text.split("\n")


def test_inline_arrow_callback_span():
    lines = _lines(SERVER_JS)
    span = extract_function_code(lines, 5)  # data.toUpperCase()
    assert (span.start_line, span.end_line) == (3, 7)
    assert span.source.startswith("app.post('/parse'")
    assert span.source.endswith("});")


def test_named_function_span():
    lines = _lines(SERVER_JS)
    span = extract_function_code(lines, 10)
    assert (span.start_line, span.end_line) == (9, 11)
    assert span.line_count == 3


def test_arrow_assignment_span():
    lines = _lines(
        "const a = 1;\n"
        "const handler = async (req) => {\n"
        "  if (req) {\n"
        "    return req.body.value;\n"
        "  }\n"
        "};\n"
        "module.exports = handler;"
    )
    span = extract_function_code(lines, 3)
    assert (span.start_line, span.end_line) == (1, 5)


def test_nearest_start_above_target_wins():
    lines = _lines(
        "function outer() {\n"
        "  function inner() {\n"
        "    return x.y;\n"
        "  }\n"
        "}"
    )
    span = extract_function_code(lines, 2)
    assert (span.start_line, span.end_line) == (1, 3)


def test_no_function_start_falls_back_to_first_line():
    lines = _lines("let x = 1;\nx.y.z;\n")
    span = extract_function_code(lines, 1)
    assert span.start_line == 0
    assert span.end_line == 0  # no braces: balanced immediately


def test_unbalanced_braces_fall_back_to_last_line():
    lines = _lines("function broken() {\n  if (a) {\n    return 1;\n")
    span = extract_function_code(lines, 2)
    assert span.start_line == 0
    assert span.end_line == len(lines) - 1


def test_target_beyond_file_is_clamped():
    lines = _lines(SERVER_JS)
    span = extract_function_code(lines, 500)
    assert 0 <= span.start_line <= span.end_line <= len(lines) - 1


def test_empty_file():
    span = extract_function_code([], 3, file_path="empty.js")
    assert span == FunctionSpan(file_path="empty.js", start_line=0, end_line=0, source="")


@pytest.mark.parametrize(
    "source",
    [
        "",
        "}}}}",
        "{{{{",
        "function a() {}\n}\n{",
        "app.get('/', (q, r) => {\n  r.send('}');\n",
        "\n\n\nfunction f(x) { return x; }\n",
    ],
)
def test_end_never_before_start(source):
    lines = _lines(source)
    for target in range(len(lines) + 1):
        span = extract_function_code(lines, target)
        assert span.end_line >= span.start_line


def test_brace_inside_string_is_counted():
    """Known limitation: braces in string literals shift the end of the span."""
    lines = _lines(
        "function render(user) {\n"
        "  const open = '{';\n"
        "  return open + user.name;\n"
        "}\n"
        "function next() {\n"
        "  return 1;\n"
        "}"
    )
    span = extract_function_code(lines, 2)
    assert span.start_line == 0
    assert span.end_line != 3


def test_brace_inside_comment_is_counted():
    """Known limitation: a closing brace in a comment ends the span early."""
    lines = _lines(
        "function f(a) {\n"
        "  // } stray brace\n"
        "  return a.b;\n"
        "}"
    )
    span = extract_function_code(lines, 2)
    assert span.end_line == 1


def test_custom_strategy_is_used():
    class WholeFile:
        def find_start(self, lines, index):
            return 0

        def find_end(self, lines, start):
            return len(lines) - 1

    lines = _lines(SERVER_JS)
    span = extract_function_code(lines, 5, strategy=WholeFile())
    assert (span.start_line, span.end_line) == (0, len(lines) - 1)


def test_brace_strategy_with_other_markers():
    strategy = BraceSpanStrategy(open_marker="begin", close_marker="end;")
    lines = _lines("function f() begin\n  x := 1\nend;\nrest")
    span = extract_function_code(lines, 1, strategy=strategy)
    assert (span.start_line, span.end_line) == (0, 2)
