"""Pytest configuration.

Activity log entries go to a per-test file instead of logs/activity.log, and
the process is force-exited after the session so background threads started
by pydantic-ai dependencies cannot hang interpreter shutdown.
"""

import os

import pytest


@pytest.fixture(autouse=True)
def _activity_log(tmp_path, monkeypatch):
    from healer import activity_log

    path = tmp_path / "activity.log"
    monkeypatch.setattr(activity_log, "ACTIVITY_LOG_FILE", str(path))
    return path


SERVER_JS = """\
const express = require('express');
const app = express();

app.post('/parse', (req, res) => {
  const data = req.body.data;
  const upper = data.toUpperCase();
  res.send({ result: upper });
});

function startServer() {
  app.listen(3000);
}
"""


@pytest.fixture
def server_js(tmp_path):
    """A worker source file whose /parse handler spans lines 4-8 (1-based)."""
    path = tmp_path / "server.js"
    path.write_text(SERVER_JS, encoding="utf-8")
    return path


def pytest_sessionfinish(session, exitstatus):
    """Exit process immediately after test session to avoid shutdown hang."""
    import sys

    sys.stdout.flush()
    sys.stderr.flush()
    os._exit(exitstatus)
