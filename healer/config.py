import logging
import os
import shlex

from dotenv import load_dotenv

load_dotenv()

# Project root: directory containing healer/ package (works from any cwd)
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
LOG_FILE = os.path.join(PROJECT_ROOT, "logs", "healer.log")


def _parse_float(value: str, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _parse_list(value: str) -> tuple[str, ...]:
    """Parse comma-separated list into a tuple of non-empty stripped items."""
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


# Worker process supervised by the healer (shell-style string)
# Example: HEALER_WORKER_CMD="node server.js"
WORKER_CMD_STR = os.getenv("HEALER_WORKER_CMD", "node server.js")
WORKER_CMD = shlex.split(WORKER_CMD_STR)

# Runtime-error log written by the worker, and the byte offset already consumed
APP_LOG = os.getenv("HEALER_APP_LOG", "app.log")
POINTER_FILE = os.getenv("HEALER_POINTER_FILE", "") or APP_LOG + ".pointer"

POLL_INTERVAL = _parse_float(os.getenv("HEALER_POLL_INTERVAL", ""), 0.2)
RESTART_GRACE = _parse_float(os.getenv("HEALER_RESTART_GRACE", ""), 0.3)

# Only chunks mentioning one of these error kinds start a patch run
TRIGGER_ERRORS = _parse_list(os.getenv("HEALER_TRIGGER_ERRORS", "TypeError")) or ("TypeError",)

# Preview/diff output is cut after this many lines
PREVIEW_MAX_LINES = int(_parse_float(os.getenv("HEALER_PREVIEW_LINES", ""), 40))

# Patch service: vllm (local), openrouter (cloud) or http (raw chat-completions endpoint)
PATCH_PROVIDER = os.getenv("PATCH_PROVIDER", "openrouter").strip().lower()

VLLM_BASE_URL = os.getenv("VLLM_BASE_URL", "http://localhost:8000/v1")
VLLM_API_KEY = os.getenv("VLLM_API_KEY", "EMPTY")
VLLM_MODEL_NAME = os.getenv("VLLM_MODEL", "") or "openai/gpt-oss-120b"

OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
OPENROUTER_MODEL_NAME = os.getenv("OPENROUTER_MODEL", "") or os.getenv("MODEL", "") or "z-ai/glm-5"

PATCH_API_URL = os.getenv("PATCH_API_URL", "") or os.getenv(
    "OPENROUTER_API_URL", "https://openrouter.ai/api/v1/chat/completions"
)


# Read version from VERSION file
def _get_version() -> str:
    version_file = os.path.join(PROJECT_ROOT, "VERSION")
    try:
        with open(version_file, "r") as f:
            return f.read().strip()
    except FileNotFoundError:
        return "0.0.0"  # Fallback if VERSION file doesn't exist


VERSION = _get_version()


def setup_logging() -> None:
    os.makedirs(os.path.dirname(LOG_FILE), exist_ok=True)
    logging.basicConfig(
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        level=logging.INFO,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(LOG_FILE, encoding="utf-8"),
        ],
    )
