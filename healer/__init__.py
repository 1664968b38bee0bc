"""Self-healing runtime supervisor.

Runs a worker process, watches its runtime-error log and, when a configured
error kind shows up:
- locates the crashing function in source
- asks an LLM patch service for a replacement
- filters the candidate through a deny-list
- backs up the file, applies the patch and restarts the worker
"""

from healer.config import VERSION

__all__ = ["VERSION"]
