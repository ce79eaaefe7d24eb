"""Utility functions for gemkit."""

import re
import subprocess
import time
from pathlib import Path
from typing import Any


class Timer:
    """Context manager for timing operations."""

    def __init__(self, description: str = "Operation"):
        self.description = description
        self.start_time: float = 0.0
        self.end_time: float = 0.0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.end_time = time.perf_counter()

    @property
    def elapsed(self) -> float:
        """Return elapsed time in seconds."""
        if self.end_time == 0.0 and self.start_time > 0.0:
            return time.perf_counter() - self.start_time
        return self.end_time - self.start_time


def safe_command(cmd: str | list[str], timeout: float | None = None) -> dict[str, Any]:
    """
    Execute a local command and return a structured result.

    Never raises; failures are reported in the result.

    Returns:
        Dict with keys: success, stdout, stderr, returncode, elapsed_s, command
    """
    start_time = time.perf_counter()
    command = cmd if isinstance(cmd, str) else " ".join(cmd)

    try:
        result = subprocess.run(
            cmd,
            shell=isinstance(cmd, str),  # nosec B602
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        return {
            "success": result.returncode == 0,
            "stdout": result.stdout,
            "stderr": result.stderr,
            "returncode": result.returncode,
            "elapsed_s": time.perf_counter() - start_time,
            "command": command,
        }

    except subprocess.TimeoutExpired:
        return {
            "success": False,
            "stdout": "",
            "stderr": f"Command timed out after {timeout}s",
            "returncode": -1,
            "elapsed_s": time.perf_counter() - start_time,
            "command": command,
        }
    except OSError as e:
        return {
            "success": False,
            "stdout": "",
            "stderr": str(e),
            "returncode": -1,
            "elapsed_s": time.perf_counter() - start_time,
            "command": command,
        }


def ensure_directory(path: str | Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def slugify(value: str) -> str:
    """Turn a phase or host name into a filesystem-safe slug."""
    slug = re.sub(r"[^a-zA-Z0-9]+", "-", value).strip("-").lower()
    return slug or "task"
