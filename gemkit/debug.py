"""Debug utilities for gemkit."""

import logging
import os

logger = logging.getLogger("gemkit.debug")

# Global debug state
_debug_enabled = False


def set_debug(enabled: bool) -> None:
    """Set global debug state."""
    global _debug_enabled
    _debug_enabled = enabled

    # Also set environment variable for child processes
    if enabled:
        os.environ["GEMKIT_DEBUG"] = "1"
    else:
        os.environ.pop("GEMKIT_DEBUG", None)


def is_debug_enabled() -> bool:
    """Check if debug mode is enabled."""
    global _debug_enabled

    # Check environment variable if not set via set_debug()
    if not _debug_enabled and os.getenv("GEMKIT_DEBUG", "").lower() in (
        "1",
        "true",
        "yes",
    ):
        _debug_enabled = True

    return _debug_enabled


def debug_log_command(host: str, command: str, timeout: float | None = None) -> None:
    """Log command execution details if debug mode is enabled."""
    if is_debug_enabled():
        if timeout:
            logger.debug("[%s] Command (%ss): %s", host, timeout, command)
        else:
            logger.debug("[%s] Command: %s", host, command)


def debug_log_result(
    host: str, success: bool, stdout: str | None = None, stderr: str | None = None
) -> None:
    """Log command result details if debug mode is enabled."""
    if is_debug_enabled():
        logger.debug("[%s] Command success: %s", host, success)
        if stdout:
            logger.debug("[%s] Stdout: %s", host, stdout)
        if stderr:
            logger.debug("[%s] Stderr: %s", host, stderr)
