"""Per-command output capture and runtime version parsing."""

from __future__ import annotations

import io
import logging
import re
import sys

logger = logging.getLogger(__name__)

# First double-quoted token, e.g. `openjdk version "17.0.1" 2021-10-19`
_QUOTED_VERSION = re.compile(r'"\s*(\d+)')


class CapturedResponse:
    """Output buffers for one command on one node.

    Written by exactly one remote operation and read only after that
    operation's phase has resolved.
    """

    def __init__(self, capture_stdout: bool = True):
        self.capture_stdout = capture_stdout
        self._stdout = io.StringIO()
        self._stderr = io.StringIO()

    def write_stdout(self, text: str) -> None:
        if self.capture_stdout and text:
            self._stdout.write(text)

    def write_stderr(self, text: str) -> None:
        if text:
            self._stderr.write(text)

    @property
    def stdout(self) -> str:
        return self._stdout.getvalue()

    @property
    def stderr(self) -> str:
        return self._stderr.getvalue()

    def __repr__(self) -> str:
        return (
            f"CapturedResponse(capture_stdout={self.capture_stdout}, "
            f"stdout={len(self.stdout)} chars, stderr={len(self.stderr)} chars)"
        )


def create_responses(count: int, capture_stdout: bool) -> list[CapturedResponse]:
    """Create one response buffer per node."""
    return [CapturedResponse(capture_stdout) for _ in range(count)]


def parse_version(text: str) -> int:
    """Extract the major version from version-query output.

    Takes the integer before the first '.' of the first double-quoted token.
    Empty output, or output without a quoted version, yields sys.maxsize so
    it can never be reported as too old.
    """
    if not text or not text.strip():
        return sys.maxsize

    quote = text.find('"')
    if quote < 0:
        logger.debug("No quoted version found in output: %r", text[:200])
        return sys.maxsize

    match = _QUOTED_VERSION.match(text, quote)
    if match is None:
        logger.debug("Quoted token is not a version: %r", text[quote : quote + 50])
        return sys.maxsize
    return int(match.group(1))


def is_version_compatible(local_version: int, response: CapturedResponse) -> bool:
    """A node is incompatible when either capture reports an older major version."""
    return not (
        local_version > parse_version(response.stdout)
        or local_version > parse_version(response.stderr)
    )
