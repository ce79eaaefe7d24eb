"""Local control run started next to the remote workload."""

from __future__ import annotations

import logging
import shlex
import subprocess
import threading
from typing import Protocol

logger = logging.getLogger(__name__)

# Seconds to wait after terminate() before killing the local process
STOP_GRACE_SECONDS = 10.0


class LocalEngine(Protocol):
    """Local benchmark engine contract."""

    def start(self) -> None: ...

    def stop(self) -> None: ...


class NullEngine:
    """Engine used when no local control run is configured."""

    def start(self) -> None:
        logger.debug("No local control run configured")

    def stop(self) -> None:
        pass


class CommandEngine:
    """Runs the local control benchmark as a child process."""

    def __init__(self, command: str | list[str], grace_seconds: float = STOP_GRACE_SECONDS):
        self.argv = shlex.split(command) if isinstance(command, str) else list(command)
        self.grace_seconds = grace_seconds
        self.process: subprocess.Popen | None = None

    def start(self) -> None:
        logger.info("Starting local run: %s", " ".join(self.argv))
        self.process = subprocess.Popen(self.argv)

    def stop(self) -> None:
        process = self.process
        if process is None or process.poll() is not None:
            return

        process.terminate()
        try:
            process.wait(timeout=self.grace_seconds)
        except subprocess.TimeoutExpired:
            logger.warning(
                "Local run did not exit within %.0fs, killing it", self.grace_seconds
            )
            process.kill()
            process.wait()

    @property
    def returncode(self) -> int | None:
        return self.process.poll() if self.process else None


class LocalRunHandle:
    """Idempotent start/stop control over a local engine.

    stop() before start() is a no-op on the engine and prevents any later
    start.
    """

    def __init__(self, engine: LocalEngine | None = None):
        self.engine: LocalEngine = engine if engine is not None else NullEngine()
        self._started = False
        self._stopped = False
        self._lock = threading.Lock()

    @property
    def started(self) -> bool:
        with self._lock:
            return self._started

    def start(self) -> bool:
        """Start the engine once; returns False if already started or stopped."""
        with self._lock:
            if self._started or self._stopped:
                return False
            self._started = True
            self.engine.start()
            return True

    def stop(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            started = self._started

        if started:
            self.engine.stop()
