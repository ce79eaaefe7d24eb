"""Per-machine handle used by the orchestrator."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Executor, Future
from typing import Any

from ..config import NodeConfig
from ..errors import GemError, NodeStoppedError, RemoteCommandError
from .channel import RemoteChannel
from .response import CapturedResponse

logger = logging.getLogger(__name__)


class RemoteNode:
    """Wraps one remote channel session; every operation runs on the shared pool."""

    def __init__(self, config: NodeConfig, executor: Executor, channel: RemoteChannel):
        self.config = config
        self._executor = executor
        self._channel = channel
        self._session: Any = None
        self._connected = False
        self._stopped = False
        self._lock = threading.Lock()

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def name(self) -> str:
        return self.config.display_name

    @property
    def remote_dir(self) -> str:
        return self.config.dir

    @property
    def stopped(self) -> bool:
        with self._lock:
            return self._stopped

    def create_session(self, timeout: float | None) -> Future[None]:
        """Open the remote session, failing if it is not up within ``timeout``."""
        return self._submit(self._create_session, timeout)

    def run_command(
        self, command: str, timeout: float | None, response: CapturedResponse
    ) -> Future[CapturedResponse]:
        """Run one command line; non-zero exit status fails the future."""
        return self._submit(self._run_command, command, timeout, response)

    def copy_directory(self, local_path: str, remote_path: str) -> Future[None]:
        """Recursively copy a local directory tree into ``remote_path``."""
        return self._submit(self._copy_directory, local_path, remote_path)

    def stop(self) -> None:
        """Force-terminate the session. Safe to repeat and to race with commands."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            session = self._session

        if session is not None:
            logger.debug("Terminating session to %s", self.host)
            self._channel.terminate(session)

    def close(self) -> None:
        """Close the session gracefully; no further operations are accepted."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            session = self._session

        if session is not None:
            self._channel.close(session)

    # Internal helpers -------------------------------------------------

    def _submit(self, fn: Callable[..., Any], *args: Any) -> Future[Any]:
        if self.stopped:
            return _failed(NodeStoppedError(self.host))
        try:
            return self._executor.submit(fn, *args)
        except RuntimeError:
            # Pool already shut down
            return _failed(NodeStoppedError(self.host))

    def _require_session(self) -> Any:
        with self._lock:
            if self._stopped:
                raise NodeStoppedError(self.host)
            if self._session is None or not self._connected:
                raise GemError(f"No session open to {self.host}")
            return self._session

    def _create_session(self, timeout: float | None) -> None:
        # Held before connecting so stop() can abort a connect in progress
        session = self._channel.open_session(self.config)
        with self._lock:
            if self._stopped:
                raise NodeStoppedError(self.host)
            self._session = session

        try:
            self._channel.connect(session, timeout)
        except Exception:
            if self.stopped:
                raise NodeStoppedError(self.host) from None
            raise

        with self._lock:
            if not self._stopped:
                self._connected = True
                logger.debug("Session to %s established", self.host)
                return
        raise NodeStoppedError(self.host)

    def _run_command(
        self, command: str, timeout: float | None, response: CapturedResponse
    ) -> CapturedResponse:
        session = self._require_session()
        result = self._channel.execute(session, command, timeout)
        response.write_stdout(result.stdout)
        response.write_stderr(result.stderr)
        if result.exit_status != 0:
            raise RemoteCommandError(
                self.host, command, result.exit_status, result.stderr
            )
        return response

    def _copy_directory(self, local_path: str, remote_path: str) -> None:
        session = self._require_session()
        self._channel.transfer_directory(session, local_path, remote_path)

    def __repr__(self) -> str:
        return f"RemoteNode({self.config.user}@{self.host}:{self.remote_dir})"


def _failed(exc: BaseException) -> Future[Any]:
    future: Future[Any] = Future()
    future.set_exception(exc)
    return future
