"""Distributed benchmark orchestration.

The orchestrator drives every configured remote node through a fixed
sequence of phases:

1. session        open a remote session on every node
2. version-check  run the version command and compare runtime versions
3. cleanup        remove the remote working directory
4. mkdir          create a fresh remote working directory
5. copy           copy the benchmark payload into it
6. launch         start the local control run and the remote benchmark

Phases 1-5 block on the shared barrier (see ``barrier.run_phase``). The
launch phase does not block: its joined future is wired to ``shutdown`` and
callers observe the outcome through the completion signal returned by
``start()``.
"""

from __future__ import annotations

import logging
import shlex
import sys
import threading
from collections.abc import Callable
from concurrent.futures import CancelledError, Future
from pathlib import Path
from typing import Any

from ..common.enums import RunState
from ..config import GemConfig
from ..errors import GemError, RunCancelledError, VersionMismatchError
from ..remote.channel import RemoteChannel, SshChannel
from ..remote.node import RemoteNode
from ..remote.response import (
    CapturedResponse,
    create_responses,
    is_version_compatible,
    parse_version,
)
from ..util import ensure_directory, safe_command, slugify
from .barrier import fan_out, run_phase
from .executor import create_executor
from .local import CommandEngine, LocalEngine, LocalRunHandle, NullEngine

logger = logging.getLogger(__name__)

# Payload sub-directory holding the benchmark executables
BIN_DIR = "bin"

# Timeout for running the version command locally
LOCAL_VERSION_TIMEOUT = 60


class GemOrchestrator:
    """Runs one benchmark across all configured nodes, exactly once."""

    def __init__(
        self,
        config: GemConfig,
        engine: LocalEngine | None = None,
        channel: RemoteChannel | None = None,
        local_version: int | None = None,
    ):
        self.config = config
        self.max_iterations = config.max_iterations
        self.attempt_timeout = config.timeout_seconds
        self.remote_timeout = config.remote_timeout_seconds
        self.payload_dir = str(Path(config.payload_dir))
        self.local_version = (
            local_version if local_version is not None else config.local_version
        )

        if engine is None:
            engine = (
                CommandEngine(config.local_command)
                if config.local_command
                else NullEngine()
            )
        self.local_run = LocalRunHandle(engine)

        self.executor = create_executor(config.concurrency_mode, len(config.nodes))
        channel = channel if channel is not None else SshChannel()
        self.nodes = [RemoteNode(node, self.executor, channel) for node in config.nodes]

        self._signal: Future[None] = Future()
        self._state = RunState.BEGIN
        self._stop_requested = False
        self._lock = threading.Lock()
        self._launch_responses: dict[RemoteNode, CapturedResponse] = {}

    @property
    def state(self) -> RunState:
        with self._lock:
            return self._state

    @property
    def completion(self) -> Future[None]:
        """Signal resolved once, when the run has shut down."""
        return self._signal

    def start(self) -> Future[None]:
        """Run all phases and launch the benchmark.

        Returns the completion signal. Calling start() again returns the
        same signal without starting a second run.
        """
        with self._lock:
            if self._state != RunState.BEGIN:
                if self._state == RunState.RUN:
                    logger.warning("Benchmark is already running")
                else:
                    logger.warning("Benchmark is already shut down")
                return self._signal
            self._state = RunState.RUN

        logger.info("Benchmark started on %d nodes", len(self.nodes))
        try:
            self._prepare_nodes()
            self._launch()
        except RunCancelledError:
            logger.info("Benchmark stopped before launch")
        except Exception as e:
            if self.state == RunState.END:
                logger.info("Benchmark stopped before launch: %s", e)
            else:
                logger.error("Benchmark aborted: %s", e)
            self.shutdown(e)
        return self._signal

    def stop(self) -> None:
        """Force-close every remote session and shut down."""
        logger.info("Stopping benchmark")
        with self._lock:
            self._stop_requested = True
        for node in self.nodes:
            node.stop()
        self.shutdown(None)

    def shutdown(self, cause: BaseException | None = None) -> bool:
        """Tear the run down; only the first call has any effect.

        A cause arriving after stop() was requested comes from the forced
        session termination and is dropped. Returns True for the call that
        performed the shutdown.
        """
        with self._lock:
            if self._state == RunState.END:
                return False
            self._state = RunState.END
            if self._stop_requested and cause is not None:
                logger.debug("Dropping failure after stop request: %s", cause)
                cause = None

        try:
            self._release(cause)
        except Exception as e:
            logger.error("Failed to release resources: %s", e)
        finally:
            if cause is not None:
                logger.warning("Benchmark shutdown with exception: %s", cause)
                self._signal.set_exception(cause)
            else:
                logger.info("Benchmark shutdown")
                self._signal.set_result(None)
        return True

    def wait(self, timeout: float | None = None) -> None:
        """Block until the run completes; re-raises the failure cause."""
        self._signal.result(timeout=timeout)

    def launch_command(self, node: RemoteNode) -> str:
        """Command line that starts the benchmark from the staged payload."""
        payload_name = Path(self.payload_dir).name
        command = shlex.quote(
            f"{node.remote_dir}/{payload_name}/{BIN_DIR}/{self.config.command}"
        )
        args = self.config.args_string
        return f"{command} {args}" if args else command

    # Phases -----------------------------------------------------------

    def _prepare_nodes(self) -> None:
        self._phase("session", lambda node: node.create_session(self.remote_timeout))
        logger.info("Session establishment complete")

        self._check_environment()

        self._phase(
            "cleanup",
            lambda node: node.run_command(
                f"rm -rf {shlex.quote(node.remote_dir)}",
                self.remote_timeout,
                CapturedResponse(capture_stdout=False),
            ),
        )
        self._phase(
            "mkdir",
            lambda node: node.run_command(
                f"mkdir -p {shlex.quote(node.remote_dir)}",
                self.remote_timeout,
                CapturedResponse(capture_stdout=False),
            ),
        )
        self._phase(
            "copy", lambda node: node.copy_directory(self.payload_dir, node.remote_dir)
        )
        logger.info("Copy of %s complete", self.payload_dir)

    def _check_environment(self) -> None:
        local_version = self._resolve_local_version()
        command = self.config.version_command
        responses = dict(zip(self.nodes, create_responses(len(self.nodes), True)))

        self._phase(
            "version-check",
            lambda node: node.run_command(command, self.remote_timeout, responses[node]),
        )

        mismatched = []
        for node, response in responses.items():
            if not is_version_compatible(local_version, response):
                logger.error("Version %d mismatch at: %s", local_version, node.name)
                mismatched.append(node.name)
        if mismatched:
            raise VersionMismatchError(local_version, mismatched)
        logger.info("Version %d match on all nodes", local_version)

    def _launch(self) -> None:
        self._ensure_running()
        self.local_run.start()

        self._launch_responses = dict(
            zip(self.nodes, create_responses(len(self.nodes), True))
        )
        logger.info("Benchmark command: %s", self.launch_command(self.nodes[0]))
        joined = fan_out(
            self.nodes,
            lambda node: node.run_command(
                self.launch_command(node), None, self._launch_responses[node]
            ),
        )
        joined.add_done_callback(self._on_launch_done)

    def _on_launch_done(self, joined: Future[Any]) -> None:
        if joined.cancelled():
            self.shutdown(CancelledError())
            return
        error = joined.exception()
        if error is not None:
            logger.error("Remote benchmark failed: %s", error)
            self.shutdown(error)
        else:
            logger.info("Remote benchmark complete on all nodes")
            self.shutdown(None)

    # Internal helpers -------------------------------------------------

    def _phase(self, name: str, operation: Callable[[RemoteNode], Future[Any]]) -> list[Any]:
        self._ensure_running()
        return run_phase(
            self.nodes, name, operation, self.max_iterations, self.attempt_timeout
        )

    def _ensure_running(self) -> None:
        if self.state != RunState.RUN:
            raise RunCancelledError("Benchmark was stopped")

    def _resolve_local_version(self) -> int:
        if self.local_version is not None:
            return self.local_version

        result = safe_command(self.config.version_command, timeout=LOCAL_VERSION_TIMEOUT)
        if not result["success"]:
            raise GemError(
                f"Cannot determine local version with '{self.config.version_command}': "
                f"{result['stderr'].strip()}"
            )
        version = min(parse_version(result["stdout"]), parse_version(result["stderr"]))
        if version == sys.maxsize:
            raise GemError(
                f"No version found in output of '{self.config.version_command}'"
            )
        self.local_version = version
        return version

    def _release(self, cause: BaseException | None) -> None:
        try:
            self.local_run.stop()
        except Exception as e:
            logger.error("Failed to stop local run: %s", e)
        for node in self.nodes:
            if cause is None:
                node.close()
            else:
                node.stop()
        self._write_logs()
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _write_logs(self) -> None:
        if not self.config.log_dir or not self._launch_responses:
            return

        try:
            launch_dir = ensure_directory(Path(self.config.log_dir) / "launch")
        except OSError as e:
            logger.warning("Failed to create log directory: %s", e)
            return

        for index, (node, response) in enumerate(self._launch_responses.items(), 1):
            path = launch_dir / f"node-{index}-{slugify(node.name)}.log"
            try:
                with open(path, "w", encoding="utf-8") as handle:
                    handle.write(response.stdout)
                    if response.stderr:
                        handle.write(response.stderr)
            except OSError as e:
                logger.warning("Failed to write log for %s: %s", node.name, e)
