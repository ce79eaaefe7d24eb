"""Remote execution channels.

A channel opens a session to one remote machine and runs commands and
directory transfers inside it. ``SshChannel`` drives the OpenSSH client
binaries; tests and alternative transports implement ``RemoteChannel``.
"""

from __future__ import annotations

import math
import os
import subprocess
import threading
from dataclasses import dataclass
from typing import Any, Protocol

from ..config import NodeConfig
from ..debug import debug_log_command, debug_log_result
from ..errors import ConnectError, RemoteCommandError, TransferError

# ssh ConnectTimeout used when the caller does not bound the operation
DEFAULT_CONNECT_TIMEOUT = 10


@dataclass
class CommandResult:
    """Result of one remote command."""

    exit_status: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.exit_status == 0


class RemoteChannel(Protocol):
    """Transport contract consumed by RemoteNode."""

    def open_session(self, node: NodeConfig) -> Any: ...

    def connect(self, session: Any, timeout: float | None) -> None: ...

    def execute(
        self, session: Any, command: str, timeout: float | None
    ) -> CommandResult: ...

    def transfer_directory(
        self, session: Any, local_path: str, remote_path: str
    ) -> None: ...

    def close(self, session: Any) -> None: ...

    def terminate(self, session: Any) -> None: ...


class SshSession:
    """Tracks the ssh/scp client processes started for one node."""

    def __init__(self, node: NodeConfig):
        self.node = node
        self.closed = False
        self._processes: set[subprocess.Popen] = set()
        self._lock = threading.Lock()

    def register(self, process: subprocess.Popen) -> bool:
        """Track a process; returns False if the session is already closed."""
        with self._lock:
            if self.closed:
                return False
            self._processes.add(process)
            return True

    def unregister(self, process: subprocess.Popen) -> None:
        with self._lock:
            self._processes.discard(process)

    def shutdown(self, kill: bool) -> None:
        with self._lock:
            self.closed = True
            processes = list(self._processes)
            self._processes.clear()

        if not kill:
            return
        for process in processes:
            if process.poll() is None:
                try:
                    process.kill()
                except OSError:
                    # Exited between poll() and kill()
                    pass


class SshChannel:
    """Remote channel backed by the local ``ssh`` and ``scp`` binaries."""

    def __init__(self, ssh_binary: str = "ssh", scp_binary: str = "scp"):
        self.ssh_binary = ssh_binary
        self.scp_binary = scp_binary

    def _common_options(self, node: NodeConfig, connect_timeout: int) -> list[str]:
        opts = [
            "-o",
            "StrictHostKeyChecking=no",
            "-o",
            "BatchMode=yes",
            "-o",
            f"ConnectTimeout={connect_timeout}",
        ]
        if node.ssh_private_key_path:
            opts += ["-i", os.path.expanduser(node.ssh_private_key_path)]
        return opts

    def ssh_command(
        self, node: NodeConfig, command: str, connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    ) -> list[str]:
        """Build the argv for running ``command`` on ``node``."""
        argv = [self.ssh_binary, *self._common_options(node, connect_timeout)]
        if node.port != 22:
            argv += ["-p", str(node.port)]
        return [*argv, f"{node.user}@{node.host}", command]

    def scp_command(self, node: NodeConfig, local_path: str, remote_path: str) -> list[str]:
        """Build the argv for recursively copying ``local_path`` to ``node``."""
        argv = [
            self.scp_binary,
            "-r",
            *self._common_options(node, DEFAULT_CONNECT_TIMEOUT),
        ]
        if node.port != 22:
            argv += ["-P", str(node.port)]
        return [*argv, local_path, f"{node.user}@{node.host}:{remote_path}"]

    def open_session(self, node: NodeConfig) -> SshSession:
        return SshSession(node)

    def connect(self, session: SshSession, timeout: float | None) -> None:
        """Check the node answers; terminating the session aborts the check."""
        node = session.node
        connect_timeout = (
            max(1, math.ceil(timeout)) if timeout else DEFAULT_CONNECT_TIMEOUT
        )
        argv = self.ssh_command(node, "echo ready", connect_timeout)
        try:
            result = self._run(session, argv, timeout)
        except subprocess.TimeoutExpired:
            raise ConnectError(node.host, f"no response within {timeout}s") from None
        except OSError as e:
            raise ConnectError(node.host, str(e)) from e

        if not result.success or "ready" not in result.stdout:
            raise ConnectError(
                node.host,
                result.stderr.strip() or f"ssh exited with status {result.exit_status}",
            )

    def execute(
        self, session: SshSession, command: str, timeout: float | None
    ) -> CommandResult:
        node = session.node
        debug_log_command(node.host, command, timeout)
        try:
            result = self._run(session, self.ssh_command(node, command), timeout)
        except subprocess.TimeoutExpired:
            raise RemoteCommandError(
                node.host, command, stderr=f"Command timed out after {timeout}s"
            ) from None
        except OSError as e:
            raise RemoteCommandError(node.host, command, stderr=str(e)) from e

        debug_log_result(node.host, result.success, result.stdout, result.stderr)
        return result

    def transfer_directory(
        self, session: SshSession, local_path: str, remote_path: str
    ) -> None:
        node = session.node
        argv = self.scp_command(node, local_path, remote_path)
        debug_log_command(node.host, " ".join(argv))
        try:
            result = self._run(session, argv, None)
        except OSError as e:
            raise TransferError(node.host, local_path, remote_path, str(e)) from e

        debug_log_result(node.host, result.success, result.stdout, result.stderr)
        if not result.success:
            raise TransferError(
                node.host,
                local_path,
                remote_path,
                result.stderr.strip() or f"scp exited with status {result.exit_status}",
            )

    def close(self, session: SshSession) -> None:
        session.shutdown(kill=False)

    def terminate(self, session: SshSession) -> None:
        session.shutdown(kill=True)

    def _run(
        self, session: SshSession, argv: list[str], timeout: float | None
    ) -> CommandResult:
        """Run a client process tracked by the session so it can be killed."""
        process = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        if not session.register(process):
            process.kill()
            process.communicate()
            return CommandResult(-1, "", "Session closed")

        try:
            stdout, stderr = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.communicate()
            raise
        finally:
            session.unregister(process)

        return CommandResult(process.returncode, stdout, stderr)
