"""Exception types raised during orchestration."""

from __future__ import annotations


class GemError(Exception):
    """Base class for all orchestration failures."""


class ConnectError(GemError):
    """A remote session could not be opened."""

    def __init__(self, host: str, reason: str):
        self.host = host
        self.reason = reason
        super().__init__(f"Cannot open session to {host}: {reason}")


class RemoteCommandError(GemError):
    """A remote command exited non-zero, timed out, or could not be run."""

    def __init__(
        self,
        host: str,
        command: str,
        exit_status: int | None = None,
        stderr: str = "",
    ):
        self.host = host
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
        message = f"Command '{command}' failed on {host}"
        if exit_status is not None:
            message += f" (exit status {exit_status})"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class TransferError(GemError):
    """Copying a directory tree to a remote host failed."""

    def __init__(self, host: str, local_path: str, remote_path: str, reason: str):
        self.host = host
        self.local_path = local_path
        self.remote_path = remote_path
        super().__init__(
            f"Copy of {local_path} to {host}:{remote_path} failed: {reason}"
        )


class NodeStoppedError(GemError):
    """An operation was requested on a node that has been stopped."""

    def __init__(self, host: str):
        self.host = host
        super().__init__(f"Node {host} has been stopped")


class PhaseError(GemError):
    """A phase did not complete successfully on all nodes."""

    def __init__(self, phase: str, iterations: int, message: str):
        self.phase = phase
        self.iterations = iterations
        super().__init__(message)


class PhaseTimeoutError(PhaseError):
    """A phase was still pending after its whole retry budget."""

    def __init__(self, phase: str, iterations: int):
        super().__init__(
            phase,
            iterations,
            f"Phase '{phase}' timed out after {iterations} iterations",
        )


class PhaseFailedError(PhaseError):
    """A phase resolved with an error on at least one node."""

    def __init__(self, phase: str, iterations: int, cause: BaseException):
        self.cause = cause
        super().__init__(
            phase,
            iterations,
            f"Phase '{phase}' failed after {iterations} iterations: {cause}",
        )


class VersionMismatchError(GemError):
    """One or more remote hosts run an incompatible runtime version."""

    def __init__(self, local_version: int, hosts: list[str]):
        self.local_version = local_version
        self.hosts = list(hosts)
        super().__init__(
            f"Version {local_version} mismatch at: {', '.join(self.hosts)}"
        )


class RunCancelledError(GemError):
    """The run was stopped while setup phases were still in progress."""
