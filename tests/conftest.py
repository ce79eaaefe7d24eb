"""Shared fixtures: an in-memory remote channel and a recording local engine."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from gemkit.config import GemConfig, NodeConfig
from gemkit.errors import ConnectError, TransferError
from gemkit.remote.channel import CommandResult

KILLED_STATUS = -9


class FakeSession:
    def __init__(self, node: NodeConfig):
        self.node = node
        self.killed = threading.Event()


class FakeChannel:
    """Scriptable stand-in for SshChannel.

    - versions: host -> version reported by the version command
    - failing_connects / hanging_connects / failing_transfers: sets of hosts
    - exit_status: (host, first word of command) -> exit status
    - blocking: command substring -> event the command waits for
    """

    def __init__(self, version_command: str = "java -version"):
        self.version_command = version_command
        self._lock = threading.Lock()
        self.connected: list[str] = []
        self.executed: list[tuple[str, str]] = []
        self.transferred: list[tuple[str, str, str]] = []
        self.closed: list[str] = []
        self.terminated: list[str] = []
        self.versions: dict[str, str] = {}
        self.failing_connects: set[str] = set()
        self.hanging_connects: set[str] = set()
        self.failing_transfers: set[str] = set()
        self.exit_status: dict[tuple[str, str], int] = {}
        self.blocking: dict[str, threading.Event] = {}
        self.release = threading.Event()

    def open_session(self, node: NodeConfig) -> FakeSession:
        return FakeSession(node)

    def connect(self, session: FakeSession, timeout: float | None) -> None:
        host = session.node.host
        with self._lock:
            self.connected.append(host)
        if host in self.hanging_connects:
            deadline = time.monotonic() + 5
            while not session.killed.wait(0.01):
                if self.release.is_set() or time.monotonic() > deadline:
                    break
            raise ConnectError(host, "no route to host")
        if host in self.failing_connects:
            raise ConnectError(host, "connection refused")

    def execute(
        self, session: FakeSession, command: str, timeout: float | None
    ) -> CommandResult:
        host = session.node.host
        with self._lock:
            self.executed.append((host, command))

        if session.killed.is_set():
            return CommandResult(KILLED_STATUS, "", "killed")

        status = self.exit_status.get((host, command.split()[0]), 0)
        if status != 0:
            return CommandResult(status, "", f"{command}: failed\n")

        for fragment, event in list(self.blocking.items()):
            if fragment in command:
                while not event.wait(0.01):
                    if session.killed.is_set() or self.release.is_set():
                        return CommandResult(KILLED_STATUS, "", "killed")

        if command == self.version_command:
            version = self.versions.get(host, "17.0.2")
            return CommandResult(0, "", f'openjdk version "{version}" 2022-01-18\n')
        return CommandResult(0, f"{command} ok\n", "")

    def transfer_directory(
        self, session: FakeSession, local_path: str, remote_path: str
    ) -> None:
        host = session.node.host
        with self._lock:
            self.transferred.append((host, local_path, remote_path))
        if host in self.failing_transfers:
            raise TransferError(host, local_path, remote_path, "disk full")

    def close(self, session: FakeSession) -> None:
        with self._lock:
            self.closed.append(session.node.host)

    def terminate(self, session: FakeSession) -> None:
        session.killed.set()
        with self._lock:
            self.terminated.append(session.node.host)

    def commands_for(self, host: str) -> list[str]:
        with self._lock:
            return [cmd for h, cmd in self.executed if h == host]

    def block(self, fragment: str) -> threading.Event:
        event = threading.Event()
        self.blocking[fragment] = event
        return event


class RecordingEngine:
    def __init__(self) -> None:
        self.start_calls = 0
        self.stop_calls = 0
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            self.start_calls += 1

    def stop(self) -> None:
        with self._lock:
            self.stop_calls += 1


def _wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    return _wait_until


@pytest.fixture
def channel():
    fake = FakeChannel()
    yield fake
    fake.release.set()
    for event in fake.blocking.values():
        event.set()


@pytest.fixture
def engine() -> RecordingEngine:
    return RecordingEngine()


@pytest.fixture
def payload_dir(tmp_path: Path) -> Path:
    payload = tmp_path / "sbk"
    (payload / "bin").mkdir(parents=True)
    (payload / "bin" / "sbk").write_text("#!/bin/sh\n")
    return payload


@pytest.fixture
def make_config(payload_dir: Path) -> Callable[..., GemConfig]:
    def factory(node_count: int = 3, **overrides: Any) -> GemConfig:
        values: dict[str, Any] = {
            "nodes": [
                {"host": f"node-{i}", "dir": "/home/gem"}
                for i in range(1, node_count + 1)
            ],
            "max_iterations": 3,
            "timeout_seconds": 0.1,
            "remote_timeout_seconds": 1.0,
            "payload_dir": str(payload_dir),
            "command": "sbk",
            "args": ["-class", "file", "-size", "10"],
            "local_version": 17,
        }
        values.update(overrides)
        return GemConfig(**values)

    return factory
