"""Tests for RemoteNode."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from gemkit.config import NodeConfig
from gemkit.errors import GemError, NodeStoppedError, RemoteCommandError, TransferError
from gemkit.remote.node import RemoteNode
from gemkit.remote.response import CapturedResponse


@pytest.fixture
def pool():
    executor = ThreadPoolExecutor(max_workers=4)
    yield executor
    executor.shutdown(wait=False)


@pytest.fixture
def node(channel, pool) -> RemoteNode:
    return RemoteNode(NodeConfig(host="node-1", dir="/opt/gem"), pool, channel)


class TestRemoteNode:
    def test_properties_come_from_config(self, node):
        assert node.host == "node-1"
        assert node.name == "node-1"
        assert node.remote_dir == "/opt/gem"

    def test_command_before_session_fails(self, node):
        future = node.run_command("uptime", 1, CapturedResponse())
        with pytest.raises(GemError, match="No session"):
            future.result(timeout=2)

    def test_run_command_captures_output(self, node):
        node.create_session(1).result(timeout=2)
        response = CapturedResponse(capture_stdout=True)

        assert node.run_command("uptime", 1, response).result(timeout=2) is response
        assert response.stdout == "uptime ok\n"

    def test_stdout_skipped_when_not_requested(self, node):
        node.create_session(1).result(timeout=2)
        response = CapturedResponse(capture_stdout=False)

        node.run_command("uptime", 1, response).result(timeout=2)

        assert response.stdout == ""

    def test_non_zero_exit_fails_future(self, node, channel):
        channel.exit_status[("node-1", "false")] = 1
        node.create_session(1).result(timeout=2)
        response = CapturedResponse()

        with pytest.raises(RemoteCommandError) as exc_info:
            node.run_command("false", 1, response).result(timeout=2)

        assert exc_info.value.exit_status == 1
        assert "false: failed" in response.stderr

    def test_copy_directory_failure(self, node, channel):
        channel.failing_transfers.add("node-1")
        node.create_session(1).result(timeout=2)

        with pytest.raises(TransferError, match="disk full"):
            node.copy_directory("/tmp/sbk", "/opt/gem").result(timeout=2)

    def test_stop_is_idempotent(self, node, channel):
        node.create_session(1).result(timeout=2)

        node.stop()
        node.stop()

        assert channel.terminated == ["node-1"]
        assert node.stopped

    def test_operations_after_stop_fail_fast(self, node):
        node.stop()
        future = node.run_command("uptime", 1, CapturedResponse())
        assert isinstance(future.exception(timeout=1), NodeStoppedError)

    def test_stop_interrupts_running_command(self, node, channel, wait_until):
        channel.block("sleep")
        node.create_session(1).result(timeout=2)
        future = node.run_command("sleep 600", None, CapturedResponse())
        assert wait_until(lambda: channel.commands_for("node-1") == ["sleep 600"])

        node.stop()

        with pytest.raises(RemoteCommandError):
            future.result(timeout=2)

    def test_close_then_stop_does_not_terminate(self, node, channel):
        node.create_session(1).result(timeout=2)

        node.close()
        node.stop()

        assert channel.closed == ["node-1"]
        assert channel.terminated == []

    def test_submit_after_pool_shutdown(self, channel):
        executor = ThreadPoolExecutor(max_workers=1)
        executor.shutdown()
        node = RemoteNode(NodeConfig(host="node-9", dir="/opt/gem"), executor, channel)

        future = node.create_session(1)

        assert isinstance(future.exception(timeout=1), NodeStoppedError)

    def test_stop_aborts_connect_in_progress(self, node, channel, wait_until):
        channel.hanging_connects.add("node-1")
        future = node.create_session(1)
        assert wait_until(lambda: channel.connected == ["node-1"])

        node.stop()

        assert isinstance(future.exception(timeout=2), NodeStoppedError)
        assert channel.terminated == ["node-1"]
