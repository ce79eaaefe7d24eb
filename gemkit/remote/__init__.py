"""Remote execution: channels, per-node handles and output capture."""

from .channel import CommandResult, RemoteChannel, SshChannel, SshSession
from .node import RemoteNode
from .response import (
    CapturedResponse,
    create_responses,
    is_version_compatible,
    parse_version,
)

__all__ = [
    "CapturedResponse",
    "CommandResult",
    "RemoteChannel",
    "RemoteNode",
    "SshChannel",
    "SshSession",
    "create_responses",
    "is_version_compatible",
    "parse_version",
]
