"""Common enums used across gemkit."""

from enum import Enum


class RunState(str, Enum):
    """Lifecycle of one orchestrator instance.

    - BEGIN: constructed, not started
    - RUN: start() has been called
    - END: shutdown has happened (terminal)
    """

    BEGIN = "begin"
    RUN = "run"
    END = "end"

    def __str__(self) -> str:
        return self.value


class ConcurrencyMode(str, Enum):
    """How per-node operations are scheduled.

    - POOLED: fixed thread pool sized to node count plus head-room
    - TASK_PER_NODE: one short-lived thread per submitted operation
    """

    POOLED = "pooled"
    TASK_PER_NODE = "task_per_node"

    def __str__(self) -> str:
        return self.value
