"""Benchmark execution modules."""

from .barrier import all_of, await_phase, fan_out, run_phase
from .executor import ThreadPerTaskExecutor, create_executor
from .local import CommandEngine, LocalEngine, LocalRunHandle, NullEngine
from .orchestrator import GemOrchestrator

__all__ = [
    "GemOrchestrator",
    "LocalRunHandle",
    "LocalEngine",
    "CommandEngine",
    "NullEngine",
    "ThreadPerTaskExecutor",
    "create_executor",
    "all_of",
    "await_phase",
    "fan_out",
    "run_phase",
]
