"""gemkit: run one benchmark on many remote machines at once."""

from .common.enums import ConcurrencyMode, RunState
from .config import GemConfig, NodeConfig, load_config
from .run.orchestrator import GemOrchestrator

__version__ = "0.1.0"

__all__ = [
    "ConcurrencyMode",
    "GemConfig",
    "GemOrchestrator",
    "NodeConfig",
    "RunState",
    "load_config",
]
