"""Configuration management for gemkit."""

import os
import posixpath
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, field_validator, model_validator

from .common.enums import ConcurrencyMode


class NodeConfig(BaseModel):
    """Connection descriptor for one remote machine."""

    host: str
    user: str = "ubuntu"
    port: int = 22
    ssh_private_key_path: str | None = None
    dir: str  # Remote working directory, recreated on every run
    name: str | None = None  # Display name, defaults to host

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """Ensure host is present."""
        if not v or not v.strip():
            raise ValueError("Node host cannot be empty")
        return v.strip()

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Ensure port is a valid TCP port."""
        if not 1 <= v <= 65535:
            raise ValueError(f"port must be between 1 and 65535 (got {v})")
        return v

    @field_validator("dir")
    @classmethod
    def validate_dir(cls, v: str) -> str:
        """The working directory is removed with rm -rf, so refuse dangerous values."""
        if not v.startswith("/"):
            raise ValueError(f"Remote dir must be an absolute path (got '{v}')")
        normalized = posixpath.normpath(v)
        if not normalized.strip("/"):
            raise ValueError("Remote dir cannot be the filesystem root")
        return normalized

    @property
    def display_name(self) -> str:
        return self.name or self.host


class GemConfig(BaseModel):
    """Main orchestration configuration."""

    nodes: list[NodeConfig]
    max_iterations: int = 10
    timeout_seconds: float = 5.0  # Per-attempt wait inside a phase
    remote_timeout_seconds: float | None = 120.0  # Per remote operation, None = unbounded
    concurrency_mode: ConcurrencyMode = ConcurrencyMode.POOLED
    payload_dir: str
    command: str
    args: str | list[str] = ""
    version_command: str = "java -version"
    local_version: int | None = None
    local_command: str | list[str] | None = None  # Local control run
    log_dir: str | None = None

    @field_validator("nodes")
    @classmethod
    def validate_nodes(cls, v: list[NodeConfig]) -> list[NodeConfig]:
        """Ensure at least one node and no duplicate targets."""
        if len(v) < 1:
            raise ValueError("At least one node must be configured")

        targets = [(n.host, n.port, n.dir) for n in v]
        duplicates = sorted({f"{t[0]}:{t[2]}" for t in targets if targets.count(t) > 1})
        if duplicates:
            raise ValueError(f"Duplicate node targets: {', '.join(duplicates)}")
        return v

    @field_validator("max_iterations")
    @classmethod
    def validate_max_iterations(cls, v: int) -> int:
        """Ensure max_iterations is positive."""
        if v < 1:
            raise ValueError(f"max_iterations must be positive (got {v})")
        return v

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Ensure the per-attempt timeout is positive."""
        if v <= 0:
            raise ValueError(f"timeout_seconds must be positive (got {v})")
        return v

    @field_validator("remote_timeout_seconds")
    @classmethod
    def validate_remote_timeout(cls, v: float | None) -> float | None:
        """Ensure the remote timeout is positive when set."""
        if v is not None and v <= 0:
            raise ValueError(f"remote_timeout_seconds must be positive (got {v})")
        return v

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: str) -> str:
        """The command is resolved under the payload's bin/ directory."""
        if not v or not v.strip():
            raise ValueError("command cannot be empty")
        if "/" in v:
            raise ValueError(
                f"command must be a file name under the payload bin/ directory (got '{v}')"
            )
        return v.strip()

    @model_validator(mode="after")
    def validate_payload_dir(self) -> "GemConfig":
        """Ensure the payload directory has a usable name."""
        if not Path(self.payload_dir).name:
            raise ValueError(
                f"payload_dir must name a directory (got '{self.payload_dir}')"
            )
        return self

    @property
    def args_string(self) -> str:
        if isinstance(self.args, list):
            return " ".join(str(a) for a in self.args)
        return self.args.strip()


def load_config(path: str | Path) -> GemConfig:
    """Load and validate orchestration configuration from YAML file."""
    config_path = Path(path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        raw_config = yaml.safe_load(f) or {}

    if not isinstance(raw_config, dict):
        raise ValueError(
            f"Invalid configuration: expected a mapping at top level of {config_path}"
        )

    # Expand environment variables in config
    raw_config = _expand_env_vars(raw_config)

    # Relative payload paths are resolved against the config file location
    payload_dir = raw_config.get("payload_dir")
    if isinstance(payload_dir, str) and payload_dir and not os.path.isabs(payload_dir):
        raw_config["payload_dir"] = str((config_path.parent / payload_dir).resolve())

    # Validate using Pydantic model
    try:
        return GemConfig(**raw_config)
    except Exception as e:
        raise ValueError(f"Invalid configuration: {e}") from e


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in configuration."""
    if isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return os.path.expandvars(obj)
    else:
        return obj
