"""Shared helpers for gemkit."""

from .enums import ConcurrencyMode, RunState

__all__ = ["ConcurrencyMode", "RunState"]
