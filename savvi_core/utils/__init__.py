"""Shared utilities for savviFinance."""

from .async_utils import run_with_timeout, DelayedTask, LoopRunner

__all__ = ["run_with_timeout", "DelayedTask", "LoopRunner"]
