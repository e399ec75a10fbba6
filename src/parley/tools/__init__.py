"""Tooling helpers for Parley."""

from parley.tools.executor import RegistryToolExecutor, ToolExecutor
from parley.tools.orchestrator import ExchangeState, ToolOrchestrator, ToolResult
from parley.tools.schema import Tool, ToolKind, ToolOption, ToolRegistry, normalize_tool_name, tool

__all__ = [
    "ExchangeState",
    "RegistryToolExecutor",
    "Tool",
    "ToolExecutor",
    "ToolKind",
    "ToolOption",
    "ToolOrchestrator",
    "ToolRegistry",
    "ToolResult",
    "normalize_tool_name",
    "tool",
]
