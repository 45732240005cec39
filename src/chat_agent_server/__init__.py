"""Tool-calling chat agent server with streamed, checkpointed turns."""

from .executor import TurnExecutor
from .runtime import AgentRuntime, build_runtime, create_runtime

__all__ = [
    "AgentRuntime",
    "TurnExecutor",
    "build_runtime",
    "create_runtime",
]
