"""Tool registry for the chat agent server."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any, Dict, Literal

from langchain_core.messages import ToolCall, ToolMessage
from langchain_core.runnables import RunnableConfig
from langchain_core.tools import BaseTool

from ..errors import ToolInvocationError
from .calculator_tool import calculator
from .time_tool import current_time

logger = logging.getLogger(__name__)

FailurePolicy = Literal["fold", "raise"]


def get_builtin_tools() -> Sequence[BaseTool]:
    """Return the local tools that need no remote backend."""

    return (
        calculator,
        current_time,
    )


def _tool_input_schema(tool: BaseTool) -> Dict[str, Any]:
    args_schema = tool.args_schema
    if args_schema is None:
        return {"type": "object", "properties": {}}
    if isinstance(args_schema, dict):
        return args_schema
    return args_schema.model_json_schema()


def _as_content(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, ensure_ascii=False, default=str)


def _error_content(tool_name: str, error: str) -> str:
    return json.dumps({"error": error, "tool": tool_name}, ensure_ascii=False)


class ToolRegistry:
    """Name -> tool bindings plus invocation that always answers with a ToolMessage."""

    def __init__(
        self,
        tools: Sequence[BaseTool] = (),
        *,
        failure_policy: FailurePolicy = "fold",
    ) -> None:
        self._tools: Dict[str, BaseTool] = {}
        for tool in tools:
            if tool.name in self._tools:
                logger.warning("[TOOLS] Duplicate tool name %s; keeping the first registration", tool.name)
                continue
            self._tools[tool.name] = tool
        self.failure_policy = failure_policy

    @property
    def tools(self) -> list[BaseTool]:
        return list(self._tools.values())

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def schemas(self) -> list[Dict[str, Any]]:
        """Describe every registered tool as {name, description, input_schema}."""

        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": _tool_input_schema(tool),
            }
            for tool in self._tools.values()
        ]

    async def ainvoke(self, call: ToolCall, config: RunnableConfig | None = None) -> ToolMessage:
        """Run one tool call and return the ToolMessage answering ``call["id"]``.

        Unknown tools, invalid arguments and execution failures are folded into
        an error ToolMessage unless the failure policy is ``"raise"``.
        """

        tool_name = call["name"]
        call_id = call["id"]
        tool = self._tools.get(tool_name)
        if tool is None:
            logger.warning("[TOOLS] Tool not found: %s", tool_name)
            return self._failure(tool_name, call_id, f"Requested tool '{tool_name}' is not available.")

        logger.info("[TOOLS] Executing tool: %s args=%s", tool_name, str(call.get("args"))[:500])
        try:
            result = await tool.ainvoke(dict(call.get("args") or {}), config=config)
        except Exception as exc:
            logger.exception("[TOOLS] Tool execution failed: %s", tool_name)
            return self._failure(tool_name, call_id, exc)

        content = _as_content(result)
        logger.info("[TOOLS] Tool result: %s", content[:500])
        return ToolMessage(content=content, tool_call_id=call_id, name=tool_name)

    def _failure(self, tool_name: str, call_id: str | None, cause: BaseException | str) -> ToolMessage:
        if self.failure_policy == "raise":
            raise ToolInvocationError(tool_name, call_id, cause)
        message = cause if isinstance(cause, str) else f"Tool '{tool_name}' failed: {cause}"
        return ToolMessage(
            content=_error_content(tool_name, message),
            tool_call_id=call_id,
            name=tool_name,
            status="error",
        )


__all__ = [
    "FailurePolicy",
    "ToolRegistry",
    "get_builtin_tools",
]
