"""Error types raised by the chat agent server."""

from __future__ import annotations


class AgentServerError(Exception):
    """Base class for errors raised by this package."""


class AuthenticationMissing(AgentServerError):
    """No verified user identity accompanies a request for chat data."""


class ChatNotFound(AgentServerError):
    """The chat does not exist or belongs to another user."""

    def __init__(self, chat_id: str) -> None:
        super().__init__(f"Chat '{chat_id}' not found")
        self.chat_id = chat_id


class RemoteToolError(AgentServerError):
    """The remote tool backend rejected or failed a tool invocation."""


class ToolInvocationError(AgentServerError):
    """A tool call failed and the failure policy escalates it to the turn."""

    def __init__(self, tool_name: str, call_id: str | None, cause: BaseException | str) -> None:
        super().__init__(f"Tool '{tool_name}' failed: {cause}")
        self.tool_name = tool_name
        self.call_id = call_id
        self.cause = cause
