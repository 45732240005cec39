from __future__ import annotations

import json
from typing import Any, Literal

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from pydantic import BaseModel, Field

from .messages import message_text


def _coerce_content(value: Any) -> str:
    if isinstance(value, (str, list)):
        # Non-text blocks (tool_use, thinking) are carried by tool_calls or dropped.
        return message_text(value)
    return json.dumps(value, ensure_ascii=False)


class ToolCallEnvelope(BaseModel):
    id: str
    name: str
    args: dict[str, Any] = Field(default_factory=dict)


class MessageEnvelope(BaseModel):
    """Serializable message payload."""

    role: Literal["user", "assistant", "system", "tool"]
    content: str
    tool_call_id: str | None = None
    tool_calls: list[ToolCallEnvelope] = Field(default_factory=list)
    is_error: bool = False

    @classmethod
    def from_langchain(cls, message: BaseMessage) -> "MessageEnvelope":
        content = _coerce_content(message.content)
        if isinstance(message, HumanMessage):
            return cls(role="user", content=content)
        if isinstance(message, SystemMessage):
            return cls(role="system", content=content)
        if isinstance(message, ToolMessage):
            return cls(
                role="tool",
                content=content,
                tool_call_id=message.tool_call_id,
                is_error=message.status == "error",
            )
        tool_calls = [
            ToolCallEnvelope(id=call["id"], name=call["name"], args=call.get("args") or {})
            for call in getattr(message, "tool_calls", None) or []
        ]
        return cls(role="assistant", content=content, tool_calls=tool_calls)

    def to_langchain(self) -> BaseMessage:
        if self.role == "user":
            return HumanMessage(content=self.content)
        if self.role == "system":
            return SystemMessage(content=self.content)
        if self.role == "tool":
            if not self.tool_call_id:
                raise ValueError("tool messages must include tool_call_id")
            return ToolMessage(
                content=self.content,
                tool_call_id=self.tool_call_id,
                status="error" if self.is_error else "success",
            )
        return AIMessage(
            content=self.content,
            tool_calls=[call.model_dump() for call in self.tool_calls],
        )


class ChatSummary(BaseModel):
    id: str
    title: str
    user_id: str
    created_at: int = Field(..., description="Creation time in milliseconds since the epoch")


class CreateChatRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class TurnRequest(BaseModel):
    message: str = Field(..., min_length=1)


class InvokeRequest(BaseModel):
    thread_id: str = Field(..., description="Identifier the turn's checkpoint is keyed by")
    messages: list[MessageEnvelope]


class InvokeResponse(BaseModel):
    messages: list[MessageEnvelope]
    thread_id: str


class HealthResponse(BaseModel):
    status: str = "ok"
