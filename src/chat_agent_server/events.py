"""Typed events emitted while a turn runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Literal, Optional, Union

from langchain_core.messages import BaseMessage

from .schemas import MessageEnvelope

FailureKind = Literal["model_provider", "tool", "step_limit"]


@dataclass(slots=True)
class StateEntered:
    type: ClassVar[str] = "state"
    state: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "state": self.state}


@dataclass(slots=True)
class ContentDelta:
    type: ClassVar[str] = "delta"
    text: str
    message_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "text": self.text, "message_id": self.message_id}


@dataclass(slots=True)
class ToolStarted:
    type: ClassVar[str] = "tool_start"
    call_id: str
    name: str
    args: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "call_id": self.call_id, "name": self.name, "args": self.args}


@dataclass(slots=True)
class ToolFinished:
    type: ClassVar[str] = "tool_end"
    call_id: str
    name: str
    content: Any
    is_error: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "call_id": self.call_id,
            "name": self.name,
            "content": self.content,
            "is_error": self.is_error,
        }


@dataclass(slots=True)
class MessageCompleted:
    """A message a node appended to the transcript (assistant or tool)."""

    type: ClassVar[str] = "message"
    message: BaseMessage

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "message": MessageEnvelope.from_langchain(self.message).model_dump()}


@dataclass(slots=True)
class TurnCompleted:
    type: ClassVar[str] = "done"
    final_message: BaseMessage
    new_messages: List[BaseMessage] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "message": MessageEnvelope.from_langchain(self.final_message).model_dump(),
            "new_messages": [MessageEnvelope.from_langchain(m).model_dump() for m in self.new_messages],
        }


@dataclass(slots=True)
class TurnFailed:
    type: ClassVar[str] = "error"
    error: str
    kind: FailureKind = "model_provider"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "error": self.error, "kind": self.kind}


TurnEvent = Union[
    StateEntered,
    ContentDelta,
    ToolStarted,
    ToolFinished,
    MessageCompleted,
    TurnCompleted,
    TurnFailed,
]
