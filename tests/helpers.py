"""Shared test helpers (scripted chat model, runtime builders, event collection)."""

from __future__ import annotations

import json
import re
from typing import Any, AsyncIterator, Iterator, List, Optional, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage
from langchain_core.outputs import ChatGeneration, ChatGenerationChunk, ChatResult
from langchain_core.tools import BaseTool
from pydantic import ConfigDict, Field

from chat_agent_server.config import Settings
from chat_agent_server.runtime import AgentRuntime, create_runtime


class ScriptedChatModel(BaseChatModel):
    """Chat model that replays scripted replies.

    Streams text word by word and each reply's tool calls as a single chunk,
    and records every prompt it receives.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    responses: List[AIMessage] = Field(default_factory=list)
    repeat_last: bool = False
    error: Optional[Exception] = None
    prompts: List[List[BaseMessage]] = Field(default_factory=list)
    bound_tools: List[str] = Field(default_factory=list)

    @property
    def _llm_type(self) -> str:
        return "scripted"

    def bind_tools(self, tools: Sequence[Any], **kwargs: Any):
        self.bound_tools = [tool.name for tool in tools]
        return self

    def _next(self, messages: List[BaseMessage]) -> AIMessage:
        self.prompts.append(list(messages))
        if self.error is not None:
            raise self.error
        index = len(self.prompts) - 1
        if index >= len(self.responses):
            if not self.repeat_last or not self.responses:
                raise AssertionError(f"No scripted response left for call #{index + 1}")
            index = len(self.responses) - 1
        return self.responses[index]

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        return ChatResult(generations=[ChatGeneration(message=self._next(messages))])

    def _chunks(self, message: AIMessage) -> Iterator[ChatGenerationChunk]:
        text = message.content if isinstance(message.content, str) else ""
        emitted = False
        for token in re.split(r"(\s+)", text):
            if token:
                emitted = True
                yield ChatGenerationChunk(message=AIMessageChunk(content=token))
        if message.tool_calls:
            emitted = True
            yield ChatGenerationChunk(
                message=AIMessageChunk(
                    content="",
                    tool_call_chunks=[
                        {
                            "name": call["name"],
                            "args": json.dumps(call["args"]),
                            "id": call["id"],
                            "index": index,
                        }
                        for index, call in enumerate(message.tool_calls)
                    ],
                )
            )
        if not emitted:
            yield ChatGenerationChunk(message=AIMessageChunk(content=""))

    def _stream(self, messages, stop=None, run_manager=None, **kwargs) -> Iterator[ChatGenerationChunk]:
        yield from self._chunks(self._next(messages))

    async def _astream(self, messages, stop=None, run_manager=None, **kwargs) -> AsyncIterator[ChatGenerationChunk]:
        for chunk in self._chunks(self._next(messages)):
            yield chunk


def tool_call_reply(*calls: tuple[str, dict], content: str = "", prefix: str = "call") -> AIMessage:
    """AIMessage requesting the given (name, args) tool calls."""

    return AIMessage(
        content=content,
        tool_calls=[
            {"name": name, "args": args, "id": f"{prefix}-{index}", "type": "tool_call"}
            for index, (name, args) in enumerate(calls, start=1)
        ],
    )


def make_settings(**overrides: Any) -> Settings:
    """Settings isolated from any local .env file; overrides use env var names."""

    return Settings(_env_file=None, **overrides)  # type: ignore[call-arg]


def make_runtime(
    responses: Sequence[AIMessage] = (),
    *,
    tools: Sequence[BaseTool] = (),
    model: ScriptedChatModel | None = None,
    **settings_overrides: Any,
) -> AgentRuntime:
    settings = make_settings(**settings_overrides)
    chat_model = model or ScriptedChatModel(responses=list(responses))
    return create_runtime(settings, model=chat_model, tools=tools)


async def collect(events: AsyncIterator[Any]) -> list[Any]:
    return [event async for event in events]


def parse_sse(body: str) -> list[dict]:
    """Decode a text/event-stream body into its JSON payloads."""

    payloads = []
    for block in body.strip().split("\n\n"):
        for line in block.splitlines():
            if line.startswith("data: "):
                payloads.append(json.loads(line[len("data: "):]))
    return payloads
