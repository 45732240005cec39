"""Drive one conversational turn and relay it as a live event stream."""

from __future__ import annotations

import logging
import sys
from typing import Any, AsyncIterator, Iterator, Sequence

from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.runnables import RunnableConfig
from langgraph.checkpoint.memory import InMemorySaver
from langgraph.errors import GraphRecursionError
from langgraph.graph import END

from .agent import TurnState, create_graph
from .errors import ToolInvocationError
from .events import (
    ContentDelta,
    MessageCompleted,
    StateEntered,
    ToolFinished,
    ToolStarted,
    TurnCompleted,
    TurnEvent,
    TurnFailed,
)
from .messages import message_text
from .runtime import AgentRuntime

logger = logging.getLogger(__name__)

_STREAM_MODES = ["custom", "messages", "updates"]


def recursion_limit_for(max_agent_steps: int | None) -> int:
    """Map the agent step bound onto LangGraph's superstep limit.

    ``None`` leaves the agent <-> tools loop unbounded.
    """

    if max_agent_steps is None:
        return sys.maxsize
    # k agent steps interleave with at most k - 1 tool steps.
    return 2 * max_agent_steps - 1


class TurnExecutor:
    """Compiles the turn graph per call and streams its execution."""

    def __init__(self, runtime: AgentRuntime) -> None:
        self.runtime = runtime
        self._workflow = create_graph(runtime)

    def compile(self):
        # A fresh saver per turn: checkpoints live exactly as long as the turn.
        return self._workflow.compile(checkpointer=InMemorySaver())

    def _config(self, chat_id: str) -> RunnableConfig:
        return {
            "configurable": {"thread_id": chat_id},
            "recursion_limit": recursion_limit_for(self.runtime.settings.max_agent_steps),
            "run_name": "turn",
        }

    async def run_turn(self, transcript: Sequence[BaseMessage], chat_id: str) -> AsyncIterator[TurnEvent]:
        """Run one turn for ``chat_id`` and yield its events as they are produced.

        The last event is ``TurnCompleted`` on success or ``TurnFailed`` when the
        model provider, an escalated tool failure or the step bound ends the turn.
        """

        graph = self.compile()
        # add_messages assigns ids in place; keep the caller's objects untouched.
        inputs = {"messages": [message.model_copy() for message in transcript]}
        new_messages: list[BaseMessage] = []
        logger.info("[TURN] Starting turn chat_id=%s history=%d", chat_id, len(transcript))

        try:
            async for mode, chunk in graph.astream(inputs, config=self._config(chat_id), stream_mode=_STREAM_MODES):
                for event in self._convert(mode, chunk, new_messages):
                    yield event
        except GraphRecursionError as exc:
            logger.warning("[TURN] Step limit reached chat_id=%s: %s", chat_id, exc)
            yield TurnFailed(error=f"Agent step limit reached: {exc}", kind="step_limit")
            return
        except ToolInvocationError as exc:
            logger.error("[TURN] Turn aborted by tool failure chat_id=%s: %s", chat_id, exc)
            yield TurnFailed(error=str(exc), kind="tool")
            return
        except Exception as exc:
            logger.exception("[TURN] Turn failed chat_id=%s", chat_id)
            yield TurnFailed(error=str(exc) or type(exc).__name__, kind="model_provider")
            return

        final_message = next((m for m in reversed(new_messages) if isinstance(m, AIMessage)), None)
        if final_message is None:
            yield TurnFailed(error="Turn ended without an assistant message")
            return

        yield StateEntered(state=END)
        logger.info("[TURN] Turn complete chat_id=%s new_messages=%d", chat_id, len(new_messages))
        yield TurnCompleted(final_message=final_message, new_messages=new_messages)

    def _convert(self, mode: str, chunk: Any, new_messages: list[BaseMessage]) -> Iterator[TurnEvent]:
        if mode == "custom":
            if not isinstance(chunk, dict):
                return
            kind = chunk.get("event")
            if kind == "state":
                yield StateEntered(state=chunk["state"])
            elif kind == "tool_start":
                yield ToolStarted(call_id=chunk["call_id"], name=chunk["name"], args=chunk.get("args") or {})
            elif kind == "tool_end":
                yield ToolFinished(
                    call_id=chunk["call_id"],
                    name=chunk["name"],
                    content=chunk.get("content"),
                    is_error=bool(chunk.get("is_error")),
                )
            return

        if mode == "messages":
            message, metadata = chunk
            if metadata.get("langgraph_node") != TurnState.AGENT.value or not isinstance(message, AIMessage):
                return
            text = message_text(message.content)
            if text:
                yield ContentDelta(text=text, message_id=message.id)
            return

        if mode == "updates":
            if not isinstance(chunk, dict):
                return
            for update in chunk.values():
                if not isinstance(update, dict):
                    continue
                for message in update.get("messages") or ():
                    new_messages.append(message)
                    yield MessageCompleted(message=message)
