from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Literal

from langchain_core.messages import AIMessage, BaseMessage, SystemMessage, ToolCall, ToolMessage
from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, START, MessagesState, StateGraph
from langgraph.types import StreamWriter

from .messages import add_cache_boundaries, trim_transcript
from .runtime import AgentRuntime

logger = logging.getLogger(__name__)


class TurnState(str, Enum):
    """Nodes of the turn state machine; ``END`` is LangGraph's terminal node."""

    AGENT = "agent"
    TOOLS = "tools"
    END = END


def route_after_agent(state: MessagesState) -> Literal["tools", "__end__"]:
    """AGENT -> TOOLS while the model asks for tools, AGENT -> END otherwise."""

    last_message = state["messages"][-1]
    if isinstance(last_message, AIMessage) and last_message.tool_calls:
        return TurnState.TOOLS.value
    return END


def _content_blocks(message: BaseMessage) -> list[Any]:
    if isinstance(message.content, str):
        return [{"type": "text", "text": message.content}] if message.content else []
    return list(message.content)


def build_prompt(
    system_message: SystemMessage,
    window: list[BaseMessage],
    *,
    cache_annotations: bool = True,
) -> list[BaseMessage]:
    """Prefix the fixed instruction to the window and annotate cache boundaries.

    A system message kept at the head of the window is merged into the fixed
    instruction, since providers accept a single leading system prompt.
    """

    if window and isinstance(window[0], SystemMessage):
        merged = SystemMessage(content=[*_content_blocks(system_message), *_content_blocks(window[0])])
        prompt = [merged, *window[1:]]
    else:
        prompt = [system_message, *window]
    if cache_annotations:
        return add_cache_boundaries(prompt)
    return prompt


def pending_tool_calls(state: MessagesState) -> list[ToolCall]:
    """Tool calls of the last assistant message, one per call id.

    Ids are only unique within one assistant message; providers may reuse an
    id that an earlier turn already answered.
    """

    last_message = state["messages"][-1]
    if not isinstance(last_message, AIMessage):
        return []
    seen: set[str] = set()
    pending: list[ToolCall] = []
    for call in last_message.tool_calls:
        if call["id"] in seen:
            continue
        seen.add(call["id"])
        pending.append(call)
    return pending


def create_graph(runtime: AgentRuntime) -> StateGraph:
    """Build the AGENT <-> TOOLS workflow; callers compile it with a checkpointer."""

    settings = runtime.settings
    registry = runtime.registry
    system_message = runtime.system_message
    model = runtime.model.bind_tools(registry.tools) if len(registry) else runtime.model

    async def call_model(state: MessagesState, config: RunnableConfig, writer: StreamWriter):
        writer({"event": "state", "state": TurnState.AGENT.value})
        window = trim_transcript(
            state["messages"],
            settings.trim_max_messages,
            include_system=settings.trim_include_system,
        )
        prompt = build_prompt(system_message, window, cache_annotations=settings.cache_annotations)
        logger.info("[AGENT] Calling model with %d message(s) (%d in history)", len(prompt), len(state["messages"]))
        response = await model.ainvoke(prompt, config=config)
        if isinstance(response, AIMessage) and response.tool_calls:
            logger.info("[AGENT] Model requested tools: %s", [call["name"] for call in response.tool_calls])
        return {"messages": [response]}

    async def call_tools(state: MessagesState, config: RunnableConfig, writer: StreamWriter):
        writer({"event": "state", "state": TurnState.TOOLS.value})

        async def run(call: ToolCall) -> ToolMessage:
            writer({"event": "tool_start", "call_id": call["id"], "name": call["name"], "args": call.get("args") or {}})
            message = await registry.ainvoke(call, config=config)
            writer(
                {
                    "event": "tool_end",
                    "call_id": call["id"],
                    "name": call["name"],
                    "content": message.content,
                    "is_error": message.status == "error",
                }
            )
            return message

        # Calls from one assistant message are independent; all must finish before AGENT resumes.
        results = await asyncio.gather(*(run(call) for call in pending_tool_calls(state)))
        return {"messages": list(results)}

    workflow = StateGraph(MessagesState)
    workflow.add_node(TurnState.AGENT.value, call_model)
    workflow.add_node(TurnState.TOOLS.value, call_tools)
    workflow.add_edge(START, TurnState.AGENT.value)
    workflow.add_conditional_edges(TurnState.AGENT.value, route_after_agent, [TurnState.TOOLS.value, END])
    workflow.add_edge(TurnState.TOOLS.value, TurnState.AGENT.value)
    return workflow
