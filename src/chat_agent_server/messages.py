"""Conversation window helpers: trimming and cache-boundary annotation.

Both helpers treat the caller's transcript as read-only. Trimming returns a
suffix of the same message objects; annotation returns a new list in which
the annotated entries are deep copies.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage, trim_messages

logger = logging.getLogger(__name__)

CACHE_CONTROL: dict[str, str] = {"type": "ephemeral"}


def trim_transcript(
    messages: Sequence[BaseMessage],
    max_messages: int,
    *,
    include_system: bool = True,
) -> list[BaseMessage]:
    """Keep the most recent whole messages that fit in ``max_messages``.

    The window always starts on a human message (after the optional leading
    system message), so a tool call is never separated from its result. When
    the budget cannot hold a single human message, the window falls back to
    the latest human message and everything after it.
    """

    if not messages:
        return []

    trimmed = trim_messages(
        list(messages),
        max_tokens=max(max_messages, 0),
        token_counter=len,
        strategy="last",
        include_system=include_system,
        allow_partial=False,
        start_on="human",
    )
    if any(isinstance(message, HumanMessage) for message in trimmed):
        return trimmed

    last_human = _last_index_of(messages, HumanMessage)
    if last_human is None:
        logger.warning("[TRIM] Transcript has no human message; sending it untrimmed")
        return list(messages)

    window = list(messages[last_human:])
    if include_system and last_human > 0 and isinstance(messages[0], SystemMessage):
        window.insert(0, messages[0])
    logger.info(
        "[TRIM] Budget of %d message(s) too small; keeping %d message(s) from the latest human message",
        max_messages,
        len(window),
    )
    return window


def _last_index_of(messages: Sequence[BaseMessage], kind: type[BaseMessage]) -> int | None:
    for index in range(len(messages) - 1, -1, -1):
        if isinstance(messages[index], kind):
            return index
    return None


def is_cache_marked(message: BaseMessage) -> bool:
    content = message.content
    if not isinstance(content, list) or not content:
        return False
    last = content[-1]
    return isinstance(last, dict) and "cache_control" in last


def mark_cache_boundary(message: BaseMessage) -> BaseMessage:
    """Return a copy of ``message`` whose last content block ends a cacheable prefix."""

    marked = message.model_copy(deep=True)
    content = marked.content
    if isinstance(content, str):
        if not content:
            # Providers reject empty text blocks, so there is nothing to mark.
            return marked
        marked.content = [{"type": "text", "text": content, "cache_control": dict(CACHE_CONTROL)}]
        return marked

    if not content:
        return marked

    blocks: list[Any] = list(content)
    last = blocks[-1]
    if isinstance(last, str):
        last = {"type": "text", "text": last}
    else:
        last = dict(last)
    last.setdefault("cache_control", dict(CACHE_CONTROL))
    blocks[-1] = last
    marked.content = blocks
    return marked


def add_cache_boundaries(messages: Sequence[BaseMessage]) -> list[BaseMessage]:
    """Annotate cache boundaries for turn-by-turn conversations.

    Marks a leading system message, the last message, and the second human
    message counted from the end. Returns a new list; marked entries are
    copies and the input messages are left untouched.
    """

    annotated = list(messages)
    if not annotated:
        return annotated

    targets = {len(annotated) - 1}
    if isinstance(annotated[0], SystemMessage):
        targets.add(0)

    humans_seen = 0
    for index in range(len(annotated) - 1, -1, -1):
        if isinstance(annotated[index], HumanMessage):
            humans_seen += 1
            if humans_seen == 2:
                targets.add(index)
                break

    for index in targets:
        if not is_cache_marked(annotated[index]):
            annotated[index] = mark_cache_boundary(annotated[index])
    return annotated


def message_text(content: Any) -> str:
    """Extract plain text from message content (string or list of blocks)."""

    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") in ("text", "text_delta"):
                parts.append(block.get("text", ""))
        return "".join(parts)
    return ""
