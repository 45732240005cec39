from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Iterable

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import StreamingResponse
from langchain_core.messages import BaseMessage, HumanMessage

from .auth import require_user_id
from .events import TurnCompleted, TurnEvent, TurnFailed
from .executor import TurnExecutor
from .schemas import (
    ChatSummary,
    CreateChatRequest,
    HealthResponse,
    InvokeRequest,
    InvokeResponse,
    MessageEnvelope,
    TurnRequest,
)
from .store import ChatStore

router = APIRouter()

logger = logging.getLogger(__name__)


def get_executor(request: Request) -> TurnExecutor:
    return request.app.state.executor


def get_chat_store(request: Request) -> ChatStore:
    return request.app.state.chat_store


def _as_langchain_messages(raw: Iterable[MessageEnvelope]) -> list[BaseMessage]:
    messages = []
    for envelope in raw:
        try:
            messages.append(envelope.to_langchain())
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    return messages


def _as_envelopes(messages: Iterable[BaseMessage]) -> list[MessageEnvelope]:
    return [MessageEnvelope.from_langchain(message) for message in messages]


def format_sse(event: TurnEvent) -> str:
    payload = json.dumps(event.to_dict(), ensure_ascii=False, default=str)
    return f"event: {event.type}\ndata: {payload}\n\n"


@router.get("/healthz", response_model=HealthResponse)
def healthcheck() -> HealthResponse:
    return HealthResponse()


@router.get("/chats", response_model=list[ChatSummary])
def list_chats(
    user_id: str = Depends(require_user_id),
    store: ChatStore = Depends(get_chat_store),
) -> list[ChatSummary]:
    return store.list_chats(user_id)


@router.post("/chats", response_model=ChatSummary, status_code=status.HTTP_201_CREATED)
def create_chat(
    payload: CreateChatRequest,
    user_id: str = Depends(require_user_id),
    store: ChatStore = Depends(get_chat_store),
) -> ChatSummary:
    return store.create_chat(user_id, payload.title)


@router.delete("/chats/{chat_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_chat(
    chat_id: str,
    user_id: str = Depends(require_user_id),
    store: ChatStore = Depends(get_chat_store),
) -> Response:
    store.delete_chat(user_id, chat_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/chats/{chat_id}/messages", response_model=list[MessageEnvelope])
def list_messages(
    chat_id: str,
    user_id: str = Depends(require_user_id),
    store: ChatStore = Depends(get_chat_store),
) -> list[MessageEnvelope]:
    return store.list_messages(user_id, chat_id)


@router.post("/chats/{chat_id}/turns")
async def run_turn(
    chat_id: str,
    payload: TurnRequest,
    user_id: str = Depends(require_user_id),
    store: ChatStore = Depends(get_chat_store),
    executor: TurnExecutor = Depends(get_executor),
) -> StreamingResponse:
    """Run one turn on the stored transcript and stream its events as server-sent events.

    The new human message and every message the turn produced are persisted
    only when the turn completes.
    """

    # Raises ChatNotFound (404) before the stream opens.
    history = store.list_messages(user_id, chat_id)
    human = HumanMessage(content=payload.message)
    transcript = [*_as_langchain_messages(history), human]

    async def stream() -> AsyncIterator[str]:
        async for event in executor.run_turn(transcript, chat_id):
            if isinstance(event, TurnCompleted):
                store.append_messages(user_id, chat_id, _as_envelopes([human, *event.new_messages]))
            yield format_sse(event)

    return StreamingResponse(
        stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/invoke", response_model=InvokeResponse)
async def invoke(
    payload: InvokeRequest,
    user_id: str = Depends(require_user_id),
    executor: TurnExecutor = Depends(get_executor),
) -> InvokeResponse:
    logger.info("Invoke thread_id=%s user_id=%s", payload.thread_id, user_id)
    transcript = _as_langchain_messages(payload.messages)
    new_messages: list[BaseMessage] = []
    async for event in executor.run_turn(transcript, payload.thread_id):
        if isinstance(event, TurnFailed):
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=event.error)
        if isinstance(event, TurnCompleted):
            new_messages = event.new_messages

    return InvokeResponse(
        thread_id=payload.thread_id,
        messages=[*payload.messages, *_as_envelopes(new_messages)],
    )
