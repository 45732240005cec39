"""Chat and message persistence, keyed by the authenticated user.

The turn executor never writes here; the HTTP layer loads history before a
turn and appends the turn's messages once it completes.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import firebase_admin
from firebase_admin import credentials, firestore

from .config import Settings
from .errors import ChatNotFound
from .schemas import ChatSummary, MessageEnvelope

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ChatStore(ABC):
    """Persistence operations the server needs for chats and their messages."""

    @abstractmethod
    def list_chats(self, user_id: str) -> List[ChatSummary]:
        """Return the user's chats, newest first."""

    @abstractmethod
    def create_chat(self, user_id: str, title: str) -> ChatSummary:
        """Create an empty chat owned by ``user_id``."""

    @abstractmethod
    def delete_chat(self, user_id: str, chat_id: str) -> None:
        """Delete a chat and all of its messages."""

    @abstractmethod
    def list_messages(self, user_id: str, chat_id: str) -> List[MessageEnvelope]:
        """Return the chat transcript in chronological order."""

    @abstractmethod
    def append_messages(self, user_id: str, chat_id: str, messages: Sequence[MessageEnvelope]) -> None:
        """Append messages to the end of the chat transcript."""


class InMemoryChatStore(ChatStore):
    """Process-local store for development and tests."""

    def __init__(self) -> None:
        self._chats: Dict[str, ChatSummary] = {}
        self._messages: Dict[str, List[MessageEnvelope]] = {}
        self._lock = threading.Lock()

    def _owned(self, user_id: str, chat_id: str) -> ChatSummary:
        chat = self._chats.get(chat_id)
        if chat is None or chat.user_id != user_id:
            raise ChatNotFound(chat_id)
        return chat

    def list_chats(self, user_id: str) -> List[ChatSummary]:
        with self._lock:
            chats = [chat for chat in self._chats.values() if chat.user_id == user_id]
        # Insertion order breaks ties between chats created in the same millisecond.
        ranked = sorted(enumerate(chats), key=lambda item: (item[1].created_at, item[0]), reverse=True)
        return [chat for _, chat in ranked]

    def create_chat(self, user_id: str, title: str) -> ChatSummary:
        chat = ChatSummary(id=uuid.uuid4().hex, title=title, user_id=user_id, created_at=_now_ms())
        with self._lock:
            self._chats[chat.id] = chat
            self._messages[chat.id] = []
        return chat

    def delete_chat(self, user_id: str, chat_id: str) -> None:
        with self._lock:
            self._owned(user_id, chat_id)
            del self._chats[chat_id]
            self._messages.pop(chat_id, None)

    def list_messages(self, user_id: str, chat_id: str) -> List[MessageEnvelope]:
        with self._lock:
            self._owned(user_id, chat_id)
            return list(self._messages[chat_id])

    def append_messages(self, user_id: str, chat_id: str, messages: Sequence[MessageEnvelope]) -> None:
        with self._lock:
            self._owned(user_id, chat_id)
            self._messages[chat_id].extend(messages)


def _service_account_path(settings: Settings) -> Optional[Path]:
    if settings.firebase_service_account_key:
        path = Path(settings.firebase_service_account_key).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Firebase service account file not found: {path}")
        return path
    return None


def initialize_firebase(settings: Settings) -> firebase_admin.App:
    if firebase_admin._apps:
        return firebase_admin.get_app()

    svc_path = _service_account_path(settings)
    if svc_path:
        cred = credentials.Certificate(str(svc_path))
        return firebase_admin.initialize_app(cred)

    # Fallback to application default credentials
    cred = credentials.ApplicationDefault()
    return firebase_admin.initialize_app(cred)


class FirestoreChatStore(ChatStore):
    """Firestore layout: ``users/{userId}/chats/{chatId}/messages/{messageId}``."""

    def __init__(self, client: Any) -> None:
        self.db = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "FirestoreChatStore":
        initialize_firebase(settings)
        return cls(firestore.client())

    def _chat_ref(self, user_id: str, chat_id: str):
        return self.db.collection("users").document(user_id).collection("chats").document(chat_id)

    def _owned_ref(self, user_id: str, chat_id: str):
        chat_ref = self._chat_ref(user_id, chat_id)
        if not chat_ref.get().exists:
            raise ChatNotFound(chat_id)
        return chat_ref

    def list_chats(self, user_id: str) -> List[ChatSummary]:
        query = (
            self.db.collection("users")
            .document(user_id)
            .collection("chats")
            .order_by("createdAt", direction=firestore.Query.DESCENDING)
        )
        chats = []
        for doc in query.stream():
            data = doc.to_dict() or {}
            chats.append(
                ChatSummary(
                    id=data.get("id") or doc.id,
                    title=data.get("title", ""),
                    user_id=user_id,
                    created_at=int(data.get("createdAt") or 0),
                )
            )
        return chats

    def create_chat(self, user_id: str, title: str) -> ChatSummary:
        chat = ChatSummary(id=uuid.uuid4().hex, title=title, user_id=user_id, created_at=_now_ms())
        self._chat_ref(user_id, chat.id).set(
            {"id": chat.id, "title": chat.title, "userId": user_id, "createdAt": chat.created_at}
        )
        logger.info("Created chat %s for user %s", chat.id, user_id)
        return chat

    def delete_chat(self, user_id: str, chat_id: str) -> None:
        chat_ref = self._owned_ref(user_id, chat_id)
        batch = self.db.batch()
        deleted = 0
        for doc in chat_ref.collection("messages").stream():
            batch.delete(doc.reference)
            deleted += 1
        batch.delete(chat_ref)
        batch.commit()
        logger.info("Deleted chat %s with %d message(s)", chat_id, deleted)

    def list_messages(self, user_id: str, chat_id: str) -> List[MessageEnvelope]:
        chat_ref = self._owned_ref(user_id, chat_id)
        docs = chat_ref.collection("messages").order_by("seq").stream()
        return [MessageEnvelope.model_validate((doc.to_dict() or {}).get("message") or {}) for doc in docs]

    def append_messages(self, user_id: str, chat_id: str, messages: Sequence[MessageEnvelope]) -> None:
        chat_ref = self._owned_ref(user_id, chat_id)
        created_at = _now_ms()
        batch = self.db.batch()
        for offset, message in enumerate(messages):
            # seq keeps chronological order for messages written in the same millisecond.
            seq = created_at * 1000 + offset
            batch.set(
                chat_ref.collection("messages").document(uuid.uuid4().hex),
                {"message": message.model_dump(), "seq": seq, "createdAt": created_at},
            )
        batch.commit()
        logger.info("Appended %d message(s) to chat %s", len(messages), chat_id)


def create_chat_store(settings: Settings) -> ChatStore:
    """Build a chat store based on configuration."""

    if settings.chat_store_backend == "firestore":
        return FirestoreChatStore.from_settings(settings)
    return InMemoryChatStore()
