"""Tests for the HTTP API."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from langchain_core.messages import AIMessage

from chat_agent_server.auth import identity_headers
from chat_agent_server.main import create_app
from chat_agent_server.store import InMemoryChatStore
from tests.helpers import ScriptedChatModel, make_runtime, make_settings, parse_sse, tool_call_reply

USER = identity_headers("user-1")


def _client(model: ScriptedChatModel, store: InMemoryChatStore | None = None, **settings_overrides) -> TestClient:
    settings = make_settings(**settings_overrides)
    runtime = make_runtime(model=model, **settings_overrides)
    return TestClient(create_app(settings, runtime=runtime, chat_store=store or InMemoryChatStore()))


@pytest.fixture
def calculator_model():
    return ScriptedChatModel(
        responses=[tool_call_reply(("calculator", {"expr": "2+2"})), AIMessage(content="2 + 2 = 4")]
    )


class TestChats:
    """Tests for chat management routes."""

    def test_healthz(self):
        with _client(ScriptedChatModel()) as client:
            response = client.get("/healthz")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_requires_identity(self):
        with _client(ScriptedChatModel()) as client:
            response = client.get("/chats")

        assert response.status_code == 401

    def test_signed_identity_required_when_secret_set(self):
        with _client(ScriptedChatModel(), IDENTITY_SHARED_SECRET="s3cret") as client:
            unsigned = client.get("/chats", headers=USER)
            signed = client.get("/chats", headers=identity_headers("user-1", "s3cret"))

        assert unsigned.status_code == 401
        assert signed.status_code == 200

    def test_create_list_delete(self):
        with _client(ScriptedChatModel()) as client:
            created = client.post("/chats", json={"title": "Math"}, headers=USER)
            chat_id = created.json()["id"]
            listed = client.get("/chats", headers=USER)
            deleted = client.delete(f"/chats/{chat_id}", headers=USER)
            after = client.get("/chats", headers=USER)

        assert created.status_code == 201
        assert [chat["id"] for chat in listed.json()] == [chat_id]
        assert deleted.status_code == 204
        assert after.json() == []

    def test_unknown_chat_is_404(self):
        with _client(ScriptedChatModel()) as client:
            response = client.get("/chats/nope/messages", headers=USER)

        assert response.status_code == 404


class TestTurns:
    """Tests for streamed turns."""

    def test_turn_streams_events_and_persists_messages(self, calculator_model):
        store = InMemoryChatStore()
        with _client(calculator_model, store) as client:
            chat_id = client.post("/chats", json={"title": "Math"}, headers=USER).json()["id"]
            response = client.post(
                f"/chats/{chat_id}/turns",
                json={"message": "What's 2+2 using the calculator tool"},
                headers=USER,
            )
            history = client.get(f"/chats/{chat_id}/messages", headers=USER).json()

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = parse_sse(response.text)
        states = [e["state"] for e in events if e["type"] == "state"]
        assert states == ["agent", "tools", "agent", "__end__"]
        tool_end = next(e for e in events if e["type"] == "tool_end")
        assert tool_end["content"] == "4"
        assert events[-1]["type"] == "done"
        assert "4" in events[-1]["message"]["content"]

        assert [m["role"] for m in history] == ["user", "assistant", "tool", "assistant"]
        assert history[1]["tool_calls"][0]["id"] == history[2]["tool_call_id"] == "call-1"

    def test_follow_up_turn_sees_stored_history(self):
        model = ScriptedChatModel(responses=[AIMessage(content="Hello!"), AIMessage(content="Bye!")])
        with _client(model) as client:
            chat_id = client.post("/chats", json={"title": "Chat"}, headers=USER).json()["id"]
            client.post(f"/chats/{chat_id}/turns", json={"message": "hi"}, headers=USER)
            client.post(f"/chats/{chat_id}/turns", json={"message": "bye"}, headers=USER)

        second_prompt = model.prompts[1]
        # system + hi + Hello! + bye
        assert len(second_prompt) == 4

    def test_failed_turn_is_not_persisted(self):
        model = ScriptedChatModel(error=RuntimeError("provider down"))
        with _client(model) as client:
            chat_id = client.post("/chats", json={"title": "Chat"}, headers=USER).json()["id"]
            response = client.post(f"/chats/{chat_id}/turns", json={"message": "hi"}, headers=USER)
            history = client.get(f"/chats/{chat_id}/messages", headers=USER).json()

        events = parse_sse(response.text)
        assert events[-1] == {"type": "error", "error": "provider down", "kind": "model_provider"}
        assert history == []

    def test_turn_on_unknown_chat_is_404(self):
        with _client(ScriptedChatModel()) as client:
            response = client.post("/chats/nope/turns", json={"message": "hi"}, headers=USER)

        assert response.status_code == 404


class TestInvoke:
    """Tests for the non-streaming invoke endpoint."""

    def test_invoke_returns_full_transcript(self, calculator_model):
        with _client(calculator_model) as client:
            response = client.post(
                "/invoke",
                json={"thread_id": "t-1", "messages": [{"role": "user", "content": "What's 2+2?"}]},
                headers=USER,
            )

        assert response.status_code == 200
        body = response.json()
        assert body["thread_id"] == "t-1"
        assert [m["role"] for m in body["messages"]] == ["user", "assistant", "tool", "assistant"]
        assert body["messages"][2]["content"] == "4"

    def test_tool_message_without_call_id_is_422(self):
        with _client(ScriptedChatModel()) as client:
            response = client.post(
                "/invoke",
                json={"thread_id": "t-1", "messages": [{"role": "tool", "content": "4"}]},
                headers=USER,
            )

        assert response.status_code == 422

    def test_failed_turn_is_500(self):
        with _client(ScriptedChatModel(error=RuntimeError("boom"))) as client:
            response = client.post(
                "/invoke",
                json={"thread_id": "t-1", "messages": [{"role": "user", "content": "hi"}]},
                headers=USER,
            )

        assert response.status_code == 500
        assert response.json()["detail"] == "boom"
