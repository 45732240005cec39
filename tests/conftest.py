"""Shared test fixtures and configuration."""

from __future__ import annotations

import pytest
from unittest.mock import MagicMock

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from chat_agent_server.store import InMemoryChatStore
from tests.helpers import make_settings


@pytest.fixture
def settings():
    """Settings with defaults, isolated from the local environment file."""
    return make_settings()


@pytest.fixture
def chat_store():
    return InMemoryChatStore()


@pytest.fixture
def mock_firestore_client():
    """Create a mock Firestore client."""
    client = MagicMock()
    return client


@pytest.fixture
def tool_transcript():
    """Multi-turn transcript with a completed tool exchange in the middle."""
    return [
        SystemMessage(content="You are a test assistant."),
        HumanMessage(content="hi"),
        AIMessage(content="Hello! How can I help?"),
        HumanMessage(content="What's 2+2 using the calculator tool"),
        AIMessage(
            content="",
            tool_calls=[{"name": "calculator", "args": {"expr": "2+2"}, "id": "call-1", "type": "tool_call"}],
        ),
        ToolMessage(content="4", tool_call_id="call-1"),
        AIMessage(content="2 + 2 = 4"),
        HumanMessage(content="And 3*3?"),
        AIMessage(
            content="",
            tool_calls=[{"name": "calculator", "args": {"expr": "3*3"}, "id": "call-2", "type": "tool_call"}],
        ),
        ToolMessage(content="9", tool_call_id="call-2"),
        AIMessage(content="3 * 3 = 9"),
        HumanMessage(content="thanks"),
    ]
