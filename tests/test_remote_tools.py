"""Tests for the remote tool backend client."""

from __future__ import annotations

import json

import httpx
import pytest
from pydantic import ValidationError

from chat_agent_server.errors import RemoteToolError
from chat_agent_server.tools import ToolRegistry
from chat_agent_server.tools.remote import RemoteToolBackend, args_model_from_schema, discover_remote_tools
from tests.helpers import make_settings

CATALOGUE = {
    "tools": [
        {
            "name": "search_web",
            "description": "Search the web.",
            "input_schema": {
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Search terms"},
                    "limit": {"type": "integer"},
                },
                "required": ["query"],
            },
        },
        {"name": "", "description": "broken"},
    ]
}


def _backend(handler, **kwargs) -> RemoteToolBackend:
    return RemoteToolBackend("https://tools.example.com/", transport=httpx.MockTransport(handler), **kwargs)


class TestArgsModelFromSchema:
    """Tests for args_model_from_schema."""

    def test_required_and_optional_fields(self):
        model = args_model_from_schema("search_web", CATALOGUE["tools"][0]["input_schema"])

        parsed = model(query="python")
        assert parsed.query == "python"
        assert parsed.limit is None
        assert model.__name__ == "SearchWebInput"

    def test_missing_required_field(self):
        model = args_model_from_schema("search_web", CATALOGUE["tools"][0]["input_schema"])

        with pytest.raises(ValidationError):
            model(limit=3)

    def test_empty_schema(self):
        model = args_model_from_schema("noop", None)

        assert model().model_dump() == {}


class TestRemoteToolBackend:
    """Tests for RemoteToolBackend."""

    @pytest.mark.asyncio
    async def test_discovery_skips_malformed_entries(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/tools"
            return httpx.Response(200, json=CATALOGUE)

        backend = _backend(handler)
        tools = await discover_remote_tools(backend)
        await backend.aclose()

        assert [tool.name for tool in tools] == ["search_web"]
        assert tools[0].description == "Search the web."

    @pytest.mark.asyncio
    async def test_invocation_sends_input_and_api_key(self):
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json=CATALOGUE)
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"output": {"results": ["https://python.org"]}})

        backend = _backend(handler, api_key="secret-key")
        tools = await discover_remote_tools(backend)

        result = await tools[0].ainvoke({"query": "python"})
        await backend.aclose()

        assert result == {"results": ["https://python.org"]}
        assert seen["path"] == "/tools/search_web/invoke"
        assert seen["auth"] == "Bearer secret-key"
        assert seen["body"] == {"input": {"query": "python"}}

    @pytest.mark.asyncio
    async def test_error_payload_raises(self):
        backend = _backend(lambda request: httpx.Response(200, json={"error": "quota exceeded"}))

        with pytest.raises(RemoteToolError) as exc_info:
            await backend.invoke("search_web", {"query": "x"})
        await backend.aclose()

        assert "quota exceeded" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_http_error_status_raises(self):
        backend = _backend(lambda request: httpx.Response(502, text="bad gateway"))

        with pytest.raises(RemoteToolError) as exc_info:
            await backend.invoke("search_web", {"query": "x"})
        await backend.aclose()

        assert "502" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        backend = _backend(handler)

        with pytest.raises(RemoteToolError) as exc_info:
            await backend.list_tools()
        await backend.aclose()

        assert "Could not reach tool backend" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_registry_folds_remote_failure(self):
        """A failing remote call should become an error tool message, not an exception."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json=CATALOGUE)
            return httpx.Response(500, text="boom")

        backend = _backend(handler)
        registry = ToolRegistry(await discover_remote_tools(backend))

        message = await registry.ainvoke(
            {"name": "search_web", "args": {"query": "python"}, "id": "call-1", "type": "tool_call"}
        )
        await backend.aclose()

        assert message.status == "error"
        assert message.tool_call_id == "call-1"
        assert "HTTP 500" in json.loads(message.content)["error"]

    def test_from_settings_requires_url(self):
        assert RemoteToolBackend.from_settings(make_settings()) is None
