"""Client for the remote tool backend.

The backend exposes a catalogue of tools over HTTP:

- ``GET /tools`` returns ``{"tools": [{"name", "description", "input_schema"}]}``
- ``POST /tools/{name}/invoke`` takes ``{"input": {...}}`` and answers with
  ``{"output": ...}`` or ``{"error": ...}``

Each catalogue entry is wrapped as a LangChain ``StructuredTool`` whose args
schema is a pydantic model derived from the entry's JSON schema, so arguments
are validated before any request leaves the process.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

import httpx
from langchain_core.tools import BaseTool, StructuredTool
from pydantic import BaseModel, Field, create_model

from ..config import Settings
from ..errors import RemoteToolError

logger = logging.getLogger(__name__)

_JSON_TYPES: Dict[str, Any] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
    "array": list,
    "object": dict,
}


def args_model_from_schema(tool_name: str, schema: Dict[str, Any] | None) -> type[BaseModel]:
    """Build a pydantic model for the top-level properties of a JSON schema."""

    schema = schema or {}
    properties: Dict[str, Any] = schema.get("properties") or {}
    required = set(schema.get("required") or ())
    fields: Dict[str, Any] = {}
    for prop, prop_schema in properties.items():
        if not prop.isidentifier() or prop.startswith("_"):
            logger.warning("[TOOLS] Skipping unsupported property %r of remote tool %s", prop, tool_name)
            continue
        py_type = _JSON_TYPES.get(prop_schema.get("type"), Any)
        description = prop_schema.get("description")
        if prop in required:
            fields[prop] = (py_type, Field(..., description=description))
        else:
            fields[prop] = (Optional[py_type], Field(default=prop_schema.get("default"), description=description))

    model_name = "".join(part.capitalize() for part in re.split(r"[^0-9a-zA-Z]+", tool_name) if part) or "Remote"
    return create_model(f"{model_name}Input", **fields)


class RemoteToolBackend:
    """Async HTTP client for tool discovery and invocation."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "RemoteToolBackend | None":
        if not settings.tool_backend_url:
            return None
        return cls(
            settings.tool_backend_url,
            api_key=settings.tool_backend_api_key,
            timeout=settings.tool_backend_timeout,
        )

    async def list_tools(self) -> List[Dict[str, Any]]:
        try:
            response = await self._client.get("/tools")
        except httpx.HTTPError as exc:
            raise RemoteToolError(f"Could not reach tool backend: {exc}") from exc
        if response.status_code != 200:
            raise RemoteToolError(
                f"Tool discovery failed with HTTP {response.status_code}: {response.text[:200]}"
            )
        tools = response.json().get("tools")
        if not isinstance(tools, list):
            raise RemoteToolError("Tool backend response is missing the 'tools' list.")
        return tools

    async def invoke(self, name: str, payload: Dict[str, Any]) -> Any:
        try:
            response = await self._client.post(f"/tools/{name}/invoke", json={"input": payload})
        except httpx.HTTPError as exc:
            raise RemoteToolError(f"Could not reach tool backend: {exc}") from exc

        if response.status_code != 200:
            raise RemoteToolError(f"Tool '{name}' failed with HTTP {response.status_code}: {response.text[:200]}")
        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteToolError(f"Invalid response from tool backend: {exc}") from exc

        if body.get("error"):
            raise RemoteToolError(str(body["error"]))
        return body.get("output")

    def as_tool(self, entry: Dict[str, Any]) -> BaseTool:
        name = entry["name"]
        args_schema = args_model_from_schema(name, entry.get("input_schema"))

        async def _invoke(**kwargs: Any) -> Any:
            # Drop unset optionals so the backend applies its own defaults.
            payload = {key: value for key, value in kwargs.items() if value is not None}
            return await self.invoke(name, payload)

        return StructuredTool.from_function(
            coroutine=_invoke,
            name=name,
            description=entry.get("description") or f"Remote tool '{name}'.",
            args_schema=args_schema,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


async def discover_remote_tools(backend: RemoteToolBackend) -> List[BaseTool]:
    """Fetch the backend catalogue once and wrap every entry as a LangChain tool."""

    entries = await backend.list_tools()
    tools: List[BaseTool] = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("name"):
            logger.warning("[TOOLS] Ignoring malformed tool entry: %s", str(entry)[:200])
            continue
        tools.append(backend.as_tool(entry))
    logger.info("[TOOLS] Discovered %d remote tool(s) at %s", len(tools), backend.base_url)
    return tools
