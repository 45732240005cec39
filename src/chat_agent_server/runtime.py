"""Process-wide agent runtime: settings, chat model, tools and system instruction.

Built once at startup by ``build_runtime`` and shared read-only by every turn.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import SystemMessage
from langchain_core.tools import BaseTool
from langchain_google_genai import ChatGoogleGenerativeAI

from .config import Settings, get_settings
from .messages import mark_cache_boundary
from .prompts import get_system_prompt
from .tools import ToolRegistry, get_builtin_tools
from .tools.remote import RemoteToolBackend, discover_remote_tools

logger = logging.getLogger(__name__)


def build_model(settings: Settings) -> BaseChatModel:
    """Instantiate the configured chat model provider."""

    if settings.llm_provider == "google":
        if not settings.google_api_key:
            raise RuntimeError("No Gemini API key configured (GOOGLE_API_KEY)")
        return ChatGoogleGenerativeAI(
            model=settings.llm_model,
            api_key=settings.google_api_key,
            temperature=settings.llm_temperature,
            max_output_tokens=settings.llm_max_tokens,
            timeout=settings.llm_timeout,
            max_retries=settings.llm_max_retries,
            disable_streaming=not settings.llm_streaming,
        )

    if not settings.anthropic_api_key:
        raise RuntimeError("No Anthropic API key configured (ANTHROPIC_API_KEY)")
    return ChatAnthropic(
        model=settings.llm_model,
        api_key=settings.anthropic_api_key,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout=settings.llm_timeout,
        max_retries=settings.llm_max_retries,
        streaming=settings.llm_streaming,
    )


def build_system_message(settings: Settings) -> SystemMessage:
    message = SystemMessage(content=get_system_prompt(override=settings.system_prompt))
    if settings.cache_annotations:
        # The fixed instruction is identical for every request, so it is always a cache boundary.
        return mark_cache_boundary(message)  # type: ignore[return-value]
    return message


@dataclass
class AgentRuntime:
    settings: Settings
    model: BaseChatModel
    registry: ToolRegistry
    system_message: SystemMessage
    remote_backend: RemoteToolBackend | None = field(default=None, repr=False)

    async def aclose(self) -> None:
        if self.remote_backend is not None:
            await self.remote_backend.aclose()


def create_runtime(
    settings: Settings,
    *,
    model: BaseChatModel | None = None,
    tools: Sequence[BaseTool] = (),
    remote_backend: RemoteToolBackend | None = None,
) -> AgentRuntime:
    """Assemble a runtime from already resolved parts (no network I/O)."""

    all_tools: list[BaseTool] = []
    if settings.enable_builtin_tools:
        all_tools.extend(get_builtin_tools())
    all_tools.extend(tools)
    registry = ToolRegistry(all_tools, failure_policy=settings.tool_failure_policy)
    return AgentRuntime(
        settings=settings,
        model=model if model is not None else build_model(settings),
        registry=registry,
        system_message=build_system_message(settings),
        remote_backend=remote_backend,
    )


async def build_runtime(
    settings: Settings | None = None,
    *,
    model: BaseChatModel | None = None,
) -> AgentRuntime:
    """Create the runtime and discover remote tools once."""

    resolved = settings or get_settings()
    backend = RemoteToolBackend.from_settings(resolved)
    remote_tools: list[BaseTool] = []
    if backend is not None:
        try:
            remote_tools = await discover_remote_tools(backend)
        except Exception:
            await backend.aclose()
            raise

    runtime = create_runtime(resolved, model=model, tools=remote_tools, remote_backend=backend)
    logger.info(
        "Agent runtime ready: provider=%s model=%s tools=%s",
        resolved.llm_provider,
        resolved.llm_model,
        [tool.name for tool in runtime.registry.tools],
    )
    return runtime
