"""Fixed system instruction for the agent, composed from ``.txt`` sections.

``SYSTEM_PROMPT`` in the environment replaces the composed instruction.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

PROMPT_DIR = Path(__file__).resolve().parent
PROMPT_SECTION_ORDER = ("base", "tools", "formatting")


def _read(name: str) -> str:
    section = PROMPT_DIR / f"{name}.txt"
    if not section.is_file():
        logger.warning("Skipping missing prompt section %s", section.name)
        return ""
    return section.read_text(encoding="utf-8").strip()


@lru_cache
def build_system_prompt(sections: tuple[str, ...] = PROMPT_SECTION_ORDER) -> str:
    return "\n\n".join(text for text in map(_read, sections) if text)


def get_system_prompt(override: str | None = None) -> str:
    """Return ``override`` when it has content, otherwise the composed sections."""
    if override and override.strip():
        return override.strip()
    return build_system_prompt()


__all__ = ["PROMPT_SECTION_ORDER", "build_system_prompt", "get_system_prompt"]
