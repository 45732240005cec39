from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from langchain_core.tools import ToolException, tool


@tool
def current_time(tz: str = "UTC") -> str:
    """Return the current date and time (ISO8601) in the given IANA timezone, e.g. "Europe/Paris"."""

    if tz.upper() == "UTC":
        return datetime.now(timezone.utc).isoformat()
    try:
        zone = ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ToolException(f"Unknown timezone '{tz}'") from exc
    return datetime.now(zone).isoformat()
