import os
import sys
from datetime import datetime, timezone
from typing import Any

TRUTHY_STRINGS = ("1", "true", "yes", "y")


def log(message: str) -> None:
    # stdout carries the protocol, so diagnostics only ever go to stderr.
    print(f"[RAILS-MCP {os.getpid()}] {iso_now()} {message}", file=sys.stderr, flush=True)


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def truncate_for_log(text: Any, limit: int = 200) -> str:
    if text is None:
        return ""
    text = str(text)
    if len(text) <= limit:
        return text
    return f"{text[:limit]}…({len(text) - limit} more chars)"


def clamp_int(value: Any, default: int, min_value: int, max_value: int) -> int:
    if value is None or isinstance(value, bool):
        numeric = default
    else:
        try:
            numeric = int(value)
        except (TypeError, ValueError, OverflowError):
            numeric = default
    if numeric < min_value:
        return min_value
    if numeric > max_value:
        return max_value
    return numeric


def is_truthy(value: Any) -> bool:
    """Loose boolean coercion for tool arguments.

    Booleans pass through, ``None`` is false, strings are true only for one of
    ``1/true/yes/y`` (case-insensitive), anything else uses ``bool(value)``.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_STRINGS
    return bool(value)


def safe_string(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()
