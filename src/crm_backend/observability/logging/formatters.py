"""Renderers closing the structlog processor chain."""

import json
from datetime import UTC, datetime
from typing import Any

from colorama import Fore, Style, just_fix_windows_console

just_fix_windows_console()

# Keys rendered in fixed positions; everything else is context.
_HEADER_KEYS = ("timestamp", "level", "logger", "correlation_id", "event")

_LEVEL_COLORS = {
    "DEBUG": Fore.CYAN,
    "INFO": Fore.GREEN,
    "WARNING": Fore.YELLOW,
    "ERROR": Fore.RED,
    "CRITICAL": Fore.RED + Style.BRIGHT,
}


def _context_items(event_dict: dict[str, Any]) -> list[tuple[str, str]]:
    items = []
    for key, value in event_dict.items():
        if key in _HEADER_KEYS:
            continue
        if isinstance(value, dict | list | tuple):
            value = json.dumps(value, default=str)
        items.append((key, str(value)))
    return items


class JSONFormatter:
    """One JSON object per event, for log shippers."""

    def __init__(self, ensure_ascii: bool = False, indent: int | None = None):
        self.ensure_ascii = ensure_ascii
        self.indent = indent

    def __call__(
        self, logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> str:
        event_dict.setdefault("timestamp", datetime.now(UTC).isoformat())
        event_dict["level"] = method_name.upper()
        logger_name = getattr(logger, "name", None)
        if logger_name:
            event_dict.setdefault("logger", logger_name)

        return json.dumps(
            event_dict, ensure_ascii=self.ensure_ascii, indent=self.indent, default=str
        )


class ConsoleFormatter:
    """Human-readable line, optionally coloured, for local development."""

    def __init__(self, colors: bool = True, show_timestamp: bool = True):
        self.colors = colors
        self.show_timestamp = show_timestamp

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{Style.RESET_ALL}" if self.colors else text

    def __call__(
        self, logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> str:
        level = method_name.upper()
        parts = []

        if self.show_timestamp and "timestamp" in event_dict:
            parts.append(f"[{event_dict['timestamp']}]")
        parts.append(self._paint(level, _LEVEL_COLORS.get(level, "")))
        if "logger" in event_dict:
            parts.append(self._paint(f"[{event_dict['logger']}]", Fore.BLUE))
        if "correlation_id" in event_dict:
            parts.append(self._paint(f"[{event_dict['correlation_id']}]", Fore.MAGENTA))
        if event_dict.get("event"):
            parts.append(str(event_dict["event"]))

        context = _context_items(event_dict)
        if context:
            parts.append(", ".join(f"{key}={value}" for key, value in context))

        return " ".join(parts)


class StructuredFormatter:
    """``key=value`` pairs joined by a separator, for grep-friendly files."""

    def __init__(self, separator: str = " | ", key_value_separator: str = "="):
        self.separator = separator
        self.key_value_separator = key_value_separator

    def __call__(
        self, logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> str:
        pairs: list[tuple[str, Any]] = []
        if "timestamp" in event_dict:
            pairs.append(("timestamp", event_dict["timestamp"]))
        pairs.append(("level", method_name.upper()))
        for key in ("logger", "correlation_id"):
            if key in event_dict:
                pairs.append((key, event_dict[key]))
        if "event" in event_dict:
            pairs.append(("message", event_dict["event"]))
        pairs.extend(_context_items(event_dict))

        kv = self.key_value_separator
        return self.separator.join(f"{key}{kv}{value}" for key, value in pairs)
