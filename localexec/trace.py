"""Trace log — timestamped execution events to a file and colored stderr."""

from __future__ import annotations

import os
import re
import sys
from datetime import datetime


# ── ANSI color constants ────────────────────────────────────

GRAY = "\033[90m"
GREEN = "\033[32m"
CYAN = "\033[36m"
RED = "\033[31m"
RESET = "\033[0m"


def _color_enabled(stream=None) -> bool:
    """Check whether colored output should be used."""
    if os.environ.get("NO_COLOR") or os.environ.get("LOCALEXEC_NO_COLOR"):
        return False
    stream = stream if stream is not None else sys.stderr
    return hasattr(stream, "isatty") and stream.isatty()


def colorize(text: str, color: str) -> str:
    """Wrap text in ANSI color codes."""
    return f"{color}{text}{RESET}"


_COLOR_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"^(Cancelled|Failed)"), RED),
    (re.compile(r"^Executing"), CYAN),
    (re.compile(r"^Executed"), GREEN),
]


def _detect_color(message: str) -> str | None:
    """Return the ANSI color for a message based on pattern matching."""
    for pattern, color in _COLOR_RULES:
        if pattern.search(message):
            return color
    return None


def format_fields(fields: dict[str, object], limit: int = 0) -> str:
    """Render fields as key=value pairs, newlines escaped. limit=0 means no truncation."""
    parts = []
    for key, value in fields.items():
        text = repr(value)
        if limit > 0 and len(text) > limit:
            text = text[:limit] + f"…({len(text)})"
        parts.append(f"{key}={text}")
    return " ".join(parts)


class TraceLog:
    """Advisory trace sink; never affects execution results.

    Lines go to `path` (appended) when given and to `stream` (stderr by
    default) when `echo` is set.
    """

    def __init__(self, path: str | None = None, echo: bool = True,
                 stream=None, truncate: int = 0, use_color: bool | None = None):
        self.path = path
        self.echo = echo
        self.truncate = truncate
        self._stream = stream if stream is not None else sys.stderr
        self._file = None
        if path:
            os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
            self._file = open(path, "a")
        self._use_color = _color_enabled(self._stream) if use_color is None else use_color

    def trace(self, event: str, **fields) -> None:
        timestamp = datetime.now().strftime("%H:%M:%S")
        rendered = format_fields(fields, self.truncate)
        message = f"{event} {rendered}" if rendered else event

        plain_line = f"[{timestamp}] {message}\n"
        if self._file:
            self._file.write(plain_line)
            self._file.flush()

        if not self.echo:
            return
        if self._use_color:
            ts = colorize(f"[{timestamp}]", GRAY)
            color = _detect_color(message)
            msg = colorize(message, color) if color else message
            print(f"{ts} {msg}", file=self._stream)
        else:
            print(plain_line, end="", file=self._stream)

    def close(self) -> None:
        if self._file:
            self._file.close()
            self._file = None
