"""Data classes for execution requests, results and diagnostics."""

from __future__ import annotations

from dataclasses import dataclass

RESULT_ID = "-"


@dataclass(frozen=True)
class ExecutionRequest:
    command: str
    working_dir: str | None = None    # None = inherit caller's cwd


@dataclass(frozen=True)
class ExecutionResult:
    output: str                       # decoded stdout
    error: str                        # decoded stderr
    id: str = RESULT_ID


@dataclass(frozen=True)
class Diagnostic:
    """An attribute-scoped error surfaced to the caller."""
    category: str                     # empty_command, executable_not_found, ...
    summary: str
    detail: str
    attribute: str | None = None      # attribute path, e.g. "command"
    severity: str = "error"

    def format(self) -> str:
        lines = [f"Error: {self.summary}"]
        if self.attribute:
            lines.append(f"  with attribute: {self.attribute}")
        lines.append("")
        lines.extend(f"  {line}" if line else "" for line in self.detail.splitlines())
        return "\n".join(lines)
