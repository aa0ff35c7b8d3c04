"""Data source adapter — decodes attribute config, runs the executor, returns state.

Callers hand over a raw attribute mapping (as written in config) and get back
either state or diagnostics, never both:

    command      required  the command to execute
    working_dir  optional  working directory, defaults to the current one
    output       computed  standard output
    error        computed  standard error
    id           computed  always "-"
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from localexec.errors import LocalExecError
from localexec.executor import CommandExecutor
from localexec.models import Diagnostic, ExecutionRequest, ExecutionResult

DESCRIPTION = "Executes a local command, just like `local-exec`, and returns its output."

SCHEMA_ATTRIBUTES = {
    "command": {
        "type": "string",
        "description": "The command to execute.",
        "required": True,
    },
    "working_dir": {
        "type": "string",
        "description": "Working directory of the program. Defaults to the current directory.",
        "optional": True,
    },
    "output": {
        "type": "string",
        "description": "The standard output of the executed command.",
        "computed": True,
    },
    "error": {
        "type": "string",
        "description": "The standard error output of the executed command.",
        "computed": True,
    },
    "id": {
        "type": "string",
        "description": "The ID of the data source, always set to `-`.",
        "computed": True,
    },
}

_CONFIGURABLE = {name for name, attr in SCHEMA_ATTRIBUTES.items() if not attr.get("computed")}


@dataclass
class ReadResponse:
    state: dict[str, str | None] | None = None
    diagnostics: list[Diagnostic] = field(default_factory=list)

    @property
    def has_error(self) -> bool:
        return any(d.severity == "error" for d in self.diagnostics)


def _config_error(attribute: str | None, summary: str, detail: str) -> Diagnostic:
    return Diagnostic(
        category="invalid_config",
        summary=summary,
        detail=detail,
        attribute=attribute,
    )


def decode_request(raw: object) -> tuple[ExecutionRequest | None, list[Diagnostic]]:
    """Decode a raw attribute mapping into an ExecutionRequest.

    Returns (request, []) on success or (None, diagnostics) when any attribute
    is missing, mistyped, computed or unknown.
    """
    if not isinstance(raw, dict):
        return None, [_config_error(
            None, "Invalid Configuration",
            f"Expected a mapping of attributes, got {type(raw).__name__}.",
        )]

    diags: list[Diagnostic] = []
    for key in sorted(raw, key=str):
        if key in _CONFIGURABLE:
            continue
        if key in SCHEMA_ATTRIBUTES:
            diags.append(_config_error(
                key, "Invalid Configuration for Read-Only Attribute",
                f"Cannot set value for attribute '{key}': it is computed by the data source.",
            ))
        else:
            diags.append(_config_error(
                str(key), "Unsupported Argument",
                f"An argument named '{key}' is not expected here.",
            ))

    command = raw.get("command")
    if "command" not in raw or command is None:
        diags.append(_config_error(
            "command", "Missing Required Argument",
            "The argument 'command' is required, but no definition was found.",
        ))
    elif not isinstance(command, str):
        diags.append(_config_error(
            "command", "Incorrect Attribute Value Type",
            f"Attribute 'command' must be a string, got {type(command).__name__}.",
        ))

    working_dir = raw.get("working_dir")
    if working_dir is not None and not isinstance(working_dir, str):
        diags.append(_config_error(
            "working_dir", "Incorrect Attribute Value Type",
            f"Attribute 'working_dir' must be a string, got {type(working_dir).__name__}.",
        ))

    if diags:
        return None, diags
    return ExecutionRequest(command=command, working_dir=working_dir), []


def build_state(request: ExecutionRequest, result: ExecutionResult) -> dict[str, str | None]:
    return {
        "command": request.command,
        "working_dir": request.working_dir,
        "output": result.output,
        "error": result.error,
        "id": result.id,
    }


class DataSource:
    """Read-only data source backed by a CommandExecutor."""

    def __init__(self, executor: CommandExecutor | None = None,
                 timeout: float | None = None):
        self.executor = executor or CommandExecutor()
        self.timeout = timeout

    @staticmethod
    def metadata(provider_type_name: str) -> str:
        """The data source is registered under the provider's own type name."""
        return provider_type_name

    @staticmethod
    def schema() -> dict:
        return {
            "description": DESCRIPTION,
            "attributes": {name: dict(attr) for name, attr in SCHEMA_ATTRIBUTES.items()},
        }

    def read(self, config: object,
             cancel_event: threading.Event | None = None) -> ReadResponse:
        request, diags = decode_request(config)
        if request is None:
            return ReadResponse(diagnostics=diags)

        try:
            result = self.executor.execute(
                request, cancel_event=cancel_event, timeout=self.timeout,
            )
        except LocalExecError as e:
            return ReadResponse(diagnostics=[e.to_diagnostic()])

        return ReadResponse(state=build_state(request, result))
