"""Exception hierarchy for command execution failures.

Every executor failure is terminal for the call that raised it and knows how
to render itself as an attribute-scoped Diagnostic for the caller.
"""

from __future__ import annotations

from localexec.models import Diagnostic


class LocalExecError(Exception):
    """Base class for all execution failures."""

    category = "error"
    summary = "Command Error"
    attribute = "command"

    def __init__(self, command: str, detail: str):
        self.command = command
        self.detail = detail
        super().__init__(detail)

    def to_diagnostic(self) -> Diagnostic:
        return Diagnostic(
            category=self.category,
            summary=self.summary,
            detail=self.detail,
            attribute=self.attribute,
        )


class EmptyCommandError(LocalExecError):
    category = "empty_command"
    summary = "Missing Command"

    def __init__(self, command: str = ""):
        super().__init__(
            command,
            "The command cannot be empty. Please specify a valid shell command.",
        )


class ExecutableNotFoundError(LocalExecError):
    """The first token of the command is not on PATH."""

    category = "executable_not_found"
    summary = "Command Not Found"

    def __init__(self, command: str, executable: str):
        self.executable = executable
        super().__init__(
            command,
            f"The command '{command}' was not found. Ensure it's installed and accessible.",
        )


class ExecutionFailedError(LocalExecError):
    """
    Raised when the process could not be started or exited non-zero.

    Attributes:
        command: The command that failed
        cause: Underlying error text (OS error or exit status)
        stderr: Captured standard error, empty if the process never started
        exit_code: Process exit code, None if the process never started
    """

    category = "execution_failed"
    summary = "Command Execution Failed"

    def __init__(self, command: str, cause: str, stderr: str = "",
                 exit_code: int | None = None):
        self.cause = cause
        self.stderr = stderr
        self.exit_code = exit_code
        super().__init__(
            command,
            f"Command execution failed.\n\nCommand: {command}\nError: {cause}\nStderr: {stderr}",
        )


class CancelledError(LocalExecError):
    """Cancellation signal or timeout fired before the process exited."""

    category = "cancelled"
    summary = "Command Execution Cancelled"

    def __init__(self, command: str, reason: str = "cancelled"):
        self.reason = reason
        super().__init__(
            command,
            f"Command execution stopped before it completed: {reason}.\n\nCommand: {command}",
        )
