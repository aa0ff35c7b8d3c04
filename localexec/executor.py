"""Command executor — runs one shell command and captures its output.

Each call is a straight line: validate → resolve → spawn → wait → classify.
The executor keeps only immutable settings, so one instance can serve any
number of independent calls.
"""

from __future__ import annotations

import os
import shutil
import signal
import subprocess
import threading
import time

from localexec.errors import (
    CancelledError,
    EmptyCommandError,
    ExecutableNotFoundError,
    ExecutionFailedError,
)
from localexec.models import ExecutionRequest, ExecutionResult
from localexec.trace import TraceLog

DEFAULT_SHELL = "/bin/sh"
DEFAULT_KILL_GRACE = 5.0
_POLL_INTERVAL = 0.05


def decode_output(data: bytes | None) -> str:
    """Decode captured bytes as UTF-8, replacing invalid sequences."""
    return (data or b"").decode("utf-8", errors="replace")


def describe_exit(returncode: int) -> str:
    """Render a non-zero return code as 'exit status N' or 'signal: NAME'."""
    if returncode < 0:
        try:
            return f"signal: {signal.Signals(-returncode).name}"
        except ValueError:
            return f"signal: {-returncode}"
    return f"exit status {returncode}"


class CommandExecutor:
    """Runs a command string through `<shell> -c` with both streams captured.

    Before spawning, the first word of the command must resolve on PATH.
    Shell builtins and aliases therefore fail with ExecutableNotFoundError
    even though the shell itself could run them.
    """

    def __init__(self, shell: str = DEFAULT_SHELL,
                 kill_grace: float = DEFAULT_KILL_GRACE,
                 trace: TraceLog | None = None):
        self.shell = shell
        self.kill_grace = kill_grace
        self.trace = trace

    def execute(self, request: ExecutionRequest,
                cancel_event: threading.Event | None = None,
                timeout: float | None = None) -> ExecutionResult:
        command = request.command or ""
        if not command.strip():
            raise EmptyCommandError(command)

        executable = command.split()[0]
        if shutil.which(executable) is None:
            raise ExecutableNotFoundError(command, executable)

        if cancel_event is not None and cancel_event.is_set():
            raise CancelledError(command)

        self._trace("Executing command", command=command)

        stdout, stderr, returncode = self._run(
            command, request.working_dir, cancel_event, timeout,
        )
        output = decode_output(stdout)
        error = decode_output(stderr)

        self._trace("Executed command", command=command, output=output, error=error)

        # Cancellation wins over a process that exited in the meantime
        if cancel_event is not None and cancel_event.is_set():
            raise CancelledError(command)

        if returncode != 0:
            raise ExecutionFailedError(
                command, describe_exit(returncode), error, exit_code=returncode,
            )

        return ExecutionResult(output=output, error=error)

    def _run(self, command: str, working_dir: str | None,
             cancel_event: threading.Event | None,
             timeout: float | None) -> tuple[bytes, bytes, int]:
        try:
            proc = subprocess.Popen(
                [self.shell, "-c", command],
                cwd=working_dir or None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,   # separate pipes, not merged
                start_new_session=True,
            )
        except OSError as e:
            self._trace("Failed to start command", command=command, error=str(e))
            raise ExecutionFailedError(command, str(e)) from e

        deadline = time.monotonic() + timeout if timeout is not None else None

        try:
            while True:
                try:
                    stdout, stderr = proc.communicate(timeout=_POLL_INTERVAL)
                    return stdout, stderr, proc.returncode
                except subprocess.TimeoutExpired:
                    pass

                if cancel_event is not None and cancel_event.is_set():
                    reason = "cancelled"
                elif deadline is not None and time.monotonic() >= deadline:
                    reason = f"timed out after {timeout:g}s"
                else:
                    continue

                self._kill_process_group(proc)
                self._trace("Cancelled command", command=command, reason=reason)
                raise CancelledError(command, reason)
        except KeyboardInterrupt:
            self._kill_process_group(proc)
            raise

    def _kill_process_group(self, proc: subprocess.Popen) -> None:
        """Graceful shutdown: SIGTERM → wait → SIGKILL. Output is drained and discarded."""
        # start_new_session=True makes the child its own group leader
        try:
            os.killpg(proc.pid, signal.SIGTERM)
            proc.communicate(timeout=self.kill_grace)
        except (ProcessLookupError, subprocess.TimeoutExpired):
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            proc.communicate()

    def _trace(self, event: str, **fields) -> None:
        if self.trace is not None:
            self.trace.trace(event, **fields)
