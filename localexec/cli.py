"""CLI entry point — localexec exec / localexec read / localexec validate / localexec schema."""

from __future__ import annotations

import argparse
import json
import os
import signal
import sys
import threading
from contextlib import contextmanager

from localexec import __version__
from localexec.config import DEFAULT_CONFIG, ConfigError, load_config
from localexec.datasource import DataSource, decode_request
from localexec.executor import CommandExecutor
from localexec.models import Diagnostic
from localexec.trace import TraceLog

EXIT_CANCELLED = 130


@contextmanager
def cancellation():
    """Yield an Event that SIGINT/SIGTERM set; previous handlers are restored on exit."""
    cancel_event = threading.Event()

    def _handle_signal(signum, frame):
        cancel_event.set()

    previous = {
        sig: signal.signal(sig, _handle_signal)
        for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield cancel_event
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def make_trace(args) -> TraceLog | None:
    """Build the trace sink from --trace / --trace-file / LOCALEXEC_TRACE."""
    echo = bool(getattr(args, "trace", False) or os.environ.get("LOCALEXEC_TRACE"))
    trace_file = getattr(args, "trace_file", None)
    if not echo and not trace_file:
        return None
    use_color = False if getattr(args, "no_color", False) else None
    return TraceLog(path=trace_file, echo=echo, use_color=use_color)


def print_diagnostics(diagnostics: list[Diagnostic], source: str | None = None) -> None:
    for diag in diagnostics:
        text = diag.format()
        if source:
            text += f"\n\n  (data source '{source}')"
        print(text + "\n", file=sys.stderr)


def _exit_code(diagnostics: list[Diagnostic]) -> int:
    if any(d.category == "cancelled" for d in diagnostics):
        return EXIT_CANCELLED
    return 1 if diagnostics else 0


def _print_json(value) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False))


def cmd_exec(args) -> None:
    trace = make_trace(args)
    source = DataSource(CommandExecutor(trace=trace), timeout=args.timeout)
    config = {"command": args.cmd, "working_dir": args.working_dir}

    try:
        with cancellation() as cancel_event:
            response = source.read(config, cancel_event=cancel_event)
    finally:
        if trace:
            trace.close()

    if response.has_error:
        print_diagnostics(response.diagnostics)
        sys.exit(_exit_code(response.diagnostics))
    _print_json(response.state)


def cmd_read(args) -> None:
    config = load_config(args.config)

    names = list(config.data)
    if args.only:
        missing = [name for name in args.only if name not in config.data]
        if missing:
            raise ConfigError(f"Unknown data source(s): {', '.join(missing)}")
        names = args.only

    trace = make_trace(args)
    executor = CommandExecutor(
        shell=config.defaults.shell,
        kill_grace=config.defaults.kill_grace,
        trace=trace,
    )
    source = DataSource(executor, timeout=config.defaults.timeout)

    states: dict[str, dict] = {}
    all_diags: list[Diagnostic] = []
    try:
        with cancellation() as cancel_event:
            for name in names:
                if cancel_event.is_set():
                    diag = Diagnostic(
                        category="cancelled",
                        summary="Read Cancelled",
                        detail=f"Cancelled before data source '{name}' was read.",
                    )
                    print_diagnostics([diag], source=name)
                    all_diags.append(diag)
                    break
                response = source.read(config.data[name], cancel_event=cancel_event)
                if response.has_error:
                    print_diagnostics(response.diagnostics, source=name)
                    all_diags.extend(response.diagnostics)
                else:
                    states[name] = response.state
    finally:
        if trace:
            trace.close()

    _print_json(states)
    if all_diags:
        sys.exit(_exit_code(all_diags))


def cmd_validate(args) -> None:
    config = load_config(args.config)

    invalid = 0
    for name, attrs in config.data.items():
        _, diags = decode_request(attrs)
        if diags:
            invalid += 1
            print_diagnostics(diags, source=name)

    if invalid:
        print(f"✗ Invalid: {invalid} of {len(config.data)} data sources", file=sys.stderr)
        sys.exit(1)
    print(f"✓ Valid: {len(config.data)} data sources")


def cmd_schema(args) -> None:
    _print_json(DataSource.schema())


def positive_seconds(value: str) -> float:
    """argparse type: a positive number of seconds, matching defaults.timeout."""
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"must be a number of seconds, got {value!r}") from None
    if seconds <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {value}")
    return seconds


def _add_trace_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--trace", action="store_true",
                        help="Print trace events to stderr (or set LOCALEXEC_TRACE=1)")
    parser.add_argument("--trace-file", default=None, metavar="PATH",
                        help="Append trace events to a file")
    parser.add_argument("--no-color", action="store_true", help="Disable colored trace output")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="localexec",
        description="Run a local shell command and return its output as data",
    )
    parser.add_argument("--version", "-V", action="version",
                        version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    # localexec exec
    exec_parser = sub.add_parser("exec", help="Run one command and print its state")
    exec_parser.add_argument("cmd", metavar="COMMAND", help="Shell command line to run")
    exec_parser.add_argument("--working-dir", default=None, help="Working directory (default: cwd)")
    exec_parser.add_argument("--timeout", type=positive_seconds, default=None, metavar="SECONDS",
                             help="Terminate the command after this many seconds")
    _add_trace_args(exec_parser)

    # localexec read
    read_parser = sub.add_parser("read", help="Read every data source in the config")
    read_parser.add_argument("--config", default=DEFAULT_CONFIG)
    read_parser.add_argument("--only", action="append", default=None, metavar="NAME",
                             help="Read only this data source (repeatable)")
    _add_trace_args(read_parser)

    # localexec validate
    validate_parser = sub.add_parser("validate", help="Validate localexec.yaml without running anything")
    validate_parser.add_argument("--config", default=DEFAULT_CONFIG)

    # localexec schema
    sub.add_parser("schema", help="Print the data source schema")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == "exec":
            cmd_exec(args)
        elif args.command == "read":
            cmd_read(args)
        elif args.command == "validate":
            cmd_validate(args)
        elif args.command == "schema":
            cmd_schema(args)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(EXIT_CANCELLED)


if __name__ == "__main__":
    main()
