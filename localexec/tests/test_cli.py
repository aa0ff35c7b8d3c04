"""Tests for CLI commands: --version, exec, read, validate, schema."""

import json
import os
import signal
import subprocess
import sys
import threading

import pytest
import yaml

from localexec.cli import cancellation, main, make_trace
from localexec.datasource import DataSource


def _write_config(tmpdir, data, defaults=None):
    config = {"version": "1.0", "data": data}
    if defaults:
        config["defaults"] = defaults
    config_path = os.path.join(tmpdir, "localexec.yaml")
    with open(config_path, "w") as f:
        yaml.dump(config, f)
    return config_path


def _main_exit_code(argv) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


# --- localexec --version ---

def test_version_flag():
    result = subprocess.run(
        [sys.executable, "-m", "localexec", "--version"],
        capture_output=True, text=True,
    )
    assert result.returncode == 0
    assert "localexec 1.0.0" in result.stdout


def test_no_command_prints_help(capsys):
    assert _main_exit_code([]) == 1
    assert "usage: localexec" in capsys.readouterr().out


# --- localexec exec ---

def test_exec_success(capsys):
    main(["exec", "echo hello"])
    state = json.loads(capsys.readouterr().out)
    assert state == {
        "command": "echo hello",
        "working_dir": None,
        "output": "hello\n",
        "error": "",
        "id": "-",
    }


def test_exec_working_dir(tmp_path, capsys):
    (tmp_path / "marker.txt").write_text("")
    main(["exec", "ls", "--working-dir", str(tmp_path)])
    state = json.loads(capsys.readouterr().out)
    assert state["output"] == "marker.txt\n"
    assert state["working_dir"] == str(tmp_path)


def test_exec_failure(capsys):
    assert _main_exit_code(["exec", "echo bad >&2; exit 4"]) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "Error: Command Execution Failed" in captured.err
    assert "with attribute: command" in captured.err
    assert "Stderr: bad" in captured.err


def test_exec_not_found(capsys):
    assert _main_exit_code(["exec", "nonexistent-binary-xyz"]) == 1
    assert "Command Not Found" in capsys.readouterr().err


def test_exec_empty(capsys):
    assert _main_exit_code(["exec", "  "]) == 1
    assert "Missing Command" in capsys.readouterr().err


def test_exec_timeout_exits_130(capsys):
    assert _main_exit_code(["exec", "sleep 10", "--timeout", "0.2"]) == 130
    assert "Command Execution Cancelled" in capsys.readouterr().err


def test_exec_trace(capsys, monkeypatch):
    monkeypatch.delenv("LOCALEXEC_TRACE", raising=False)
    monkeypatch.setenv("LOCALEXEC_NO_COLOR", "1")
    main(["exec", "echo traced", "--trace", "--no-color"])
    captured = capsys.readouterr()
    assert json.loads(captured.out)["output"] == "traced\n"
    assert "Executing command command='echo traced'" in captured.err
    assert "Executed command command='echo traced'" in captured.err


def test_exec_trace_file(tmp_path, capsys, monkeypatch):
    monkeypatch.delenv("LOCALEXEC_TRACE", raising=False)
    trace_path = tmp_path / "trace.log"
    main(["exec", "echo quiet", "--trace-file", str(trace_path)])
    captured = capsys.readouterr()
    assert captured.err == ""
    assert "Executed command command='echo quiet'" in trace_path.read_text()


# --- localexec read ---

def test_read_all(tmp_path, capsys):
    config_path = _write_config(str(tmp_path), {
        "greeting": {"command": "echo hi"},
        "where": {"command": "pwd", "working_dir": str(tmp_path)},
    })
    main(["read", "--config", config_path])
    states = json.loads(capsys.readouterr().out)
    assert list(states) == ["greeting", "where"]
    assert states["greeting"]["output"] == "hi\n"
    assert os.path.realpath(states["where"]["output"].strip()) == os.path.realpath(tmp_path)
    assert all(s["id"] == "-" for s in states.values())


def test_read_only(tmp_path, capsys):
    config_path = _write_config(str(tmp_path), {
        "a": {"command": "echo a"},
        "b": {"command": "echo b"},
    })
    main(["read", "--config", config_path, "--only", "b"])
    assert list(json.loads(capsys.readouterr().out)) == ["b"]


def test_read_only_unknown(tmp_path, capsys):
    config_path = _write_config(str(tmp_path), {"a": {"command": "echo a"}})
    assert _main_exit_code(["read", "--config", config_path, "--only", "zzz"]) == 1
    assert "Config error: Unknown data source(s): zzz" in capsys.readouterr().err


def test_read_partial_failure(tmp_path, capsys):
    config_path = _write_config(str(tmp_path), {
        "ok": {"command": "echo fine"},
        "bad": {"command": "false"},
        "typo": {"command": "echo x", "workdir": "/tmp"},
    })
    assert _main_exit_code(["read", "--config", config_path]) == 1
    captured = capsys.readouterr()
    states = json.loads(captured.out)
    assert list(states) == ["ok"]
    assert "data source 'bad'" in captured.err
    assert "Unsupported Argument" in captured.err
    assert "data source 'typo'" in captured.err


def test_read_uses_config_timeout(tmp_path, capsys):
    config_path = _write_config(
        str(tmp_path), {"slow": {"command": "sleep 10"}}, defaults={"timeout": 0.2},
    )
    assert _main_exit_code(["read", "--config", config_path]) == 130


def test_read_missing_config(tmp_path, capsys):
    missing = os.path.join(str(tmp_path), "missing.yaml")
    assert _main_exit_code(["read", "--config", missing]) == 1
    assert "Config error: Config file not found" in capsys.readouterr().err


# --- localexec validate ---

def test_validate_ok(tmp_path, capsys):
    marker = tmp_path / "ran"
    config_path = _write_config(str(tmp_path), {
        "a": {"command": f"touch {marker}"},
        "b": {"command": "nonexistent-binary-xyz"},
    })
    main(["validate", "--config", config_path])
    assert "✓ Valid: 2 data sources" in capsys.readouterr().out
    assert not marker.exists()


def test_validate_invalid(tmp_path, capsys):
    config_path = _write_config(str(tmp_path), {
        "a": {"command": "echo a"},
        "b": {"working_dir": "/tmp"},
    })
    assert _main_exit_code(["validate", "--config", config_path]) == 1
    err = capsys.readouterr().err
    assert "Missing Required Argument" in err
    assert "✗ Invalid: 1 of 2 data sources" in err


# --- localexec schema ---

def test_schema(capsys):
    main(["schema"])
    schema = json.loads(capsys.readouterr().out)
    assert set(schema["attributes"]) == {"command", "working_dir", "output", "error", "id"}


# --- helpers ---

class FakeArgs:
    def __init__(self, trace=False, trace_file=None, no_color=False):
        self.trace = trace
        self.trace_file = trace_file
        self.no_color = no_color


def test_make_trace_disabled(monkeypatch):
    monkeypatch.delenv("LOCALEXEC_TRACE", raising=False)
    assert make_trace(FakeArgs()) is None


def test_make_trace_from_env(monkeypatch):
    monkeypatch.setenv("LOCALEXEC_TRACE", "1")
    trace = make_trace(FakeArgs())
    assert trace is not None
    assert trace.echo is True


def test_cancellation_sets_event_and_restores_handlers():
    before = signal.getsignal(signal.SIGTERM)
    with cancellation() as cancel_event:
        assert not cancel_event.is_set()
        os.kill(os.getpid(), signal.SIGTERM)
        # Handlers run between bytecodes on the main thread
        assert cancel_event.wait(timeout=2)
    assert signal.getsignal(signal.SIGTERM) is before


def test_exec_cancelled_by_signal(capsys):
    timer = threading.Timer(0.3, os.kill, args=(os.getpid(), signal.SIGINT))
    timer.start()
    try:
        assert _main_exit_code(["exec", "sleep 10"]) == 130
    finally:
        timer.cancel()
    assert "Command Execution Cancelled" in capsys.readouterr().err


def test_read_cancelled_between_sources_exits_130(tmp_path, capsys, monkeypatch):
    config_path = _write_config(str(tmp_path), {
        "a": {"command": "echo a"},
        "b": {"command": "echo b"},
    })
    real_read = DataSource.read

    def _read_then_cancel(self, config, cancel_event=None):
        response = real_read(self, config, cancel_event=cancel_event)
        cancel_event.set()
        return response

    monkeypatch.setattr(DataSource, "read", _read_then_cancel)

    assert _main_exit_code(["read", "--config", config_path]) == 130
    captured = capsys.readouterr()
    assert list(json.loads(captured.out)) == ["a"]
    assert "Read Cancelled" in captured.err
    assert "data source 'b'" in captured.err


@pytest.mark.parametrize("value", ["0", "-1", "soon"])
def test_exec_rejects_bad_timeout(value, capsys):
    assert _main_exit_code(["exec", "echo hi", f"--timeout={value}"]) == 2
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "--timeout" in captured.err


def test_exec_no_color_not_leaked_to_command(capsys, monkeypatch):
    monkeypatch.delenv("LOCALEXEC_NO_COLOR", raising=False)
    main(["exec", "printenv LOCALEXEC_NO_COLOR || true", "--trace", "--no-color"])
    captured = capsys.readouterr()
    assert json.loads(captured.out)["output"] == ""
    assert "LOCALEXEC_NO_COLOR" not in os.environ
    assert "\033[" not in captured.err


def test_make_trace_no_color():
    trace = make_trace(FakeArgs(trace=True, no_color=True))
    assert trace._use_color is False
