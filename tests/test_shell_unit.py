#!/usr/bin/env python3
import sys
import threading
import time

import pytest

from acpied.exceptions import PipelineCancelled, ToolError
from acpied.shell import CancelToken, CommandResult, Shell

pytestmark = pytest.mark.skipif(
    sys.platform.startswith("win"), reason="requires a POSIX shell"
)


def test_run_success_captures_output(tmp_path):
    s = Shell(timeout=5)
    result = s.run(["sh", "-c", "echo ok; echo warn >&2"], cwd=tmp_path)
    assert result.returncode == 0
    assert result.stdout_text == "ok\n"
    assert result.stderr_text == "warn\n"
    assert result.args == ["sh", "-c", "echo ok; echo warn >&2"]


def test_run_uses_cwd(tmp_path):
    result = Shell(timeout=5).run(["pwd"], cwd=tmp_path)
    assert result.stdout_text.strip() == str(tmp_path.resolve())


def test_run_passes_input_data():
    result = Shell(timeout=5).run(["cat"], input_data=b"kernel\nkernel/firmware\n")
    assert result.stdout == b"kernel\nkernel/firmware\n"


def test_run_nonzero_exit_raises_tool_error():
    with pytest.raises(ToolError) as ei:
        Shell(timeout=5).run(["sh", "-c", "echo boom >&2; exit 7"])
    err = ei.value
    assert err.returncode == 7
    assert "exit code 7" in str(err)
    assert "Command failed" in str(err)
    assert err.output == "boom"


def test_run_nonzero_exit_without_check():
    result = Shell(timeout=5).run(["sh", "-c", "exit 3"], check=False)
    assert result.returncode == 3


def test_missing_executable():
    with pytest.raises(ToolError) as ei:
        Shell(timeout=5).run(["acpied-definitely-not-installed"])
    assert "Executable not found" in str(ei.value)


def test_timeout_kills_child():
    started = time.monotonic()
    with pytest.raises(ToolError) as ei:
        Shell(timeout=0.3).run(["sleep", "10"])
    assert "timed out" in str(ei.value).lower()
    assert time.monotonic() - started < 5


def test_cancel_kills_running_child():
    token = CancelToken()
    shell = Shell(timeout=30, cancel_token=token)
    timer = threading.Timer(0.3, token.cancel)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(PipelineCancelled):
            shell.run(["sleep", "10"])
    finally:
        timer.cancel()
    assert time.monotonic() - started < 5


def test_already_cancelled_token_never_starts_process(monkeypatch):
    import subprocess

    def fail_popen(*a, **kw):
        raise AssertionError("process should not start after cancel")

    monkeypatch.setattr(subprocess, "Popen", fail_popen)
    token = CancelToken()
    token.cancel()
    with pytest.raises(PipelineCancelled):
        Shell(cancel_token=token).run(["true"])


def test_run_check_true_and_false():
    s = Shell(timeout=5)
    assert s.run_check(["true"]) is True
    assert s.run_check(["false"]) is False


def test_command_result_diagnostic_prefers_stderr():
    result = CommandResult(
        args=["iasl"], returncode=1, stdout=b"summary\n", stderr=b"error line\n"
    )
    assert result.diagnostic == "error line\nsummary"


def test_which_finds_sh():
    assert Shell.which("sh")
    assert Shell.which("acpied-definitely-not-installed") is None


def test_reset_rearms_token():
    token = CancelToken()
    token.cancel()
    token.reset()

    assert not token.cancelled
    assert Shell(timeout=5, cancel_token=token).run(["true"]).returncode == 0
