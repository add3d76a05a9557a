"""shell.py run_cmd / 执行器单元测试"""

from __future__ import annotations

import os

import pytest

from scm_checkout.core.exceptions import ExecutionError
from scm_checkout.utils.shell import (
    CommandResult,
    LocalExecutor,
    get_executor,
    run_cmd,
    set_executor,
)


class TestRunCmd:
    def test_success(self, tmp_path) -> None:
        r = run_cmd(["echo", "hello"], cwd=str(tmp_path), label="test")
        assert r.returncode == 0
        assert "hello" in r.stdout

    def test_failure_raises(self, tmp_path) -> None:
        with pytest.raises(ExecutionError, match="cmd失败") as info:
            run_cmd(["sh", "-c", "echo oops >&2; exit 3"], cwd=str(tmp_path))
        assert info.value.returncode == 3
        assert "oops" in info.value.stderr

    def test_custom_label_in_error(self, tmp_path) -> None:
        with pytest.raises(ExecutionError, match="icacls失败"):
            run_cmd(["false"], cwd=str(tmp_path), label="icacls")

    def test_env_passed(self, tmp_path) -> None:
        env = {**os.environ, "MY_TEST_VAR": "42"}
        r = run_cmd(["env"], cwd=str(tmp_path), env=env, label="env_test")
        assert "MY_TEST_VAR=42" in r.stdout

    def test_no_shell_interpretation(self, tmp_path) -> None:
        r = run_cmd(["echo", "$HOME; rm -rf /"], cwd=str(tmp_path))
        assert r.stdout.strip() == "$HOME; rm -rf /"


class TestLocalExecutor:
    def test_stderr_captured_by_default(self, tmp_path) -> None:
        r = LocalExecutor().execute(["sh", "-c", "echo out; echo err >&2"], cwd=str(tmp_path))
        assert r.stdout.strip() == "out"
        assert r.stderr.strip() == "err"

    def test_stream_stderr(self, tmp_path, capfd) -> None:
        r = LocalExecutor().execute(
            ["sh", "-c", "echo out; echo progress >&2"], cwd=str(tmp_path), stream_stderr=True,
        )
        assert r.stdout.strip() == "out"
        assert r.stderr == ""
        assert "progress" in capfd.readouterr().err


class TestExecutorSwap:
    def test_set_executor(self) -> None:
        calls: list[list[str]] = []

        class Fake:
            def execute(self, cmd, *, cwd=".", env=None, timeout=None) -> CommandResult:
                calls.append(cmd)
                return CommandResult(0, "ok", "")

        original = get_executor()
        set_executor(Fake())
        try:
            assert run_cmd(["anything"]).stdout == "ok"
        finally:
            set_executor(original)
        assert calls == [["anything"]]
