"""Tests for the shell and local container drivers."""

from __future__ import annotations

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import write_file
from container_desktop_entries.driver import (
    LocalDriver,
    ShellContainerDriver,
    classify,
)
from container_desktop_entries.errors import (
    CommandNotFoundError,
    DriverIOError,
    UnsupportedRuntimeError,
)
from container_desktop_entries.runtime import RuntimeKind


def _completed(stdout: str = "", stderr: str = "", returncode: int = 0):
    return subprocess.CompletedProcess(
        args=["sh", "-c", "x"], returncode=returncode, stdout=stdout, stderr=stderr
    )


class TestClassify:
    def test_success_returns_output(self):
        out = classify("cmd", _completed(stdout="/usr/share\n"))
        assert out.stdout == "/usr/share\n"
        assert out.returncode == 0

    def test_shell_not_found_message(self):
        result = _completed(stderr="sh: 1: printenv: command not found", returncode=127)
        with pytest.raises(CommandNotFoundError) as exc_info:
            classify("cmd", result)
        assert exc_info.value.command == "cmd"

    def test_toolbox_not_found_message(self):
        result = _completed(stderr="Error: command foo not found in container demo", returncode=127)
        with pytest.raises(CommandNotFoundError):
            classify("cmd", result)

    def test_not_found_text_wins_even_with_zero_exit(self):
        # Detection is by text only; toolbox does not always set a status
        with pytest.raises(CommandNotFoundError):
            classify("cmd", _completed(stdout="bash: foo: command not found"))

    def test_nonzero_exit_is_io_error(self):
        with pytest.raises(DriverIOError) as exc_info:
            classify("cmd", _completed(stderr="Error: no such container", returncode=125))
        assert not isinstance(exc_info.value, CommandNotFoundError)
        assert exc_info.value.output == "Error: no such container"


class TestShellContainerDriver:
    @pytest.mark.asyncio
    async def test_start_runs_toolbox_template(self):
        driver = ShellContainerDriver(RuntimeKind.TOOLBOX, timeout=5)
        with patch("container_desktop_entries.driver.subprocess.run") as mock_run:
            mock_run.return_value = _completed(stdout="Started\n")
            await driver.start("demo")
        args, kwargs = mock_run.call_args
        assert args[0] == ["sh", "-c", "toolbox run -c demo echo 'Started'"]
        assert kwargs["timeout"] == 5
        assert kwargs["capture_output"] is True

    @pytest.mark.asyncio
    async def test_exec_returns_captured_output(self):
        driver = ShellContainerDriver(RuntimeKind.TOOLBOX)
        with patch("container_desktop_entries.driver.subprocess.run") as mock_run:
            mock_run.return_value = _completed(stdout="/usr/share:/usr/local/share\n")
            out = await driver.exec("demo", "printenv XDG_DATA_DIRS")
        assert out.stdout == "/usr/share:/usr/local/share\n"
        assert mock_run.call_args.args[0][2] == "toolbox run -c demo printenv XDG_DATA_DIRS"

    @pytest.mark.asyncio
    async def test_copy_out_command(self, tmp_path: Path):
        driver = ShellContainerDriver(RuntimeKind.TOOLBOX)
        with patch("container_desktop_entries.driver.subprocess.run") as mock_run:
            mock_run.return_value = _completed()
            await driver.copy_out("demo", "/usr/share/icons", tmp_path)
        assert mock_run.call_args.args[0][2] == (
            f"podman container cp demo:/usr/share/icons/. {tmp_path}/"
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", [RuntimeKind.PODMAN, RuntimeKind.DOCKER, RuntimeKind.UNKNOWN])
    async def test_unsupported_kind_runs_nothing(self, kind):
        driver = ShellContainerDriver(kind)
        with patch("container_desktop_entries.driver.subprocess.run") as mock_run:
            with pytest.raises(UnsupportedRuntimeError):
                await driver.start("demo")
            with pytest.raises(UnsupportedRuntimeError):
                await driver.exec("demo", "ls")
        mock_run.assert_not_called()

    @pytest.mark.asyncio
    async def test_timeout_is_io_error(self):
        driver = ShellContainerDriver(RuntimeKind.TOOLBOX, timeout=1)
        with patch(
            "container_desktop_entries.driver.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="sh", timeout=1),
        ):
            with pytest.raises(DriverIOError, match="timed out"):
                await driver.start("demo")

    @pytest.mark.asyncio
    async def test_spawn_failure_is_io_error(self):
        driver = ShellContainerDriver(RuntimeKind.TOOLBOX)
        with patch(
            "container_desktop_entries.driver.subprocess.run",
            side_effect=FileNotFoundError("sh"),
        ):
            with pytest.raises(DriverIOError, match="spawn"):
                await driver.exec("demo", "ls")


class TestLocalDriver:
    @pytest.mark.asyncio
    async def test_start_is_a_no_op(self):
        with patch("container_desktop_entries.driver.subprocess.run") as mock_run:
            await LocalDriver().start("demo")
        mock_run.assert_not_called()

    @pytest.mark.asyncio
    async def test_exec_runs_command_directly(self):
        with patch("container_desktop_entries.driver.subprocess.run") as mock_run:
            mock_run.return_value = _completed(stdout="ok\n")
            out = await LocalDriver().exec("demo", "echo ok")
        assert mock_run.call_args.args[0] == ["sh", "-c", "echo ok"]
        assert out.stdout == "ok\n"

    @pytest.mark.asyncio
    async def test_copy_out_merges_directory(self, tmp_path: Path):
        src = tmp_path / "src"
        write_file(src, "a.desktop", "a")
        write_file(src, "sub/b.desktop", "b")
        dst = tmp_path / "dst"
        write_file(dst, "existing.desktop", "e")
        await LocalDriver().copy_out("demo", str(src), dst)
        assert (dst / "a.desktop").read_text() == "a"
        assert (dst / "sub" / "b.desktop").read_text() == "b"
        assert (dst / "existing.desktop").exists()

    @pytest.mark.asyncio
    async def test_copy_out_missing_source(self, tmp_path: Path):
        with pytest.raises(DriverIOError, match="No such directory"):
            await LocalDriver().copy_out("demo", str(tmp_path / "nope"), tmp_path / "dst")
