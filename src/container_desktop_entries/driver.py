"""Running commands against a container.

:class:`ShellContainerDriver` fills the runtime templates from
:mod:`container_desktop_entries.runtime` and runs them through ``sh -c``
on the host.  :class:`LocalDriver` is used by the in-container agent and
works on the current machine directly.

All public methods are async so they don't block the event loop.  The
underlying subprocess calls run in a thread via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from container_desktop_entries.errors import (
    CommandNotFoundError,
    DriverIOError,
    UnsupportedRuntimeError,
)
from container_desktop_entries.logger import logger
from container_desktop_entries.runtime import (
    RuntimeKind,
    build_copy_out,
    build_exec,
    build_start,
)

DEFAULT_TIMEOUT = 120.0

# Printed by sh and by toolbox respectively.  There is no exit status that
# tells these cases apart from other failures.
NOT_FOUND_MARKERS = ("command not found", "not found in container")


@dataclass(frozen=True)
class CapturedOutput:
    stdout: str
    stderr: str
    returncode: int = 0


class ContainerDriver(Protocol):
    async def start(self, name: str) -> None: ...

    async def exec(self, name: str, command: str) -> CapturedOutput: ...

    async def copy_out(self, name: str, src: str, dst: Path) -> None: ...


def _run_shell_sync(command: str, timeout: float) -> subprocess.CompletedProcess[str]:
    """Run *command* through ``sh -c`` (blocking, internal only)."""
    return subprocess.run(
        ["sh", "-c", command],
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
    )


def classify(command: str, result: subprocess.CompletedProcess[str]) -> CapturedOutput:
    """Turn a finished process into output, or raise the matching DriverError."""
    output = CapturedOutput(
        stdout=result.stdout or "",
        stderr=result.stderr or "",
        returncode=result.returncode,
    )
    combined = f"{output.stdout}\n{output.stderr}"
    if any(marker in combined for marker in NOT_FOUND_MARKERS):
        raise CommandNotFoundError(
            "Command not found inside container", command=command, output=combined.strip()
        )
    if result.returncode != 0:
        raise DriverIOError(
            f"Command exited with status {result.returncode}",
            command=command,
            output=output.stderr.strip(),
        )
    return output


async def run_shell(command: str, timeout: float = DEFAULT_TIMEOUT) -> CapturedOutput:
    """Run a shell command without blocking the event loop."""
    logger.debug("Running command", command=command)
    try:
        result = await asyncio.to_thread(_run_shell_sync, command, timeout)
    except subprocess.TimeoutExpired as exc:
        raise DriverIOError(f"Command timed out after {timeout}s", command=command) from exc
    except OSError as exc:
        raise DriverIOError(f"Could not spawn command: {exc}", command=command) from exc
    logger.debug(
        "Command finished",
        returncode=result.returncode,
        stdout=(result.stdout or "")[-2000:],
        stderr=(result.stderr or "")[-2000:],
    )
    return classify(command, result)


class ShellContainerDriver:
    """Runs the runtime's command templates on the host."""

    def __init__(self, kind: RuntimeKind, *, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.kind = kind
        self.timeout = timeout

    def _require(self, command: str, operation: str) -> str:
        if not command:
            raise UnsupportedRuntimeError(str(self.kind), operation)
        return command

    async def start(self, name: str) -> None:
        command = self._require(build_start(self.kind, name), "start")
        await run_shell(command, self.timeout)

    async def exec(self, name: str, command: str) -> CapturedOutput:
        full = self._require(build_exec(self.kind, name, command), "exec")
        return await run_shell(full, self.timeout)

    async def copy_out(self, name: str, src: str, dst: Path) -> None:
        command = self._require(build_copy_out(self.kind, name, src, dst), "copy")
        await run_shell(command, self.timeout)


def _copy_tree_sync(src: Path, dst: Path) -> None:
    shutil.copytree(src, dst, symlinks=True, dirs_exist_ok=True)


class LocalDriver:
    """Driver for the agent that already runs inside the container."""

    def __init__(self, *, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    async def start(self, name: str) -> None:
        logger.debug("Running inside the container, nothing to start", container=name)

    async def exec(self, name: str, command: str) -> CapturedOutput:
        return await run_shell(command, self.timeout)

    async def copy_out(self, name: str, src: str, dst: Path) -> None:
        source = Path(src)
        if not source.is_dir():
            raise DriverIOError(f"No such directory: {src}", command=f"copy {src}")
        try:
            await asyncio.to_thread(_copy_tree_sync, source, dst)
        except OSError as exc:
            raise DriverIOError(f"Copy failed: {exc}", command=f"copy {src}") from exc
