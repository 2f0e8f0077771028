"""Shared test fixtures for container-desktop-entries."""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from container_desktop_entries.driver import CapturedOutput
from container_desktop_entries.errors import DriverIOError, RegistryError

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, importable by test files)
# ---------------------------------------------------------------------------


def make_settings(**overrides):
    """Create a Settings object with test defaults, bypassing config files.

    Usage::

        s = make_settings(runtime_dir=tmp_path / "run")
        s = make_settings(containers=[ContainerConfig(name="demo")])
    """
    from container_desktop_entries.config import (
        DaemonConfig,
        HarvestConfig,
        LoggingConfig,
        Settings,
        WorkspaceConfig,
    )

    runtime_dir = overrides.pop("runtime_dir", None)
    defaults = {
        "containers": [],
        "daemon": DaemonConfig(),
        "workspace": WorkspaceConfig(runtime_dir=str(runtime_dir) if runtime_dir else None),
        "harvest": HarvestConfig(),
        "logging": LoggingConfig(),
    }
    defaults.update(overrides)
    return Settings.model_construct(**defaults)


def write_file(root: Path, rel: str, content: str | bytes = "") -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content)
    return path


def desktop_file(
    name: str = "My App",
    exec_line: str = "myapp --flag",
    icon: str | None = "myapp",
    extra: str = "",
) -> str:
    lines = ["[Desktop Entry]", "Type=Application", f"Name={name}", f"Exec={exec_line}"]
    if icon is not None:
        lines.append(f"Icon={icon}")
    if extra:
        lines.append(extra)
    return "\n".join(lines) + "\n"


SVG_BYTES = b'<svg xmlns="http://www.w3.org/2000/svg" width="16" height="16"/>'
PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


@dataclass
class FakeRegistry:
    """In-memory stand-in for the desktop entry daemon.

    ``entries`` and ``icons`` hold the published state per owner, the way
    the daemon does.  ``calls`` records every call in order.
    """

    entries: dict[str, dict[str, str]] = field(default_factory=dict)
    icons: dict[str, dict[str, bytes]] = field(default_factory=dict)
    calls: list[tuple] = field(default_factory=list)
    reject_entries: set[str] = field(default_factory=set)
    reject_icons: set[str] = field(default_factory=set)
    fail_retract: bool = False
    connected: bool = False

    async def connect(self) -> None:
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    async def register(self, app_id: str, descriptor_text: str, owner: str) -> None:
        self.calls.append(("register", app_id, owner))
        if app_id in self.reject_entries:
            raise RegistryError(f"rejected {app_id}")
        self.entries.setdefault(owner, {})[app_id] = descriptor_text

    async def register_icon(self, icon_name: str, data: bytes, owner: str) -> None:
        self.calls.append(("register_icon", icon_name, owner))
        if icon_name in self.reject_icons:
            raise RegistryError(f"rejected icon {icon_name}")
        self.icons.setdefault(owner, {})[icon_name] = data

    async def retract_owner(self, owner: str) -> None:
        self.calls.append(("retract_owner", owner))
        if self.fail_retract:
            raise RegistryError("daemon busy")
        self.entries.pop(owner, None)
        self.icons.pop(owner, None)

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]


class FakeDriver:
    """Container driver backed by a directory that plays the container's ``/``."""

    def __init__(self, root: Path, data_dirs: str = "/usr/share") -> None:
        self.root = root
        self.data_dirs = data_dirs
        self.calls: list[tuple] = []
        self.fail_start: Exception | None = None
        self.fail_exec: Exception | None = None

    def _in_container(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    async def start(self, name: str) -> None:
        self.calls.append(("start", name))
        if self.fail_start is not None:
            raise self.fail_start

    async def exec(self, name: str, command: str) -> CapturedOutput:
        self.calls.append(("exec", name, command))
        if self.fail_exec is not None:
            raise self.fail_exec
        return CapturedOutput(stdout=self.data_dirs + "\n", stderr="")

    async def copy_out(self, name: str, src: str, dst: Path) -> None:
        self.calls.append(("copy_out", name, src, dst))
        source = self._in_container(src)
        if not source.is_dir():
            raise DriverIOError(f"no such directory {src}", command=f"cp {src}")
        shutil.copytree(source, dst, dirs_exist_ok=True)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def container_root(tmp_path: Path) -> Path:
    root = tmp_path / "container"
    root.mkdir()
    return root


@pytest.fixture
def runtime_dir(tmp_path: Path) -> Path:
    return tmp_path / "run"


@pytest.fixture
def driver(container_root: Path) -> FakeDriver:
    return FakeDriver(container_root)


@pytest.fixture(autouse=True)
def _reset_settings():
    from container_desktop_entries.config import reset_settings

    reset_settings()
    yield
    reset_settings()
