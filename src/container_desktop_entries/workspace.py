"""Scratch directories for one sync pass.

Each pass gets ``<runtime_dir>/<container>/`` with ``applications/``,
``icons/`` and ``pixmaps/`` below it.  The directory is removed when the
pass leaves the :func:`transient_workspace` block, however it leaves.
"""

from __future__ import annotations

import os
import re
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from container_desktop_entries.logger import logger

APP_DIR_NAME = "container-desktop-entries"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def default_runtime_dir() -> Path:
    """``$RUNTIME_DIRECTORY`` (set by systemd), else ``/run/user/<uid>/...``."""
    if runtime_dir := os.environ.get("RUNTIME_DIRECTORY"):
        return Path(runtime_dir)
    uid = os.environ.get("UID") or str(os.getuid())
    return Path("/run/user") / uid / APP_DIR_NAME


@dataclass(frozen=True)
class Workspace:
    root: Path

    @property
    def applications(self) -> Path:
        return self.root / "applications"

    @property
    def icons(self) -> Path:
        return self.root / "icons"

    @property
    def pixmaps(self) -> Path:
        return self.root / "pixmaps"


def workspace_path(runtime_dir: Path, container_name: str) -> Path:
    safe = _UNSAFE_CHARS.sub("_", container_name).lstrip(".") or "_"
    return runtime_dir / safe


@contextmanager
def transient_workspace(runtime_dir: Path, container_name: str) -> Iterator[Workspace]:
    """Create a fresh workspace for *container_name* and delete it on exit."""
    root = workspace_path(runtime_dir, container_name)
    if root.exists():
        # Left behind by a pass that was killed
        logger.warning("Removing stale workspace", path=str(root))
        shutil.rmtree(root)
    ws = Workspace(root=root)
    for sub in (ws.applications, ws.icons, ws.pixmaps):
        sub.mkdir(parents=True)
    try:
        yield ws
    finally:
        shutil.rmtree(root, ignore_errors=True)
        if root.exists():
            logger.error("Workspace could not be removed", path=str(root))
        else:
            logger.debug("Workspace removed", path=str(root))
