"""One sync pass for one container.

A pass moves through these stages, strictly in order::

    STARTING -> HARVESTING -> TRANSFORMING -> PUBLISHING -> CLEANING_UP -> DONE

Any stage can end the pass in FAILED instead.  The container's previous
entries are retracted from the daemon right before the new ones are
pushed, so the daemon only ever holds what the latest finished pass
produced for that owner.  The scratch workspace is removed on every path
out of the pass.

:meth:`SessionRegistrar.sync` never raises for a container-level problem;
the outcome is returned as a :class:`SyncResult`.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path, PurePosixPath

from container_desktop_entries.desktop_entry import RewrittenEntry, load_entries
from container_desktop_entries.driver import ContainerDriver
from container_desktop_entries.errors import (
    ContainerDesktopEntriesError,
    DriverError,
    RegistryError,
    UnsupportedRuntimeError,
)
from container_desktop_entries.icons import IconAsset, resolve_icon
from container_desktop_entries.logger import logger
from container_desktop_entries.registry import RegistryClient
from container_desktop_entries.runtime import RuntimeKind, is_supported
from container_desktop_entries.workspace import Workspace, transient_workspace

# Expanded by a shell inside the container, not on the host.
DATA_DIRS_COMMAND = "sh -c 'echo \"$XDG_DATA_DIRS\"'"
DEFAULT_DATA_DIRS = ("/usr/local/share", "/usr/share")
DEFAULT_PIXMAPS_DIR = "/usr/share/pixmaps"


class SyncStage(StrEnum):
    IDLE = "idle"
    STARTING = "starting"
    HARVESTING = "harvesting"
    TRANSFORMING = "transforming"
    PUBLISHING = "publishing"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ResolvedEntry:
    entry: RewrittenEntry
    icon: IconAsset | None = None


@dataclass
class SyncResult:
    container: str
    kind: RuntimeKind
    stage: SyncStage = SyncStage.IDLE
    failed_stage: SyncStage | None = None
    cause: Exception | None = None
    entries_registered: list[str] = field(default_factory=list)
    icons_registered: list[str] = field(default_factory=list)
    entries_failed: list[str] = field(default_factory=list)
    icons_failed: list[str] = field(default_factory=list)
    sources_skipped: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.stage is SyncStage.DONE


def split_data_dirs(raw: str) -> list[str]:
    """Split an ``XDG_DATA_DIRS`` value, dropping blanks and repeats."""
    dirs: list[str] = []
    for part in raw.split(":"):
        part = part.strip()
        if len(part) > 1:
            part = part.rstrip("/")
        if part and part not in dirs:
            dirs.append(part)
    return dirs


class SessionRegistrar:
    """Runs sync passes against one daemon.

    Args:
        registry: where entries and icons get published.
        runtime_dir: parent directory for per-container workspaces.
        pixmaps_dir: fixed pixmap directory copied out of every container.
        fallback_data_dirs: used when the container reports no data dirs.
    """

    def __init__(
        self,
        registry: RegistryClient,
        runtime_dir: Path,
        *,
        pixmaps_dir: str = DEFAULT_PIXMAPS_DIR,
        fallback_data_dirs: tuple[str, ...] | list[str] = DEFAULT_DATA_DIRS,
    ) -> None:
        self.registry = registry
        self.runtime_dir = runtime_dir
        self.pixmaps_dir = pixmaps_dir
        self.fallback_data_dirs = list(fallback_data_dirs)

    async def sync(self, name: str, kind: RuntimeKind, driver: ContainerDriver) -> SyncResult:
        """Run one full pass for container *name*, publishing under owner *name*."""
        result = SyncResult(container=name, kind=kind)
        log = logger.bind(container=name, kind=str(kind))
        started = time.monotonic()

        try:
            result.stage = SyncStage.STARTING
            await self._start(name, kind, driver)

            result.stage = SyncStage.HARVESTING
            with transient_workspace(self.runtime_dir, name) as ws:
                await self._harvest(name, driver, ws, result)

                result.stage = SyncStage.TRANSFORMING
                resolved = self._transform(name, kind, ws)

                result.stage = SyncStage.PUBLISHING
                await self._publish(name, resolved, result)

                result.stage = SyncStage.CLEANING_UP
        except (ContainerDesktopEntriesError, OSError) as exc:
            result.failed_stage = result.stage
            result.cause = exc
            result.stage = SyncStage.FAILED
            log.error(
                "Sync failed",
                stage=str(result.failed_stage),
                error=type(exc).__name__,
                detail=str(exc),
            )
            return result

        result.stage = SyncStage.DONE
        log.info(
            "Sync complete",
            entries=len(result.entries_registered),
            icons=len(result.icons_registered),
            entry_failures=len(result.entries_failed),
            icon_failures=len(result.icons_failed),
            skipped_sources=len(result.sources_skipped),
            elapsed_ms=round((time.monotonic() - started) * 1000),
        )
        return result

    # -- stages ---------------------------------------------------------

    async def _start(self, name: str, kind: RuntimeKind, driver: ContainerDriver) -> None:
        if not is_supported(kind):
            raise UnsupportedRuntimeError(str(kind), "start")
        await driver.start(name)
        logger.debug("Container running", container=name)

    async def _data_dirs(self, name: str, driver: ContainerDriver) -> list[str]:
        output = await driver.exec(name, DATA_DIRS_COMMAND)
        dirs = split_data_dirs(output.stdout)
        if not dirs:
            logger.info("Container reports no data dirs, using defaults", container=name)
            dirs = list(self.fallback_data_dirs)
        logger.debug("Data dirs", container=name, dirs=dirs)
        return dirs

    async def _harvest(
        self,
        name: str,
        driver: ContainerDriver,
        ws: Workspace,
        result: SyncResult,
    ) -> None:
        dirs = await self._data_dirs(name, driver)

        # Later copies overwrite earlier ones; walk lowest priority first so
        # the first XDG data dir wins.
        copies: list[tuple[str, Path]] = []
        for data_dir in reversed(dirs):
            base = PurePosixPath(data_dir)
            copies.append((str(base / "applications"), ws.applications))
            copies.append((str(base / "icons"), ws.icons))
        copies.append((self.pixmaps_dir, ws.pixmaps))

        for src, dst in copies:
            try:
                await driver.copy_out(name, src, dst)
            except (DriverError, UnsupportedRuntimeError) as exc:
                result.sources_skipped.append(src)
                logger.warning(
                    "Could not copy from container, skipping",
                    container=name,
                    src=src,
                    err=str(exc),
                )

    def _transform(self, name: str, kind: RuntimeKind, ws: Workspace) -> list[ResolvedEntry]:
        resolved: list[ResolvedEntry] = []
        icons: dict[str, IconAsset | None] = {}
        for rewritten in load_entries(ws.applications, kind, name):
            icon_name = rewritten.entry.icon
            icon = None
            if icon_name:
                if icon_name not in icons:
                    icons[icon_name] = resolve_icon(icon_name, ws.icons, ws.pixmaps)
                    if icons[icon_name] is None:
                        logger.debug("Icon not found", container=name, icon=icon_name)
                icon = icons[icon_name]
            resolved.append(ResolvedEntry(entry=rewritten, icon=icon))
        return resolved

    async def _publish(
        self,
        owner: str,
        resolved: list[ResolvedEntry],
        result: SyncResult,
    ) -> None:
        try:
            await self.registry.retract_owner(owner)
        except RegistryError as exc:
            logger.error("Could not retract previous entries", owner=owner, err=str(exc))

        pushed_icons: set[str] = set()
        for item in resolved:
            entry = item.entry.entry
            try:
                await self.registry.register(entry.appid, item.entry.text, owner)
            except RegistryError as exc:
                result.entries_failed.append(entry.appid)
                logger.error("Daemon rejected entry", appid=entry.appid, owner=owner, err=str(exc))
                continue
            result.entries_registered.append(entry.appid)
            logger.info("Daemon registered entry", appid=entry.appid, owner=owner)

            icon_name = entry.icon
            if icon_name is None or item.icon is None or icon_name in pushed_icons:
                continue
            if not item.icon.registrable:
                logger.debug("Icon format not supported", icon=icon_name, path=str(item.icon.path))
                continue
            await self._publish_icon(owner, icon_name, item.icon, result)
            pushed_icons.add(icon_name)

    async def _publish_icon(
        self,
        owner: str,
        icon_name: str,
        icon: IconAsset,
        result: SyncResult,
    ) -> None:
        try:
            data = icon.read_bytes()
        except OSError as exc:
            result.icons_failed.append(icon_name)
            logger.error("Could not read icon", icon=icon_name, path=str(icon.path), err=str(exc))
            return
        try:
            await self.registry.register_icon(icon_name, data, owner)
        except RegistryError as exc:
            result.icons_failed.append(icon_name)
            logger.error("Daemon rejected icon", icon=icon_name, owner=owner, err=str(exc))
            return
        result.icons_registered.append(icon_name)
        logger.info("Daemon registered icon", icon=icon_name, owner=owner)
