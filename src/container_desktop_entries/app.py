"""Sync every configured container, then stay up until shutdown.

The daemon drops session entries when their publisher goes away, so after
the initial sync this process waits until it is told to stop.  SIGTERM and
SIGINT set a shutdown event; a signal that arrives while containers are
still being synced stops the loop before the next container starts.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable, Sequence

from container_desktop_entries.config import ContainerConfig, Settings
from container_desktop_entries.driver import ContainerDriver, LocalDriver, ShellContainerDriver
from container_desktop_entries.errors import RegistryError
from container_desktop_entries.logger import logger
from container_desktop_entries.registrar import SessionRegistrar, SyncResult, SyncStage
from container_desktop_entries.registry import DBusRegistryClient, RegistryClient
from container_desktop_entries.runtime import RuntimeKind

DriverFactory = Callable[[RuntimeKind], ContainerDriver]


def build_registry(settings: Settings) -> DBusRegistryClient:
    return DBusRegistryClient(
        bus_name=settings.daemon.bus_name,
        object_path=settings.daemon.object_path,
        interface=settings.daemon.interface,
    )


def build_registrar(settings: Settings, registry: RegistryClient) -> SessionRegistrar:
    return SessionRegistrar(
        registry,
        settings.runtime_dir,
        pixmaps_dir=settings.harvest.pixmaps_dir,
        fallback_data_dirs=settings.harvest.fallback_data_dirs,
    )


async def sync_all(
    containers: Sequence[ContainerConfig],
    registrar: SessionRegistrar,
    driver_factory: DriverFactory,
    stop: asyncio.Event | None = None,
) -> list[SyncResult]:
    """Sync *containers* one at a time, in order.

    A failing container is recorded and the next one still runs.
    """
    results: list[SyncResult] = []
    for container in containers:
        if stop is not None and stop.is_set():
            logger.info("Shutdown requested, skipping remaining containers")
            break
        try:
            result = await registrar.sync(
                container.name, container.kind, driver_factory(container.kind)
            )
        except Exception as exc:
            logger.exception("Unexpected error during sync", container=container.name)
            result = SyncResult(
                container=container.name,
                kind=container.kind,
                stage=SyncStage.FAILED,
                cause=exc,
            )
        results.append(result)
    return results


def log_summary(results: Sequence[SyncResult]) -> None:
    failed = [r.container for r in results if not r.ok]
    logger.info(
        "Initial sync finished",
        containers=len(results),
        failed=failed,
        entries=sum(len(r.entries_registered) for r in results),
        icons=sum(len(r.icons_registered) for r in results),
    )


def install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _on_signal(sig: signal.Signals) -> None:
        if not stop.is_set():
            logger.info("Shutdown signal received", signal=sig.name)
        stop.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _on_signal, sig)


async def _serve(
    settings: Settings,
    containers: Sequence[ContainerConfig],
    driver_factory: DriverFactory,
    *,
    once: bool,
    registry: DBusRegistryClient | None = None,
) -> int:
    stop = asyncio.Event()
    install_signal_handlers(stop)

    registry = registry or build_registry(settings)
    try:
        await registry.connect()
    except RegistryError as exc:
        logger.error("Desktop entry daemon unreachable", err=str(exc))
        return 1

    registrar = build_registrar(settings, registry)
    try:
        results = await sync_all(containers, registrar, driver_factory, stop)
        log_summary(results)
        if not once:
            logger.info("Keeping entries published until shutdown")
            await stop.wait()
    finally:
        registry.disconnect()
    logger.info("Shutdown complete")
    return 0


async def run_server(settings: Settings, *, once: bool = False) -> int:
    """Harvest every configured container from the host."""
    if not settings.containers:
        logger.warning("No containers configured")
    timeout = settings.harvest.command_timeout

    def factory(kind: RuntimeKind) -> ContainerDriver:
        return ShellContainerDriver(kind, timeout=timeout)

    return await _serve(settings, settings.containers, factory, once=once)


async def run_agent(
    settings: Settings,
    name: str,
    kind: RuntimeKind,
    *,
    once: bool = False,
) -> int:
    """Publish this machine's applications as if harvested from container *name*."""
    timeout = settings.harvest.command_timeout

    def factory(_kind: RuntimeKind) -> ContainerDriver:
        return LocalDriver(timeout=timeout)

    container = ContainerConfig(name=name, kind=kind)
    return await _serve(settings, [container], factory, once=once)
