"""Client for the host desktop entry daemon.

The daemon keeps session-scoped entries and icons grouped by an owner
string and drops everything for an owner on ``RemoveSessionOwner``.  We
talk to it over the D-Bus session bus with :mod:`dbus_fast`, sending the
method calls directly so no introspection round trip is needed.
"""

from __future__ import annotations

from typing import Protocol

from dbus_fast import BusType, Message, MessageType
from dbus_fast.aio import MessageBus

from container_desktop_entries.errors import RegistryError
from container_desktop_entries.logger import logger

DEFAULT_BUS_NAME = "net.ryanabx.DesktopEntry"
DEFAULT_OBJECT_PATH = "/net/ryanabx/DesktopEntry"
DEFAULT_INTERFACE = "net.ryanabx.DesktopEntry"


class RegistryClient(Protocol):
    async def register(self, app_id: str, descriptor_text: str, owner: str) -> None: ...

    async def register_icon(self, icon_name: str, data: bytes, owner: str) -> None: ...

    async def retract_owner(self, owner: str) -> None: ...


class DBusRegistryClient:
    """RegistryClient backed by the daemon's D-Bus interface."""

    def __init__(
        self,
        bus_name: str = DEFAULT_BUS_NAME,
        object_path: str = DEFAULT_OBJECT_PATH,
        interface: str = DEFAULT_INTERFACE,
        *,
        bus_type: BusType = BusType.SESSION,
    ) -> None:
        self.bus_name = bus_name
        self.object_path = object_path
        self.interface = interface
        self.bus_type = bus_type
        self._bus: MessageBus | None = None

    async def connect(self) -> None:
        if self._bus is not None:
            return
        try:
            self._bus = await MessageBus(bus_type=self.bus_type).connect()
        except Exception as exc:
            raise RegistryError(f"Could not connect to the session bus: {exc}") from exc
        logger.info("Connected to session bus", daemon=self.bus_name)

    def disconnect(self) -> None:
        if self._bus is None:
            return
        self._bus.disconnect()
        self._bus = None

    async def _call(self, member: str, signature: str, body: list) -> None:
        if self._bus is None:
            raise RegistryError("Not connected to the session bus")
        message = Message(
            destination=self.bus_name,
            path=self.object_path,
            interface=self.interface,
            member=member,
            signature=signature,
            body=body,
        )
        try:
            reply = await self._bus.call(message)
        except Exception as exc:
            raise RegistryError(f"{member} failed: {exc}") from exc
        if reply is None:
            return
        if reply.message_type == MessageType.ERROR:
            detail = reply.body[0] if reply.body else ""
            raise RegistryError(f"{member} failed: {reply.error_name}: {detail}")

    async def register(self, app_id: str, descriptor_text: str, owner: str) -> None:
        await self._call("NewSessionEntry", "sss", [app_id, descriptor_text, owner])

    async def register_icon(self, icon_name: str, data: bytes, owner: str) -> None:
        await self._call("NewSessionIcon", "says", [icon_name, data, owner])

    async def retract_owner(self, owner: str) -> None:
        await self._call("RemoveSessionOwner", "s", [owner])
