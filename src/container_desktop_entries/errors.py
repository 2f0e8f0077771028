"""Exception hierarchy shared by the sync pipeline.

Each error is raised where it is detected and caught at the stage or batch
boundary that owns it (see :mod:`container_desktop_entries.registrar`).
"""

from __future__ import annotations


class ContainerDesktopEntriesError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(ContainerDesktopEntriesError):
    """The configuration file is missing or malformed."""


class UnsupportedRuntimeError(ContainerDesktopEntriesError):
    """The runtime kind has no template for the requested operation."""

    def __init__(self, kind: str, operation: str) -> None:
        super().__init__(f"Container runtime '{kind}' does not support {operation}")
        self.kind = kind
        self.operation = operation


class DriverError(ContainerDesktopEntriesError):
    """A command run against a container failed."""

    def __init__(self, message: str, *, command: str = "", output: str = "") -> None:
        super().__init__(message)
        self.command = command
        self.output = output


class CommandNotFoundError(DriverError):
    """The command does not exist inside the container.

    Detected by searching the captured output for a known phrase; the
    container tooling exposes no dedicated exit status for this.
    """


class DriverIOError(DriverError):
    """Spawning the command failed, it timed out, or it exited non-zero."""


class DescriptorDecodeError(ContainerDesktopEntriesError):
    """Text is not a valid desktop entry."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class RegistryError(ContainerDesktopEntriesError):
    """The desktop entry daemon rejected a call or could not be reached."""
