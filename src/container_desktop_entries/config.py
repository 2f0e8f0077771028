"""Configuration: Pydantic BaseSettings with a TOML source.

Settings live in ``config.toml``.  Environment variables override it,
using ``__`` as the nested delimiter (e.g. ``LOGGING__LEVEL=DEBUG``).

Priority (highest wins): init args > env vars > config.toml

The container list can also come from the older ``containers.conf``
format: one ``<name> <kind>`` pair per line.  A config path that does not
end in ``.toml`` is read that way.

Usage::

    from container_desktop_entries.config import get_settings

    s = get_settings()
    for c in s.containers:
        print(c.name, c.kind)
"""

from __future__ import annotations

import os
from functools import cached_property
from pathlib import Path
from typing import Any

from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from container_desktop_entries.errors import ConfigError
from container_desktop_entries.registrar import DEFAULT_DATA_DIRS, DEFAULT_PIXMAPS_DIR
from container_desktop_entries.registry import (
    DEFAULT_BUS_NAME,
    DEFAULT_INTERFACE,
    DEFAULT_OBJECT_PATH,
)
from container_desktop_entries.runtime import RuntimeKind
from container_desktop_entries.workspace import APP_DIR_NAME, default_runtime_dir

CONFIG_FILE_NAME = "config.toml"
LEGACY_CONFIG_FILE_NAME = "containers.conf"


def default_config_dir() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / APP_DIR_NAME


def default_config_path() -> Path:
    return default_config_dir() / CONFIG_FILE_NAME


# ---------------------------------------------------------------------------
# Sub-models (each maps to a [section] in config.toml)
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Base for all config sub-models. Unknown keys are rejected."""

    model_config = {"extra": "forbid"}


class ContainerConfig(_StrictModel):
    name: str
    kind: RuntimeKind = RuntimeKind.TOOLBOX

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        name = v.strip()
        if not name:
            raise ValueError("Container name cannot be empty")
        return name

    @field_validator("kind", mode="before")
    @classmethod
    def parse_kind(cls, v: Any) -> RuntimeKind:
        # Unknown strings are kept as UNKNOWN so the pass can report them
        if isinstance(v, RuntimeKind):
            return v
        return RuntimeKind.parse(str(v))


class DaemonConfig(_StrictModel):
    bus_name: str = DEFAULT_BUS_NAME
    object_path: str = DEFAULT_OBJECT_PATH
    interface: str = DEFAULT_INTERFACE


class WorkspaceConfig(_StrictModel):
    runtime_dir: str | None = None  # None → $RUNTIME_DIRECTORY or /run/user/<uid>/...


class HarvestConfig(_StrictModel):
    pixmaps_dir: str = DEFAULT_PIXMAPS_DIR
    fallback_data_dirs: list[str] = list(DEFAULT_DATA_DIRS)
    command_timeout: float = 120.0  # seconds

    @field_validator("command_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("command_timeout must be positive")
        return v


class LoggingConfig(_StrictModel):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()


# ---------------------------------------------------------------------------
# Root Settings
# ---------------------------------------------------------------------------

_config_path: Path | None = None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        extra="ignore",
    )

    containers: list[ContainerConfig] = []
    daemon: DaemonConfig = DaemonConfig()
    workspace: WorkspaceConfig = WorkspaceConfig()
    harvest: HarvestConfig = HarvestConfig()
    logging: LoggingConfig = LoggingConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init > env vars > config.toml."""
        toml_file = _config_path if _config_path is not None else default_config_path()
        if toml_file.suffix != ".toml":
            # Legacy containers.conf: the container list arrives as init args
            return (init_settings, env_settings)
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=toml_file),
        )

    # --- Computed properties ---

    @cached_property
    def runtime_dir(self) -> Path:
        if self.workspace.runtime_dir:
            return Path(self.workspace.runtime_dir).expanduser()
        return default_runtime_dir()


# ---------------------------------------------------------------------------
# Legacy containers.conf
# ---------------------------------------------------------------------------


def parse_container_list(
    text: str,
    source: str = LEGACY_CONFIG_FILE_NAME,
) -> list[ContainerConfig]:
    """Parse ``<name> <kind>`` lines.  Blank lines and ``#`` comments are skipped."""
    containers: list[ContainerConfig] = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split()
        if len(parts) != 2:
            msg = f"{source}:{lineno}: expected '<name> <kind>', got {raw!r}"
            raise ConfigError(msg)
        containers.append(ContainerConfig(name=parts[0], kind=RuntimeKind.parse(parts[1])))
    return containers


# ---------------------------------------------------------------------------
# Singleton + loaders
# ---------------------------------------------------------------------------

_settings: Settings | None = None


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from *path* (or the default location) and cache them.

    Raises ConfigError when the file is missing or invalid.
    """
    global _settings, _config_path
    path = path or default_config_path()
    if not path.is_file():
        msg = (
            f"Config file not found at '{path}'. "
            "Create one with 'container-desktop-entries init-config'."
        )
        raise ConfigError(msg)

    try:
        _config_path = path
        if path.suffix == ".toml":
            settings = Settings()
        else:
            containers = parse_container_list(path.read_text(), source=str(path))
            settings = Settings(containers=containers)
    except ValueError as exc:
        # pydantic.ValidationError subclasses ValueError
        raise ConfigError(f"Invalid config at '{path}':\n{exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Could not read config at '{path}': {exc}") from exc

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Lazy cached singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached singleton (for tests)."""
    global _settings, _config_path
    _settings = None
    _config_path = None


def write_default_config(path: Path) -> Path:
    """Write a commented starter ``config.toml`` using tomlkit.

    Refuses to overwrite an existing file.
    """
    import tomlkit

    if path.exists():
        raise ConfigError(f"Config already exists at '{path}'")

    doc = tomlkit.document()
    doc.add(tomlkit.comment("Containers whose applications are shown on the host."))
    doc.add(tomlkit.comment("kind is one of: toolbox, podman, docker"))

    containers = tomlkit.aot()
    example = tomlkit.table()
    example.add("name", "fedora-toolbox")
    example.add("kind", str(RuntimeKind.TOOLBOX))
    containers.append(example)
    doc.add("containers", containers)

    daemon = tomlkit.table()
    daemon.add("bus_name", DEFAULT_BUS_NAME)
    daemon.add("object_path", DEFAULT_OBJECT_PATH)
    daemon.add("interface", DEFAULT_INTERFACE)
    doc.add("daemon", daemon)

    harvest = tomlkit.table()
    harvest.add("pixmaps_dir", DEFAULT_PIXMAPS_DIR)
    harvest.add("fallback_data_dirs", list(DEFAULT_DATA_DIRS))
    harvest.add("command_timeout", 120.0)
    doc.add("harvest", harvest)

    logging_table = tomlkit.table()
    logging_table.add("level", "INFO")
    doc.add("logging", logging_table)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(tomlkit.dumps(doc))
    return path
