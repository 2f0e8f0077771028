"""Container runtime kinds and their command templates.

Every kind maps to one :class:`RuntimeTemplates` record.  A template that
is the empty string means "this runtime cannot do that"; callers check
for it instead of branching on the kind.

The builders here only produce shell command strings.  Running them is
the job of :mod:`container_desktop_entries.driver`.
"""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from enum import StrEnum
from pathlib import PurePosixPath

# Stands in for the captured original value in the line templates.
VALUE_PLACEHOLDER = "{value}"

# Stays on one line: an empty "Exec=" must not swallow the next key.
EXEC_LINE_PATTERN = r"(Exec=[ \t]?)(.*)"
NAME_LINE_PATTERN = r"(Name=[ \t]?)(.*)"


class RuntimeKind(StrEnum):
    TOOLBOX = "toolbox"
    PODMAN = "podman"
    DOCKER = "docker"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str) -> RuntimeKind:
        """Map a config string to a kind; anything unrecognized is UNKNOWN."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class RuntimeTemplates:
    """Command and rewrite templates for one runtime kind.

    ``{name}`` is the container name.  ``{command}``, ``{src}`` and
    ``{dst}`` are filled by the builders below.  The two line templates
    keep :data:`VALUE_PLACEHOLDER` for the captured field value.
    """

    start: str = ""
    exec: str = ""
    copy_out: str = ""
    exec_pattern: str = ""
    exec_line: str = ""
    name_pattern: str = ""
    name_line: str = ""


TEMPLATES: dict[RuntimeKind, RuntimeTemplates] = {
    RuntimeKind.TOOLBOX: RuntimeTemplates(
        start="toolbox run -c {name} echo 'Started'",
        exec="toolbox run -c {name} {command}",
        copy_out="podman container cp {name}:{src}/. {dst}/",
        exec_pattern=EXEC_LINE_PATTERN,
        exec_line="Exec=toolbox run -c {name} " + VALUE_PLACEHOLDER,
        name_pattern=NAME_LINE_PATTERN,
        name_line="Name=" + VALUE_PLACEHOLDER + " ({name})",
    ),
    # Launching through podman directly does not work for every image yet.
    RuntimeKind.PODMAN: RuntimeTemplates(
        exec_pattern=EXEC_LINE_PATTERN,
        exec_line=(
            "Exec=sh -c 'podman container start {name} && "
            "podman container exec {name} " + VALUE_PLACEHOLDER + "'"
        ),
        name_pattern=NAME_LINE_PATTERN,
    ),
    RuntimeKind.DOCKER: RuntimeTemplates(
        exec_pattern=EXEC_LINE_PATTERN,
        name_pattern=NAME_LINE_PATTERN,
    ),
    RuntimeKind.UNKNOWN: RuntimeTemplates(),
}


@dataclass(frozen=True)
class LineRewrite:
    """A compiled pattern plus the replacement line for one container."""

    pattern: re.Pattern[str]
    replacement: str

    def apply(self, text: str) -> str:
        return self.pattern.sub(
            lambda m: self.replacement.replace(VALUE_PLACEHOLDER, m.group(2)), text
        )


def templates_for(kind: RuntimeKind) -> RuntimeTemplates:
    return TEMPLATES[kind]


def is_supported(kind: RuntimeKind) -> bool:
    """A kind is usable for a sync pass only if it knows how to start."""
    return bool(templates_for(kind).start)


def _fill(template: str, name: str) -> str:
    # str.replace keeps braces in user-supplied values intact
    return template.replace("{name}", name)


def build_start(kind: RuntimeKind, name: str) -> str:
    """Command that makes sure *name* is running, or ``""`` if unsupported."""
    return _fill(templates_for(kind).start, shlex.quote(name))


def build_exec(kind: RuntimeKind, name: str, inner_command: str) -> str:
    template = templates_for(kind).exec
    if not template:
        return ""
    return _fill(template, shlex.quote(name)).replace("{command}", inner_command)


def build_copy_out(
    kind: RuntimeKind,
    name: str,
    src: str | PurePosixPath,
    dst: str | PurePosixPath,
) -> str:
    """Recursively copy the *contents* of *src* in the container into *dst*."""
    template = templates_for(kind).copy_out
    if not template:
        return ""
    src_str = shlex.quote(str(src).rstrip("/") or "/")
    dst_str = shlex.quote(str(dst).rstrip("/") or "/")
    command = _fill(template, shlex.quote(name))
    return command.replace("{src}", src_str).replace("{dst}", dst_str)


def _line_rewrite(pattern: str, line: str, name: str) -> LineRewrite | None:
    if not pattern or not line:
        return None
    return LineRewrite(re.compile(pattern), _fill(line, name))


def exec_rewrite(kind: RuntimeKind, name: str) -> LineRewrite | None:
    """Rewrite for ``Exec=`` lines, or None when the kind has no template."""
    t = templates_for(kind)
    return _line_rewrite(t.exec_pattern, t.exec_line, name)


def name_rewrite(kind: RuntimeKind, name: str) -> LineRewrite | None:
    """Rewrite for ``Name=`` lines, or None when the kind has no template."""
    t = templates_for(kind)
    return _line_rewrite(t.name_pattern, t.name_line, name)
