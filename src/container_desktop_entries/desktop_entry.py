"""Desktop entry rewriting and decoding.

A harvested ``.desktop`` file is rewritten textually so that its ``Exec=``
lines launch through the container and its ``Name=`` lines say which
container the application comes from.  Only those lines change; every
other byte of the file is kept.

Rewriting is meant to run once, on the text exactly as it came out of the
container.  The patterns also match already-rewritten lines, so feeding
the output back in wraps the command a second time.
"""

from __future__ import annotations

import configparser
from dataclasses import dataclass
from pathlib import Path

from container_desktop_entries.errors import DescriptorDecodeError
from container_desktop_entries.logger import logger
from container_desktop_entries.runtime import RuntimeKind, exec_rewrite, name_rewrite

DESKTOP_ENTRY_GROUP = "Desktop Entry"

_TRUE_VALUES = frozenset({"true", "1"})


@dataclass(frozen=True)
class DesktopEntry:
    """Decoded view of one desktop entry file."""

    appid: str
    name: str | None
    exec: str | None
    icon: str | None
    no_display: bool
    path: Path | None = None


@dataclass(frozen=True)
class RewrittenEntry:
    """A decoded entry together with the exact text to publish."""

    entry: DesktopEntry
    text: str


def rewrite_entry(text: str, kind: RuntimeKind, container_name: str) -> str:
    """Rewrite every ``Exec=`` and ``Name=`` line for *container_name*.

    A kind without a template for one of the two lines leaves those lines
    as they are.
    """
    for rewrite in (exec_rewrite(kind, container_name), name_rewrite(kind, container_name)):
        if rewrite is not None:
            text = rewrite.apply(text)
    return text


def _parse_bool(value: str | None) -> bool:
    return value is not None and value.strip().lower() in _TRUE_VALUES


def decode_entry(text: str, appid: str, path: Path | None = None) -> DesktopEntry:
    """Parse desktop entry *text*; raise DescriptorDecodeError if it is not one."""
    source = str(path) if path is not None else appid
    parser = configparser.ConfigParser(
        interpolation=None,
        delimiters=("=",),
        comment_prefixes=("#",),
        inline_comment_prefixes=None,
        strict=False,
        empty_lines_in_values=False,
    )
    # Keys are case sensitive (Name vs name)
    parser.optionxform = str  # type: ignore[assignment,method-assign]
    try:
        parser.read_string(text, source=source)
    except configparser.Error as exc:
        raise DescriptorDecodeError(source, str(exc).splitlines()[0]) from exc

    if not parser.has_section(DESKTOP_ENTRY_GROUP):
        raise DescriptorDecodeError(source, f"missing [{DESKTOP_ENTRY_GROUP}] group")

    group = parser[DESKTOP_ENTRY_GROUP]
    icon = group.get("Icon", "").strip() or None
    return DesktopEntry(
        appid=appid,
        name=group.get("Name"),
        exec=group.get("Exec"),
        icon=icon,
        no_display=_parse_bool(group.get("NoDisplay")),
        path=path,
    )


def appid_for(path: Path, root: Path) -> str:
    """Desktop file id: the path below *root* with ``/`` as ``-``, minus ``.desktop``."""
    rel = path.relative_to(root).as_posix().replace("/", "-")
    return rel[: -len(".desktop")] if rel.endswith(".desktop") else rel


def load_entries(
    applications_dir: Path,
    kind: RuntimeKind,
    container_name: str,
) -> list[RewrittenEntry]:
    """Rewrite and decode every file under *applications_dir*.

    Files that cannot be read or decoded are logged and skipped.  Entries
    flagged ``NoDisplay`` are dropped here so they never get published.
    """
    log = logger.bind(container=container_name)
    entries: list[RewrittenEntry] = []
    if not applications_dir.is_dir():
        log.warning("No applications directory harvested", path=str(applications_dir))
        return entries

    for path in sorted(p for p in applications_dir.rglob("*") if p.is_file()):
        try:
            raw = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            log.warning("Could not read desktop file", path=str(path), err=str(exc))
            continue

        text = rewrite_entry(raw, kind, container_name)
        try:
            entry = decode_entry(text, appid_for(path, applications_dir), path)
        except DescriptorDecodeError as exc:
            log.warning("Not a valid desktop entry", path=str(path), reason=exc.reason)
            continue

        if entry.no_display:
            log.debug("Skipping NoDisplay entry", appid=entry.appid)
            continue
        entries.append(RewrittenEntry(entry=entry, text=text))

    log.debug("Desktop entries loaded", count=len(entries))
    return entries
