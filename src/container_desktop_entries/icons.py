"""Icon lookup over a harvested icon tree.

Picks one file for an icon name.  SVG always wins.  A PNG scores by the
``<N>x<N>`` directory two levels above it, as in the hicolor layout
``icons/<theme>/<N>x<N>/<context>/<name>.png``.  When nothing in the icon
tree matches, the pixmaps directory is searched and the first hit is used.

Directories are walked in sorted order and symlinked directories are not
entered, so the same tree always produces the same answer.  Symlinked
files are used only when they resolve to a file inside the same tree; a
link copied out of a container may point anywhere on the host.  On a score
tie the first candidate walked wins; a bigger icon in a later theme with
the same size bucket does not displace it.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from container_desktop_entries.logger import logger

VECTOR_SCORE = 2**32 - 1
MIN_SCORE = 0

VECTOR_EXTENSIONS = frozenset({"svg"})
RASTER_EXTENSIONS = frozenset({"png"})


class IconFormat(StrEnum):
    VECTOR = "vector"
    RASTER = "raster"
    OTHER = "other"


def _format_of(path: Path) -> IconFormat:
    ext = path.suffix[1:].lower()
    if ext in VECTOR_EXTENSIONS:
        return IconFormat.VECTOR
    if ext in RASTER_EXTENSIONS:
        return IconFormat.RASTER
    return IconFormat.OTHER


def _size_bucket(path: Path) -> int | None:
    """Pixel size from the grandparent directory (``48x48`` -> 48)."""
    grandparent = path.parent.parent.name
    head, sep, _ = grandparent.partition("x")
    # ASCII only; isdigit() alone accepts "²", which int() rejects
    if not sep or not (head.isascii() and head.isdigit()):
        return None
    return int(head)


@dataclass(frozen=True)
class IconAsset:
    path: Path
    format: IconFormat
    size: int | None = None

    @classmethod
    def from_path(cls, path: Path) -> IconAsset:
        fmt = _format_of(path)
        size = _size_bucket(path) if fmt is IconFormat.RASTER else None
        return cls(path=path, format=fmt, size=size)

    @property
    def score(self) -> int:
        if self.format is IconFormat.VECTOR:
            return VECTOR_SCORE
        if self.format is IconFormat.RASTER and self.size is not None:
            return self.size
        return MIN_SCORE

    @property
    def registrable(self) -> bool:
        """Only SVG and PNG files are sent to the daemon."""
        return self.format is not IconFormat.OTHER

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()


def _inside_tree(path: Path, root: Path) -> bool:
    if not path.is_symlink():
        return True
    try:
        target = path.resolve(strict=True)
    except (OSError, RuntimeError):
        return False
    return target.is_file() and target.is_relative_to(root.resolve())


def _walk_files(root: Path) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        dirnames.sort()
        for filename in sorted(filenames):
            yield Path(dirpath) / filename


def _matching(root: Path, icon_name: str) -> Iterator[Path]:
    for path in _walk_files(root):
        if path.stem != icon_name:
            continue
        if not _inside_tree(path, root):
            logger.debug("Skipping icon link outside the tree", path=str(path))
            continue
        yield path


def resolve_icon(icon_name: str, icon_root: Path, pixmap_root: Path) -> IconAsset | None:
    """Best icon file for *icon_name*, or None when neither tree has one."""
    best: IconAsset | None = None
    for path in _matching(icon_root, icon_name):
        candidate = IconAsset.from_path(path)
        # strict > keeps the first candidate on ties
        if best is None or candidate.score > best.score:
            best = candidate
    if best is not None:
        return best

    for path in _matching(pixmap_root, icon_name):
        return IconAsset.from_path(path)
    return None
