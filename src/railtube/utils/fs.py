"""
railtube - filesystem utilities

File: src/railtube/utils/fs.py

Purpose
- Write exported manifests atomically and provide run-scoped scratch directories.

Functional requirements
- An interrupted export never leaves a half-written file at the target path.
- Scratch directories (deb downloads) are removed when the run ends.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

PathLike = str | os.PathLike[str]


def atomic_write_text(path: PathLike, text: str, *, encoding: str = "utf-8") -> Path:
    """Write ``text`` to ``path`` via a sibling temp file and ``os.replace``.

    The parent directory must exist. Returns the resolved target path.
    """

    target = Path(path).expanduser()
    parent = target.parent.resolve(strict=True)
    if not parent.is_dir():
        raise NotADirectoryError(f"{parent!s} is not a directory")

    fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(parent))
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, parent / target.name)
        _fsync_directory(parent)
    except BaseException:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise
    return parent / target.name


@contextmanager
def temp_directory(prefix: str = "railtube-") -> Iterator[Path]:
    """Yield a temporary directory path and clean it up on exit."""

    with tempfile.TemporaryDirectory(prefix=prefix) as tmp:
        yield Path(tmp)


def _fsync_directory(path: Path) -> None:
    # Not every filesystem supports fsync on directories.
    flags = os.O_RDONLY | getattr(os, "O_DIRECTORY", 0)
    try:
        dir_fd = os.open(path, flags)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        return
    finally:
        os.close(dir_fd)


__all__ = ["atomic_write_text", "temp_directory"]
