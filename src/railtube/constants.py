"""Stable constants shared across railtube components."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Manifest section identifiers, in processing order.
SYSTEM_SECTION: Final[str] = "system"
PACKAGE_SECTIONS: Final[tuple[str, ...]] = ("apt", "snap", "flatpak", "cargo")
SECTIONS: Final[tuple[str, ...]] = (
    SYSTEM_SECTION,
    *PACKAGE_SECTIONS,
    "deb",
    "scripts",
)

# Backend tags. ``system`` is served by the apt backend.
BACKEND_TAGS: Final[tuple[str, ...]] = ("apt", "snap", "flatpak", "cargo", "deb", "scripts")
SECTION_BACKEND: Final[dict[str, str]] = {
    SYSTEM_SECTION: "apt",
    "apt": "apt",
    "snap": "snap",
    "flatpak": "flatpak",
    "cargo": "cargo",
    "deb": "deb",
    "scripts": "scripts",
}

# Sections whose entries accept ``name=version`` pins.
VERSIONED_SECTIONS: Final[frozenset[str]] = frozenset({"apt", "cargo"})

# Sections that can be queried back into manifest form.
EXPORTABLE_SECTIONS: Final[tuple[str, ...]] = PACKAGE_SECTIONS

DEFAULT_EXPORT_PATH: Final[str] = "exported-env.toml"
EXPORT_HEADER: Final[str] = (
    "# NOTE: scripts and deb sections are not exported as they are defined, not installed."
)

DEFAULT_LOG_DIR: Final[PurePosixPath] = PurePosixPath("~/.cache/railtube/logs")
DEFAULT_LOG_FILENAME: Final[str] = "railtube.jsonl"
DEFAULT_HTTP_TIMEOUT_SECONDS: Final[float] = 30.0

# Exit status used by shells for "command not found".
COMMAND_NOT_FOUND_EXIT: Final[int] = 127

__all__ = [
    "BACKEND_TAGS",
    "COMMAND_NOT_FOUND_EXIT",
    "DEFAULT_EXPORT_PATH",
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
    "DEFAULT_LOG_DIR",
    "DEFAULT_LOG_FILENAME",
    "EXPORTABLE_SECTIONS",
    "EXPORT_HEADER",
    "PACKAGE_SECTIONS",
    "SECTIONS",
    "SECTION_BACKEND",
    "SYSTEM_SECTION",
    "VERSIONED_SECTIONS",
]
