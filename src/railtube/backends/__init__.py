"""
railtube - package-manager backends.

File: src/railtube/backends/__init__.py

Purpose
- Expose the backend contract, the command runner seam and the concrete backends.
"""

from __future__ import annotations

from railtube.backends.apt import AptBackend
from railtube.backends.base import (
    UNSUPPORTED,
    Backend,
    BackendError,
    CommandExecutionResult,
    CommandRunner,
    ExecutionError,
    QueryError,
    QueryErrorKind,
    SubprocessCommandRunner,
    Unsupported,
)
from railtube.backends.cargo import CargoBackend
from railtube.backends.deb import DebBackend, DownloadError, Downloader, HttpxDownloader
from railtube.backends.flatpak import FlatpakBackend
from railtube.backends.registry import backend_for_section, build_backends
from railtube.backends.scripts import ScriptsBackend
from railtube.backends.snap import SnapBackend

__all__ = [
    "UNSUPPORTED",
    "AptBackend",
    "Backend",
    "BackendError",
    "CargoBackend",
    "CommandExecutionResult",
    "CommandRunner",
    "DebBackend",
    "DownloadError",
    "Downloader",
    "ExecutionError",
    "FlatpakBackend",
    "HttpxDownloader",
    "QueryError",
    "QueryErrorKind",
    "ScriptsBackend",
    "SnapBackend",
    "SubprocessCommandRunner",
    "Unsupported",
    "backend_for_section",
    "build_backends",
]
