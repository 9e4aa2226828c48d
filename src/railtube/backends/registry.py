"""Build the per-run backend set, keyed by tag."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType

from railtube.backends.apt import AptBackend
from railtube.backends.base import Backend, CommandRunner
from railtube.backends.cargo import CargoBackend
from railtube.backends.deb import DebBackend, Downloader, HttpxDownloader
from railtube.backends.flatpak import FlatpakBackend
from railtube.backends.scripts import ScriptsBackend
from railtube.backends.snap import SnapBackend
from railtube.constants import BACKEND_TAGS, SECTION_BACKEND
from railtube.domain.models import Manifest


def build_backends(
    runner: CommandRunner,
    *,
    manifest: Manifest | None = None,
    download_dir: Path,
    downloader: Downloader | None = None,
) -> Mapping[str, Backend]:
    """Instantiate every backend for one run, sharing ``runner``."""

    scripts = manifest.scripts if manifest is not None else {}
    backends: dict[str, Backend] = {
        "apt": AptBackend(runner),
        "snap": SnapBackend(runner),
        "flatpak": FlatpakBackend(runner),
        "cargo": CargoBackend(runner),
        "deb": DebBackend(
            runner,
            download_dir=download_dir,
            downloader=downloader if downloader is not None else HttpxDownloader(),
        ),
        "scripts": ScriptsBackend(runner, scripts),
    }
    if tuple(backends) != BACKEND_TAGS:
        raise RuntimeError("backend registry out of sync with BACKEND_TAGS")
    return MappingProxyType(backends)


def backend_for_section(backends: Mapping[str, Backend], section: str) -> Backend:
    try:
        return backends[SECTION_BACKEND[section]]
    except KeyError as exc:
        raise KeyError(f"no backend registered for section {section!r}") from exc


__all__ = ["backend_for_section", "build_backends"]
