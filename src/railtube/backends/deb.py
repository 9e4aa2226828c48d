"""
railtube - standalone ``.deb`` backend.

File: src/railtube/backends/deb.py

Purpose
- Install ``.deb`` archives referenced by URL.

Functional requirements
- Download into the run's download directory, then ``sudo dpkg -i``.
- On dpkg failure run ``sudo apt --fix-broken install -y`` exactly once; the item
  succeeds iff that recovery succeeds.
- Installed state is not queried: every entry is planned as an install.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import unquote, urlsplit

import httpx
import structlog

from railtube.backends.base import (
    UNSUPPORTED,
    BackendError,
    CommandExecutionResult,
    CommandRunner,
    ExecutionError,
    Unsupported,
)
from railtube.constants import DEFAULT_HTTP_TIMEOUT_SECONDS
from railtube.domain.models import CommandSpec, InstalledPackage, PackageSpec

FIX_BROKEN_COMMAND = CommandSpec("sudo", ("apt", "--fix-broken", "install", "-y"))
DEFAULT_FILENAME = "package.deb"


class DownloadError(BackendError):
    """Raised when a ``.deb`` archive cannot be fetched."""

    def __init__(self, url: str, detail: str) -> None:
        self.url = url
        self.detail = detail
        super().__init__(f"deb: download failed for {url}: {detail}")


class Downloader(Protocol):
    def download(self, url: str, destination: Path) -> Path: ...


class HttpxDownloader:
    """Stream a URL to disk with ``httpx``."""

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        self._timeout = timeout
        self._client = client

    def download(self, url: str, destination: Path) -> Path:
        destination.parent.mkdir(parents=True, exist_ok=True)
        client = self._client if self._client is not None else httpx.Client(timeout=self._timeout)
        try:
            with client.stream("GET", url, follow_redirects=True) as response:
                response.raise_for_status()
                with destination.open("wb") as handle:
                    for chunk in response.iter_bytes():
                        handle.write(chunk)
        except httpx.HTTPStatusError as exc:
            raise DownloadError(url, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise DownloadError(url, str(exc) or type(exc).__name__) from exc
        except httpx.InvalidURL as exc:
            raise DownloadError(url, f"invalid URL: {exc}") from exc
        except OSError as exc:
            raise DownloadError(url, str(exc)) from exc
        finally:
            if self._client is None:
                client.close()
        return destination


def archive_filename(url: str) -> str:
    segment = unquote(urlsplit(url).path).rsplit("/", 1)[-1]
    return segment or DEFAULT_FILENAME


class DebBackend:
    tag = "deb"
    supports_query = False

    def __init__(
        self,
        runner: CommandRunner,
        *,
        download_dir: Path,
        downloader: Downloader,
        logger: Any | None = None,
    ) -> None:
        self._runner = runner
        self._download_dir = download_dir
        self._downloader = downloader
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def list_installed(self) -> tuple[InstalledPackage, ...]:
        return ()

    def is_satisfied(self, spec: PackageSpec, installed: Mapping[str, InstalledPackage]) -> bool:
        return False

    def archive_path(self, spec: PackageSpec) -> Path:
        return self._download_dir / archive_filename(spec.name)

    def build_install_command(self, spec: PackageSpec) -> CommandSpec:
        return CommandSpec("sudo", ("dpkg", "-i", str(self.archive_path(spec))))

    def install(self, spec: PackageSpec) -> CommandExecutionResult:
        path = self._downloader.download(spec.name, self.archive_path(spec))
        self._logger.info("deb_downloaded", url=spec.name, path=str(path))

        command = self.build_install_command(spec)
        result = self._runner.run(command)
        if result.ok:
            return result

        self._logger.warning(
            "deb_fix_broken",
            url=spec.name,
            exit_code=result.returncode,
        )
        recovery = self._runner.run(FIX_BROKEN_COMMAND)
        if recovery.ok:
            return recovery
        raise ExecutionError(
            self.tag,
            spec,
            recovery.returncode,
            "\n".join(part for part in (result.output, recovery.output) if part),
            command=FIX_BROKEN_COMMAND,
        )

    def export(self) -> Unsupported:
        return UNSUPPORTED


__all__ = [
    "DEFAULT_FILENAME",
    "FIX_BROKEN_COMMAND",
    "DebBackend",
    "DownloadError",
    "Downloader",
    "HttpxDownloader",
    "archive_filename",
]
