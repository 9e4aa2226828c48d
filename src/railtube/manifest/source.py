"""
railtube - manifest source loading.

File: src/railtube/manifest/source.py

Purpose
- Resolve a ``--source`` argument (local path or HTTP(S) URL) to manifest text.

Functional requirements
- Remote sources are fetched with ``httpx`` following redirects.
- Every failure surfaces as ``SourceLoadError`` naming the source.
"""

from __future__ import annotations

import logging
from pathlib import Path

import httpx

from railtube import __version__
from railtube.constants import DEFAULT_HTTP_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

_USER_AGENT = f"railtube/{__version__}"


class SourceLoadError(RuntimeError):
    """Raised when a manifest source cannot be read."""

    def __init__(self, source: str, detail: str) -> None:
        self.source = source
        self.detail = detail
        super().__init__(f"cannot load manifest from {source}: {detail}")


def is_remote_source(source: str) -> bool:
    lowered = source.strip().lower()
    return lowered.startswith(("http://", "https://"))


def load_manifest_text(
    source: str,
    *,
    timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
    client: httpx.Client | None = None,
) -> str:
    """Return the manifest text behind ``source``.

    ``client`` lets callers supply a preconfigured ``httpx.Client``; when absent a
    one-shot request is made with ``timeout`` seconds.
    """

    if is_remote_source(source):
        return _fetch_remote(source, timeout=timeout, client=client)

    path = Path(source).expanduser()
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise SourceLoadError(source, "file not found") from exc
    except IsADirectoryError as exc:
        raise SourceLoadError(source, "path is a directory") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise SourceLoadError(source, str(exc)) from exc
    logger.debug("loaded manifest from %s", path)
    return text


def _fetch_remote(source: str, *, timeout: float, client: httpx.Client | None) -> str:
    headers = {"User-Agent": _USER_AGENT}
    try:
        if client is not None:
            response = client.get(source, headers=headers, follow_redirects=True)
        else:
            response = httpx.get(
                source,
                headers=headers,
                timeout=timeout,
                follow_redirects=True,
            )
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise SourceLoadError(source, f"HTTP {exc.response.status_code}") from exc
    except httpx.HTTPError as exc:
        raise SourceLoadError(source, str(exc) or type(exc).__name__) from exc
    except httpx.InvalidURL as exc:
        raise SourceLoadError(source, f"invalid URL: {exc}") from exc
    logger.debug("fetched manifest from %s (%d bytes)", source, len(response.content))
    return response.text


__all__ = ["SourceLoadError", "is_remote_source", "load_manifest_text"]
