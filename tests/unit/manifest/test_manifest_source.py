"""
railtube - unit tests for manifest source loading

File: tests/unit/manifest/test_manifest_source.py

Purpose
- Validate local and HTTP(S) manifest loading without real network access.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from railtube.manifest.source import SourceLoadError, is_remote_source, load_manifest_text

if TYPE_CHECKING:
    from pathlib import Path

MANIFEST_URL = "https://example.org/env.toml"


def _client(handler: httpx.MockTransport) -> httpx.Client:
    return httpx.Client(transport=handler)


@pytest.mark.parametrize(
    ("source", "expected"),
    [
        ("https://example.org/env.toml", True),
        ("HTTP://example.org/env.toml", True),
        ("./env.toml", False),
        ("/etc/railtube/env.toml", False),
        ("ftp://example.org/env.toml", False),
    ],
)
def test_is_remote_source(source: str, expected: bool) -> None:
    assert is_remote_source(source) is expected


def test_loads_local_file(tmp_path: Path) -> None:
    manifest_path = tmp_path / "env.toml"
    manifest_path.write_text('[apt]\nlist = ["git"]\n', encoding="utf-8")

    assert load_manifest_text(str(manifest_path)) == '[apt]\nlist = ["git"]\n'


def test_missing_local_file(tmp_path: Path) -> None:
    source = str(tmp_path / "missing.toml")

    with pytest.raises(SourceLoadError, match="file not found") as excinfo:
        load_manifest_text(source)

    assert excinfo.value.source == source


def test_directory_source_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(SourceLoadError, match="path is a directory"):
        load_manifest_text(str(tmp_path))


def test_fetches_remote_manifest_following_redirects() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/env.toml":
            return httpx.Response(302, headers={"Location": "https://example.org/v2/env.toml"})
        return httpx.Response(200, text='[snap]\nlist = ["vlc"]\n')

    with _client(httpx.MockTransport(handler)) as client:
        text = load_manifest_text(MANIFEST_URL, client=client)

    assert text == '[snap]\nlist = ["vlc"]\n'
    assert [request.url.path for request in seen] == ["/env.toml", "/v2/env.toml"]
    assert seen[0].headers["User-Agent"].startswith("railtube/")


def test_remote_http_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="not here")

    with (
        _client(httpx.MockTransport(handler)) as client,
        pytest.raises(SourceLoadError, match="HTTP 404"),
    ):
        load_manifest_text(MANIFEST_URL, client=client)


def test_remote_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with (
        _client(httpx.MockTransport(handler)) as client,
        pytest.raises(SourceLoadError, match="connection refused") as excinfo,
    ):
        load_manifest_text(MANIFEST_URL, client=client)

    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


def test_remote_invalid_url() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request should be sent")

    with (
        _client(httpx.MockTransport(handler)) as client,
        pytest.raises(SourceLoadError, match="invalid URL"),
    ):
        load_manifest_text("https://example.org:notaport/env.toml", client=client)
