"""
railtube - unit tests for manifest parsing

File: tests/unit/manifest/test_manifest_schema.py

Purpose
- Validate section defaults, order preservation, structured error paths and the
  unknown-key policy.
"""

from __future__ import annotations

import pytest

from railtube.domain.models import PackageSpec
from railtube.manifest.schema import (
    ManifestParseError,
    ManifestValidationError,
    ParseErrorKind,
    parse_manifest,
)

FULL_MANIFEST = """
[system]
update = true

[apt]
list = ["git", "curl=7.81.0-1", "build-essential --no-install-recommends"]

[snap]
list = ["code --classic", "vlc"]

[flatpak]
list = ["org.gimp.GIMP"]

[cargo]
list = ["ripgrep=14.1.0", "bat"]

[deb]
urls = ["https://example.org/tool_1.0_amd64.deb"]

[scripts]
hello = "echo hello"
"set up dotfiles" = "git clone https://example.org/dotfiles ~/.dotfiles"
"""


def test_parse_full_manifest() -> None:
    manifest = parse_manifest(FULL_MANIFEST)

    assert manifest.system_update is True
    assert manifest.apt == (
        PackageSpec(name="git"),
        PackageSpec(name="curl", version="7.81.0-1"),
        PackageSpec(name="build-essential", args=("--no-install-recommends",)),
    )
    assert manifest.snap[0] == PackageSpec(name="code", args=("--classic",))
    assert manifest.cargo[0] == PackageSpec(name="ripgrep", version="14.1.0")
    assert manifest.deb == ("https://example.org/tool_1.0_amd64.deb",)
    assert list(manifest.scripts) == ["hello", "set up dotfiles"]
    assert manifest.declared == {"system", "apt", "snap", "flatpak", "cargo", "deb", "scripts"}


def test_missing_sections_default_to_empty() -> None:
    manifest = parse_manifest('[apt]\nlist = ["git"]\n')

    assert manifest.system_update is False
    assert manifest.snap == ()
    assert manifest.deb == ()
    assert dict(manifest.scripts) == {}
    assert manifest.declared == {"apt"}


def test_empty_document_is_an_empty_manifest() -> None:
    manifest = parse_manifest("")

    assert manifest.declared == frozenset()
    assert all(not manifest.packages(section) for section in ("apt", "snap", "flatpak", "cargo"))


def test_list_order_is_preserved() -> None:
    manifest = parse_manifest('[apt]\nlist = ["zsh", "git", "atop"]\n')

    assert [spec.name for spec in manifest.apt] == ["zsh", "git", "atop"]


def test_snap_and_flatpak_entries_keep_equals_in_name() -> None:
    manifest = parse_manifest('[snap]\nlist = ["odd=name"]\n')

    assert manifest.snap == (PackageSpec(name="odd=name"),)


def test_invalid_toml_is_a_syntax_error() -> None:
    with pytest.raises(ManifestParseError) as excinfo:
        parse_manifest("[apt\nlist = [")

    assert excinfo.value.kind is ParseErrorKind.SYNTAX
    assert excinfo.value.location == "<root>"


@pytest.mark.parametrize(
    ("text", "path", "message"),
    [
        ('apt = ["git"]\n', "apt", "expected table"),
        ('[apt]\nlist = "git"\n', "apt.list", "expected array of strings"),
        ("[apt]\nlist = [1]\n", "apt.list[0]", "expected string"),
        ('[apt]\nlist = [""]\n', "apt.list[0]", "must not be empty"),
        ('[system]\nupdate = "yes"\n', "system.update", "expected boolean"),
        ('[deb]\nurls = ["ftp://example.org/x.deb"]\n', "deb.urls[0]", "http:// or https://"),
        ('[deb]\nurls = ["https://example.org:notaport/x.deb"]\n', "deb.urls[0]", "invalid URL"),
        ("[scripts]\nhello = 3\n", "scripts.hello", "expected string"),
        ('[cargo]\nlist = ["bat", "bat=0.24.0"]\n', "cargo.list[1]", "duplicate package 'bat'"),
    ],
)
def test_structural_errors_carry_location(text: str, path: str, message: str) -> None:
    with pytest.raises(ManifestParseError) as excinfo:
        parse_manifest(text)

    error = excinfo.value
    assert error.kind is ParseErrorKind.STRUCTURAL
    assert error.location == path
    assert message in error.issues[0].message


def test_all_structural_issues_are_reported_together() -> None:
    with pytest.raises(ManifestParseError) as excinfo:
        parse_manifest('[apt]\nlist = [1, ""]\n[snap]\nlist = "vlc"\n')

    assert [issue.path for issue in excinfo.value.issues] == [
        "apt.list[0]",
        "apt.list[1]",
        "snap.list",
    ]
    assert "- snap.list:" in str(excinfo.value)


def test_unknown_section_rejected_by_default() -> None:
    with pytest.raises(ManifestValidationError) as excinfo:
        parse_manifest('[brew]\nlist = ["git"]\n')

    assert excinfo.value.issues[0].path == "brew"
    assert "unknown section" in str(excinfo.value)


def test_unknown_field_rejected_by_default() -> None:
    with pytest.raises(ManifestValidationError, match=r"apt\.packages: unknown field"):
        parse_manifest('[apt]\npackages = ["git"]\n')


def test_unknown_keys_ignored_when_policy_allows() -> None:
    manifest = parse_manifest(
        '[brew]\nlist = ["git"]\n[apt]\nlist = ["git"]\nextra = 1\n',
        unknown_keys="ignore",
    )

    assert [spec.name for spec in manifest.apt] == ["git"]
    assert "brew" not in manifest.declared


def test_structural_errors_win_over_unknown_keys() -> None:
    with pytest.raises(ManifestParseError):
        parse_manifest('[brew]\nlist = []\n[apt]\nlist = "git"\n')


def test_invalid_policy_is_rejected() -> None:
    with pytest.raises(ValueError, match="unknown_keys"):
        parse_manifest("", unknown_keys="warn")  # type: ignore[arg-type]
