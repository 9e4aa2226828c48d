"""
railtube - unit tests for environment export

File: tests/unit/engine/test_export_environment.py

Purpose
- Validate exported manifests, version pinning and degraded-backend warnings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fakes import FakePackageSystem, ScriptedResult
from railtube.backends.apt import LIST_COMMAND
from railtube.backends.registry import build_backends
from railtube.domain.models import PackageSpec
from railtube.engine.export import export_environment
from railtube.manifest.schema import parse_manifest
from railtube.manifest.serialize import serialize_manifest

if TYPE_CHECKING:
    from pathlib import Path


def _system() -> FakePackageSystem:
    return FakePackageSystem(
        apt={"git": "1:2.34.1", "curl": "7.81.0"},
        snap={"vlc": "3.0.20"},
        flatpak={"org.gimp.GIMP": "2.10.36"},
        cargo={"ripgrep": "14.1.0"},
    )


def test_export_lists_names_only_by_default(tmp_path: Path) -> None:
    result = export_environment(build_backends(_system(), download_dir=tmp_path))

    manifest = result.manifest
    assert manifest.apt == (PackageSpec("git"), PackageSpec("curl"))
    assert manifest.snap == (PackageSpec("vlc"),)
    assert manifest.flatpak == (PackageSpec("org.gimp.GIMP"),)
    assert manifest.cargo == (PackageSpec("ripgrep"),)
    assert manifest.declared == {"apt", "snap", "flatpak", "cargo"}
    assert manifest.deb == ()
    assert dict(manifest.scripts) == {}


def test_export_pins_versions_for_versioned_sections(tmp_path: Path) -> None:
    result = export_environment(
        build_backends(_system(), download_dir=tmp_path),
        pin_versions=True,
    )

    assert result.manifest.apt[0] == PackageSpec("git", "1:2.34.1")
    assert result.manifest.cargo == (PackageSpec("ripgrep", "14.1.0"),)
    assert result.manifest.snap == (PackageSpec("vlc"),)


def test_export_notes_sections_that_cannot_be_exported(tmp_path: Path) -> None:
    result = export_environment(build_backends(_system(), download_dir=tmp_path))

    assert result.warnings == (
        "deb: not exported, entries are defined rather than installed",
        "scripts: not exported, entries are defined rather than installed",
    )


def test_unavailable_backend_is_skipped_with_warning(tmp_path: Path) -> None:
    system = _system()
    system.unavailable.add("flatpak")

    result = export_environment(build_backends(system, download_dir=tmp_path))

    assert "flatpak" not in result.manifest.declared
    assert result.warnings[0].startswith(
        "flatpak: skipped, flatpak: cannot query installed packages"
    )
    assert result.manifest.apt


def test_export_dedupes_multiarch_names(tmp_path: Path) -> None:
    system = FakePackageSystem()
    system.script(
        LIST_COMMAND.argv,
        ScriptedResult(0, stdout="ii  libc6 2.35\nii  libc6 2.35\nii  zlib1g 1.2.11\n"),
    )

    result = export_environment(build_backends(system, download_dir=tmp_path), pin_versions=True)

    assert result.manifest.apt == (PackageSpec("libc6", "2.35"), PackageSpec("zlib1g", "1.2.11"))


def test_exported_manifest_is_applyable(tmp_path: Path) -> None:
    result = export_environment(build_backends(_system(), download_dir=tmp_path), pin_versions=True)

    reparsed = parse_manifest(serialize_manifest(result.manifest))

    assert reparsed.apt == result.manifest.apt
    assert reparsed.cargo == result.manifest.cargo
