"""Build a manifest from what the exportable backends report as installed."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from railtube.backends.base import UNSUPPORTED, Backend, QueryError
from railtube.constants import BACKEND_TAGS, EXPORTABLE_SECTIONS, SECTION_BACKEND, VERSIONED_SECTIONS
from railtube.domain.models import ExportResult, Manifest, PackageSpec


def export_environment(
    backends: Mapping[str, Backend],
    *,
    pin_versions: bool = False,
    logger: Any | None = None,
) -> ExportResult:
    """Query every exportable backend and assemble the result.

    Names only unless ``pin_versions`` (apt and cargo). A failed query becomes a
    warning and its section is omitted.
    """

    log = logger if logger is not None else structlog.get_logger(__name__)
    warnings: list[str] = []
    sections: dict[str, tuple[PackageSpec, ...]] = {}

    for section in EXPORTABLE_SECTIONS:
        backend = backends[SECTION_BACKEND[section]]
        try:
            exported = backend.export()
        except QueryError as exc:
            warnings.append(f"{section}: skipped, {exc}")
            log.warning("export_section_skipped", section=section, detail=str(exc))
            continue
        if exported is UNSUPPORTED:
            warnings.append(f"{section}: export not supported")
            continue
        keep_version = pin_versions and section in VERSIONED_SECTIONS
        sections[section] = _dedupe(exported, keep_version=keep_version)
        log.info("export_section", section=section, packages=len(sections[section]))

    for tag in BACKEND_TAGS:
        if tag in EXPORTABLE_SECTIONS:
            continue
        if backends[tag].export() is UNSUPPORTED:
            warnings.append(f"{tag}: not exported, entries are defined rather than installed")

    manifest = Manifest(
        apt=sections.get("apt", ()),
        snap=sections.get("snap", ()),
        flatpak=sections.get("flatpak", ()),
        cargo=sections.get("cargo", ()),
        declared=frozenset(sections),
    )
    return ExportResult(manifest=manifest, warnings=tuple(warnings))


def _dedupe(specs: tuple[PackageSpec, ...], *, keep_version: bool) -> tuple[PackageSpec, ...]:
    # Multi-arch dpkg entries repeat a package name.
    seen: set[str] = set()
    out: list[PackageSpec] = []
    for spec in specs:
        if spec.name in seen:
            continue
        seen.add(spec.name)
        out.append(PackageSpec(name=spec.name, version=spec.version if keep_version else None))
    return tuple(out)


__all__ = ["export_environment"]
