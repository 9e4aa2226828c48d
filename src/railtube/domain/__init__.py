"""
railtube - domain types

File: src/railtube/domain/__init__.py

Purpose
- Domain types shared by the manifest model, backends and engine: PackageSpec,
  Manifest, CommandSpec, ReconciliationAction/Report, DoctorReport, ExportResult.

Functional requirements
- Domain objects are immutable once built and carry no IO side effects.
"""

from railtube.domain.models import (
    ActionKind,
    CommandSpec,
    DoctorReport,
    ExportResult,
    InstalledPackage,
    Manifest,
    PackageSpec,
    ReconciliationAction,
    ReconciliationReport,
    RunPhase,
)

__all__ = [
    "ActionKind",
    "CommandSpec",
    "DoctorReport",
    "ExportResult",
    "InstalledPackage",
    "Manifest",
    "PackageSpec",
    "ReconciliationAction",
    "ReconciliationReport",
    "RunPhase",
]
