"""Frozen domain models shared by the manifest, backends and reconciliation engine."""

from __future__ import annotations

import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Final

from railtube.constants import PACKAGE_SECTIONS

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_MAX_OUTPUT_CHARS: Final[int] = 16 * 1024


class ActionKind(StrEnum):
    INSTALL = "install"
    SKIP_SATISFIED = "skip-satisfied"
    SKIP_FILTERED = "skip-filtered"
    FAIL = "fail"


class RunPhase(StrEnum):
    """Reconciliation run lifecycle."""

    LOADED = "loaded"
    FILTERED = "filtered"
    PLANNED = "planned"
    DRY_REPORTED = "dry_reported"
    EXECUTED = "executed"
    REPORTED = "reported"


@dataclass(frozen=True, slots=True)
class PackageSpec:
    """One declared package: ``name[=version] [extra args...]``."""

    name: str
    version: str | None = None
    args: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("package name must not be empty")
        object.__setattr__(self, "name", self.name.strip())
        if self.version is not None:
            if not isinstance(self.version, str) or not self.version.strip():
                raise ValueError(f"version pin for {self.name!r} must not be empty")
            object.__setattr__(self, "version", self.version.strip())
        object.__setattr__(self, "args", tuple(self.args))

    @classmethod
    def parse(cls, raw: str, *, allow_version: bool) -> PackageSpec:
        """Parse a manifest list entry.

        The first shell token is the package (``name=version`` is split only when
        ``allow_version`` is set); remaining tokens are passed through to the
        install command.
        """

        tokens = shlex.split(raw)
        if not tokens:
            raise ValueError("package entry must not be empty")
        head, *rest = tokens
        if allow_version and "=" in head:
            name, version = head.split("=", 1)
            return cls(name=name, version=version, args=tuple(rest))
        return cls(name=head, args=tuple(rest))

    @property
    def target(self) -> str:
        """Package argument as passed to the package manager."""

        if self.version is None:
            return self.name
        return f"{self.name}={self.version}"

    def render(self) -> str:
        """Manifest string form; ``PackageSpec.parse(spec.render())`` is lossless."""

        parts = [self.target, *self.args]
        return " ".join(shlex.quote(part) for part in parts)

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True, slots=True)
class InstalledPackage:
    name: str
    version: str | None = None


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """Executable command description: program plus argument vector."""

    program: str
    args: tuple[str, ...] = ()
    interactive: bool = False

    def __post_init__(self) -> None:
        if not self.program:
            raise ValueError("command program must not be empty")
        object.__setattr__(self, "args", tuple(self.args))

    @property
    def argv(self) -> tuple[str, ...]:
        return (self.program, *self.args)

    def render(self) -> str:
        return shlex.join(self.argv)

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True, slots=True)
class Manifest:
    """Parsed desired state. Absent sections are empty; ``declared`` keeps what was written."""

    system_update: bool = False
    apt: tuple[PackageSpec, ...] = ()
    snap: tuple[PackageSpec, ...] = ()
    flatpak: tuple[PackageSpec, ...] = ()
    cargo: tuple[PackageSpec, ...] = ()
    deb: tuple[str, ...] = ()
    scripts: Mapping[str, str] = field(default_factory=dict)
    declared: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        for section in ("apt", "snap", "flatpak", "cargo", "deb"):
            object.__setattr__(self, section, tuple(getattr(self, section)))
        object.__setattr__(self, "scripts", MappingProxyType(dict(self.scripts)))
        object.__setattr__(self, "declared", frozenset(self.declared))

    def packages(self, section: str) -> tuple[PackageSpec, ...]:
        """Return the specs of ``section`` in declaration order."""

        if section in PACKAGE_SECTIONS:
            specs: tuple[PackageSpec, ...] = getattr(self, section)
            return specs
        if section == "deb":
            return tuple(PackageSpec(name=url) for url in self.deb)
        if section == "scripts":
            return tuple(PackageSpec(name=name) for name in self.scripts)
        raise KeyError(section)

    def is_declared(self, section: str) -> bool:
        return section in self.declared

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {"system": {"update": self.system_update}}
        for section in PACKAGE_SECTIONS:
            payload[section] = {"list": [spec.render() for spec in self.packages(section)]}
        payload["deb"] = {"urls": list(self.deb)}
        payload["scripts"] = dict(self.scripts)
        return payload


@dataclass(frozen=True, slots=True)
class ReconciliationAction:
    kind: ActionKind
    section: str
    backend: str
    reason: str
    spec: PackageSpec | None = None
    command: CommandSpec | None = None
    executed: bool = False
    exit_code: int | None = None
    output: str = ""

    def __post_init__(self) -> None:
        if len(self.output) > _MAX_OUTPUT_CHARS:
            object.__setattr__(self, "output", self.output[-_MAX_OUTPUT_CHARS:])

    @property
    def label(self) -> str:
        if self.spec is None:
            return self.section
        return self.spec.render()

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "kind": self.kind.value,
            "section": self.section,
            "backend": self.backend,
            "target": None if self.spec is None else self.spec.render(),
            "reason": self.reason,
            "command": None if self.command is None else self.command.render(),
            "executed": self.executed,
            "exit_code": self.exit_code,
        }


@dataclass(frozen=True, slots=True)
class ReconciliationReport:
    """Immutable outcome of one apply/doctor pass."""

    actions: tuple[ReconciliationAction, ...]
    dry_run: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "actions", tuple(self.actions))

    @property
    def success(self) -> bool:
        return not any(action.kind is ActionKind.FAIL for action in self.actions)

    def of_kind(self, kind: ActionKind) -> tuple[ReconciliationAction, ...]:
        return tuple(action for action in self.actions if action.kind is kind)

    @property
    def installs(self) -> tuple[ReconciliationAction, ...]:
        return self.of_kind(ActionKind.INSTALL)

    @property
    def failures(self) -> tuple[ReconciliationAction, ...]:
        return self.of_kind(ActionKind.FAIL)

    def for_section(self, section: str) -> tuple[ReconciliationAction, ...]:
        return tuple(action for action in self.actions if action.section == section)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "dry_run": self.dry_run,
            "success": self.success,
            "actions": [action.to_dict() for action in self.actions],
        }


@dataclass(frozen=True, slots=True)
class DoctorReport:
    """Drift between a manifest and the live system; ``report`` is never executed."""

    report: ReconciliationReport
    extra: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    unchecked: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "extra",
            MappingProxyType({key: tuple(value) for key, value in self.extra.items()}),
        )
        object.__setattr__(self, "unchecked", tuple(self.unchecked))

    @property
    def success(self) -> bool:
        return self.report.success

    def missing(self, section: str) -> tuple[PackageSpec, ...]:
        return tuple(
            action.spec
            for action in self.report.for_section(section)
            if action.kind is ActionKind.INSTALL and action.spec is not None
        )

    def extras(self, section: str) -> tuple[str, ...]:
        return self.extra.get(section, ())

    @property
    def is_clean(self) -> bool:
        no_missing = not self.report.installs
        no_extra = not any(self.extra.values())
        return no_missing and no_extra and self.success


@dataclass(frozen=True, slots=True)
class ExportResult:
    manifest: Manifest
    warnings: tuple[str, ...] = ()


__all__ = [
    "ActionKind",
    "CommandSpec",
    "DoctorReport",
    "ExportResult",
    "InstalledPackage",
    "JSONScalar",
    "JSONValue",
    "Manifest",
    "PackageSpec",
    "ReconciliationAction",
    "ReconciliationReport",
    "RunPhase",
]
