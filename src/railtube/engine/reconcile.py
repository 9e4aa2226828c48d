"""
Reconciliation engine: apply, doctor and on-demand script runs.

A run moves through ``loaded -> filtered -> planned -> (dry_reported | executed)
-> reported``. Planning queries each backend's installed set at most once per
run; execution walks pending installs in declaration order, asking the sandbox
before each section's first mutating command and checking the cancellation
token before every action.

It integrates with:
- `Backend` implementations for queries and install commands
- `ExecutionSandbox` for dry-run, confirmation and cancellation
- `structlog` for machine-parseable decision logs
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from railtube.backends.apt import AptBackend
from railtube.backends.base import (
    Backend,
    BackendError,
    ExecutionError,
    QueryError,
    installed_map,
)
from railtube.backends.registry import backend_for_section
from railtube.constants import PACKAGE_SECTIONS, SECTION_BACKEND, SYSTEM_SECTION
from railtube.domain.models import (
    ActionKind,
    CommandSpec,
    DoctorReport,
    InstalledPackage,
    Manifest,
    PackageSpec,
    ReconciliationAction,
    ReconciliationReport,
    RunPhase,
)
from railtube.engine.sandbox import ExecutionSandbox, select_sections
from railtube.manifest.schema import ManifestIssue, ManifestValidationError

if TYPE_CHECKING:
    from collections.abc import Sequence

# Sections ``apply`` reconciles, in processing order. Scripts only run via ``run``.
APPLY_SECTIONS: tuple[str, ...] = (SYSTEM_SECTION, *PACKAGE_SECTIONS, "deb")
UNCHECKABLE_SECTIONS: tuple[str, ...] = ("deb", "scripts")

CANCELLED_REASON = "cancelled before start"
DECLINED_REASON = "declined at confirmation"
FILTERED_REASON = "section not selected"


@dataclass(frozen=True, slots=True)
class _PendingInstall:
    section: str
    backend: str
    spec: PackageSpec | None
    command: CommandSpec
    reason: str


_PlanEntry = ReconciliationAction | _PendingInstall


class Reconciler:
    """Reconcile one manifest against live backends for a single run."""

    def __init__(
        self,
        manifest: Manifest,
        backends: Mapping[str, Backend],
        sandbox: ExecutionSandbox,
        *,
        logger: Any | None = None,
    ) -> None:
        self._manifest = manifest
        self._backends = backends
        self._sandbox = sandbox
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._installed: dict[str, tuple[InstalledPackage, ...]] = {}
        self._query_errors: dict[str, QueryError] = {}
        self._log_phase(RunPhase.LOADED, declared=sorted(manifest.declared))

    @property
    def manifest(self) -> Manifest:
        return self._manifest

    def apply(self, only: str | Iterable[str] | None = None) -> ReconciliationReport:
        """Bring the system in line with the manifest (or report what would change)."""

        retained = select_sections(only)
        self._log_phase(RunPhase.FILTERED, retained=sorted(retained))

        entries: list[_PlanEntry] = []
        for section in APPLY_SECTIONS:
            if section in retained:
                entries.extend(self._plan_section(section, query_empty=False))
            else:
                entries.extend(self._filtered_actions(section))
        self._log_phase(
            RunPhase.PLANNED,
            pending=sum(1 for entry in entries if isinstance(entry, _PendingInstall)),
        )

        if self._sandbox.dry_run:
            actions = tuple(self._dry_action(entry) for entry in entries)
            self._log_phase(RunPhase.DRY_REPORTED, actions=len(actions))
        else:
            actions = self._execute(entries)
            self._log_phase(RunPhase.EXECUTED, actions=len(actions))

        report = ReconciliationReport(actions=actions, dry_run=self._sandbox.dry_run)
        self._log_report(report)
        return report

    def doctor(self) -> DoctorReport:
        """Diff declared sections against live state without executing anything."""

        declared = [section for section in PACKAGE_SECTIONS if self._manifest.is_declared(section)]
        self._log_phase(RunPhase.FILTERED, retained=declared)

        entries: list[_PlanEntry] = []
        for section in declared:
            entries.extend(self._plan_section(section, query_empty=True))
        self._log_phase(RunPhase.PLANNED, pending=len(entries))

        actions = tuple(self._dry_action(entry) for entry in entries)
        report = ReconciliationReport(actions=actions, dry_run=True)
        self._log_phase(RunPhase.DRY_REPORTED, actions=len(actions))

        extra: dict[str, tuple[str, ...]] = {}
        for section in declared:
            backend = SECTION_BACKEND[section]
            if backend in self._query_errors:
                continue
            wanted = {spec.name for spec in self._manifest.packages(section)}
            extra[section] = tuple(
                package.name
                for package in self._installed.get(backend, ())
                if package.name not in wanted
            )

        unchecked = tuple(
            section for section in UNCHECKABLE_SECTIONS if self._manifest.is_declared(section)
        )
        self._log_report(report)
        return DoctorReport(report=report, extra=extra, unchecked=unchecked)

    def run_script(self, name: str) -> ReconciliationAction:
        """Execute exactly one named script; its exit status lands on the action."""

        if name not in self._manifest.scripts:
            known = ", ".join(self._manifest.scripts) or "none declared"
            raise ManifestValidationError(
                (ManifestIssue(path=f"scripts.{name}", message=f"unknown script (known: {known})"),)
            )

        backend = backend_for_section(self._backends, "scripts")
        spec = PackageSpec(name=name)
        pending = _PendingInstall(
            section="scripts",
            backend=backend.tag,
            spec=spec,
            command=backend.build_install_command(spec),
            reason="requested by run",
        )
        self._log_phase(RunPhase.PLANNED, pending=1)

        if self._sandbox.dry_run:
            action = self._dry_action(pending)
            self._log_phase(RunPhase.DRY_REPORTED, actions=1)
        else:
            action = self._execute_one(pending)
            self._log_phase(RunPhase.EXECUTED, actions=1)
        self._log_action(action)
        self._log_phase(RunPhase.REPORTED, success=action.kind is not ActionKind.FAIL)
        return action

    def installed(self, backend_tag: str) -> tuple[InstalledPackage, ...]:
        """Return the cached installed set for ``backend_tag``, querying on first use."""

        if backend_tag in self._query_errors:
            raise self._query_errors[backend_tag]
        if backend_tag not in self._installed:
            backend = self._backends[backend_tag]
            try:
                self._installed[backend_tag] = backend.list_installed()
            except QueryError as exc:
                self._query_errors[backend_tag] = exc
                self._logger.warning(
                    "backend_query_failed",
                    backend=backend_tag,
                    kind=exc.kind.value,
                    detail=exc.detail,
                )
                raise
            self._logger.debug(
                "backend_queried",
                backend=backend_tag,
                installed=len(self._installed[backend_tag]),
            )
        return self._installed[backend_tag]

    # planning ---------------------------------------------------------------

    def _plan_section(self, section: str, *, query_empty: bool) -> list[_PlanEntry]:
        backend = backend_for_section(self._backends, section)
        if section == SYSTEM_SECTION:
            return self._plan_system(backend)

        specs = self._manifest.packages(section)
        if not specs and not query_empty:
            return []

        if not backend.supports_query:
            return [
                _PendingInstall(
                    section=section,
                    backend=backend.tag,
                    spec=spec,
                    command=backend.build_install_command(spec),
                    reason="installed state not queryable; always installed",
                )
                for spec in specs
            ]

        try:
            installed = installed_map(self.installed(backend.tag))
        except QueryError as exc:
            targets: Sequence[PackageSpec | None] = specs or (None,)
            return [
                ReconciliationAction(
                    kind=ActionKind.FAIL,
                    section=section,
                    backend=backend.tag,
                    reason=str(exc),
                    spec=spec,
                )
                for spec in targets
            ]

        entries: list[_PlanEntry] = []
        for spec in specs:
            if backend.is_satisfied(spec, installed):
                entries.append(
                    ReconciliationAction(
                        kind=ActionKind.SKIP_SATISFIED,
                        section=section,
                        backend=backend.tag,
                        reason=_satisfied_reason(spec, installed),
                        spec=spec,
                    )
                )
                continue
            entries.append(
                _PendingInstall(
                    section=section,
                    backend=backend.tag,
                    spec=spec,
                    command=backend.build_install_command(spec),
                    reason=_missing_reason(spec, installed),
                )
            )
        return entries

    def _plan_system(self, backend: Backend) -> list[_PlanEntry]:
        if not self._manifest.system_update:
            return []
        if not isinstance(backend, AptBackend):
            raise TypeError(f"system section requires the apt backend, got {backend.tag!r}")
        return [
            _PendingInstall(
                section=SYSTEM_SECTION,
                backend=backend.tag,
                spec=None,
                command=backend.build_update_command(),
                reason="system.update requested",
            )
        ]

    def _filtered_actions(self, section: str) -> list[_PlanEntry]:
        backend = SECTION_BACKEND[section]
        if section == SYSTEM_SECTION:
            if not self._manifest.system_update:
                return []
            return [
                ReconciliationAction(
                    kind=ActionKind.SKIP_FILTERED,
                    section=section,
                    backend=backend,
                    reason=FILTERED_REASON,
                )
            ]
        return [
            ReconciliationAction(
                kind=ActionKind.SKIP_FILTERED,
                section=section,
                backend=backend,
                reason=FILTERED_REASON,
                spec=spec,
            )
            for spec in self._manifest.packages(section)
        ]

    # execution --------------------------------------------------------------

    def _dry_action(self, entry: _PlanEntry) -> ReconciliationAction:
        if isinstance(entry, ReconciliationAction):
            return entry
        return ReconciliationAction(
            kind=ActionKind.INSTALL,
            section=entry.section,
            backend=entry.backend,
            reason=entry.reason,
            spec=entry.spec,
            command=entry.command,
        )

    def _execute(self, entries: Sequence[_PlanEntry]) -> tuple[ReconciliationAction, ...]:
        commands_by_section: dict[str, list[CommandSpec]] = {}
        for entry in entries:
            if isinstance(entry, _PendingInstall):
                commands_by_section.setdefault(entry.section, []).append(entry.command)

        actions: list[ReconciliationAction] = []
        for entry in entries:
            if isinstance(entry, ReconciliationAction):
                actions.append(entry)
                continue
            if self._sandbox.cancelled:
                action = self._unexecuted(entry, ActionKind.FAIL, CANCELLED_REASON)
            elif not self._sandbox.confirm_section(
                entry.section, commands_by_section[entry.section]
            ):
                action = self._unexecuted(entry, ActionKind.SKIP_FILTERED, DECLINED_REASON)
            else:
                action = self._execute_one(entry)
            self._log_action(action)
            actions.append(action)
        return tuple(actions)

    def _execute_one(self, entry: _PendingInstall) -> ReconciliationAction:
        backend = self._backends[entry.backend]
        try:
            if entry.spec is None:
                if not isinstance(backend, AptBackend):
                    raise TypeError(f"system update requires the apt backend, got {backend.tag!r}")
                result = backend.update()
            else:
                result = backend.install(entry.spec)
        except ExecutionError as exc:
            return ReconciliationAction(
                kind=ActionKind.FAIL,
                section=entry.section,
                backend=entry.backend,
                reason=str(exc),
                spec=entry.spec,
                command=exc.command if exc.command is not None else entry.command,
                executed=True,
                exit_code=exc.exit_code,
                output=exc.output,
            )
        except BackendError as exc:
            return self._unexecuted(entry, ActionKind.FAIL, str(exc))

        # Installed state changed; later queries must not reuse the cache.
        self._installed.pop(entry.backend, None)
        return ReconciliationAction(
            kind=ActionKind.INSTALL,
            section=entry.section,
            backend=entry.backend,
            reason=entry.reason,
            spec=entry.spec,
            command=entry.command,
            executed=True,
            exit_code=result.returncode,
            output=result.output,
        )

    @staticmethod
    def _unexecuted(entry: _PendingInstall, kind: ActionKind, reason: str) -> ReconciliationAction:
        return ReconciliationAction(
            kind=kind,
            section=entry.section,
            backend=entry.backend,
            reason=reason,
            spec=entry.spec,
            command=entry.command,
        )

    # logging ----------------------------------------------------------------

    def _log_phase(self, phase: RunPhase, **fields: object) -> None:
        self._logger.info("reconcile_phase", phase=phase.value, **fields)

    def _log_action(self, action: ReconciliationAction) -> None:
        self._logger.info("reconcile_action", **action.to_dict(), output=action.output)

    def _log_report(self, report: ReconciliationReport) -> None:
        self._log_phase(
            RunPhase.REPORTED,
            dry_run=report.dry_run,
            success=report.success,
            counts={kind.value: len(report.of_kind(kind)) for kind in ActionKind},
        )


def _satisfied_reason(spec: PackageSpec, installed: Mapping[str, InstalledPackage]) -> str:
    package = installed[spec.name]
    if spec.version is not None:
        return f"version {package.version} already installed"
    if package.version:
        return f"already installed ({package.version})"
    return "already installed"


def _missing_reason(spec: PackageSpec, installed: Mapping[str, InstalledPackage]) -> str:
    package = installed.get(spec.name)
    if package is None:
        return "not installed"
    return f"installed version {package.version or 'unknown'} differs from pinned {spec.version}"


__all__ = [
    "APPLY_SECTIONS",
    "CANCELLED_REASON",
    "DECLINED_REASON",
    "FILTERED_REASON",
    "Reconciler",
]
