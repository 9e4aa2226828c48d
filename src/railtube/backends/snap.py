"""snap backend. Version pins are not recognised; presence only."""

from __future__ import annotations

from collections.abc import Mapping

from railtube.backends.base import (
    CommandExecutionResult,
    CommandRunner,
    is_present,
    run_checked,
    run_query,
)
from railtube.domain.models import CommandSpec, InstalledPackage, PackageSpec

LIST_COMMAND = CommandSpec("snap", ("list",))


class SnapBackend:
    tag = "snap"
    supports_query = True

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def list_installed(self) -> tuple[InstalledPackage, ...]:
        stdout = run_query(self._runner, self.tag, LIST_COMMAND)
        return tuple(parse_snap_list(stdout))

    def is_satisfied(self, spec: PackageSpec, installed: Mapping[str, InstalledPackage]) -> bool:
        return is_present(spec, installed)

    def build_install_command(self, spec: PackageSpec) -> CommandSpec:
        return CommandSpec("sudo", ("snap", "install", spec.name, *spec.args))

    def install(self, spec: PackageSpec) -> CommandExecutionResult:
        return run_checked(self._runner, self.tag, spec, self.build_install_command(spec))

    def export(self) -> tuple[PackageSpec, ...]:
        return tuple(PackageSpec(name=package.name) for package in self.list_installed())


def parse_snap_list(stdout: str) -> list[InstalledPackage]:
    """Parse ``snap list`` output; the first non-empty line is the column header."""

    packages: list[InstalledPackage] = []
    lines = [line for line in stdout.splitlines() if line.strip()]
    for line in lines[1:]:
        parts = line.split()
        version = parts[1] if len(parts) > 1 else None
        packages.append(InstalledPackage(name=parts[0], version=version))
    return packages


__all__ = ["LIST_COMMAND", "SnapBackend", "parse_snap_list"]
