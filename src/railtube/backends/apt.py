"""apt backend: Debian packages via ``apt`` and ``dpkg-query``."""

from __future__ import annotations

from collections.abc import Mapping

from railtube.backends.base import (
    CommandExecutionResult,
    CommandRunner,
    is_pinned_match,
    run_checked,
    run_query,
)
from railtube.domain.models import CommandSpec, InstalledPackage, PackageSpec

LIST_COMMAND = CommandSpec(
    "dpkg-query", ("-W", "-f=${db:Status-Abbrev} ${Package} ${Version}\n")
)
UPDATE_COMMAND = CommandSpec("sudo", ("apt", "update"))


class AptBackend:
    tag = "apt"
    supports_query = True

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def list_installed(self) -> tuple[InstalledPackage, ...]:
        stdout = run_query(self._runner, self.tag, LIST_COMMAND)
        return tuple(parse_dpkg_query(stdout))

    def is_satisfied(self, spec: PackageSpec, installed: Mapping[str, InstalledPackage]) -> bool:
        return is_pinned_match(spec, installed)

    def build_install_command(self, spec: PackageSpec) -> CommandSpec:
        return CommandSpec("sudo", ("apt", "install", "-y", spec.target, *spec.args))

    def install(self, spec: PackageSpec) -> CommandExecutionResult:
        return run_checked(self._runner, self.tag, spec, self.build_install_command(spec))

    def build_update_command(self) -> CommandSpec:
        return UPDATE_COMMAND

    def update(self) -> CommandExecutionResult:
        """Refresh package indexes (``system.update``)."""

        return run_checked(self._runner, self.tag, None, UPDATE_COMMAND)

    def export(self) -> tuple[PackageSpec, ...]:
        return tuple(
            PackageSpec(name=package.name, version=package.version)
            for package in self.list_installed()
        )


def parse_dpkg_query(stdout: str) -> list[InstalledPackage]:
    """Parse status-prefixed dpkg-query rows, keeping installed packages only.

    dpkg still lists removed packages whose config files remain (``rc``); the
    second status letter is the current state.
    """

    packages: list[InstalledPackage] = []
    for line in stdout.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        status, name = parts[0], parts[1]
        if status[1:2] != "i":
            continue
        version = parts[2] if len(parts) > 2 else None
        packages.append(InstalledPackage(name=name, version=version))
    return packages


__all__ = ["LIST_COMMAND", "UPDATE_COMMAND", "AptBackend", "parse_dpkg_query"]
