"""flatpak backend (applications only, presence check)."""

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

LIST_COMMAND = CommandSpec("flatpak", ("list", "--app", "--columns=application,version"))


class FlatpakBackend:
    tag = "flatpak"
    supports_query = True

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def list_installed(self) -> tuple[InstalledPackage, ...]:
        stdout = run_query(self._runner, self.tag, LIST_COMMAND)
        return tuple(parse_flatpak_list(stdout))

    def is_satisfied(self, spec: PackageSpec, installed: Mapping[str, InstalledPackage]) -> bool:
        return is_present(spec, installed)

    def build_install_command(self, spec: PackageSpec) -> CommandSpec:
        return CommandSpec("flatpak", ("install", "-y", spec.name, *spec.args))

    def install(self, spec: PackageSpec) -> CommandExecutionResult:
        return run_checked(self._runner, self.tag, spec, self.build_install_command(spec))

    def export(self) -> tuple[PackageSpec, ...]:
        return tuple(PackageSpec(name=package.name) for package in self.list_installed())


def parse_flatpak_list(stdout: str) -> list[InstalledPackage]:
    # Columns are tab separated; version may be blank.
    packages: list[InstalledPackage] = []
    for line in stdout.splitlines():
        if not line.strip():
            continue
        fields = line.split("\t")
        name = fields[0].strip()
        if not name:
            continue
        version = fields[1].strip() if len(fields) > 1 and fields[1].strip() else None
        packages.append(InstalledPackage(name=name, version=version))
    return packages


__all__ = ["LIST_COMMAND", "FlatpakBackend", "parse_flatpak_list"]
