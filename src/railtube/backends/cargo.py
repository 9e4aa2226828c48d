"""cargo backend: Rust crates installed with ``cargo install``."""

from __future__ import annotations

import re
from collections.abc import Mapping

from railtube.backends.base import (
    CommandExecutionResult,
    CommandRunner,
    is_pinned_match,
    run_checked,
    run_query,
)
from railtube.domain.models import CommandSpec, InstalledPackage, PackageSpec

LIST_COMMAND = CommandSpec("cargo", ("install", "--list"))

# Crate header lines look like ``ripgrep v14.1.0:`` or ``foo v0.1.0 (/path):``.
_CRATE_HEADER = re.compile(r"^(?P<name>\S+) v(?P<version>\S+?)(?: \([^)]*\))?:$")


class CargoBackend:
    tag = "cargo"
    supports_query = True

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def list_installed(self) -> tuple[InstalledPackage, ...]:
        stdout = run_query(self._runner, self.tag, LIST_COMMAND)
        return tuple(parse_cargo_list(stdout))

    def is_satisfied(self, spec: PackageSpec, installed: Mapping[str, InstalledPackage]) -> bool:
        return is_pinned_match(spec, installed)

    def build_install_command(self, spec: PackageSpec) -> CommandSpec:
        args: list[str] = ["install", spec.name]
        if spec.version is not None:
            args.extend(("--version", spec.version))
        args.extend(spec.args)
        return CommandSpec("cargo", tuple(args))

    def install(self, spec: PackageSpec) -> CommandExecutionResult:
        return run_checked(self._runner, self.tag, spec, self.build_install_command(spec))

    def export(self) -> tuple[PackageSpec, ...]:
        return tuple(
            PackageSpec(name=package.name, version=package.version)
            for package in self.list_installed()
        )


def parse_cargo_list(stdout: str) -> list[InstalledPackage]:
    packages: list[InstalledPackage] = []
    for line in stdout.splitlines():
        if not line or line[0].isspace():
            continue
        match = _CRATE_HEADER.match(line.rstrip())
        if match is None:
            continue
        packages.append(InstalledPackage(name=match["name"], version=match["version"]))
    return packages


__all__ = ["LIST_COMMAND", "CargoBackend", "parse_cargo_list"]
