"""Named shell scripts executed on demand through ``sh -c``."""

from __future__ import annotations

from collections.abc import Mapping

from railtube.backends.base import (
    UNSUPPORTED,
    CommandExecutionResult,
    CommandRunner,
    Unsupported,
    run_checked,
)
from railtube.domain.models import CommandSpec, InstalledPackage, PackageSpec


class ScriptsBackend:
    tag = "scripts"
    supports_query = False

    def __init__(self, runner: CommandRunner, scripts: Mapping[str, str]) -> None:
        self._runner = runner
        self._scripts = scripts

    def list_installed(self) -> tuple[InstalledPackage, ...]:
        return ()

    def is_satisfied(self, spec: PackageSpec, installed: Mapping[str, InstalledPackage]) -> bool:
        return False

    def build_install_command(self, spec: PackageSpec) -> CommandSpec:
        return CommandSpec("sh", ("-c", self._scripts[spec.name]), interactive=True)

    def install(self, spec: PackageSpec) -> CommandExecutionResult:
        return run_checked(self._runner, self.tag, spec, self.build_install_command(spec))

    def export(self) -> Unsupported:
        return UNSUPPORTED


__all__ = ["ScriptsBackend"]
