"""
railtube - backend capability contract and command runner.

File: src/railtube/backends/base.py

Purpose
- Define the uniform surface every package-manager backend exposes.
- Provide the single injectable seam through which external commands run.

What should be included in this file
- ``Backend`` protocol and the ``UNSUPPORTED`` export marker.
- ``CommandRunner`` protocol plus the subprocess-backed default.
- Query/execution error types and shared helpers used by backend classes.

Functional requirements
- A program that cannot be found yields exit code 127, never an exception.
- Interactive commands inherit the terminal and capture no output.
"""

from __future__ import annotations

import subprocess
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum, StrEnum
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from railtube.constants import COMMAND_NOT_FOUND_EXIT
from railtube.domain.models import CommandSpec, InstalledPackage, PackageSpec

if TYPE_CHECKING:
    from typing import Literal

_PERMISSION_DENIED_EXIT = 126


class Unsupported(Enum):
    """Marker returned by backends that cannot export their state."""

    UNSUPPORTED = "unsupported"


UNSUPPORTED = Unsupported.UNSUPPORTED


class QueryErrorKind(StrEnum):
    TOOL_UNAVAILABLE = "tool_unavailable"
    COMMAND_FAILED = "command_failed"


class BackendError(RuntimeError):
    """Base error for backend failures."""


class QueryError(BackendError):
    """Raised when a backend cannot report installed packages."""

    def __init__(self, backend: str, kind: QueryErrorKind, detail: str = "") -> None:
        self.backend = backend
        self.kind = kind
        self.detail = detail
        message = f"{backend}: cannot query installed packages ({kind.value})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ExecutionError(BackendError):
    """Raised when an install-like command exits nonzero."""

    def __init__(
        self,
        backend: str,
        spec: PackageSpec | None,
        exit_code: int,
        output: str,
        *,
        command: CommandSpec | None = None,
    ) -> None:
        self.backend = backend
        self.spec = spec
        self.exit_code = exit_code
        self.output = output
        self.command = command
        target = spec.render() if spec is not None else "<no target>"
        message = f"{backend}: {target} failed ({exit_code})"
        if command is not None:
            message = f"{message}: {command.render()}"
        detail = output.strip().splitlines()[-1] if output.strip() else ""
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class CommandExecutionResult:
    """Normalized outcome of one external command."""

    command: CommandSpec
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        if self.stdout and self.stderr:
            return f"{self.stdout.rstrip()}\n{self.stderr}"
        return self.stdout or self.stderr


class CommandRunner(Protocol):
    """Injectable command runner; fakes replace it in tests."""

    def run(self, command: CommandSpec) -> CommandExecutionResult: ...


class Backend(Protocol):
    """Capability set shared by all package-manager backends."""

    tag: str
    supports_query: bool

    def list_installed(self) -> tuple[InstalledPackage, ...]: ...

    def is_satisfied(self, spec: PackageSpec, installed: Mapping[str, InstalledPackage]) -> bool: ...

    def build_install_command(self, spec: PackageSpec) -> CommandSpec: ...

    def install(self, spec: PackageSpec) -> CommandExecutionResult: ...

    def export(self) -> tuple[PackageSpec, ...] | Literal[Unsupported.UNSUPPORTED]: ...


class SubprocessCommandRunner:
    """Default command runner backed by ``subprocess.run``."""

    def __init__(self, *, logger: Any | None = None) -> None:
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def run(self, command: CommandSpec) -> CommandExecutionResult:
        self._logger.debug(
            "command_started",
            command=command.render(),
            interactive=command.interactive,
        )
        try:
            if command.interactive:
                completed = subprocess.run(list(command.argv), check=False)
                result = CommandExecutionResult(command=command, returncode=completed.returncode)
            else:
                completed = subprocess.run(
                    list(command.argv),
                    check=False,
                    capture_output=True,
                    text=True,
                )
                result = CommandExecutionResult(
                    command=command,
                    returncode=completed.returncode,
                    stdout=completed.stdout,
                    stderr=completed.stderr,
                )
        except FileNotFoundError:
            result = CommandExecutionResult(
                command=command,
                returncode=COMMAND_NOT_FOUND_EXIT,
                stderr=f"command not found: {command.program}",
            )
        except PermissionError as exc:
            result = CommandExecutionResult(
                command=command,
                returncode=_PERMISSION_DENIED_EXIT,
                stderr=f"permission denied: {exc}",
            )

        self._logger.info(
            "command_finished",
            command=command.render(),
            exit_code=result.returncode,
            output=result.output,
        )
        return result


def run_query(runner: CommandRunner, backend: str, command: CommandSpec) -> str:
    """Run a read-only listing command and return its stdout."""

    result = runner.run(command)
    if result.returncode == COMMAND_NOT_FOUND_EXIT:
        raise QueryError(backend, QueryErrorKind.TOOL_UNAVAILABLE, result.output.strip())
    if not result.ok:
        detail = result.output.strip() or f"exit code {result.returncode}"
        raise QueryError(backend, QueryErrorKind.COMMAND_FAILED, detail)
    return result.stdout


def run_checked(
    runner: CommandRunner,
    backend: str,
    spec: PackageSpec | None,
    command: CommandSpec,
) -> CommandExecutionResult:
    """Run a mutating command, raising ``ExecutionError`` on nonzero exit."""

    result = runner.run(command)
    if not result.ok:
        raise ExecutionError(backend, spec, result.returncode, result.output, command=command)
    return result


def installed_map(installed: Iterable[InstalledPackage]) -> dict[str, InstalledPackage]:
    return {package.name: package for package in installed}


def is_present(spec: PackageSpec, installed: Mapping[str, InstalledPackage]) -> bool:
    return spec.name in installed


def is_pinned_match(spec: PackageSpec, installed: Mapping[str, InstalledPackage]) -> bool:
    """Name present and, when pinned, installed version equal to the pin."""

    package = installed.get(spec.name)
    if package is None:
        return False
    if spec.version is None:
        return True
    return package.version == spec.version


__all__ = [
    "UNSUPPORTED",
    "Backend",
    "BackendError",
    "CommandExecutionResult",
    "CommandRunner",
    "ExecutionError",
    "QueryError",
    "QueryErrorKind",
    "SubprocessCommandRunner",
    "Unsupported",
    "installed_map",
    "is_pinned_match",
    "is_present",
    "run_checked",
    "run_query",
]
