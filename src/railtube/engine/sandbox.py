"""
railtube - execution sandbox

File: src/railtube/engine/sandbox.py

Purpose
- Decide whether planned commands run or are only reported.

What should be included in this file
- ``--only`` section selection with validation.
- Per-section confirmation gating and the run's cancellation token.

Functional requirements
- Dry-run never executes anything.
- Each section is confirmed at most once per run; ``assume_yes`` skips prompts.
- Without a confirmer and without ``assume_yes`` every section is declined.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol

from railtube.constants import SECTIONS
from railtube.domain.models import CommandSpec
from railtube.manifest.schema import ManifestIssue, ManifestValidationError
from railtube.utils.concurrency import CancellationToken


class Confirmer(Protocol):
    """Asks whether a section's mutating commands may run."""

    def confirm(self, section: str, commands: Sequence[CommandSpec]) -> bool: ...


def select_sections(only: str | Iterable[str] | None) -> frozenset[str]:
    """Normalise an ``--only`` selection (comma list or iterable, case-insensitive).

    ``None`` selects every section.
    """

    if only is None:
        return frozenset(SECTIONS)
    raw_items = only.split(",") if isinstance(only, str) else list(only)

    selected: set[str] = set()
    issues: list[ManifestIssue] = []
    for raw in raw_items:
        name = raw.strip().lower()
        if not name:
            continue
        if name not in SECTIONS:
            issues.append(
                ManifestIssue(
                    path="--only",
                    message=f"unknown section {raw.strip()!r} (expected one of {', '.join(SECTIONS)})",
                )
            )
            continue
        selected.add(name)

    if not issues and not selected:
        issues.append(ManifestIssue(path="--only", message="no sections selected"))
    if issues:
        raise ManifestValidationError(issues)
    return frozenset(selected)


class ExecutionSandbox:
    """Per-run execution policy shared by apply and run."""

    __slots__ = ("assume_yes", "cancel_token", "confirmer", "dry_run", "_decisions")

    def __init__(
        self,
        *,
        dry_run: bool = False,
        assume_yes: bool = False,
        confirmer: Confirmer | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self.dry_run = dry_run
        self.assume_yes = assume_yes
        self.confirmer = confirmer
        self.cancel_token = cancel_token if cancel_token is not None else CancellationToken()
        self._decisions: dict[str, bool] = {}

    @property
    def executes(self) -> bool:
        return not self.dry_run

    @property
    def cancelled(self) -> bool:
        return self.cancel_token.is_cancelled

    def confirm_section(self, section: str, commands: Sequence[CommandSpec]) -> bool:
        """Return whether ``section`` may mutate the system; asks once per section."""

        if self.assume_yes:
            return True
        if section not in self._decisions:
            if self.confirmer is None:
                self._decisions[section] = False
            else:
                self._decisions[section] = bool(self.confirmer.confirm(section, tuple(commands)))
        return self._decisions[section]


__all__ = ["Confirmer", "ExecutionSandbox", "select_sections"]
