"""
railtube - unit tests for section selection and the execution sandbox

File: tests/unit/engine/test_execution_sandbox.py

Purpose
- Validate ``--only`` parsing and per-section confirmation bookkeeping.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from railtube.constants import SECTIONS
from railtube.domain.models import CommandSpec
from railtube.engine.sandbox import ExecutionSandbox, select_sections
from railtube.manifest.schema import ManifestValidationError

if TYPE_CHECKING:
    from collections.abc import Sequence


class _CountingConfirmer:
    def __init__(self, answer: bool) -> None:
        self.answer = answer
        self.calls: list[str] = []

    def confirm(self, section: str, commands: Sequence[CommandSpec]) -> bool:
        self.calls.append(section)
        return self.answer


def test_select_all_sections_by_default() -> None:
    assert select_sections(None) == frozenset(SECTIONS)


@pytest.mark.parametrize(
    "only",
    ["apt,cargo", " APT , Cargo ", ["apt", "cargo"], "apt,,cargo,"],
)
def test_select_sections_normalizes_input(only: str | list[str]) -> None:
    assert select_sections(only) == {"apt", "cargo"}


def test_select_sections_reports_every_unknown_name() -> None:
    with pytest.raises(ManifestValidationError) as excinfo:
        select_sections("apt,brew,nix")

    assert [issue.path for issue in excinfo.value.issues] == ["--only", "--only"]
    assert "unknown section 'brew'" in str(excinfo.value)
    assert "unknown section 'nix'" in str(excinfo.value)


def test_select_sections_rejects_empty_selection() -> None:
    with pytest.raises(ManifestValidationError, match="no sections selected"):
        select_sections(" , ")


def test_sandbox_asks_once_per_section() -> None:
    confirmer = _CountingConfirmer(answer=True)
    sandbox = ExecutionSandbox(confirmer=confirmer)
    command = CommandSpec("sudo", ("apt", "install", "-y", "git"))

    assert sandbox.confirm_section("apt", [command])
    assert sandbox.confirm_section("apt", [command])
    assert sandbox.confirm_section("snap", [])

    assert confirmer.calls == ["apt", "snap"]


def test_sandbox_assume_yes_skips_confirmer() -> None:
    confirmer = _CountingConfirmer(answer=False)
    sandbox = ExecutionSandbox(assume_yes=True, confirmer=confirmer)

    assert sandbox.confirm_section("apt", [])
    assert confirmer.calls == []


def test_sandbox_without_confirmer_declines() -> None:
    sandbox = ExecutionSandbox()

    assert sandbox.confirm_section("apt", []) is False
    assert sandbox.executes is True
    assert sandbox.cancelled is False


def test_dry_run_sandbox_does_not_execute() -> None:
    sandbox = ExecutionSandbox(dry_run=True)
    sandbox.cancel_token.cancel()

    assert sandbox.executes is False
    assert sandbox.cancelled is True
