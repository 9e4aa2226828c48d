"""Output rendering for the railtube CLI.

File: src/railtube/ui/render.py

Purpose
- Provide a thin plain-text rendering layer for reports and prompts.
- Respect NO_COLOR environment variable and --no-color CLI flag.

Functional requirements
- Reports render one line per action, grouped by section, in report order.
- Confirmation prompts default to "no" on empty input or EOF.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Callable
from typing import TYPE_CHECKING, TextIO

from railtube.domain.models import ActionKind

if TYPE_CHECKING:
    from collections.abc import Sequence

    from railtube.domain.models import (
        CommandSpec,
        DoctorReport,
        ReconciliationAction,
        ReconciliationReport,
    )

_ANSI_RESET = "\033[0m"
_ANSI_COLORS = {
    "green": "\033[32m",
    "yellow": "\033[33m",
    "red": "\033[31m",
    "dim": "\033[2m",
}
_KIND_STYLE: dict[ActionKind, tuple[str, str]] = {
    ActionKind.INSTALL: ("INSTALL", "green"),
    ActionKind.SKIP_SATISFIED: ("OK", "dim"),
    ActionKind.SKIP_FILTERED: ("SKIP", "yellow"),
    ActionKind.FAIL: ("FAIL", "red"),
}


def _color_allowed(no_color_flag: bool, stream: TextIO) -> bool:
    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class CLIRenderer:
    """Plain-text CLI renderer with optional ANSI color."""

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stdout
        self._color = _color_allowed(no_color, self._stream)

    def _print(self, line: str = "") -> None:
        print(line, file=self._stream)

    def _paint(self, text: str, color: str) -> str:
        if not self._color:
            return text
        return f"{_ANSI_COLORS[color]}{text}{_ANSI_RESET}"

    def heading(self, text: str) -> None:
        self._print(text)

    def kv(self, key: str, value: object) -> None:
        self._print(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._print(line)

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self._print(f"\n{title}")

    def warning(self, text: str) -> None:
        self._print(f"  {self._paint('Warning:', 'yellow')} {text}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._print(f"  {prefix}{entry}")

    def ok(self, label: str) -> None:
        self._print(f"  {self._paint('OK', 'green')}  {label}")

    def fail(self, label: str) -> None:
        self._print(f"  {self._paint('FAIL', 'red')}  {label}")

    def action(self, action: ReconciliationAction) -> None:
        """Print one action line; commands and captured output only when relevant."""

        tag, color = _KIND_STYLE[action.kind]
        self._print(f"  {self._paint(tag.ljust(7), color)} {action.label}: {action.reason}")
        show_command = action.kind is ActionKind.INSTALL or self.verbose
        if action.command is not None and show_command:
            self._print(f"          $ {action.command.render()}")
        if action.kind is ActionKind.FAIL and action.output and self.verbose:
            for line in action.output.rstrip().splitlines()[-20:]:
                self._print(f"          | {line}")

    def report(self, report: ReconciliationReport, *, title: str) -> None:
        self.heading(title + (" (dry run)" if report.dry_run else ""))
        current: str | None = None
        for action in report.actions:
            if action.section != current:
                current = action.section
                self.section(f"[{current}]")
            self.action(action)
        if not report.actions:
            self.text("nothing to do")
        self.summary(report)

    def summary(self, report: ReconciliationReport) -> None:
        counts = ", ".join(
            f"{len(report.of_kind(kind))} {kind.value}" for kind in ActionKind
        )
        self.section(f"Summary: {counts}")

    def doctor(self, doctor: DoctorReport) -> None:
        self.heading("railtube doctor")
        sections: list[str] = []
        for action in doctor.report.actions:
            if action.section not in sections:
                sections.append(action.section)
        for section in doctor.extra:
            if section not in sections:
                sections.append(section)

        for section in sections:
            self.section(f"[{section}]")
            missing = doctor.missing(section)
            extras = doctor.extras(section)
            failures = [
                action for action in doctor.report.for_section(section)
                if action.kind is ActionKind.FAIL
            ]
            for action in failures:
                self.fail(f"{action.label}: {action.reason}")
            if missing:
                self.text("  missing:")
                self.items([spec.render() for spec in missing])
            if extras:
                self.text("  not in manifest:")
                self.items(list(extras))
            if not missing and not extras and not failures:
                self.ok("in sync")

        for section in doctor.unchecked:
            self.section(f"[{section}]")
            self.warning("installed state cannot be checked for this section")

        self._print()
        if doctor.is_clean:
            self.ok("system matches manifest")
        else:
            self.fail("system differs from manifest")

    def confirm(self, prompt: str, *, read: Callable[[str], str] = input) -> bool:
        try:
            answer = read(f"{prompt} [y/N] ")
        except EOFError:
            self._print()
            return False
        return answer.strip().lower() in {"y", "yes"}


class ConsoleConfirmer:
    """Ask on the terminal before a section's commands run."""

    def __init__(self, renderer: CLIRenderer, *, read: Callable[[str], str] = input) -> None:
        self._renderer = renderer
        self._read = read

    def confirm(self, section: str, commands: Sequence[CommandSpec]) -> bool:
        self._renderer.section(f"[{section}] will run:")
        self._renderer.items([command.render() for command in commands], prefix="$ ")
        noun = "command" if len(commands) == 1 else "commands"
        return self._renderer.confirm(
            f"Proceed with {len(commands)} {section} {noun}?", read=self._read
        )


def create_renderer(
    *,
    no_color: bool = False,
    verbose: bool = False,
    stream: TextIO | None = None,
) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, verbose=verbose, stream=stream)


__all__ = ["CLIRenderer", "ConsoleConfirmer", "create_renderer"]
