"""
railtube - unit tests for the reconciliation engine

File: tests/unit/engine/test_reconcile.py

Purpose
- Validate apply planning and execution against a simulated package system.

What this test file should cover
- Install vs skip decisions, version pins and idempotency.
- Section filtering, dry-run parity, confirmation and cancellation.
- Query failures, install failures and on-demand script runs.

Functional requirements
- Offline; every command goes through ``FakePackageSystem``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest
from structlog.testing import capture_logs

from fakes import FakeDownloader, FakePackageSystem, ScriptedResult
from railtube.backends.deb import HttpxDownloader
from railtube.backends.registry import build_backends
from railtube.domain.models import ActionKind, CommandSpec, Manifest, PackageSpec
from railtube.engine.reconcile import (
    CANCELLED_REASON,
    DECLINED_REASON,
    FILTERED_REASON,
    Reconciler,
)
from railtube.engine.sandbox import ExecutionSandbox
from railtube.manifest.schema import ManifestValidationError, parse_manifest
from railtube.utils.concurrency import CancellationToken

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

MIXED_MANIFEST = """
[apt]
list = ["git", "curl"]

[snap]
list = ["vlc", "code --classic"]

[flatpak]
list = ["org.gimp.GIMP"]

[cargo]
list = ["ripgrep=14.1.0"]
"""


class _RecordingConfirmer:
    def __init__(self, answers: Mapping[str, bool] | None = None) -> None:
        self.answers = dict(answers or {})
        self.asked: list[tuple[str, list[str]]] = []

    def confirm(self, section: str, commands: Sequence[CommandSpec]) -> bool:
        self.asked.append((section, [command.render() for command in commands]))
        return self.answers.get(section, True)


def _reconciler(
    text: str,
    system: FakePackageSystem,
    tmp_path: Path,
    *,
    dry_run: bool = False,
    assume_yes: bool = True,
    confirmer: _RecordingConfirmer | None = None,
    cancel_token: CancellationToken | None = None,
    downloader: FakeDownloader | None = None,
) -> Reconciler:
    manifest = parse_manifest(text)
    backends = build_backends(
        system,
        manifest=manifest,
        download_dir=tmp_path / "downloads",
        downloader=downloader if downloader is not None else FakeDownloader(),
    )
    sandbox = ExecutionSandbox(
        dry_run=dry_run,
        assume_yes=assume_yes,
        confirmer=confirmer,
        cancel_token=cancel_token,
    )
    return Reconciler(manifest, backends, sandbox)


def test_missing_package_is_installed(tmp_path: Path) -> None:
    system = FakePackageSystem(apt={"vim": "9.0"})

    report = _reconciler('[apt]\nlist = ["git", "vim"]\n', system, tmp_path).apply()

    assert report.success
    assert [(action.label, action.kind) for action in report.actions] == [
        ("git", ActionKind.INSTALL),
        ("vim", ActionKind.SKIP_SATISFIED),
    ]
    install = report.installs[0]
    assert install.executed is True
    assert install.command is not None
    assert install.command.render() == "sudo apt install -y git"
    assert install.reason == "not installed"
    assert "git" in system.installed["apt"]


def test_pinned_version_mismatch_is_reinstalled(tmp_path: Path) -> None:
    system = FakePackageSystem(apt={"git": "1.0"})

    report = _reconciler('[apt]\nlist = ["git=2.0"]\n', system, tmp_path).apply()

    (action,) = report.actions
    assert action.kind is ActionKind.INSTALL
    assert action.reason == "installed version 1.0 differs from pinned 2.0"
    assert system.installed["apt"]["git"] == "2.0"


def test_pinned_version_match_is_skipped(tmp_path: Path) -> None:
    system = FakePackageSystem(cargo={"ripgrep": "14.1.0"})

    report = _reconciler('[cargo]\nlist = ["ripgrep=14.1.0"]\n', system, tmp_path).apply()

    (action,) = report.actions
    assert action.kind is ActionKind.SKIP_SATISFIED
    assert action.reason == "version 14.1.0 already installed"
    assert system.mutating_calls() == []


def test_second_apply_is_idempotent(tmp_path: Path) -> None:
    system = FakePackageSystem()

    first = _reconciler(MIXED_MANIFEST, system, tmp_path).apply()
    second = _reconciler(MIXED_MANIFEST, system, tmp_path).apply()

    assert len(first.installs) == 6
    assert second.installs == ()
    assert {action.kind for action in second.actions} == {ActionKind.SKIP_SATISFIED}


def test_only_filter_never_touches_unselected_backends(tmp_path: Path) -> None:
    system = FakePackageSystem()

    report = _reconciler(MIXED_MANIFEST, system, tmp_path).apply(only="apt,cargo")

    touched = {call.argv[1] if call.argv[0] == "sudo" else call.argv[0] for call in system.calls}
    assert "snap" not in touched
    assert "flatpak" not in touched
    filtered = report.of_kind(ActionKind.SKIP_FILTERED)
    assert {action.section for action in filtered} == {"snap", "flatpak"}
    assert all(action.reason == FILTERED_REASON for action in filtered)
    assert all(action.command is None for action in filtered)


def test_dry_run_reports_the_commands_a_live_run_executes(tmp_path: Path) -> None:
    text = (
        "[system]\nupdate = true\n"
        + MIXED_MANIFEST
        + '\n[deb]\nurls = ["https://example.org/t.deb"]\n'
    )
    dry_system = FakePackageSystem(apt={"git": "1.0"})
    live_system = FakePackageSystem(apt={"git": "1.0"})
    downloader = FakeDownloader()

    dry = _reconciler(text, dry_system, tmp_path, dry_run=True, downloader=downloader).apply()
    live = _reconciler(text, live_system, tmp_path).apply()

    assert dry.dry_run is True
    assert live.success
    assert dry_system.mutating_calls() == []
    assert downloader.downloads == []
    assert all(not action.executed for action in dry.actions)
    dry_commands = [action.command.render() for action in dry.installs if action.command]
    assert dry_commands == live_system.mutating_calls()


def test_system_update_runs_first(tmp_path: Path) -> None:
    system = FakePackageSystem()
    text = '[apt]\nlist = ["git"]\n[system]\nupdate = true\n'

    report = _reconciler(text, system, tmp_path).apply()

    assert system.mutating_calls() == ["sudo apt update", "sudo apt install -y git"]
    assert report.actions[0].section == "system"
    assert report.actions[0].label == "system"


def test_system_update_skipped_when_filtered_out(tmp_path: Path) -> None:
    system = FakePackageSystem()
    text = '[system]\nupdate = true\n[apt]\nlist = ["git"]\n'

    report = _reconciler(text, system, tmp_path).apply(only=["apt"])

    assert system.mutating_calls() == ["sudo apt install -y git"]
    assert report.for_section("system")[0].kind is ActionKind.SKIP_FILTERED


def test_query_failure_fails_only_that_section(tmp_path: Path) -> None:
    system = FakePackageSystem(unavailable={"snap"})

    report = _reconciler(MIXED_MANIFEST, system, tmp_path).apply()

    assert report.success is False
    snap_actions = report.for_section("snap")
    assert [action.kind for action in snap_actions] == [ActionKind.FAIL, ActionKind.FAIL]
    assert "tool_unavailable" in snap_actions[0].reason
    assert {action.kind for action in report.for_section("apt")} == {ActionKind.INSTALL}
    assert "git" in system.installed["apt"]


def test_install_failure_does_not_stop_later_packages(tmp_path: Path) -> None:
    system = FakePackageSystem()
    system.script(("sudo", "apt", "install", "-y", "git"), ScriptedResult(100, stderr="E: broken"))

    report = _reconciler('[apt]\nlist = ["git", "curl"]\n', system, tmp_path).apply()

    failed, installed = report.actions
    assert failed.kind is ActionKind.FAIL
    assert failed.executed is True
    assert failed.exit_code == 100
    assert "E: broken" in failed.output
    assert installed.kind is ActionKind.INSTALL
    assert report.success is False


def test_installed_state_queried_once_per_backend(tmp_path: Path) -> None:
    system = FakePackageSystem()
    reconciler = _reconciler('[apt]\nlist = ["git", "curl", "vim"]\n', system, tmp_path)

    reconciler.apply()

    assert sum(1 for call in system.calls if call.program == "dpkg-query") == 1


def test_declined_section_is_skipped_and_asked_once(tmp_path: Path) -> None:
    system = FakePackageSystem()
    confirmer = _RecordingConfirmer({"snap": False})

    report = _reconciler(
        MIXED_MANIFEST, system, tmp_path, assume_yes=False, confirmer=confirmer
    ).apply()

    assert [section for section, _ in confirmer.asked] == ["apt", "snap", "flatpak", "cargo"]
    snap_prompt = dict(confirmer.asked)["snap"]
    assert snap_prompt == ["sudo snap install vlc", "sudo snap install code --classic"]
    snap_actions = report.for_section("snap")
    assert {action.kind for action in snap_actions} == {ActionKind.SKIP_FILTERED}
    assert {action.reason for action in snap_actions} == {DECLINED_REASON}
    assert system.installed["snap"] == {}
    assert report.success is True


def test_without_confirmer_every_section_is_declined(tmp_path: Path) -> None:
    system = FakePackageSystem()

    report = _reconciler('[apt]\nlist = ["git"]\n', system, tmp_path, assume_yes=False).apply()

    assert report.actions[0].kind is ActionKind.SKIP_FILTERED
    assert system.mutating_calls() == []


def test_cancelled_run_executes_nothing(tmp_path: Path) -> None:
    system = FakePackageSystem()
    token = CancellationToken()
    token.cancel()

    report = _reconciler(MIXED_MANIFEST, system, tmp_path, cancel_token=token).apply()

    assert system.mutating_calls() == []
    assert {action.kind for action in report.actions} == {ActionKind.FAIL}
    assert {action.reason for action in report.actions} == {CANCELLED_REASON}


def test_cancellation_mid_run_stops_remaining_actions(tmp_path: Path) -> None:
    system = FakePackageSystem()
    token = CancellationToken()

    class _CancelAfterApt(_RecordingConfirmer):
        def confirm(self, section: str, commands: Sequence[CommandSpec]) -> bool:
            token.cancel()
            return super().confirm(section, commands)

    report = _reconciler(
        '[apt]\nlist = ["git", "curl"]\n',
        system,
        tmp_path,
        assume_yes=False,
        confirmer=_CancelAfterApt(),
        cancel_token=token,
    ).apply()

    assert [action.kind for action in report.actions] == [ActionKind.INSTALL, ActionKind.FAIL]
    assert report.actions[1].reason == CANCELLED_REASON
    assert system.mutating_calls() == ["sudo apt install -y git"]


def test_deb_entries_always_install(tmp_path: Path) -> None:
    system = FakePackageSystem()
    downloader = FakeDownloader()

    report = _reconciler(
        '[deb]\nurls = ["https://example.org/a.deb", "https://example.org/b.deb"]\n',
        system,
        tmp_path,
        downloader=downloader,
    ).apply()

    assert [action.kind for action in report.actions] == [ActionKind.INSTALL, ActionKind.INSTALL]
    assert [url for url, _ in downloader.downloads] == [
        "https://example.org/a.deb",
        "https://example.org/b.deb",
    ]


def test_deb_download_failure_is_unexecuted_fail(tmp_path: Path) -> None:
    system = FakePackageSystem()
    url = "https://example.org/a.deb"

    report = _reconciler(
        f'[deb]\nurls = ["{url}"]\n',
        system,
        tmp_path,
        downloader=FakeDownloader(failing={url}),
    ).apply()

    (action,) = report.actions
    assert action.kind is ActionKind.FAIL
    assert action.executed is False
    assert "HTTP 404" in action.reason


def test_unfetchable_deb_url_fails_only_its_item(tmp_path: Path) -> None:
    system = FakePackageSystem()
    bad_url = "https://example.org:notaport/a.deb"
    good_url = "https://example.org/b.deb"
    manifest = Manifest(
        apt=(PackageSpec("git"),),
        deb=(bad_url, good_url),
        declared=frozenset({"apt", "deb"}),
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"!<arch>\n")

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        backends = build_backends(
            system,
            manifest=manifest,
            download_dir=tmp_path / "downloads",
            downloader=HttpxDownloader(client=client),
        )
        report = Reconciler(manifest, backends, ExecutionSandbox(assume_yes=True)).apply()

    assert [(action.label, action.kind) for action in report.actions] == [
        ("git", ActionKind.INSTALL),
        (bad_url, ActionKind.FAIL),
        (good_url, ActionKind.INSTALL),
    ]
    assert "invalid URL" in report.actions[1].reason
    assert "sudo dpkg -i " + str(tmp_path / "downloads" / "b.deb") in system.mutating_calls()


def test_apply_never_runs_scripts(tmp_path: Path) -> None:
    system = FakePackageSystem()

    report = _reconciler('[scripts]\nhello = "echo hi"\n', system, tmp_path).apply()

    assert report.actions == ()
    assert system.calls == []


def test_run_script_propagates_exit_status(tmp_path: Path) -> None:
    system = FakePackageSystem()
    system.script(("sh", "-c", "exit 3"), ScriptedResult(3))
    reconciler = _reconciler('[scripts]\nok = "true"\nbad = "exit 3"\n', system, tmp_path)

    good = reconciler.run_script("ok")
    bad = reconciler.run_script("bad")

    assert good.kind is ActionKind.INSTALL
    assert good.exit_code == 0
    assert bad.kind is ActionKind.FAIL
    assert bad.exit_code == 3
    assert [call.interactive for call in system.calls] == [True, True]


def test_run_script_dry_run_executes_nothing(tmp_path: Path) -> None:
    system = FakePackageSystem()

    reconciler = _reconciler('[scripts]\nok = "true"\n', system, tmp_path, dry_run=True)

    action = reconciler.run_script("ok")

    assert action.kind is ActionKind.INSTALL
    assert action.executed is False
    assert system.calls == []


def test_run_unknown_script_is_rejected(tmp_path: Path) -> None:
    reconciler = _reconciler('[scripts]\nok = "true"\n', FakePackageSystem(), tmp_path)

    with pytest.raises(ManifestValidationError, match=r"scripts\.missing: unknown script"):
        reconciler.run_script("missing")


def test_unknown_only_section_is_rejected(tmp_path: Path) -> None:
    reconciler = _reconciler(MIXED_MANIFEST, FakePackageSystem(), tmp_path)

    with pytest.raises(ManifestValidationError, match="unknown section 'brew'"):
        reconciler.apply(only="apt,brew")


def test_phases_are_logged_in_order(tmp_path: Path) -> None:
    system = FakePackageSystem()

    with capture_logs() as logs:
        _reconciler('[apt]\nlist = ["git"]\n', system, tmp_path).apply()

    phases = [entry["phase"] for entry in logs if entry["event"] == "reconcile_phase"]
    assert phases == ["loaded", "filtered", "planned", "executed", "reported"]
    actions = [entry for entry in logs if entry["event"] == "reconcile_action"]
    assert actions[0]["kind"] == "install"
    assert actions[0]["command"] == "sudo apt install -y git"
