"""Command-line interface router for railtube."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

import httpx

from railtube.backends import (
    CommandRunner,
    Downloader,
    HttpxDownloader,
    SubprocessCommandRunner,
    build_backends,
)
from railtube.config import (
    ConfigLoadError,
    ConfigValidationError,
    RuntimeSettings,
    load_config,
)
from railtube.constants import EXPORT_HEADER, SECTIONS
from railtube.domain.models import ActionKind, Manifest
from railtube.engine import ExecutionSandbox, Reconciler, export_environment
from railtube.manifest import (
    ManifestParseError,
    ManifestValidationError,
    SourceLoadError,
    is_remote_source,
    load_manifest_text,
    parse_manifest,
    serialize_manifest,
)
from railtube.observability import (
    LoggingConfig,
    StructuredLoggingHandle,
    generate_run_id,
    setup_structured_logging,
    shutdown_logging,
)
from railtube.ui.render import CLIRenderer, ConsoleConfirmer, create_renderer
from railtube.utils import CancellationToken, atomic_write_text, cancel_on_sigint, temp_directory

if TYPE_CHECKING:
    from collections.abc import Mapping


class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    def __init__(self, message: str, exit_code: int = 1) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class CLIServices:
    """Collaborators the handlers use; tests swap in fakes."""

    runner: CommandRunner | None = None
    downloader: Downloader | None = None
    http_client: httpx.Client | None = None
    read: Callable[[str], str] = input
    stdout: TextIO | None = None
    environ: Mapping[str, str] | None = None
    cwd: Path | None = None
    cancel_token: CancellationToken = field(default_factory=CancellationToken)


@dataclass(frozen=True, slots=True)
class _Session:
    settings: RuntimeSettings
    renderer: CLIRenderer
    logging: StructuredLoggingHandle
    runner: CommandRunner


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="railtube",
        description=(
            "railtube - reconcile a declared package manifest against this machine.\n\n"
            "Common workflows:\n"
            "  railtube apply --source env.toml --dry-run   Preview installs\n"
            "  railtube apply --source env.toml             Install what is missing\n"
            "  railtube doctor --source env.toml            Show drift\n"
            "  railtube export                              Snapshot installed packages\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to railtube TOML config (default: ./railtube.toml if present).",
    )
    common.add_argument(
        "--log-dir",
        default=None,
        help="Base directory for run logs (overrides observability.log_dir).",
    )
    common.add_argument(
        "--log-level",
        default=None,
        type=str.upper,
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Run log level (overrides observability.log_level).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show commands and captured output for every action.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # apply ---------------------------------------------------------------
    apply_parser = subparsers.add_parser(
        "apply",
        parents=[common],
        help="Install everything the manifest declares but the system lacks",
        description=(
            "Reconcile the system against a manifest.\n\n"
            "Examples:\n"
            "  railtube apply --source env.toml --dry-run\n"
            "  railtube apply --source https://example.org/env.toml --yes\n"
            "  railtube apply --source env.toml --only apt,cargo\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_source_argument(apply_parser)
    apply_parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Report the commands that would run without running them.",
    )
    apply_parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        default=False,
        help="Do not ask for confirmation before each section.",
    )
    apply_parser.add_argument(
        "--only",
        default=None,
        metavar="SECTIONS",
        help=f"Comma-separated sections to process ({', '.join(SECTIONS)}).",
    )
    apply_parser.set_defaults(handler=_cmd_apply)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Run one named script from the manifest",
    )
    _add_source_argument(run_parser)
    run_parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        default=False,
        help="Do not ask for confirmation when the manifest is remote.",
    )
    run_parser.add_argument("script", help="Name of the script in [scripts]")
    run_parser.set_defaults(handler=_cmd_run)

    # doctor --------------------------------------------------------------
    doctor_parser = subparsers.add_parser(
        "doctor",
        parents=[common],
        help="Compare the manifest with installed packages",
    )
    _add_source_argument(doctor_parser)
    doctor_parser.set_defaults(handler=_cmd_doctor)

    # export --------------------------------------------------------------
    export_parser = subparsers.add_parser(
        "export",
        parents=[common],
        help="Write installed packages as a manifest",
    )
    export_parser.add_argument(
        "--output",
        "-o",
        default=None,
        help="Output file (default: export.output, exported-env.toml).",
    )
    export_parser.add_argument(
        "--pin-versions",
        action="store_true",
        default=None,
        help="Pin apt and cargo versions in the exported manifest.",
    )
    export_parser.set_defaults(handler=_cmd_export)

    return parser


def _add_source_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--source",
        "-s",
        required=True,
        help="Manifest path or http(s) URL.",
    )


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None, *, services: CLIServices | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace, services or CLIServices())
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_apply(args: argparse.Namespace, services: CLIServices) -> int:
    with _session(args, services) as session:
        manifest = _load_manifest(args.source, session, services)
        sandbox = ExecutionSandbox(
            dry_run=args.dry_run,
            assume_yes=args.yes,
            confirmer=ConsoleConfirmer(session.renderer, read=services.read),
            cancel_token=services.cancel_token,
        )
        with temp_directory("railtube-deb-") as download_dir, cancel_on_sigint(
            sandbox.cancel_token
        ):
            backends = build_backends(
                session.runner,
                manifest=manifest,
                download_dir=download_dir,
                downloader=_downloader(session, services),
            )
            reconciler = Reconciler(manifest, backends, sandbox)
            try:
                report = reconciler.apply(only=args.only)
            except ManifestValidationError as exc:
                raise CLIError(str(exc), exit_code=2) from exc

        session.renderer.report(report, title=f"railtube apply: {args.source}")
        if sandbox.cancelled:
            session.renderer.warning("cancelled; remaining actions were not started")
        _render_log_path(session)
        return 0 if report.success else 1


def _cmd_run(args: argparse.Namespace, services: CLIServices) -> int:
    with _session(args, services) as session:
        manifest = _load_manifest(args.source, session, services)
        renderer = session.renderer
        if args.script not in manifest.scripts:
            known = ", ".join(manifest.scripts) or "none declared"
            raise CLIError(f"unknown script {args.script!r} (known: {known})", exit_code=2)

        if is_remote_source(args.source) and not args.yes:
            renderer.warning(f"script {args.script!r} comes from a remote manifest:")
            renderer.items([manifest.scripts[args.script]], prefix="$ ")
            if not renderer.confirm(f"Run {args.script!r}?", read=services.read):
                renderer.text("aborted")
                return 1

        with temp_directory("railtube-run-") as download_dir:
            backends = build_backends(
                session.runner,
                manifest=manifest,
                download_dir=download_dir,
                downloader=_downloader(session, services),
            )
            sandbox = ExecutionSandbox(assume_yes=True, cancel_token=services.cancel_token)
            action = Reconciler(manifest, backends, sandbox).run_script(args.script)

        if action.kind is ActionKind.FAIL:
            renderer.fail(f"{args.script}: {action.reason}")
            _render_log_path(session)
            return action.exit_code if action.exit_code else 1
        renderer.ok(f"{args.script}: completed")
        _render_log_path(session)
        return 0


def _cmd_doctor(args: argparse.Namespace, services: CLIServices) -> int:
    with _session(args, services) as session:
        manifest = _load_manifest(args.source, session, services)
        with temp_directory("railtube-doctor-") as download_dir:
            backends = build_backends(
                session.runner,
                manifest=manifest,
                download_dir=download_dir,
                downloader=_downloader(session, services),
            )
            sandbox = ExecutionSandbox(dry_run=True, cancel_token=services.cancel_token)
            doctor = Reconciler(manifest, backends, sandbox).doctor()
        session.renderer.doctor(doctor)
        _render_log_path(session)
        return 0 if doctor.success else 1


def _cmd_export(args: argparse.Namespace, services: CLIServices) -> int:
    with _session(args, services, export_overrides=True) as session:
        renderer = session.renderer
        with temp_directory("railtube-export-") as download_dir:
            backends = build_backends(
                session.runner,
                manifest=Manifest(),
                download_dir=download_dir,
                downloader=_downloader(session, services),
            )
            result = export_environment(backends, pin_versions=session.settings.pin_versions)

        text = serialize_manifest(result.manifest, header=EXPORT_HEADER)
        output = session.settings.export_output
        try:
            written = atomic_write_text(output, text)
        except OSError as exc:
            raise CLIError(f"cannot write {output}: {exc}", exit_code=2) from exc

        for warning in result.warnings:
            renderer.warning(warning)
        total = sum(len(result.manifest.packages(section)) for section in result.manifest.declared)
        renderer.ok(f"exported {total} packages to {written}")
        _render_log_path(session)
        return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _session(
    args: argparse.Namespace,
    services: CLIServices,
    *,
    export_overrides: bool = False,
) -> Iterator[_Session]:
    settings = _load_settings(args, services, export_overrides=export_overrides)
    renderer = create_renderer(
        no_color=bool(args.no_color),
        verbose=bool(args.verbose),
        stream=services.stdout,
    )
    try:
        handle = setup_structured_logging(
            LoggingConfig(
                run_id=generate_run_id(),
                base_log_dir=settings.log_dir,
                level=settings.log_level,
                log_to_stderr=settings.log_to_stderr,
            )
        )
    except OSError as exc:
        raise CLIError(f"cannot open log directory {settings.log_dir}: {exc}", exit_code=2) from exc

    handle.logger.info(
        "railtube %s started",
        args.command,
        extra={"command": args.command, "argv_source": getattr(args, "source", None)},
    )
    runner = services.runner if services.runner is not None else SubprocessCommandRunner()
    try:
        yield _Session(settings=settings, renderer=renderer, logging=handle, runner=runner)
    finally:
        handle.logger.info("railtube %s finished", args.command)
        shutdown_logging(handle)


def _load_settings(
    args: argparse.Namespace,
    services: CLIServices,
    *,
    export_overrides: bool,
) -> RuntimeSettings:
    overrides: dict[str, object] = {
        "observability.log_dir": _absolute(args.log_dir, services),
        "observability.log_level": args.log_level,
    }
    if export_overrides:
        overrides["export.output"] = _absolute(args.output, services)
        overrides["export.pin_versions"] = args.pin_versions
    try:
        loaded = load_config(
            args.config_path,
            cli_overrides=overrides,
            environ=services.environ,
            cwd=services.cwd,
        )
        return RuntimeSettings.from_config(loaded)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _absolute(raw: str | None, services: CLIServices) -> str | None:
    # CLI paths are relative to the working directory, not the config file.
    if raw is None:
        return None
    candidate = Path(raw).expanduser()
    if not candidate.is_absolute():
        candidate = (services.cwd or Path.cwd()) / candidate
    return str(candidate)


def _load_manifest(source: str, session: _Session, services: CLIServices) -> Manifest:
    try:
        text = load_manifest_text(
            source,
            timeout=session.settings.http_timeout_seconds,
            client=services.http_client,
        )
        return parse_manifest(text, unknown_keys=session.settings.unknown_keys)
    except (SourceLoadError, ManifestParseError, ManifestValidationError) as exc:
        session.logging.logger.error("manifest rejected: %s", exc)
        raise CLIError(str(exc), exit_code=2) from exc


def _downloader(session: _Session, services: CLIServices) -> Downloader:
    if services.downloader is not None:
        return services.downloader
    return HttpxDownloader(timeout=session.settings.http_timeout_seconds)


def _render_log_path(session: _Session) -> None:
    if session.renderer.verbose:
        session.renderer.kv("log", session.logging.log_path)


__all__ = ["CLIError", "CLIServices", "build_parser", "run_cli"]
