from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import yaml
from rich.console import Console

from .backend import InMemoryPlaylistBackend, LibrarySource, PlaylistBackend, SnapshotLibrarySource
from .cancel import CancelToken
from .config import AppConfig, Settings, build_config
from .errors import InvalidInputError, TimelineError
from .jellyfin_client import JellyfinClient
from .run_summary import SummaryTableRenderer, log_run_recap
from .runner import TimelineRunner
from .utils import load_yaml_file
from .validation import ValidationReport, validate_config_data
from .version import __version__

LOGGER = logging.getLogger(__name__)
CONSOLE = Console()

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s\n%(message)s\n"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ABORTED = 2
EXIT_CANCELLED = 130


def configure_logging(level: int, log_file: Optional[Path] = None) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT, handlers=handlers, force=True)
    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))


def _default_config_path() -> Path:
    return Path(os.getenv("CHRONOLIST_CONFIG", "/config/chronolist.yaml"))


def _print_report(report: ValidationReport, *, show_suggestions: bool = True) -> None:
    for issue in report.errors:
        CONSOLE.print(f"[red]✗ {issue.path}[/red]: {issue.message}")
        if show_suggestions and issue.fix_suggestion:
            CONSOLE.print(f"    💡 {issue.fix_suggestion}")
    for issue in report.warnings:
        CONSOLE.print(f"[yellow]⚠ {issue.path}[/yellow]: {issue.message}")
        if show_suggestions and issue.fix_suggestion:
            CONSOLE.print(f"    💡 {issue.fix_suggestion}")


def _load_validated_config(path: Path) -> Tuple[Optional[AppConfig], ValidationReport]:
    try:
        data = load_yaml_file(path)
    except (OSError, yaml.YAMLError) as exc:
        CONSOLE.print(f"[red]✗ Failed to load configuration {path}: {exc}[/red]")
        return None, ValidationReport()

    report = validate_config_data(data)
    if not report.is_valid:
        return None, report
    try:
        config = build_config(data, base_dir=path.parent)
    except ValueError as exc:
        CONSOLE.print(f"[red]✗ {exc}[/red]")
        return None, report
    return config, report


def build_library_source(settings: Settings) -> LibrarySource:
    if settings.library_file is not None:
        return SnapshotLibrarySource(settings.library_file)
    return _build_client(settings)


def build_playlist_backend(settings: Settings, library_source: LibrarySource) -> PlaylistBackend:
    if isinstance(library_source, JellyfinClient):
        return library_source
    if settings.jellyfin.url:
        return _build_client(settings)
    LOGGER.warning("No Jellyfin server configured; playlists are written to an in-memory store")
    return InMemoryPlaylistBackend()


def _build_client(settings: Settings) -> JellyfinClient:
    jellyfin = settings.jellyfin
    if not jellyfin.url or not jellyfin.api_key:
        raise InvalidInputError("Jellyfin url and api_key are required when no library_file is configured")
    return JellyfinClient(
        jellyfin.url,
        jellyfin.api_key,
        user_id=jellyfin.user_id or settings.owner_id,
        timeout=jellyfin.timeout,
    )


def run_validate_config(args: argparse.Namespace) -> int:
    config, report = _load_validated_config(args.config)
    _print_report(report, show_suggestions=not args.no_suggestions)
    if config is None:
        CONSOLE.print("[red]✗ Configuration failed validation[/red]")
        return EXIT_ABORTED
    CONSOLE.print(f"[green]✓ Configuration passed validation ({len(config.universes)} universes)[/green]")
    return EXIT_OK


def run_sync(args: argparse.Namespace) -> int:
    configure_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)

    config, report = _load_validated_config(args.config)
    if config is None:
        _print_report(report)
        return EXIT_ABORTED

    settings = config.settings
    if args.dry_run:
        settings.dry_run = True
    if args.workers:
        settings.max_workers = max(1, args.workers)

    universes = config.select_universes(args.universe)
    if not universes:
        CONSOLE.print("[yellow]⚠ No universes selected; nothing to do[/yellow]")
        return EXIT_OK

    try:
        library_source = build_library_source(settings)
        backend = build_playlist_backend(settings, library_source)
    except TimelineError as exc:
        CONSOLE.print(f"[red]✗ {exc}[/red]")
        return EXIT_ABORTED

    cancel_token = CancelToken()
    previous_handler = signal.getsignal(signal.SIGINT)

    def _handle_interrupt(signum: int, frame: object) -> None:
        LOGGER.warning("Interrupt received; finishing the current playlist before stopping")
        cancel_token.cancel("interrupted")

    signal.signal(signal.SIGINT, _handle_interrupt)
    try:
        runner = TimelineRunner(settings, library_source, backend)
        run_report = runner.run(universes, args.owner, cancel_token=cancel_token)
    except InvalidInputError as exc:
        CONSOLE.print(f"[red]✗ {exc}[/red]")
        return EXIT_ABORTED
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    SummaryTableRenderer(CONSOLE).print_summary(run_report)
    log_run_recap(run_report)

    if run_report.cancelled:
        return EXIT_CANCELLED
    if run_report.aborted:
        return EXIT_ABORTED
    if not run_report.succeeded:
        return EXIT_FAILED
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chronolist",
        description="Sync chronological universe playlists into a Jellyfin library.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Match universes against the library and sync playlists")
    run_parser.add_argument("--config", type=Path, default=_default_config_path(), help="Path to YAML config")
    run_parser.add_argument(
        "--universe",
        action="append",
        metavar="KEY",
        help="Only sync the given universe key (repeatable)",
    )
    run_parser.add_argument("--owner", help="Override the playlist owner user id")
    run_parser.add_argument("--dry-run", action="store_true", help="Log intended writes without changing playlists")
    run_parser.add_argument("--workers", type=int, default=None, help="Concurrent playlist writes")
    run_parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    run_parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file")
    run_parser.set_defaults(func=run_sync)

    validate_parser = subparsers.add_parser("validate", help="Validate a configuration file")
    validate_parser.add_argument("--config", type=Path, default=_default_config_path(), help="Path to YAML config")
    validate_parser.add_argument("--no-suggestions", action="store_true", help="Hide fix suggestions")
    validate_parser.set_defaults(func=run_validate_config)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
