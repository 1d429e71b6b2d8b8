"""End-of-run reporting: a rich table of playlist results and log recaps."""

from __future__ import annotations

import logging
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from .logging_utils import render_section_block
from .models import SyncAction, SyncResult
from .runner import RunReport

LOGGER = logging.getLogger(__name__)

SUCCESS_COLOR = "green"
WARNING_COLOR = "yellow"
ERROR_COLOR = "red"
DIM_COLOR = "dim"

SUCCESS_SYMBOL = "✓"
WARNING_SYMBOL = "⚠"
ERROR_SYMBOL = "✗"
SKIP_SYMBOL = "⊘"

_ACTION_STYLE = {
    SyncAction.CREATED: (SUCCESS_SYMBOL, SUCCESS_COLOR),
    SyncAction.UPDATED: (SUCCESS_SYMBOL, SUCCESS_COLOR),
    SyncAction.SKIPPED: (SKIP_SYMBOL, DIM_COLOR),
    SyncAction.FAILED: (ERROR_SYMBOL, ERROR_COLOR),
}


def format_action(result: SyncResult) -> str:
    symbol, color = _ACTION_STYLE[result.action]
    label = result.action.value
    if result.dry_run and result.action in (SyncAction.CREATED, SyncAction.UPDATED):
        label = f"would be {label}"
    return f"[{color}]{symbol} {label}[/{color}]"


def format_missing(count: int) -> str:
    if count == 0:
        return f"[{DIM_COLOR}]0[/{DIM_COLOR}]"
    return f"[{WARNING_COLOR}]{WARNING_SYMBOL} {count}[/{WARNING_COLOR}]"


class SummaryTableRenderer:
    """Renders per-playlist sync results as a Rich Table."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def render_results_table(self, report: RunReport) -> Table:
        title = "Playlist Sync Summary (dry run)" if report.dry_run else "Playlist Sync Summary"
        table = Table(title=title, show_header=True, header_style="bold")
        table.add_column("Playlist", style="cyan")
        table.add_column("Status")
        table.add_column("Items", justify="right")
        table.add_column("Missing", justify="right")
        table.add_column("Details")

        for result in report.sync_results:
            details = ""
            if result.error is not None:
                details = f"[{ERROR_COLOR}]{result.error.message}[/{ERROR_COLOR}]"
            elif result.playlist_id:
                details = f"[{DIM_COLOR}]{result.playlist_id}[/{DIM_COLOR}]"
            table.add_row(
                result.playlist_name,
                format_action(result),
                str(result.final_count),
                format_missing(len(result.missing_items)),
                details,
            )
        return table

    def print_summary(self, report: RunReport) -> None:
        self.console.print(self.render_results_table(report))
        if report.aborted:
            self.console.print(f"[{ERROR_COLOR}]{ERROR_SYMBOL} Run aborted after a critical failure[/{ERROR_COLOR}]")
        elif report.cancelled:
            self.console.print(f"[{WARNING_COLOR}]{WARNING_SYMBOL} Run cancelled[/{WARNING_COLOR}]")
        for recommendation in report.error_summary.recommendations:
            self.console.print(f"[{WARNING_COLOR}]- {recommendation}[/{WARNING_COLOR}]")


def build_run_recap(report: RunReport) -> str:
    """Plain-text recap suitable for the log file."""
    missing: List[str] = []
    for result in report.sync_results:
        missing.extend(f"{result.playlist_name}: {item}" for item in result.missing_items)
    failures = [
        f"{result.playlist_name}: {result.error.message} ({result.error.recommendation})"
        for result in report.sync_results
        if result.error is not None
    ]
    fields = {
        "Created": report.count(SyncAction.CREATED),
        "Updated": report.count(SyncAction.UPDATED),
        "Skipped": report.count(SyncAction.SKIPPED),
        "Failed": report.count(SyncAction.FAILED),
        "Dry run": "yes" if report.dry_run else "no",
        "Duration": f"{report.timings.get('total', 0.0):.2f}s",
    }
    if report.index_statistics is not None:
        fields["Library entries"] = report.index_statistics.entries
    return render_section_block(
        "Run Recap",
        [
            ("Failures", failures),
            ("Missing items", missing),
            ("Recommendations", report.error_summary.recommendations),
        ],
        fields=fields,
    )


def log_run_recap(report: RunReport) -> None:
    level = logging.WARNING if (report.failed or report.aborted) else logging.INFO
    LOGGER.log(level, build_run_recap(report))
