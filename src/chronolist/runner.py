"""One end-to-end playlist sync run: index, match, classify, reconcile."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .backend import LibrarySource, PlaylistBackend
from .cancel import CancelToken, call_with_timeout, check_cancelled
from .classifier import ContentClassifier, UniverseProcessingResult
from .config import Settings
from .content_index import ContentIndex, IndexStatistics
from .error_handling import BatchErrorSummary, ErrorClassifier, log_batch_summary
from .errors import BackendTimeoutError, InvalidInputError, OperationCancelledError, RunAbortedError
from .logging_utils import render_section_block
from .models import ErrorRecord, PlaylistStatistics, SyncAction, SyncResult, Universe
from .provider_matcher import ProviderMatcher
from .reconciler import PlaylistReconciler
from .utils import is_blank

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RunReport:
    index_statistics: Optional[IndexStatistics] = None
    processing_results: List[UniverseProcessingResult] = field(default_factory=list)
    sync_results: List[SyncResult] = field(default_factory=list)
    error_records: List[ErrorRecord] = field(default_factory=list)
    error_summary: BatchErrorSummary = field(default_factory=BatchErrorSummary)
    playlist_statistics: PlaylistStatistics = field(default_factory=PlaylistStatistics)
    aborted: bool = False
    cancelled: bool = False
    dry_run: bool = False
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def failed(self) -> List[SyncResult]:
        return [result for result in self.sync_results if result.action is SyncAction.FAILED]

    @property
    def succeeded(self) -> bool:
        return not (self.aborted or self.cancelled or self.failed or self.error_records)

    def count(self, action: SyncAction) -> int:
        return sum(1 for result in self.sync_results if result.action is action)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index_statistics.to_dict() if self.index_statistics else None,
            "universes": [result.to_dict() for result in self.processing_results],
            "playlists": [result.to_dict() for result in self.sync_results],
            "errors": self.error_summary.to_dict(),
            "statistics": self.playlist_statistics.to_dict(),
            "aborted": self.aborted,
            "cancelled": self.cancelled,
            "dryRun": self.dry_run,
            "timings": {key: round(value, 3) for key, value in self.timings.items()},
        }


def _log_universe(result: UniverseProcessingResult) -> None:
    if not result.is_valid:
        LOGGER.warning(
            render_section_block(
                f"Universe {result.universe_key}: invalid",
                [("Errors", result.validation.errors)],
            )
        )
        return
    match = result.match
    if match is None:
        return
    fields = {
        "Name": result.universe_name,
        "Entries": match.total,
        "Matched": f"{match.matched_count} ({match.matching_rate:.1f}%)",
        "Movies": len(result.movie_ids),
        "Episodes": len(result.episode_ids),
        "Mixed": "yes" if result.analysis.is_mixed else "no",
    }
    missing = [entry.describe() for entry in match.missing_entries]
    if missing:
        LOGGER.info(
            render_section_block(f"Universe {result.universe_key}", [("Missing items", missing)], fields=fields)
        )
    else:
        LOGGER.info(render_section_block(f"Universe {result.universe_key}", [], fields=fields))


class TimelineRunner:
    """Wire the pipeline for one run.

    Each call to :meth:`run` builds its own index, matcher, classifier and
    reconciler; nothing is shared between runs.
    """

    def __init__(self, settings: Settings, library_source: LibrarySource, backend: PlaylistBackend) -> None:
        self._settings = settings
        self._library_source = library_source
        self._backend = backend

    def _build_index(self, cancel_token: Optional[CancelToken]) -> ContentIndex:
        index_token = CancelToken(parent=cancel_token)

        def _fetch_and_build() -> ContentIndex:
            return ContentIndex.build(self._library_source.fetch_library_items(), cancel_token=index_token)

        try:
            return call_with_timeout(
                _fetch_and_build,
                timeout=self._settings.index_timeout,
                operation="Library indexing",
            )
        except BackendTimeoutError:
            # Stop the abandoned worker at its next item.
            index_token.cancel("library indexing timed out")
            raise

    def run(
        self,
        universes: Sequence[Universe],
        owner_id: Optional[str] = None,
        *,
        cancel_token: Optional[CancelToken] = None,
    ) -> RunReport:
        """Sync one playlist per universe and report what happened.

        Cancellation and aborts are reported on the returned ``RunReport``
        rather than raised.
        """
        owner = owner_id or self._settings.owner_id
        if is_blank(owner):
            raise InvalidInputError("An owner id is required to sync playlists")

        classifier = ErrorClassifier()
        report = RunReport(dry_run=self._settings.dry_run)
        started = time.perf_counter()

        try:
            check_cancelled(cancel_token)
            stage = time.perf_counter()
            try:
                index = self._build_index(cancel_token)
            except OperationCancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                record = classifier.classify_index_failure(exc, context={"stage": "index"})
                report.error_records.append(record)
                report.aborted = not classifier.should_continue(record)
                LOGGER.error("%s; no playlists were written. %s", record.message, record.recommendation)
                return self._finish(report, classifier, started)
            report.index_statistics = index.statistics
            report.timings["index"] = time.perf_counter() - stage

            stage = time.perf_counter()
            content_classifier = ContentClassifier(ProviderMatcher(index))
            for universe in universes:
                check_cancelled(cancel_token)
                result = content_classifier.process_universe(universe, cancel_token=cancel_token)
                report.processing_results.append(result)
                _log_universe(result)
            report.timings["match"] = time.perf_counter() - stage

            stage = time.perf_counter()
            reconciler = PlaylistReconciler(
                self._backend,
                error_classifier=classifier,
                write_timeout=self._settings.write_timeout,
                dry_run=self._settings.dry_run,
            )
            try:
                report.sync_results = reconciler.batch_create(
                    report.processing_results,
                    owner,
                    cancel_token=cancel_token,
                    max_workers=self._settings.max_workers,
                )
            except RunAbortedError as exc:
                report.sync_results = list(exc.partial_results)
                report.aborted = True
            finally:
                report.error_records.extend(reconciler.error_records)
                report.playlist_statistics = reconciler.statistics()
                report.timings["sync"] = time.perf_counter() - stage
        except OperationCancelledError as exc:
            LOGGER.warning("Run cancelled: %s", exc)
            report.cancelled = True
            if exc.partial_results and not report.sync_results:
                report.sync_results = list(exc.partial_results)

        return self._finish(report, classifier, started)

    @staticmethod
    def _finish(report: RunReport, classifier: ErrorClassifier, started: float) -> RunReport:
        report.error_summary = classifier.summarize(
            report.error_records,
            total_operations=len(report.sync_results) or None,
        )
        report.timings["total"] = time.perf_counter() - started
        log_batch_summary(report.error_summary)
        return report
