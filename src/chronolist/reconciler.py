"""Idempotent playlist create-or-update and batch synchronization."""

from __future__ import annotations

import datetime as dt
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Sequence

from .backend import PlaylistBackend
from .cancel import CancelToken, call_with_timeout, check_cancelled
from .classifier import UniverseProcessingResult
from .error_handling import ErrorClassifier
from .errors import InvalidInputError, OperationCancelledError, RunAbortedError
from .models import ErrorRecord, PlaylistRef, PlaylistStatistics, SyncAction, SyncResult
from .utils import is_blank

LOGGER = logging.getLogger(__name__)


class PlaylistReconciler:
    """Make a named playlist contain exactly a given ordered list of items.

    One reconciler belongs to one run. Writes to the same playlist name are
    serialized; distinct names may be written concurrently by
    :meth:`batch_create`.
    """

    def __init__(
        self,
        backend: PlaylistBackend,
        *,
        error_classifier: Optional[ErrorClassifier] = None,
        write_timeout: Optional[float] = None,
        dry_run: bool = False,
    ) -> None:
        self._backend = backend
        self._classifier = error_classifier or ErrorClassifier()
        self._write_timeout = write_timeout
        self._dry_run = dry_run
        self._name_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._state_lock = threading.Lock()
        self._playlist_counts: Dict[str, int] = {}
        self._last_updated: Optional[dt.datetime] = None
        self._records: List[ErrorRecord] = []

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    @property
    def error_records(self) -> List[ErrorRecord]:
        with self._state_lock:
            return list(self._records)

    def _lock_for(self, name: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._name_locks.get(name)
            if lock is None:
                lock = threading.Lock()
                self._name_locks[name] = lock
            return lock

    def _find_existing(self, name: str, owner_id: str) -> Optional[PlaylistRef]:
        playlists = call_with_timeout(
            self._backend.list_playlists,
            owner_id,
            timeout=self._write_timeout,
            operation=f"Listing playlists for owner {owner_id}",
        )
        matches = [playlist for playlist in playlists if playlist.name == name]
        if len(matches) > 1:
            LOGGER.warning(
                "Found %d playlists named '%s' for owner %s; updating %s",
                len(matches),
                name,
                owner_id,
                matches[0].playlist_id,
            )
        return matches[0] if matches else None

    def _record_write(self, playlist_id: str, count: int) -> None:
        with self._state_lock:
            self._playlist_counts[playlist_id] = count
            self._last_updated = dt.datetime.now(dt.timezone.utc)

    def create_or_update(
        self,
        name: str,
        ordered_ids: Optional[Sequence[str]],
        owner_id: str,
        *,
        missing_items: Iterable[str] = (),
        cancel_token: Optional[CancelToken] = None,
    ) -> SyncResult:
        """Create ``name`` for ``owner_id`` or replace its items with ``ordered_ids``.

        Running this repeatedly with the same arguments converges on one
        playlist holding ``ordered_ids`` in order. An empty list is skipped
        without touching the backend.

        Raises:
            InvalidInputError: ``ordered_ids`` is ``None`` or ``name``/``owner_id`` is blank.
            BackendTimeoutError: a backend call exceeded ``write_timeout``.
            OperationCancelledError: ``cancel_token`` fired before the write.
        """
        if ordered_ids is None:
            raise InvalidInputError(f"Item list for playlist '{name}' must not be None")
        if is_blank(name):
            raise InvalidInputError("Playlist name must not be blank")
        if is_blank(owner_id):
            raise InvalidInputError(f"Owner id for playlist '{name}' must not be blank")

        item_ids = list(ordered_ids)
        missing = list(missing_items)
        check_cancelled(cancel_token)

        if not item_ids:
            LOGGER.info("Skipping playlist '%s': no matched items", name)
            return SyncResult(
                playlist_name=name,
                action=SyncAction.SKIPPED,
                missing_items=missing,
                dry_run=self._dry_run,
            )

        with self._lock_for(name):
            existing = self._find_existing(name, owner_id)
            check_cancelled(cancel_token)

            if self._dry_run:
                verb = "update" if existing else "create"
                LOGGER.info("Dry-run: would %s playlist '%s' with %d items", verb, name, len(item_ids))
                return SyncResult(
                    playlist_name=name,
                    action=SyncAction.UPDATED if existing else SyncAction.CREATED,
                    playlist_id=existing.playlist_id if existing else None,
                    requested_count=len(item_ids),
                    final_count=len(item_ids),
                    missing_items=missing,
                    dry_run=True,
                )

            if existing is not None:
                final_count = call_with_timeout(
                    self._backend.replace_items,
                    existing.playlist_id,
                    owner_id,
                    item_ids,
                    timeout=self._write_timeout,
                    operation=f"Updating playlist '{name}'",
                )
                playlist_id = existing.playlist_id
                action = SyncAction.UPDATED
            else:
                playlist_id = call_with_timeout(
                    self._backend.create_playlist,
                    name,
                    owner_id,
                    item_ids,
                    timeout=self._write_timeout,
                    operation=f"Creating playlist '{name}'",
                )
                final_count = len(item_ids)
                action = SyncAction.CREATED

        if final_count is None:
            final_count = len(item_ids)
        self._record_write(playlist_id, final_count)
        LOGGER.info("%s playlist '%s' (%s) with %d items", action.value.title(), name, playlist_id, final_count)
        return SyncResult(
            playlist_name=name,
            action=action,
            playlist_id=playlist_id,
            requested_count=len(item_ids),
            final_count=final_count,
            missing_items=missing,
        )

    def _sync_universe(
        self,
        result: UniverseProcessingResult,
        owner_id: str,
        cancel_token: Optional[CancelToken],
    ) -> SyncResult:
        name = result.universe_name or result.universe_key
        context = {"universe": result.universe_key, "owner": owner_id}

        if not result.is_valid:
            record = self._classifier.invalid_input(name, result.validation.errors, context=context)
            with self._state_lock:
                self._records.append(record)
            return SyncResult(playlist_name=name, action=SyncAction.FAILED, error=record, dry_run=self._dry_run)

        item_ids = result.matched_ids
        missing = [entry.describe() for entry in result.missing_entries]
        try:
            return self.create_or_update(
                name,
                item_ids,
                owner_id,
                missing_items=missing,
                cancel_token=cancel_token,
            )
        except OperationCancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            record = self._classifier.classify(exc, playlist_name=name, context=context)
            with self._state_lock:
                self._records.append(record)
            return SyncResult(
                playlist_name=name,
                action=SyncAction.FAILED,
                requested_count=len(item_ids),
                missing_items=missing,
                error=record,
                dry_run=self._dry_run,
            )

    def _abort(self, playlist_name: str, record: ErrorRecord, completed: List[SyncResult]) -> RunAbortedError:
        LOGGER.error(
            "Aborting batch after '%s': %s. %s",
            playlist_name,
            record.message,
            record.recommendation,
        )
        return RunAbortedError(
            f"Batch aborted: {record.message}",
            record=record,
            partial_results=completed,
        )

    def batch_create(
        self,
        universe_results: Sequence[UniverseProcessingResult],
        owner_id: str,
        *,
        cancel_token: Optional[CancelToken] = None,
        max_workers: int = 1,
    ) -> List[SyncResult]:
        """Sync one playlist per processed universe, in input order.

        Failures are classified and recorded as ``FAILED`` results; the batch
        keeps going unless a fault is a critical system failure.

        Raises:
            RunAbortedError: a critical system failure stopped the batch.
            OperationCancelledError: ``cancel_token`` fired; carries completed results.
        """
        if max_workers <= 1 or len(universe_results) <= 1:
            return self._batch_sequential(universe_results, owner_id, cancel_token)
        return self._batch_concurrent(universe_results, owner_id, cancel_token, max_workers)

    def _batch_sequential(
        self,
        universe_results: Sequence[UniverseProcessingResult],
        owner_id: str,
        cancel_token: Optional[CancelToken],
    ) -> List[SyncResult]:
        completed: List[SyncResult] = []
        for universe_result in universe_results:
            check_cancelled(cancel_token, completed)
            try:
                sync_result = self._sync_universe(universe_result, owner_id, cancel_token)
            except OperationCancelledError as exc:
                raise OperationCancelledError(str(exc), partial_results=completed) from exc
            completed.append(sync_result)
            if sync_result.error is not None and not self._classifier.should_continue(sync_result.error):
                raise self._abort(sync_result.playlist_name, sync_result.error, completed)
        return completed

    def _batch_concurrent(
        self,
        universe_results: Sequence[UniverseProcessingResult],
        owner_id: str,
        cancel_token: Optional[CancelToken],
        max_workers: int,
    ) -> List[SyncResult]:
        cancelled: Optional[OperationCancelledError] = None
        failure: Optional[SyncResult] = None
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="chronolist-sync") as pool:
            futures: List[Future[SyncResult]] = []
            for universe_result in universe_results:
                futures.append(pool.submit(self._guarded_sync, universe_result, owner_id, cancel_token))

            for future in futures:
                try:
                    sync_result = future.result()
                except OperationCancelledError as exc:
                    cancelled = exc
                    break
                if sync_result.error is not None and not self._classifier.should_continue(sync_result.error):
                    failure = sync_result
                    break
            for pending in futures:
                pending.cancel()

        # The pool has drained: include workers that finished after the stop.
        completed = [
            future.result()
            for future in futures
            if not future.cancelled() and future.exception() is None
        ]
        if cancelled is not None:
            raise OperationCancelledError(str(cancelled), partial_results=completed) from cancelled
        if failure is not None and failure.error is not None:
            raise self._abort(failure.playlist_name, failure.error, completed)
        return completed

    def _guarded_sync(
        self,
        result: UniverseProcessingResult,
        owner_id: str,
        cancel_token: Optional[CancelToken],
    ) -> SyncResult:
        check_cancelled(cancel_token)
        return self._sync_universe(result, owner_id, cancel_token)

    def statistics(self) -> PlaylistStatistics:
        with self._state_lock:
            return PlaylistStatistics(
                total_playlists=len(self._playlist_counts),
                total_items=sum(self._playlist_counts.values()),
                last_updated=self._last_updated,
            )
