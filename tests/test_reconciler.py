from __future__ import annotations

import threading
import time
from typing import List, Sequence

import pytest

from chronolist.backend import InMemoryPlaylistBackend
from chronolist.cancel import CancelToken
from chronolist.classifier import UniverseProcessingResult
from chronolist.errors import (
    BackendTimeoutError,
    BackendUnavailableError,
    InvalidInputError,
    OperationCancelledError,
    PermissionDeniedError,
    RunAbortedError,
)
from chronolist.models import (
    ErrorCategory,
    MatchResult,
    PlaylistRef,
    SyncAction,
    TimelineEntry,
    ValidationResult,
)
from chronolist.reconciler import PlaylistReconciler

OWNER = "user-1"


def _make_result(
    name: str,
    matched_ids: Sequence[str],
    *,
    valid: bool = True,
    missing: Sequence[TimelineEntry] = (),
) -> UniverseProcessingResult:
    if not valid:
        return UniverseProcessingResult(
            universe_key=name.lower(),
            universe_name=name,
            validation=ValidationResult(is_valid=False, errors=["Entry 0: null timeline item found"]),
        )
    match = MatchResult(
        universe_key=name.lower(),
        universe_name=name,
        matched_ids=list(matched_ids),
        missing=[entry.provider_key for entry in missing],
        missing_entries=list(missing),
    )
    return UniverseProcessingResult(
        universe_key=name.lower(),
        universe_name=name,
        validation=ValidationResult(),
        match=match,
    )


class FailingBackend(InMemoryPlaylistBackend):
    """In-memory backend that raises a configured error for chosen playlist names."""

    def __init__(self, failures: dict[str, Exception]) -> None:
        super().__init__()
        self.failures = failures

    def create_playlist(self, name: str, owner_id: str, item_ids: Sequence[str]) -> str:
        if name in self.failures:
            raise self.failures[name]
        return super().create_playlist(name, owner_id, item_ids)


class SlowBackend(InMemoryPlaylistBackend):
    def list_playlists(self, owner_id: str) -> List[PlaylistRef]:
        time.sleep(0.5)
        return super().list_playlists(owner_id)


class TestCreateOrUpdate:
    def test_creates_then_updates_without_duplicates(self) -> None:
        backend = InMemoryPlaylistBackend()
        reconciler = PlaylistReconciler(backend)

        results = [reconciler.create_or_update("MCU", ["a", "b", "c"], OWNER) for _ in range(3)]

        assert [result.action for result in results] == [SyncAction.CREATED, SyncAction.UPDATED, SyncAction.UPDATED]
        assert {result.final_count for result in results} == {3}
        assert len(backend.playlists_named("MCU", OWNER)) == 1
        assert backend.get_items(results[0].playlist_id) == ["a", "b", "c"]

    def test_update_replaces_membership_in_order(self) -> None:
        backend = InMemoryPlaylistBackend()
        reconciler = PlaylistReconciler(backend)
        created = reconciler.create_or_update("MCU", ["a", "b"], OWNER)

        updated = reconciler.create_or_update("MCU", ["c", "a"], OWNER)

        assert updated.playlist_id == created.playlist_id
        assert backend.get_items(created.playlist_id) == ["c", "a"]

    def test_empty_list_is_skipped(self) -> None:
        backend = InMemoryPlaylistBackend()
        reconciler = PlaylistReconciler(backend)

        result = reconciler.create_or_update("Empty", [], OWNER)

        assert result.action is SyncAction.SKIPPED
        assert result.final_count == 0
        assert backend.list_playlists(OWNER) == []

    def test_single_item(self) -> None:
        result = PlaylistReconciler(InMemoryPlaylistBackend()).create_or_update("One", ["x"], OWNER)

        assert result.final_count == 1

    def test_none_list_is_rejected(self) -> None:
        with pytest.raises(InvalidInputError):
            PlaylistReconciler(InMemoryPlaylistBackend()).create_or_update("MCU", None, OWNER)

    @pytest.mark.parametrize("name", ["", "   "])
    def test_blank_name_is_rejected(self, name: str) -> None:
        with pytest.raises(InvalidInputError):
            PlaylistReconciler(InMemoryPlaylistBackend()).create_or_update(name, ["a"], OWNER)

    def test_playlists_are_scoped_per_owner(self) -> None:
        backend = InMemoryPlaylistBackend()
        reconciler = PlaylistReconciler(backend)

        first = reconciler.create_or_update("MCU", ["a"], "alice")
        second = reconciler.create_or_update("MCU", ["a"], "bob")

        assert first.action is SyncAction.CREATED
        assert second.action is SyncAction.CREATED
        assert first.playlist_id != second.playlist_id

    def test_dry_run_touches_nothing(self) -> None:
        backend = InMemoryPlaylistBackend()
        reconciler = PlaylistReconciler(backend, dry_run=True)

        result = reconciler.create_or_update("MCU", ["a", "b"], OWNER)

        assert result.dry_run
        assert result.action is SyncAction.CREATED
        assert result.playlist_id is None
        assert backend.list_playlists(OWNER) == []
        assert reconciler.statistics().total_playlists == 0

    def test_write_timeout_raises(self) -> None:
        reconciler = PlaylistReconciler(SlowBackend(), write_timeout=0.05)

        with pytest.raises(BackendTimeoutError):
            reconciler.create_or_update("Slow", ["a"], OWNER)

    def test_cancelled_token_prevents_write(self) -> None:
        backend = InMemoryPlaylistBackend()
        token = CancelToken()
        token.cancel()

        with pytest.raises(OperationCancelledError):
            PlaylistReconciler(backend).create_or_update("MCU", ["a"], OWNER, cancel_token=token)
        assert backend.list_playlists(OWNER) == []

    def test_concurrent_writes_to_same_name_do_not_duplicate(self) -> None:
        backend = InMemoryPlaylistBackend()
        reconciler = PlaylistReconciler(backend)
        threads = [
            threading.Thread(target=reconciler.create_or_update, args=("Shared", ["a", "b"], OWNER))
            for _ in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(backend.playlists_named("Shared", OWNER)) == 1


class TestBatchCreate:
    def test_one_result_per_input_in_order(self) -> None:
        backend = InMemoryPlaylistBackend()
        reconciler = PlaylistReconciler(backend)
        missing = TimelineEntry("299537", "tmdb", "movie")

        results = reconciler.batch_create(
            [
                _make_result("Alpha", ["a"]),
                _make_result("Empty", []),
                _make_result("Broken", [], valid=False),
                _make_result("Beta", ["b", "c"], missing=[missing]),
            ],
            OWNER,
        )

        assert [result.playlist_name for result in results] == ["Alpha", "Empty", "Broken", "Beta"]
        assert [result.action for result in results] == [
            SyncAction.CREATED,
            SyncAction.SKIPPED,
            SyncAction.FAILED,
            SyncAction.CREATED,
        ]
        assert results[2].error is not None
        assert results[2].error.category is ErrorCategory.INVALID_INPUT
        assert results[3].missing_items == ["movie - tmdb:299537"]

    def test_failure_does_not_stop_batch(self) -> None:
        backend = FailingBackend({"Beta": PermissionDeniedError("forbidden", status_code=403)})
        reconciler = PlaylistReconciler(backend)

        results = reconciler.batch_create(
            [_make_result("Alpha", ["a"]), _make_result("Beta", ["b"]), _make_result("Gamma", ["c"])],
            OWNER,
        )

        assert [result.action for result in results] == [SyncAction.CREATED, SyncAction.FAILED, SyncAction.CREATED]
        assert results[1].error.category is ErrorCategory.PERMISSION_DENIED
        assert "Beta" in results[1].error.message
        assert len(reconciler.error_records) == 1

    def test_non_total_backend_failure_continues(self) -> None:
        backend = FailingBackend({"Alpha": BackendUnavailableError("502 bad gateway", status_code=502)})
        reconciler = PlaylistReconciler(backend)

        results = reconciler.batch_create([_make_result("Alpha", ["a"]), _make_result("Beta", ["b"])], OWNER)

        assert results[0].error.category is ErrorCategory.INVALID_STATE
        assert results[1].action is SyncAction.CREATED

    def test_system_failure_aborts_with_partial_results(self) -> None:
        backend = FailingBackend({"Beta": BackendUnavailableError("connection refused", total_loss=True)})
        reconciler = PlaylistReconciler(backend)

        with pytest.raises(RunAbortedError) as excinfo:
            reconciler.batch_create(
                [_make_result("Alpha", ["a"]), _make_result("Beta", ["b"]), _make_result("Gamma", ["c"])],
                OWNER,
            )

        partial = excinfo.value.partial_results
        assert [result.playlist_name for result in partial] == ["Alpha", "Beta"]
        assert excinfo.value.record.category is ErrorCategory.SYSTEM_FAILURE
        assert backend.playlists_named("Gamma", OWNER) == []

    def test_cancellation_keeps_completed_results(self) -> None:
        backend = InMemoryPlaylistBackend()
        token = CancelToken()

        class CancelAfterFirst(InMemoryPlaylistBackend):
            def create_playlist(self, name: str, owner_id: str, item_ids: Sequence[str]) -> str:
                playlist_id = backend.create_playlist(name, owner_id, item_ids)
                token.cancel("test")
                return playlist_id

            def list_playlists(self, owner_id: str) -> List[PlaylistRef]:
                return backend.list_playlists(owner_id)

        reconciler = PlaylistReconciler(CancelAfterFirst())

        with pytest.raises(OperationCancelledError) as excinfo:
            reconciler.batch_create(
                [_make_result("Alpha", ["a"]), _make_result("Beta", ["b"])],
                OWNER,
                cancel_token=token,
            )

        assert [result.playlist_name for result in excinfo.value.partial_results] == ["Alpha"]
        assert len(backend.playlists_named("Alpha", OWNER)) == 1
        assert backend.playlists_named("Beta", OWNER) == []

    def test_concurrent_batch_preserves_order(self) -> None:
        backend = InMemoryPlaylistBackend()
        reconciler = PlaylistReconciler(backend)
        inputs = [_make_result(f"List {index}", [f"item-{index}"]) for index in range(6)]

        results = reconciler.batch_create(inputs, OWNER, max_workers=3)

        assert [result.playlist_name for result in results] == [f"List {index}" for index in range(6)]
        assert all(result.action is SyncAction.CREATED for result in results)

    def test_concurrent_abort_reports_playlists_written_by_other_workers(self) -> None:
        class DelayedOutage(InMemoryPlaylistBackend):
            def create_playlist(self, name: str, owner_id: str, item_ids: Sequence[str]) -> str:
                if name == "Alpha":
                    time.sleep(0.3)
                    raise BackendUnavailableError("connection refused", total_loss=True)
                return super().create_playlist(name, owner_id, item_ids)

        backend = DelayedOutage()
        reconciler = PlaylistReconciler(backend)

        with pytest.raises(RunAbortedError) as excinfo:
            reconciler.batch_create([_make_result("Alpha", ["a"]), _make_result("Beta", ["b"])], OWNER, max_workers=2)

        partial = excinfo.value.partial_results
        assert [result.playlist_name for result in partial] == ["Alpha", "Beta"]
        assert partial[1].action is SyncAction.CREATED
        assert len(backend.playlists_named("Beta", OWNER)) == 1

    def test_statistics(self) -> None:
        reconciler = PlaylistReconciler(InMemoryPlaylistBackend())
        assert reconciler.statistics().last_updated is None

        reconciler.batch_create([_make_result("Alpha", ["a", "b"]), _make_result("Beta", ["c"])], OWNER)
        reconciler.create_or_update("Alpha", ["a", "b", "d"], OWNER)

        stats = reconciler.statistics()
        assert stats.total_playlists == 2
        assert stats.total_items == 4
        assert stats.last_updated is not None
