from __future__ import annotations

import logging

import pytest

from chronolist.cancel import CancelToken
from chronolist.content_index import ContentIndex
from chronolist.errors import OperationCancelledError
from chronolist.models import ContentType, LibraryItemRef, TimelineEntry


def _make_item(item_id: str, content_type: ContentType = ContentType.MOVIE, **provider_ids: str) -> LibraryItemRef:
    return LibraryItemRef(item_id=item_id, content_type=content_type, name=item_id, provider_ids=dict(provider_ids))


def _make_entry(provider_id: str, provider_name: str = "tmdb", content_type: str = "movie") -> TimelineEntry:
    return TimelineEntry(provider_id=provider_id, provider_name=provider_name, content_type=content_type)


class TestBuild:
    def test_indexes_every_provider_pair(self) -> None:
        index = ContentIndex.build([_make_item("a", Tmdb="1", Imdb="tt1")])

        assert len(index) == 2
        assert (ContentType.MOVIE, "tmdb", "1") in index
        assert (ContentType.MOVIE, "imdb", "tt1") in index

    def test_items_without_provider_ids_are_skipped(self) -> None:
        index = ContentIndex.build([_make_item("a"), _make_item("b", Tmdb="2"), _make_item("c", Tmdb="  ")])

        stats = index.statistics
        assert stats.items_indexed == 1
        assert stats.items_skipped == 2
        assert stats.entries == 1
        assert stats.per_provider == {"tmdb": 1}
        assert stats.built_at is not None

    def test_empty_library_warns(self, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="chronolist.content_index"):
            index = ContentIndex.build([])

        assert len(index) == 0
        assert "empty" in caplog.text

    def test_collision_is_first_wins_and_recorded(self, caplog) -> None:
        items = [_make_item("first", Tmdb="42"), _make_item("second", Tmdb="42")]

        with caplog.at_level(logging.WARNING, logger="chronolist.content_index"):
            index = ContentIndex.build(items)

        assert index.lookup("42", "tmdb", "movie") == "first"
        assert len(index.statistics.collisions) == 1
        collision = index.statistics.collisions[0]
        assert collision.kept_item_id == "first"
        assert collision.ignored_item_id == "second"
        assert "collision" in caplog.text.lower()

    def test_same_id_different_type_does_not_collide(self) -> None:
        index = ContentIndex.build(
            [_make_item("movie", ContentType.MOVIE, Tmdb="7"), _make_item("ep", ContentType.EPISODE, Tmdb="7")]
        )

        assert index.lookup("7", "tmdb", "movie") == "movie"
        assert index.lookup("7", "tmdb", "episode") == "ep"
        assert index.statistics.collisions == []

    def test_cancellation_stops_build(self) -> None:
        token = CancelToken()
        token.cancel()

        with pytest.raises(OperationCancelledError):
            ContentIndex.build([_make_item("a", Tmdb="1")], cancel_token=token)

    def test_statistics_to_dict(self) -> None:
        index = ContentIndex.build([_make_item("a", Tmdb="1")])

        payload = index.statistics.to_dict()

        assert payload["itemsIndexed"] == 1
        assert payload["perProvider"] == {"tmdb": 1}


class TestLookup:
    def test_provider_name_is_case_insensitive(self) -> None:
        index = ContentIndex.build([_make_item("a", TMDB="299537")])

        assert index.lookup("299537", "tmdb", "movie") == "a"
        assert index.lookup("299537", "Tmdb", "MOVIE") == "a"
        assert index.lookup("299537", "tmdb", ContentType.MOVIE) == "a"

    def test_blank_or_unknown_arguments_return_none(self) -> None:
        index = ContentIndex.build([_make_item("a", Tmdb="1")])

        assert index.lookup("", "tmdb", "movie") is None
        assert index.lookup("1", "", "movie") is None
        assert index.lookup(None, "tmdb", "movie") is None
        assert index.lookup("1", "tmdb", "series") is None
        assert index.lookup("1", "tmdb", None) is None

    def test_unknown_id_returns_none(self) -> None:
        index = ContentIndex.build([_make_item("a", Tmdb="1")])

        assert index.lookup("2", "tmdb", "movie") is None


class TestBatchLookup:
    def test_agrees_with_single_lookup(self) -> None:
        index = ContentIndex.build(
            [
                _make_item("m1", Tmdb="1"),
                _make_item("e1", ContentType.EPISODE, Imdb="tt9"),
            ]
        )
        entries = [
            _make_entry("1"),
            _make_entry("tt9", "imdb", "episode"),
            _make_entry("404"),
            _make_entry("", "tmdb", "movie"),
            _make_entry("1", "tmdb", "unknown"),
        ]

        batch = index.batch_lookup(entries)

        for entry in entries:
            assert batch.get(entry) == index.lookup(entry.provider_id, entry.provider_name, entry.content_type)
        assert batch == {entries[0]: "m1", entries[1]: "e1"}

    def test_skips_none_entries(self) -> None:
        index = ContentIndex.build([_make_item("m1", Tmdb="1")])

        assert index.batch_lookup([None, _make_entry("1")]) == {_make_entry("1"): "m1"}
