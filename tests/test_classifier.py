from __future__ import annotations

import pytest

from chronolist.classifier import ContentClassifier
from chronolist.content_index import ContentIndex
from chronolist.models import ContentType, LibraryItemRef, TimelineEntry, Universe
from chronolist.provider_matcher import ProviderMatcher


def _make_entry(
    provider_id: str,
    provider_name: str = "tmdb",
    content_type: str = "movie",
    season: int | None = None,
) -> TimelineEntry:
    return TimelineEntry(
        provider_id=provider_id,
        provider_name=provider_name,
        content_type=content_type,
        season=season,
    )


@pytest.fixture
def classifier() -> ContentClassifier:
    items = [
        LibraryItemRef("m1", ContentType.MOVIE, "Movie One", {"Tmdb": "1"}),
        LibraryItemRef("m2", ContentType.MOVIE, "Movie Two", {"Tmdb": "2"}),
        LibraryItemRef("e1", ContentType.EPISODE, "Episode One", {"Tmdb": "100"}),
    ]
    return ContentClassifier(ProviderMatcher(ContentIndex.build(items)))


class TestValidate:
    def test_valid_entries(self, classifier: ContentClassifier) -> None:
        result = classifier.validate([_make_entry("1"), _make_entry("100", content_type="episode")])

        assert result.is_valid
        assert result.errors == []
        assert result.detected_types == ["episode", "movie"]
        assert result.is_mixed

    def test_none_list_is_invalid(self, classifier: ContentClassifier) -> None:
        result = classifier.validate(None)

        assert not result.is_valid
        assert result.errors

    def test_empty_list_is_valid(self, classifier: ContentClassifier) -> None:
        result = classifier.validate([])

        assert result.is_valid
        assert not result.is_mixed

    def test_reports_each_problem_with_position(self, classifier: ContentClassifier) -> None:
        entries = [
            None,
            _make_entry(""),
            _make_entry("1", provider_name="tvdb"),
            _make_entry("1", content_type="series"),
            _make_entry("1", content_type=""),
        ]

        result = classifier.validate(entries)

        assert not result.is_valid
        assert len(result.errors) == 5
        assert result.errors[0].startswith("Entry 0")
        assert "null" in result.errors[0]
        assert "missing provider id" in result.errors[1]
        assert "tvdb" in result.errors[2]
        assert "series" in result.errors[3]
        assert "missing content type" in result.errors[4]
        assert "tmdb_1" in result.errors[3]

    def test_provider_and_type_are_case_insensitive(self, classifier: ContentClassifier) -> None:
        assert classifier.validate([_make_entry("1", provider_name="IMDB", content_type="Movie")]).is_valid


class TestAnalyzeTypes:
    def test_counts_case_insensitively(self, classifier: ContentClassifier) -> None:
        analysis = classifier.analyze_types(
            [_make_entry("1"), _make_entry("2", content_type="MOVIE"), _make_entry("3", content_type="Episode")]
        )

        assert analysis.type_counts == {"movie": 2, "episode": 1}
        assert analysis.total_items == 3
        assert analysis.movie_count == 2
        assert analysis.episode_count == 1
        assert analysis.other_count == 0
        assert analysis.is_mixed
        assert analysis.percentages() == {"movie": pytest.approx(66.67), "episode": pytest.approx(33.33)}

    def test_single_type_is_not_mixed(self, classifier: ContentClassifier) -> None:
        assert not classifier.analyze_types([_make_entry("1"), _make_entry("2")]).is_mixed
        assert not classifier.analyze_types([]).is_mixed

    def test_skips_none_and_blank_types(self, classifier: ContentClassifier) -> None:
        analysis = classifier.analyze_types([None, _make_entry("1", content_type=" "), _make_entry("2")])

        assert analysis.type_counts == {"movie": 1}
        assert not analysis.is_mixed

    def test_unknown_types_count_as_other(self, classifier: ContentClassifier) -> None:
        analysis = classifier.analyze_types([_make_entry("1"), _make_entry("2", content_type="special")])

        assert analysis.other_count == 1
        assert analysis.is_mixed

    def test_none_list(self, classifier: ContentClassifier) -> None:
        assert classifier.analyze_types(None).total_items == 0


class TestProcessUniverse:
    def test_splits_matches_per_type_in_order(self, classifier: ContentClassifier) -> None:
        universe = Universe(
            key="saga",
            name="The Saga",
            items=[
                _make_entry("2"),
                _make_entry("100", content_type="episode", season=1),
                _make_entry("404"),
                _make_entry("1"),
            ],
        )

        result = classifier.process_universe(universe)

        assert result.is_valid
        assert result.match is not None
        assert result.matched_ids == ["m2", "e1", "m1"]
        assert result.movie_ids == ["m2", "m1"]
        assert result.episode_ids == ["e1"]
        assert result.analysis.is_mixed
        assert [entry.describe() for entry in result.missing_entries] == ["movie - tmdb:404"]

    def test_invalid_universe_returns_failed_validation(self, classifier: ContentClassifier) -> None:
        universe = Universe(key="broken", name="Broken", items=None)

        result = classifier.process_universe(universe)

        assert not result.is_valid
        assert result.universe_key == "broken"
        assert result.universe_name == "Broken"
        assert result.match is None
        assert result.matched_ids == []

    def test_to_dict(self, classifier: ContentClassifier) -> None:
        result = classifier.process_universe(Universe(key="k", name="K", items=[_make_entry("1")]))

        payload = result.to_dict()

        assert payload["universeKey"] == "k"
        assert payload["match"]["matchedIds"] == ["m1"]
        assert payload["validation"]["isValid"] is True
