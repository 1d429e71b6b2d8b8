"""Validation and content-type analysis for universe timelines."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .cancel import CancelToken
from .models import ContentType, ContentTypeAnalysis, MatchResult, TimelineEntry, Universe, ValidationResult
from .provider_matcher import ProviderMatcher
from .utils import is_blank, normalize_provider

LOGGER = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = frozenset({"tmdb", "imdb"})


@dataclass(slots=True)
class UniverseProcessingResult:
    universe_key: str
    universe_name: str
    validation: ValidationResult
    analysis: ContentTypeAnalysis = field(default_factory=ContentTypeAnalysis)
    match: Optional[MatchResult] = None
    movie_ids: List[str] = field(default_factory=list)
    episode_ids: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.validation.is_valid

    @property
    def matched_ids(self) -> List[str]:
        return list(self.match.matched_ids) if self.match is not None else []

    @property
    def missing_entries(self) -> List[TimelineEntry]:
        return list(self.match.missing_entries) if self.match is not None else []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "universeKey": self.universe_key,
            "universeName": self.universe_name,
            "validation": self.validation.to_dict(),
            "analysis": self.analysis.to_dict(),
            "match": self.match.to_dict() if self.match is not None else None,
            "movieIds": list(self.movie_ids),
            "episodeIds": list(self.episode_ids),
        }


def _entry_errors(position: int, entry: Optional[TimelineEntry]) -> List[str]:
    if entry is None:
        return [f"Entry {position}: null timeline item found"]

    label = f"Entry {position} ({entry.provider_key})"
    errors: List[str] = []
    if is_blank(entry.provider_id):
        errors.append(f"{label}: missing provider id")
    if is_blank(entry.provider_name):
        errors.append(f"{label}: missing provider name")
    elif normalize_provider(entry.provider_name) not in SUPPORTED_PROVIDERS:
        errors.append(
            f"{label}: provider '{entry.provider_name}' is not supported "
            f"(expected one of: {', '.join(sorted(SUPPORTED_PROVIDERS))})"
        )
    if is_blank(entry.content_type):
        errors.append(f"{label}: missing content type")
    elif ContentType.parse(entry.content_type) is None:
        errors.append(
            f"{label}: unsupported content type '{entry.content_type}' "
            f"(expected one of: {', '.join(member.value for member in ContentType)})"
        )
    return errors


class ContentClassifier:
    """Validate a universe, describe its type mix and split its matches per type."""

    def __init__(self, matcher: ProviderMatcher) -> None:
        self._matcher = matcher

    def validate(self, entries: Optional[Sequence[Optional[TimelineEntry]]]) -> ValidationResult:
        if entries is None:
            return ValidationResult(is_valid=False, errors=["Timeline items are missing (null list)"])

        errors: List[str] = []
        for position, entry in enumerate(entries):
            errors.extend(_entry_errors(position, entry))

        analysis = self.analyze_types(entries)
        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            detected_types=sorted(analysis.type_counts),
            is_mixed=analysis.is_mixed,
        )

    def analyze_types(self, entries: Optional[Sequence[Optional[TimelineEntry]]]) -> ContentTypeAnalysis:
        counts: Dict[str, int] = {}
        for entry in entries or ():
            if entry is None or is_blank(entry.content_type):
                continue
            key = entry.content_type.strip().lower()
            counts[key] = counts.get(key, 0) + 1
        return ContentTypeAnalysis(type_counts=counts)

    def process_universe(
        self,
        universe: Universe,
        *,
        cancel_token: Optional[CancelToken] = None,
    ) -> UniverseProcessingResult:
        """Validate, analyze and match one universe.

        Invalid universes come back with the failed validation and no match;
        this method never raises for bad input. Cancellation still propagates.
        """
        validation = self.validate(universe.items)
        if not validation.is_valid:
            LOGGER.warning(
                "Universe %s failed validation with %d error(s)", universe.key, len(validation.errors)
            )
            return UniverseProcessingResult(
                universe_key=universe.key,
                universe_name=universe.name,
                validation=validation,
                analysis=self.analyze_types(universe.items),
            )

        analysis = self.analyze_types(universe.items)
        match = self._matcher.match_universe(universe, cancel_token=cancel_token)

        movie_ids: List[str] = []
        episode_ids: List[str] = []
        for entry, item_id in zip(match.matched_entries, match.matched_ids):
            content_type = ContentType.parse(entry.content_type)
            if content_type is ContentType.MOVIE:
                movie_ids.append(item_id)
            elif content_type is ContentType.EPISODE:
                episode_ids.append(item_id)

        if analysis.is_mixed:
            LOGGER.debug(
                "Universe %s mixes content types: %s",
                universe.key,
                ", ".join(f"{key}={pct}%" for key, pct in sorted(analysis.percentages().items())),
            )

        return UniverseProcessingResult(
            universe_key=universe.key,
            universe_name=universe.name,
            validation=validation,
            analysis=analysis,
            match=match,
            movie_ids=movie_ids,
            episode_ids=episode_ids,
        )
