from __future__ import annotations

import logging
from typing import Iterable, Optional

from .cancel import CancelToken, check_cancelled
from .content_index import ContentIndex
from .models import MatchResult, TimelineEntry, Universe

LOGGER = logging.getLogger(__name__)


class ProviderMatcher:
    """Resolve declared timeline entries against a :class:`ContentIndex`.

    Matching never reorders: ``matched_ids`` is always the subsequence of the
    declared entries that resolved.
    """

    def __init__(self, index: ContentIndex) -> None:
        self._index = index

    @property
    def index(self) -> ContentIndex:
        return self._index

    def match_entry(self, entry: Optional[TimelineEntry]) -> Optional[str]:
        if entry is None:
            LOGGER.warning("Skipping empty timeline entry")
            return None
        if not entry.is_complete:
            LOGGER.warning("Skipping malformed timeline entry %s", entry.provider_key)
            return None
        return self._index.lookup(entry.provider_id, entry.provider_name, entry.content_type)

    def match_all(
        self,
        entries: Optional[Iterable[Optional[TimelineEntry]]],
        *,
        universe_key: str = "",
        universe_name: str = "",
        cancel_token: Optional[CancelToken] = None,
    ) -> MatchResult:
        result = MatchResult(universe_key=universe_key, universe_name=universe_name)
        for entry in entries or ():
            check_cancelled(cancel_token)
            if entry is None:
                continue
            item_id = self.match_entry(entry)
            if item_id is None:
                result.missing.append(entry.provider_key)
                result.missing_entries.append(entry)
                LOGGER.debug("No library match for %s in %s", entry.provider_key, universe_key or "(unnamed)")
                continue
            result.matched_ids.append(item_id)
            result.matched_entries.append(entry)

        LOGGER.debug(
            "Matched %d/%d entries for %s (%.1f%%)",
            result.matched_count,
            result.total,
            universe_key or "(unnamed)",
            result.matching_rate,
        )
        return result

    def match_universe(self, universe: Universe, *, cancel_token: Optional[CancelToken] = None) -> MatchResult:
        return self.match_all(
            universe.items,
            universe_key=universe.key,
            universe_name=universe.name,
            cancel_token=cancel_token,
        )
