"""In-memory lookup index over a library snapshot.

The index maps ``(content type, provider name, provider id)`` to a library
item id. It is built once per run and is read-only afterwards, so it can be
shared freely between threads.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Tuple

from .cancel import CancelToken, check_cancelled
from .logging_utils import render_fields_block
from .models import ContentType, LibraryItemRef, TimelineEntry
from .utils import is_blank, normalize_provider

LOGGER = logging.getLogger(__name__)

IndexKey = Tuple[ContentType, str, str]


@dataclass(slots=True)
class IndexCollision:
    key: IndexKey
    kept_item_id: str
    ignored_item_id: str

    def describe(self) -> str:
        content_type, provider, provider_id = self.key
        return (
            f"{content_type.value} {provider}:{provider_id} -> kept {self.kept_item_id}, "
            f"ignored {self.ignored_item_id}"
        )


@dataclass(slots=True)
class IndexStatistics:
    items_indexed: int = 0
    items_skipped: int = 0
    entries: int = 0
    per_provider: Dict[str, int] = field(default_factory=dict)
    collisions: list[IndexCollision] = field(default_factory=list)
    built_at: Optional[dt.datetime] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "itemsIndexed": self.items_indexed,
            "itemsSkipped": self.items_skipped,
            "entries": self.entries,
            "perProvider": dict(self.per_provider),
            "collisions": [collision.describe() for collision in self.collisions],
            "builtAt": self.built_at.isoformat() if self.built_at else None,
        }


class ContentIndex:
    """Read-only mapping of provider identities to library item ids.

    Use :meth:`build` to construct one; direct construction takes an already
    populated mapping and is mostly useful for tests.
    """

    __slots__ = ("_entries", "_statistics")

    def __init__(
        self,
        entries: Mapping[IndexKey, str],
        statistics: Optional[IndexStatistics] = None,
    ) -> None:
        self._entries: Mapping[IndexKey, str] = MappingProxyType(dict(entries))
        self._statistics = statistics or IndexStatistics(entries=len(self._entries))

    @classmethod
    def build(
        cls,
        library_items: Iterable[LibraryItemRef],
        *,
        cancel_token: Optional[CancelToken] = None,
    ) -> "ContentIndex":
        """Index every (provider, id) pair of every library item in one pass.

        Items without usable provider ids are counted as skipped. When two
        items claim the same key, the first one wins and the collision is
        logged and recorded in the statistics.

        Raises:
            OperationCancelledError: if ``cancel_token`` fires mid-build.
        """
        entries: Dict[IndexKey, str] = {}
        stats = IndexStatistics()

        for item in library_items:
            check_cancelled(cancel_token)
            if item is None or is_blank(item.item_id) or not isinstance(item.content_type, ContentType):
                stats.items_skipped += 1
                continue

            added = False
            for provider_name, provider_id in (item.provider_ids or {}).items():
                if is_blank(provider_name) or is_blank(provider_id):
                    continue
                key: IndexKey = (item.content_type, normalize_provider(provider_name), str(provider_id).strip())
                existing = entries.get(key)
                if existing is not None:
                    if existing != item.item_id:
                        collision = IndexCollision(key=key, kept_item_id=existing, ignored_item_id=item.item_id)
                        stats.collisions.append(collision)
                        LOGGER.warning("Index collision: %s", collision.describe())
                    continue
                entries[key] = item.item_id
                stats.per_provider[key[1]] = stats.per_provider.get(key[1], 0) + 1
                added = True

            if added:
                stats.items_indexed += 1
            else:
                stats.items_skipped += 1

        stats.entries = len(entries)
        stats.built_at = dt.datetime.now(dt.timezone.utc)

        if not entries:
            LOGGER.warning("Library index is empty; no timeline entries can be matched")
        else:
            LOGGER.info(
                render_fields_block(
                    "Library Index Built",
                    {
                        "Items indexed": stats.items_indexed,
                        "Items skipped": stats.items_skipped,
                        "Entries": stats.entries,
                        "Providers": ", ".join(
                            f"{name}={count}" for name, count in sorted(stats.per_provider.items())
                        ),
                        "Collisions": len(stats.collisions),
                    },
                    pad_top=False,
                )
            )
        return cls(entries, stats)

    @property
    def statistics(self) -> IndexStatistics:
        return self._statistics

    def lookup(
        self,
        provider_id: Optional[str],
        provider_name: Optional[str],
        content_type: object,
    ) -> Optional[str]:
        """Return the library item id for the identity, or ``None``.

        ``content_type`` may be a :class:`ContentType` or its string form in
        any case. Blank arguments and unknown types never match.
        """
        if is_blank(provider_id) or is_blank(provider_name):
            return None
        resolved = content_type if isinstance(content_type, ContentType) else ContentType.parse(content_type)
        if resolved is None:
            return None
        return self._entries.get((resolved, normalize_provider(provider_name), str(provider_id).strip()))

    def batch_lookup(self, entries: Iterable[Optional[TimelineEntry]]) -> Dict[TimelineEntry, str]:
        """Resolve many entries at once; unmatched entries are absent from the result."""
        results: Dict[TimelineEntry, str] = {}
        for entry in entries:
            if entry is None:
                continue
            item_id = self.lookup(entry.provider_id, entry.provider_name, entry.content_type)
            if item_id is not None:
                results[entry] = item_id
        return results

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
