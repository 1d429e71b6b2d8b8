"""Library source and playlist backend contracts plus offline implementations."""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, runtime_checkable

from .errors import InvalidInputError, ItemNotFoundError
from .models import ContentType, LibraryItemRef, PlaylistRef
from .utils import is_blank, load_yaml_file

LOGGER = logging.getLogger(__name__)


@runtime_checkable
class LibrarySource(Protocol):
    def fetch_library_items(self) -> Iterable[LibraryItemRef]:
        ...


@runtime_checkable
class PlaylistBackend(Protocol):
    def list_playlists(self, owner_id: str) -> List[PlaylistRef]:
        ...

    def create_playlist(self, name: str, owner_id: str, item_ids: Sequence[str]) -> str:
        ...

    def replace_items(self, playlist_id: str, owner_id: str, item_ids: Sequence[str]) -> int:
        ...


@dataclass(slots=True)
class _StoredPlaylist:
    playlist_id: str
    name: str
    owner_id: str
    item_ids: List[str] = field(default_factory=list)


class InMemoryPlaylistBackend:
    """Thread-safe dict-backed playlist store used for dry runs and tests."""

    def __init__(self) -> None:
        self._playlists: Dict[str, _StoredPlaylist] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def list_playlists(self, owner_id: str) -> List[PlaylistRef]:
        with self._lock:
            return [
                PlaylistRef(
                    playlist_id=stored.playlist_id,
                    name=stored.name,
                    owner_id=stored.owner_id,
                    item_count=len(stored.item_ids),
                )
                for stored in self._playlists.values()
                if stored.owner_id == owner_id
            ]

    def create_playlist(self, name: str, owner_id: str, item_ids: Sequence[str]) -> str:
        with self._lock:
            playlist_id = f"playlist-{next(self._ids)}"
            self._playlists[playlist_id] = _StoredPlaylist(
                playlist_id=playlist_id,
                name=name,
                owner_id=owner_id,
                item_ids=list(item_ids),
            )
        LOGGER.debug("Created in-memory playlist %s (%s) with %d items", name, playlist_id, len(item_ids))
        return playlist_id

    def replace_items(self, playlist_id: str, owner_id: str, item_ids: Sequence[str]) -> int:
        with self._lock:
            stored = self._playlists.get(playlist_id)
            if stored is None or stored.owner_id != owner_id:
                raise ItemNotFoundError(f"Playlist {playlist_id} not found for owner {owner_id}", status_code=404)
            stored.item_ids = list(item_ids)
            return len(stored.item_ids)

    def get_items(self, playlist_id: str) -> List[str]:
        with self._lock:
            stored = self._playlists.get(playlist_id)
            if stored is None:
                raise ItemNotFoundError(f"Playlist {playlist_id} not found", status_code=404)
            return list(stored.item_ids)

    def playlists_named(self, name: str, owner_id: str) -> List[PlaylistRef]:
        return [playlist for playlist in self.list_playlists(owner_id) if playlist.name == name]


class SnapshotLibrarySource:
    """Library source backed by an exported YAML/JSON file."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def fetch_library_items(self) -> List[LibraryItemRef]:
        return load_library_snapshot(self._path)


def _build_library_item(raw: object, position: int) -> Optional[LibraryItemRef]:
    if not isinstance(raw, dict):
        LOGGER.warning("Ignoring library entry %d: expected a mapping", position)
        return None
    item_id = raw.get("id") or raw.get("Id")
    content_type = ContentType.parse(raw.get("type") or raw.get("Type"))
    if is_blank(item_id) or content_type is None:
        LOGGER.warning("Ignoring library entry %d: missing id or unsupported type", position)
        return None
    provider_ids = raw.get("providerIds") or raw.get("ProviderIds") or {}
    if not isinstance(provider_ids, dict):
        provider_ids = {}
    return LibraryItemRef(
        item_id=str(item_id),
        content_type=content_type,
        name=str(raw.get("name") or raw.get("Name") or ""),
        provider_ids={str(key): str(value) for key, value in provider_ids.items() if value is not None},
    )


def load_library_snapshot(path: Path) -> List[LibraryItemRef]:
    """Read a library export: a list of ``{id, type, name, providerIds}`` mappings.

    The list may also sit under an ``items`` key. Unusable entries are logged
    and skipped.
    """
    if not path.exists():
        raise InvalidInputError(f"Library snapshot not found: {path}")
    data = load_yaml_file(path)
    if isinstance(data, dict):
        data = data.get("items", [])
    if not isinstance(data, list):
        raise InvalidInputError(f"Library snapshot {path} must contain a list of items")

    items: List[LibraryItemRef] = []
    for position, raw in enumerate(data):
        item = _build_library_item(raw, position)
        if item is not None:
            items.append(item)
    LOGGER.debug("Loaded %d library items from %s", len(items), path)
    return items
