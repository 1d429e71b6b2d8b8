from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterator, List, Optional, Sequence
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .errors import (
    BackendError,
    BackendTimeoutError,
    BackendUnavailableError,
    ItemNotFoundError,
    PermissionDeniedError,
)
from .models import ContentType, LibraryItemRef, PlaylistRef
from .utils import chunked, validate_url

LOGGER = logging.getLogger(__name__)

JELLYFIN_TYPES = {"Movie": ContentType.MOVIE, "Episode": ContentType.EPISODE}

DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_FACTOR = 0.5
DEFAULT_PAGE_SIZE = 500
# Ids per playlist write request.
DEFAULT_CHUNK_SIZE = 100
RETRY_STATUS_CODES = frozenset({500, 502, 503, 504, 429})


def _build_url(base_url: str, path: str) -> str:
    return urljoin(base_url.rstrip("/") + "/", path.lstrip("/"))


def _sanitize_url_for_logging(url: str) -> str:
    """Remove api_key query parameters from a URL before it is logged."""
    return re.sub(r"(?i)([?&])api_key=[^&]*&?", r"\1", url).rstrip("?&")


def _parse_json_response(response: requests.Response) -> Dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as exc:
        snippet = response.text[:500]
        raise BackendError(
            f"Failed to parse Jellyfin response as JSON ({response.status_code}): {snippet}",
            status_code=response.status_code,
        ) from exc
    return payload if isinstance(payload, dict) else {}


def _error_for_status(status_code: int, snippet: str) -> BackendError:
    message = f"Jellyfin request failed ({status_code}): {snippet}"
    if status_code in (401, 403):
        return PermissionDeniedError(message, status_code=status_code)
    if status_code == 404:
        return ItemNotFoundError(message, status_code=status_code)
    if status_code >= 500:
        return BackendUnavailableError(message, status_code=status_code)
    return BackendError(message, status_code=status_code)


class JellyfinClient:
    """Thin wrapper around the Jellyfin endpoints needed to sync playlists.

    Serves as both the library source (movies and episodes with their
    provider ids) and the playlist backend. The API key travels in the
    ``X-Emby-Token`` header, never in query strings.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        user_id: Optional[str] = None,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
        max_retries: int = DEFAULT_RETRIES,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        page_size: int = DEFAULT_PAGE_SIZE,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        if not validate_url(base_url):
            raise BackendError(f"Invalid Jellyfin URL: {base_url}")

        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.user_id = user_id
        self.timeout = timeout
        self.page_size = page_size
        self.chunk_size = chunk_size

        self.session = session or requests.Session()
        if session is None:
            retry_strategy = Retry(
                total=max_retries,
                backoff_factor=backoff_factor,
                status_forcelist=list(RETRY_STATUS_CODES),
                allowed_methods=["GET", "POST", "DELETE"],
                raise_on_status=False,
            )
            adapter = HTTPAdapter(max_retries=retry_strategy, pool_maxsize=10)
            self.session.mount("http://", adapter)
            self.session.mount("https://", adapter)

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        url = _build_url(self.base_url, path)
        headers = {
            "Accept": "application/json",
            "X-Emby-Token": self.api_key,
        }
        LOGGER.debug("Jellyfin %s %s", method.upper(), _sanitize_url_for_logging(url))

        try:
            response = self.session.request(
                method,
                url,
                params=dict(params or {}),
                json=json,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise BackendTimeoutError(f"Jellyfin request timed out: {exc}", timeout=self.timeout) from exc
        except requests.ConnectionError as exc:
            raise BackendUnavailableError(f"Jellyfin is unreachable: {exc}", total_loss=True) from exc
        except requests.RequestException as exc:
            raise BackendError(f"Jellyfin request failed: {exc}") from exc

        if response.status_code >= 400:
            raise _error_for_status(response.status_code, response.text[:200])
        return response

    def _iter_items(self, params: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        start = 0
        while True:
            page_params = dict(params, StartIndex=start, Limit=self.page_size)
            payload = _parse_json_response(self._request("GET", "/Items", params=page_params))
            items = payload.get("Items") or []
            yield from items
            start += len(items)
            total = payload.get("TotalRecordCount")
            if not items or (isinstance(total, int) and start >= total):
                break

    def fetch_library_items(self) -> Iterator[LibraryItemRef]:
        params: Dict[str, Any] = {
            "Recursive": "true",
            "IncludeItemTypes": ",".join(JELLYFIN_TYPES),
            "Fields": "ProviderIds",
        }
        if self.user_id:
            params["userId"] = self.user_id
        for raw in self._iter_items(params):
            content_type = JELLYFIN_TYPES.get(str(raw.get("Type")))
            item_id = raw.get("Id")
            if content_type is None or not item_id:
                continue
            provider_ids = raw.get("ProviderIds") or {}
            yield LibraryItemRef(
                item_id=str(item_id),
                content_type=content_type,
                name=str(raw.get("Name") or ""),
                provider_ids={str(key): str(value) for key, value in provider_ids.items() if value},
            )

    def list_playlists(self, owner_id: str) -> List[PlaylistRef]:
        params = {
            "Recursive": "true",
            "IncludeItemTypes": "Playlist",
            "Fields": "ChildCount",
            "userId": owner_id,
        }
        playlists: List[PlaylistRef] = []
        for raw in self._iter_items(params):
            playlist_id = raw.get("Id")
            name = raw.get("Name")
            if not playlist_id or name is None:
                continue
            playlists.append(
                PlaylistRef(
                    playlist_id=str(playlist_id),
                    name=str(name),
                    owner_id=owner_id,
                    item_count=int(raw.get("ChildCount") or 0),
                )
            )
        return playlists

    def create_playlist(self, name: str, owner_id: str, item_ids: Sequence[str]) -> str:
        body = {"Name": name, "Ids": list(item_ids), "UserId": owner_id, "MediaType": "Video"}
        payload = _parse_json_response(self._request("POST", "/Playlists", json=body))
        playlist_id = payload.get("Id")
        if not playlist_id:
            raise BackendError(f"Jellyfin did not return an id for playlist '{name}'")
        return str(playlist_id)

    def playlist_entries(self, playlist_id: str, owner_id: str) -> List[Dict[str, Any]]:
        response = self._request("GET", f"/Playlists/{playlist_id}/Items", params={"userId": owner_id})
        return list(_parse_json_response(response).get("Items") or [])

    def replace_items(self, playlist_id: str, owner_id: str, item_ids: Sequence[str]) -> int:
        """Replace the playlist membership with ``item_ids`` in order.

        New items are appended before the old entries are removed, both in
        chunks of ``chunk_size`` ids per request. A failed append leaves the
        previous entries in place.
        """
        entries = self.playlist_entries(playlist_id, owner_id)
        entry_ids = [str(entry["PlaylistItemId"]) for entry in entries if entry.get("PlaylistItemId")]
        for batch in chunked(item_ids, self.chunk_size):
            self._request(
                "POST",
                f"/Playlists/{playlist_id}/Items",
                params={"Ids": ",".join(batch), "userId": owner_id},
            )
        for batch in chunked(entry_ids, self.chunk_size):
            self._request(
                "DELETE",
                f"/Playlists/{playlist_id}/Items",
                params={"EntryIds": ",".join(batch)},
            )
        LOGGER.debug(
            "Replaced %d entries of playlist %s with %d items", len(entry_ids), playlist_id, len(item_ids)
        )
        return len(item_ids)
