from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Mapping, Optional

from .utils import is_blank


class ContentType(str, Enum):
    MOVIE = "movie"
    EPISODE = "episode"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ContentType"]:
        """Return the member matching ``value`` case-insensitively, or ``None``."""
        if not isinstance(value, str):
            return None
        lowered = value.strip().lower()
        for member in cls:
            if member.value == lowered:
                return member
        return None


@dataclass(slots=True)
class LibraryItemRef:
    item_id: str
    content_type: ContentType
    name: str = ""
    provider_ids: Dict[str, str] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class TimelineEntry:
    provider_id: str
    provider_name: str
    content_type: str
    season: Optional[int] = None

    @property
    def provider_key(self) -> str:
        return f"{(self.provider_name or '').lower()}_{self.provider_id}"

    @property
    def is_complete(self) -> bool:
        return not (
            is_blank(self.provider_id) or is_blank(self.provider_name) or is_blank(self.content_type)
        )

    def describe(self) -> str:
        """Human-readable description used for missing-item reporting."""
        description = f"{self.content_type} - {self.provider_name}:{self.provider_id}"
        if self.season is not None:
            description += f" S{self.season}"
        return description

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "providerId": self.provider_id,
            "providerName": self.provider_name,
            "type": self.content_type,
        }
        if self.season is not None:
            payload["season"] = self.season
        return payload


@dataclass(slots=True)
class Universe:
    key: str
    name: str
    items: Optional[List[Optional[TimelineEntry]]] = field(default_factory=list)


@dataclass(slots=True)
class MatchResult:
    universe_key: str = ""
    universe_name: str = ""
    matched_ids: List[str] = field(default_factory=list)
    matched_entries: List[TimelineEntry] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    missing_entries: List[TimelineEntry] = field(default_factory=list)

    @property
    def matched_count(self) -> int:
        return len(self.matched_ids)

    @property
    def missing_count(self) -> int:
        return len(self.missing)

    @property
    def total(self) -> int:
        return self.matched_count + self.missing_count

    @property
    def matching_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.matched_count / self.total * 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "universeKey": self.universe_key,
            "universeName": self.universe_name,
            "matchedIds": list(self.matched_ids),
            "missing": list(self.missing),
            "total": self.total,
            "matched": self.matched_count,
            "matchingRate": round(self.matching_rate, 2),
        }


@dataclass(slots=True)
class ValidationResult:
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    detected_types: List[str] = field(default_factory=list)
    is_mixed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": list(self.errors),
            "detectedTypes": list(self.detected_types),
            "isMixed": self.is_mixed,
        }


@dataclass(slots=True)
class ContentTypeAnalysis:
    type_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def total_items(self) -> int:
        return sum(self.type_counts.values())

    @property
    def is_mixed(self) -> bool:
        return len(self.type_counts) > 1

    @property
    def movie_count(self) -> int:
        return self.type_counts.get(ContentType.MOVIE.value, 0)

    @property
    def episode_count(self) -> int:
        return self.type_counts.get(ContentType.EPISODE.value, 0)

    @property
    def other_count(self) -> int:
        return self.total_items - self.movie_count - self.episode_count

    def percentages(self) -> Dict[str, float]:
        total = self.total_items
        if total == 0:
            return {}
        return {key: round(count / total * 100.0, 2) for key, count in self.type_counts.items()}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "typeCounts": dict(self.type_counts),
            "totalItems": self.total_items,
            "isMixed": self.is_mixed,
            "percentages": self.percentages(),
        }


class ErrorCategory(str, Enum):
    INVALID_INPUT = "InvalidInput"
    PERMISSION_DENIED = "PermissionDenied"
    TIMEOUT = "Timeout"
    INVALID_STATE = "InvalidState"
    UNSUPPORTED_OPERATION = "UnsupportedOperation"
    ITEM_NOT_FOUND = "ItemNotFound"
    SYSTEM_FAILURE = "SystemFailure"
    UNKNOWN = "Unknown"


class ErrorSeverity(IntEnum):
    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


class RecoveryStrategy(str, Enum):
    RETRY_WITH_DELAY = "RetryWithDelay"
    SKIP_INVALID_ITEMS = "SkipInvalidItems"
    NO_RECOVERY = "NoRecovery"


@dataclass(slots=True)
class ErrorRecord:
    """A classified fault, ready for reporting.

    ``message`` is safe to show to users and always names the affected
    playlist; ``detail`` carries the raw fault text.
    """

    category: ErrorCategory
    severity: ErrorSeverity
    recovery: RecoveryStrategy
    message: str
    recommendation: str
    playlist_name: Optional[str] = None
    detail: str = ""
    exception: Optional[BaseException] = field(default=None, repr=False, compare=False)
    context: Mapping[str, Any] = field(default_factory=dict)
    timestamp: dt.datetime = field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))

    @property
    def is_recoverable(self) -> bool:
        return self.severity is not ErrorSeverity.CRITICAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "severity": self.severity.name.title(),
            "recovery": self.recovery.value,
            "message": self.message,
            "recommendation": self.recommendation,
            "playlistName": self.playlist_name,
            "detail": self.detail,
            "context": dict(self.context),
            "timestamp": self.timestamp.isoformat(),
        }


class SyncAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class PlaylistRef:
    playlist_id: str
    name: str
    owner_id: str
    item_count: int = 0


@dataclass(slots=True)
class SyncResult:
    playlist_name: str
    action: SyncAction
    playlist_id: Optional[str] = None
    requested_count: int = 0
    final_count: int = 0
    missing_items: List[str] = field(default_factory=list)
    error: Optional[ErrorRecord] = None
    dry_run: bool = False

    @property
    def succeeded(self) -> bool:
        return self.action is not SyncAction.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "playlistName": self.playlist_name,
            "playlistId": self.playlist_id,
            "action": self.action.value,
            "requestedCount": self.requested_count,
            "finalCount": self.final_count,
            "missingItems": list(self.missing_items),
            "error": self.error.to_dict() if self.error is not None else None,
            "dryRun": self.dry_run,
        }


@dataclass(slots=True)
class PlaylistStatistics:
    total_playlists: int = 0
    total_items: int = 0
    last_updated: Optional[dt.datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalPlaylists": self.total_playlists,
            "totalItems": self.total_items,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None,
        }
