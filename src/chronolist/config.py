from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .models import TimelineEntry, Universe
from .utils import env_bool, env_list, env_str, load_yaml_file, validate_url


@dataclass
class JellyfinSettings:
    url: str | None = None
    api_key: str | None = None
    user_id: str | None = None
    timeout: float = 15.0


@dataclass
class Settings:
    owner_id: str | None = None
    dry_run: bool = False
    max_workers: int = 1
    index_timeout: float | None = 120.0
    write_timeout: float | None = 30.0
    library_file: Path | None = None
    universe_filter: list[str] = field(default_factory=list)
    jellyfin: JellyfinSettings = field(default_factory=JellyfinSettings)


@dataclass
class AppConfig:
    settings: Settings
    universes: list[Universe] = field(default_factory=list)

    def select_universes(self, keys: list[str] | None = None) -> list[Universe]:
        """Return universes whose key is in ``keys`` (or the configured filter), in declared order."""
        wanted = keys or self.settings.universe_filter
        if not wanted:
            return list(self.universes)
        lookup = {key.lower() for key in wanted}
        return [universe for universe in self.universes if universe.key.lower() in lookup]


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_timeout(value: Any, *, field_name: str, default: float | None) -> float | None:
    if value is None:
        return default
    try:
        timeout = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{field_name}' must be a number") from exc
    return timeout if timeout > 0 else None


def _build_jellyfin_settings(data: dict[str, Any] | None) -> JellyfinSettings:
    if not data:
        return JellyfinSettings()
    if not isinstance(data, dict):
        raise ValueError("'settings.jellyfin' must be provided as a mapping when specified")

    url = _clean_str(data.get("url"))
    if url and not validate_url(url):
        raise ValueError(f"'settings.jellyfin.url' must be a valid http/https URL, got: {url}")

    return JellyfinSettings(
        url=url,
        api_key=_clean_str(data.get("api_key")),
        user_id=_clean_str(data.get("user_id")),
        timeout=_parse_timeout(data.get("timeout"), field_name="settings.jellyfin.timeout", default=15.0) or 15.0,
    )


def _build_settings(data: dict[str, Any] | None, *, base_dir: Path | None = None) -> Settings:
    data = data or {}
    if not isinstance(data, dict):
        raise ValueError("'settings' must be provided as a mapping when specified")

    try:
        max_workers = int(data.get("max_workers", 1))
    except (TypeError, ValueError) as exc:
        raise ValueError("'settings.max_workers' must be an integer") from exc
    if max_workers < 1:
        raise ValueError("'settings.max_workers' must be at least 1")

    library_file: Path | None = None
    library_raw = _clean_str(data.get("library_file"))
    if library_raw:
        library_file = Path(library_raw).expanduser()
        if base_dir is not None and not library_file.is_absolute():
            library_file = base_dir / library_file

    universe_filter = data.get("universes") or []
    if not isinstance(universe_filter, list):
        raise ValueError("'settings.universes' must be a list of universe keys")

    return Settings(
        owner_id=_clean_str(data.get("owner_id")),
        dry_run=bool(data.get("dry_run", False)),
        max_workers=max_workers,
        index_timeout=_parse_timeout(data.get("index_timeout"), field_name="settings.index_timeout", default=120.0),
        write_timeout=_parse_timeout(data.get("write_timeout"), field_name="settings.write_timeout", default=30.0),
        library_file=library_file,
        universe_filter=[str(key).strip() for key in universe_filter if str(key).strip()],
        jellyfin=_build_jellyfin_settings(data.get("jellyfin")),
    )


def _build_timeline_entry(data: Any) -> TimelineEntry | None:
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError("Each universe item must be a mapping with providerId, providerName and type")

    season_raw = data.get("season")
    season: int | None = None
    if season_raw is not None:
        try:
            season = int(season_raw)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Universe item season must be an integer, got: {season_raw!r}") from exc

    def _text(*keys: str) -> str:
        for key in keys:
            value = data.get(key)
            if value is not None:
                return str(value).strip()
        return ""

    return TimelineEntry(
        provider_id=_text("providerId", "provider_id"),
        provider_name=_text("providerName", "provider_name"),
        content_type=_text("type", "content_type"),
        season=season,
    )


def _build_universe(data: Any) -> Universe:
    if not isinstance(data, dict):
        raise ValueError("Each entry in 'universes' must be a mapping")
    key = str(data.get("key") or "").strip()
    name = str(data.get("name") or key).strip()
    items_raw = data.get("items", [])
    if items_raw is None:
        items = None
    elif isinstance(items_raw, list):
        items = [_build_timeline_entry(entry) for entry in items_raw]
    else:
        raise ValueError(f"Universe '{key}' items must be a list")
    return Universe(key=key, name=name, items=items)


def apply_env_overrides(settings: Settings) -> Settings:
    """Apply JELLYFIN_* / CHRONOLIST_* environment overrides in place."""
    url = env_str("JELLYFIN_URL")
    if url:
        if not validate_url(url):
            raise ValueError(f"JELLYFIN_URL must be a valid http/https URL, got: {url}")
        settings.jellyfin.url = url
    api_key = env_str("JELLYFIN_API_KEY")
    if api_key:
        settings.jellyfin.api_key = api_key
    owner_id = env_str("CHRONOLIST_OWNER_ID")
    if owner_id:
        settings.owner_id = owner_id
    dry_run = env_bool("CHRONOLIST_DRY_RUN")
    if dry_run is not None:
        settings.dry_run = dry_run
    universes = env_list("CHRONOLIST_UNIVERSES")
    if universes is not None:
        settings.universe_filter = universes
    return settings


def build_config(data: dict[str, Any], *, base_dir: Path | None = None) -> AppConfig:
    if not isinstance(data, dict):
        raise ValueError("Configuration root must be a mapping")
    settings = apply_env_overrides(_build_settings(data.get("settings"), base_dir=base_dir))
    universes_raw = data.get("universes") or []
    if not isinstance(universes_raw, list):
        raise ValueError("'universes' must be a list")
    return AppConfig(settings=settings, universes=[_build_universe(entry) for entry in universes_raw])


def load_config(path: Path) -> AppConfig:
    data = load_yaml_file(path)
    return build_config(data, base_dir=path.parent)
