from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from jsonschema import Draft7Validator

from .classifier import SUPPORTED_PROVIDERS
from .models import ContentType


@dataclass(slots=True)
class ValidationIssue:
    """Represents a single validation problem."""

    severity: str
    path: str
    message: str
    code: str
    fix_suggestion: Optional[str] = None


@dataclass(slots=True)
class ValidationReport:
    """Aggregates validation warnings and errors."""

    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


_TIMEOUT = {"type": ["number", "integer", "null"]}

_ITEM_SCHEMA: Dict[str, Any] = {
    "type": ["object", "null"],
    "properties": {
        "providerId": {"type": ["string", "integer"]},
        "providerName": {"type": "string"},
        "type": {"type": "string"},
        "season": {"type": ["integer", "null"]},
    },
    "required": ["providerId", "providerName", "type"],
    "additionalProperties": True,
}

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "settings": {
            "type": "object",
            "properties": {
                "owner_id": {"type": ["string", "null"]},
                "dry_run": {"type": "boolean"},
                "max_workers": {"type": "integer", "minimum": 1},
                "index_timeout": _TIMEOUT,
                "write_timeout": _TIMEOUT,
                "library_file": {"type": ["string", "null"]},
                "universes": {"type": "array", "items": {"type": "string"}},
                "jellyfin": {
                    "type": "object",
                    "properties": {
                        "url": {"type": ["string", "null"]},
                        "api_key": {"type": ["string", "null"]},
                        "user_id": {"type": ["string", "null"]},
                        "timeout": _TIMEOUT,
                    },
                    "additionalProperties": False,
                },
            },
            "additionalProperties": False,
        },
        "universes": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "key": {"type": "string"},
                    "name": {"type": "string"},
                    "items": {"type": ["array", "null"], "items": _ITEM_SCHEMA},
                },
                "required": ["key"],
                "additionalProperties": True,
            },
        },
    },
    "required": ["universes"],
    "additionalProperties": True,
}


FixSuggestionGenerator = Callable[[str, str], Optional[str]]


def _suggest_schema_fix(path: str, message: str) -> Optional[str]:
    if "is a required property" in message:
        return "Add the required field to your configuration"
    if "is not of type" in message:
        for token, label in (
            ("'string'", "string"),
            ("'object'", "object/mapping"),
            ("'array'", "array/list"),
            ("'boolean'", "boolean"),
            ("'integer'", "number"),
            ("'number'", "number"),
        ):
            if token in message:
                return f"Change this field to a {label} value"
    if "Additional properties" in message:
        return "Remove the unknown field or check it for typos"
    return "Review the configuration schema requirements for this field"


def _suggest_key_fix(path: str, message: str) -> Optional[str]:
    if "whitespace" in message:
        return "Use a key without spaces, e.g. 'star-wars' instead of 'star wars'"
    return "Give the universe a non-empty key such as 'mcu'"


def _suggest_duplicate_key_fix(path: str, message: str) -> Optional[str]:
    return "Change the universe 'key' to a value not used by other universes (keys compare case-insensitively)"


def _suggest_provider_fix(path: str, message: str) -> Optional[str]:
    return f"Use one of the supported providers: {', '.join(sorted(SUPPORTED_PROVIDERS))}"


def _suggest_type_fix(path: str, message: str) -> Optional[str]:
    return f"Use one of the supported content types: {', '.join(member.value for member in ContentType)}"


def _suggest_provider_id_fix(path: str, message: str) -> Optional[str]:
    return "Set providerId to the external id, e.g. '299534' for a TMDB movie or 'tt4154796' for IMDb"


def _suggest_source_fix(path: str, message: str) -> Optional[str]:
    return "Set settings.jellyfin.url and api_key, or point settings.library_file at a library export"


FIX_SUGGESTION_REGISTRY: Dict[str, FixSuggestionGenerator] = {
    "schema": _suggest_schema_fix,
    "universe-key": _suggest_key_fix,
    "duplicate-key": _suggest_duplicate_key_fix,
    "provider": _suggest_provider_fix,
    "content-type": _suggest_type_fix,
    "provider-id": _suggest_provider_id_fix,
    "library-source": _suggest_source_fix,
}


def get_fix_suggestion(issue: ValidationIssue) -> Optional[str]:
    generator = FIX_SUGGESTION_REGISTRY.get(issue.code)
    if generator:
        return generator(issue.path, issue.message)
    return None


def _format_jsonschema_path(path: Sequence[Any]) -> str:
    if not path:
        return "<root>"
    tokens: List[str] = []
    for part in path:
        if isinstance(part, int):
            if tokens:
                tokens[-1] = f"{tokens[-1]}[{part}]"
            else:
                tokens.append(f"[{part}]")
        else:
            tokens.append(str(part))
    return ".".join(tokens) if tokens else "<root>"


def _issue(severity: str, path: str, message: str, code: str) -> ValidationIssue:
    issue = ValidationIssue(severity=severity, path=path, message=message, code=code)
    issue.fix_suggestion = get_fix_suggestion(issue)
    return issue


def validate_config_data(data: Any) -> ValidationReport:
    """Validate configuration data against the schema and semantic rules.

    Args:
        data: The parsed configuration document

    Returns:
        ValidationReport containing any errors or warnings found
    """
    report = ValidationReport()
    validator = Draft7Validator(CONFIG_SCHEMA)

    for error in sorted(validator.iter_errors(data), key=lambda exc: list(map(str, exc.absolute_path))):
        report.errors.append(_issue("error", _format_jsonschema_path(error.absolute_path), error.message, "schema"))

    if isinstance(data, dict):
        _validate_semantics(data, report)
    return report


def _validate_item(item: Any, path: str, report: ValidationReport) -> None:
    if item is None:
        report.errors.append(_issue("error", path, "Null timeline item found", "schema"))
        return
    if not isinstance(item, dict):
        return
    provider_id = item.get("providerId")
    if "providerId" in item and (provider_id is None or not str(provider_id).strip()):
        report.errors.append(_issue("error", f"{path}.providerId", "Provider id must not be blank", "provider-id"))
    provider = item.get("providerName")
    if isinstance(provider, str) and provider.strip().lower() not in SUPPORTED_PROVIDERS:
        report.errors.append(
            _issue("error", f"{path}.providerName", f"Unsupported provider '{provider}'", "provider")
        )
    content_type = item.get("type")
    if isinstance(content_type, str) and ContentType.parse(content_type) is None:
        report.errors.append(
            _issue("error", f"{path}.type", f"Unsupported content type '{content_type}'", "content-type")
        )


def _validate_semantics(data: Dict[str, Any], report: ValidationReport) -> None:
    settings = data.get("settings") or {}
    if isinstance(settings, dict):
        jellyfin = settings.get("jellyfin") or {}
        has_server = isinstance(jellyfin, dict) and bool(jellyfin.get("url"))
        if not has_server and not settings.get("library_file"):
            report.warnings.append(
                _issue("warning", "settings", "No library source configured", "library-source")
            )
        if not settings.get("owner_id"):
            report.warnings.append(
                _issue(
                    "warning",
                    "settings.owner_id",
                    "No owner_id configured; it must be supplied via CHRONOLIST_OWNER_ID",
                    "schema",
                )
            )

    universes = data.get("universes") or []
    if not isinstance(universes, list):
        return

    seen_keys: Dict[str, int] = {}
    for index, universe in enumerate(universes):
        if not isinstance(universe, dict):
            continue
        path = f"universes[{index}]"
        key = universe.get("key")
        if isinstance(key, str):
            if not key.strip():
                report.errors.append(_issue("error", f"{path}.key", "Universe key must not be empty", "universe-key"))
            elif any(char.isspace() for char in key):
                report.errors.append(
                    _issue("error", f"{path}.key", f"Universe key '{key}' must not contain whitespace", "universe-key")
                )
            lowered = key.strip().lower()
            if lowered:
                if lowered in seen_keys:
                    report.errors.append(
                        _issue(
                            "error",
                            f"{path}.key",
                            f"Duplicate universe key '{key}' also defined at index {seen_keys[lowered]}",
                            "duplicate-key",
                        )
                    )
                else:
                    seen_keys[lowered] = index

        items = universe.get("items", [])
        if items is None:
            report.errors.append(_issue("error", f"{path}.items", "Universe items are missing", "schema"))
            continue
        if not isinstance(items, list):
            continue
        if not items:
            report.warnings.append(
                _issue("warning", f"{path}.items", "Universe has no items; its playlist will be skipped", "schema")
            )
        for item_index, item in enumerate(items):
            _validate_item(item, f"{path}.items[{item_index}]", report)


__all__ = [
    "CONFIG_SCHEMA",
    "FIX_SUGGESTION_REGISTRY",
    "ValidationIssue",
    "ValidationReport",
    "get_fix_suggestion",
    "validate_config_data",
]
