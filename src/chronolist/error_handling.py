"""Fault classification and batch error summaries.

Every fault raised while syncing a playlist is mapped onto a fixed
``(category, severity, recovery)`` triple. The batch halts only for
``SystemFailure`` faults at ``Critical`` severity; everything else is
recorded and processing moves on to the next universe.
"""

from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import (
    BackendError,
    BackendTimeoutError,
    BackendUnavailableError,
    InvalidInputError,
    ItemNotFoundError,
    OperationCancelledError,
    PermissionDeniedError,
)
from .logging_utils import render_section_block
from .models import ErrorCategory, ErrorRecord, ErrorSeverity, RecoveryStrategy

LOGGER = logging.getLogger(__name__)

CATEGORY_POLICY: Mapping[ErrorCategory, Tuple[ErrorSeverity, RecoveryStrategy]] = {
    ErrorCategory.INVALID_INPUT: (ErrorSeverity.MEDIUM, RecoveryStrategy.SKIP_INVALID_ITEMS),
    ErrorCategory.PERMISSION_DENIED: (ErrorSeverity.HIGH, RecoveryStrategy.NO_RECOVERY),
    ErrorCategory.TIMEOUT: (ErrorSeverity.MEDIUM, RecoveryStrategy.RETRY_WITH_DELAY),
    ErrorCategory.INVALID_STATE: (ErrorSeverity.HIGH, RecoveryStrategy.RETRY_WITH_DELAY),
    ErrorCategory.UNSUPPORTED_OPERATION: (ErrorSeverity.MEDIUM, RecoveryStrategy.NO_RECOVERY),
    ErrorCategory.ITEM_NOT_FOUND: (ErrorSeverity.LOW, RecoveryStrategy.SKIP_INVALID_ITEMS),
    ErrorCategory.SYSTEM_FAILURE: (ErrorSeverity.CRITICAL, RecoveryStrategy.NO_RECOVERY),
    ErrorCategory.UNKNOWN: (ErrorSeverity.HIGH, RecoveryStrategy.NO_RECOVERY),
}

_MESSAGES: Mapping[ErrorCategory, str] = {
    ErrorCategory.INVALID_INPUT: "Invalid data provided for playlist '{name}'",
    ErrorCategory.PERMISSION_DENIED: "Permission denied while syncing playlist '{name}'",
    ErrorCategory.TIMEOUT: "Timed out while syncing playlist '{name}'",
    ErrorCategory.INVALID_STATE: "Media server rejected the update for playlist '{name}'",
    ErrorCategory.UNSUPPORTED_OPERATION: "The requested operation for playlist '{name}' is not supported",
    ErrorCategory.ITEM_NOT_FOUND: "Some items for playlist '{name}' were not found",
    ErrorCategory.SYSTEM_FAILURE: "Media server is unreachable while syncing playlist '{name}'",
    ErrorCategory.UNKNOWN: "An unexpected error occurred while syncing playlist '{name}'",
}

_RECOMMENDATIONS: Mapping[ErrorCategory, str] = {
    ErrorCategory.INVALID_INPUT: "Check the universe definition for malformed or unsupported entries",
    ErrorCategory.PERMISSION_DENIED: "Check that the API key and owner user may manage playlists",
    ErrorCategory.TIMEOUT: "Retry later or raise write_timeout",
    ErrorCategory.INVALID_STATE: "Retry later; check the media server logs if it keeps failing",
    ErrorCategory.UNSUPPORTED_OPERATION: "Use a backend that supports playlist management",
    ErrorCategory.ITEM_NOT_FOUND: "Rescan the library so the referenced items exist",
    ErrorCategory.SYSTEM_FAILURE: "Verify the media server is running and reachable",
    ErrorCategory.UNKNOWN: "Re-run with --verbose and inspect the error detail",
}

_INDEX_MESSAGES: Mapping[ErrorCategory, str] = {
    ErrorCategory.PERMISSION_DENIED: "Permission denied while indexing the library",
    ErrorCategory.TIMEOUT: "Timed out while indexing the library",
    ErrorCategory.SYSTEM_FAILURE: "Media server is unreachable while indexing the library",
}

_INDEX_RECOMMENDATIONS: Mapping[ErrorCategory, str] = {
    ErrorCategory.PERMISSION_DENIED: "Check that the API key and owner user may read the library",
    ErrorCategory.TIMEOUT: "Retry later or raise index_timeout",
}

_BATCH_RECOMMENDATIONS: Mapping[ErrorCategory, str] = {
    ErrorCategory.INVALID_INPUT: "Fix universe definitions - {count} playlist(s) had invalid input",
    ErrorCategory.PERMISSION_DENIED: "Check user permissions - {count} playlist(s) failed due to permission issues",
    ErrorCategory.TIMEOUT: "Consider reducing batch size - {count} playlist(s) timed out",
    ErrorCategory.INVALID_STATE: "Retry the run later - {count} playlist(s) hit a transient server error",
    ErrorCategory.UNSUPPORTED_OPERATION: "Check backend capabilities - {count} playlist(s) used unsupported operations",
    ErrorCategory.ITEM_NOT_FOUND: "Verify library content - {count} playlist(s) had missing items",
    ErrorCategory.SYSTEM_FAILURE: "Check media server availability - {count} playlist(s) hit a system failure",
    ErrorCategory.UNKNOWN: "Inspect logs - {count} playlist(s) failed with unexpected errors",
}

HIGH_FAILURE_RATE_RECOMMENDATION = "High failure rate detected - consider reviewing configuration and system status"

_SEVERITY_LOG_LEVEL: Mapping[ErrorSeverity, int] = {
    ErrorSeverity.NONE: logging.DEBUG,
    ErrorSeverity.LOW: logging.INFO,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.HIGH: logging.WARNING,
    ErrorSeverity.CRITICAL: logging.ERROR,
}


def categorize(exc: BaseException) -> ErrorCategory:
    """Map an exception onto the error taxonomy."""
    if isinstance(exc, OperationCancelledError):
        raise exc
    if isinstance(exc, (InvalidInputError, ValueError, TypeError)):
        return ErrorCategory.INVALID_INPUT
    if isinstance(exc, (PermissionDeniedError, PermissionError)):
        return ErrorCategory.PERMISSION_DENIED
    if isinstance(exc, (BackendTimeoutError, TimeoutError, concurrent.futures.TimeoutError)):
        return ErrorCategory.TIMEOUT
    if isinstance(exc, ItemNotFoundError):
        return ErrorCategory.ITEM_NOT_FOUND
    if isinstance(exc, BackendUnavailableError) and exc.total_loss:
        return ErrorCategory.SYSTEM_FAILURE
    if isinstance(exc, BackendError):
        return ErrorCategory.INVALID_STATE
    if isinstance(exc, NotImplementedError):
        return ErrorCategory.UNSUPPORTED_OPERATION
    return ErrorCategory.UNKNOWN


def should_continue(category: ErrorCategory, severity: ErrorSeverity) -> bool:
    return not (severity is ErrorSeverity.CRITICAL and category is ErrorCategory.SYSTEM_FAILURE)


@dataclass(slots=True)
class BatchErrorSummary:
    total_errors: int = 0
    errors_by_category: Dict[ErrorCategory, int] = field(default_factory=dict)
    critical_errors: int = 0
    overall_severity: ErrorSeverity = ErrorSeverity.NONE
    recommendations: List[str] = field(default_factory=list)

    @property
    def recoverable_errors(self) -> int:
        return self.total_errors - self.critical_errors

    @property
    def has_errors(self) -> bool:
        return self.total_errors > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalErrors": self.total_errors,
            "errorsByCategory": {category.value: count for category, count in self.errors_by_category.items()},
            "criticalErrors": self.critical_errors,
            "recoverableErrors": self.recoverable_errors,
            "overallSeverity": self.overall_severity.name.title(),
            "recommendations": list(self.recommendations),
        }


class ErrorClassifier:
    """Turn exceptions into :class:`ErrorRecord` objects and summarize batches."""

    def classify(
        self,
        exc: BaseException,
        *,
        playlist_name: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> ErrorRecord:
        """Classify ``exc`` and log it at a level matching its severity.

        Raises:
            OperationCancelledError: cancellation is never turned into a record.
        """
        category = categorize(exc)
        message = _MESSAGES[category].format(name=playlist_name or "(unnamed)")
        return self._record(exc, category, message, _RECOMMENDATIONS[category], playlist_name, context)

    def classify_index_failure(
        self,
        exc: BaseException,
        *,
        context: Optional[Mapping[str, Any]] = None,
    ) -> ErrorRecord:
        """Classify a failure of the library indexing stage, which has no playlist."""
        category = categorize(exc)
        message = _INDEX_MESSAGES.get(category, f"Library indexing failed ({category.value})")
        recommendation = _INDEX_RECOMMENDATIONS.get(category, _RECOMMENDATIONS[category])
        return self._record(exc, category, message, recommendation, None, context)

    def _record(
        self,
        exc: BaseException,
        category: ErrorCategory,
        message: str,
        recommendation: str,
        playlist_name: Optional[str],
        context: Optional[Mapping[str, Any]],
    ) -> ErrorRecord:
        severity, recovery = CATEGORY_POLICY[category]
        record = ErrorRecord(
            category=category,
            severity=severity,
            recovery=recovery,
            message=message,
            recommendation=recommendation,
            playlist_name=playlist_name,
            detail=f"{type(exc).__name__}: {exc}",
            exception=exc,
            context=dict(context or {}),
        )
        LOGGER.log(
            _SEVERITY_LOG_LEVEL[severity],
            "%s [%s/%s] - %s",
            record.message,
            category.value,
            severity.name.title(),
            record.detail,
        )
        return record

    def invalid_input(
        self,
        playlist_name: str,
        errors: Iterable[str],
        *,
        context: Optional[Mapping[str, Any]] = None,
    ) -> ErrorRecord:
        """Record a validation failure without an exception object."""
        messages = list(errors)
        severity, recovery = CATEGORY_POLICY[ErrorCategory.INVALID_INPUT]
        record = ErrorRecord(
            category=ErrorCategory.INVALID_INPUT,
            severity=severity,
            recovery=recovery,
            message=_MESSAGES[ErrorCategory.INVALID_INPUT].format(name=playlist_name),
            recommendation=_RECOMMENDATIONS[ErrorCategory.INVALID_INPUT],
            playlist_name=playlist_name,
            detail="; ".join(messages),
            context=dict(context or {}),
        )
        LOGGER.warning("%s: %s", record.message, record.detail)
        return record

    @staticmethod
    def should_continue(record: ErrorRecord) -> bool:
        return should_continue(record.category, record.severity)

    def summarize(
        self,
        records: Iterable[ErrorRecord],
        total_operations: Optional[int] = None,
    ) -> BatchErrorSummary:
        materialized = list(records)
        summary = BatchErrorSummary(total_errors=len(materialized))
        for record in materialized:
            summary.errors_by_category[record.category] = summary.errors_by_category.get(record.category, 0) + 1
            if record.severity is ErrorSeverity.CRITICAL:
                summary.critical_errors += 1
            if record.severity > summary.overall_severity:
                summary.overall_severity = record.severity

        recommendations = {
            _BATCH_RECOMMENDATIONS[category].format(count=count)
            for category, count in summary.errors_by_category.items()
        }
        if total_operations and summary.total_errors > total_operations * 0.5:
            recommendations.add(HIGH_FAILURE_RATE_RECOMMENDATION)
        summary.recommendations = sorted(recommendations)
        return summary


def log_batch_summary(summary: BatchErrorSummary) -> None:
    if not summary.has_errors:
        LOGGER.info("Batch playlist sync completed with no errors")
        return
    LOGGER.warning(
        render_section_block(
            "Batch Error Summary",
            [("Recommendations", summary.recommendations)],
            fields={
                "Total errors": summary.total_errors,
                "Critical": summary.critical_errors,
                "Recoverable": summary.recoverable_errors,
                "Overall severity": summary.overall_severity.name.title(),
                "By category": ", ".join(
                    f"{category.value}={count}" for category, count in sorted(
                        summary.errors_by_category.items(), key=lambda pair: pair[0].value
                    )
                ),
            },
        )
    )
