"""chronolist core package.

The package is organized into focused modules:

- **content_index**: Read-only provider-id index over a library snapshot
- **provider_matcher**: Resolves declared timeline entries in order, recording misses
- **classifier**: Entry validation, content-type analysis and per-type match buckets
- **reconciler**: Idempotent playlist create-or-update and batch synchronization
- **error_handling**: Fault classification, continuation rule and batch summaries
- **runner**: One end-to-end run wiring the stages together
- **jellyfin_client**: HTTP library source and playlist backend
- **run_summary**: Rich tables and log recaps for finished runs

The main entry point for a sync is the ``TimelineRunner`` class.
"""

from .cancel import CancelToken
from .content_index import ContentIndex
from .runner import RunReport, TimelineRunner
from .version import __version__

__all__ = [
    "__version__",
    "CancelToken",
    "ContentIndex",
    "RunReport",
    "TimelineRunner",
]
