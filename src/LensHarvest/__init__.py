"""Public API for the LensHarvest lens resolution engine.

The engine resolves lens metadata and artifact links from the public lens
pages, the Lens Studio creator listing and archived Wayback snapshots, and
reports unreachable sources as typed failure values alongside partial data.
"""

from __future__ import annotations

from LensHarvest.archive import ArchivedSnapshot, strip_archive_prefixes
from LensHarvest.config import CrawlerConfig, load_config
from LensHarvest.engine import TOP_CATEGORIES, EnrichmentResult, LensResolutionEngine
from LensHarvest.failures import (
    AggregateFailure,
    Failure,
    HttpStatusFailure,
    InvalidUrlFailure,
    JsonFailure,
    JsonParseFailure,
    JsonStructureFailure,
    NotFoundFailure,
    RequestErrorFailure,
    RequestFailure,
    RequestTimeoutFailure,
    SnapshotNotFound,
    is_failure,
    log_failure,
)
from LensHarvest.records import (
    LensRecord,
    deeplink_url,
    extract_uuid_from_deeplink,
    format_lens_record,
    is_empty,
    merge_lens_records,
    profile_url,
    snapcode_url,
)

__version__ = "0.1.0"

__all__ = [
    "AggregateFailure",
    "ArchivedSnapshot",
    "CrawlerConfig",
    "EnrichmentResult",
    "Failure",
    "HttpStatusFailure",
    "InvalidUrlFailure",
    "JsonFailure",
    "JsonParseFailure",
    "JsonStructureFailure",
    "LensRecord",
    "LensResolutionEngine",
    "NotFoundFailure",
    "RequestErrorFailure",
    "RequestFailure",
    "RequestTimeoutFailure",
    "SnapshotNotFound",
    "TOP_CATEGORIES",
    "__version__",
    "deeplink_url",
    "extract_uuid_from_deeplink",
    "format_lens_record",
    "is_empty",
    "is_failure",
    "load_config",
    "log_failure",
    "merge_lens_records",
    "profile_url",
    "snapcode_url",
    "strip_archive_prefixes",
]
