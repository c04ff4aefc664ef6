"""Wayback Machine lookups for lens pages that no longer carry their artifacts.

The availability API answers "closest snapshot to a timestamp" for a URL
pattern. Only snapshots captured between 2022 and 2024 render the lens data
we need (older pages predate the Next.js payload, newer ones strip the
artifact link), so anything outside that window is treated as absent.

Example:
    >>> resolver = ArchiveResolver(extractor)
    >>> outcome = resolver.resolve_snapshot("lens.snapchat.com/<hash>*")
    >>> if isinstance(outcome, ArchivedSnapshot):
    ...     print(outcome.url, outcome.date)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Union

import httpx

from LensHarvest.extract import PageExtractor
from LensHarvest.failures import Failure, InvalidUrlFailure, SnapshotNotFound
from LensHarvest.network.client import parse_host

__all__ = [
    "ARCHIVE_AVAILABILITY_URL",
    "SNAPSHOT_THRESHOLD_MAX",
    "SNAPSHOT_THRESHOLD_MIN",
    "SNAPSHOT_TIMESTAMP",
    "ArchiveResolver",
    "ArchivedSnapshot",
    "archive_timestamp_to_date",
    "strip_archive_prefixes",
]

LOGGER = logging.getLogger(__name__)

ARCHIVE_AVAILABILITY_URL = "https://archive.org/wayback/available"
SNAPSHOT_TIMESTAMP = "20230601"
SNAPSHOT_THRESHOLD_MIN = 20220101000000
SNAPSHOT_THRESHOLD_MAX = 20241231235959

_ARCHIVE_PREFIX_RE = re.compile(r"https?://web\.archive\.org/web/\d+(?:[a-z]+_)?/")


@dataclass(frozen=True)
class ArchivedSnapshot:
    """Usable snapshot location plus a human readable capture date."""

    url: str
    date: str

    def to_dict(self) -> dict[str, str]:
        return {"url": self.url, "date": self.date}


def archive_timestamp_to_date(timestamp: Union[str, int, None]) -> str:
    """Render a ``YYYYMMDDhhmmss`` timestamp as e.g. ``"Sat Jan 01 2022"``."""

    if not timestamp:
        return "Invalid Date"
    try:
        parsed = datetime.strptime(str(timestamp), "%Y%m%d%H%M%S")
    except ValueError:
        return "Invalid Date"
    return parsed.strftime("%a %b %d %Y")


def strip_archive_prefixes(value: Any) -> Any:
    """Return a copy of ``value`` with Wayback URL prefixes removed from every string."""

    if isinstance(value, str):
        return _ARCHIVE_PREFIX_RE.sub("", value)
    if isinstance(value, Mapping):
        return {key: strip_archive_prefixes(item) for key, item in value.items()}
    if isinstance(value, list):
        return [strip_archive_prefixes(item) for item in value]
    return value


def _parse_timestamp(raw: Any) -> int:
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return 0


class ArchiveResolver:
    """Query the Wayback availability API through the shared page extractor."""

    def __init__(self, extractor: PageExtractor) -> None:
        self.extractor = extractor

    @staticmethod
    def availability_url(target_url_pattern: str) -> str:
        url = httpx.URL(
            ARCHIVE_AVAILABILITY_URL,
            params={"timestamp": SNAPSHOT_TIMESTAMP, "url": target_url_pattern},
        )
        return str(url)

    def resolve_snapshot(
        self, target_url_pattern: str
    ) -> Union[ArchivedSnapshot, SnapshotNotFound, Failure]:
        """Find the closest usable snapshot for ``target_url_pattern``.

        Returns:
            :class:`ArchivedSnapshot` when a capture inside the accepted window
            exists, :class:`SnapshotNotFound` when none does, or the
            :class:`Failure` that prevented the lookup.
        """
        api_url = self.availability_url(target_url_pattern)
        result = self.extractor.load_json(api_url, "archived_snapshots")
        if isinstance(result, Failure):
            return result

        closest = result.get("closest") if isinstance(result, Mapping) else None
        if not isinstance(closest, Mapping) or not closest.get("url") or not closest.get("timestamp"):
            LOGGER.info(
                "No archived snapshot for %s",
                target_url_pattern,
                extra={"pattern": target_url_pattern},
            )
            return SnapshotNotFound("No archived snapshot available", target_url_pattern)

        captured = _parse_timestamp(closest.get("timestamp"))
        if captured < SNAPSHOT_THRESHOLD_MIN or captured > SNAPSHOT_THRESHOLD_MAX:
            LOGGER.info(
                "Archived snapshot outside accepted window",
                extra={"pattern": target_url_pattern, "timestamp": captured},
            )
            return SnapshotNotFound(
                f"Snapshot {captured} outside accepted window", target_url_pattern
            )

        snapshot_url = str(closest["url"])
        if parse_host(snapshot_url) is None:
            LOGGER.error("Invalid snapshot URL: %s", snapshot_url, extra={"pattern": target_url_pattern})
            return InvalidUrlFailure(f"Invalid snapshot URL: {snapshot_url}", target_url_pattern)

        return ArchivedSnapshot(url=snapshot_url, date=archive_timestamp_to_date(captured))
