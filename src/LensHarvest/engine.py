# === NAVMAP v1 ===
# {
#   "module": "LensHarvest.engine",
#   "purpose": "Resolution engine facade combining transport, cache, extraction and archive fallback.",
#   "sections": [
#     {
#       "id": "enrichmentresult",
#       "name": "EnrichmentResult",
#       "anchor": "class-enrichmentresult",
#       "kind": "class"
#     },
#     {
#       "id": "lensresolutionengine",
#       "name": "LensResolutionEngine",
#       "anchor": "class-lensresolutionengine",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Lens resolution engine.

:class:`LensResolutionEngine` owns one polite HTTP client, one host pacing
map and one TTL cache, and wires them into the page extractor and archive
resolver. Every public lookup returns its value or a
:class:`~LensHarvest.failures.Failure`; network, HTTP and decode problems are
never raised. Only programming errors (unknown top-lens category, malformed
property path) raise :class:`ValueError`.

Example:
    >>> with LensResolutionEngine(load_config()) as engine:
    ...     record = engine.get_lens_by_hash("<32-hex>")
    ...     if is_failure(record):
    ...         record = engine.get_lens_by_archived_snapshot("<32-hex>")
"""

from __future__ import annotations

import logging
import os
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import httpx

from LensHarvest.archive import ArchivedSnapshot, ArchiveResolver, strip_archive_prefixes
from LensHarvest.cache import TTLCache
from LensHarvest.config import CrawlerConfig
from LensHarvest.extract import PageExtractor
from LensHarvest.failures import (
    AggregateFailure,
    Failure,
    JsonStructureFailure,
    Outcome,
    SnapshotNotFound,
    log_failure,
)
from LensHarvest.network.client import PoliteClient
from LensHarvest.network.pacing import HostPacer
from LensHarvest.network.retry import RetryOptions
from LensHarvest.records import (
    format_lens_record,
    is_empty,
    merge_lens_records,
    record_key,
)
from LensHarvest.search import parse_search_results

__all__ = ["EnrichmentResult", "LensResolutionEngine", "TOP_CATEGORIES"]

LOGGER = logging.getLogger(__name__)

LENS_PAGE_URL = "https://lens.snapchat.com/{hash}"
PROFILE_PAGE_URL = "https://www.snapchat.com/add/{user_name}"
CREATOR_LENSES_URL = "https://lensstudio.snapchat.com/v1/creator/lenses/"
TOP_LENSES_URL = "https://www.snapchat.com/lens{path}"
EXPLORE_URL = "https://www.snapchat.com/explore/{slug}"

CREATOR_PAGE_SIZE = 100

TOP_CATEGORIES: Dict[str, str] = {
    "default": "/",
    "face": "/category/face",
    "world": "/category/world",
    "music": "/category/music",
    "live": "/category/web_live",
}

_PAGE_PROPS = "props.pageProps"
_RETRY_NOT_FOUND = RetryOptions(retry_not_found=True)
_SLUG_RE = re.compile(r"\W+")

LensResult = Union[Dict[str, Any], Failure]
LensListResult = Union[List[Dict[str, Any]], Failure]


@dataclass
class EnrichmentResult:
    """Outcome of :meth:`LensResolutionEngine.enrich_lens`.

    Attributes:
        record: The merged record (always returned, possibly unchanged).
        failures: Failures met while consulting live and archived sources.
    """

    record: Dict[str, Any]
    failures: List[Outcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class LensResolutionEngine:
    """Facade over every lens lookup.

    Attributes:
        config: Effective crawler configuration.
        pacer: Host pacing map shared by every request of this engine.
        cache: TTL cache of decoded payloads.
        client: Polite transport.
        extractor: Page/JSON extractor bound to ``client`` and ``cache``.
        archive: Wayback availability resolver.
    """

    def __init__(
        self,
        config: Optional[CrawlerConfig] = None,
        *,
        client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        web_id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self.config = config or CrawlerConfig()
        self.pacer = HostPacer(self.config.min_request_delay, clock=clock, sleep=sleep)
        self.cache = TTLCache(
            self.config.cache_ttl_s,
            gc_interval=self.config.gc_interval_s,
            clock=clock,
            on_sweep=self._prune_pacer,
        )
        self.client = PoliteClient(
            self.config, pacer=self.pacer, client=client, clock=clock, sleep=sleep
        )
        self.extractor = PageExtractor(self.client, self.cache)
        self.archive = ArchiveResolver(self.extractor)
        self._web_id_factory = web_id_factory
        self._closed = False
        self.cache.start()

    # ------------------------------------------------------------------ lifecycle

    def _prune_pacer(self) -> None:
        self.pacer.prune(max(self.cache.ttl, self.pacer.min_delay))

    def sweep(self) -> int:
        """Expire stale cache entries and pacing stamps now."""

        return self.cache.sweep()

    def close(self) -> None:
        """Stop the sweep thread, drop cached state and close an owned client."""

        if self._closed:
            return
        self._closed = True
        self.cache.close()
        self.pacer.clear()
        self.client.close()

    def __enter__(self) -> "LensResolutionEngine":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    # ------------------------------------------------------------------ helpers

    def _format_single(self, value: Any, url: str, defaults: Mapping[str, str]) -> LensResult:
        if isinstance(value, Failure):
            log_failure(LOGGER, value, context={"url": url})
            return value
        if not isinstance(value, Mapping):
            return JsonStructureFailure("Expected a lens object", url, raw=repr(value))
        return format_lens_record(value, **defaults)

    def _format_many(self, value: Any, url: str, defaults: Mapping[str, str]) -> LensListResult:
        if isinstance(value, Failure):
            log_failure(LOGGER, value, context={"url": url})
            return value
        if not isinstance(value, list):
            return JsonStructureFailure("Expected a list of lenses", url, raw=repr(value))
        return [format_lens_record(item, **defaults) for item in value if isinstance(item, Mapping)]

    def _get_single_lens(self, url: str, **defaults: str) -> LensResult:
        value = self.extractor.load_and_extract(url, "props.pageProps.lensDisplayInfo")
        return self._format_single(value, url, defaults)

    # ------------------------------------------------------------------ lookups

    def get_lens_by_hash(self, hash: str) -> LensResult:
        """Resolve one lens from its live page."""

        return self._get_single_lens(LENS_PAGE_URL.format(hash=hash), hash=hash)

    def get_more_lenses_by_hash(self, hash: str) -> LensListResult:
        """Return the "more lenses" carousel shown on a lens page."""

        url = LENS_PAGE_URL.format(hash=hash)
        value = self.extractor.load_and_extract(url, "props.pageProps.moreLenses")
        return self._format_many(value, url, {})

    def get_lenses_by_username(self, user_name: str) -> LensListResult:
        """Return the lenses listed on a creator's public profile."""

        url = PROFILE_PAGE_URL.format(user_name=user_name)
        value = self.extractor.load_and_extract(url, "props.pageProps.lenses")
        return self._format_many(value, url, {"user_name": user_name})

    def get_lenses_by_creator(self, slug: str, max_lenses: int = 1000) -> LensListResult:
        """Page through the Lens Studio creator listing.

        Pages hold at most 100 items; iteration stops on a short page or once
        ``max_lenses`` raw items were requested. A failure on the first page
        is returned, later failures end the walk with what was collected.
        """
        lenses: List[Dict[str, Any]] = []
        offset = 0
        while offset < max_lenses:
            limit = min(CREATOR_PAGE_SIZE, max_lenses - offset)
            url = str(
                httpx.URL(
                    CREATOR_LENSES_URL,
                    params={"limit": limit, "offset": offset, "order": 1, "slug": slug},
                )
            )
            page = self.extractor.load_json(url, "lensesList", options=_RETRY_NOT_FOUND)
            if isinstance(page, Failure):
                log_failure(LOGGER, page, context={"slug": slug, "offset": offset})
                if offset == 0:
                    return page
                break
            if not isinstance(page, list):
                page = []

            lenses.extend(
                format_lens_record(item, obfuscated_slug=slug)
                for item in page
                if isinstance(item, Mapping) and (item.get("lensId") or item.get("deeplinkUrl"))
            )
            if len(page) < limit:
                break
            offset += limit

        LOGGER.info(
            "Creator listing collected %d lenses",
            len(lenses),
            extra={"slug": slug, "lenses": len(lenses)},
        )
        return lenses

    def get_top_lenses_by_category(
        self, category: str = "default", max_lenses: Optional[int] = 100
    ) -> LensListResult:
        """Collect the top lenses of a category across cursor pages.

        Each configured locale is tried at most once with a fresh ``web_id``.
        A locale ends on a failure, a repeated cursor or once ``cursor_cap``
        distinct cursors were followed; the cached page is dropped and the
        next locale starts from the first page. Results are de-duplicated.
        A page without lenses or without a next cursor ends the whole walk.
        When every locale failed before yielding a lens, the last failure is
        returned instead of an empty list.

        Raises:
            ValueError: If ``category`` is not one of :data:`TOP_CATEGORIES`.
        """
        path = TOP_CATEGORIES.get(category)
        if path is None:
            raise ValueError(
                f"Unknown top lens category {category!r}; expected one of {sorted(TOP_CATEGORIES)}"
            )

        base_url = TOP_LENSES_URL.format(path=path)
        limit = max_lenses if max_lenses and max_lenses > 0 else None
        lenses: List[Dict[str, Any]] = []
        seen: set[str] = set()
        last_failure: Optional[Failure] = None

        for locale in self.config.locales:
            web_id = self._web_id_factory()
            cursors: set[str] = set()
            cursor: Optional[str] = None
            while True:
                params = {"locale": locale, "web_id": web_id}
                if cursor:
                    params["cursor_id"] = cursor
                url = str(httpx.URL(base_url, params=params))

                page = self.extractor.load_and_extract(url, _PAGE_PROPS, options=_RETRY_NOT_FOUND)
                if isinstance(page, Failure):
                    log_failure(LOGGER, page, context={"category": category, "locale": locale})
                    last_failure = page
                    break

                top = page.get("topLenses") if isinstance(page, Mapping) else None
                if not top or not isinstance(top, list):
                    return lenses

                for item in top:
                    if not isinstance(item, Mapping):
                        continue
                    record = format_lens_record(item)
                    key = record_key(record)
                    if key is not None:
                        if key in seen:
                            continue
                        seen.add(key)
                    lenses.append(record)
                    if limit is not None and len(lenses) >= limit:
                        return lenses

                next_cursor = page.get("nextCursorId")
                if not page.get("hasMore") or not next_cursor:
                    return lenses

                if next_cursor in cursors or len(cursors) >= self.config.cursor_cap:
                    LOGGER.warning(
                        "Cursor loop detected, rotating locale",
                        extra={
                            "category": category,
                            "locale": locale,
                            "cursor": next_cursor,
                            "cursors_seen": len(cursors),
                        },
                    )
                    self.cache.invalidate(url)
                    break
                cursors.add(next_cursor)
                cursor = next_cursor

        if not lenses and last_failure is not None:
            return last_failure
        return lenses

    def search_lenses(self, term: str) -> LensListResult:
        """Search the explore pages for ``term``."""

        slug = _SLUG_RE.sub("-", term)
        url = EXPLORE_URL.format(slug=slug)
        page_props = self.extractor.load_and_extract(url, _PAGE_PROPS)
        if isinstance(page_props, Failure):
            log_failure(LOGGER, page_props, context={"term": term})
            return page_props
        return parse_search_results(page_props)

    def get_lens_by_archived_snapshot(self, hash: str) -> Union[Dict[str, Any], AggregateFailure]:
        """Assemble a lens record from Wayback snapshots of its pages.

        Patterns are tried most specific first; each extracted record is
        merged over what was already found until one carries a ``lens_url``.

        Returns:
            The record with ``snapshot`` and ``archived_snapshot_failures``
            (every outcome met on earlier patterns), or an
            :class:`AggregateFailure` listing every outcome met and carrying
            the best partial record.
        """
        patterns = (f"lens.snapchat.com/{hash}*", f"snapchat.com/lens/{hash}*")
        record: Dict[str, Any] = {}
        outcomes: List[Outcome] = []

        for pattern in patterns:
            snapshot = self.archive.resolve_snapshot(pattern)
            if not isinstance(snapshot, ArchivedSnapshot):
                outcomes.append(snapshot)
                continue

            lens = self._get_single_lens(snapshot.url, hash=hash)
            if isinstance(lens, Failure):
                outcomes.append(lens)
                continue

            record = merge_lens_records(strip_archive_prefixes(lens), record)
            if not is_empty(record.get("lens_url")):
                record["snapshot"] = snapshot.to_dict()
                record["archived_snapshot_failures"] = [outcome.to_dict() for outcome in outcomes]
                LOGGER.info(
                    "Resolved lens from archived snapshot",
                    extra={"hash": hash, "snapshot_url": snapshot.url, "skipped": len(outcomes)},
                )
                return record
            outcomes.append(SnapshotNotFound("Snapshot carries no lens artifact", snapshot.url))

        return AggregateFailure(
            f"No archived snapshot with a lens artifact for {hash}",
            outcomes=tuple(outcomes),
            partial=record,
        )

    def get_lenses_from_url(
        self, url: str, lens_defaults: Optional[Mapping[str, str]] = None
    ) -> LensListResult:
        """Extract every lens a page exposes, whatever kind of page it is."""

        page_props = self.extractor.load_and_extract(url, _PAGE_PROPS)
        if isinstance(page_props, Failure):
            log_failure(LOGGER, page_props, context={"url": url})
            return page_props
        if not isinstance(page_props, Mapping):
            return JsonStructureFailure("Expected page props object", url, raw=repr(page_props))

        defaults = dict(lens_defaults or {})
        items: List[Any] = []
        for key in ("lensDisplayInfo", "moreLenses", "lenses", "topLenses"):
            source = page_props.get(key)
            if isinstance(source, list):
                items.extend(source)
            elif source:
                items.append(source)

        records = [format_lens_record(item, **defaults) for item in items if isinstance(item, Mapping)]
        records.extend(parse_search_results(page_props, defaults))
        return [strip_archive_prefixes(record) for record in records]

    # ------------------------------------------------------------------ enrichment

    def enrich_lens(
        self, record: Mapping[str, Any], *, overwrite: bool = False
    ) -> EnrichmentResult:
        """Fill gaps in a known record from the live page and the archive.

        Args:
            record: Previously known record; must carry a ``uuid``.
            overwrite: When ``True`` freshly crawled values win over ``record``.

        Returns:
            :class:`EnrichmentResult` with the merged record and any failures.
        """
        current: Dict[str, Any] = dict(record)
        failures: List[Outcome] = []
        lens_uuid = current.get("uuid")
        if is_empty(lens_uuid):
            failures.append(Failure("Record has no uuid"))
            return EnrichmentResult(current, failures)

        def _merge(fresh: Mapping[str, Any]) -> Dict[str, Any]:
            if overwrite:
                return merge_lens_records(fresh, current)
            return merge_lens_records(current, fresh)

        tags = current.get("lens_creator_search_tags") or []
        needs_live = (
            is_empty(current.get("unlockable_id"))
            or (is_empty(current.get("user_name")) and current.get("user_display_name") != "Snapchat")
            or (not tags and current.get("has_search_tags") is not False)
        )
        if needs_live:
            live = self.get_lens_by_hash(lens_uuid)
            if isinstance(live, Failure):
                failures.append(live)
            else:
                current = _merge(live)
                if not current.get("lens_creator_search_tags"):
                    current["has_search_tags"] = False

        if is_empty(current.get("lens_url")) and current.get("has_archived_snapshots") is not False:
            archived = self.get_lens_by_archived_snapshot(lens_uuid)
            if isinstance(archived, AggregateFailure):
                if archived.partial:
                    current = _merge(archived.partial)
                if archived.structurally_absent:
                    current["has_archived_snapshots"] = False
                else:
                    failures.append(archived)
            else:
                current = _merge(archived)
                current["has_archived_snapshots"] = not is_empty(current.get("lens_url"))

        return EnrichmentResult(current, failures)

    # ------------------------------------------------------------------ artifacts

    def download_file(self, url: str, dest: Union[str, os.PathLike]) -> Union[bool, Failure]:
        """Download an artifact (e.g. ``lens_url``) through the polite client."""

        return self.client.download_file(url, dest)
