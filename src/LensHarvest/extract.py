# === NAVMAP v1 ===
# {
#   "module": "LensHarvest.extract",
#   "purpose": "Fetch pages, decode the embedded Next.js payload and resolve property paths.",
#   "sections": [
#     {
#       "id": "propertypath",
#       "name": "PropertyPath",
#       "anchor": "class-propertypath",
#       "kind": "class"
#     },
#     {
#       "id": "pageextractor",
#       "name": "PageExtractor",
#       "anchor": "class-pageextractor",
#       "kind": "class"
#     },
#     {
#       "id": "extract-next-data",
#       "name": "extract_next_data",
#       "anchor": "function-extract-next-data",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Page extraction helpers.

Upstream lens pages are rendered by Next.js and carry their whole data model
inside a single ``<script id="__NEXT_DATA__">`` block. :class:`PageExtractor`
fetches a page through the polite client, decodes that block (or the raw body
for JSON endpoints), stores the decoded payload in the TTL cache and resolves
a :class:`PropertyPath` against it. Decode or lookup problems come back as
:class:`~LensHarvest.failures.JsonFailure` values.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple, Union

from bs4 import BeautifulSoup

from LensHarvest.cache import TTLCache
from LensHarvest.failures import Failure, JsonParseFailure, JsonStructureFailure
from LensHarvest.network.client import PoliteClient
from LensHarvest.network.retry import DEFAULT_RETRY_OPTIONS, RetryOptions

__all__ = ["NEXT_DATA_SELECTOR", "PageExtractor", "PropertyPath", "extract_next_data"]

LOGGER = logging.getLogger(__name__)

NEXT_DATA_SELECTOR = "#__NEXT_DATA__"

_SEGMENT_RE = re.compile(r"([^.\[\]]+)|\[(\d+)\]")

Segment = Union[str, int]


@dataclass(frozen=True)
class PropertyPath:
    """Parsed dotted path such as ``props.pageProps.lenses[0]``."""

    raw: str
    segments: Tuple[Segment, ...]

    @classmethod
    def parse(cls, path: Union[str, "PropertyPath", None]) -> "PropertyPath":
        """Parse ``path`` into string keys and integer indexes.

        Raises:
            ValueError: If the path contains characters outside the grammar.
        """
        if isinstance(path, PropertyPath):
            return path
        text = (path or "").strip()
        if not text:
            return cls(raw="", segments=())

        segments: list[Segment] = []
        position = 0
        while position < len(text):
            if text[position] == "." and segments:
                position += 1
            match = _SEGMENT_RE.match(text, position)
            if match is None:
                raise ValueError(f"Malformed property path: {path!r}")
            name, index = match.groups()
            segments.append(int(index) if index is not None else name)
            position = match.end()
        return cls(raw=text, segments=tuple(segments))

    def resolve(self, obj: Any, *, url: Optional[str] = None) -> Any:
        """Walk ``obj`` along the path.

        Returns:
            The value at the path (``None`` is a valid value) or a
            :class:`JsonStructureFailure` when the root is unusable or a
            segment is missing.
        """
        if not isinstance(obj, (Mapping, list)) or not obj:
            return JsonStructureFailure("Invalid object given", url, raw=_dump(obj))

        current: Any = obj
        for segment in self.segments:
            if isinstance(segment, int) and isinstance(current, list):
                if segment >= len(current):
                    return self._missing(obj, url)
                current = current[segment]
            elif isinstance(segment, str) and isinstance(current, Mapping):
                if segment not in current:
                    return self._missing(obj, url)
                current = current[segment]
            else:
                return self._missing(obj, url)
        return current

    def _missing(self, obj: Any, url: Optional[str]) -> JsonStructureFailure:
        return JsonStructureFailure(f"Property path not found: '{self.raw}'", url, raw=_dump(obj))

    def __str__(self) -> str:
        return self.raw


def _dump(obj: Any) -> str:
    try:
        return json.dumps(obj)
    except (TypeError, ValueError):
        return repr(obj)


def extract_next_data(html: str) -> Optional[str]:
    """Return the text of the ``#__NEXT_DATA__`` script, or ``None``."""

    soup = BeautifulSoup(html, "html.parser")
    node = soup.select_one(NEXT_DATA_SELECTOR)
    if node is None:
        return None
    text = node.string if node.string is not None else node.get_text()
    return str(text) if text.strip() else None


class PageExtractor:
    """Cache-aware loader for Next.js pages and JSON endpoints.

    Attributes:
        client: Polite transport used for every fetch.
        cache: TTL cache keyed by URL holding decoded payloads.
    """

    def __init__(self, client: PoliteClient, cache: TTLCache) -> None:
        self.client = client
        self.cache = cache

    def load_and_extract(
        self,
        url: str,
        property_path: Union[str, PropertyPath, None] = "",
        options: RetryOptions = DEFAULT_RETRY_OPTIONS,
    ) -> Any:
        """Load an HTML page and resolve ``property_path`` in its Next.js payload."""

        return self._load(url, PropertyPath.parse(property_path), options, html=True)

    def load_json(
        self,
        url: str,
        property_path: Union[str, PropertyPath, None] = "",
        options: RetryOptions = DEFAULT_RETRY_OPTIONS,
    ) -> Any:
        """Load a JSON endpoint and resolve ``property_path`` in the body."""

        return self._load(url, PropertyPath.parse(property_path), options, html=False)

    def _load(self, url: str, path: PropertyPath, options: RetryOptions, *, html: bool) -> Any:
        cached = self.cache.get(url)
        if cached is not None:
            LOGGER.debug("Cache hit", extra={"url": url, "property_path": path.raw})
            return path.resolve(cached, url=url)

        payload = self._fetch_payload(url, options, html=html)
        if isinstance(payload, Failure):
            return payload

        self.cache.set(url, payload)
        return path.resolve(payload, url=url)

    def _fetch_payload(self, url: str, options: RetryOptions, *, html: bool) -> Any:
        response = self.client.fetch(url, options=options)
        if isinstance(response, Failure):
            return response

        body = response.text
        if not body.strip():
            return Failure("Empty response body", url)

        if html:
            raw = extract_next_data(body)
            if raw is None:
                return JsonStructureFailure("Page has no __NEXT_DATA__ payload", url)
        else:
            raw = body

        try:
            payload = json.loads(raw)
        except ValueError as exc:
            LOGGER.warning("JSON decode failed for %s: %s", url, exc, extra={"url": url})
            return JsonParseFailure(f"Invalid JSON: {exc}", url, raw=raw)

        if not isinstance(payload, (Mapping, list)):
            return JsonStructureFailure("Decoded payload is not an object", url, raw=raw)
        return payload
