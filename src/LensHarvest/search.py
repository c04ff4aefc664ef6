"""Search result shapes.

The explore pages have changed layout at least once, so search results are
parsed through a small tagged union:

- :class:`ApolloStateResults`: the older ``initialApolloState`` key/value map
  whose values are lens objects (``id``, ``deeplinkUrl``, ``lensName``).
- :class:`EncodedSearchResults`: the newer ``encodedSearchResponse`` JSON
  string holding ``sections``; the lens section is the one titled
  ``"Lenses"`` (or typed ``6``) and wraps items as ``results[].result.lens``.

:func:`detect_search_shape` picks the variant by discriminator key and
:func:`parse_search_results` turns any page props into lens records. Unknown
or undecodable shapes produce an empty list rather than a failure.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from LensHarvest.records import format_lens_record

__all__ = [
    "ApolloStateResults",
    "EncodedSearchResults",
    "SearchShape",
    "detect_search_shape",
    "parse_search_results",
]

LOGGER = logging.getLogger(__name__)

LENS_SECTION_TITLE = "Lenses"
LENS_SECTION_TYPE = 6


@dataclass(frozen=True)
class ApolloStateResults:
    state: Mapping[str, Any]

    def lens_items(self) -> List[Mapping[str, Any]]:
        return [
            item
            for item in self.state.values()
            if isinstance(item, Mapping)
            and item.get("id")
            and item.get("deeplinkUrl")
            and item.get("lensName")
        ]


@dataclass(frozen=True)
class EncodedSearchResults:
    encoded: str

    def lens_items(self) -> List[Mapping[str, Any]]:
        try:
            decoded = json.loads(self.encoded)
        except ValueError as exc:
            LOGGER.warning("Undecodable search response: %s", exc)
            return []
        sections = decoded.get("sections") if isinstance(decoded, Mapping) else None
        if not isinstance(sections, list):
            return []

        section = next(
            (
                entry
                for entry in sections
                if isinstance(entry, Mapping)
                and (
                    entry.get("title") == LENS_SECTION_TITLE
                    or entry.get("sectionType") == LENS_SECTION_TYPE
                )
            ),
            None,
        )
        if section is None:
            return []

        items: List[Mapping[str, Any]] = []
        for entry in section.get("results") or []:
            result = entry.get("result") if isinstance(entry, Mapping) else None
            lens = result.get("lens") if isinstance(result, Mapping) else None
            if (
                isinstance(lens, Mapping)
                and lens.get("lensId")
                and lens.get("deeplinkUrl")
                and lens.get("name")
            ):
                items.append(lens)
        return items


SearchShape = Union[ApolloStateResults, EncodedSearchResults]


def detect_search_shape(page_props: Any) -> Optional[SearchShape]:
    """Return the search shape carried by ``page_props`` or ``None``."""

    if not isinstance(page_props, Mapping):
        return None
    apollo = page_props.get("initialApolloState")
    if isinstance(apollo, Mapping):
        return ApolloStateResults(apollo)
    encoded = page_props.get("encodedSearchResponse")
    if isinstance(encoded, str):
        return EncodedSearchResults(encoded)
    return None


def parse_search_results(
    page_props: Any, lens_defaults: Optional[Mapping[str, str]] = None
) -> List[Dict[str, Any]]:
    """Format every lens found in a search page's props."""

    shape = detect_search_shape(page_props)
    if shape is None:
        return []
    defaults = dict(lens_defaults or {})
    return [format_lens_record(item, **defaults) for item in shape.lens_items()]
