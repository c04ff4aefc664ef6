# === NAVMAP v1 ===
# {
#   "module": "LensHarvest.records",
#   "purpose": "Lens record shape, normalisation of upstream items and field-level merging.",
#   "sections": [
#     {
#       "id": "lensrecord",
#       "name": "LensRecord",
#       "anchor": "class-lensrecord",
#       "kind": "class"
#     },
#     {
#       "id": "is-empty",
#       "name": "is_empty",
#       "anchor": "function-is-empty",
#       "kind": "function"
#     },
#     {
#       "id": "merge-lens-records",
#       "name": "merge_lens_records",
#       "anchor": "function-merge-lens-records",
#       "kind": "function"
#     },
#     {
#       "id": "format-lens-record",
#       "name": "format_lens_record",
#       "anchor": "function-format-lens-record",
#       "kind": "function"
#     },
#     {
#       "id": "extract-uuid-from-deeplink",
#       "name": "extract_uuid_from_deeplink",
#       "anchor": "function-extract-uuid-from-deeplink",
#       "kind": "function"
#     },
#     {
#       "id": "normalize-last-updated",
#       "name": "normalize_last_updated",
#       "anchor": "function-normalize-last-updated",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Lens records.

Responsibilities
----------------
- Translate the several upstream item shapes (lens pages, creator REST
  listings, search payloads) into one flat :class:`LensRecord` dictionary.
- Derive a deterministic ``uuid`` for every record so downstream
  collaborators can deduplicate.
- Merge partial records field by field without ever replacing a known value
  with an empty one.

Design Notes
------------
- Records are plain dictionaries so they serialise to JSON unchanged; the
  :class:`LensRecord` ``TypedDict`` documents the keys.
- Missing fields default to ``""``, ``[]`` or ``{}`` (never ``None``) so the
  emptiness test in :func:`is_empty` behaves uniformly.
- ``False`` and ``0`` are *not* empty; enrichment flags such as
  ``has_search_tags`` rely on surviving a merge.
"""

from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, TypedDict, Union

import httpx

__all__ = [
    "ImageSequence",
    "LensRecord",
    "deeplink_url",
    "extract_uuid_from_deeplink",
    "format_lens_record",
    "is_empty",
    "merge_lens_records",
    "normalize_last_updated",
    "profile_url",
    "record_key",
    "snapcode_url",
]

_UUID_RE = re.compile(r"^[a-f0-9]{32}$", re.IGNORECASE)
_UNLOCK_PATHS = frozenset({"/unlock", "/unlock/"})

# Epoch values below this are seconds rather than milliseconds (~ year 2286 in s).
_SECONDS_CEILING = 10_000_000_000


class ImageSequence(TypedDict, total=False):
    url_pattern: str
    size: int
    frame_interval_ms: int


class LensRecord(TypedDict, total=False):
    """Normalised lens record.

    The artifact keys (``lens_id`` through ``last_updated``) are only present
    when the source item carried a ``lensResource``.
    """

    unlockable_id: str
    uuid: str
    deeplink: str
    snapcode_url: str
    lens_name: str
    lens_creator_search_tags: List[str]
    lens_status: str
    user_display_name: str
    user_name: str
    user_profile_url: str
    user_id: str
    user_profile_id: str
    obfuscated_user_slug: str
    icon_url: str
    thumbnail_media_url: str
    thumbnail_media_poster_url: str
    standard_media_url: str
    image_sequence: Union[ImageSequence, Dict[str, Any]]
    lens_id: str
    lens_url: str
    signature: str
    sha256: str
    last_updated: Union[int, str]
    snapshot: Dict[str, str]
    archived_snapshot_failures: List[Dict[str, Any]]
    has_search_tags: bool
    has_archived_snapshots: bool


def is_empty(value: Any) -> bool:
    """Return ``True`` for ``None``, ``""``, empty lists and empty mappings.

    ``False`` and ``0`` are meaningful values and therefore not empty.
    """

    if value is None:
        return True
    if isinstance(value, (str, list, tuple, Mapping)):
        return len(value) == 0
    return False


def merge_lens_records(
    primary: Mapping[str, Any], secondary: Mapping[str, Any]
) -> Dict[str, Any]:
    """Combine two partial records, preferring ``primary``'s non-empty fields.

    The result starts as ``secondary`` overlaid by ``primary``; every field
    that is empty in ``primary`` but non-empty in ``secondary`` is back-filled
    from ``secondary``. Neither input is modified.

    Examples:
        >>> merge_lens_records({"lens_name": "", "uuid": "a"}, {"lens_name": "Cat"})
        {'lens_name': 'Cat', 'uuid': 'a'}
    """

    merged: Dict[str, Any] = {**secondary, **primary}
    for key in merged:
        if is_empty(primary.get(key)) and not is_empty(secondary.get(key)):
            merged[key] = secondary[key]
    return merged


def profile_url(user_name: Any) -> str:
    if isinstance(user_name, str) and user_name:
        return f"https://www.snapchat.com/add/{user_name}"
    return ""


def snapcode_url(uuid: Any) -> str:
    if isinstance(uuid, str) and uuid:
        return f"https://app.snapchat.com/web/deeplink/snapcode?data={uuid}&version=1&type=png"
    return ""


def deeplink_url(uuid: Any) -> str:
    if isinstance(uuid, str) and uuid:
        return f"https://snapchat.com/unlock/?type=SNAPCODE&uuid={uuid}&metadata=01"
    return ""


def extract_uuid_from_deeplink(deeplink: Any) -> str:
    """Return the 32-hex ``uuid`` query value of an ``/unlock/`` deeplink, or ``""``."""

    if not isinstance(deeplink, str) or not deeplink:
        return ""
    try:
        url = httpx.URL(deeplink)
    except (httpx.InvalidURL, TypeError, ValueError):
        return ""
    if url.scheme not in ("http", "https") or not url.host or url.path not in _UNLOCK_PATHS:
        return ""
    candidate = url.params.get("uuid", "")
    if candidate and _UUID_RE.match(candidate):
        return candidate
    return ""


def normalize_last_updated(value: Any) -> Union[int, str]:
    """Normalise an artifact timestamp to milliseconds since the epoch.

    Numbers (or numeric strings) under ``1e10`` are taken as seconds and
    scaled; ISO-8601 strings are parsed, naive values as UTC. Anything else
    yields ``""``.
    """

    if value is None or isinstance(value, bool) or value == "":
        return ""
    if isinstance(value, (int, float)):
        return _scale_epoch(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return _scale_epoch(float(text))
        except ValueError:
            pass
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return ""
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)
    return ""


def _scale_epoch(number: float) -> Union[int, str]:
    if not math.isfinite(number) or number < 0:
        return ""
    if number < _SECONDS_CEILING:
        number *= 1000
    return int(number)


def _first(item: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = item.get(key)
        if value:
            return value
    return ""


def format_lens_record(
    item: Mapping[str, Any],
    *,
    obfuscated_slug: str = "",
    user_name: str = "",
    hash: str = "",
    unlockable_id: str = "",
) -> Dict[str, Any]:
    """Build a :class:`LensRecord` from one upstream lens item.

    Args:
        item: Raw lens object from a page payload, REST listing or search result.
        obfuscated_slug: Creator slug the item was listed under.
        user_name: Username the item was listed under.
        hash: Fallback ``uuid`` when the item carries none.
        unlockable_id: Fallback lens ID.

    Returns:
        A new record dictionary; ``item`` is not modified.
    """

    deeplink = _first(item, "deeplinkUrl", "unlockUrl")
    uuid = item.get("scannableUuid") or extract_uuid_from_deeplink(deeplink) or hash or ""
    lens_id = _first(item, "lensId", "id") or unlockable_id or ""
    creator = item.get("creator")
    creator_title = creator.get("title") if isinstance(creator, Mapping) else None
    creator_user = item.get("lensCreatorUsername") or user_name or ""
    thumbnail = _first(item, "thumbnailUrl", "previewImageUrl", "lensPreviewImageUrl")
    tags = item.get("lensCreatorSearchTags") or []

    record: Dict[str, Any] = {
        "unlockable_id": lens_id,
        "uuid": uuid,
        "deeplink": deeplink or deeplink_url(uuid),
        "snapcode_url": item.get("snapcodeUrl") or snapcode_url(uuid),
        "lens_name": _first(item, "lensName", "name"),
        "lens_creator_search_tags": list(tags),
        "lens_status": "Live",
        "user_display_name": item.get("lensCreatorDisplayName")
        or creator_title
        or item.get("creatorName")
        or "",
        "user_name": creator_user,
        "user_profile_url": item.get("userProfileUrl") or profile_url(creator_user),
        "user_id": item.get("creatorUserId") or "",
        "user_profile_id": item.get("creatorProfileId") or "",
        "obfuscated_user_slug": obfuscated_slug or "",
        "icon_url": item.get("iconUrl") or "",
        "thumbnail_media_url": thumbnail,
        "thumbnail_media_poster_url": thumbnail,
        "standard_media_url": _first(item, "previewVideoUrl", "lensPreviewVideoUrl"),
        "image_sequence": {},
    }

    sequence = item.get("thumbnailSequence")
    if isinstance(sequence, Mapping) and sequence:
        record["image_sequence"] = {
            "url_pattern": sequence.get("urlPattern") or "",
            "size": sequence.get("numThumbnails") or 0,
            "frame_interval_ms": sequence.get("animationIntervalMs") or 0,
        }

    resource = item.get("lensResource")
    if isinstance(resource, Mapping) and resource:
        record.update(
            {
                "lens_id": lens_id,
                "lens_url": resource.get("archiveLink") or "",
                "signature": resource.get("signature") or "",
                "sha256": resource.get("checkSum") or "",
                "last_updated": normalize_last_updated(resource.get("lastUpdated")),
            }
        )

    return record


def record_key(record: Mapping[str, Any]) -> Optional[str]:
    """Deduplication key for a record: its ``uuid`` or, failing that, lens ID."""

    return record.get("uuid") or record.get("unlockable_id") or None
