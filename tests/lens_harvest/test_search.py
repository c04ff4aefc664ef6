"""Search payload shapes."""

from __future__ import annotations

import json

from LensHarvest.search import (
    ApolloStateResults,
    EncodedSearchResults,
    detect_search_shape,
    parse_search_results,
)
from tests.lens_harvest.helpers import HEX_UUID

DEEPLINK = f"https://www.snapchat.com/unlock/?type=SNAPCODE&uuid={HEX_UUID}&metadata=01"


def _encoded(sections) -> str:
    return json.dumps({"sections": sections})


def test_detects_apollo_state() -> None:
    shape = detect_search_shape({"initialApolloState": {"a": {}}})

    assert isinstance(shape, ApolloStateResults)


def test_detects_encoded_response() -> None:
    shape = detect_search_shape({"encodedSearchResponse": "{}"})

    assert isinstance(shape, EncodedSearchResults)


def test_unknown_shape_yields_empty_list() -> None:
    assert detect_search_shape({"somethingElse": []}) is None
    assert parse_search_results({"somethingElse": []}) == []
    assert parse_search_results(None) == []


def test_apollo_state_filters_incomplete_items() -> None:
    page_props = {
        "initialApolloState": {
            "Lens:1": {"id": "1", "deeplinkUrl": DEEPLINK, "lensName": "Kept"},
            "Lens:2": {"id": "2", "lensName": "No deeplink"},
            "ROOT_QUERY": {"__typename": "Query"},
            "scalar": 3,
        }
    }

    records = parse_search_results(page_props)

    assert [record["lens_name"] for record in records] == ["Kept"]
    assert records[0]["unlockable_id"] == "1"
    assert records[0]["uuid"] == HEX_UUID


def test_encoded_response_uses_lens_section() -> None:
    page_props = {
        "encodedSearchResponse": _encoded(
            [
                {"title": "Creators", "results": [{"result": {"lens": {"lensId": "x"}}}]},
                {
                    "title": "Lenses",
                    "results": [
                        {"result": {"lens": {"lensId": "7", "deeplinkUrl": DEEPLINK, "name": "Found"}}},
                        {"result": {"lens": {"lensId": "8", "name": "Missing deeplink"}}},
                        {"result": {}},
                        "junk",
                    ],
                },
            ]
        )
    }

    records = parse_search_results(page_props, {"user_name": "someone"})

    assert len(records) == 1
    assert records[0]["lens_name"] == "Found"
    assert records[0]["unlockable_id"] == "7"
    assert records[0]["user_name"] == "someone"


def test_encoded_response_matches_section_type() -> None:
    page_props = {
        "encodedSearchResponse": _encoded(
            [
                {
                    "title": "Linsen",
                    "sectionType": 6,
                    "results": [{"result": {"lens": {"lensId": "9", "deeplinkUrl": DEEPLINK, "name": "Typed"}}}],
                }
            ]
        )
    }

    assert [record["lens_name"] for record in parse_search_results(page_props)] == ["Typed"]


def test_undecodable_encoded_response_yields_empty_list() -> None:
    assert parse_search_results({"encodedSearchResponse": "{not json"}) == []
    assert parse_search_results({"encodedSearchResponse": "[]"}) == []
    assert parse_search_results({"encodedSearchResponse": _encoded([{"title": "Other"}])}) == []
