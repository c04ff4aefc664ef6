"""End-to-end engine lookups against stubbed upstream pages."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import httpx
import pytest

from LensHarvest.engine import EnrichmentResult, LensResolutionEngine
from LensHarvest.failures import (
    Failure,
    HttpStatusFailure,
    JsonStructureFailure,
    NotFoundFailure,
)
from LensHarvest.records import deeplink_url
from tests.lens_harvest.helpers import (
    HEX_UUID,
    archive_availability,
    fast_config,
    json_response,
    page_response,
)

BOLT = "https://lens-storage.storage.googleapis.com/bolt/abc.lns"


def _uuid(index: int) -> str:
    return f"{index:032x}"


def _top_item(index: int) -> Dict[str, str]:
    return {"scannableUuid": _uuid(index), "lensId": str(index), "lensName": f"Top {index}"}


class TestSingleLookups:
    def test_lens_by_hash(self, make_engine) -> None:
        requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return page_response(
                request,
                {"lensDisplayInfo": {"scannableUuid": HEX_UUID, "lensId": "123", "lensName": "Test"}},
            )

        engine = make_engine(handler)

        record = engine.get_lens_by_hash(HEX_UUID)

        assert record["uuid"] == HEX_UUID
        assert record["unlockable_id"] == "123"
        assert record["lens_name"] == "Test"
        assert record["lens_status"] == "Live"
        assert str(requests[0].url) == f"https://lens.snapchat.com/{HEX_UUID}"

    def test_lens_by_hash_falls_back_to_hash_for_uuid(self, make_engine) -> None:
        engine = make_engine(lambda request: page_response(request, {"lensDisplayInfo": {"lensId": "1"}}))

        assert engine.get_lens_by_hash(HEX_UUID)["uuid"] == HEX_UUID

    def test_lens_by_hash_not_found(self, make_engine) -> None:
        engine = make_engine(lambda request: httpx.Response(404, request=request))

        result = engine.get_lens_by_hash(HEX_UUID)

        assert isinstance(result, NotFoundFailure)

    def test_lens_display_info_not_an_object(self, make_engine) -> None:
        engine = make_engine(lambda request: page_response(request, {"lensDisplayInfo": None}))

        assert isinstance(engine.get_lens_by_hash(HEX_UUID), JsonStructureFailure)

    def test_more_lenses_and_hash_page_share_one_fetch(self, make_engine) -> None:
        calls: List[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return page_response(
                request,
                {
                    "lensDisplayInfo": {"scannableUuid": HEX_UUID, "lensId": "1"},
                    "moreLenses": [_top_item(2), _top_item(3), "junk"],
                },
            )

        engine = make_engine(handler)

        engine.get_lens_by_hash(HEX_UUID)
        more = engine.get_more_lenses_by_hash(HEX_UUID)

        assert [record["uuid"] for record in more] == [_uuid(2), _uuid(3)]
        assert len(calls) == 1

    def test_lenses_by_username(self, make_engine) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/add/creator_1"
            return page_response(request, {"lenses": [{"lensId": "5", "lensName": "Mine"}]})

        engine = make_engine(handler)

        records = engine.get_lenses_by_username("creator_1")

        assert records[0]["user_name"] == "creator_1"
        assert records[0]["user_profile_url"] == "https://www.snapchat.com/add/creator_1"

    def test_lenses_not_a_list(self, make_engine) -> None:
        engine = make_engine(lambda request: page_response(request, {"lenses": {"oops": 1}}))

        assert isinstance(engine.get_lenses_by_username("x"), JsonStructureFailure)


class TestCreatorListing:
    @staticmethod
    def _items(start: int, count: int) -> List[Dict[str, str]]:
        return [
            {
                "lensId": str(index),
                "deeplinkUrl": deeplink_url(_uuid(index)),
                "name": f"Lens {index}",
                "creatorName": "Studio",
            }
            for index in range(start, start + count)
        ]

    def test_stops_on_short_page(self, make_engine) -> None:
        requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            offset = int(request.url.params["offset"])
            items = self._items(0, 100) if offset == 0 else []
            return json_response(request, {"lensesList": items})

        engine = make_engine(handler)

        records = engine.get_lenses_by_creator("slug-1", 1000)

        assert len(requests) == 2
        assert len(records) == 100
        assert [request.url.params["offset"] for request in requests] == ["0", "100"]
        assert all(request.url.params["limit"] == "100" for request in requests)
        assert requests[0].url.params["order"] == "1"
        assert requests[0].url.params["slug"] == "slug-1"
        assert records[0]["obfuscated_user_slug"] == "slug-1"
        assert records[0]["uuid"] == _uuid(0)

    def test_last_page_limited_by_max(self, make_engine) -> None:
        requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            offset = int(request.url.params["offset"])
            limit = int(request.url.params["limit"])
            return json_response(request, {"lensesList": self._items(offset, limit)})

        engine = make_engine(handler)

        records = engine.get_lenses_by_creator("slug-1", 150)

        assert len(records) == 150
        assert [request.url.params["limit"] for request in requests] == ["100", "50"]

    def test_not_found_is_retried(self, make_engine) -> None:
        calls: List[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) == 1:
                return httpx.Response(404, request=request)
            return json_response(request, {"lensesList": self._items(0, 3)})

        engine = make_engine(handler)

        records = engine.get_lenses_by_creator("slug-1")

        assert len(records) == 3
        assert len(calls) == 2

    def test_first_page_failure_is_returned(self, make_engine) -> None:
        engine = make_engine(lambda request: httpx.Response(500, request=request), max_request_retries=0)

        assert isinstance(engine.get_lenses_by_creator("slug-1"), Failure)

    def test_later_failure_keeps_collected_lenses(self, make_engine) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["offset"] == "0":
                return json_response(request, {"lensesList": self._items(0, 100)})
            return httpx.Response(500, request=request)

        engine = make_engine(handler, max_request_retries=0)

        records = engine.get_lenses_by_creator("slug-1")

        assert len(records) == 100

    def test_items_without_identity_are_dropped(self, make_engine) -> None:
        items = self._items(0, 2) + [{"name": "anonymous"}, "junk"]
        engine = make_engine(lambda request: json_response(request, {"lensesList": items}))

        assert len(engine.get_lenses_by_creator("slug-1")) == 2


class TopLensServer:
    """Serves cursor pages; ``pages`` maps cursor (``None`` for first) to a page."""

    def __init__(self, pages: Dict[object, dict], failing_locales: tuple = ()) -> None:
        self.pages = pages
        self.failing_locales = failing_locales
        self.requests: List[httpx.URL] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url)
        if request.url.params.get("locale") in self.failing_locales:
            return httpx.Response(500, request=request)
        cursor = request.url.params.get("cursor_id")
        return page_response(request, self.pages[cursor])


class TestTopLenses:
    def test_follows_cursors_until_no_more(self, make_engine) -> None:
        server = TopLensServer(
            {
                None: {"topLenses": [_top_item(1), _top_item(2)], "hasMore": True, "nextCursorId": "c1"},
                "c1": {"topLenses": [_top_item(3)], "hasMore": False, "nextCursorId": "c2"},
            }
        )
        engine = make_engine(server)

        records = engine.get_top_lenses_by_category("face")

        assert [record["uuid"] for record in records] == [_uuid(1), _uuid(2), _uuid(3)]
        assert [url.path for url in server.requests] == ["/lens/category/face"] * 2
        assert server.requests[0].params["locale"] == "en-US"
        assert server.requests[0].params["web_id"] == "webid0"
        assert "cursor_id" not in server.requests[0].params
        assert server.requests[1].params["cursor_id"] == "c1"

    def test_stops_at_max_lenses(self, make_engine) -> None:
        server = TopLensServer(
            {None: {"topLenses": [_top_item(i) for i in range(5)], "hasMore": True, "nextCursorId": "c1"}}
        )
        engine = make_engine(server)

        records = engine.get_top_lenses_by_category("default", max_lenses=2)

        assert len(records) == 2
        assert len(server.requests) == 1

    def test_repeated_cursor_rotates_locale_once_each(self, make_engine) -> None:
        server = TopLensServer(
            {
                None: {"topLenses": [_top_item(1)], "hasMore": True, "nextCursorId": "c1"},
                "c1": {"topLenses": [_top_item(2)], "hasMore": True, "nextCursorId": "c1"},
            }
        )
        engine = make_engine(server, locales=["en-US", "de-DE"])

        records = engine.get_top_lenses_by_category("world")

        assert [record["uuid"] for record in records] == [_uuid(1), _uuid(2)]
        assert len(server.requests) == 4
        assert [url.params["web_id"] for url in server.requests] == ["webid0", "webid0", "webid1", "webid1"]
        assert [url.params["locale"] for url in server.requests] == ["en-US", "en-US", "de-DE", "de-DE"]
        looping_page = str(server.requests[1])
        assert looping_page not in engine.cache

    def test_cursor_cap_bounds_each_locale(self, make_engine) -> None:
        pages = {None: {"topLenses": [_top_item(0)], "hasMore": True, "nextCursorId": "c1"}}
        for index in range(1, 10):
            pages[f"c{index}"] = {
                "topLenses": [_top_item(index)],
                "hasMore": True,
                "nextCursorId": f"c{index + 1}",
            }
        server = TopLensServer(pages)
        engine = make_engine(server, locales=["en-US", "fr-FR"], cursor_cap=2)

        records = engine.get_top_lenses_by_category("music", max_lenses=0)

        assert [record["uuid"] for record in records] == [_uuid(0), _uuid(1), _uuid(2)]
        assert len(server.requests) == 6

    def test_failing_locale_moves_on(self, make_engine) -> None:
        server = TopLensServer(
            {None: {"topLenses": [_top_item(1)], "hasMore": False}},
            failing_locales=("en-US",),
        )
        engine = make_engine(server, locales=["en-US", "ja-JP"], max_request_retries=0)

        records = engine.get_top_lenses_by_category("live")

        assert [record["uuid"] for record in records] == [_uuid(1)]
        assert server.requests[-1].path == "/lens/category/web_live"
        assert server.requests[-1].params["locale"] == "ja-JP"

    def test_every_locale_failing_returns_failure(self, make_engine) -> None:
        server = TopLensServer({}, failing_locales=("en-US", "ja-JP"))
        engine = make_engine(server, locales=["en-US", "ja-JP"], max_request_retries=0)

        result = engine.get_top_lenses_by_category("face")

        assert isinstance(result, HttpStatusFailure)
        assert result.status_code == 500
        assert "ja-JP" in result.url
        assert len(server.requests) == 2

    def test_page_without_lenses_ends_walk(self, make_engine) -> None:
        server = TopLensServer({None: {"topLenses": []}})
        engine = make_engine(server)

        assert engine.get_top_lenses_by_category() == []
        assert len(server.requests) == 1

    def test_unknown_category_raises(self, make_engine) -> None:
        engine = make_engine(lambda request: httpx.Response(500, request=request))

        with pytest.raises(ValueError, match="Unknown top lens category"):
            engine.get_top_lenses_by_category("sports")


class TestSearchAndUrls:
    def test_search_slugifies_term(self, make_engine) -> None:
        paths: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            return page_response(
                request,
                {
                    "initialApolloState": {
                        "Lens:1": {"id": "1", "deeplinkUrl": deeplink_url(HEX_UUID), "lensName": "Cat ears"}
                    }
                },
            )

        engine = make_engine(handler)

        records = engine.search_lenses("cat  ears!")

        assert paths == ["/explore/cat-ears-"]
        assert records[0]["uuid"] == HEX_UUID

    def test_search_unknown_shape(self, make_engine) -> None:
        engine = make_engine(lambda request: page_response(request, {"other": 1}))

        assert engine.search_lenses("dog") == []

    def test_lenses_from_url_collects_every_source(self, make_engine) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return page_response(
                request,
                {
                    "lensDisplayInfo": {
                        "scannableUuid": _uuid(1),
                        "iconUrl": "https://web.archive.org/web/20230101000000/https://cdn.example/1.png",
                    },
                    "moreLenses": [_top_item(2)],
                    "lenses": [_top_item(3)],
                    "topLenses": [_top_item(4)],
                    "initialApolloState": {
                        "Lens:5": {"id": "5", "deeplinkUrl": deeplink_url(_uuid(5)), "lensName": "Five"}
                    },
                },
            )

        engine = make_engine(handler)

        records = engine.get_lenses_from_url(
            "https://web.archive.org/web/20230101000000/https://lens.snapchat.com/x",
            {"user_name": "someone"},
        )

        assert [record["uuid"] for record in records] == [_uuid(i) for i in range(1, 6)]
        assert records[0]["icon_url"] == "https://cdn.example/1.png"
        assert all(record["user_name"] == "someone" for record in records)


class TestEnrichment:
    @staticmethod
    def _handler(live_props: dict, archive_timestamp: str = "20211231235959"):
        requests: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.host == "archive.org":
                return archive_availability(
                    request,
                    f"https://web.archive.org/web/{archive_timestamp}/https://lens.snapchat.com/{HEX_UUID}",
                    archive_timestamp,
                )
            if request.url.host == "web.archive.org":
                return page_response(
                    request,
                    {"lensDisplayInfo": {"lensResource": {"archiveLink": BOLT}}},
                )
            return page_response(request, live_props)

        return handler, requests

    def test_fills_gaps_and_marks_absent_sources(self, make_engine) -> None:
        handler, requests = self._handler(
            {"lensDisplayInfo": {"lensId": "77", "lensName": "Live", "lensCreatorUsername": "maker"}}
        )
        engine = make_engine(handler)

        result = engine.enrich_lens({"uuid": HEX_UUID, "lens_name": "Stored", "lens_creator_search_tags": []})

        assert isinstance(result, EnrichmentResult)
        assert result.ok
        assert result.record["unlockable_id"] == "77"
        assert result.record["user_name"] == "maker"
        assert result.record["lens_name"] == "Stored"
        assert result.record["has_search_tags"] is False
        assert result.record["has_archived_snapshots"] is False
        assert [request.url.host for request in requests] == [
            "lens.snapchat.com",
            "archive.org",
            "archive.org",
        ]

    def test_overwrite_prefers_crawled_values(self, make_engine) -> None:
        handler, _ = self._handler({"lensDisplayInfo": {"lensId": "77", "lensName": "Live"}})
        engine = make_engine(handler)

        result = engine.enrich_lens(
            {"uuid": HEX_UUID, "lens_name": "Stored", "has_archived_snapshots": False},
            overwrite=True,
        )

        assert result.record["lens_name"] == "Live"

    def test_archive_supplies_artifact(self, make_engine) -> None:
        handler, _ = self._handler({}, archive_timestamp="20230601000000")
        engine = make_engine(handler)
        stored = {
            "uuid": HEX_UUID,
            "unlockable_id": "1",
            "user_name": "maker",
            "lens_creator_search_tags": ["tag"],
            "lens_url": "",
        }

        result = engine.enrich_lens(stored)

        assert result.ok
        assert result.record["lens_url"] == BOLT
        assert result.record["has_archived_snapshots"] is True
        assert result.record["snapshot"]["date"] == "Thu Jun 01 2023"
        assert stored["lens_url"] == ""

    def test_complete_record_needs_no_requests(self, make_engine) -> None:
        handler, requests = self._handler({})
        engine = make_engine(handler)
        stored = {
            "uuid": HEX_UUID,
            "unlockable_id": "1",
            "user_name": "maker",
            "lens_creator_search_tags": [],
            "has_search_tags": False,
            "lens_url": "",
            "has_archived_snapshots": False,
        }

        result = engine.enrich_lens(stored)

        assert result.record == stored
        assert requests == []

    def test_live_failure_is_reported(self, make_engine) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, request=request)

        engine = make_engine(handler, max_request_retries=0)

        result = engine.enrich_lens({"uuid": HEX_UUID})

        assert not result.ok
        assert result.failures[0].kind == "http-status"
        assert "has_archived_snapshots" not in result.record

    def test_record_without_uuid(self, make_engine) -> None:
        engine = make_engine(lambda request: httpx.Response(500, request=request))

        result = engine.enrich_lens({"lens_name": "x"})

        assert not result.ok
        assert result.record == {"lens_name": "x"}


class TestLifecycle:
    def test_context_manager_closes_owned_resources(self) -> None:
        transport = httpx.MockTransport(lambda request: page_response(request, {"lensDisplayInfo": {"lensId": "1"}}))
        with LensResolutionEngine(
            fast_config(), client=httpx.Client(transport=transport), sleep=lambda _: None
        ) as engine:
            engine.get_lens_by_hash(HEX_UUID)
            assert len(engine.cache) == 1
            assert len(engine.pacer) == 1

        assert len(engine.cache) == 0
        assert len(engine.pacer) == 0
        engine.close()

    def test_gc_thread_started_when_interval_set(self) -> None:
        engine = LensResolutionEngine(fast_config(gc_interval_s=300))
        try:
            assert engine.cache._thread is not None
            assert engine.cache._thread.daemon
        finally:
            engine.close()
        assert engine.cache._thread is None

    def test_sweep_prunes_stale_pacing_stamps(self, make_engine) -> None:
        engine = make_engine(lambda request: page_response(request, {"lensDisplayInfo": {}}))
        engine.pacer.wait("stale.example")
        engine.pacer._last_started["stale.example"] -= 10_000

        engine.sweep()

        assert engine.pacer.last_started("stale.example") is None

    def test_download_file(self, make_engine, tmp_path: Path) -> None:
        engine = make_engine(lambda request: httpx.Response(200, content=b"bolt", request=request))

        assert engine.download_file(BOLT, tmp_path / "a.lns") is True
        assert (tmp_path / "a.lns").read_bytes() == b"bolt"
