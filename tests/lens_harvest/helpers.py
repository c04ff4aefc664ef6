"""Page and payload builders shared by the LensHarvest tests."""

from __future__ import annotations

import json
from typing import Any, Dict

import httpx

from LensHarvest.config import CrawlerConfig

HEX_UUID = "0123456789abcdef0123456789abcdef"


def next_data_page(payload: Any) -> str:
    """Render an HTML page embedding ``payload`` as its Next.js data block."""

    return (
        "<!DOCTYPE html><html><head><title>Lens</title></head><body>"
        "<div id='__next'></div>"
        f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(payload)}</script>'
        "</body></html>"
    )


def page_response(request: httpx.Request, page_props: Dict[str, Any]) -> httpx.Response:
    body = next_data_page({"props": {"pageProps": page_props}})
    return httpx.Response(200, text=body, headers={"Content-Type": "text/html"}, request=request)


def json_response(request: httpx.Request, payload: Any, status: int = 200) -> httpx.Response:
    return httpx.Response(status, json=payload, request=request)


def archive_availability(request: httpx.Request, url: str, timestamp: str) -> httpx.Response:
    payload = {
        "url": request.url.params.get("url"),
        "archived_snapshots": {
            "closest": {"available": True, "url": url, "timestamp": timestamp, "status": "200"}
        },
    }
    return json_response(request, payload)


def fast_config(**overrides: Any) -> CrawlerConfig:
    """Config with the smallest delays and no background sweep."""

    values: Dict[str, Any] = {
        "min_request_delay_ms": 100,
        "failed_request_delay_ms": 100,
        "max_request_retries": 2,
        "gc_interval_s": 0,
    }
    values.update(overrides)
    return CrawlerConfig(**values)
