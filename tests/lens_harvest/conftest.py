"""Shared fixtures for LensHarvest tests."""

from __future__ import annotations

import contextlib
from collections import deque
from typing import Any, Callable, Deque, List

import httpx
import pytest
from hypothesis import HealthCheck, settings

from LensHarvest.engine import LensResolutionEngine
from tests.lens_harvest.helpers import fast_config

# Hypothesis builds its unicode charmap cache on a cold first run, which can
# trip the too_slow health check; it says nothing about the code under test.
settings.register_profile("lensharvest", suppress_health_check=[HealthCheck.too_slow])
settings.load_profile("lensharvest")


@pytest.fixture
def recorded_sleeps() -> List[float]:
    return []


@pytest.fixture
def make_engine(recorded_sleeps: List[float]):
    """Build engines whose HTTP traffic is served by ``handler``."""

    created: Deque[LensResolutionEngine] = deque()

    def _make(
        handler: Callable[[httpx.Request], httpx.Response],
        **config_overrides: Any,
    ) -> LensResolutionEngine:
        web_ids = iter(f"webid{index}" for index in range(1000))
        engine = LensResolutionEngine(
            fast_config(**config_overrides),
            client=httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True),
            sleep=recorded_sleeps.append,
            web_id_factory=lambda: next(web_ids),
        )
        created.append(engine)
        return engine

    yield _make

    while created:
        engine = created.pop()
        engine.close()
        with contextlib.suppress(Exception):
            engine.client._client.close()
