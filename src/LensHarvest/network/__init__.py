"""Network subsystem: polite HTTP transport for upstream lens pages.

This package provides the single point through which LensHarvest talks to
the network, based on:
- HTTPX: synchronous client with redirect following and phase timeouts
- Tenacity: attempt-bounded retries with a fixed delay between attempts

Modules:
- pacing: per-host minimum delay between attempt starts
- retry: per-failure-class retry options and the Tenacity controller
- client: ``PoliteClient.fetch`` returning a response or a typed failure

Example:
    >>> from LensHarvest.network import HostPacer, PoliteClient
    >>> client = PoliteClient(config, pacer=HostPacer(config.min_request_delay))
    >>> result = client.fetch("https://www.snapchat.com/lens/")
"""

from LensHarvest.network.client import FetchedResponse, PoliteClient, parse_host
from LensHarvest.network.pacing import HostPacer
from LensHarvest.network.retry import (
    DEFAULT_RETRY_OPTIONS,
    AttemptFailed,
    RetryOptions,
    create_retry_policy,
)

__all__ = [
    "AttemptFailed",
    "DEFAULT_RETRY_OPTIONS",
    "FetchedResponse",
    "HostPacer",
    "PoliteClient",
    "RetryOptions",
    "create_retry_policy",
    "parse_host",
]
