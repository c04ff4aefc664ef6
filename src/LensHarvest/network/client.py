# === NAVMAP v1 ===
# {
#   "module": "LensHarvest.network.client",
#   "purpose": "Polite HTTP client: per-host pacing, bounded attempts and typed failures.",
#   "sections": [
#     {
#       "id": "fetchedresponse",
#       "name": "FetchedResponse",
#       "anchor": "class-fetchedresponse",
#       "kind": "class"
#     },
#     {
#       "id": "politeclient",
#       "name": "PoliteClient",
#       "anchor": "class-politeclient",
#       "kind": "class"
#     },
#     {
#       "id": "parse-host",
#       "name": "parse_host",
#       "anchor": "function-parse-host",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Polite HTTP Client: HTTPX + host pacing + Tenacity retries.

The client issues single upstream requests on behalf of the resolution
engine and never raises for network or HTTP conditions. Every call:
- Rejects URLs without an http(s) scheme and host (no retry)
- Waits for the host's pacing slot before *each* attempt
- Bounds each whole attempt (connect, headers and body) by the connection
  timeout; the caller stops waiting at the deadline
- Retries per failure class with a fixed delay between attempts
- Returns a :class:`FetchedResponse` or the newest :class:`Failure`, whose
  ``cause`` chain holds the earlier attempts

Example:
    >>> pacer = HostPacer(0.5)
    >>> client = PoliteClient(CrawlerConfig(), pacer=pacer)
    >>> result = client.fetch("https://lens.snapchat.com/<hash>")
    >>> if is_failure(result):
    ...     log_failure(LOGGER, result)
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from pathlib import Path
from typing import Callable, Dict, Optional, Union

import httpx

from LensHarvest.config import CrawlerConfig
from LensHarvest.failures import (
    Failure,
    HttpStatusFailure,
    InvalidUrlFailure,
    NotFoundFailure,
    RequestErrorFailure,
    RequestTimeoutFailure,
)
from LensHarvest.network.pacing import HostPacer
from LensHarvest.network.retry import (
    DEFAULT_RETRY_OPTIONS,
    AttemptFailed,
    RetryOptions,
    create_retry_policy,
)

__all__ = ["FetchedResponse", "PoliteClient", "parse_host"]

logger = logging.getLogger(__name__)

# Attempts run on worker threads so the caller can stop waiting at the deadline.
ATTEMPT_WORKERS = 32


class FetchedResponse:
    """Fully-read response handed back to the extractor layers."""

    __slots__ = ("status_code", "headers", "content", "url")

    def __init__(
        self, status_code: int, headers: Dict[str, str], content: bytes, url: str
    ) -> None:
        self.status_code = status_code
        self.headers = headers
        self.content = content
        self.url = url

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def __repr__(self) -> str:
        return f"FetchedResponse(status_code={self.status_code}, url={self.url!r})"


class _DeadlineExceeded(Exception):
    pass


def parse_host(url: str) -> Optional[str]:
    """Return the lowercase hostname of an http(s) URL, or ``None``."""

    if not isinstance(url, str) or not url:
        return None
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError, ValueError):
        return None
    if parsed.scheme not in ("http", "https") or not parsed.host:
        return None
    return parsed.host.lower()


class PoliteClient:
    """Thread-safe request gate shared by every engine sub-component.

    Attributes:
        config: Crawler configuration (timeouts, delays, retry count).
        pacer: Host pacing map owned by the engine.
    """

    def __init__(
        self,
        config: CrawlerConfig,
        *,
        pacer: HostPacer,
        client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.pacer = pacer
        self._clock = clock
        self._sleep = sleep
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(follow_redirects=True)
        self._headers = dict(config.headers)
        self._executor = ThreadPoolExecutor(
            max_workers=ATTEMPT_WORKERS, thread_name_prefix="lensharvest-http"
        )

    @property
    def max_attempts(self) -> int:
        return self.config.max_request_retries + 1

    def fetch(
        self,
        url: str,
        method: str = "GET",
        options: RetryOptions = DEFAULT_RETRY_OPTIONS,
    ) -> Union[FetchedResponse, Failure]:
        """Perform a paced, bounded, retried request.

        Args:
            url: Absolute http(s) URL.
            method: HTTP method.
            options: Per-failure-class retry switches.

        Returns:
            The fully-read response on 2xx, otherwise the newest failure.
        """
        host = parse_host(url)
        if host is None:
            logger.error("Invalid URL: %s", url, extra={"url": url})
            return InvalidUrlFailure("Invalid URL", url)

        last_failure: Optional[Failure] = None
        policy = create_retry_policy(
            max_attempts=self.max_attempts,
            delay_seconds=self.config.failed_request_delay,
            options=options,
            sleep=self._sleep,
        )

        try:
            for attempt in policy:
                with attempt:
                    self.pacer.wait(host)
                    outcome = self._attempt(method, url, previous=last_failure)
                    if isinstance(outcome, Failure):
                        last_failure = outcome
                        raise AttemptFailed(outcome)
                    return outcome
        except AttemptFailed as exc:
            logger.warning(
                "Request failed: %s",
                exc.failure,
                extra={"url": url, "method": method, "failure_kind": exc.failure.kind},
            )
            return exc.failure

        return last_failure or Failure("Unexpected", url)

    def _deadline_failure(self, url: str, previous: Optional[Failure]) -> RequestTimeoutFailure:
        return RequestTimeoutFailure(
            f"Request exceeded {self.config.connection_timeout_ms} ms", url, previous
        )

    def _attempt(
        self, method: str, url: str, *, previous: Optional[Failure]
    ) -> Union[FetchedResponse, Failure]:
        """Run one attempt, giving up once ``connection_timeout`` has elapsed.

        httpx bounds each connect/read phase separately, so the whole attempt
        runs on a worker thread and the caller waits at most the timeout. An
        abandoned attempt closes its response as soon as it regains control.
        """
        timeout = self.config.connection_timeout
        deadline = self._clock() + timeout
        abandoned = threading.Event()

        future = self._executor.submit(self._send_once, method, url, deadline, abandoned, previous)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            abandoned.set()
            future.cancel()
            logger.debug("Abandoned in-flight request", extra={"url": url, "method": method})
            return self._deadline_failure(url, previous)

    def _send_once(
        self,
        method: str,
        url: str,
        deadline: float,
        abandoned: threading.Event,
        previous: Optional[Failure],
    ) -> Union[FetchedResponse, Failure]:
        timeout = self.config.connection_timeout
        started = time.time()

        try:
            request = self._client.build_request(
                method, url, headers=self._headers, timeout=httpx.Timeout(timeout)
            )
            response = self._client.send(request, stream=True, follow_redirects=True)
        except httpx.TimeoutException as exc:
            return RequestTimeoutFailure(str(exc) or "Request timed out", url, previous)
        except httpx.HTTPError as exc:
            return RequestErrorFailure(str(exc) or type(exc).__name__, url, previous)

        try:
            if abandoned.is_set() or self._clock() > deadline:
                raise _DeadlineExceeded()
            if not response.is_success:
                code = response.status_code
                message = f"HTTP Status {code}"
                if code == 404:
                    return NotFoundFailure(message, url, previous, status_code=code)
                return HttpStatusFailure(message, url, previous, status_code=code)

            body = self._read_body(response, deadline, abandoned)
        except _DeadlineExceeded:
            return self._deadline_failure(url, previous)
        except httpx.TimeoutException as exc:
            return RequestTimeoutFailure(str(exc) or "Request timed out", url, previous)
        except httpx.HTTPError as exc:
            return RequestErrorFailure(str(exc) or type(exc).__name__, url, previous)
        finally:
            response.close()

        logger.debug(
            "Polite request completed",
            extra={
                "method": method,
                "url": url,
                "status": response.status_code,
                "elapsed_ms": int((time.time() - started) * 1000),
                "bytes": len(body),
            },
        )
        return FetchedResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            content=body,
            url=str(response.url),
        )

    def _read_body(
        self, response: httpx.Response, deadline: float, abandoned: threading.Event
    ) -> bytes:
        chunks = []
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            if abandoned.is_set() or self._clock() > deadline:
                raise _DeadlineExceeded()
        return b"".join(chunks)

    def download_file(self, url: str, dest: Union[str, os.PathLike[str]]) -> Union[bool, Failure]:
        """Fetch a binary artifact and write it atomically to ``dest``."""

        logger.info("Downloading %s", url, extra={"url": url, "dest": str(dest)})
        response = self.fetch(url)
        if isinstance(response, Failure):
            return response

        target = Path(dest)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".part")
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(response.content)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            logger.error("Cannot write %s: %s", target, exc, extra={"url": url})
            return Failure(f"Cannot write {target}: {exc}", url)
        return True

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        if self._owns_client:
            self._client.close()
