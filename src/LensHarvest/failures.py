# === NAVMAP v1 ===
# {
#   "module": "LensHarvest.failures",
#   "purpose": "Typed, chainable failure values returned by the resolution engine.",
#   "sections": [
#     {
#       "id": "failure",
#       "name": "Failure",
#       "anchor": "class-failure",
#       "kind": "class"
#     },
#     {
#       "id": "aggregatefailure",
#       "name": "AggregateFailure",
#       "anchor": "class-aggregatefailure",
#       "kind": "class"
#     },
#     {
#       "id": "snapshotnotfound",
#       "name": "SnapshotNotFound",
#       "anchor": "class-snapshotnotfound",
#       "kind": "class"
#     },
#     {
#       "id": "is-failure",
#       "name": "is_failure",
#       "anchor": "function-is-failure",
#       "kind": "function"
#     },
#     {
#       "id": "log-failure",
#       "name": "log_failure",
#       "anchor": "function-log-failure",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Failure taxonomy for lens resolution.

Responsibilities
----------------
- Describe why a resolution step did not succeed using immutable values
  rather than exceptions, so callers can keep partial results alongside the
  reason a source failed.
- Link retries together: each attempt wraps the previous failure as
  ``cause`` and :meth:`Failure.iter_chain` walks the chain for logging.
- Separate "structurally absent" outcomes (:class:`SnapshotNotFound`) from
  diagnostic failures so batch collaborators can decide whether a lens is
  permanently unresolvable.

Design Notes
------------
- Every public engine operation returns either its value or a
  :class:`Failure`; nothing in this module raises.
- :class:`NotFoundFailure` subclasses :class:`HttpStatusFailure` so callers
  that only care about "some HTTP status" still match it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, ClassVar, Iterator, Mapping, Optional, Sequence, Union

__all__ = (
    "Failure",
    "InvalidUrlFailure",
    "JsonFailure",
    "JsonParseFailure",
    "JsonStructureFailure",
    "RequestFailure",
    "RequestErrorFailure",
    "RequestTimeoutFailure",
    "HttpStatusFailure",
    "NotFoundFailure",
    "AggregateFailure",
    "SnapshotNotFound",
    "is_failure",
    "log_failure",
)

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Failure:
    """Base failure value with an optional causal chain."""

    kind: ClassVar[str] = "failure"

    message: str
    url: Optional[str] = None
    cause: Optional["Failure"] = None

    def iter_chain(self) -> Iterator["Failure"]:
        """Yield this failure followed by every wrapped ``cause``."""

        current: Optional[Failure] = self
        while current is not None:
            yield current
            current = current.cause

    @property
    def root(self) -> "Failure":
        """Return the oldest failure in the chain."""

        *_, last = self.iter_chain()
        return last

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind, "message": self.message, "url": self.url}
        if self.cause is not None:
            payload["cause"] = self.cause.to_dict()
        return payload

    def __str__(self) -> str:
        if self.url:
            return f"[{self.kind}] {self.url} - {self.message}"
        return f"[{self.kind}] {self.message}"


@dataclass(frozen=True)
class InvalidUrlFailure(Failure):
    """The URL could not be parsed or has no usable scheme/host."""

    kind: ClassVar[str] = "invalid-url"


@dataclass(frozen=True)
class JsonFailure(Failure):
    """Base class for JSON failures; ``raw`` keeps the offending text."""

    kind: ClassVar[str] = "json"

    raw: str = ""


@dataclass(frozen=True)
class JsonParseFailure(JsonFailure):
    """The payload was not valid JSON."""

    kind: ClassVar[str] = "json-parse"


@dataclass(frozen=True)
class JsonStructureFailure(JsonFailure):
    """The JSON decoded but did not have the expected shape."""

    kind: ClassVar[str] = "json-structure"


@dataclass(frozen=True)
class RequestFailure(Failure):
    """Base class for transport failures."""

    kind: ClassVar[str] = "request"


@dataclass(frozen=True)
class RequestErrorFailure(RequestFailure):
    """An uncategorised error was raised while performing the request."""

    kind: ClassVar[str] = "request-error"


@dataclass(frozen=True)
class RequestTimeoutFailure(RequestFailure):
    """The attempt exceeded the connection timeout."""

    kind: ClassVar[str] = "request-timeout"


@dataclass(frozen=True)
class HttpStatusFailure(RequestFailure):
    """A non-success HTTP status was received."""

    kind: ClassVar[str] = "http-status"

    status_code: int = 0

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["status_code"] = self.status_code
        return payload


@dataclass(frozen=True)
class NotFoundFailure(HttpStatusFailure):
    """HTTP 404; not retried unless the caller opts in."""

    kind: ClassVar[str] = "not-found"

    status_code: int = 404


@dataclass(frozen=True)
class SnapshotNotFound:
    """No usable archived snapshot exists for a URL pattern.

    This is an expected outcome and deliberately not a :class:`Failure`.
    """

    message: str
    url: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": "snapshot-not-found", "message": self.message, "url": self.url}


Outcome = Union[Failure, SnapshotNotFound]


@dataclass(frozen=True)
class AggregateFailure(Failure):
    """Wraps every outcome collected from a fan-out of candidate sources.

    Attributes:
        outcomes: Failures and not-found results in the order they occurred.
        partial: Best record assembled before giving up (may be empty).
    """

    kind: ClassVar[str] = "aggregate"

    outcomes: Sequence[Outcome] = ()
    partial: Mapping[str, Any] = field(default_factory=dict)

    @property
    def failures(self) -> list[Failure]:
        return [outcome for outcome in self.outcomes if isinstance(outcome, Failure)]

    @property
    def structurally_absent(self) -> bool:
        """``True`` when every candidate reported "not found" and none failed."""

        return bool(self.outcomes) and not self.failures

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["outcomes"] = [outcome.to_dict() for outcome in self.outcomes]
        return payload


def is_failure(value: Any) -> bool:
    """Return ``True`` when ``value`` is a :class:`Failure`."""

    return isinstance(value, Failure)


def log_failure(
    logger: logging.Logger,
    failure: Failure,
    *,
    level: int = logging.WARNING,
    context: Optional[Mapping[str, Any]] = None,
) -> None:
    """Emit one structured log record per link of ``failure``'s chain."""

    extra_base = dict(context or {})
    for depth, link in enumerate(failure.iter_chain()):
        extra = {
            **extra_base,
            "failure_kind": link.kind,
            "failure_url": link.url,
            "failure_depth": depth,
        }
        if isinstance(link, HttpStatusFailure):
            extra["status_code"] = link.status_code
        logger.log(level, "%s", link, extra=extra)
