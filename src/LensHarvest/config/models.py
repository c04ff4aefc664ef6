"""
Pydantic v2 Configuration Models for LensHarvest

Provides typed configuration for the resolution engine:
- Transport politeness (timeouts, per-host pacing, retry count)
- JSON payload cache (TTL and sweep interval)
- Request headers sent to the upstream pages
- Top-lens crawling (locale rotation, cursor cap)

Values below the documented floors are clamped rather than rejected so a
batch script can pass user-supplied numbers straight through. Unknown keys
are rejected (extra="forbid"). Environment variables and CLI overrides follow
file < env < CLI precedence (see ``loader``).
"""

from __future__ import annotations

from typing import ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/132.0.0.0 Safari/537.36"
)

DEFAULT_HEADERS: Dict[str, str] = {"User-Agent": DEFAULT_USER_AGENT}

DEFAULT_LOCALES = [
    "en-US",
    "en-GB",
    "de-DE",
    "fr-FR",
    "es-ES",
    "it-IT",
    "pt-BR",
    "ja-JP",
]

MIN_CONNECTION_TIMEOUT_MS = 1000
MIN_REQUEST_DELAY_MS = 100
MIN_CACHE_TTL_S = 60
MIN_GC_INTERVAL_S = 5 * 60


class CrawlerConfig(BaseModel):
    """Top-level configuration for :class:`LensHarvest.engine.LensResolutionEngine`."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", validate_assignment=False)

    connection_timeout_ms: int = Field(
        default=9000, description="Wall-clock bound for a single request attempt"
    )
    min_request_delay_ms: int = Field(
        default=500, description="Minimum spacing between attempts to the same host"
    )
    failed_request_delay_ms: int = Field(
        default=4500, description="Sleep between retry attempts"
    )
    max_request_retries: int = Field(
        default=2, description="Additional attempts after the first one"
    )
    cache_ttl_s: Optional[int] = Field(
        default=3600, description="Payload cache TTL in seconds (0 disables caching)"
    )
    gc_interval_s: Optional[int] = Field(
        default=3600, description="Background sweep interval in seconds (0 disables)"
    )
    headers: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_HEADERS),
        description="Headers sent with every request, merged over the browser defaults",
    )
    locales: List[str] = Field(
        default_factory=lambda: list(DEFAULT_LOCALES),
        description="Locale rotation used when crawling top lenses",
    )
    cursor_cap: int = Field(
        default=50, description="Maximum distinct cursors followed per locale session"
    )

    @field_validator("connection_timeout_ms")
    @classmethod
    def clamp_timeout(cls, v: int) -> int:
        return max(int(v), MIN_CONNECTION_TIMEOUT_MS)

    @field_validator("min_request_delay_ms")
    @classmethod
    def clamp_request_delay(cls, v: int) -> int:
        return max(int(v), MIN_REQUEST_DELAY_MS)

    @field_validator("max_request_retries")
    @classmethod
    def clamp_retries(cls, v: int) -> int:
        return max(int(v), 0)

    @field_validator("cache_ttl_s")
    @classmethod
    def clamp_cache_ttl(cls, v: Optional[int]) -> int:
        if not v:
            return 0
        return max(int(v), MIN_CACHE_TTL_S)

    @field_validator("gc_interval_s")
    @classmethod
    def clamp_gc_interval(cls, v: Optional[int]) -> int:
        if not v:
            return 0
        return max(int(v), MIN_GC_INTERVAL_S)

    @field_validator("headers")
    @classmethod
    def merge_default_headers(cls, v: Dict[str, str]) -> Dict[str, str]:
        overridden = {name.lower() for name in v}
        merged = {
            name: value for name, value in DEFAULT_HEADERS.items() if name.lower() not in overridden
        }
        merged.update(v)
        return merged

    @field_validator("locales")
    @classmethod
    def validate_locales(cls, v: List[str]) -> List[str]:
        locales = [locale.strip() for locale in v if locale and locale.strip()]
        if not locales:
            raise ValueError("locales must contain at least one entry")
        return locales

    @field_validator("cursor_cap")
    @classmethod
    def validate_cursor_cap(cls, v: int) -> int:
        if v < 1:
            raise ValueError("cursor_cap must be >= 1")
        return v

    @model_validator(mode="after")
    def clamp_failed_delay(self) -> "CrawlerConfig":
        if self.failed_request_delay_ms < self.min_request_delay_ms:
            self.failed_request_delay_ms = self.min_request_delay_ms
        return self

    # Convenience accessors in seconds for the transport and cache layers.

    @property
    def connection_timeout(self) -> float:
        return self.connection_timeout_ms / 1000.0

    @property
    def min_request_delay(self) -> float:
        return self.min_request_delay_ms / 1000.0

    @property
    def failed_request_delay(self) -> float:
        return self.failed_request_delay_ms / 1000.0
