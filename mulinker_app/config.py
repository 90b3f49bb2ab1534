"""
================================================================================
mulinker - Configuration
================================================================================
All settings come from environment variables (a local .env file is loaded
by create_app()). Defaults are tuned for the public MangaUpdates API.

    MU_API_URL            Base URL of the MangaUpdates v1 API
    MU_SEARCH_PAGE_SIZE   Candidates requested per search (default 10)
    MU_REQUEST_TIMEOUT    Per-request timeout in seconds
    RATE_MIN_DELAY        Floor of the inter-request delay (seconds)
    RATE_INITIAL_DELAY    Starting delay, above the floor
    RATE_INCREMENT        Delay added on every 429
    RATE_COOLDOWN         Extra sleep before retrying a throttled call
    RATE_MAX_ATTEMPTS     Attempts per search before giving up
    ENRICH_CONCURRENCY    Titles resolved in parallel per batch
    CACHE_BACKEND         json | memory | redis
    CACHE_FILE            Path of the JSON cache file
    CACHE_TTL             Seconds before a cached match expires (0 = never)
    CACHE_FLUSH_EVERY     JSON cache changes buffered before a file write
    REDIS_URL             Redis connection URL for CACHE_BACKEND=redis
    SESSION_TTL           Seconds before an idle session is dropped
    SESSION_PURGE_INTERVAL  Seconds between sweeps for expired sessions
    LOG_DIR               Directory for the rotating log files
================================================================================
"""

import os
from dataclasses import dataclass, field, replace
from typing import Optional

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class RateLimitSettings:
    """Pacing for the catalog search endpoint."""
    min_delay: float = 1.0
    initial_delay: float = 1.5
    increment: float = 1.0
    cooldown: float = 2.0
    decay_step: float = 0.1
    decay_probability: float = 0.2
    max_delay: float = 10.0
    max_attempts: int = 4


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the enrichment engine and API."""
    mu_api_url: str = "https://api.mangaupdates.com/v1"
    search_page_size: int = 10
    request_timeout: float = 15.0
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    concurrency: int = 2
    cache_backend: str = "json"
    cache_file: str = os.path.join(BASE_DIR, "instance", "cache_mangaupdates.json")
    cache_ttl: int = 0
    cache_flush_every: int = 20
    redis_url: Optional[str] = None
    session_ttl: int = 3600
    session_purge_interval: float = 600.0
    log_dir: str = os.path.join(BASE_DIR, "instance")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current environment."""
        defaults = cls()
        rate = RateLimitSettings(
            min_delay=_env_float('RATE_MIN_DELAY', defaults.rate_limit.min_delay),
            initial_delay=_env_float('RATE_INITIAL_DELAY', defaults.rate_limit.initial_delay),
            increment=_env_float('RATE_INCREMENT', defaults.rate_limit.increment),
            cooldown=_env_float('RATE_COOLDOWN', defaults.rate_limit.cooldown),
            decay_step=defaults.rate_limit.decay_step,
            decay_probability=defaults.rate_limit.decay_probability,
            max_delay=defaults.rate_limit.max_delay,
            max_attempts=_env_int('RATE_MAX_ATTEMPTS', defaults.rate_limit.max_attempts),
        )
        return cls(
            mu_api_url=os.environ.get('MU_API_URL', defaults.mu_api_url).rstrip('/'),
            search_page_size=_env_int('MU_SEARCH_PAGE_SIZE', defaults.search_page_size),
            request_timeout=_env_float('MU_REQUEST_TIMEOUT', defaults.request_timeout),
            rate_limit=rate,
            concurrency=max(1, _env_int('ENRICH_CONCURRENCY', defaults.concurrency)),
            cache_backend=os.environ.get('CACHE_BACKEND', defaults.cache_backend).lower(),
            cache_file=os.environ.get('CACHE_FILE', defaults.cache_file),
            cache_ttl=_env_int('CACHE_TTL', defaults.cache_ttl),
            cache_flush_every=max(1, _env_int('CACHE_FLUSH_EVERY', defaults.cache_flush_every)),
            redis_url=os.environ.get('REDIS_URL') or None,
            session_ttl=_env_int('SESSION_TTL', defaults.session_ttl),
            session_purge_interval=_env_float('SESSION_PURGE_INTERVAL', defaults.session_purge_interval),
            log_dir=os.environ.get('LOG_DIR', defaults.log_dir),
        )

    def with_overrides(self, **changes) -> "Settings":
        """Return a copy with some fields replaced (used by tests)."""
        return replace(self, **changes)
