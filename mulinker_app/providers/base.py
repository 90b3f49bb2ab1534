"""
================================================================================
mulinker - Base Search Client
================================================================================
Abstract base class for catalog search clients plus the adaptive rate
limiter every outbound request goes through.

Error contract:
  search() never raises. Transport failures, non-2xx responses and
  malformed payloads are logged and come back as an empty candidate list.
  HTTP 429 slows the shared limiter down and retries, up to max_attempts.
================================================================================
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Optional
import time
import random
import asyncio
import logging

import httpx

from ..matching.models import CandidateRecord


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimiterState:
    """Point-in-time view of a limiter, for status endpoints and tests."""
    min_delay: float
    current_delay: float
    last_request_at: Optional[float]


class AdaptiveRateLimiter:
    """
    Minimum-spacing limiter that adapts to throttling.

    One instance per endpoint, shared by every concurrent worker. acquire()
    holds a lock across the read-modify-write of the last request time, so
    two callers never compute overlapping wait windows.

      - penalize(): called on a 429, widens the spacing by `increment`
      - reward():   called on an unthrottled success, narrows the spacing by
                    `decay_step` with probability `decay_probability`,
                    never below `min_delay`
    """

    def __init__(
        self,
        min_delay: float = 1.0,
        initial_delay: float = 1.5,
        increment: float = 1.0,
        cooldown: float = 2.0,
        decay_step: float = 0.1,
        decay_probability: float = 0.2,
        max_delay: float = 10.0,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize rate limiter.

        Args:
            min_delay: Floor for the spacing between requests (seconds)
            initial_delay: Starting spacing, raised to min_delay if lower
            increment: Spacing added on every throttling response
            cooldown: Extra pause before retrying a throttled request
            decay_step: Spacing removed on a lucky unthrottled success
            decay_probability: Chance that a success triggers decay_step
            max_delay: Ceiling for the spacing
            rng: Random source (inject a seeded one in tests)
        """
        self.min_delay = min_delay
        self.current_delay = max(initial_delay, min_delay)
        self.increment = increment
        self.cooldown = cooldown
        self.decay_step = decay_step
        self.decay_probability = decay_probability
        self.max_delay = max(max_delay, self.current_delay)
        self.last_request: Optional[float] = None
        self._rng = rng or random.Random()
        self._lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings) -> "AdaptiveRateLimiter":
        return cls(
            min_delay=settings.min_delay,
            initial_delay=settings.initial_delay,
            increment=settings.increment,
            cooldown=settings.cooldown,
            decay_step=settings.decay_step,
            decay_probability=settings.decay_probability,
            max_delay=settings.max_delay,
        )

    async def acquire(self) -> None:
        """Wait until the next request may go out."""
        async with self._lock:
            if self.last_request is not None:
                elapsed = time.monotonic() - self.last_request
                if elapsed < self.current_delay:
                    wait_time = self.current_delay - elapsed
                    logger.debug(f"Rate limit: waiting {wait_time:.2f}s")
                    await asyncio.sleep(wait_time)

            self.last_request = time.monotonic()

    def penalize(self) -> float:
        """Widen the spacing after a throttling response. Returns the cooldown."""
        self.current_delay = min(self.current_delay + self.increment, self.max_delay)
        logger.warning(f"Rate limit: throttled, delay now {self.current_delay:.2f}s")
        return self.cooldown

    def reward(self) -> None:
        """Drift back toward min_delay after an unthrottled success."""
        if self.current_delay <= self.min_delay:
            return
        if self._rng.random() < self.decay_probability:
            self.current_delay = max(self.min_delay, self.current_delay - self.decay_step)
            logger.debug(f"Rate limit: recovered, delay now {self.current_delay:.2f}s")

    def snapshot(self) -> RateLimiterState:
        return RateLimiterState(
            min_delay=self.min_delay,
            current_delay=self.current_delay,
            last_request_at=self.last_request,
        )


class BaseSearchClient(ABC):
    """
    Abstract base class for catalog search clients.

    All clients must implement:
      - search(): title → ordered candidate list

    The base class handles:
      - Shared adaptive rate limiting
      - Bounded retry on throttling
      - Degrading every other failure to "no data"
    """

    # Client identification
    id: str = "base"
    name: str = "Base Catalog"

    # API configuration
    base_url: str = ""

    # Request timeout (seconds)
    timeout: float = 15.0

    # Attempts per logical request when throttled
    max_attempts: int = 4

    # Candidates per search
    page_size: int = 10

    user_agent: str = "mulinker/1.0 (reading-list enrichment)"

    def __init__(
        self,
        rate_limiter: AdaptiveRateLimiter,
        base_url: Optional[str] = None,
        page_size: Optional[int] = None,
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.rate_limiter = rate_limiter
        if base_url:
            self.base_url = base_url.rstrip('/')
        if page_size:
            self.page_size = page_size
        if max_attempts:
            self.max_attempts = max_attempts
        if timeout:
            self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    'User-Agent': self.user_agent,
                    'Accept': 'application/json'
                }
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        url: str,
        **kwargs
    ) -> Optional[Any]:
        """
        Make a rate-limited HTTP request.

        Args:
            method: HTTP method (GET, POST)
            url: Full URL
            **kwargs: Additional arguments for httpx

        Returns:
            Decoded JSON body, or None on any failure
        """
        client = await self._get_client()

        for attempt in range(1, self.max_attempts + 1):
            await self.rate_limiter.acquire()

            try:
                response = await client.request(method, url, **kwargs)
            except httpx.HTTPError as e:
                logger.warning(f"{self.id}: Request error ({e.__class__.__name__}: {e})")
                return None

            if response.status_code == 429:
                cooldown = self.rate_limiter.penalize()
                logger.warning(
                    f"{self.id}: Rate limited (429), attempt {attempt}/{self.max_attempts}, "
                    f"cooling down {cooldown:.1f}s"
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(cooldown)
                continue

            if response.is_error:
                logger.warning(f"{self.id}: HTTP {response.status_code} for {url}")
                return None

            try:
                data = response.json()
            except ValueError as e:
                logger.warning(f"{self.id}: Malformed JSON from {url}: {e}")
                return None

            self.rate_limiter.reward()
            return data

        logger.error(f"{self.id}: Still throttled after {self.max_attempts} attempts, giving up")
        return None

    @abstractmethod
    async def search(self, title: str) -> List[CandidateRecord]:
        """
        Search the catalog by title.

        Args:
            title: Title to search for

        Returns:
            Up to page_size candidates, in catalog order
        """

    def __repr__(self):
        return f"<{self.__class__.__name__}(id='{self.id}', delay={self.rate_limiter.current_delay:.2f}s)>"
