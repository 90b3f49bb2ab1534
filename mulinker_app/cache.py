"""
================================================================================
mulinker - Match Cache
================================================================================
Persists normalized-title → MatchResult associations across runs so titles
resolved once never cost another catalog request.

Backends (chosen by CACHE_BACKEND):
  - json:   in-process map persisted to a JSON file (default)
  - memory: bounded in-process LRU, lost on exit
  - redis:  shared store for multi-worker deployments

The cache is a best-effort memo, not a source of truth: backend errors at
runtime are logged and behave like misses or dropped writes.
================================================================================
"""

import os
import json
import time
import logging
import tempfile
import threading
from typing import Any, Optional, Dict
from collections import OrderedDict

import redis

from .config import Settings
from .errors import CacheUnavailableError
from .matching.models import MatchResult

logger = logging.getLogger(__name__)


class CacheBackend:
    """Key/value storage used by MatchCache."""
    name = "base"

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def ping(self) -> bool:
        return True

    def flush(self) -> None:
        """Make pending writes durable."""

    def close(self) -> None:
        self.flush()


class MemoryBackend(CacheBackend):
    """In-memory storage with LRU eviction and optional expiry."""
    name = "memory"

    def __init__(self, max_size: int = 10000):
        self._data: OrderedDict = OrderedDict()
        self._expires: Dict[str, float] = {}
        self._lock = threading.Lock()
        self.max_size = max_size

    def _is_expired(self, key: str) -> bool:
        expiry = self._expires.get(key)
        if expiry and time.time() > expiry:
            return True
        return False

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            if key not in self._data:
                return None
            if self._is_expired(key):
                del self._data[key]
                del self._expires[key]
                return None
            self._data.move_to_end(key)
            return self._data[key]

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        with self._lock:
            if len(self._data) >= self.max_size and key not in self._data:
                evicted, _ = self._data.popitem(last=False)
                self._expires.pop(evicted, None)
            self._data[key] = value
            if ttl:
                self._expires[key] = time.time() + ttl
            elif key in self._expires:
                del self._expires[key]

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)
            self._expires.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


class JsonFileBackend(CacheBackend):
    """
    In-process map persisted to a JSON file.

    File layout: {key: {"value": str, "expires": float|null}}. Changes are
    written atomically once `flush_every` of them have piled up, and on
    flush()/close(). flush_every=1 writes through on every change.
    """
    name = "json"

    DEFAULT_FLUSH_EVERY = 20

    def __init__(self, path: str, flush_every: int = DEFAULT_FLUSH_EVERY):
        self.path = path
        self.flush_every = max(1, flush_every)
        self._data: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._pending = 0
        self._load()

    def _load(self) -> None:
        if not os.path.exists(self.path):
            return
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load cache file {self.path}: {e}")
            return
        if not isinstance(raw, dict):
            logger.error(f"Ignoring cache file {self.path}: not a JSON object")
            return
        for key, entry in raw.items():
            if isinstance(entry, dict) and isinstance(entry.get('value'), str):
                self._data[key] = entry
        logger.info(f"📦 Loaded {len(self._data)} items from cache.")

    def _write(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.cache-', suffix='.json')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def _save(self) -> None:
        if not self._pending:
            return
        try:
            self._write()
            logger.debug(f"Cache file written ({self._pending} changes)")
            self._pending = 0
        except OSError as e:
            logger.error(f"Failed to save cache file {self.path}: {e}")

    def _changed(self) -> None:
        """Count one change; caller holds the lock."""
        self._pending += 1
        if self._pending >= self.flush_every:
            self._save()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires = entry.get('expires')
            if expires and time.time() > expires:
                del self._data[key]
                self._pending += 1
                return None
            return entry['value']

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        with self._lock:
            self._data[key] = {
                'value': value,
                'expires': time.time() + ttl if ttl else None,
            }
            self._changed()

    def delete(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._changed()

    def ping(self) -> bool:
        directory = os.path.dirname(os.path.abspath(self.path)) or '.'
        try:
            os.makedirs(directory, exist_ok=True)
        except OSError as e:
            logger.error(f"Cache directory {directory} is not usable: {e}")
            return False
        return os.access(directory, os.W_OK)

    def flush(self) -> None:
        with self._lock:
            self._save()

    def __len__(self) -> int:
        return len(self._data)


class RedisBackend(CacheBackend):
    """Redis-based storage for shared state."""
    name = "redis"

    def __init__(self, url: str, prefix: str = "mulinker:mu:"):
        self.client = redis.from_url(url, decode_responses=True)
        self.url = url
        self.prefix = prefix

    def _k(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[str]:
        try:
            return self.client.get(self._k(key))
        except redis.RedisError as e:
            logger.error(f"Redis GET failed: {e}")
            return None

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        try:
            self.client.set(self._k(key), value, ex=ttl or None)
        except redis.RedisError as e:
            logger.error(f"Redis SET failed: {e}")

    def delete(self, key: str) -> None:
        try:
            self.client.delete(self._k(key))
        except redis.RedisError as e:
            logger.error(f"Redis DELETE failed: {e}")

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.error(f"Redis PING failed: {e}")
            return False

    def close(self) -> None:
        self.client.close()


class MatchCache:
    """
    Cache of resolved matches keyed by normalized title.

    Only exact and fuzzy results with a catalog id are stored, so a title
    that found nothing is retried on the next run. An entry is never
    replaced by a result of a different kind; call invalidate() first.
    """

    def __init__(self, backend: CacheBackend, ttl: int = 0):
        self.backend = backend
        self.ttl = ttl
        self._hits = 0
        self._misses = 0
        self._writes = 0

    def check(self) -> None:
        """Raise CacheUnavailableError if the backend cannot be reached."""
        if not self.backend.ping():
            raise CacheUnavailableError(self.backend.name)

    def _read(self, key: str) -> Optional[MatchResult]:
        raw = self.backend.get(key)
        if raw is None:
            return None
        try:
            return MatchResult.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Dropping unreadable cache entry '{key}': {e}")
            self.backend.delete(key)
            return None

    def get(self, key: str) -> Optional[MatchResult]:
        if not key:
            return None
        result = self._read(key)
        if result is None:
            self._misses += 1
            logger.debug(f"Cache MISS: '{key}'")
            return None
        self._hits += 1
        logger.debug(f"Cache HIT: '{key}'")
        return result

    def put(self, key: str, result: MatchResult) -> bool:
        """
        Store a match. Returns True if the entry was written.
        """
        if not key or not result.is_matched:
            return False

        existing = self._read(key)
        if existing is not None and existing.kind != result.kind:
            logger.debug(
                f"Cache KEEP: '{key}' already holds a {existing.kind.value} match"
            )
            return False

        try:
            payload = json.dumps(result.to_dict(), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error(f"Cache SET failed for {key}: {e}")
            return False

        self.backend.set(key, payload, self.ttl or None)
        self._writes += 1
        logger.debug(f"Cache SET: '{key}' → {result.kind.value} ({result.series_id})")
        return True

    def invalidate(self, key: str) -> None:
        """Remove an entry so a later run resolves the title again."""
        self.backend.delete(key)
        logger.info(f"Cache INVALIDATE: '{key}'")

    def flush(self) -> None:
        """Make pending writes durable (end of a run)."""
        self.backend.flush()

    def close(self) -> None:
        self.backend.close()

    def stats(self) -> Dict[str, Any]:
        total_requests = self._hits + self._misses
        hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0.0
        return {
            'backend': self.backend.name,
            'hits': self._hits,
            'misses': self._misses,
            'writes': self._writes,
            'hit_rate': round(hit_rate, 2),
        }


def build_cache(settings: Settings) -> MatchCache:
    """Create the MatchCache configured by CACHE_BACKEND."""
    backend_name = settings.cache_backend

    if backend_name == 'redis':
        if not settings.redis_url:
            raise CacheUnavailableError('redis', 'REDIS_URL is not set')
        backend: CacheBackend = RedisBackend(settings.redis_url)
        logger.info(f"🚀 Match cache initialized with Redis: {settings.redis_url}")
    elif backend_name == 'memory':
        backend = MemoryBackend()
        logger.info("ℹ️ Match cache initialized with MemoryBackend")
    else:
        if backend_name != 'json':
            logger.warning(f"Unknown CACHE_BACKEND '{backend_name}', using json")
        backend = JsonFileBackend(settings.cache_file, flush_every=settings.cache_flush_every)
        logger.info(f"ℹ️ Match cache initialized with JSON file: {settings.cache_file}")

    return MatchCache(backend, ttl=settings.cache_ttl)
