"""
================================================================================
mulinker - MangaUpdates Search Client
================================================================================
MangaUpdates.com (Baka-Updates) series search.

API Documentation: https://api.mangaupdates.com/v1/docs
Endpoint: POST /series/search  {"search": <title>, "perpage": <n>}

Response shape (fields we use):
  {"results": [{"hit_title": "...",
                "record": {"series_id": 123, "title": "...", "url": "...",
                           "year": "2017", "type": "Manga",
                           "image": {"url": {"original": "...", "thumb": "..."}}}}]}

Rate Limit: no official number; the shared limiter keeps ~1 req/sec and
backs off on 429.
================================================================================
"""

import re
import logging
from typing import List, Optional, Dict, Any

from .base import BaseSearchClient
from ..matching.models import CandidateRecord

logger = logging.getLogger(__name__)

SERIES_BASE_URL = "https://www.mangaupdates.com/series"


def to_base36(number: int) -> str:
    """MangaUpdates site URLs carry the numeric series id in base 36."""
    if number < 0:
        raise ValueError("series id must be non-negative")
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"
    out = []
    while number:
        number, rem = divmod(number, 36)
        out.append(digits[rem])
    return ''.join(reversed(out))


def to_slug(title: str) -> str:
    """Lowercase, runs of non-alphanumerics → '-', no edge dashes."""
    slug = re.sub(r'[^a-z0-9]+', '-', (title or '').lower())
    return slug.strip('-')


def series_url(series_id: int, title: str) -> str:
    """Canonical site URL for a series."""
    return f"{SERIES_BASE_URL}/{to_base36(series_id)}/{to_slug(title)}"


class MangaUpdatesClient(BaseSearchClient):
    """MangaUpdates.com series search client."""

    id = "mangaupdates"
    name = "MangaUpdates"
    base_url = "https://api.mangaupdates.com/v1"
    page_size = 10

    async def search(self, title: str) -> List[CandidateRecord]:
        """
        Search for series by title.

        Args:
            title: Title to search

        Returns:
            List of CandidateRecord (empty on any failure)
        """
        if not title or not title.strip():
            return []

        payload = {
            'search': title,
            'perpage': self.page_size,
        }

        response = await self._request(
            "POST",
            f"{self.base_url}/series/search",
            json=payload
        )

        if not isinstance(response, dict) or not isinstance(response.get('results'), list):
            if response is not None:
                logger.warning(f"MangaUpdates search returned no data for '{title}'")
            return []

        candidates = []
        for item in response['results'][:self.page_size]:
            candidate = self._parse_result(item)
            if candidate:
                candidates.append(candidate)

        logger.info(f"MangaUpdates search for '{title}': {len(candidates)} results")
        return candidates

    def _parse_result(self, item: Any) -> Optional[CandidateRecord]:
        """
        Parse one search hit into a CandidateRecord.

        Returns None for entries without a usable id or title.
        """
        if not isinstance(item, dict):
            return None
        record: Dict[str, Any] = item.get('record') or {}
        if not isinstance(record, dict):
            return None

        series_id = record.get('series_id')
        title = record.get('title')
        if series_id is None or not title:
            logger.debug(f"Skipping MangaUpdates hit without id/title: {item!r:.120}")
            return None
        try:
            series_id = int(series_id)
        except (TypeError, ValueError):
            return None

        # Year comes back as a string ("2017"), sometimes empty
        year = None
        year_raw = record.get('year')
        if isinstance(year_raw, int):
            year = year_raw
        elif isinstance(year_raw, str) and year_raw.strip().isdigit():
            year = int(year_raw.strip())

        image_url = None
        image = record.get('image')
        if isinstance(image, dict) and isinstance(image.get('url'), dict):
            image_url = image['url'].get('original') or image['url'].get('thumb')

        hit_title = item.get('hit_title')
        if not isinstance(hit_title, str) or not hit_title.strip():
            hit_title = None

        return CandidateRecord(
            series_id=series_id,
            title=str(title),
            hit_title=hit_title,
            year=year,
            category=record.get('type') or None,
            image_url=image_url,
            url=record.get('url') or series_url(series_id, str(title)),
        )
