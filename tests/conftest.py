import asyncio

import pytest

from mulinker_app.cache import MatchCache, MemoryBackend
from mulinker_app.matching.models import CandidateRecord


class FakeSearchClient:
    """Catalog stand-in: canned candidates per title, records every call."""

    id = "fake"

    def __init__(self, catalog=None, delay=0.0, failures=()):
        self.catalog = catalog or {}
        self.delay = delay
        self.failures = set(failures)
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def search(self, title):
        self.calls.append(title)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if title in self.failures:
                raise RuntimeError(f"search exploded for {title}")
            return list(self.catalog.get(title, []))
        finally:
            self.in_flight -= 1

    async def close(self):
        self.closed = True


@pytest.fixture
def make_search_client():
    return FakeSearchClient


@pytest.fixture
def memory_cache():
    return MatchCache(MemoryBackend())


@pytest.fixture
def catalog():
    """A small catalog covering exact, fuzzy and rejected candidates."""
    return {
        "One Piece": [
            CandidateRecord(series_id=55099564912, title="One Piece", year=1997, category="Manga"),
            CandidateRecord(series_id=1, title="One Piece Party", year=2015, category="Manga"),
        ],
        "Blue Box": [
            CandidateRecord(series_id=2, title="Blue Lock", year=2018, category="Manga"),
        ],
        "Attack on Titan": [
            CandidateRecord(
                series_id=3,
                title="Attack on Titan: Colossal Edition",
                category="Anthology",
            ),
        ],
    }
